"""
Fixed-capacity byte buffer for one direction of the relay.

The buffer only does bookkeeping. Callers read from a descriptor into
``remaining_region()`` and report the byte count with ``committed()``, and
write ``data_region()`` to a descriptor and report the byte count with
``consumed()``.
"""


class ByteBuffer:
    """Contiguous staging area between one producer and one consumer."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Buffer capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._storage = bytearray(capacity)
        self._view = memoryview(self._storage)
        self._start = 0
        self._length = 0

    def __len__(self) -> int:
        return self._length

    def remaining(self) -> bool:
        """True if there is free space after the pending data."""
        return self._start + self._length < self.capacity

    def remaining_region(self) -> memoryview:
        """Writable region following the pending data."""
        return self._view[self._start + self._length:]

    def committed(self, count: int) -> None:
        """Record ``count`` bytes written into ``remaining_region()`` as pending."""
        free = self.capacity - self._start - self._length
        if count < 0 or count > free:
            raise BufferError(f"Cannot commit {count} bytes, {free} bytes free")
        self._length += count

    def data(self) -> bool:
        """True if there is pending data."""
        return self._length > 0

    def data_region(self) -> memoryview:
        """Read-only region holding the pending data."""
        return self._view[self._start:self._start + self._length].toreadonly()

    def consumed(self, count: int) -> None:
        """Drop ``count`` bytes from the front of the pending data."""
        if count < 0 or count > self._length:
            raise BufferError(
                f"Cannot consume {count} bytes, {self._length} bytes pending"
            )
        self._start += count
        self._length -= count
        if self._length == 0:
            self._start = 0
        elif self._start:
            # Compact so remaining_region() sees all free space
            end = self._start + self._length
            self._storage[:self._length] = self._storage[self._start:end]
            self._start = 0

    def clear(self) -> int:
        """Discard all pending data, returning how many bytes were dropped."""
        dropped = self._length
        self._start = 0
        self._length = 0
        return dropped
