"""Shared test fixtures."""

import pytest

from sshserial.core import config as config_module


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from real config files and environment overrides."""
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_FILE", tmp_path / "user.yaml")
    monkeypatch.setattr(config_module, "SYSTEM_CONFIG_FILE", tmp_path / "system.yaml")
    for name in (
        "SSH_SERIAL_CONFIG",
        "SSH_SERIAL_DEVICE",
        "SSH_SERIAL_BUFFER_SIZE",
        "SSH_SERIAL_LOG_LEVEL",
        "SSH_SERIAL_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
