"""
ssh-serial.

An ssh subsystem that attaches an incoming session to a local serial
device, turning the ssh server into a simple console server.
"""

__version__ = "0.1.0"
