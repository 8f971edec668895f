"""
Core components for ssh-serial.

Provides configuration loading and validation.
"""

from sshserial.core.config import Config, ConfigError, load_config, parse_bool

__all__ = [
    "Config",
    "ConfigError",
    "load_config",
    "parse_bool",
]
