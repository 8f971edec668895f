"""
Configuration management for ssh-serial.

Loads defaults from YAML files with environment variable overrides.
Command-line options are merged on top by the CLI.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


# Default configuration paths
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "ssh-serial"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
SYSTEM_CONFIG_FILE = Path("/etc/ssh-serial/config.yaml")

DEFAULT_DEVICE = "/dev/ttyS0"
DEFAULT_SPEED = "9600"
DEFAULT_BUFFER_SIZE = 4096
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Invalid configuration value."""


def parse_bool(text: Any) -> bool:
    """Parse a yes/no option value ("1", "y", "Y" or "0", "n", "N")."""
    if isinstance(text, bool):
        return text
    if text in ("1", "y", "Y"):
        return True
    if text in ("0", "n", "N"):
        return False
    raise ConfigError(f'"{text}" is not boolean, use "1" for yes, "0" for no.')


@dataclass
class SerialConfig:
    """Serial line defaults."""

    device: str = DEFAULT_DEVICE
    input_speed: str = DEFAULT_SPEED
    output_speed: str = DEFAULT_SPEED
    data_carrier_detect: bool = True
    hardware_handshaking: bool = True


@dataclass
class RelayConfig:
    """Relay loop settings."""

    buffer_size: int = DEFAULT_BUFFER_SIZE
    log_dir: Optional[Path] = None


@dataclass
class Config:
    """Main configuration for ssh-serial."""

    serial: SerialConfig = field(default_factory=SerialConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        serial_data = _section(data, "serial")
        relay_data = _section(data, "relay")

        serial = SerialConfig(
            device=str(serial_data.get("device", DEFAULT_DEVICE)),
            input_speed=str(serial_data.get("input_speed", DEFAULT_SPEED)),
            output_speed=str(serial_data.get("output_speed", DEFAULT_SPEED)),
            data_carrier_detect=parse_bool(
                _yaml_flag(serial_data.get("data_carrier_detect", True))
            ),
            hardware_handshaking=parse_bool(
                _yaml_flag(serial_data.get("hardware_handshaking", True))
            ),
        )

        log_dir = relay_data.get("log_dir")
        relay = RelayConfig(
            buffer_size=_parse_buffer_size(
                relay_data.get("buffer_size", DEFAULT_BUFFER_SIZE)
            ),
            log_dir=Path(log_dir) if log_dir else None,
        )

        log_file = data.get("log_file")
        return cls(
            serial=serial,
            relay=relay,
            log_level=_parse_log_level(data.get("log_level", "WARNING")),
            log_file=Path(log_file) if log_file else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert Config to dictionary."""
        return {
            "serial": {
                "device": self.serial.device,
                "input_speed": self.serial.input_speed,
                "output_speed": self.serial.output_speed,
                "data_carrier_detect": self.serial.data_carrier_detect,
                "hardware_handshaking": self.serial.hardware_handshaking,
            },
            "relay": {
                "buffer_size": self.relay.buffer_size,
                "log_dir": str(self.relay.log_dir) if self.relay.log_dir else None,
            },
            "log_level": self.log_level,
            "log_file": str(self.log_file) if self.log_file else None,
        }


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f'Configuration section "{name}" must be a mapping.')
    return section


def _parse_log_level(value: Any) -> str:
    level = value.upper() if isinstance(value, str) else None
    if level not in LOG_LEVELS:
        raise ConfigError(
            f'Log level "{value}" is not one of {", ".join(LOG_LEVELS)}.'
        )
    return level


def _yaml_flag(value: Any) -> Any:
    # YAML hands back 1/0 as ints
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _parse_buffer_size(value: Any) -> int:
    try:
        size = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f'Buffer size "{value}" is not a number.')
    if size < 1:
        raise ConfigError(f"Buffer size must be positive, got {size}.")
    return size


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Search order:
    1. Explicit path if provided
    2. SSH_SERIAL_CONFIG environment variable
    3. ~/.config/ssh-serial/config.yaml
    4. /etc/ssh-serial/config.yaml
    5. Default values

    Environment variable overrides:
    - SSH_SERIAL_DEVICE: Override serial.device
    - SSH_SERIAL_BUFFER_SIZE: Override relay.buffer_size
    - SSH_SERIAL_LOG_LEVEL: Override log_level
    - SSH_SERIAL_LOG_FILE: Override log_file

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Loaded configuration

    Raises:
        ConfigError: A value in the file or environment is invalid
    """
    if config_path:
        paths_to_try = [config_path]
    else:
        env_path = os.environ.get("SSH_SERIAL_CONFIG")
        paths_to_try = []
        if env_path:
            paths_to_try.append(Path(env_path))
        paths_to_try.extend([DEFAULT_CONFIG_FILE, SYSTEM_CONFIG_FILE])

    config_data = {}
    for path in paths_to_try:
        if path.exists():
            try:
                with open(path) as f:
                    config_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed reading configuration {path}: {e}")
            break

    if not isinstance(config_data, dict):
        raise ConfigError("Configuration file must contain a mapping.")

    config = Config.from_dict(config_data)
    return _apply_env_overrides(config)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if "SSH_SERIAL_DEVICE" in os.environ:
        config.serial.device = os.environ["SSH_SERIAL_DEVICE"]

    if "SSH_SERIAL_BUFFER_SIZE" in os.environ:
        config.relay.buffer_size = _parse_buffer_size(
            os.environ["SSH_SERIAL_BUFFER_SIZE"]
        )

    if "SSH_SERIAL_LOG_LEVEL" in os.environ:
        config.log_level = _parse_log_level(os.environ["SSH_SERIAL_LOG_LEVEL"])

    if "SSH_SERIAL_LOG_FILE" in os.environ:
        config.log_file = Path(os.environ["SSH_SERIAL_LOG_FILE"])

    return config


def save_config(config: Config, path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration to save
        path: Path to save to
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write("# ssh-serial configuration\n")
        f.write("# Command-line options override these values\n\n")
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
