from __future__ import annotations

import json
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Final, Optional, Tuple, Union

import click

_logger = logging.getLogger(__name__)

BAUD_RATES: Final[Tuple[int, ...]] = (
    300, 1200, 2400, 4800, 9600, 19200, 38400, 57600, 74880,
    115200, 230400, 250000, 500000, 1000000, 2000000,
)
DEFAULT_BAUDRATE: Final[int] = 9600
APP_NAME: Final[str] = "serial-zone-player"


def validate_baudrate(value: Any) -> int:
    """
    Coerce a configured baud rate and check it against BAUD_RATES.
    Raises:
        ValueError: If the value is not one of the standard rates
    """
    try:
        rate = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid baud rate: {value!r}") from None
    if rate not in BAUD_RATES:
        raise ValueError(f"unsupported baud rate: {rate}")
    return rate


def load_config(config_path: Union[str, os.PathLike] = "config.toml") -> dict:
    """Load configuration from a TOML file, or {} if it is missing or invalid."""
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        _logger.debug("Config file %s not found, using defaults", config_path)
        return {}
    except (OSError, tomllib.TOMLDecodeError) as ex:
        _logger.warning("Failed to parse config %s: %s. Using defaults.", config_path, ex)
        return {}


def get_serial_config(config: dict) -> Tuple[Optional[str], Optional[int], str]:
    """Extract (port, baudrate, encoding) from a config dict; unset values are None."""
    serial_cfg = config.get("serial", {})
    port = serial_cfg.get("port") or None
    baudrate = serial_cfg.get("baudrate")
    if baudrate is not None:
        baudrate = validate_baudrate(baudrate)
    encoding = str(serial_cfg.get("encoding", "utf-8"))
    return port, baudrate, encoding


class SettingsStore:
    """
    Small persistent key/value store for user choices such as the baud rate.
    Values are kept as JSON in the per-user application directory.
    """

    def __init__(self, path: Union[str, os.PathLike, None] = None) -> None:
        if path is None:
            path = Path(click.get_app_dir(APP_NAME)) / "settings.json"
        self.path = Path(path)

    def _read(self) -> dict:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as ex:
            _logger.warning("Ignoring unreadable settings file %s: %s", self.path, ex)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, key: str, default: Any = None) -> Any:
        value = self._read().get(key)
        if value is None:
            return default
        return value

    def save(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
