from __future__ import annotations

import tomllib
from logging import getLogger
from typing import Any, Dict, NamedTuple, Optional

from .port import DEFAULT_TIMEOUT_MS
from .settings import SerialConfig

log = getLogger(__name__)


class PortSettings(NamedTuple):
    device: Optional[str]
    config: SerialConfig
    timeout_ms: int


def load_config(config_path: str = "config.toml") -> Dict[str, Any]:
    """
    Load configuration from a TOML file.
    A missing or malformed file yields an empty configuration.
    """
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        log.warning("Config file %s not found, using default values", config_path)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        log.warning("Failed to parse config %s: %s, using default values", config_path, exc)
    return {}


def serial_settings(config: Dict[str, Any]) -> PortSettings:
    """
    Extract the [serial] table of a loaded configuration.
    Args:
        config (dict): Result of load_config()
    Returns:
        PortSettings: device (None when absent), line parameters and read timeout
    Raises:
        ValueError: If a value is not supported
    """
    serial_cfg = config.get("serial", {})
    if not isinstance(serial_cfg, dict):
        raise ValueError("[serial] must be a table")

    device = serial_cfg.get("device")
    if device is not None and not isinstance(device, str):
        raise ValueError(f"device must be a string, not {device!r}")

    line = SerialConfig.coerce(
        baud_rate=serial_cfg.get("baudrate", 115200),
        data_bits=serial_cfg.get("bytesize", 8),
        parity=serial_cfg.get("parity", "N"),
        stop_bits=serial_cfg.get("stopbits", 1),
        flow_control=serial_cfg.get("flow", "none"),
    )

    try:
        timeout_ms = int(serial_cfg.get("timeout_ms", DEFAULT_TIMEOUT_MS))
    except (TypeError, ValueError):
        raise ValueError(f"invalid timeout_ms: {serial_cfg.get('timeout_ms')!r}") from None
    if timeout_ms < 0:
        raise ValueError("timeout_ms must not be negative")

    return PortSettings(device or None, line, timeout_ms)
