from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Mapping, Optional

from .frame import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_LENGTH
from .message import Message
from .reassembler import DEFAULT_INACTIVITY_TIMEOUT

_logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "jsoncom.toml"

# TOML section -> LinkConfig fields it may set
_SECTIONS: Mapping[str, tuple] = {
    "serial": ("port", "baudrate", "read_timeout", "write_timeout"),
    "frame": ("max_frame_length", "inactivity_timeout", "chunk_size", "chunk_delay", "require_terminator"),
    "retry": ("max_attempts", "feedback_timeout"),
}


@dataclass
class LinkConfig:
    """
    Everything the sender and receiver need to know about a link.
    Args:
        port: Serial port name or pyserial URL (e.g. /dev/ttyUSB0, COM7, loop://)
        baudrate: Baud rate
        read_timeout: Seconds a single read may block
        write_timeout: Seconds a single write may block (bounds feedback writes)
        max_frame_length: Largest payload accepted in a length prefix
        inactivity_timeout: Seconds before an idle partial frame is dropped
        chunk_size: Payload bytes per paced write
        chunk_delay: Seconds slept after each payload chunk
        max_attempts: Send attempts before giving up
        feedback_timeout: Seconds to wait for OK/RETRY after each attempt
        require_terminator: Frames end with the terminator byte
        callback: Called with every accepted Message
    """
    port: Optional[str] = None
    baudrate: int = 115200
    read_timeout: float = 0.3
    write_timeout: float = 1.0
    max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH
    inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_delay: float = 0.05
    max_attempts: int = 3
    feedback_timeout: float = 3.0
    require_terminator: bool = True
    callback: Optional[Callable[[Message], None]] = None

    def validate(self) -> "LinkConfig":
        """
        Check value ranges.
        Raises:
            ValueError: If any setting is out of range
        """
        if self.baudrate <= 0:
            raise ValueError("baudrate must be positive")
        if self.read_timeout < 0 or self.write_timeout < 0:
            raise ValueError("timeouts must not be negative")
        if not (0 < self.max_frame_length <= 0xFFFFFFFF):
            raise ValueError("max_frame_length out of range (1..u32)")
        if self.inactivity_timeout <= 0:
            raise ValueError("inactivity_timeout must be positive")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        if self.chunk_delay < 0:
            raise ValueError("chunk_delay must not be negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.feedback_timeout <= 0:
            raise ValueError("feedback_timeout must be positive")
        return self

    def override(self, **changes: Any) -> "LinkConfig":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def config_from_dict(config: Mapping[str, Any]) -> LinkConfig:
    """
    Build a LinkConfig from parsed TOML.
    Raises:
        ValueError: On unknown keys or invalid values
    """
    types = {f.name: f.type for f in fields(LinkConfig)}
    values: dict = {}
    for section, names in _SECTIONS.items():
        table = config.get(section, {})
        for key, value in table.items():
            if key not in names:
                raise ValueError(f"unknown setting [{section}] {key}")
            values[key] = _check_type(section, key, types[key], value)
    return LinkConfig(**values).validate()


def _check_type(section: str, key: str, kind: str, value: Any) -> Any:
    # bool is an int subclass, so it is excluded from the numeric kinds
    if kind == "bool":
        ok = isinstance(value, bool)
    elif kind == "int":
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif kind == "float":
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        if ok:
            value = float(value)
    else:
        ok = isinstance(value, str)
    if not ok:
        expected = {"bool": "a boolean", "int": "an integer", "float": "a number"}.get(kind, "a string")
        raise ValueError(f"[{section}] {key} must be {expected}, got {type(value).__name__}")
    return value


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> LinkConfig:
    """Load configuration from TOML file, falling back to defaults if it is missing."""
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        _logger.warning("Config file %s not found. Using default values.", config_path)
        return LinkConfig()
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Failed to parse config {config_path}: {e}") from e
    return config_from_dict(data)
