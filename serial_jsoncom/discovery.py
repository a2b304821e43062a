"""Listing of serial ports a link is likely to run over."""

from __future__ import annotations

import platform
from typing import List

from serial.tools import list_ports  # type: ignore

_PATTERNS = {
    "linux": ["/dev/ttyUSB", "/dev/ttyACM", "/dev/ttyS", "/dev/ttyAMA"],
    "darwin": ["/dev/cu.usbserial", "/dev/cu.usbmodem", "/dev/cu.SLAB_USBtoUART", "/dev/cu.wchusbserial"],
}


def get_available_ports() -> List[str]:
    """Get list of available serial ports on the current platform."""
    return sorted(port_info.device for port_info in list_ports.comports())


def sort_likely_ports(ports: List[str], system: str) -> List[str]:
    """
    Order ports so USB-serial adapters come first; ports matching no known
    pattern are kept at the end.
    """
    system = system.lower()
    if system == "windows":
        likely = [p for p in ports if p.upper().startswith("COM")]
        likely.sort(key=lambda x: int(x[3:]) if x[3:].isdigit() else 999)
    elif system in _PATTERNS:
        likely = [p for p in ports if any(p.startswith(pattern) for pattern in _PATTERNS[system])]
        likely.sort(key=lambda x: (0 if any(tag in x for tag in ("USB", "ACM", "usbserial", "usbmodem")) else 1, x))
    else:
        likely = list(ports)
    return likely + [p for p in ports if p not in likely]


def get_likely_ports() -> List[str]:
    return sort_likely_ports(get_available_ports(), platform.system())
