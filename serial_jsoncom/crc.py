from __future__ import annotations

from typing import Final, List

POLY_REFLECTED: Final[int] = 0xA001  # 0x8005 bit-reversed
INIT: Final[int] = 0xFFFF


def _make_table() -> List[int]:
    table: List[int] = []
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ POLY_REFLECTED
            else:
                crc >>= 1
        table.append(crc)
    return table


_TABLE: Final[List[int]] = _make_table()


def crc16_modbus(data: bytes) -> int:
    """
    Calculate CRC-16/MODBUS for given data.
    Args:
        data (bytes): Data to calculate CRC for
    Returns:
        int: CRC-16 value (check value for b"123456789" is 0x4B37)
    """
    crc = INIT
    for b in data:
        crc = (crc >> 8) ^ _TABLE[(crc ^ b) & 0xFF]
    return crc & 0xFFFF
