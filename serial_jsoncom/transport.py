from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

import serial

from .errors import TransportError


class Transport(Protocol):
    """
    Byte-stream endpoint the protocol runs over. serial.Serial satisfies it.
    read() may return fewer bytes than asked for, including none on timeout.
    """

    @property
    def in_waiting(self) -> int:
        ...

    def read(self, size: int = 1) -> bytes:
        ...

    def write(self, data: bytes) -> Optional[int]:
        ...

    def reset_input_buffer(self) -> None:
        ...


@contextmanager
def io_errors(action: str) -> Iterator[None]:
    """Re-raise port failures as TransportError."""
    try:
        yield
    except (serial.SerialException, OSError) as ex:
        raise TransportError(f"{action} failed: {ex}") from ex


def read_available(transport: Transport) -> bytes:
    """Read whatever is waiting, or block for at most one read timeout for one byte."""
    with io_errors("read"):
        n = transport.in_waiting or 1
        return transport.read(n)


def write_all(transport: Transport, data: bytes) -> None:
    with io_errors("write"):
        transport.write(data)
