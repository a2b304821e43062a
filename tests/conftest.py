from __future__ import annotations

import threading
from typing import Callable, List, Optional

import pytest

from serial_jsoncom.frame import CHECKSUM_SIZE, LENGTH_SIZE


class FakeClock:
    """Manually advanced monotonic clock; sleep() moves it forward."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """
    In-memory port. Bytes in `incoming` are what read() returns; every write
    is recorded and may be answered by a responder.
    """

    def __init__(self, responder: Optional[Callable[["FakeTransport", bytes], Optional[bytes]]] = None) -> None:
        self.incoming = bytearray()
        self.writes: List[bytes] = []
        self.responder = responder
        self.read_errors: List[Exception] = []
        self.write_errors: List[Exception] = []
        self.flushes = 0

    @property
    def in_waiting(self) -> int:
        return len(self.incoming)

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)

    def read(self, size: int = 1) -> bytes:
        if self.read_errors:
            raise self.read_errors.pop(0)
        data = bytes(self.incoming[:size])
        del self.incoming[:size]
        return data

    def write(self, data: bytes) -> int:
        if self.write_errors:
            raise self.write_errors.pop(0)
        self.writes.append(bytes(data))
        if self.responder is not None:
            reply = self.responder(self, bytes(data))
            if reply:
                self.incoming += reply
        return len(data)

    def reset_input_buffer(self) -> None:
        self.flushes += 1
        self.incoming.clear()


class FrameResponder:
    """
    Answers each complete frame written to a FakeTransport with the next
    scripted reply (None = stay silent).
    """

    def __init__(self, replies: List[Optional[bytes]]) -> None:
        self.replies = list(replies)
        self.frames: List[bytes] = []
        self._pending = bytearray()

    def __call__(self, transport: FakeTransport, data: bytes) -> Optional[bytes]:
        self._pending += data
        if len(self._pending) < LENGTH_SIZE:
            return None
        length = int.from_bytes(self._pending[:LENGTH_SIZE], "big")
        frame_len = LENGTH_SIZE + length + CHECKSUM_SIZE + 1
        if len(self._pending) < frame_len:
            return None
        self.frames.append(bytes(self._pending[:frame_len]))
        del self._pending[:frame_len]
        return self.replies.pop(0) if self.replies else None


class _Pipe:
    def __init__(self) -> None:
        self.buf = bytearray()
        self.cond = threading.Condition()


class PipeEnd:
    """One end of an in-process full-duplex byte pipe with a blocking, timeout-bounded read."""

    def __init__(self, rx: _Pipe, tx: _Pipe, timeout: float = 0.05,
                 mangle: Optional[Callable[[int, bytes], bytes]] = None) -> None:
        self._rx = rx
        self._tx = tx
        self.timeout = timeout
        self.mangle = mangle
        self._write_count = 0

    @property
    def in_waiting(self) -> int:
        with self._rx.cond:
            return len(self._rx.buf)

    def read(self, size: int = 1) -> bytes:
        with self._rx.cond:
            if not self._rx.buf:
                self._rx.cond.wait(self.timeout)
            data = bytes(self._rx.buf[:size])
            del self._rx.buf[:size]
            return data

    def write(self, data: bytes) -> int:
        data = bytes(data)
        if self.mangle is not None:
            data = self.mangle(self._write_count, data)
        self._write_count += 1
        with self._tx.cond:
            self._tx.buf += data
            self._tx.cond.notify_all()
        return len(data)

    def reset_input_buffer(self) -> None:
        with self._rx.cond:
            self._rx.buf.clear()


def pipe_pair(**kwargs) -> tuple:
    a, b = _Pipe(), _Pipe()
    return PipeEnd(a, b, **kwargs), PipeEnd(b, a)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
