from __future__ import annotations

from typing import Final, Iterator

from .crc import crc16_modbus
from .errors import FramingError, IntegrityError

DEFAULT_MAX_FRAME_LENGTH: Final[int] = 4096
DEFAULT_CHUNK_SIZE: Final[int] = 20


class FrameCodec:
    """
    Wire layout of a length-delimited frame.
    Layout (big-endian):
        [4-byte length][payload][2-byte CRC-16/MODBUS of payload][terminator]
    Args:
        max_frame_length (int): Largest payload accepted in the length prefix
        require_terminator (bool): Expect the terminator byte after the checksum
    """
    LENGTH_SIZE: Final[int] = 4
    CHECKSUM_SIZE: Final[int] = 2
    TERMINATOR: Final[int] = 0x0A

    def __init__(self, max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH, require_terminator: bool = True):
        self.max_frame_length = max_frame_length
        self.require_terminator = require_terminator

    @property
    def trailer_size(self) -> int:
        """Bytes that follow the payload (checksum plus optional terminator)."""
        return FrameCodec.CHECKSUM_SIZE + (1 if self.require_terminator else 0)

    def check_length(self, length: int) -> int:
        """
        Validate a payload length.
        Raises:
            FramingError: If length is 0 or above max_frame_length
        """
        if length <= 0 or length > self.max_frame_length:
            raise FramingError(f"invalid frame length {length} (max {self.max_frame_length})")
        return length

    def parse_length(self, data: bytes) -> int:
        """
        Read and validate the big-endian length prefix at the start of data.
        Raises:
            FramingError: If the prefix is out of range
        """
        return self.check_length(int.from_bytes(data[:FrameCodec.LENGTH_SIZE], "big"))

    def parse_trailer(self, payload: bytes, trailer: bytes) -> None:
        """
        Check the bytes following a payload.
        Args:
            payload (bytes): Frame payload
            trailer (bytes): Checksum followed by the terminator, if required
        Raises:
            FramingError: If the terminator is not where it belongs
            IntegrityError: If the checksum does not match
        """
        if self.require_terminator:
            if trailer[FrameCodec.CHECKSUM_SIZE] != FrameCodec.TERMINATOR:
                raise FramingError(
                    f"expected terminator 0x{FrameCodec.TERMINATOR:02x}, got 0x{trailer[FrameCodec.CHECKSUM_SIZE]:02x}"
                )
        rx_crc = int.from_bytes(trailer[:FrameCodec.CHECKSUM_SIZE], "big")
        calc = crc16_modbus(payload)
        if rx_crc != calc:
            raise IntegrityError(f"checksum mismatch (got 0x{rx_crc:04x}, calculated 0x{calc:04x})")

    def parts(self, payload: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """
        Yield a frame as the sequence of writes a sender performs.
        Length prefix first, then the payload in chunks of chunk_size, then
        the checksum of the whole payload followed by the terminator.
        Raises:
            ValueError: If the payload is empty or too large, or chunk_size < 1
        """
        payload = bytes(payload)
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        length = self.check_length(len(payload))
        yield length.to_bytes(FrameCodec.LENGTH_SIZE, "big")
        for i in range(0, length, chunk_size):
            yield payload[i:i + chunk_size]
        trailer = crc16_modbus(payload).to_bytes(FrameCodec.CHECKSUM_SIZE, "big")
        if self.require_terminator:
            trailer += bytes((FrameCodec.TERMINATOR,))
        yield trailer

    def encode(self, payload: bytes) -> bytes:
        """
        Encode payload into one complete frame.
        Raises:
            ValueError: If the payload is empty or too large
        """
        return b"".join(self.parts(payload, chunk_size=max(1, len(payload))))


def encode_frame(payload: bytes, max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH) -> bytes:
    return FrameCodec(max_frame_length=max_frame_length).encode(payload)


def frame_parts(payload: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE,
                max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH) -> list[bytes]:
    return list(FrameCodec(max_frame_length=max_frame_length).parts(payload, chunk_size))


# Module-level aliases
LENGTH_SIZE = FrameCodec.LENGTH_SIZE
CHECKSUM_SIZE = FrameCodec.CHECKSUM_SIZE
TERMINATOR = FrameCodec.TERMINATOR
