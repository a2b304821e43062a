from __future__ import annotations

from enum import Enum
from typing import Optional


class Feedback(Enum):
    """
    Feedback tokens written back by the receiver after every frame.
    OK = b"OK": frame accepted
    RETRY = b"RETRY": frame rejected, sender should resend
    Tokens are raw ASCII writes with no framing or checksum.
    """
    OK = b"OK"
    RETRY = b"RETRY"

    @classmethod
    def match(cls, data: bytes) -> Optional["Feedback"]:
        """Return the token exactly equal to data, or None."""
        for token in cls:
            if bytes(data) == token.value:
                return token
        return None

    @classmethod
    def could_match(cls, data: bytes) -> bool:
        """True while data is still a prefix of some token."""
        data = bytes(data)
        return any(token.value.startswith(data) for token in cls)
