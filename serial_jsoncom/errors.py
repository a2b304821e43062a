from __future__ import annotations

from typing import Optional


class JsoncomError(Exception):
    """Base class for all errors raised by serial_jsoncom."""


class TransportError(JsoncomError):
    """Read or write on the underlying port failed."""


class FramingError(JsoncomError, ValueError):
    """Length prefix or terminator does not describe a valid frame."""


class IntegrityError(JsoncomError, ValueError):
    """Checksum carried by the frame does not match its payload."""


class DecodeError(JsoncomError, ValueError):
    """Frame payload is not a valid message document."""


class DeliveryFailure(JsoncomError):
    """
    Sender gave up after exhausting its attempts without an OK.
    Attributes:
        attempts: Number of attempts made
        reason: Why the last attempt failed
    """

    def __init__(self, attempts: int, reason: Optional[str] = None) -> None:
        self.attempts = attempts
        self.reason = reason
        msg = f"delivery failed after {attempts} attempt(s)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
