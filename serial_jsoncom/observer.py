"""Observability hooks for the receive and send paths.

The protocol code never logs directly; it reports to an Observer. The default
Observer does nothing, LoggingObserver writes to the logging module.
"""

from __future__ import annotations

import logging
from typing import Optional

from .feedback import Feedback

_logger = logging.getLogger(__name__)


class Observer:
    def bytes_received(self, count: int, buffered: int) -> None:
        pass

    def frame_accepted(self, length: int) -> None:
        pass

    def frame_rejected(self, reason: str, error: Optional[Exception] = None) -> None:
        pass

    def feedback_sent(self, token: Feedback) -> None:
        pass

    def feedback_failed(self, token: Feedback, error: Exception) -> None:
        pass

    def read_failed(self, error: Exception) -> None:
        pass

    def delivery_failed(self, error: Exception) -> None:
        pass

    def send_attempt(self, attempt: int, max_attempts: int, length: int) -> None:
        pass

    def send_feedback(self, attempt: int, token: Optional[Feedback], reason: Optional[str] = None) -> None:
        pass

    def send_failed(self, attempts: int, reason: Optional[str]) -> None:
        pass


class LoggingObserver(Observer):
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or _logger

    def bytes_received(self, count: int, buffered: int) -> None:
        self.logger.debug("Received %d bytes, buffer size %d", count, buffered)

    def frame_accepted(self, length: int) -> None:
        self.logger.info("Accepted frame (%d bytes)", length)

    def frame_rejected(self, reason: str, error: Optional[Exception] = None) -> None:
        if error is not None:
            self.logger.warning("Rejected frame (%s): %s", reason, error)
        else:
            self.logger.warning("Rejected frame (%s)", reason)

    def feedback_sent(self, token: Feedback) -> None:
        self.logger.debug("Sent feedback %r", token.value)

    def feedback_failed(self, token: Feedback, error: Exception) -> None:
        self.logger.error("Failed to send feedback %r: %s", token.value, error)

    def read_failed(self, error: Exception) -> None:
        self.logger.warning("Serial read failed: %s", error)

    def delivery_failed(self, error: Exception) -> None:
        self.logger.error("Message handler raised: %s", error, exc_info=error)

    def send_attempt(self, attempt: int, max_attempts: int, length: int) -> None:
        self.logger.info("Sending frame (%d bytes), attempt %d/%d", length, attempt, max_attempts)

    def send_feedback(self, attempt: int, token: Optional[Feedback], reason: Optional[str] = None) -> None:
        if token is Feedback.OK:
            self.logger.info("Frame acknowledged on attempt %d", attempt)
        else:
            self.logger.warning("Attempt %d not acknowledged: %s", attempt, reason or token)

    def send_failed(self, attempts: int, reason: Optional[str]) -> None:
        self.logger.error("Giving up after %d attempt(s): %s", attempts, reason)
