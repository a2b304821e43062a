from __future__ import annotations

import time
from typing import Callable, Optional, Tuple, Union

from .config import LinkConfig
from .errors import DeliveryFailure, TransportError
from .feedback import Feedback
from .frame import FrameCodec
from .message import Message
from .observer import Observer
from .transport import Transport, io_errors, read_available, write_all

POLL_INTERVAL: float = 0.01


class Transmitter:
    """
    Send side of the link: one frame in flight, bounded retries.
    Each attempt writes the whole frame (paced in chunks for slow receivers)
    and then waits for OK or RETRY. Anything other than OK within the
    feedback timeout uses up one attempt.
    Args:
        transport (Transport): Open port to write frames to and read tokens from
        config (LinkConfig): Chunking, pacing and retry settings
        observer (Observer): Observability hooks
        sleep (callable): Used for pacing and polling
        clock (callable): Monotonic time source in seconds
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[LinkConfig] = None,
        *,
        observer: Optional[Observer] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self.config = config or LinkConfig()
        self._codec = FrameCodec(
            max_frame_length=self.config.max_frame_length,
            require_terminator=self.config.require_terminator,
        )
        self._observer = observer or Observer()
        self._sleep = sleep
        self._clock = clock

    def write_frame(self, payload: bytes) -> None:
        """
        Write one frame: length prefix, paced payload chunks, checksum and terminator.
        Raises:
            ValueError: If the payload is empty or too large
            TransportError: If a write fails
        """
        parts = list(self._codec.parts(payload, self.config.chunk_size))
        write_all(self._transport, parts[0])
        for chunk in parts[1:-1]:
            write_all(self._transport, chunk)
            if self.config.chunk_delay > 0:
                self._sleep(self.config.chunk_delay)
        write_all(self._transport, parts[-1])

    def read_feedback(self, timeout: Optional[float] = None) -> Optional[Feedback]:
        """
        Wait for a feedback token.
        Returns:
            Feedback or None if nothing recognisable arrived before the timeout
        Raises:
            TransportError: If a read fails
        """
        token, _ = self._await_feedback(self.config.feedback_timeout if timeout is None else timeout)
        return token

    def send(
        self,
        payload: Union[bytes, Message],
        max_attempts: Optional[int] = None,
        feedback_timeout: Optional[float] = None,
    ) -> int:
        """
        Send a payload and retry until the receiver answers OK.
        Args:
            payload (bytes or Message): Frame payload; a Message is sent as its JSON
            max_attempts (int, optional): Overrides config.max_attempts
            feedback_timeout (float, optional): Overrides config.feedback_timeout
        Returns:
            int: Number of attempts it took
        Raises:
            ValueError: If the payload is empty or too large
            DeliveryFailure: If no attempt was acknowledged
        """
        data = payload.to_bytes() if isinstance(payload, Message) else bytes(payload)
        self._codec.check_length(len(data))
        attempts = self.config.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        timeout = self.config.feedback_timeout if feedback_timeout is None else feedback_timeout

        reason: Optional[str] = None
        for attempt in range(1, attempts + 1):
            self._observer.send_attempt(attempt, attempts, len(data))
            try:
                self.write_frame(data)
                token, reason = self._await_feedback(timeout)
            except TransportError as ex:
                token, reason = None, str(ex)
            self._observer.send_feedback(attempt, token, reason)
            if token is Feedback.OK:
                return attempt
            if attempt < attempts:
                self._flush()

        self._observer.send_failed(attempts, reason)
        raise DeliveryFailure(attempts, reason)

    def _await_feedback(self, timeout: float) -> Tuple[Optional[Feedback], Optional[str]]:
        deadline = self._clock() + timeout
        received = bytearray()
        while self._clock() < deadline:
            chunk = read_available(self._transport)
            if not chunk:
                self._sleep(POLL_INTERVAL)
                continue
            received += chunk
            token = Feedback.match(received)
            if token is Feedback.OK:
                return token, None
            if token is Feedback.RETRY:
                return token, "receiver requested retry"
            if not Feedback.could_match(received):
                return None, f"unexpected feedback {bytes(received)!r}"
        if received:
            return None, f"incomplete feedback {bytes(received)!r}"
        return None, f"no feedback within {timeout}s"

    def _flush(self) -> None:
        # Drop stale bytes (late tokens, echoes) before the next attempt
        try:
            with io_errors("flush"):
                self._transport.reset_input_buffer()
        except TransportError as ex:
            self._observer.read_failed(ex)
