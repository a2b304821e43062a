from __future__ import annotations

import time
from enum import Enum
from typing import Callable, List, Optional

from .errors import DecodeError, FramingError, IntegrityError
from .feedback import Feedback
from .frame import DEFAULT_MAX_FRAME_LENGTH, FrameCodec
from .message import Message
from .observer import Observer
from .sink import MessageSink

DEFAULT_INACTIVITY_TIMEOUT: float = 5.0


class State(Enum):
    WAIT_LENGTH = "wait_length"
    WAIT_PAYLOAD = "wait_payload"


class Outcome(Enum):
    """Terminal transitions of the reassembler. Every one emits exactly one token."""
    ACCEPTED = "accepted"
    INVALID_LENGTH = "invalid_length"
    BAD_TERMINATOR = "bad_terminator"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    DECODE_FAILED = "decode_failed"
    TIMED_OUT = "timed_out"

    @property
    def feedback(self) -> Feedback:
        return Feedback.OK if self is Outcome.ACCEPTED else Feedback.RETRY


class Reassembler:
    """
    Receive-side state machine turning a raw byte stream into messages.
    Owns the reassembly buffer and the expected payload length; nothing else
    reads or mutates them. It never touches a transport: bytes come in through
    feed(), tokens go out through the emit callable.
    Args:
        sink (MessageSink): Receives each accepted message
        emit (callable): Writes one feedback token to the peer
        max_frame_length (int): Largest acceptable length prefix
        inactivity_timeout (float): Seconds a partial frame may sit idle
        require_terminator (bool): Expect the terminator after the checksum
        observer (Observer): Observability hooks
        clock (callable): Monotonic time source in seconds
    """

    def __init__(
        self,
        sink: MessageSink,
        emit: Callable[[Feedback], None],
        *,
        max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
        require_terminator: bool = True,
        observer: Optional[Observer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self._emit = emit
        self._codec = FrameCodec(max_frame_length=max_frame_length, require_terminator=require_terminator)
        self.inactivity_timeout = inactivity_timeout
        self._observer = observer or Observer()
        self._clock = clock
        self._buf = bytearray()
        self._expected_length: Optional[int] = None
        self._last_activity = clock()

    @property
    def state(self) -> State:
        return State.WAIT_LENGTH if self._expected_length is None else State.WAIT_PAYLOAD

    @property
    def expected_length(self) -> Optional[int]:
        return self._expected_length

    @property
    def buffered(self) -> int:
        """Number of bytes held but not yet classified."""
        return len(self._buf)

    def feed(self, data: bytes) -> None:
        """Append incoming bytes and record the time of activity."""
        self._buf.extend(data)
        self._last_activity = self._clock()
        self._observer.bytes_received(len(data), len(self._buf))

    def reset(self) -> None:
        """Discard everything buffered without sending feedback."""
        self._buf.clear()
        self._expected_length = None

    def advance(self) -> List[Outcome]:
        """
        Make as much progress as the buffered bytes allow without waiting.
        Returns:
            List[Outcome]: Terminal transitions taken, in order (often empty)
        """
        outcomes: List[Outcome] = []
        while True:
            outcome = self._step()
            if outcome is None:
                return outcomes
            outcomes.append(outcome)
            if outcome is not Outcome.ACCEPTED:
                # Rejections drop the whole buffer, nothing left to parse
                return outcomes

    def idle_check(self, now: Optional[float] = None) -> Optional[Outcome]:
        """
        Drop a partial frame that has seen no new bytes for inactivity_timeout.
        Returns:
            Outcome.TIMED_OUT if the buffer was discarded, else None
        """
        if not self._buf:
            return None
        if now is None:
            now = self._clock()
        if now - self._last_activity <= self.inactivity_timeout:
            return None
        return self._reject(Outcome.TIMED_OUT, None)

    def _step(self) -> Optional[Outcome]:
        if self._expected_length is None:
            if len(self._buf) < FrameCodec.LENGTH_SIZE:
                return None
            try:
                self._expected_length = self._codec.parse_length(self._buf)
            except FramingError as ex:
                return self._reject(Outcome.INVALID_LENGTH, ex)
            del self._buf[:FrameCodec.LENGTH_SIZE]

        length = self._expected_length
        frame_end = length + self._codec.trailer_size
        if len(self._buf) < frame_end:
            return None

        payload = bytes(self._buf[:length])
        trailer = bytes(self._buf[length:frame_end])
        try:
            self._codec.parse_trailer(payload, trailer)
        except FramingError as ex:
            return self._reject(Outcome.BAD_TERMINATOR, ex)
        except IntegrityError as ex:
            return self._reject(Outcome.CHECKSUM_MISMATCH, ex)

        try:
            message = Message.from_bytes(payload)
        except DecodeError as ex:
            return self._reject(Outcome.DECODE_FAILED, ex)

        del self._buf[:frame_end]
        self._expected_length = None
        self._observer.frame_accepted(length)
        try:
            self._sink.deliver(message)
        except Exception as ex:
            # The frame itself was good; a resend would fail the same way.
            self._observer.delivery_failed(ex)
        self._emit(Feedback.OK)
        return Outcome.ACCEPTED

    def _reject(self, outcome: Outcome, error: Optional[Exception]) -> Outcome:
        self.reset()
        self._observer.frame_rejected(outcome.value, error)
        self._emit(outcome.feedback)
        return outcome
