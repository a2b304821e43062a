from __future__ import annotations

from typing import List

import pytest

from serial_jsoncom.feedback import Feedback
from serial_jsoncom.frame import FrameCodec, encode_frame
from serial_jsoncom.message import Message
from serial_jsoncom.observer import Observer
from serial_jsoncom.reassembler import Outcome, Reassembler, State
from serial_jsoncom.sink import RecordingSink

MESSAGE = Message(api_version="v3", correlation_id="abc", payload="e30=", content_type="application/json")


class Tokens:
    def __init__(self) -> None:
        self.sent: List[Feedback] = []

    def __call__(self, token: Feedback) -> None:
        self.sent.append(token)


class RecordingObserver(Observer):
    def __init__(self) -> None:
        self.rejected: List[str] = []
        self.handler_errors: List[Exception] = []

    def frame_rejected(self, reason, error=None):
        self.rejected.append(reason)

    def delivery_failed(self, error):
        self.handler_errors.append(error)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def tokens():
    return Tokens()


@pytest.fixture
def rx(sink, tokens, clock):
    return Reassembler(sink, tokens, max_frame_length=1024, clock=clock)


def test_scenario_split_into_three_chunks(rx, sink, tokens):
    frame = encode_frame(b'{"a":1}')
    assert len(frame) == 14
    for chunk in (frame[:3], frame[3:9], frame[9:]):
        rx.feed(chunk)
        rx.advance()
    assert sink.messages == [Message.from_bytes(b'{"a":1}')]
    assert tokens.sent == [Feedback.OK]
    assert rx.buffered == 0
    assert rx.state is State.WAIT_LENGTH


def test_byte_at_a_time(rx, sink, tokens):
    frame = encode_frame(MESSAGE.to_bytes())
    outcomes = []
    for b in frame:
        rx.feed(bytes([b]))
        outcomes += rx.advance()
    assert outcomes == [Outcome.ACCEPTED]
    assert sink.messages == [MESSAGE]
    assert tokens.sent == [Feedback.OK]


def test_state_progression(rx):
    frame = encode_frame(MESSAGE.to_bytes())
    rx.feed(frame[:3])
    assert rx.advance() == []
    assert rx.state is State.WAIT_LENGTH
    rx.feed(frame[3:6])
    assert rx.advance() == []
    assert rx.state is State.WAIT_PAYLOAD
    assert rx.expected_length == len(MESSAGE.to_bytes())
    rx.feed(frame[6:])
    assert rx.advance() == [Outcome.ACCEPTED]
    assert rx.expected_length is None


def test_back_to_back_frames_in_one_feed(rx, sink, tokens):
    other = Message(correlation_id="second")
    rx.feed(encode_frame(MESSAGE.to_bytes()) + encode_frame(other.to_bytes()))
    assert rx.advance() == [Outcome.ACCEPTED, Outcome.ACCEPTED]
    assert sink.messages == [MESSAGE, other]
    assert tokens.sent == [Feedback.OK, Feedback.OK]


def test_bytes_after_frame_are_kept(rx, sink):
    nxt = encode_frame(MESSAGE.to_bytes())
    rx.feed(encode_frame(MESSAGE.to_bytes()) + nxt[:5])
    rx.advance()
    assert len(sink.messages) == 1
    assert rx.buffered == 1
    assert rx.state is State.WAIT_PAYLOAD
    rx.feed(nxt[5:])
    rx.advance()
    assert len(sink.messages) == 2


@pytest.mark.parametrize("bit", [0, 7, 13])
def test_flipped_checksum_bit(rx, sink, tokens, bit):
    frame = bytearray(encode_frame(MESSAGE.to_bytes()))
    crc_offset = len(frame) - 3
    frame[crc_offset + bit // 8] ^= 1 << (bit % 8)
    rx.feed(bytes(frame))
    assert rx.advance() == [Outcome.CHECKSUM_MISMATCH]
    assert tokens.sent == [Feedback.RETRY]
    assert sink.messages == []
    assert rx.buffered == 0
    assert rx.state is State.WAIT_LENGTH


@pytest.mark.parametrize("position", [0, 10, -1])
def test_flipped_payload_bit(rx, sink, tokens, position):
    payload = MESSAGE.to_bytes()
    frame = bytearray(encode_frame(payload))
    index = 4 + (position % len(payload))
    frame[index] ^= 0x04
    rx.feed(bytes(frame))
    assert rx.advance() == [Outcome.CHECKSUM_MISMATCH]
    assert tokens.sent == [Feedback.RETRY]
    assert sink.messages == []
    assert rx.buffered == 0


def test_zero_length_rejected_immediately(rx, sink, tokens):
    rx.feed(b"\x00\x00\x00\x00")
    assert rx.advance() == [Outcome.INVALID_LENGTH]
    assert tokens.sent == [Feedback.RETRY]
    assert rx.buffered == 0
    assert sink.messages == []


def test_oversized_length_rejected_without_more_bytes(rx, tokens):
    rx.feed((1025).to_bytes(4, "big") + b"trailing junk")
    assert rx.advance() == [Outcome.INVALID_LENGTH]
    assert tokens.sent == [Feedback.RETRY]
    assert rx.buffered == 0
    assert rx.state is State.WAIT_LENGTH


def test_max_length_is_accepted(sink, tokens, clock):
    rx = Reassembler(sink, tokens, max_frame_length=len(MESSAGE.to_bytes()), clock=clock)
    rx.feed(encode_frame(MESSAGE.to_bytes()))
    assert rx.advance() == [Outcome.ACCEPTED]


def test_decode_failure(rx, sink, tokens):
    rx.feed(encode_frame(b"this is not json"))
    assert rx.advance() == [Outcome.DECODE_FAILED]
    assert tokens.sent == [Feedback.RETRY]
    assert sink.messages == []
    assert rx.buffered == 0


def test_terminator_checked_by_position(rx, sink, tokens):
    frame = bytearray(encode_frame(MESSAGE.to_bytes()))
    frame[-1] = ord("x")
    rx.feed(bytes(frame) + b"\n")  # a newline later in the stream does not count
    assert rx.advance() == [Outcome.BAD_TERMINATOR]
    assert tokens.sent == [Feedback.RETRY]
    assert sink.messages == []


def test_without_terminator(sink, tokens, clock):
    rx = Reassembler(sink, tokens, require_terminator=False, clock=clock)
    frame = FrameCodec(require_terminator=False).encode(MESSAGE.to_bytes())
    rx.feed(frame)
    assert rx.advance() == [Outcome.ACCEPTED]
    assert sink.messages == [MESSAGE]


def test_recovers_after_rejection(rx, sink, tokens):
    rx.feed(b"\x00\x00\x00\x00")
    rx.advance()
    rx.feed(encode_frame(MESSAGE.to_bytes()))
    rx.advance()
    assert tokens.sent == [Feedback.RETRY, Feedback.OK]
    assert sink.messages == [MESSAGE]


def test_idle_partial_frame_is_dropped(rx, sink, tokens, clock):
    frame = encode_frame(MESSAGE.to_bytes())
    rx.feed(frame[:10])
    rx.advance()
    clock.sleep(4.9)
    assert rx.idle_check() is None
    assert rx.buffered == 10
    clock.sleep(0.2)
    assert rx.idle_check() == Outcome.TIMED_OUT
    assert tokens.sent == [Feedback.RETRY]
    assert rx.buffered == 0
    assert rx.state is State.WAIT_LENGTH
    assert sink.messages == []


def test_idle_check_explicit_now(rx, tokens, clock):
    rx.feed(b"\x00\x00")
    assert rx.idle_check(now=clock() + 6.0) == Outcome.TIMED_OUT
    assert tokens.sent == [Feedback.RETRY]


def test_idle_check_on_empty_buffer(rx, tokens, clock):
    clock.sleep(60)
    assert rx.idle_check() is None
    assert tokens.sent == []


def test_feed_refreshes_activity(rx, tokens, clock):
    frame = encode_frame(MESSAGE.to_bytes())
    rx.feed(frame[:5])
    clock.sleep(4.0)
    rx.feed(frame[5:10])
    clock.sleep(4.0)
    assert rx.idle_check() is None
    rx.feed(frame[10:])
    assert rx.advance() == [Outcome.ACCEPTED]


def test_reset_sends_nothing(rx, tokens):
    rx.feed(b"\x00\x00\x00\x10abc")
    rx.advance()
    rx.reset()
    assert rx.buffered == 0
    assert rx.state is State.WAIT_LENGTH
    assert tokens.sent == []


def test_failing_sink_still_acknowledged(tokens, clock):
    observer = RecordingObserver()

    class Boom:
        def deliver(self, message):
            raise RuntimeError("handler broke")

    rx = Reassembler(Boom(), tokens, observer=observer, clock=clock)
    rx.feed(encode_frame(MESSAGE.to_bytes()))
    assert rx.advance() == [Outcome.ACCEPTED]
    assert tokens.sent == [Feedback.OK]
    assert len(observer.handler_errors) == 1


def test_rejections_reported_to_observer(sink, tokens, clock):
    observer = RecordingObserver()
    rx = Reassembler(sink, tokens, observer=observer, clock=clock)
    rx.feed(b"\x00\x00\x00\x00")
    rx.advance()
    rx.feed(encode_frame(b"nope"))
    rx.advance()
    assert observer.rejected == ["invalid_length", "decode_failed"]
