from __future__ import annotations

import queue
from typing import Callable, List, Protocol

from .message import Message


class MessageSink(Protocol):
    """Anything that can take delivery of one decoded message."""

    def deliver(self, message: Message) -> None:
        ...


class CallbackSink:
    """Deliver each message to a plain callable."""

    def __init__(self, callback: Callable[[Message], None]) -> None:
        self._callback = callback

    def deliver(self, message: Message) -> None:
        self._callback(message)


class QueueSink:
    """
    Hand each message to a queue so slow processing happens off the receive
    worker. The queue should be unbounded or drained promptly; a full bounded
    queue stalls the worker like a slow callback would.
    """

    def __init__(self, q: "queue.Queue[Message] | None" = None) -> None:
        self.queue: "queue.Queue[Message]" = q if q is not None else queue.Queue()

    def deliver(self, message: Message) -> None:
        self.queue.put(message)


class RecordingSink:
    """Keep every delivered message in order."""

    def __init__(self) -> None:
        self.messages: List[Message] = []

    def deliver(self, message: Message) -> None:
        self.messages.append(message)
