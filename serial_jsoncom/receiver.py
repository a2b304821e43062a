from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from .config import LinkConfig
from .errors import TransportError
from .feedback import Feedback
from .observer import Observer
from .reassembler import Reassembler
from .sink import CallbackSink, MessageSink
from .transport import Transport, read_available, write_all

_logger = logging.getLogger(__name__)


class Receiver:
    """
    Background worker running the read -> feed -> advance loop on one port.
    The reassembler is only ever touched from the worker thread (or from the
    caller of poll() when no worker is started).
    Args:
        transport (Transport): Open port with a read timeout configured
        sink (MessageSink): Receives each accepted message; falls back to config.callback
        config (LinkConfig): Frame limits and timeouts
        observer (Observer): Observability hooks
        clock (callable): Monotonic time source in seconds
    """

    def __init__(
        self,
        transport: Transport,
        sink: Optional[MessageSink] = None,
        config: Optional[LinkConfig] = None,
        *,
        observer: Optional[Observer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or LinkConfig()
        if sink is None:
            if self.config.callback is None:
                raise ValueError("a sink or config.callback is required")
            sink = CallbackSink(self.config.callback)
        self._transport = transport
        self._observer = observer or Observer()
        self.reassembler = Reassembler(
            sink,
            self._send_feedback,
            max_frame_length=self.config.max_frame_length,
            inactivity_timeout=self.config.inactivity_timeout,
            require_terminator=self.config.require_terminator,
            observer=self._observer,
            clock=clock,
        )
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll(self) -> bool:
        """
        Run one loop iteration: a single bounded read, then state machine progress.
        Returns:
            bool: False if the read failed
        """
        ok = True
        try:
            chunk = read_available(self._transport)
        except TransportError as ex:
            self._observer.read_failed(ex)
            chunk = b""
            ok = False
        if chunk:
            self.reassembler.feed(chunk)
            self.reassembler.advance()
        self.reassembler.idle_check()
        return ok

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="jsoncom-receiver", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Ask the worker to stop and wait for it.
        The worker notices only after its current read returns, so this takes
        up to one read timeout.
        """
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if not self._thread.is_alive():
                self._thread = None

    def __enter__(self) -> "Receiver":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run(self) -> None:
        _logger.info("Receiver started")
        while not self._stop.is_set():
            if not self.poll():
                # a failed read may return at once; back off one read timeout
                self._stop.wait(self.config.read_timeout)
        _logger.info("Receiver stopped")

    def _send_feedback(self, token: Feedback) -> None:
        try:
            write_all(self._transport, token.value)
        except TransportError as ex:
            self._observer.feedback_failed(token, ex)
            return
        self._observer.feedback_sent(token)
