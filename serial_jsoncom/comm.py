from __future__ import annotations

from typing import Optional, Union

import serial

from .config import LinkConfig
from .errors import TransportError
from .message import Message
from .observer import LoggingObserver, Observer
from .receiver import Receiver
from .sink import MessageSink
from .transmitter import Transmitter


class SerialLink:
    """
    Owns one serial port and the protocol endpoints running over it.
    Opens the port with the configured read and write timeouts; the write
    timeout also bounds how long a receiver may block sending feedback.
    Features:
        - send(): framed, paced, retried delivery of one payload
        - receiver(): background worker delivering accepted messages
    """

    _serial: serial.SerialBase

    def __init__(self, config: LinkConfig, *, observer: Optional[Observer] = None, **serial_kwargs) -> None:
        """
        Open the port named in config.
        Args:
            config (LinkConfig): Link settings; config.port must be set
            observer (Observer): Observability hooks (default: log to logging)
            serial_kwargs: Additional serial.serial_for_url arguments (bytesize, parity, ...)
        Raises:
            ValueError: If no port is configured or settings are invalid
            TransportError: If the port cannot be opened
        """
        if not config.port:
            raise ValueError("no serial port configured")
        self.config = config.validate()
        self.observer = observer or LoggingObserver()
        try:
            # serial_for_url also accepts plain device names
            self._serial = serial.serial_for_url(
                config.port,
                baudrate=config.baudrate,
                timeout=config.read_timeout,
                write_timeout=config.write_timeout,
                **serial_kwargs,
            )
        except (serial.SerialException, OSError) as ex:
            raise TransportError(f"cannot open {config.port}: {ex}") from ex
        self._serial.reset_input_buffer()
        self._transmitter: Optional[Transmitter] = None

    @property
    def port(self) -> serial.SerialBase:
        return self._serial

    @property
    def transmitter(self) -> Transmitter:
        if self._transmitter is None:
            self._transmitter = Transmitter(self._serial, self.config, observer=self.observer)
        return self._transmitter

    def send(self, payload: Union[bytes, Message], **kwargs) -> int:
        """
        Send one payload and wait for it to be acknowledged.
        Returns:
            int: Attempts it took
        Raises:
            DeliveryFailure: If every attempt failed
        """
        return self.transmitter.send(payload, **kwargs)

    def receiver(self, sink: Optional[MessageSink] = None) -> Receiver:
        """Create a receive worker on this port (not started)."""
        return Receiver(self._serial, sink, self.config, observer=self.observer)

    def close(self) -> None:
        """
        Close the serial port.
        """
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as ex:
            raise TransportError(f"close failed: {ex}") from ex

    def __enter__(self) -> "SerialLink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
