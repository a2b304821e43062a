"""Serial JSON link package.

Length-prefixed, CRC-16/MODBUS checked frames carrying JSON event messages
over pyserial, with OK/RETRY feedback and bounded retransmission.
"""

__all__ = [
    "DecodeError",
    "DeliveryFailure",
    "Event",
    "Feedback",
    "FramingError",
    "IntegrityError",
    "LinkConfig",
    "Message",
    "Payload",
    "Reading",
    "Reassembler",
    "Receiver",
    "SerialLink",
    "Transmitter",
    "TransportError",
    "crc16_modbus",
    "encode_frame",
    "load_config",
]

from .comm import SerialLink
from .config import LinkConfig, load_config
from .crc import crc16_modbus
from .errors import DecodeError, DeliveryFailure, FramingError, IntegrityError, TransportError
from .feedback import Feedback
from .frame import encode_frame
from .message import Event, Message, Payload, Reading
from .reassembler import Reassembler
from .receiver import Receiver
from .transmitter import Transmitter

__version__ = "0.1.0"
