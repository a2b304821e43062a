from __future__ import annotations

import base64
import binascii
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from .errors import DecodeError

CONTENT_TYPE_JSON = "application/json"
API_VERSION = "v3"


def _get(doc: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    # Missing keys and nulls take the zero value; key case is not significant
    # (peers send both "requestID" and "requestId").
    if key in doc:
        value = doc[key]
    else:
        folded = key.lower()
        value = next((v for k, v in doc.items() if k.lower() == folded), None)
    if value is None:
        return default
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise DecodeError(f"{key}: expected integer, got {type(value).__name__}")
    elif not isinstance(value, kind):
        raise DecodeError(f"{key}: expected {kind.__name__}, got {type(value).__name__}")
    return value


def _load_object(data: bytes, what: str) -> Mapping[str, Any]:
    try:
        doc = json.loads(data)
    except (UnicodeDecodeError, ValueError) as ex:
        raise DecodeError(f"{what} is not valid JSON: {ex}") from ex
    if not isinstance(doc, dict):
        raise DecodeError(f"{what} must be a JSON object, got {type(doc).__name__}")
    return doc


@dataclass
class Reading:
    """One resource value reported by a device."""
    id: str = ""
    origin: int = 0
    device_name: str = ""
    resource_name: str = ""
    profile_name: str = ""
    value_type: str = ""
    value: str = ""

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Reading":
        return cls(
            id=_get(doc, "id", str, ""),
            origin=_get(doc, "origin", int, 0),
            device_name=_get(doc, "deviceName", str, ""),
            resource_name=_get(doc, "resourceName", str, ""),
            profile_name=_get(doc, "profileName", str, ""),
            value_type=_get(doc, "valueType", str, ""),
            value=_get(doc, "value", str, ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "origin": self.origin,
            "deviceName": self.device_name,
            "resourceName": self.resource_name,
            "profileName": self.profile_name,
            "valueType": self.value_type,
            "value": self.value,
        }


@dataclass
class Event:
    """A device event carrying an ordered list of readings."""
    api_version: str = ""
    id: str = ""
    device_name: str = ""
    profile_name: str = ""
    source_name: str = ""
    origin: int = 0
    readings: List[Reading] = field(default_factory=list)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Event":
        readings = _get(doc, "readings", list, [])
        for r in readings:
            if not isinstance(r, dict):
                raise DecodeError(f"readings: expected object, got {type(r).__name__}")
        return cls(
            api_version=_get(doc, "apiVersion", str, ""),
            id=_get(doc, "id", str, ""),
            device_name=_get(doc, "deviceName", str, ""),
            profile_name=_get(doc, "profileName", str, ""),
            source_name=_get(doc, "sourceName", str, ""),
            origin=_get(doc, "origin", int, 0),
            readings=[Reading.from_dict(r) for r in readings],
        )

    def to_dict(self) -> dict:
        return {
            "apiVersion": self.api_version,
            "id": self.id,
            "deviceName": self.device_name,
            "profileName": self.profile_name,
            "sourceName": self.source_name,
            "origin": self.origin,
            "readings": [r.to_dict() for r in self.readings],
        }


@dataclass
class Payload:
    """Document carried base64-encoded inside Message.payload."""
    api_version: str = ""
    request_id: str = ""
    event: Event = field(default_factory=Event)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Payload":
        return cls(
            api_version=_get(doc, "apiVersion", str, ""),
            request_id=_get(doc, "requestID", str, ""),
            event=Event.from_dict(_get(doc, "event", dict, {})),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Payload":
        return cls.from_dict(_load_object(data, "payload"))

    def to_dict(self) -> dict:
        return {
            "apiVersion": self.api_version,
            "requestID": self.request_id,
            "event": self.event.to_dict(),
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


@dataclass
class Message:
    """
    Outer record carried by one frame.
    Fields:
        api_version, received_topic, correlation_id, request_id: str
        error_code: int
        payload: base64 text of a nested Payload document
        content_type: usually "application/json"
    """
    api_version: str = ""
    received_topic: str = ""
    correlation_id: str = ""
    request_id: str = ""
    error_code: int = 0
    payload: str = ""
    content_type: str = ""

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Message":
        return cls(
            api_version=_get(doc, "apiVersion", str, ""),
            received_topic=_get(doc, "receivedTopic", str, ""),
            correlation_id=_get(doc, "correlationID", str, ""),
            request_id=_get(doc, "requestID", str, ""),
            error_code=_get(doc, "errorCode", int, 0),
            payload=_get(doc, "payload", str, ""),
            content_type=_get(doc, "contentType", str, ""),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Message":
        """
        Parse a Message from the JSON bytes of a frame payload.
        Raises:
            DecodeError: If data is not a JSON object with correctly typed fields
        """
        return cls.from_dict(_load_object(data, "message"))

    def to_dict(self) -> dict:
        return {
            "apiVersion": self.api_version,
            "receivedTopic": self.received_topic,
            "correlationID": self.correlation_id,
            "requestID": self.request_id,
            "errorCode": self.error_code,
            "payload": self.payload,
            "contentType": self.content_type,
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    def decode_payload(self) -> Payload:
        """
        Decode the base64 payload field into a Payload.
        Raises:
            DecodeError: If the field is not base64 or not a Payload document
        """
        try:
            raw = base64.b64decode(self.payload, validate=True)
        except (binascii.Error, ValueError) as ex:
            raise DecodeError(f"payload is not valid base64: {ex}") from ex
        return Payload.from_bytes(raw)

    @classmethod
    def wrap(cls, payload: Payload, correlation_id: Optional[str] = None) -> "Message":
        """Build an outer Message around a Payload."""
        return cls(
            api_version=payload.api_version or API_VERSION,
            correlation_id=correlation_id or str(uuid.uuid4()),
            payload=base64.b64encode(payload.to_bytes()).decode("ascii"),
            content_type=CONTENT_TYPE_JSON,
        )
