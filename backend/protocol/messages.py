# backend/protocol/messages.py
"""
Broadcast message types and the JSON envelope used on the wire.

Envelope (one JSON object per message):

    {"type": "VIDEO_FRAME",   "payload": "data:image/jpeg;base64,...", "timestamp": 1700000000000}
    {"type": "STATUS_UPDATE", "payload": true,                           "timestamp": 1700000000000}
    {"type": "COMMENT",       "payload": {"id": ..., "user": ..., "text": ..., "timestamp": ...},
                              "timestamp": 1700000000000}

timestamp is the producer's wall clock in integer milliseconds at send time.
It is monotonic per producer only; receivers must not order messages from
different producers by it.

Usage example:

    text = dumps_message(StatusUpdate(live=True, timestamp=now_ms))

    try:
        message = loads_message(text)
    except EnvelopeError as e:
        log_event({"event_type": "ENVELOPE_DECODE_ERROR", "error": str(e)})
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

from constants import MSG_COMMENT, MSG_STATUS_UPDATE, MSG_VIDEO_FRAME


# -------------------------
# Exceptions
# -------------------------

class EnvelopeError(Exception):
    """Base class for broadcast envelope errors."""


class UnknownMessageType(EnvelopeError):
    """
    Raised when the envelope `type` is not one of the three known kinds.

    Receivers drop such messages; older producers may still emit kinds
    this build does not understand.
    """


class InvalidPayload(EnvelopeError):
    """
    Raised when the envelope is structurally wrong for its declared type.

    Missing fields, wrong JSON types, or text that is not JSON at all.
    """


# -------------------------
# Message kinds
# -------------------------

class MessageType(str, Enum):
    """Discriminant of the broadcast tagged union."""
    VIDEO_FRAME = MSG_VIDEO_FRAME
    STATUS_UPDATE = MSG_STATUS_UPDATE
    COMMENT = MSG_COMMENT


@dataclass(frozen=True)
class ChatMessage:
    """
    One chat line. Immutable once created, never deleted.

    id:         unique string
    user:       non-empty display name
    text:       non-blank body
    timestamp:  creation wall clock, integer ms
    """
    id: str
    user: str
    text: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "text": self.text,
            "timestamp": self.timestamp,
        }

    @staticmethod
    def from_dict(data: Any) -> ChatMessage:
        if not isinstance(data, Mapping):
            raise InvalidPayload("COMMENT payload must be an object")
        try:
            msg_id, user, text = data["id"], data["user"], data["text"]
            timestamp = data["timestamp"]
        except KeyError as e:
            raise InvalidPayload(f"COMMENT payload missing field {e}") from e
        if not all(isinstance(v, str) for v in (msg_id, user, text)):
            raise InvalidPayload("COMMENT id/user/text must be strings")
        if not user.strip() or not text.strip():
            raise InvalidPayload("COMMENT user and text must not be blank")
        return ChatMessage(
            id=msg_id,
            user=user,
            text=text,
            timestamp=_require_timestamp(timestamp),
        )


@dataclass(frozen=True)
class VideoFrame:
    """One sampled video frame as an embedded-data image URI."""
    payload: str
    timestamp: int
    message_type: ClassVar[MessageType] = MessageType.VIDEO_FRAME


@dataclass(frozen=True)
class StatusUpdate:
    """Admin live flag."""
    live: bool
    timestamp: int
    message_type: ClassVar[MessageType] = MessageType.STATUS_UPDATE


@dataclass(frozen=True)
class Comment:
    """Chat message fan-out."""
    payload: ChatMessage
    timestamp: int
    message_type: ClassVar[MessageType] = MessageType.COMMENT


BroadcastMessage = Union[VideoFrame, StatusUpdate, Comment]


# -------------------------
# Envelope codec
# -------------------------

def encode_message(message: BroadcastMessage) -> dict[str, Any]:
    """Build the wire envelope for a message."""
    payload: Any
    if isinstance(message, VideoFrame):
        payload = message.payload
    elif isinstance(message, StatusUpdate):
        payload = message.live
    elif isinstance(message, Comment):
        payload = message.payload.to_dict()
    else:
        raise UnknownMessageType(f"cannot encode {type(message).__name__}")

    return {
        "type": message.message_type.value,
        "payload": payload,
        "timestamp": message.timestamp,
    }


def decode_message(envelope: Any) -> BroadcastMessage:
    """
    Parse a wire envelope.

    Raises:
        UnknownMessageType, InvalidPayload
    """
    if not isinstance(envelope, Mapping):
        raise InvalidPayload("envelope must be an object")

    raw_type = envelope.get("type")
    try:
        msg_type = MessageType(raw_type)
    except ValueError as e:
        raise UnknownMessageType(f"unknown message type: {raw_type!r}") from e

    if "payload" not in envelope:
        raise InvalidPayload(f"{msg_type.value} envelope has no payload")
    payload = envelope["payload"]
    timestamp = _require_timestamp(envelope.get("timestamp"))

    if msg_type is MessageType.VIDEO_FRAME:
        if not isinstance(payload, str):
            raise InvalidPayload("VIDEO_FRAME payload must be a string")
        return VideoFrame(payload=payload, timestamp=timestamp)

    if msg_type is MessageType.STATUS_UPDATE:
        if not isinstance(payload, bool):
            raise InvalidPayload("STATUS_UPDATE payload must be a boolean")
        return StatusUpdate(live=payload, timestamp=timestamp)

    return Comment(payload=ChatMessage.from_dict(payload), timestamp=timestamp)


def dumps_message(message: BroadcastMessage) -> str:
    """Encode a message as compact JSON text."""
    return json.dumps(encode_message(message), ensure_ascii=False, separators=(",", ":"))


def loads_message(text: str | bytes) -> BroadcastMessage:
    """Decode JSON text produced by dumps_message()."""
    try:
        envelope = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayload(f"envelope is not valid JSON: {e}") from e
    except RecursionError as e:
        raise InvalidPayload("envelope is nested too deeply") from e
    return decode_message(envelope)


# -------------------------
# Low-level helpers
# -------------------------

def _require_timestamp(value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidPayload(f"timestamp must be a number, got {value!r}")
    # json accepts NaN, Infinity and 1e400
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidPayload(f"timestamp must be finite, got {value!r}")
    return int(value)
