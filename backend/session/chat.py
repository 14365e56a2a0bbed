"""
Chat log and comment submission shared by the admin and viewer controllers.

Submission rules:
- display name and body are trimmed; either one blank => rejected locally
  (nothing appended, nothing published)
- an accepted comment is appended to the submitter's own log AND published;
  the bus never echoes it back, so it is never appended twice
- messages are immutable and never removed for the life of the session
"""

from __future__ import annotations

import time
from typing import Callable, Iterator
from uuid import uuid4

from bus.broadcast import BusMember
from observability.logger import log_event
from protocol.messages import ChatMessage, Comment

DEFAULT_DISPLAY_NAME = "Viewer"

CommentListener = Callable[[ChatMessage], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_message_id() -> str:
    return f"msg_{uuid4().hex[:12]}"


def new_chat_message(
    user: str,
    text: str,
    *,
    timestamp: int | None = None,
) -> ChatMessage | None:
    """Build a ChatMessage, or None when the name or body is blank."""
    user = user.strip()
    text = text.strip()
    if not user or not text:
        return None
    return ChatMessage(
        id=_new_message_id(),
        user=user,
        text=text,
        timestamp=_now_ms() if timestamp is None else timestamp,
    )


class ChatLog:
    """Append-only, in-memory list of chat messages."""

    def __init__(self, *, on_append: CommentListener | None = None) -> None:
        self._messages: list[ChatMessage] = []
        self._on_append = on_append

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)
        if self._on_append is not None:
            self._on_append(message)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self._messages)


def submit_comment(
    *,
    member: BusMember,
    chat: ChatLog,
    user: str,
    text: str,
    role: str,
) -> ChatMessage | None:
    """
    Validate, append locally, then publish.

    Returns the accepted message, or None if it was rejected.
    """
    message = new_chat_message(user, text)
    if message is None:
        log_event({
            "event_type": "COMMENT_REJECTED",
            "role": role,
            "topic": member.topic,
            "reason": "blank_user" if not user.strip() else "blank_text",
        })
        return None

    chat.append(message)
    member.publish(Comment(payload=message, timestamp=message.timestamp))
    log_event({
        "event_type": "COMMENT_PUBLISHED",
        "role": role,
        "topic": member.topic,
        "message_id": message.id,
    })
    return message
