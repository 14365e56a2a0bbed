"""
Viewer controller (the watching role).

Mirrors the admin's stream from the bus:
- VIDEO_FRAME   -> current_frame; also marks the stream live, since the
                   STATUS_UPDATE that announced it may have been missed
- STATUS_UPDATE -> is_live; going off-air clears the frame and shows
                   "The broadcast has ended."
- COMMENT       -> appended to the chat log

A viewer publishes only comments. It never owns stream state.
"""

from __future__ import annotations

import asyncio

from bus.broadcast import BusMember, Subscription
from observability.logger import log_event
from observability.metrics import emit_counters
from protocol.messages import (
    BroadcastMessage,
    ChatMessage,
    Comment,
    StatusUpdate,
    VideoFrame,
)
from session.chat import DEFAULT_DISPLAY_NAME, ChatLog, CommentListener, submit_comment

WAITING_FOR_BROADCAST = "Waiting for the broadcast to start..."
BROADCAST_ENDED = "The broadcast has ended."

ROLE = "viewer"


class ViewerController:
    """One controller == one viewer "tab"."""

    def __init__(
        self,
        *,
        member: BusMember,
        display_name: str = DEFAULT_DISPLAY_NAME,
        on_comment: CommentListener | None = None,
    ) -> None:
        self.member = member
        self.display_name = display_name

        self.current_frame: str | None = None
        self.is_live = False
        self.waiting_message = WAITING_FOR_BROADCAST
        self.chat = ChatLog(on_append=on_comment)
        self.frames_received = 0

        self._subscription: Subscription | None = None
        self._closed = False

    def attach(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Subscribe to the bus. Only messages published after this are seen."""
        if self._subscription is not None or self._closed:
            return
        self._subscription = self.member.subscribe(self._on_message, loop=loop)
        log_event({
            "event_type": "CONTROLLER_ATTACHED",
            "role": ROLE,
            "topic": self.member.topic,
            "member_id": self.member.member_id,
        })

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.member.close()
        log_event({
            "event_type": "CONTROLLER_CLOSED",
            "role": ROLE,
            "topic": self.member.topic,
            "frames_received": self.frames_received,
        })
        emit_counters({"frames_received": self.frames_received}, role=ROLE, topic=self.member.topic)

    def submit_comment(self, text: str, *, user: str | None = None) -> ChatMessage | None:
        return submit_comment(
            member=self.member,
            chat=self.chat,
            user=self.display_name if user is None else user,
            text=text,
            role=ROLE,
        )

    def _on_message(self, message: BroadcastMessage) -> None:
        if isinstance(message, VideoFrame):
            self.current_frame = message.payload
            self.is_live = True
            self.frames_received += 1
        elif isinstance(message, StatusUpdate):
            self.is_live = message.live
            if not message.live:
                self.current_frame = None
                self.waiting_message = BROADCAST_ENDED
        elif isinstance(message, Comment):
            self.chat.append(message.payload)
