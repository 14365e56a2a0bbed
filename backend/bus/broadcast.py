"""
In-process broadcast bus.

One logical channel per topic; every member joined to a topic receives every
message published by any OTHER member of that topic.

Delivery semantics:
- fire-and-forget: publish() never blocks and never raises for delivery
- at-most-once, best-effort: a subscriber whose loop is gone simply misses it
- no backlog: members only see messages published after they subscribed
- per-publisher order is preserved (call_soon_threadsafe is FIFO per loop);
  there is no ordering across publishers
- handlers run on the event loop that was running when subscribe() was called

Members may live on different event loops (threads); membership is guarded by
a lock, delivery itself is handed to each subscriber's loop.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable
from uuid import uuid4

from observability.logger import log_event
from protocol.messages import BroadcastMessage

MessageHandler = Callable[[BroadcastMessage], Awaitable[None] | None]


def _new_member_id() -> str:
    return f"mbr_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Subscription
# ------------------------------------------------------------------

class Subscription:
    """
    A handler registered on one bus member.

    unsubscribe() is idempotent; once it returns, the handler is never
    invoked again, including for deliveries already queued on the loop.
    """

    def __init__(
        self,
        *,
        member: BusMember,
        handler: MessageHandler,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._member = member
        self._handler = handler
        self._loop = loop
        self._active = True
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, message: BroadcastMessage) -> None:
        """Hand `message` to the subscriber's loop. Called from any thread."""
        if not self._active:
            return
        try:
            self._loop.call_soon_threadsafe(self._run, message)
        except RuntimeError:
            # Subscriber loop is closed: at-most-once means dropped.
            log_event({
                "event_type": "BUS_DELIVERY_DROPPED",
                "topic": self._member.topic,
                "member_id": self._member.member_id,
                "message_type": message.message_type.value,
            })

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._member._discard(self)  # pylint: disable=protected-access
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.unsubscribe()

    # Subscriber loop
    def _run(self, message: BroadcastMessage) -> None:
        if not self._active:
            return
        try:
            result = self._handler(message)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_handler_error(exc, message)
            return

        if inspect.isawaitable(result):
            task = self._loop.create_task(self._await(result, message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _await(self, result: Awaitable[None], message: BroadcastMessage) -> None:
        try:
            await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_handler_error(exc, message)

    def _log_handler_error(self, exc: Exception, message: BroadcastMessage) -> None:
        log_event({
            "event_type": "BUS_HANDLER_ERROR",
            "topic": self._member.topic,
            "member_id": self._member.member_id,
            "message_type": message.message_type.value,
            "exception": type(exc).__name__,
            "message": str(exc),
        })


# ------------------------------------------------------------------
# Member contract
# ------------------------------------------------------------------

class BusMember(ABC):
    """
    One participant on a topic (an admin or viewer controller).

    Implemented by LocalBusMember (same process) and RelayBusMember
    (another process through the relay server).
    """

    def __init__(self, *, topic: str, member_id: str | None = None) -> None:
        self.topic = topic
        self.member_id = member_id or _new_member_id()
        self._subscriptions: list[Subscription] = []
        self._sub_lock = threading.Lock()

    @abstractmethod
    def publish(self, message: BroadcastMessage) -> None:
        """Send to every other member. Never blocks, never raises."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Stop all delivery and leave the topic. Idempotent."""
        raise NotImplementedError

    def subscribe(
        self,
        handler: MessageHandler,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> Subscription:
        """
        Register `handler` for messages published by other members from now on.

        Must be called from a running event loop unless `loop` is given.
        """
        sub = Subscription(
            member=self,
            handler=handler,
            loop=loop or asyncio.get_running_loop(),
        )
        with self._sub_lock:
            self._subscriptions.append(sub)
        return sub

    def _deliver(self, message: BroadcastMessage) -> None:
        with self._sub_lock:
            subs = list(self._subscriptions)
        for sub in subs:
            sub.deliver(message)

    def _discard(self, sub: Subscription) -> None:
        with self._sub_lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _unsubscribe_all(self) -> None:
        with self._sub_lock:
            subs = list(self._subscriptions)
        for sub in subs:
            sub.unsubscribe()

    def __enter__(self) -> BusMember:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ------------------------------------------------------------------
# In-process implementation
# ------------------------------------------------------------------

class LocalBusMember(BusMember):
    """Member of a BroadcastBus living in this process."""

    def __init__(self, *, bus: BroadcastBus, topic: str) -> None:
        super().__init__(topic=topic)
        self._bus = bus
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, message: BroadcastMessage) -> None:
        if self._closed:
            return
        self._bus._fan_out(self, message)  # pylint: disable=protected-access

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_all()
        self._bus._leave(self)  # pylint: disable=protected-access


class BroadcastBus:
    """
    Topic registry for same-host members.

    A topic exists while it has members; the last member leaving releases it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._topics: dict[str, dict[str, LocalBusMember]] = {}

    def join(self, topic: str) -> LocalBusMember:
        member = LocalBusMember(bus=self, topic=topic)
        with self._lock:
            self._topics.setdefault(topic, {})[member.member_id] = member
        log_event({
            "event_type": "BUS_MEMBER_JOINED",
            "topic": topic,
            "member_id": member.member_id,
        })
        return member

    def member_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, {}))

    def topics(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._topics)

    def close_all(self) -> int:
        """Close every member on every topic. Returns how many were closed."""
        with self._lock:
            members = [m for topic in self._topics.values() for m in topic.values()]
        for member in members:
            member.close()
        return len(members)

    def _leave(self, member: LocalBusMember) -> None:
        with self._lock:
            members = self._topics.get(member.topic)
            if members is None:
                return
            members.pop(member.member_id, None)
            if not members:
                del self._topics[member.topic]
        log_event({
            "event_type": "BUS_MEMBER_LEFT",
            "topic": member.topic,
            "member_id": member.member_id,
        })

    def _fan_out(self, sender: LocalBusMember, message: BroadcastMessage) -> None:
        with self._lock:
            targets = [
                m for m in self._topics.get(sender.topic, {}).values()
                if m is not sender
            ]
        for member in targets:
            member._deliver(message)  # pylint: disable=protected-access
