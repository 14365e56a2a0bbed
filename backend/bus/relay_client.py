"""
Bus member in another process, joined through the relay server.

Same surface as LocalBusMember: publish / subscribe / close. Messages travel
as JSON envelopes over one websocket per member. The relay never echoes a
member's own messages back.

Connection lifecycle:
- connect() opens the socket and starts the receive loop
- close() tears down synchronously (no await) and is idempotent
- aclose() additionally waits for the socket close handshake
No reconnect: a dropped relay connection ends delivery for this member.
"""

from __future__ import annotations

import asyncio
from typing import Any

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from bus.broadcast import BusMember
from constants import RELAY_MAX_MESSAGE_BYTES
from observability.logger import log_event
from protocol.messages import BroadcastMessage, EnvelopeError, dumps_message, loads_message


class RelayConnectionError(Exception):
    """Raised when the relay server cannot be reached."""


class RelayBusMember(BusMember):
    """Websocket-backed bus member."""

    def __init__(self, url: str, *, topic: str) -> None:
        super().__init__(topic=topic)
        self._url = url
        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._send_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closed

    async def connect(self) -> None:
        """
        Open the relay websocket.

        Raises:
            RelayConnectionError if the relay is unreachable.
        """
        if self._ws is not None:
            return
        try:
            self._ws = await ws_connect(
                self._url,
                max_size=RELAY_MAX_MESSAGE_BYTES,
            )
        except (OSError, WebSocketException) as e:
            raise RelayConnectionError(f"relay unreachable at {self._url}: {e!r}") from e

        self._recv_task = asyncio.create_task(self._recv_loop(self._ws))
        log_event({
            "event_type": "RELAY_CONNECTED",
            "topic": self.topic,
            "member_id": self.member_id,
            "url": self._url,
        })

    def publish(self, message: BroadcastMessage) -> None:
        ws = self._ws
        if ws is None or self._closed:
            log_event({
                "event_type": "BUS_DELIVERY_DROPPED",
                "topic": self.topic,
                "member_id": self.member_id,
                "message_type": message.message_type.value,
                "reason": "relay_not_connected",
            })
            return

        # Tasks start in creation order, so one publisher's order is kept.
        task = asyncio.create_task(self._send(ws, dumps_message(message)))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    def close(self) -> None:
        """
        Hard, non-awaiting teardown.

        Safe to call from teardown paths that cannot await.
        """
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_all()

        rt = self._recv_task
        self._recv_task = None
        if rt is not None and not rt.done():
            rt.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                asyncio.get_running_loop().create_task(ws.close())
            except RuntimeError:
                # No running loop: the transport dies with the process.
                pass

        log_event({
            "event_type": "RELAY_DISCONNECTED",
            "topic": self.topic,
            "member_id": self.member_id,
        })

    async def aclose(self) -> None:
        ws = self._ws
        self.close()
        if ws is not None:
            await ws.close()

    async def __aenter__(self) -> RelayBusMember:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _send(self, ws: ClientConnection, text: str) -> None:
        try:
            await ws.send(text)
        except ConnectionClosed as e:
            log_event({
                "event_type": "BUS_DELIVERY_DROPPED",
                "topic": self.topic,
                "member_id": self.member_id,
                "reason": f"relay_closed: {e!r}",
            })

    async def _recv_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self._handle_raw(raw)
        except asyncio.CancelledError:
            return
        except ConnectionClosed as e:
            log_event({
                "event_type": "RELAY_CONNECTION_LOST",
                "topic": self.topic,
                "member_id": self.member_id,
                "reason": repr(e),
            })
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "RELAY_RECV_FAILED",
                "topic": self.topic,
                "member_id": self.member_id,
                "exception": type(e).__name__,
                "message": str(e),
            })

    def _handle_raw(self, raw: Any) -> None:
        try:
            message = loads_message(raw)
        except EnvelopeError as e:
            log_event({
                "event_type": "ENVELOPE_DECODE_ERROR",
                "topic": self.topic,
                "member_id": self.member_id,
                "error": str(e),
            })
            return
        self._deliver(message)
