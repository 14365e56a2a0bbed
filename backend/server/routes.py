"""
Route registration for the broadcast relay.

Responsibilities:
- Health endpoint
- WS /bus/{topic}: each connection joins the in-process bus as one member;
  text frames from the client are published, messages from other members
  are forwarded to the client
- Pull dependencies from app.state

A client never receives its own messages (the bus excludes the sender).
Malformed envelopes are logged and dropped; the connection stays open.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from bus.broadcast import BroadcastBus, LocalBusMember
from constants import RELAY_SEND_QUEUE_MAX
from observability.logger import log_event
from protocol.messages import BroadcastMessage, EnvelopeError, dumps_message, loads_message


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        bus: BroadcastBus = app.state.bus
        return {
            "status": "ok",
            "topics": {topic: bus.member_count(topic) for topic in bus.topics()},
        }

    @app.websocket("/bus/{topic}")
    async def bus_relay(ws: WebSocket, topic: str) -> None: # pyright: ignore[reportUnusedFunction]
        bus: BroadcastBus = app.state.bus
        member = bus.join(topic)
        outbound: asyncio.Queue[str] = asyncio.Queue(maxsize=RELAY_SEND_QUEUE_MAX)

        def forward(message: BroadcastMessage) -> None:
            try:
                outbound.put_nowait(dumps_message(message))
            except asyncio.QueueFull:
                log_event({
                    "event_type": "RELAY_SEND_DROPPED",
                    "topic": topic,
                    "member_id": member.member_id,
                    "message_type": message.message_type.value,
                })

        # Subscribed before accept: once the client sees the handshake
        # complete, it receives everything published from then on.
        member.subscribe(forward)
        sender: asyncio.Task[None] | None = None

        log_event({
            "event_type": "RELAY_CLIENT_CONNECTED",
            "topic": topic,
            "member_id": member.member_id,
        })

        try:
            await ws.accept()
            sender = asyncio.create_task(_pump(ws, outbound, member))

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                raw = msg["text"] if msg.get("text") is not None else msg.get("bytes")
                if raw is None:
                    continue
                _publish_raw(member, raw)

        except WebSocketDisconnect:
            log_event({
                "event_type": "RELAY_CLIENT_DISCONNECTED",
                "topic": topic,
                "member_id": member.member_id,
            })

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "topic": topic,
                "member_id": member.member_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            if sender is not None:
                sender.cancel()
            member.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _publish_raw(member: LocalBusMember, raw: str | bytes) -> None:
    try:
        message = loads_message(raw)
    except EnvelopeError as e:
        log_event({
            "event_type": "ENVELOPE_DECODE_ERROR",
            "topic": member.topic,
            "member_id": member.member_id,
            "error": str(e),
        })
        return
    member.publish(message)


async def _pump(
    ws: WebSocket,
    outbound: asyncio.Queue[str],
    member: LocalBusMember,
) -> None:
    """
    Single writer for one client socket.

    Sends queued envelopes in order; stops quietly once the socket is gone.
    """
    try:
        while True:
            text = await outbound.get()
            await ws.send_text(text)
    except asyncio.CancelledError:
        return
    except Exception as exc:  # pylint: disable=broad-exception-caught
        log_event({
            "event_type": "RELAY_SEND_FAILED",
            "topic": member.topic,
            "member_id": member.member_id,
            "exception": type(exc).__name__,
            "message": str(exc),
        })
