"""
Relay application factory.

One process hosts one BroadcastBus; every websocket on /bus/{topic}
joins it as a member. On shutdown any member still connected is closed
so that its subscriptions stop before the loop goes away.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bus.broadcast import BroadcastBus
from config import AppConfig
from observability.logger import log_event
from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    bus: BroadcastBus | None = None,
) -> FastAPI:
    """Build the relay. Tests inject `config` and `bus`; uvicorn uses the defaults."""
    config = config or AppConfig.load_from_env()
    relay_bus = bus or BroadcastBus()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        log_event({
            "event_type": "RELAY_READY",
            "env": config.env,
            "topic": config.bus_topic,
        })
        try:
            yield
        finally:
            closed = relay_bus.close_all()
            log_event({
                "event_type": "RELAY_STOPPED",
                "members_closed": closed,
            })

    app = FastAPI(title="Broadcast Relay", lifespan=lifespan)
    app.state.config = config
    app.state.bus = relay_bus

    # Browser viewers on another port of this host may open the socket.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app
