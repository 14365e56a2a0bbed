"""
Relay server entry point.

Runs the broadcast relay under uvicorn, bound to loopback by default
(RELAY_HOST / RELAY_PORT). Admin and viewer processes on this machine join
it through bus.relay_client.RelayBusMember.
"""

from __future__ import annotations

import uvicorn
from dotenv import load_dotenv

from config import AppConfig
from constants import RELAY_MAX_MESSAGE_BYTES
from observability.logger import log_event
from server.app import create_app


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    log_event({
        "event_type": "RELAY_STARTING",
        "env": config.env,
        "host": config.relay_host,
        "port": config.relay_port,
    })

    uvicorn.run(
        create_app(config),
        host=config.relay_host,
        port=config.relay_port,
        log_level=config.log_level.lower(),
        ws_max_size=RELAY_MAX_MESSAGE_BYTES,
    )


if __name__ == "__main__":
    main()
