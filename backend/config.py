"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No broadcast or playback logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    BUS_TOPIC_DEFAULT,
    RELAY_HOST_DEFAULT,
    RELAY_PORT_DEFAULT,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to controllers and the relay server.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Live narration endpoint
    # ------------------------------------------------------------------

    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash-native-audio-preview-09-2025"
    gemini_voice: str = "Kore"
    narration_language: str = "pt-BR"

    # ------------------------------------------------------------------
    # Broadcast transport
    # ------------------------------------------------------------------

    bus_topic: str = BUS_TOPIC_DEFAULT
    relay_host: str = RELAY_HOST_DEFAULT
    relay_port: int = RELAY_PORT_DEFAULT

    # ------------------------------------------------------------------
    # Capture devices
    # ------------------------------------------------------------------

    camera_index: int = 0

    @property
    def relay_url(self) -> str:
        """Websocket URL of the relay endpoint for the configured topic."""
        return f"ws://{self.relay_host}:{self.relay_port}/bus/{self.bus_topic}"

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Never raises for a missing API key; the commentary bridge reports
        that at connect time instead.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=os.environ.get("API_KEY") or os.environ.get("GEMINI_API_KEY"),
            gemini_model=os.environ.get(
                "GEMINI_MODEL", "gemini-2.5-flash-native-audio-preview-09-2025"
            ),
            gemini_voice=os.environ.get("GEMINI_VOICE", "Kore"),
            narration_language=os.environ.get("NARRATION_LANGUAGE", "pt-BR"),

            bus_topic=os.environ.get("BUS_TOPIC", BUS_TOPIC_DEFAULT),
            relay_host=os.environ.get("RELAY_HOST", RELAY_HOST_DEFAULT),
            relay_port=int(os.environ.get("RELAY_PORT", str(RELAY_PORT_DEFAULT))),

            camera_index=int(os.environ.get("CAMERA_INDEX", "0")),
        )
