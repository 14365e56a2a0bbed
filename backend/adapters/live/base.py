"""
Live narration endpoint contract.

This module defines the *interface only*: the chunk type pushed to the
endpoint, the closed set of events it reports back, and the errors it raises.

Key invariants:
- One endpoint instance == at most one live connection. Owned and injected
  by the admin controller; never a process-wide singleton.
- All inbound traffic arrives through ONE handler as one of
  Opened / AudioReceived / Closed / Failed.
- close() is synchronous and idempotent so that teardown never depends on
  a graceful shutdown sequence completing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable


# -------------------------
# Exceptions
# -------------------------

class EndpointConnectionError(Exception):
    """
    Raised when the live endpoint cannot be reached or rejects the session.

    Reported via the status line; narration is forced off, no reconnect.
    """


class ConfigurationError(Exception):
    """Raised when the endpoint credential is missing or unusable."""


# -------------------------
# Outbound
# -------------------------

@dataclass(frozen=True)
class RealtimeChunk:
    """
    One outbound media chunk.

    mime_type: "image/jpeg" or "audio/pcm;rate=16000"
    data:      base64 text of the raw bytes
    """
    mime_type: str
    data: str


# -------------------------
# Inbound events
# -------------------------

class EndpointEventType(str, Enum):
    """Closed set of endpoint event kinds."""
    OPENED = "OPENED"
    AUDIO_RECEIVED = "AUDIO_RECEIVED"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class EndpointEvent:
    """
    Base endpoint event.

    All events specify:
    - event_type: discriminant
    - ts_ms: wall-clock time the endpoint adapter observed it
    """
    event_type: EndpointEventType
    ts_ms: int


@dataclass(frozen=True)
class Opened(EndpointEvent):
    """Connection is live; chunks may be sent."""


@dataclass(frozen=True)
class AudioReceived(EndpointEvent):
    """One narration reply: base64 PCM16 mono at 24 kHz."""
    data: str


@dataclass(frozen=True)
class Closed(EndpointEvent):
    """Endpoint closed the connection normally."""


@dataclass(frozen=True)
class Failed(EndpointEvent):
    """Endpoint errored; reason is for logs, not for display."""
    reason: str


EndpointEventHandler = Callable[[EndpointEvent], None]


# -------------------------
# Endpoint
# -------------------------

class LiveEndpoint(ABC):
    """
    Abstract duplex connection to the live narration service.

    Non-responsibilities:
    - No microphone or camera access
    - No throttling (the commentary bridge decides what to send and when)
    - No playback
    """

    @abstractmethod
    async def open(self, handler: EndpointEventHandler) -> None:
        """
        Connect and start delivering events to `handler`.

        Contract:
        - Emits Opened once the connection is usable.
        - Raises ConfigurationError for a missing credential and
          EndpointConnectionError when the service is unreachable; in both
          cases nothing stays open.
        - A connect overtaken by close() or by a newer open() is shut down
          by the endpoint itself: it returns without emitting Opened and
          without replacing the newer connection.
        """
        raise NotImplementedError

    @abstractmethod
    async def send(self, chunk: RealtimeChunk) -> None:
        """
        Push one chunk. No-op when not connected.

        Send failures are logged, not raised; a dead connection is reported
        through Failed/Closed by the receive side.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """
        Tear down without awaiting.

        Must:
        - Not await
        - Not emit events
        - Be idempotent
        """
        raise NotImplementedError
