"""
Commentary bridge lifecycle.

Rules:
- This enum defines ONLY the narration connection states.
- Transitions are owned by CommentaryBridge.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class BridgeState(str, Enum):
    """
    DISABLED -> CONNECTING -> CONNECTED -> (CLOSED | FAILED)

    CLOSED and FAILED are terminal until narration is enabled again.
    """

    DISABLED = "DISABLED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


# Short status strings shown to the admin; never raw exception text.
STATUS_AI_CONNECTING: Final[str] = "Connecting AI narrator..."
STATUS_AI_CONNECTED: Final[str] = "AI connected and analyzing..."
STATUS_AI_DISCONNECTED: Final[str] = "AI disconnected"
STATUS_AI_ERROR: Final[str] = "AI error"
STATUS_AI_MISSING_KEY: Final[str] = "AI error: missing API key"
STATUS_MIC_UNAVAILABLE: Final[str] = "Microphone unavailable. Check permissions."
