"""
Stream session state.

Owned by the admin controller and mutated only by explicit user action
(start/stop streaming, enable/disable narration). Viewers mirror `is_live`
from STATUS_UPDATE messages; they never own it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class StreamStatus:
    is_live: bool = False
    ai_enabled: bool = False

    def with_live(self, is_live: bool) -> StreamStatus:
        # Narration cannot outlive the stream.
        if not is_live:
            return StreamStatus(is_live=False, ai_enabled=False)
        return replace(self, is_live=True)

    def with_ai(self, ai_enabled: bool) -> StreamStatus:
        return replace(self, ai_enabled=ai_enabled and self.is_live)
