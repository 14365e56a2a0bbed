"""
Gapless playback scheduling for arbitrarily sized audio segments.

Segments arrive with network jitter and must play back-to-back:
- never overlapping the previous segment
- never waiting behind a cursor that is already in the past

Single cursor `next_start_time`, updated exactly once per scheduled
segment and never decreasing. All calls happen on one event loop, so no
locking is needed.
"""

from __future__ import annotations

from dataclasses import dataclass

from audio.output import AudioOutput
from audio.pcm import DecodeError
from audio.segments import AudioSegment, decode_audio_segment
from constants import PLAYBACK_SAMPLE_RATE_HZ
from observability.logger import log_event


@dataclass(frozen=True)
class ScheduledSegment:
    """Audio-clock interval [start_time, end_time) assigned to a segment."""
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class PlaybackScheduler:
    """
    Schedules segments on an AudioOutput clock with no gaps and no overlaps.

    enqueue(segment, clock_now):
        start = max(clock_now, next_start_time)
        output.schedule(segment, start)
        next_start_time = start + segment.duration

    The cursor starts at 0.0 ("nothing pending") and is never reset; a
    closed narration connection leaves already scheduled audio playing.
    """

    def __init__(
        self,
        output: AudioOutput | None = None,
        *,
        sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
    ) -> None:
        self._output = output
        self._sample_rate_hz = sample_rate_hz
        self.next_start_time: float = 0.0
        self.scheduled_count: int = 0
        self.dropped_count: int = 0

    # -------------------------
    # Core scheduling
    # -------------------------

    def enqueue(
        self,
        segment: AudioSegment,
        clock_now: float | None = None,
    ) -> ScheduledSegment:
        """
        Schedule one decoded segment.

        clock_now defaults to the output's current audio-clock time. It may go
        backwards between calls (arrival jitter); the cursor still wins.
        """
        if clock_now is None:
            if self._output is None:
                raise ValueError("clock_now is required without an audio output")
            clock_now = self._output.current_time

        start_time = max(clock_now, self.next_start_time)

        if self._output is not None:
            self._output.schedule(segment, start_time)

        self.next_start_time = start_time + segment.duration
        self.scheduled_count += 1

        return ScheduledSegment(start_time=start_time, end_time=self.next_start_time)

    def enqueue_encoded(
        self,
        data: str,
        clock_now: float | None = None,
    ) -> ScheduledSegment | None:
        """
        Decode text-encoded PCM16 and schedule it.

        A segment that fails to decode is dropped: the cursor is left as is
        and nothing is raised.
        """
        try:
            segment = decode_audio_segment(data, sample_rate_hz=self._sample_rate_hz)
        except DecodeError as e:
            self.dropped_count += 1
            log_event({
                "event_type": "AUDIO_SEGMENT_DROPPED",
                "reason": str(e),
                "next_start_time": self.next_start_time,
            })
            return None

        scheduled = self.enqueue(segment, clock_now)
        log_event({
            "event_type": "AUDIO_SEGMENT_SCHEDULED",
            "start_time": scheduled.start_time,
            "duration_s": scheduled.duration,
            "samples": segment.sample_count,
        })
        return scheduled

    # -------------------------
    # Introspection helpers
    # -------------------------

    def pending_seconds(self, clock_now: float) -> float:
        """Audio already scheduled beyond `clock_now`, in seconds."""
        return max(0.0, self.next_start_time - clock_now)

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "next_start_time": self.next_start_time,
            "scheduled": self.scheduled_count,
            "dropped": self.dropped_count,
        }
