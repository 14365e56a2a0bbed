"""
Audio output devices with a schedulable clock.

An AudioOutput exposes:
- current_time: seconds of audio the device has rendered so far (the audio clock)
- schedule(segment, start_time): play `segment` starting at that clock time

The PlaybackScheduler decides start times; outputs only honor them.
The sound-card implementation lives in audio.devices.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable

from audio.segments import AudioSegment
from constants import RECORDING_OUTPUT_HISTORY


class AudioOutput(ABC):
    """Abstract audio sink driven by its own clock."""

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Audio-clock time in seconds."""
        raise NotImplementedError

    @abstractmethod
    def schedule(self, segment: AudioSegment, start_time: float) -> None:
        """Begin output of `segment` at audio-clock `start_time`."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release the device. Idempotent."""
        raise NotImplementedError


class RecordingAudioOutput(AudioOutput):
    """
    Device-less output for headless runs and tests.

    The clock is wall-clock seconds since construction (or any callable
    injected as `clock`); scheduled segments are recorded, not played. Only
    the most recent `history` entries are kept.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] | None = None,
        history: int = RECORDING_OUTPUT_HISTORY,
    ) -> None:
        if clock is None:
            origin = time.monotonic()
            clock = lambda: time.monotonic() - origin  # noqa: E731
        self._clock = clock
        self.scheduled: deque[tuple[float, AudioSegment]] = deque(maxlen=history)
        self.scheduled_total = 0
        self.closed = False

    @property
    def current_time(self) -> float:
        return self._clock()

    def schedule(self, segment: AudioSegment, start_time: float) -> None:
        self.scheduled.append((start_time, segment))
        self.scheduled_total += 1

    def close(self) -> None:
        self.closed = True
