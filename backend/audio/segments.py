"""
Audio segment primitives.

Pure data containers plus the decode step that produces them.
No queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from audio.pcm import decode_audio_bytes, from_transport_text
from constants import PLAYBACK_SAMPLE_RATE_HZ, samples_to_seconds


@dataclass(frozen=True, eq=False)
class AudioSegment:
    """
    One decoded, schedulable block of mono float32 samples.

    samples:
        float32 samples in [-1.0, 1.0).

    sample_rate_hz:
        24000 for narration playback, 16000 for outbound capture.

    Owned by the PlaybackScheduler from decode until it finishes playing.
    """
    samples: np.ndarray
    sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ

    @property
    def sample_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Duration in seconds: sample_count / sample_rate_hz."""
        return samples_to_seconds(self.sample_count, self.sample_rate_hz)


def decode_audio_segment(
    data: str,
    *,
    sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
) -> AudioSegment:
    """
    Decode text-encoded PCM16 from the live endpoint into an AudioSegment.

    Raises:
        DecodeError on malformed transport text or a truncated sample.
    """
    pcm_bytes = from_transport_text(data)
    return AudioSegment(
        samples=decode_audio_bytes(pcm_bytes),
        sample_rate_hz=sample_rate_hz,
    )
