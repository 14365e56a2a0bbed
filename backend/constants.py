"""
CONSTANTS
---------
Single source of truth for all behavioral constants of the broadcast system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, hosts) live in config.py instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# =============================================================================
# Broadcast Bus
# =============================================================================

BUS_TOPIC_DEFAULT: Final[str] = "easp_2025_stream"

MSG_VIDEO_FRAME: Final[str] = "VIDEO_FRAME"
MSG_STATUS_UPDATE: Final[str] = "STATUS_UPDATE"
MSG_COMMENT: Final[str] = "COMMENT"

# =============================================================================
# Frame Sampling (admin -> viewers)
# =============================================================================

FRAME_SAMPLE_INTERVAL_MS: Final[int] = 100  # 10 frames/s
FRAME_WIDTH_PX: Final[int] = 1280
FRAME_HEIGHT_PX: Final[int] = 720
FRAME_JPEG_QUALITY: Final[int] = 60  # 0..100, size over fidelity
FRAME_DATA_URI_PREFIX: Final[str] = "data:image/jpeg;base64,"

# =============================================================================
# Audio Formats
# =============================================================================

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000  # mic -> endpoint
PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000  # endpoint -> speakers
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

MIC_BLOCK_SAMPLES: Final[int] = 4096

PCM16_POS_SCALE: Final[float] = 32767.0
PCM16_NEG_SCALE: Final[float] = 32768.0

# Segments remembered by the device-less output (headless runs keep only the tail).
RECORDING_OUTPUT_HISTORY: Final[int] = 256

# =============================================================================
# Commentary Bridge
# =============================================================================

AI_FRAME_INTERVAL_S: Final[float] = 1.0

MIME_IMAGE_JPEG: Final[str] = "image/jpeg"
MIME_AUDIO_PCM_16K: Final[str] = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE_HZ}"

# =============================================================================
# Relay Server
# =============================================================================

RELAY_HOST_DEFAULT: Final[str] = "127.0.0.1"
RELAY_PORT_DEFAULT: Final[int] = 8765
RELAY_MAX_MESSAGE_BYTES: Final[int] = 2**22  # one 720p JPEG frame fits easily
# Per-connection outbound queue; a slow client loses messages beyond this.
RELAY_SEND_QUEUE_MAX: Final[int] = 64


# =============================================================================
# Helper Functions
# =============================================================================

def samples_to_seconds(num_samples: int, sample_rate_hz: int) -> float:
    """
    Convert a sample count to a duration in seconds.

    Non-positive counts return 0.0.
    """
    if num_samples <= 0:
        return 0.0
    return num_samples / float(sample_rate_hz)


# =============================================================================
# Convenience Bundles
# =============================================================================

@dataclass(frozen=True)
class AudioFormat:
    """
    Immutable bundle describing a mono PCM16 stream.

    This is a convenience wrapper for passing format metadata around;
    it is NOT a second source of truth.
    """
    sample_rate_hz: int
    channels: int = AUDIO_CHANNELS
    sample_width_bytes: int = AUDIO_SAMPLE_WIDTH_BYTES

    @property
    def bytes_per_second(self) -> int:
        """Return number of PCM bytes per second of audio."""
        return self.sample_rate_hz * self.channels * self.sample_width_bytes


CAPTURE_FORMAT: Final[AudioFormat] = AudioFormat(sample_rate_hz=CAPTURE_SAMPLE_RATE_HZ)
PLAYBACK_FORMAT: Final[AudioFormat] = AudioFormat(sample_rate_hz=PLAYBACK_SAMPLE_RATE_HZ)
