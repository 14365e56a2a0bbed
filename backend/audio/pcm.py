"""
PCM conversion utilities.

- float samples in [-1, 1]  <->  PCM16 signed little-endian
- binary buffers            <->  base64 transport text

Pure functions; no resampling, no channel mixing.
"""

from __future__ import annotations

import base64
import binascii
from typing import Iterable

import numpy as np

from constants import PCM16_NEG_SCALE, PCM16_POS_SCALE


class DecodeError(Exception):
    """
    Raised when inbound audio cannot be turned into samples.

    Malformed transport text or a buffer that is not a whole number of
    16-bit samples. Callers drop the segment; nothing is user-visible.
    """


def encode_pcm16(samples: Iterable[float] | np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16.

    Each sample is clamped to [-1, 1], then scaled by 32767 when
    non-negative and by 32768 when negative (full two's-complement range).
    Values are truncated toward zero, matching a typed-array store.
    """
    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(x < 0, x * PCM16_NEG_SCALE, x * PCM16_POS_SCALE)
    return np.trunc(scaled).astype(np.int16)


def pcm16_to_bytes(pcm: np.ndarray) -> bytes:
    """Serialize int16 samples as little-endian bytes."""
    return np.asarray(pcm, dtype=np.int16).astype("<i2").tobytes()


def decode_pcm16(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    Total: a truncated trailing byte is ignored. Use decode_audio_bytes()
    where a truncated buffer must be rejected.
    """
    if len(pcm_bytes) % 2 != 0:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    return audio_i16.astype(np.float32) / np.float32(PCM16_NEG_SCALE)


def decode_audio_bytes(pcm_bytes: bytes) -> np.ndarray:
    """
    Strict variant of decode_pcm16() for inbound network audio.

    Raises:
        DecodeError if the buffer is not a whole number of samples.
    """
    if len(pcm_bytes) % 2 != 0:
        raise DecodeError(f"PCM16 buffer has odd length {len(pcm_bytes)}")
    return decode_pcm16(pcm_bytes)


# -------------------------
# Transport text
# -------------------------

def to_transport_text(data: bytes) -> str:
    """Encode raw bytes as base64 text (standard alphabet, padded)."""
    return base64.b64encode(data).decode("ascii")


def from_transport_text(text: str) -> bytes:
    """
    Decode base64 text produced by to_transport_text().

    Raises:
        DecodeError on invalid input.
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid transport text: {e}") from e


def encode_capture_block(samples: Iterable[float] | np.ndarray) -> str:
    """float mic block -> PCM16 bytes -> transport text, in one step."""
    return to_transport_text(pcm16_to_bytes(encode_pcm16(samples)))
