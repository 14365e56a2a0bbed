"""
Sound-card backed microphone and speaker.

Kept apart from the abstract sources in audio.capture / audio.output so that
importing the bridge or the controllers never loads PortAudio; only process
entry points that really open devices import this module.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any

import numpy as np
import sounddevice

from audio.capture import BlockHandler, MicrophoneSource
from audio.output import AudioOutput
from audio.segments import AudioSegment
from constants import (
    AUDIO_CHANNELS,
    CAPTURE_SAMPLE_RATE_HZ,
    MIC_BLOCK_SAMPLES,
    PLAYBACK_SAMPLE_RATE_HZ,
)
from media.errors import MediaAcquisitionError
from observability.logger import log_event


# ------------------------------------------------------------------
# Microphone
# ------------------------------------------------------------------

class SoundDeviceMicrophone(MicrophoneSource):
    """Microphone over a sounddevice InputStream (16 kHz mono, 4096-sample blocks)."""

    def __init__(
        self,
        *,
        sample_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ,
        block_samples: int = MIC_BLOCK_SAMPLES,
        device: int | str | None = None,
    ) -> None:
        self._rate = sample_rate_hz
        self._block_samples = block_samples
        self._device = device
        self._stream: sounddevice.InputStream | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_block: BlockHandler | None = None

    @property
    def active(self) -> bool:
        return self._stream is not None

    def start(self, on_block: BlockHandler) -> None:
        if self._stream is not None:
            return

        self._loop = asyncio.get_running_loop()
        self._on_block = on_block
        try:
            stream = sounddevice.InputStream(
                samplerate=self._rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                blocksize=self._block_samples,
                device=self._device,
                callback=self._callback,
            )
            stream.start()
        except sounddevice.PortAudioError as e:
            self._loop = None
            self._on_block = None
            raise MediaAcquisitionError(f"microphone unavailable: {e}") from e

        self._stream = stream
        log_event({
            "event_type": "MICROPHONE_STARTED",
            "sample_rate_hz": self._rate,
            "block_samples": self._block_samples,
        })

    def stop(self) -> None:
        stream = self._stream
        self._stream = None
        self._on_block = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sounddevice.PortAudioError as e:
            log_event({
                "event_type": "MICROPHONE_CLOSE_FAILED",
                "error": str(e),
            })
        log_event({"event_type": "MICROPHONE_STOPPED"})

    # PortAudio thread
    def _callback(
        self,
        indata: np.ndarray,
        frames: int,  # pylint: disable=unused-argument
        time_info: Any,  # pylint: disable=unused-argument
        status: sounddevice.CallbackFlags,  # pylint: disable=unused-argument
    ) -> None:
        loop = self._loop
        if loop is None or self._stream is None:
            return
        block = indata[:, 0].copy()
        try:
            loop.call_soon_threadsafe(self._deliver, block)
        except RuntimeError:
            # Loop already closed; the stream is being torn down.
            pass

    def _deliver(self, block: np.ndarray) -> None:
        handler = self._on_block
        if handler is not None:
            handler(block)


# ------------------------------------------------------------------
# Speaker
# ------------------------------------------------------------------

@dataclass
class _Pending:
    start_frame: int
    samples: np.ndarray

    @property
    def end_frame(self) -> int:
        return self.start_frame + int(self.samples.shape[0])


class SoundDeviceOutput(AudioOutput):
    """
    Speaker output over a sounddevice OutputStream.

    The clock is the number of frames handed to the device divided by the
    sample rate, so it only advances while the stream runs. The stream is
    opened lazily on first schedule() and runs until close(); scheduled
    segments keep playing after the commentary connection is gone.
    """

    def __init__(
        self,
        *,
        sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
        device: int | str | None = None,
    ) -> None:
        self._rate = sample_rate_hz
        self._device = device
        self._lock = threading.Lock()
        self._frames_rendered = 0
        self._pending: list[_Pending] = []
        self._stream: sounddevice.OutputStream | None = None

    def start(self) -> None:
        """
        Open and start the output stream.

        Raises:
            MediaAcquisitionError if no usable output device exists.
        """
        if self._stream is not None:
            return
        try:
            stream = sounddevice.OutputStream(
                samplerate=self._rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                device=self._device,
                callback=self._callback,
            )
            stream.start()
        except sounddevice.PortAudioError as e:
            raise MediaAcquisitionError(f"audio output unavailable: {e}") from e
        self._stream = stream

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / float(self._rate)

    def schedule(self, segment: AudioSegment, start_time: float) -> None:
        if segment.sample_rate_hz != self._rate:
            raise ValueError(
                f"segment rate {segment.sample_rate_hz} != output rate {self._rate}"
            )
        self.start()
        pending = _Pending(
            start_frame=int(round(start_time * self._rate)),
            samples=segment.samples.astype(np.float32, copy=False),
        )
        with self._lock:
            self._pending.append(pending)

    def close(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except sounddevice.PortAudioError as e:
            log_event({
                "event_type": "AUDIO_OUTPUT_CLOSE_FAILED",
                "error": str(e),
            })
        with self._lock:
            self._pending.clear()

    # ------------------------------------------------------------------
    # Device callback (PortAudio thread)
    # ------------------------------------------------------------------

    def _callback(
        self,
        outdata: np.ndarray,
        frames: int,
        time_info: Any,  # pylint: disable=unused-argument
        status: sounddevice.CallbackFlags,  # pylint: disable=unused-argument
    ) -> None:
        block = np.zeros(frames, dtype=np.float32)
        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            still_pending: list[_Pending] = []
            for item in self._pending:
                lo = max(block_start, item.start_frame)
                hi = min(block_end, item.end_frame)
                if lo < hi:
                    block[lo - block_start:hi - block_start] = (
                        item.samples[lo - item.start_frame:hi - item.start_frame]
                    )
                if item.end_frame > block_end:
                    still_pending.append(item)
            self._pending = still_pending
            self._frames_rendered = block_end
        outdata[:, 0] = block
