"""
Commentary bridge: local capture <-> live narration endpoint <-> playback.

Responsibilities:
- Acquire the microphone and open the endpoint when narration is enabled
- While CONNECTED, push every mic block (PCM16 @ 16 kHz) and, once per
  second on its own ticker, the most recent sampled video frame
- Hand every inbound narration segment straight to the PlaybackScheduler
- Release mic, ticker and connection synchronously when narration is
  disabled, the endpoint closes, or anything fails

Non-responsibilities:
- No video sampling (the admin's 10 Hz sampler offers frames here)
- No reconnect or retry
- No playback timing (PlaybackScheduler owns the cursor, and it is not
  reset on close: already scheduled narration plays to completion)

Stale events are gated by a generation counter, bumped on every enable and
disable, so callbacks from a torn-down connection are ignored.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine

import numpy as np

from adapters.live.base import (
    AudioReceived,
    Closed,
    ConfigurationError,
    EndpointConnectionError,
    EndpointEvent,
    Failed,
    LiveEndpoint,
    Opened,
    RealtimeChunk,
)
from audio.capture import MicrophoneSource
from audio.pcm import encode_capture_block
from audio.playback import PlaybackScheduler
from commentary.state import (
    STATUS_AI_CONNECTED,
    STATUS_AI_CONNECTING,
    STATUS_AI_DISCONNECTED,
    STATUS_AI_ERROR,
    STATUS_AI_MISSING_KEY,
    STATUS_MIC_UNAVAILABLE,
    BridgeState,
)
from constants import AI_FRAME_INTERVAL_S, MIME_AUDIO_PCM_16K, MIME_IMAGE_JPEG
from media.errors import MediaAcquisitionError
from observability.logger import log_event
from timers.ticker import PeriodicTicker
from video.sampler import data_uri_payload

StateListener = Callable[[BridgeState, str], None]


class CommentaryBridge:
    """
    One bridge == one admin session's narration feature.

    The endpoint instance is injected and reused across enable/disable
    cycles; it holds at most one live connection at a time.
    """

    def __init__(
        self,
        *,
        endpoint: LiveEndpoint,
        microphone: MicrophoneSource,
        scheduler: PlaybackScheduler,
        on_state_change: StateListener | None = None,
        frame_interval_s: float = AI_FRAME_INTERVAL_S,
    ) -> None:
        self._endpoint = endpoint
        self._microphone = microphone
        self._scheduler = scheduler
        self._on_state_change = on_state_change

        self.state: BridgeState = BridgeState.DISABLED
        self.status_message: str = ""

        self._generation = 0
        self._latest_frame: str | None = None
        self._send_tasks: set[asyncio.Task[None]] = set()
        self._frame_ticker = PeriodicTicker(
            interval_s=frame_interval_s,
            callback=self._on_frame_tick,
            name="ai-frame-feed",
        )

        self.audio_chunks_sent = 0
        self.image_chunks_sent = 0

    @property
    def active(self) -> bool:
        return self.state in (BridgeState.CONNECTING, BridgeState.CONNECTED)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enable(self) -> None:
        """
        DISABLED/CLOSED/FAILED -> CONNECTING, then CONNECTED on Opened.

        Never raises; failures end in FAILED with a status string.
        """
        if self.active:
            return

        self._generation += 1
        generation = self._generation
        self._set_state(BridgeState.CONNECTING, STATUS_AI_CONNECTING)

        try:
            self._microphone.start(self._on_mic_block)
        except MediaAcquisitionError as e:
            self._fail(generation, STATUS_MIC_UNAVAILABLE, str(e))
            return

        try:
            await self._endpoint.open(lambda event: self._handle_event(generation, event))
        except ConfigurationError as e:
            self._fail(generation, STATUS_AI_MISSING_KEY, str(e))
            return
        except EndpointConnectionError as e:
            self._fail(generation, STATUS_AI_ERROR, str(e))
            return

        if generation != self._generation and not self.active:
            # Disabled while connecting. If a newer enable() is under way it
            # owns the endpoint, which already discarded this connect.
            self._endpoint.close()

    def disable(self) -> None:
        """
        Force CONNECTING/CONNECTED -> CLOSED and release everything.

        Synchronous: does not wait for the endpoint to acknowledge.
        """
        self._generation += 1
        self._release()
        if self.state in (BridgeState.CONNECTING, BridgeState.CONNECTED):
            self._set_state(BridgeState.CLOSED, STATUS_AI_DISCONNECTED)

    def offer_frame(self, data_uri: str) -> None:
        """Remember the newest sampled frame for the next image tick."""
        if self.state is BridgeState.CONNECTED:
            self._latest_frame = data_uri

    # ------------------------------------------------------------------
    # Endpoint events (single handler)
    # ------------------------------------------------------------------

    def _handle_event(self, generation: int, event: EndpointEvent) -> None:
        if generation != self._generation:
            return

        if isinstance(event, Opened):
            if self.state is BridgeState.CONNECTING:
                self._set_state(BridgeState.CONNECTED, STATUS_AI_CONNECTED)
                self._frame_ticker.start()
        elif isinstance(event, AudioReceived):
            self._play(event)
        elif isinstance(event, Closed):
            self._generation += 1
            self._release()
            self._set_state(BridgeState.CLOSED, STATUS_AI_DISCONNECTED)
        elif isinstance(event, Failed):
            self._fail(generation, STATUS_AI_ERROR, event.reason)
        else:
            log_event({
                "event_type": "UNKNOWN_ENDPOINT_EVENT",
                "endpoint_event": type(event).__name__,
            })

    def _play(self, event: AudioReceived) -> None:
        try:
            self._scheduler.enqueue_encoded(event.data)
        except Exception as e:  # pylint: disable=broad-exception-caught
            # The output refused the segment; narration keeps running.
            log_event({
                "event_type": "AUDIO_SEGMENT_DROPPED",
                "reason": repr(e),
                "next_start_time": self._scheduler.next_start_time,
            })

    # ------------------------------------------------------------------
    # Outbound media
    # ------------------------------------------------------------------

    def _on_mic_block(self, block: np.ndarray) -> None:
        if self.state is not BridgeState.CONNECTED:
            return
        chunk = RealtimeChunk(mime_type=MIME_AUDIO_PCM_16K, data=encode_capture_block(block))
        self.audio_chunks_sent += 1
        self._spawn(self._endpoint.send(chunk))

    def _on_frame_tick(self) -> None:
        frame = self._latest_frame
        if self.state is not BridgeState.CONNECTED or frame is None:
            return
        self._latest_frame = None
        chunk = RealtimeChunk(mime_type=MIME_IMAGE_JPEG, data=data_uri_payload(frame))
        self.image_chunks_sent += 1
        self._spawn(self._endpoint.send(chunk))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _release(self) -> None:
        self._frame_ticker.stop()
        self._microphone.stop()
        self._endpoint.close()
        self._latest_frame = None
        for task in list(self._send_tasks):
            task.cancel()
        self._send_tasks.clear()

    def _fail(self, generation: int, status: str, reason: str) -> None:
        if generation != self._generation:
            return
        self._generation += 1
        self._release()
        log_event({
            "event_type": "BRIDGE_FAILED",
            "reason": reason,
        })
        self._set_state(BridgeState.FAILED, status)

    def _set_state(self, state: BridgeState, status: str) -> None:
        previous = self.state
        self.state = state
        self.status_message = status
        log_event({
            "event_type": "BRIDGE_STATE_CHANGED",
            "from": previous.value,
            "to": state.value,
            "status": status,
        })
        if self._on_state_change is not None:
            self._on_state_change(state, status)
