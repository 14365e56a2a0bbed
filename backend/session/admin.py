"""
Admin controller (the broadcasting role).

Responsibilities:
- Own the StreamStatus and the status strings shown to the operator
- Start/stop streaming: acquire/release the camera, run the 10 Hz frame
  sampler, publish STATUS_UPDATE and VIDEO_FRAME
- Enable/disable narration through the CommentaryBridge, feeding it every
  sampled frame
- Own the Playback Scheduler that plays narration locally (never reset)
- Keep the chat log: comments from the bus plus the admin's own

Not responsible for:
- Throttling frames to the narration endpoint (the bridge's own ticker)
- Wire format (protocol.messages)
- Delivery (the bus member it is given)

Every user action is safe to call at any time; failures end up in
`status_message` / `ai_status_message`, never as exceptions.
"""

from __future__ import annotations

import asyncio
import time

from adapters.live.base import LiveEndpoint
from audio.capture import MicrophoneSource
from audio.output import AudioOutput, RecordingAudioOutput
from audio.playback import PlaybackScheduler
from bus.broadcast import BusMember, Subscription
from commentary.bridge import CommentaryBridge
from commentary.state import BridgeState
from constants import AI_FRAME_INTERVAL_S, FRAME_SAMPLE_INTERVAL_MS
from media.errors import MediaAcquisitionError
from observability.logger import log_event
from observability.metrics import emit_counters, timed
from protocol.messages import (
    BroadcastMessage,
    ChatMessage,
    Comment,
    StatusUpdate,
    VideoFrame,
)
from session.chat import ChatLog, CommentListener, submit_comment
from session.stream_status import StreamStatus
from timers.ticker import PeriodicTicker
from video.camera import VideoSource
from video.sampler import FrameCaptureError, FrameSampler

ADMIN_DISPLAY_NAME = "Admin"

STATUS_READY = "Ready to start"
STATUS_LIVE = "LIVE - broadcasting"
STATUS_STOPPED = "Broadcast stopped"
STATUS_CAMERA_UNAVAILABLE = "Camera unavailable. Check permissions."
STATUS_AI_REQUIRES_LIVE = "Start the broadcast before enabling AI"

ROLE = "admin"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# ------------------------------------------------------------------
# AdminController
# ------------------------------------------------------------------

class AdminController:
    """
    One controller == one admin "tab".

    The controller owns its bus member, camera, microphone, endpoint and
    audio output, and releases all of them in close().
    """

    def __init__(
        self,
        *,
        member: BusMember,
        camera: VideoSource,
        microphone: MicrophoneSource,
        endpoint: LiveEndpoint,
        output: AudioOutput | None = None,
        sampler: FrameSampler | None = None,
        frame_interval_s: float = FRAME_SAMPLE_INTERVAL_MS / 1000.0,
        ai_frame_interval_s: float = AI_FRAME_INTERVAL_S,
        on_comment: CommentListener | None = None,
    ) -> None:
        self.member = member
        self._camera = camera
        # Without a sound card, narration is scheduled on a device-less clock.
        self._output = output if output is not None else RecordingAudioOutput()
        self._sampler = sampler or FrameSampler(camera)

        self.status = StreamStatus()
        self.status_message = STATUS_READY
        self.ai_status_message = ""
        self.chat = ChatLog(on_append=on_comment)
        self.frames_published = 0

        # Created once per admin; survives narration reconnects.
        self.scheduler = PlaybackScheduler(self._output)
        self.bridge = CommentaryBridge(
            endpoint=endpoint,
            microphone=microphone,
            scheduler=self.scheduler,
            on_state_change=self._on_bridge_state,
            frame_interval_s=ai_frame_interval_s,
        )

        self._frame_ticker = PeriodicTicker(
            interval_s=frame_interval_s,
            callback=self._on_frame_tick,
            name="frame-sampler",
        )
        self._stream_generation = 0
        self._subscription: Subscription | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Subscribe to the bus. Call once from the admin's event loop."""
        if self._subscription is not None or self._closed:
            return
        self._subscription = self.member.subscribe(self._on_message, loop=loop)
        log_event({
            "event_type": "CONTROLLER_ATTACHED",
            "role": ROLE,
            "topic": self.member.topic,
            "member_id": self.member.member_id,
        })

    def close(self) -> None:
        """
        Abrupt teardown. Synchronous, idempotent, releases everything.
        """
        if self._closed:
            return
        self.stop_stream()
        self.bridge.disable()
        self._closed = True

        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._output.close()
        self.member.close()

        log_event({
            "event_type": "CONTROLLER_CLOSED",
            "role": ROLE,
            "topic": self.member.topic,
            "frames_published": self.frames_published,
            **self.scheduler.snapshot(),
        })
        emit_counters(
            {
                "frames_published": self.frames_published,
                "ai_audio_chunks_sent": self.bridge.audio_chunks_sent,
                "ai_image_chunks_sent": self.bridge.image_chunks_sent,
            },
            role=ROLE,
            topic=self.member.topic,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def start_stream(self) -> bool:
        """
        Acquire the camera, announce the stream and start sampling.

        Returns True if the stream is live afterwards.
        """
        if self._closed:
            return False
        if self.status.is_live:
            return True

        self._stream_generation += 1
        generation = self._stream_generation

        try:
            await asyncio.to_thread(self._camera.open)
        except MediaAcquisitionError as e:
            if generation == self._stream_generation:
                self.status_message = STATUS_CAMERA_UNAVAILABLE
            log_event({
                "event_type": "STREAM_START_FAILED",
                "role": ROLE,
                "topic": self.member.topic,
                "error": str(e),
            })
            return False

        if generation != self._stream_generation or self._closed:
            # Stopped while the camera was being acquired.
            self._camera.release()
            return False

        self.status = self.status.with_live(True)
        self.status_message = STATUS_LIVE
        self.member.publish(StatusUpdate(live=True, timestamp=_now_ms()))
        self._frame_ticker.start()

        log_event({
            "event_type": "STREAM_STARTED",
            "role": ROLE,
            "topic": self.member.topic,
        })
        return True

    def stop_stream(self) -> None:
        """
        Stop sampling, release the camera, announce the end, force AI off.

        Synchronous; also cancels a start_stream() still acquiring the camera.
        """
        self._stream_generation += 1
        if not self.status.is_live:
            return

        self._frame_ticker.stop()
        self._camera.release()
        self.bridge.disable()

        self.status = self.status.with_live(False)
        self.status_message = STATUS_STOPPED
        self.member.publish(StatusUpdate(live=False, timestamp=_now_ms()))

        log_event({
            "event_type": "STREAM_STOPPED",
            "role": ROLE,
            "topic": self.member.topic,
            "frames_published": self.frames_published,
        })

    async def toggle_live(self) -> bool:
        if self.status.is_live:
            self.stop_stream()
            return False
        return await self.start_stream()

    async def _on_frame_tick(self) -> None:
        """Capture and encode off the loop, then publish if still the same stream."""
        if not self.status.is_live:
            return
        generation = self._stream_generation
        try:
            with timed("frame_sample", role=ROLE, topic=self.member.topic):
                data_uri = await asyncio.to_thread(self._sampler.sample_frame)
        except FrameCaptureError as e:
            log_event({
                "event_type": "FRAME_CAPTURE_FAILED",
                "role": ROLE,
                "topic": self.member.topic,
                "error": str(e),
            })
            return

        if generation != self._stream_generation or not self.status.is_live:
            # Stopped while the frame was being encoded.
            return

        self.member.publish(VideoFrame(payload=data_uri, timestamp=_now_ms()))
        self.frames_published += 1
        self.bridge.offer_frame(data_uri)

    # ------------------------------------------------------------------
    # Narration
    # ------------------------------------------------------------------

    async def enable_ai(self) -> bool:
        """
        Turn narration on. Refused while not live.

        Returns True if the bridge is connecting or connected afterwards.
        """
        if not self.status.is_live:
            self.ai_status_message = STATUS_AI_REQUIRES_LIVE
            log_event({
                "event_type": "AI_ENABLE_REFUSED",
                "role": ROLE,
                "topic": self.member.topic,
                "reason": "not_live",
            })
            return False

        self.status = self.status.with_ai(True)
        await self.bridge.enable()
        return self.bridge.active

    def disable_ai(self) -> None:
        self.status = self.status.with_ai(False)
        self.bridge.disable()

    async def toggle_ai(self) -> bool:
        if self.status.ai_enabled:
            self.disable_ai()
            return False
        return await self.enable_ai()

    def _on_bridge_state(self, state: BridgeState, status: str) -> None:
        self.ai_status_message = status
        if state in (BridgeState.CLOSED, BridgeState.FAILED):
            self.status = self.status.with_ai(False)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def submit_comment(self, text: str, *, user: str = ADMIN_DISPLAY_NAME) -> ChatMessage | None:
        return submit_comment(
            member=self.member,
            chat=self.chat,
            user=user,
            text=text,
            role=ROLE,
        )

    def _on_message(self, message: BroadcastMessage) -> None:
        if isinstance(message, Comment):
            self.chat.append(message.payload)
