# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import threading
from typing import Any

import numpy as np
import pytest

from adapters.live.base import ConfigurationError
from audio.output import RecordingAudioOutput
from audio.pcm import encode_capture_block
from bus.broadcast import BroadcastBus
from commentary.state import BridgeState
from fakes import FakeCamera, FakeEndpoint, FakeMicrophone, drain
from protocol.messages import BroadcastMessage, Comment, StatusUpdate, VideoFrame
from session.admin import AdminController
from session.chat import new_chat_message
from video.sampler import FrameSampler

TOPIC = "easp_2025_stream"


class BlockingSampler(FrameSampler):
    """Holds sample_frame() on its worker thread until released."""

    def __init__(self, camera: FakeCamera) -> None:
        super().__init__(camera, width=64, height=36)
        self.entered = threading.Event()
        self.release = threading.Event()

    def sample_frame(self) -> str:
        self.entered.set()
        self.release.wait(timeout=2)
        return super().sample_frame()


class Harness:
    def __init__(
        self,
        *,
        camera: FakeCamera | None = None,
        endpoint: FakeEndpoint | None = None,
        microphone: FakeMicrophone | None = None,
    ) -> None:
        self.bus = BroadcastBus()
        self.camera = camera or FakeCamera()
        self.endpoint = endpoint or FakeEndpoint()
        self.microphone = microphone or FakeMicrophone()
        self.output = RecordingAudioOutput(clock=lambda: 0.0)
        self.admin = AdminController(
            member=self.bus.join(TOPIC),
            camera=self.camera,
            microphone=self.microphone,
            endpoint=self.endpoint,
            output=self.output,
            sampler=FrameSampler(self.camera, width=64, height=36),
            frame_interval_s=0.01,
            ai_frame_interval_s=0.02,
        )
        self.admin.attach()

        self.viewer_member = self.bus.join(TOPIC)
        self.received: list[BroadcastMessage] = []
        self.viewer_member.subscribe(self.received.append)

    def of_type(self, cls: type) -> list[Any]:
        return [m for m in self.received if isinstance(m, cls)]


# ---------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_initial_status():
    h = Harness()

    assert h.admin.status_message == "Ready to start"
    assert not h.admin.status.is_live
    assert not h.admin.status.ai_enabled
    h.admin.close()


@pytest.mark.asyncio
async def test_start_stream_announces_live_and_publishes_frames():
    h = Harness()

    assert await h.admin.start_stream()
    await asyncio.sleep(0.06)

    assert h.admin.status.is_live
    assert h.admin.status_message == "LIVE - broadcasting"
    assert h.camera.is_open

    h.admin.stop_stream()
    await drain()
    assert h.of_type(StatusUpdate)[0].live is True
    frames = h.of_type(VideoFrame)
    assert len(frames) >= 2
    assert frames[0].payload.startswith("data:image/jpeg;base64,")
    assert h.admin.frames_published == len(frames)
    h.admin.close()


@pytest.mark.asyncio
async def test_stop_stream_releases_camera_and_stops_frames():
    h = Harness()
    await h.admin.start_stream()
    await asyncio.sleep(0.03)

    h.admin.stop_stream()
    await drain()
    frames_at_stop = len(h.of_type(VideoFrame))
    await asyncio.sleep(0.04)
    await drain()

    assert not h.admin.status.is_live
    assert h.admin.status_message == "Broadcast stopped"
    assert not h.camera.is_open
    assert h.of_type(StatusUpdate)[-1].live is False
    assert len(h.of_type(VideoFrame)) == frames_at_stop
    h.admin.close()


@pytest.mark.asyncio
async def test_frame_encoding_runs_off_the_event_loop_and_is_discarded_after_stop():
    bus = BroadcastBus()
    camera = FakeCamera()
    sampler = BlockingSampler(camera)
    admin = AdminController(
        member=bus.join(TOPIC),
        camera=camera,
        microphone=FakeMicrophone(),
        endpoint=FakeEndpoint(),
        output=RecordingAudioOutput(clock=lambda: 0.0),
        sampler=sampler,
        frame_interval_s=0.01,
    )
    admin.attach()
    viewer = bus.join(TOPIC)
    got: list[BroadcastMessage] = []
    viewer.subscribe(got.append)

    await admin.start_stream()
    assert await asyncio.to_thread(sampler.entered.wait, 2)

    # Bus deliveries keep flowing while a frame is being encoded.
    bus.join(TOPIC).publish(StatusUpdate(live=True, timestamp=9))
    await drain()
    assert StatusUpdate(live=True, timestamp=9) in got

    admin.stop_stream()
    sampler.release.set()
    await asyncio.sleep(0.03)
    await drain()

    assert [m for m in got if isinstance(m, VideoFrame)] == []
    assert admin.frames_published == 0
    admin.close()


@pytest.mark.asyncio
async def test_camera_failure_keeps_stream_off(events: list[dict[str, Any]]):
    h = Harness(camera=FakeCamera(fail=True))

    assert not await h.admin.start_stream()
    await drain()

    assert not h.admin.status.is_live
    assert h.admin.status_message == "Camera unavailable. Check permissions."
    assert h.received == []
    assert any(e["event_type"] == "STREAM_START_FAILED" for e in events)
    h.admin.close()


@pytest.mark.asyncio
async def test_capture_failure_skips_the_tick(events: list[dict[str, Any]]):
    h = Harness()
    await h.admin.start_stream()
    h.camera.frame = None

    await asyncio.sleep(0.04)
    await drain()

    assert h.of_type(VideoFrame) == []
    assert h.admin.status.is_live
    assert any(e["event_type"] == "FRAME_CAPTURE_FAILED" for e in events)
    h.admin.close()


@pytest.mark.asyncio
async def test_sampling_emits_timing_metric(events: list[dict[str, Any]]):
    h = Harness()
    await h.admin.start_stream()
    await asyncio.sleep(0.03)
    h.admin.close()

    metrics = [e for e in events if e["event_type"] == "METRIC_TIMER"]
    assert metrics
    assert metrics[0]["metric"] == "frame_sample"
    assert metrics[0]["role"] == "admin"


@pytest.mark.asyncio
async def test_toggle_live():
    h = Harness()

    assert await h.admin.toggle_live() is True
    assert await h.admin.toggle_live() is False
    assert not h.camera.is_open
    h.admin.close()


# ---------------------------------------------------------------------
# Narration
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_enable_ai_is_refused_while_not_live():
    h = Harness()

    assert not await h.admin.enable_ai()

    assert h.endpoint.open_calls == 0
    assert h.admin.bridge.state is BridgeState.DISABLED
    assert not h.admin.status.ai_enabled
    assert h.admin.ai_status_message == "Start the broadcast before enabling AI"
    h.admin.close()


@pytest.mark.asyncio
async def test_enable_ai_while_live_connects_and_feeds_frames():
    h = Harness()
    await h.admin.start_stream()

    assert await h.admin.enable_ai()
    await asyncio.sleep(0.06)

    assert h.admin.status.ai_enabled
    assert h.admin.ai_status_message == "AI connected and analyzing..."
    images = [c for c in h.endpoint.sent if c.mime_type == "image/jpeg"]
    assert images
    assert not images[0].data.startswith("data:")
    h.admin.close()


@pytest.mark.asyncio
async def test_stopping_stream_forces_narration_off():
    h = Harness()
    await h.admin.start_stream()
    await h.admin.enable_ai()

    h.admin.stop_stream()

    assert h.admin.bridge.state is BridgeState.CLOSED
    assert not h.admin.status.ai_enabled
    assert not h.microphone.active
    h.admin.close()


@pytest.mark.asyncio
async def test_missing_key_reports_status_and_clears_ai_flag():
    h = Harness(endpoint=FakeEndpoint(error=ConfigurationError("missing API key")))
    await h.admin.start_stream()

    assert not await h.admin.enable_ai()

    assert h.admin.ai_status_message == "AI error: missing API key"
    assert not h.admin.status.ai_enabled
    assert h.admin.status.is_live
    h.admin.close()


@pytest.mark.asyncio
async def test_toggle_ai():
    h = Harness()
    await h.admin.start_stream()

    assert await h.admin.toggle_ai() is True
    assert await h.admin.toggle_ai() is False
    assert h.admin.bridge.state is BridgeState.CLOSED
    h.admin.close()


@pytest.mark.asyncio
async def test_narration_plays_through_admin_scheduler():
    h = Harness()
    await h.admin.start_stream()
    await h.admin.enable_ai()

    h.endpoint.emit_audio(encode_capture_block(np.zeros(12000)))
    h.endpoint.emit_audio(encode_capture_block(np.zeros(12000)))

    assert [start for start, _ in h.output.scheduled] == [0.0, 0.5]
    h.admin.disable_ai()
    assert h.admin.scheduler.next_start_time == pytest.approx(1.0)
    h.admin.close()


@pytest.mark.asyncio
async def test_narration_without_sound_card_is_scheduled_on_a_device_less_clock():
    bus = BroadcastBus()
    endpoint = FakeEndpoint()
    camera = FakeCamera()
    admin = AdminController(
        member=bus.join(TOPIC),
        camera=camera,
        microphone=FakeMicrophone(),
        endpoint=endpoint,
        sampler=FrameSampler(camera, width=64, height=36),
        frame_interval_s=0.01,
    )
    admin.attach()
    await admin.start_stream()
    await admin.enable_ai()

    endpoint.emit_audio(encode_capture_block(np.zeros(12000)))

    assert admin.scheduler.scheduled_count == 1
    assert admin.bridge.state is BridgeState.CONNECTED
    assert admin.status.ai_enabled
    admin.close()


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_whitespace_comment_is_rejected_locally(events: list[dict[str, Any]]):
    h = Harness()

    assert h.admin.submit_comment("   \n\t ") is None
    await drain()

    assert len(h.admin.chat) == 0
    assert h.received == []
    assert any(e["event_type"] == "COMMENT_REJECTED" for e in events)
    h.admin.close()


@pytest.mark.asyncio
async def test_admin_comment_is_logged_locally_and_published():
    h = Harness()

    msg = h.admin.submit_comment("  Bem-vindos!  ")
    await drain()

    assert msg is not None
    assert msg.user == "Admin"
    assert msg.text == "Bem-vindos!"
    assert h.admin.chat.messages == (msg,)
    assert h.of_type(Comment)[0].payload == msg
    h.admin.close()


@pytest.mark.asyncio
async def test_comments_from_viewers_land_in_admin_chat():
    h = Harness()
    chat = new_chat_message("Ana", "Parabéns turma!")
    assert chat is not None

    h.viewer_member.publish(Comment(payload=chat, timestamp=chat.timestamp))
    await drain()

    assert h.admin.chat.messages == (chat,)
    h.admin.close()


# ---------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_close_releases_everything_and_is_idempotent():
    h = Harness()
    await h.admin.start_stream()
    await h.admin.enable_ai()

    h.admin.close()
    h.admin.close()

    assert not h.camera.is_open
    assert not h.microphone.active
    assert h.output.closed
    assert h.bus.member_count(TOPIC) == 1  # only the viewer remains
    assert not await h.admin.start_stream()


@pytest.mark.asyncio
async def test_close_reports_session_counters(events: list[dict[str, Any]]):
    h = Harness()

    h.admin.close()

    counters = {e["metric"]: e["value"] for e in events if e["event_type"] == "METRIC_COUNTER"}
    assert counters == {
        "frames_published": 0,
        "ai_audio_chunks_sent": 0,
        "ai_image_chunks_sent": 0,
    }
