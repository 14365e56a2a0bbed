# pylint: disable=missing-module-docstring,missing-function-docstring

import random
from typing import Any

import numpy as np
import pytest

from audio.output import RecordingAudioOutput
from audio.pcm import encode_capture_block
from audio.playback import PlaybackScheduler
from audio.segments import AudioSegment, decode_audio_segment
from constants import PLAYBACK_SAMPLE_RATE_HZ


def segment_of(seconds: float, rate: int = PLAYBACK_SAMPLE_RATE_HZ) -> AudioSegment:
    return AudioSegment(
        samples=np.zeros(int(round(seconds * rate)), dtype=np.float32),
        sample_rate_hz=rate,
    )


# ---------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------

def test_segment_duration_is_samples_over_rate():
    seg = AudioSegment(samples=np.zeros(12000, dtype=np.float32))

    assert seg.sample_count == 12000
    assert seg.duration == pytest.approx(0.5)


def test_decode_segment_from_transport_text():
    data = encode_capture_block(np.zeros(2400, dtype=np.float32))

    seg = decode_audio_segment(data)

    assert seg.sample_rate_hz == 24000
    assert seg.duration == pytest.approx(0.1)


# ---------------------------------------------------------------------
# Cursor arithmetic
# ---------------------------------------------------------------------

def test_cursor_starts_at_zero():
    assert PlaybackScheduler().next_start_time == 0.0


def test_back_to_back_segments_leave_no_gap():
    sched = PlaybackScheduler()

    first = sched.enqueue(segment_of(5), clock_now=10)
    second = sched.enqueue(segment_of(3), clock_now=12)

    assert (first.start_time, first.end_time) == (10, 15)
    assert (second.start_time, second.end_time) == (15, 18)
    assert sched.next_start_time == 18


def test_late_segment_starts_at_clock_not_stale_cursor():
    sched = PlaybackScheduler()

    sched.enqueue(segment_of(10), clock_now=0)
    late = sched.enqueue(segment_of(2), clock_now=20)

    assert late.start_time == 20
    assert sched.next_start_time == 22


def test_clock_going_backwards_cannot_cause_overlap():
    sched = PlaybackScheduler()

    sched.enqueue(segment_of(1), clock_now=5)
    jittered = sched.enqueue(segment_of(1), clock_now=2)

    assert jittered.start_time == 6


def test_random_jitter_keeps_intervals_disjoint_and_ordered():
    rng = random.Random(1234)
    sched = PlaybackScheduler()
    intervals = []
    now = 0.0

    for _ in range(200):
        now = max(0.0, now + rng.uniform(-0.3, 0.5))
        seg = segment_of(rng.choice([0.0, 0.02, 0.1, 0.37]))
        scheduled = sched.enqueue(seg, clock_now=now)
        intervals.append((scheduled.start_time, scheduled.end_time))

    for (s0, e0), (s1, e1) in zip(intervals, intervals[1:]):
        assert s0 <= e0
        assert e0 <= s1
        assert s1 <= e1


def test_empty_segment_is_scheduled_without_moving_cursor():
    sched = PlaybackScheduler()
    sched.enqueue(segment_of(1), clock_now=0)

    empty = sched.enqueue(segment_of(0), clock_now=0)

    assert empty.duration == 0
    assert sched.next_start_time == 1


# ---------------------------------------------------------------------
# Output clock
# ---------------------------------------------------------------------

def test_uses_output_clock_and_hands_segment_to_output():
    now = [3.0]
    out = RecordingAudioOutput(clock=lambda: now[0])
    sched = PlaybackScheduler(out)
    seg = segment_of(0.5)

    sched.enqueue(seg)
    now[0] = 3.1
    sched.enqueue(seg)

    assert [start for start, _ in out.scheduled] == [3.0, 3.5]
    assert sched.next_start_time == pytest.approx(4.0)


def test_recording_output_keeps_only_recent_history():
    out = RecordingAudioOutput(clock=lambda: 0.0, history=2)
    sched = PlaybackScheduler(out)

    for _ in range(5):
        sched.enqueue(segment_of(0.5))

    assert [start for start, _ in out.scheduled] == [1.5, 2.0]
    assert out.scheduled_total == 5
    assert sched.scheduled_count == 5


def test_without_output_clock_now_is_required():
    with pytest.raises(ValueError):
        PlaybackScheduler().enqueue(segment_of(1))


def test_pending_seconds():
    sched = PlaybackScheduler()
    sched.enqueue(segment_of(2), clock_now=1)

    assert sched.pending_seconds(2.5) == pytest.approx(0.5)
    assert sched.pending_seconds(10) == 0.0


# ---------------------------------------------------------------------
# Decode failures
# ---------------------------------------------------------------------

def test_malformed_segment_is_dropped_and_cursor_untouched(events: list[dict[str, Any]]):
    sched = PlaybackScheduler()
    sched.enqueue(segment_of(2), clock_now=4)

    assert sched.enqueue_encoded("%%% not base64 %%%", clock_now=5) is None
    assert sched.enqueue_encoded("AAE", clock_now=5) is None  # bad padding
    assert sched.next_start_time == 6
    assert sched.dropped_count == 2
    assert [e["event_type"] for e in events].count("AUDIO_SEGMENT_DROPPED") == 2


def test_truncated_sample_is_dropped():
    sched = PlaybackScheduler()

    # three bytes: valid base64 but not a whole PCM16 sample
    assert sched.enqueue_encoded("AAEC", clock_now=0) is None
    assert sched.next_start_time == 0.0


def test_next_segment_after_drop_schedules_against_existing_cursor():
    sched = PlaybackScheduler()
    sched.enqueue(segment_of(1), clock_now=0)
    sched.enqueue_encoded("!!", clock_now=0)

    ok = sched.enqueue_encoded(encode_capture_block(np.zeros(2400)), clock_now=0.2)

    assert ok is not None
    assert ok.start_time == 1
    assert sched.snapshot() == {
        "next_start_time": pytest.approx(1.1),
        "scheduled": 2,
        "dropped": 1,
    }
