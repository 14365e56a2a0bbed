# pylint: disable=missing-module-docstring,missing-function-docstring

import base64

import cv2
import numpy as np
import pytest

from fakes import FakeCamera
from video.sampler import FrameCaptureError, FrameSampler, data_uri_payload


def test_sample_frame_is_jpeg_data_uri():
    camera = FakeCamera()
    camera.open()
    sampler = FrameSampler(camera, width=64, height=36)

    uri = sampler.sample_frame()

    assert uri.startswith("data:image/jpeg;base64,")
    jpeg = base64.b64decode(data_uri_payload(uri))
    assert jpeg[:2] == b"\xff\xd8"


def test_frames_are_resized_to_target_raster():
    camera = FakeCamera(width=320, height=240)
    camera.open()
    sampler = FrameSampler(camera, width=160, height=90)

    decoded = cv2.imdecode(np.frombuffer(sampler.sample_jpeg(), np.uint8), cv2.IMREAD_COLOR)

    assert decoded.shape == (90, 160, 3)


def test_lower_quality_gives_smaller_images():
    rng = np.random.default_rng(7)
    camera = FakeCamera(width=160, height=90)
    camera.frame = rng.integers(0, 255, size=(90, 160, 3), dtype=np.uint8)
    camera.open()

    low = FrameSampler(camera, width=160, height=90, quality=10).sample_jpeg()
    high = FrameSampler(camera, width=160, height=90, quality=95).sample_jpeg()

    assert len(low) < len(high)


def test_no_frame_available_raises_capture_error():
    camera = FakeCamera()  # never opened: read() -> None

    with pytest.raises(FrameCaptureError):
        FrameSampler(camera, width=64, height=36).sample_frame()


def test_quality_must_be_in_range():
    with pytest.raises(ValueError):
        FrameSampler(FakeCamera(), quality=101)


def test_data_uri_payload_strips_header_only():
    assert data_uri_payload("data:image/jpeg;base64,QUJD") == "QUJD"
    assert data_uri_payload("QUJD") == "QUJD"
