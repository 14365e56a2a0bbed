"""
Frame sampler: rasterize the live video source into a small JPEG data URI.

Runs at 10 Hz while streaming, so it trades fidelity for size:
fixed 1280x720 raster, JPEG quality 60. One call = one frame; the period
is driven by a PeriodicTicker owned by the admin controller.
"""

from __future__ import annotations

import cv2

from audio.pcm import to_transport_text
from constants import (
    FRAME_DATA_URI_PREFIX,
    FRAME_HEIGHT_PX,
    FRAME_JPEG_QUALITY,
    FRAME_WIDTH_PX,
)
from video.camera import VideoSource


class FrameCaptureError(Exception):
    """
    Raised when a single sample cannot be produced.

    No frame available yet, or the encoder rejected it. The tick is skipped;
    there is no retry.
    """


class FrameSampler:
    """Captures the current source frame and encodes it as a JPEG data URI."""

    def __init__(
        self,
        source: VideoSource,
        *,
        width: int = FRAME_WIDTH_PX,
        height: int = FRAME_HEIGHT_PX,
        quality: int = FRAME_JPEG_QUALITY,
    ) -> None:
        if not 0 <= quality <= 100:
            raise ValueError("quality must be within 0..100")
        self._source = source
        self._size = (width, height)
        self._params = [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)]

    def sample_jpeg(self) -> bytes:
        """Return the current frame as JPEG bytes."""
        frame = self._source.read()
        if frame is None:
            raise FrameCaptureError("no frame available from video source")

        if (frame.shape[1], frame.shape[0]) != self._size:
            frame = cv2.resize(frame, self._size, interpolation=cv2.INTER_AREA)

        ok, encoded = cv2.imencode(".jpg", frame, self._params)
        if not ok:
            raise FrameCaptureError("jpeg encoding failed")
        return encoded.tobytes()

    def sample_frame(self) -> str:
        """Return the current frame as a `data:image/jpeg;base64,...` URI."""
        return FRAME_DATA_URI_PREFIX + to_transport_text(self.sample_jpeg())


def data_uri_payload(data_uri: str) -> str:
    """Strip the data-URI header, leaving the base64 image body."""
    _, sep, body = data_uri.partition(",")
    return body if sep else data_uri
