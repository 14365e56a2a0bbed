"""
Video sources for the frame sampler.

A VideoSource yields raw BGR frames (numpy HxWx3 uint8) on demand; it does
not run its own timer. The admin controller owns open/release.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

import cv2
import numpy as np

from constants import FRAME_HEIGHT_PX, FRAME_WIDTH_PX
from media.errors import MediaAcquisitionError
from observability.logger import log_event


class VideoSource(ABC):
    """
    Abstract camera.

    Contract:
    - open() acquires the device or raises MediaAcquisitionError
    - read() returns the latest frame, or None if none is available
    - release() is synchronous and idempotent
    - read() may run on a worker thread; release() must not free the device
      under an in-flight read()
    """

    @abstractmethod
    def open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def read(self) -> np.ndarray | None:
        raise NotImplementedError

    @abstractmethod
    def release(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        raise NotImplementedError


class OpenCVCameraSource(VideoSource):
    """Local camera through cv2.VideoCapture, requested at 1280x720."""

    def __init__(
        self,
        *,
        index: int = 0,
        width: int = FRAME_WIDTH_PX,
        height: int = FRAME_HEIGHT_PX,
    ) -> None:
        self._index = index
        self._width = width
        self._height = height
        self._capture: cv2.VideoCapture | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        if self._capture is not None:
            return

        capture = cv2.VideoCapture(self._index)
        if not capture.isOpened():
            capture.release()
            raise MediaAcquisitionError(f"camera {self._index} unavailable")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        self._capture = capture
        log_event({
            "event_type": "CAMERA_OPENED",
            "camera_index": self._index,
        })

    def read(self) -> np.ndarray | None:
        with self._lock:
            capture = self._capture
            if capture is None:
                return None
            ok, frame = capture.read()
        if not ok:
            return None
        return frame

    def release(self) -> None:
        with self._lock:
            capture = self._capture
            self._capture = None
            if capture is None:
                return
            capture.release()
        log_event({
            "event_type": "CAMERA_RELEASED",
            "camera_index": self._index,
        })
