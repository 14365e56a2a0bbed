"""
Capture device errors.

Shared by the camera, microphone and speaker wrappers so controllers can
treat "device unavailable or denied" uniformly.
"""


class MediaAcquisitionError(Exception):
    """
    Raised when a camera, microphone or audio output cannot be opened.

    Reported through the controller status line. No retry; the feature
    that needed the device stays off.
    """
