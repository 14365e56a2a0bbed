"""
Microphone capture sources.

A MicrophoneSource delivers fixed-size blocks of float32 mono samples to a
callback running on the event loop that started it. Capture is the only
thing these classes do: encoding and sending belong to the caller.

The sound-card implementation lives in audio.devices.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

BlockHandler = Callable[[np.ndarray], None]


class MicrophoneSource(ABC):
    """
    Abstract microphone.

    Contract:
    - start() acquires the device or raises MediaAcquisitionError
    - on_block is invoked on the caller's event loop, never on a device thread
    - stop() releases the device synchronously and is idempotent
    """

    @abstractmethod
    def start(self, on_block: BlockHandler) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def active(self) -> bool:
        raise NotImplementedError
