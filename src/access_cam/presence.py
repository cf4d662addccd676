"""Presence signal sources feeding the recorder."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from .config import PresenceSettings


class PresenceDetector(ABC):
    """Produces one presence boolean per frame."""

    @abstractmethod
    def detect(self, frame: np.ndarray) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    def reset(self) -> None:  # pragma: no cover - optional override
        return None


class CallablePresence(PresenceDetector):
    """Adapts a plain callable, e.g. an external face detector, to the interface."""

    def __init__(self, func: Callable[[np.ndarray], bool]) -> None:
        self._func = func

    def detect(self, frame: np.ndarray) -> bool:
        return bool(self._func(frame))


@dataclass
class FrameDifferencePresence(PresenceDetector):
    """Frame differencing with a persistence requirement and a re-trigger cooldown.

    Presence is reported once activity has been seen on ``min_motion_frames``
    consecutive frames and stays asserted while activity continues. After it
    drops, new triggers are suppressed for ``cooldown_frames`` frames.
    """

    sensitivity: int = 50
    min_motion_frames: int = 3
    cooldown_frames: int = 0
    _previous_frame: np.ndarray | None = field(init=False, default=None)
    _streak: int = field(init=False, default=0)
    _cooldown: int = field(init=False, default=0)
    _present: bool = field(init=False, default=False)
    _last_activity: float = field(init=False, default=0.0)

    def __post_init__(self) -> None:
        self.sensitivity = min(100, max(0, int(self.sensitivity)))
        self.min_motion_frames = max(1, int(self.min_motion_frames))
        self.cooldown_frames = max(0, int(self.cooldown_frames))

    @classmethod
    def from_settings(cls, settings: PresenceSettings) -> "FrameDifferencePresence":
        return cls(
            sensitivity=settings.sensitivity,
            min_motion_frames=settings.min_motion_frames,
            cooldown_frames=settings.cooldown_frames,
        )

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def reset(self) -> None:
        self._previous_frame = None
        self._streak = 0
        self._cooldown = 0
        self._present = False
        self._last_activity = 0.0

    def detect(self, frame: np.ndarray) -> bool:
        array = np.asarray(frame)
        if array.ndim == 3:
            # Grayscale and downsample to reduce noise and processing cost.
            sample = np.mean(array[..., :3].astype(np.float32), axis=2)
        elif array.ndim == 2:
            sample = array.astype(np.float32)
        else:
            return False
        sample = sample[::4, ::4]
        if sample.size == 0:
            return False

        previous = self._previous_frame
        self._previous_frame = sample
        if previous is None or previous.shape != sample.shape:
            self._streak = 0
            return self._set_present(False)

        activity = float(np.abs(sample - previous).mean())
        self._last_activity = activity
        active = activity >= self._threshold()

        if self._present:
            return self._set_present(active)

        if self._cooldown > 0:
            self._cooldown -= 1
            self._streak = 0
            return False

        self._streak = self._streak + 1 if active else 0
        return self._set_present(self._streak >= self.min_motion_frames)

    def _set_present(self, present: bool) -> bool:
        if self._present and not present:
            self._cooldown = self.cooldown_frames
            self._streak = 0
        self._present = present
        return present

    def _threshold(self) -> float:
        # Larger sensitivity lowers the activity threshold.
        minimum = 1.0
        maximum = 12.0
        scale = (100 - self.sensitivity) / 100.0
        return minimum + (maximum - minimum) * scale


__all__ = ["CallablePresence", "FrameDifferencePresence", "PresenceDetector"]
