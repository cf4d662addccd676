"""Bounded ring buffer retaining recent frames for pre-roll."""
from __future__ import annotations

from collections import deque
from typing import Iterator, List

import numpy as np


class PreRollBuffer:
    """Fixed-capacity FIFO of owned frame copies.

    Frames are copied on entry so nothing aliases a buffer the frame source may
    reuse. A capacity of zero disables retention entirely.
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = max(0, int(capacity))
        self._frames: deque[np.ndarray] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def enabled(self) -> bool:
        return self._capacity > 0

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self._frames)

    def add(self, frame: np.ndarray) -> None:
        if self._capacity <= 0:
            return
        retained = np.array(frame, copy=True)
        retained.setflags(write=False)
        self._frames.append(retained)
        while len(self._frames) > self._capacity:
            self._frames.popleft()

    def drain(self) -> List[np.ndarray]:
        """Hand every retained frame to the caller, oldest first, and empty the buffer."""

        frames = list(self._frames)
        self._frames.clear()
        return frames

    def clear(self) -> None:
        self._frames.clear()


__all__ = ["PreRollBuffer"]
