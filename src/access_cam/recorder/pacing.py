"""Fixed-rate output scheduling for irregular frame arrivals."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List


class FramePacer:
    """Decide how many output slots are due at each tick.

    Slot ``n`` of a clip is due at ``anchor + n * interval``, computed from the
    anchor each time. Slots are handed out at most once and in order.
    """

    def __init__(self, fps: float, anchor: datetime) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        self._fps = float(fps)
        self._anchor = anchor
        self._slot = 0

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=1.0 / self._fps)

    @property
    def anchor(self) -> datetime:
        return self._anchor

    @property
    def slots_issued(self) -> int:
        return self._slot

    @property
    def next_due(self) -> datetime:
        return self._slot_time(self._slot)

    def reset(self, anchor: datetime) -> None:
        self._anchor = anchor
        self._slot = 0

    def due(self, now: datetime) -> List[datetime]:
        """Return the due instants of every slot not yet issued up to *now*."""

        slots: List[datetime] = []
        due_at = self._slot_time(self._slot)
        while due_at <= now:
            slots.append(due_at)
            self._slot += 1
            due_at = self._slot_time(self._slot)
        return slots

    def _slot_time(self, index: int) -> datetime:
        return self._anchor + timedelta(seconds=index / self._fps)


__all__ = ["FramePacer"]
