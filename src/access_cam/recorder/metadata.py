"""Finalised clip metadata and its publication to external sinks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

from ..timezones import ResolvedTimeZone

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClipMetadata:
    """Summary of one closed clip."""

    start_utc: datetime
    end_utc: datetime
    start_local: datetime
    end_local: datetime
    duration_s: float
    frames: int
    fps: float
    path: Path
    time_zone: str

    def to_dict(self) -> dict[str, object]:
        return {
            "start_utc": self.start_utc.isoformat(),
            "end_utc": self.end_utc.isoformat(),
            "start_local": self.start_local.isoformat(),
            "end_local": self.end_local.isoformat(),
            "duration_s": round(float(self.duration_s), 3),
            "frames": int(self.frames),
            "fps": float(self.fps),
            "path": str(self.path),
            "time_zone": self.time_zone,
        }


@runtime_checkable
class ClipMetadataSink(Protocol):
    """Receives one :class:`ClipMetadata` per closed clip."""

    def publish(self, metadata: ClipMetadata) -> None:
        ...


class ClipMetadataEmitter:
    """Build clip metadata and hand it to every registered sink.

    Sink failures are logged and discarded; they never reach the recorder.
    """

    def __init__(
        self,
        time_zone: ResolvedTimeZone,
        sinks: Iterable[ClipMetadataSink] = (),
    ) -> None:
        self._time_zone = time_zone
        self._sinks: list[ClipMetadataSink] = list(sinks)

    @property
    def sinks(self) -> tuple[ClipMetadataSink, ...]:
        return tuple(self._sinks)

    def add_sink(self, sink: ClipMetadataSink) -> None:
        self._sinks.append(sink)

    def build(
        self,
        *,
        start: datetime,
        end: datetime,
        frames: int,
        fps: float,
        path: Path,
    ) -> ClipMetadata:
        return ClipMetadata(
            start_utc=start,
            end_utc=end,
            start_local=self._time_zone.localise(start),
            end_local=self._time_zone.localise(end),
            duration_s=max(0.0, (end - start).total_seconds()),
            frames=int(frames),
            fps=float(fps),
            path=Path(path),
            time_zone=self._time_zone.key,
        )

    def emit(self, metadata: ClipMetadata) -> None:
        for sink in list(self._sinks):
            try:
                sink.publish(metadata)
            except Exception:
                logger.exception("Clip metadata sink %r failed for %s", sink, metadata.path)


__all__ = ["ClipMetadata", "ClipMetadataEmitter", "ClipMetadataSink"]
