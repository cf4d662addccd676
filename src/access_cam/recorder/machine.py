"""Presence-triggered, real-time paced clip recording."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Union

import numpy as np

from ..config import RecorderConfig
from ..timezones import ResolvedTimeZone, resolve_time_zone
from .buffer import PreRollBuffer
from .metadata import ClipMetadata, ClipMetadataEmitter, ClipMetadataSink
from .pacing import FramePacer
from .writer import (
    ClipOpenError,
    ClipWriteError,
    ClipWriter,
    ClipWriterFactory,
    encoded_size,
    open_video_clip_writer,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


@dataclass(slots=True)
class ClipInProgress:
    """Book-keeping for the clip currently being written."""

    path: Path
    start: datetime
    last_presence: datetime
    pacer: FramePacer
    frames_written: int = 0


@dataclass(frozen=True, slots=True)
class _Idle:
    pass


@dataclass(slots=True)
class _Recording:
    writer: ClipWriter
    clip: ClipInProgress


_IDLE = _Idle()
_Phase = Union[_Idle, _Recording]


class PresenceRecorder:
    """Decide frame by frame whether to record, and write paced clips.

    Call :meth:`update` exactly once per captured frame from a single thread.
    Recording starts on the first positive presence signal, continues through
    gaps no longer than ``hold_seconds`` and stops once presence has been
    absent for longer than that. Output frames follow the configured rate
    regardless of how quickly frames arrive: slow input is repeated and fast
    input is dropped.
    """

    def __init__(
        self,
        config: RecorderConfig,
        *,
        sinks: Iterable[ClipMetadataSink] = (),
        writer_factory: ClipWriterFactory | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._config.output_dir.mkdir(parents=True, exist_ok=True)
        self._time_zone = resolve_time_zone(
            config.time_zone,
            platform_default=config.platform_time_zone,
            iana_default=config.iana_time_zone,
        )
        self._emitter = ClipMetadataEmitter(self._time_zone, sinks)
        self._pre_roll = PreRollBuffer(config.pre_roll_capacity)
        self._writer_factory = writer_factory or open_video_clip_writer(
            fps=config.target_fps, codec=config.codec
        )
        self._clock: Clock = clock or _utcnow
        self._phase: _Phase = _IDLE
        self._clips_completed = 0
        self._open_failures = 0
        self._write_failures = 0
        self._last_error: str | None = None
        self._last_clip: ClipMetadata | None = None
        logger.info(
            "Recorder ready: fps=%.1f hold=%.1fs pre-roll=%d frames tz=%s (%s)",
            config.target_fps,
            config.hold_seconds,
            self._pre_roll.capacity,
            self._time_zone.key,
            self._time_zone.source,
        )

    # ------------------------------ properties -----------------------------
    @property
    def config(self) -> RecorderConfig:
        return self._config

    @property
    def time_zone(self) -> ResolvedTimeZone:
        return self._time_zone

    @property
    def emitter(self) -> ClipMetadataEmitter:
        return self._emitter

    @property
    def pre_roll(self) -> PreRollBuffer:
        return self._pre_roll

    @property
    def state(self) -> RecorderState:
        if isinstance(self._phase, _Recording):
            return RecorderState.RECORDING
        return RecorderState.IDLE

    @property
    def is_recording(self) -> bool:
        return isinstance(self._phase, _Recording)

    @property
    def active_clip(self) -> ClipInProgress | None:
        if isinstance(self._phase, _Recording):
            return self._phase.clip
        return None

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_clip(self) -> ClipMetadata | None:
        return self._last_clip

    @property
    def clips_completed(self) -> int:
        return self._clips_completed

    # ------------------------------ operations -----------------------------
    def update(
        self,
        frame: np.ndarray,
        presence: bool,
        timestamp: datetime | None = None,
    ) -> RecorderState:
        """Process one captured frame and its presence signal."""

        now = timestamp if timestamp is not None else self._clock()
        present = bool(presence)
        self._pre_roll.add(frame)

        phase = self._phase
        if isinstance(phase, _Idle):
            if not present:
                return RecorderState.IDLE
            recording = self._begin_clip(frame, now)
            if recording is None:
                return self.state
        else:
            recording = phase
            if present:
                recording.clip.last_presence = now

        for _ in recording.clip.pacer.due(now):
            if not self._write(recording, frame, now):
                return RecorderState.IDLE

        if not present:
            gap = (now - recording.clip.last_presence).total_seconds()
            if gap > self._config.hold_seconds:
                self._finish_clip(now, reason="presence lost")
        return self.state

    def close_clip(self, timestamp: datetime | None = None) -> ClipMetadata | None:
        """Force the active clip closed; returns its metadata, if one was open."""

        now = timestamp if timestamp is not None else self._clock()
        return self._finish_clip(now, reason="forced close")

    def shutdown(self) -> ClipMetadata | None:
        """Finalise any open clip and release every retained frame. Idempotent."""

        metadata = self.close_clip()
        self._pre_roll.clear()
        return metadata

    close = shutdown

    def status(self) -> dict[str, object]:
        """Return a JSON-serialisable view of the recorder state."""

        clip = self.active_clip
        payload: dict[str, object] = {
            "state": self.state.value,
            "target_fps": float(self._config.target_fps),
            "hold_seconds": float(self._config.hold_seconds),
            "pre_roll_capacity": self._pre_roll.capacity,
            "pre_roll_frames": len(self._pre_roll),
            "time_zone": self._time_zone.key,
            "clips_completed": self._clips_completed,
            "open_failures": self._open_failures,
            "write_failures": self._write_failures,
            "last_error": self._last_error,
            "active_clip": None,
        }
        if clip is not None:
            payload["active_clip"] = {
                "path": str(clip.path),
                "started_at": clip.start.isoformat(),
                "frames_written": clip.frames_written,
            }
        return payload

    # ----------------------------- implementation --------------------------
    def _begin_clip(self, frame: np.ndarray, now: datetime) -> _Recording | None:
        path = self._clip_path(now)
        width, height = encoded_size(frame)
        try:
            writer = self._writer_factory(path, width, height)
        except ClipOpenError as exc:
            self._open_failures += 1
            self._last_error = str(exc)
            logger.warning("Failed to start recording %s: %s", path, exc)
            return None

        clip = ClipInProgress(
            path=path,
            start=now,
            last_presence=now,
            pacer=FramePacer(self._config.target_fps, anchor=now),
        )
        recording = _Recording(writer=writer, clip=clip)
        self._phase = recording
        logger.info(
            "Recording started: %s (fps=%.1f, tz=%s)",
            path,
            self._config.target_fps,
            self._time_zone.key,
        )
        for buffered in list(self._pre_roll):
            if not self._write(recording, buffered, now):
                return None
        return recording

    def _write(self, recording: _Recording, frame: np.ndarray, now: datetime) -> bool:
        try:
            recording.writer.write(frame)
        except ClipWriteError as exc:
            self._write_failures += 1
            self._last_error = str(exc)
            logger.error("Write to %s failed, closing clip: %s", recording.clip.path, exc)
            self._finish_clip(now, reason="write failure")
            return False
        recording.clip.frames_written += 1
        return True

    def _finish_clip(self, end: datetime, *, reason: str) -> ClipMetadata | None:
        phase = self._phase
        if not isinstance(phase, _Recording):
            return None
        self._phase = _IDLE
        clip = phase.clip
        try:
            phase.writer.close()
        except Exception:
            logger.exception("Failed to finalise clip %s", clip.path)

        metadata = self._emitter.build(
            start=clip.start,
            end=end,
            frames=clip.frames_written,
            fps=self._config.target_fps,
            path=clip.path,
        )
        self._pre_roll.clear()
        self._clips_completed += 1
        self._last_clip = metadata
        logger.info(
            "Recording stopped (%s): %s frames=%d duration=%.2fs",
            reason,
            clip.path,
            metadata.frames,
            metadata.duration_s,
        )
        self._emitter.emit(metadata)
        return metadata

    def _clip_path(self, now: datetime) -> Path:
        stem = f"{self._config.file_prefix}_{self._time_zone.clip_stamp(now)}"
        extension = self._config.container
        candidate = self._config.output_dir / f"{stem}.{extension}"
        suffix = 1
        while candidate.exists():
            candidate = self._config.output_dir / f"{stem}-{suffix}.{extension}"
            suffix += 1
        return candidate

    # ------------------------------------------------------------------
    def __enter__(self) -> "PresenceRecorder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


__all__ = ["ClipInProgress", "PresenceRecorder", "RecorderState"]
