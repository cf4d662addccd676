"""Presence-triggered clip recording core."""

from .buffer import PreRollBuffer
from .machine import ClipInProgress, PresenceRecorder, RecorderState
from .metadata import ClipMetadata, ClipMetadataEmitter, ClipMetadataSink
from .pacing import FramePacer
from .writer import (
    ClipOpenError,
    ClipWriteError,
    ClipWriter,
    ClipWriterError,
    VideoClipWriter,
    open_video_clip_writer,
)

__all__ = [
    "ClipInProgress",
    "ClipMetadata",
    "ClipMetadataEmitter",
    "ClipMetadataSink",
    "ClipOpenError",
    "ClipWriteError",
    "ClipWriter",
    "ClipWriterError",
    "FramePacer",
    "PreRollBuffer",
    "PresenceRecorder",
    "RecorderState",
    "VideoClipWriter",
    "open_video_clip_writer",
]
