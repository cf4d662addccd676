"""Clip writers owning exactly one destination file per clip."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fractions import Fraction
from pathlib import Path
from typing import Callable, Protocol, Sequence

import av
import numpy as np

logger = logging.getLogger(__name__)


class ClipWriterError(RuntimeError):
    """Base class for clip destination failures."""


class ClipOpenError(ClipWriterError):
    """Raised when a clip destination cannot be created."""


class ClipWriteError(ClipWriterError):
    """Raised when appending a frame to an open clip fails."""


class ClipWriter(Protocol):
    """Append-only destination for the frames of one clip."""

    path: Path

    @property
    def frames_written(self) -> int:
        ...

    @property
    def closed(self) -> bool:
        ...

    def write(self, frame: np.ndarray) -> None:
        ...

    def close(self) -> None:
        ...


ClipWriterFactory = Callable[[Path, int, int], ClipWriter]
"""Callable opening a writer for ``(path, width, height)``; raises :class:`ClipOpenError`."""


def ensure_rgb_frame(frame: np.ndarray | Sequence, *, even: bool = True) -> np.ndarray:
    """Return a contiguous RGB frame suitable for encoding."""

    array = np.asarray(frame)
    if array.ndim == 2:
        array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
    elif array.ndim == 3:
        if array.shape[2] == 1:
            array = np.repeat(array, 3, axis=2)
        elif array.shape[2] > 3:
            array = array[:, :, :3]
    else:
        raise ValueError("Expected a 2D or 3D frame for encoding")

    if array.dtype != np.uint8:
        array = np.clip(array, 0, 255).astype(np.uint8)

    if even:
        height, width = array.shape[:2]
        if width % 2:
            array = array[:, : width - 1, :]
        if height % 2:
            array = array[: height - 1, :, :]

    if not array.flags["C_CONTIGUOUS"]:
        array = np.ascontiguousarray(array)

    return array


def encoded_size(frame: np.ndarray | Sequence) -> tuple[int, int]:
    """Return the ``(width, height)`` a frame occupies once prepared for encoding."""

    height, width = ensure_rgb_frame(frame, even=True).shape[:2]
    return int(width), int(height)


def codec_candidates(codec: str) -> list[str]:
    codec = codec.lower()
    if codec in {"h264", "libx264"}:
        return ["libx264", "h264", "mpeg4"]
    if codec in {"hevc", "h265", "libx265"}:
        return ["libx265", "hevc", "libx264", "h264"]
    if codec in {"xvid", "mpeg4", "libxvid"}:
        return ["mpeg4", "libxvid"]
    if codec in {"mjpeg", "mjpg"}:
        return ["mjpeg"]
    return [codec, "libx264", "h264", "mpeg4"]


@dataclass(slots=True)
class VideoClipWriter:
    """Incrementally encode one clip with PyAV.

    Every written frame occupies exactly one output tick of ``1 / fps``; the
    caller is responsible for pacing.
    """

    path: Path
    fps: float
    codec: str
    width: int
    height: int
    _container: av.container.OutputContainer | None = field(init=False, default=None)
    _stream: av.video.stream.VideoStream | None = field(init=False, default=None)
    _frames_written: int = field(init=False, default=0)
    _codec_name: str | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        if self.fps <= 0:
            raise ClipOpenError("fps must be positive")
        if self.width <= 0 or self.height <= 0:
            raise ClipOpenError("Clip dimensions must be positive")
        self._open()

    # ------------------------------------------------------------------
    def _open(self) -> None:
        # FFmpeg defers opening the file until the first packet is muxed.
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("wb"):
                pass
        except OSError as exc:
            raise ClipOpenError(f"Unable to create clip {self.path}: {exc}") from exc
        try:
            container = av.open(self.path.as_posix(), mode="w")
        except (av.FFmpegError, OSError, ValueError) as exc:
            self._discard_partial_file()
            raise ClipOpenError(f"Unable to create clip {self.path}: {exc}") from exc
        rate = Fraction(self.fps).limit_denominator(1000)
        stream = None
        for codec in codec_candidates(self.codec):
            try:
                stream = container.add_stream(codec, rate=rate)
            except (av.FFmpegError, ValueError):
                continue
            else:
                self._codec_name = codec
                break
        if stream is None:
            container.close()
            self._discard_partial_file()
            raise ClipOpenError(f"No compatible encoder available for {self.codec!r}")
        stream.width = int(self.width)
        stream.height = int(self.height)
        stream.pix_fmt = "yuv420p"
        stream.time_base = Fraction(rate.denominator, rate.numerator)
        self._container = container
        self._stream = stream

    def _discard_partial_file(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError:  # pragma: no cover - best effort cleanup
            logger.debug("Unable to remove partial clip %s", self.path)

    # ------------------------------------------------------------------
    @property
    def frames_written(self) -> int:
        return self._frames_written

    @property
    def closed(self) -> bool:
        return self._container is None

    @property
    def codec_name(self) -> str | None:
        return self._codec_name

    def write(self, frame: np.ndarray | Sequence) -> None:
        if self._stream is None or self._container is None:
            raise ClipWriteError("Clip writer has been closed")
        try:
            rgb = ensure_rgb_frame(frame, even=True)
            video_frame = av.VideoFrame.from_ndarray(rgb, format="rgb24")
            video_frame.pts = self._frames_written
            for packet in self._stream.encode(video_frame):
                self._container.mux(packet)
        except (av.FFmpegError, OSError, ValueError) as exc:
            raise ClipWriteError(f"Failed to write frame to {self.path}: {exc}") from exc
        self._frames_written += 1

    def close(self) -> None:
        if self._stream is None or self._container is None:
            return
        stream, container = self._stream, self._container
        self._stream = None
        self._container = None
        try:
            for packet in stream.encode():
                container.mux(packet)
        finally:
            container.close()

    # ------------------------------------------------------------------
    def __enter__(self) -> "VideoClipWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_video_clip_writer(*, fps: float, codec: str) -> ClipWriterFactory:
    """Return a factory that opens :class:`VideoClipWriter` instances."""

    def _factory(path: Path, width: int, height: int) -> ClipWriter:
        return VideoClipWriter(path=path, fps=fps, codec=codec, width=width, height=height)

    return _factory


__all__ = [
    "ClipOpenError",
    "ClipWriteError",
    "ClipWriter",
    "ClipWriterError",
    "ClipWriterFactory",
    "VideoClipWriter",
    "codec_candidates",
    "encoded_size",
    "ensure_rgb_frame",
    "open_video_clip_writer",
]
