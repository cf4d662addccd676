"""Camera source abstractions."""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Iterable

import numpy as np

from .config import CAMERA_SOURCES, CaptureSettings

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """Raised when the camera cannot be initialised or read."""


class BaseCamera(ABC):
    """Abstract camera capable of producing RGB frames."""

    @abstractmethod
    async def get_frame(self) -> np.ndarray:  # pragma: no cover - interface only
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - optional override
        return None


def summarise_exception(exc: BaseException) -> str:
    """Collect the unique error messages from an exception chain."""

    details: list[str] = []
    seen: set[str] = set()
    to_consider: Iterable[BaseException | None] = (
        exc,
        getattr(exc, "__cause__", None),
        getattr(exc, "__context__", None),
    )
    for candidate in to_consider:
        if candidate is None:
            continue
        text = str(candidate).strip()
        if text and text not in seen:
            details.append(text)
            seen.add(text)
    return " | ".join(details)


class OpenCVCamera(BaseCamera):
    """USB webcam implementation using OpenCV VideoCapture."""

    def __init__(
        self,
        index: int = 0,
        resolution: tuple[int, int] | None = None,
        *,
        fps: int | None = None,
    ) -> None:
        try:
            import cv2
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise CameraError("OpenCV is not installed") from exc

        self._cv2 = cv2
        self._capture = cv2.VideoCapture(index)
        if not self._capture.isOpened():
            raise CameraError(f"Failed to open camera index {index}")
        if resolution is not None:
            width, height = resolution
            self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, float(width))
            self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, float(height))
        if fps is not None and fps > 0:
            self._capture.set(cv2.CAP_PROP_FPS, float(fps))
        logger.info(
            "Camera %d opened at %dx%d, %.1f fps",
            index,
            int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            float(self._capture.get(cv2.CAP_PROP_FPS)),
        )

    async def get_frame(self) -> np.ndarray:
        ret, frame = await asyncio.to_thread(self._capture.read)
        if not ret:
            raise CameraError("Failed to read frame from OpenCV camera")
        return self._cv2.cvtColor(frame, self._cv2.COLOR_BGR2RGB)

    async def close(self) -> None:
        await asyncio.to_thread(self._capture.release)


class SyntheticCamera(BaseCamera):
    """Generates synthetic frames for development and testing.

    A bright block sweeps across the frame for ``active_seconds`` out of every
    ``period_seconds`` so motion-based presence detection has something to
    trigger on.
    """

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        *,
        resolution: tuple[int, int] | None = None,
        period_seconds: float = 20.0,
        active_seconds: float = 5.0,
    ) -> None:
        if resolution is not None:
            width, height = resolution
        self._width = int(width)
        self._height = int(height)
        self._period = max(0.1, float(period_seconds))
        self._active = min(self._period, max(0.0, float(active_seconds)))
        self._start = time.perf_counter()

    def render(self, elapsed: float) -> np.ndarray:
        horizontal = np.linspace(0, 255, self._width, dtype=np.uint8)
        vertical = np.linspace(0, 255, self._height, dtype=np.uint8).reshape(-1, 1)
        red = np.tile(horizontal, (self._height, 1))
        blue = np.tile(vertical, (1, self._width))
        green = np.zeros_like(red)
        frame = np.stack([red, green, blue], axis=2)
        phase = elapsed % self._period
        if phase < self._active:
            block = max(1, self._width // 8)
            x = int((phase / max(self._active, 1e-6)) * (self._width - block))
            frame[:, x : x + block, :] = 255
        return frame.astype(np.uint8)

    async def get_frame(self) -> np.ndarray:
        return self.render(time.perf_counter() - self._start)


def create_camera(settings: CaptureSettings) -> BaseCamera:
    """Create the camera selected by *settings*."""

    if settings.camera == "synthetic":
        return SyntheticCamera(resolution=settings.resolution)
    if settings.camera == "opencv":
        return OpenCVCamera(settings.device_index, resolution=settings.resolution, fps=settings.fps)
    raise CameraError(
        f"Unknown camera choice: {settings.camera} (expected one of {', '.join(CAMERA_SOURCES)})"
    )


__all__ = [
    "BaseCamera",
    "CameraError",
    "OpenCVCamera",
    "SyntheticCamera",
    "create_camera",
    "summarise_exception",
]
