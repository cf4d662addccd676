"""Asynchronous capture loop driving the recorder once per frame."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import numpy as np

from .camera import BaseCamera, summarise_exception
from .presence import PresenceDetector
from .recorder import PresenceRecorder, RecorderState

logger = logging.getLogger(__name__)

FPS_WINDOW_SECONDS = 2.0


class CaptureLoop:
    """Pull frames from a camera, evaluate presence and tick the recorder.

    Every tick runs on the event loop thread, so the recorder is only ever
    touched from one place.
    """

    def __init__(
        self,
        camera: BaseCamera,
        detector: PresenceDetector,
        recorder: PresenceRecorder,
        *,
        fps: float | None = None,
        retry_interval: float = 0.1,
    ) -> None:
        self._camera = camera
        self._detector = detector
        self._recorder = recorder
        self._frame_interval = 1.0 / fps if fps else 0.0
        self._retry_interval = max(0.0, float(retry_interval))
        self._task: Optional[asyncio.Task[None]] = None
        self._shutdown_event = asyncio.Event()
        self._frames = 0
        self._camera_errors = 0
        self._last_error: str | None = None
        self._window_start = time.perf_counter()
        self._window_frames = 0
        self._input_fps: float | None = None
        self._last_presence = False

    @property
    def recorder(self) -> PresenceRecorder:
        return self._recorder

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Begin processing frames in a background task."""

        if self._task is not None:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._run(), name="access-cam-capture-loop")

    async def stop(self) -> None:
        """Stop processing, release the camera and finalise any open clip."""

        self._shutdown_event.set()
        try:
            task, self._task = self._task, None
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception("Capture loop terminated with an error")
            try:
                await self._camera.close()
            except Exception as exc:  # pragma: no cover - best effort cleanup
                logger.warning("Failed to close camera: %s", exc)
        finally:
            self._recorder.shutdown()

    async def run_once(self) -> RecorderState | None:
        """Capture and process a single frame; returns None when the camera failed."""

        try:
            frame = await self._camera.get_frame()
        except Exception as exc:
            self._camera_errors += 1
            self._last_error = summarise_exception(exc)
            logger.error("Failed to read frame from camera: %s", self._last_error)
            return None
        return self.process_frame(frame)

    def process_frame(self, frame: np.ndarray) -> RecorderState:
        presence = self._detect(frame)
        self._last_presence = presence
        state = self._recorder.update(frame, presence)
        self._frames += 1
        self._track_fps()
        return state

    def stats(self) -> dict[str, object]:
        return {
            "running": self.running,
            "frames": self._frames,
            "input_fps": None if self._input_fps is None else round(self._input_fps, 1),
            "presence": self._last_presence,
            "camera_errors": self._camera_errors,
            "last_error": self._last_error,
        }

    # ------------------------------------------------------------------
    def _detect(self, frame: np.ndarray) -> bool:
        try:
            return bool(self._detector.detect(frame))
        except Exception:
            logger.exception("Presence detector failed; treating frame as empty")
            return False

    def _track_fps(self) -> None:
        self._window_frames += 1
        now = time.perf_counter()
        elapsed = now - self._window_start
        if elapsed >= FPS_WINDOW_SECONDS:
            self._input_fps = self._window_frames / elapsed
            self._window_frames = 0
            self._window_start = now

    async def _run(self) -> None:
        try:
            while not self._shutdown_event.is_set():
                started = time.perf_counter()
                state = await self.run_once()
                if state is None:
                    await asyncio.sleep(self._retry_interval)
                    continue
                # Sleep every tick so API handlers sharing the loop get a turn.
                remaining = self._frame_interval - (time.perf_counter() - started)
                await asyncio.sleep(max(0.0, remaining))
        except asyncio.CancelledError:  # pragma: no cover - task shutdown
            pass


__all__ = ["CaptureLoop"]
