"""FastAPI application exposing the recorder status and clip log."""
from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .camera import BaseCamera, CameraError, create_camera
from .clip_log import ClipLog
from .config import ConfigStore, default_config_path
from .presence import FrameDifferencePresence, PresenceDetector
from .recorder import PresenceRecorder
from .recorder.writer import ClipWriterFactory
from .runtime import CaptureLoop
from .version import APP_VERSION


class ClipEntry(BaseModel):
    start_utc: str
    end_utc: str
    start_local: str
    end_local: str
    duration_s: float
    frames: int
    fps: float
    path: str
    time_zone: str


class ClipCloseResult(BaseModel):
    closed: bool
    clip: ClipEntry | None = None


class ClipsQuery(BaseModel):
    limit: int = Field(default=50, ge=1, le=500)


def create_app(
    config_path: Path | str | None = None,
    *,
    camera: BaseCamera | None = None,
    detector: PresenceDetector | None = None,
    writer_factory: ClipWriterFactory | None = None,
    autostart: bool = True,
) -> FastAPI:
    app = FastAPI(title="AccessCam", version=APP_VERSION)

    logger = logging.getLogger(__name__)

    store = ConfigStore(config_path if config_path is not None else default_config_path())
    config = store.load()
    clip_log = ClipLog(config.log_dir)
    recorder = PresenceRecorder(
        config.recorder,
        sinks=[clip_log],
        writer_factory=writer_factory,
    )
    if detector is None:
        detector = FrameDifferencePresence.from_settings(config.presence)
    loop: CaptureLoop | None = None
    camera_error: str | None = None

    app.state.recorder = recorder
    app.state.clip_log = clip_log

    @app.on_event("startup")
    async def startup() -> None:  # pragma: no cover - framework hook
        nonlocal loop, camera_error
        source = camera
        if source is None:
            try:
                source = create_camera(config.capture)
            except CameraError as exc:
                camera_error = str(exc)
                logger.error("Camera unavailable: %s", exc)
                return
        loop = CaptureLoop(source, detector, recorder, fps=config.capture.fps)
        app.state.capture_loop = loop
        if autostart:
            await loop.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:  # pragma: no cover - framework hook
        nonlocal loop
        if loop is not None:
            await loop.stop()
            loop = None
        recorder.shutdown()

    @app.get("/api/status")
    async def get_status() -> dict[str, object]:
        payload: dict[str, object] = {
            "version": APP_VERSION,
            "recorder": recorder.status(),
            "capture": loop.stats() if loop is not None else None,
        }
        if camera_error:
            payload["camera_error"] = camera_error
        return payload

    @app.get("/api/clips", response_model=list[ClipEntry])
    async def list_clips(limit: int = 50) -> list[dict[str, object]]:
        try:
            query = ClipsQuery(limit=limit)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="limit must be between 1 and 500") from exc
        return list(reversed(clip_log.tail(query.limit)))

    @app.post("/api/recorder/close", response_model=ClipCloseResult)
    async def close_clip() -> ClipCloseResult:
        metadata = recorder.close_clip()
        if metadata is None:
            return ClipCloseResult(closed=False)
        return ClipCloseResult(closed=True, clip=ClipEntry(**metadata.to_dict()))

    return app


__all__ = ["create_app"]
