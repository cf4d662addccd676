"""Tests for the asynchronous capture loop."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np

from access_cam.camera import BaseCamera, CameraError
from access_cam.config import RecorderConfig
from access_cam.presence import CallablePresence
from access_cam.recorder import PresenceRecorder, RecorderState
from access_cam.runtime import CaptureLoop

BASE = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


class _SteppingClock:
    def __init__(self, step_ms: int = 100) -> None:
        self.calls = 0
        self._step = timedelta(milliseconds=step_ms)

    def __call__(self) -> datetime:
        self.calls += 1
        return BASE + self._step * self.calls


class _RecordingWriter:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.frames_written = 0
        self.closed = False

    def write(self, frame: np.ndarray) -> None:
        self.frames_written += 1

    def close(self) -> None:
        self.closed = True


class _DummyCamera(BaseCamera):
    def __init__(self, failures: int = 0, glitch_after: int | None = None) -> None:
        self.failures = failures
        self.glitch_after = glitch_after
        self.reads = 0
        self.closed = False

    async def get_frame(self) -> np.ndarray:
        self.reads += 1
        if self.failures > 0:
            self.failures -= 1
            raise CameraError("sensor timeout")
        if self.glitch_after is not None and self.reads > self.glitch_after:
            raise RuntimeError("driver glitch")
        return np.full((8, 8, 3), self.reads % 256, dtype=np.uint8)

    async def close(self) -> None:
        self.closed = True


def _recorder(tmp_path: Path, writer_factory=None) -> PresenceRecorder:
    return PresenceRecorder(
        RecorderConfig(output_dir=tmp_path, target_fps=10, time_zone="UTC"),
        writer_factory=writer_factory or (lambda path, width, height: _RecordingWriter(path)),
        clock=_SteppingClock(),
    )


def test_run_once_drives_recorder_through_a_clip(tmp_path: Path) -> None:
    script = iter([True, True, False])
    recorder = _recorder(tmp_path)
    loop = CaptureLoop(_DummyCamera(), CallablePresence(lambda frame: next(script)), recorder)

    async def scenario() -> list[RecorderState | None]:
        return [await loop.run_once() for _ in range(3)]

    states = asyncio.run(scenario())

    assert states == [RecorderState.RECORDING, RecorderState.RECORDING, RecorderState.IDLE]
    assert recorder.clips_completed == 1
    assert recorder.last_clip is not None
    # The frame that reports absence still fills its due slot before the clip closes.
    assert recorder.last_clip.frames == 3
    assert loop.stats()["frames"] == 3
    assert loop.stats()["presence"] is False


def test_camera_errors_are_counted_and_skipped(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path)
    loop = CaptureLoop(_DummyCamera(failures=1), CallablePresence(lambda frame: False), recorder)

    async def scenario() -> list[RecorderState | None]:
        return [await loop.run_once(), await loop.run_once()]

    first, second = asyncio.run(scenario())

    assert first is None
    assert second is RecorderState.IDLE
    stats = loop.stats()
    assert stats["camera_errors"] == 1
    assert stats["last_error"] == "sensor timeout"
    assert stats["frames"] == 1


def test_detector_failure_counts_as_absent(tmp_path: Path) -> None:
    def explode(frame: np.ndarray) -> bool:
        raise RuntimeError("model not loaded")

    recorder = _recorder(tmp_path)
    loop = CaptureLoop(_DummyCamera(), CallablePresence(explode), recorder)

    assert loop.process_frame(np.zeros((8, 8, 3), dtype=np.uint8)) is RecorderState.IDLE
    assert recorder.clips_completed == 0


def test_stop_finalises_open_clip_and_closes_camera(tmp_path: Path) -> None:
    camera = _DummyCamera()
    recorder = _recorder(tmp_path)
    loop = CaptureLoop(camera, CallablePresence(lambda frame: True), recorder)

    async def scenario() -> bool:
        await loop.start()
        while loop.stats()["frames"] < 5:
            await asyncio.sleep(0.01)
        was_running = loop.running
        await loop.stop()
        return was_running

    assert asyncio.run(scenario()) is True
    assert loop.running is False
    assert camera.closed is True
    assert recorder.state is RecorderState.IDLE
    assert recorder.clips_completed == 1


def test_unexpected_camera_error_is_counted_and_loop_keeps_running(tmp_path: Path) -> None:
    camera = _DummyCamera(glitch_after=3)
    recorder = _recorder(tmp_path)
    loop = CaptureLoop(camera, CallablePresence(lambda frame: True), recorder, retry_interval=0.0)

    async def scenario() -> bool:
        await loop.start()
        while loop.stats()["camera_errors"] < 2:
            await asyncio.sleep(0.01)
        still_running = loop.running
        await loop.stop()
        return still_running

    assert asyncio.run(scenario()) is True
    stats = loop.stats()
    assert stats["frames"] == 3
    assert stats["last_error"] == "driver glitch"
    assert camera.closed is True
    assert recorder.state is RecorderState.IDLE
    assert recorder.clips_completed == 1


class _CrashingWriter(_RecordingWriter):
    def write(self, frame: np.ndarray) -> None:
        if self.frames_written >= 2:
            raise RuntimeError("encoder crashed")
        super().write(frame)


def test_stop_finalises_clip_after_loop_crashed(tmp_path: Path) -> None:
    writers: list[_CrashingWriter] = []

    def factory(path: Path, width: int, height: int) -> _CrashingWriter:
        writer = _CrashingWriter(path)
        writers.append(writer)
        return writer

    camera = _DummyCamera()
    recorder = _recorder(tmp_path, writer_factory=factory)
    loop = CaptureLoop(camera, CallablePresence(lambda frame: True), recorder)

    async def scenario() -> None:
        await loop.start()
        while loop.running:
            await asyncio.sleep(0.01)
        await loop.stop()

    asyncio.run(scenario())

    assert camera.closed is True
    assert recorder.state is RecorderState.IDLE
    assert recorder.last_clip is not None
    assert recorder.last_clip.frames == 2
    assert writers[0].closed is True
