"""Configuration management for AccessCam."""
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

from .timezones import DEFAULT_IANA_TIME_ZONE, DEFAULT_PLATFORM_TIME_ZONE

DEFAULT_TARGET_FPS = 20.0
MIN_TARGET_FPS = 5.0
MAX_TARGET_FPS = 60.0

CAMERA_SOURCES: dict[str, str] = {
    "opencv": "OpenCV (USB webcam)",
    "synthetic": "Synthetic test pattern",
}
DEFAULT_CAMERA_CHOICE = "opencv"

CONFIG_ENV_VAR = "ACCESS_CAM_CONFIG"
CAMERA_ENV_VAR = "ACCESS_CAM_CAMERA"
DEFAULT_CONFIG_PATH = Path("data/config.json")


def normalise_target_fps(value: object) -> float:
    """Return ``value`` as an output rate, or the default when unusable."""

    try:
        fps = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_TARGET_FPS
    if not math.isfinite(fps) or fps < MIN_TARGET_FPS or fps > MAX_TARGET_FPS:
        return DEFAULT_TARGET_FPS
    return fps


def _non_negative_seconds(value: object, name: str) -> float:
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be numeric") from exc
    if not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"{name} must be a non-negative finite number")
    return seconds


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class RecorderConfig:
    """Construction-time settings of a :class:`PresenceRecorder`."""

    output_dir: Path = Path("recordings")
    target_fps: float = DEFAULT_TARGET_FPS
    hold_seconds: float = 0.0
    pre_roll_enabled: bool = False
    pre_roll_seconds: float = 0.0
    file_prefix: str = "clip"
    container: str = "mp4"
    codec: str = "h264"
    time_zone: str | None = None
    platform_time_zone: str | None = DEFAULT_PLATFORM_TIME_ZONE
    iana_time_zone: str | None = DEFAULT_IANA_TIME_ZONE

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_dir", Path(self.output_dir))
        object.__setattr__(self, "target_fps", normalise_target_fps(self.target_fps))
        object.__setattr__(
            self, "hold_seconds", _non_negative_seconds(self.hold_seconds, "Hold duration")
        )
        object.__setattr__(self, "pre_roll_enabled", bool(self.pre_roll_enabled))
        object.__setattr__(
            self,
            "pre_roll_seconds",
            _non_negative_seconds(self.pre_roll_seconds, "Pre-roll duration"),
        )
        prefix = str(self.file_prefix).strip()
        if not prefix or any(sep in prefix for sep in ("/", "\\")):
            raise ValueError("File prefix must be a non-empty name without path separators")
        object.__setattr__(self, "file_prefix", prefix)
        container = str(self.container).strip().lstrip(".").lower()
        if not container:
            raise ValueError("Container extension must not be empty")
        object.__setattr__(self, "container", container)
        codec = str(self.codec).strip().lower()
        if not codec:
            raise ValueError("Codec must not be empty")
        object.__setattr__(self, "codec", codec)
        object.__setattr__(self, "time_zone", _optional_text(self.time_zone))
        object.__setattr__(self, "platform_time_zone", _optional_text(self.platform_time_zone))
        object.__setattr__(self, "iana_time_zone", _optional_text(self.iana_time_zone))

    @property
    def frame_interval(self) -> timedelta:
        return timedelta(seconds=1.0 / self.target_fps)

    @property
    def pre_roll_capacity(self) -> int:
        """Number of frames retained before a trigger; zero disables pre-roll."""

        if not self.pre_roll_enabled:
            return 0
        return max(0, int(round(self.target_fps * self.pre_roll_seconds)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "output_dir": self.output_dir.as_posix(),
            "target_fps": float(self.target_fps),
            "hold_seconds": float(self.hold_seconds),
            "pre_roll_enabled": bool(self.pre_roll_enabled),
            "pre_roll_seconds": float(self.pre_roll_seconds),
            "file_prefix": self.file_prefix,
            "container": self.container,
            "codec": self.codec,
            "time_zone": self.time_zone,
            "platform_time_zone": self.platform_time_zone,
            "iana_time_zone": self.iana_time_zone,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RecorderConfig":
        known = {name for name in cls.__dataclass_fields__}
        data = {key: value for key, value in payload.items() if key in known}
        return cls(**data)


@dataclass(frozen=True, slots=True)
class CaptureSettings:
    """Frame source selection for the capture loop."""

    camera: str = DEFAULT_CAMERA_CHOICE
    device_index: int = 0
    width: int = 1280
    height: int = 720
    fps: int = 30

    def __post_init__(self) -> None:
        camera = str(self.camera).strip().lower()
        if camera not in CAMERA_SOURCES:
            raise ValueError(f"Unknown camera choice: {self.camera}")
        object.__setattr__(self, "camera", camera)
        if int(self.device_index) < 0:
            raise ValueError("Camera index must not be negative")
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError("Resolution dimensions must be positive integers")
        if int(self.fps) < 1 or int(self.fps) > 120:
            raise ValueError("Capture fps must be between 1 and 120")
        object.__setattr__(self, "device_index", int(self.device_index))
        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))
        object.__setattr__(self, "fps", int(self.fps))

    @property
    def resolution(self) -> tuple[int, int]:
        return (self.width, self.height)

    def to_dict(self) -> dict[str, Any]:
        return {
            "camera": self.camera,
            "device_index": self.device_index,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
        }


@dataclass(frozen=True, slots=True)
class PresenceSettings:
    """Tuning for the bundled frame-differencing presence detector."""

    sensitivity: int = 50
    min_motion_frames: int = 3
    cooldown_frames: int = 0

    def __post_init__(self) -> None:
        if not 0 <= int(self.sensitivity) <= 100:
            raise ValueError("Sensitivity must be between 0 and 100")
        if int(self.min_motion_frames) < 1:
            raise ValueError("Minimum motion frames must be at least 1")
        if int(self.cooldown_frames) < 0:
            raise ValueError("Cooldown frames must not be negative")
        object.__setattr__(self, "sensitivity", int(self.sensitivity))
        object.__setattr__(self, "min_motion_frames", int(self.min_motion_frames))
        object.__setattr__(self, "cooldown_frames", int(self.cooldown_frames))

    def to_dict(self) -> dict[str, int]:
        return {
            "sensitivity": self.sensitivity,
            "min_motion_frames": self.min_motion_frames,
            "cooldown_frames": self.cooldown_frames,
        }


@dataclass(frozen=True, slots=True)
class AccessCamConfig:
    """Top level configuration grouping every subsystem."""

    recorder: RecorderConfig = field(default_factory=RecorderConfig)
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    presence: PresenceSettings = field(default_factory=PresenceSettings)
    log_dir: Path = Path("data/logs")

    def __post_init__(self) -> None:
        object.__setattr__(self, "log_dir", Path(self.log_dir))

    def to_dict(self) -> dict[str, Any]:
        return {
            "recorder": self.recorder.to_dict(),
            "capture": self.capture.to_dict(),
            "presence": self.presence.to_dict(),
            "log_dir": self.log_dir.as_posix(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AccessCamConfig":
        recorder_payload = payload.get("recorder", {})
        capture_payload = payload.get("capture", {})
        presence_payload = payload.get("presence", {})
        for name, section in (
            ("recorder", recorder_payload),
            ("capture", capture_payload),
            ("presence", presence_payload),
        ):
            if not isinstance(section, Mapping):
                raise ValueError(f"{name} configuration must be a JSON object")
        return cls(
            recorder=RecorderConfig.from_dict(recorder_payload),
            capture=CaptureSettings(**dict(capture_payload)),
            presence=PresenceSettings(**dict(presence_payload)),
            log_dir=Path(payload.get("log_dir", "data/logs")),
        )

    def with_camera(self, camera: str | None) -> "AccessCamConfig":
        if not camera:
            return self
        return replace(self, capture=replace(self.capture, camera=camera))


class ConfigStore:
    """Simple JSON backed persistence for :class:`AccessCamConfig`."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AccessCamConfig:
        if not self._path.exists():
            config = AccessCamConfig()
        else:
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise ValueError("Invalid configuration JSON") from exc
            if not isinstance(raw, dict):
                raise ValueError("Configuration file must contain a JSON object")
            try:
                config = AccessCamConfig.from_dict(raw)
            except TypeError as exc:
                raise ValueError(f"Invalid configuration: {exc}") from exc
        return config.with_camera(os.getenv(CAMERA_ENV_VAR))

    def save(self, config: AccessCamConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = config.to_dict()
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


def default_config_path() -> Path:
    return Path(os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))


__all__ = [
    "AccessCamConfig",
    "CAMERA_SOURCES",
    "CaptureSettings",
    "ConfigStore",
    "DEFAULT_CAMERA_CHOICE",
    "DEFAULT_TARGET_FPS",
    "PresenceSettings",
    "RecorderConfig",
    "default_config_path",
    "normalise_target_fps",
]
