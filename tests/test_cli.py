from pathlib import Path

import pytest

from access_cam.cli import apply_overrides, build_parser
from access_cam.config import AccessCamConfig


def test_overrides_update_recorder_and_camera(tmp_path: Path) -> None:
    args = build_parser().parse_args(
        [
            "--output-dir",
            str(tmp_path),
            "--fps",
            "15",
            "--hold",
            "3",
            "--pre-roll",
            "2",
            "--camera",
            "synthetic",
            "--time-zone",
            "Europe/Paris",
        ]
    )
    config = apply_overrides(AccessCamConfig(), args)
    assert config.recorder.output_dir == tmp_path
    assert config.recorder.target_fps == 15.0
    assert config.recorder.hold_seconds == 3.0
    assert config.recorder.pre_roll_enabled is True
    assert config.recorder.pre_roll_capacity == 30
    assert config.recorder.time_zone == "Europe/Paris"
    assert config.capture.camera == "synthetic"


def test_no_overrides_keep_config() -> None:
    config = AccessCamConfig()
    assert apply_overrides(config, build_parser().parse_args([])) == config


def test_zero_pre_roll_disables_buffer() -> None:
    args = build_parser().parse_args(["--pre-roll", "0"])
    config = apply_overrides(AccessCamConfig(), args)
    assert config.recorder.pre_roll_enabled is False
    assert config.recorder.pre_roll_capacity == 0


def test_invalid_hold_is_rejected() -> None:
    args = build_parser().parse_args(["--hold", "-1"])
    with pytest.raises(ValueError):
        apply_overrides(AccessCamConfig(), args)
