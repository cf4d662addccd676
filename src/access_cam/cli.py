"""Command-line entry point running the capture loop headless."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from .camera import CameraError, create_camera
from .clip_log import ClipLog
from .config import CAMERA_SOURCES, AccessCamConfig, ConfigStore, default_config_path
from .presence import FrameDifferencePresence
from .recorder import PresenceRecorder
from .runtime import CaptureLoop
from .version import APP_VERSION

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the recorder CLI."""

    parser = argparse.ArgumentParser(
        prog="access-cam",
        description="Record clips while presence is detected in front of the camera.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the JSON configuration file.",
    )
    parser.add_argument("--output-dir", type=Path, help="Directory receiving recorded clips.")
    parser.add_argument("--fps", type=float, help="Output frame rate of recorded clips (5-60).")
    parser.add_argument(
        "--hold",
        type=float,
        help="Seconds to keep recording after presence was last detected.",
    )
    parser.add_argument(
        "--pre-roll",
        type=float,
        metavar="SECONDS",
        help="Include this many seconds captured before each trigger.",
    )
    parser.add_argument("--camera", choices=sorted(CAMERA_SOURCES), help="Frame source to use.")
    parser.add_argument("--time-zone", help="Time zone used for clip names and logs.")
    parser.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds instead of running until interrupted.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser


def apply_overrides(config: AccessCamConfig, args: argparse.Namespace) -> AccessCamConfig:
    """Return *config* updated with any values supplied on the command line."""

    recorder_changes: dict[str, object] = {}
    if args.output_dir is not None:
        recorder_changes["output_dir"] = args.output_dir
    if args.fps is not None:
        recorder_changes["target_fps"] = args.fps
    if args.hold is not None:
        recorder_changes["hold_seconds"] = args.hold
    if args.pre_roll is not None:
        recorder_changes["pre_roll_enabled"] = args.pre_roll > 0
        recorder_changes["pre_roll_seconds"] = args.pre_roll
    if args.time_zone is not None:
        recorder_changes["time_zone"] = args.time_zone
    if recorder_changes:
        config = replace(config, recorder=replace(config.recorder, **recorder_changes))
    return config.with_camera(args.camera)


async def run_capture(config: AccessCamConfig, duration: float | None = None) -> int:
    """Run the capture loop until cancelled or *duration* seconds elapse."""

    try:
        camera = create_camera(config.capture)
    except CameraError as exc:
        logger.error("Camera unavailable: %s", exc)
        return 1

    clip_log = ClipLog(config.log_dir)
    recorder = PresenceRecorder(config.recorder, sinks=[clip_log])
    detector = FrameDifferencePresence.from_settings(config.presence)
    loop = CaptureLoop(camera, detector, recorder, fps=config.capture.fps)
    await loop.start()
    try:
        if duration is not None:
            await asyncio.sleep(max(0.0, duration))
        else:
            await asyncio.Event().wait()
    finally:
        await loop.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point used by the ``access-cam`` console script."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = ConfigStore(args.config if args.config is not None else default_config_path())
    try:
        config = apply_overrides(store.load(), args)
    except ValueError as exc:
        parser.error(str(exc))
    logger.info("Starting AccessCam %s; clips go to %s", APP_VERSION, config.recorder.output_dir)
    try:
        return asyncio.run(run_capture(config, args.duration))
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting")
        return 0


__all__ = ["apply_overrides", "build_parser", "main", "run_capture"]


if __name__ == "__main__":  # pragma: no cover - module behaviour
    sys.exit(main())
