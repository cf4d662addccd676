from datetime import datetime, timedelta, timezone
from pathlib import Path

from access_cam.recorder import ClipMetadata, ClipMetadataEmitter, ClipMetadataSink
from access_cam.timezones import resolve_time_zone

START = datetime(2024, 1, 15, 10, 30, 5, tzinfo=timezone.utc)


class _ListSink:
    def __init__(self) -> None:
        self.received: list[ClipMetadata] = []

    def publish(self, metadata: ClipMetadata) -> None:
        self.received.append(metadata)


class _BrokenSink:
    def publish(self, metadata: ClipMetadata) -> None:
        raise OSError("disk full")


def _emitter(*sinks) -> ClipMetadataEmitter:
    return ClipMetadataEmitter(resolve_time_zone("Asia/Jerusalem"), sinks)


def test_build_populates_local_and_utc_fields() -> None:
    metadata = _emitter().build(
        start=START,
        end=START + timedelta(seconds=3, milliseconds=250),
        frames=65,
        fps=20.0,
        path=Path("clips/clip.mp4"),
    )
    assert metadata.time_zone == "Asia/Jerusalem"
    assert metadata.start_local.utcoffset() == timedelta(hours=2)
    assert metadata.start_local.hour == 12
    assert metadata.duration_s == 3.25
    assert metadata.frames == 65

    payload = metadata.to_dict()
    assert payload["start_utc"] == "2024-01-15T10:30:05+00:00"
    assert payload["start_local"] == "2024-01-15T12:30:05+02:00"
    assert payload["path"] == str(Path("clips/clip.mp4"))


def test_emit_delivers_to_remaining_sinks_after_failure() -> None:
    first = _ListSink()
    second = _ListSink()
    emitter = _emitter(first, _BrokenSink())
    emitter.add_sink(second)
    metadata = emitter.build(start=START, end=START, frames=1, fps=20.0, path=Path("a.mp4"))

    emitter.emit(metadata)

    assert first.received == [metadata]
    assert second.received == [metadata]
    assert len(emitter.sinks) == 3


def test_list_sink_satisfies_protocol() -> None:
    assert isinstance(_ListSink(), ClipMetadataSink)
