import csv
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from access_cam.clip_log import CSV_HEADER, ClipLog
from access_cam.recorder import ClipMetadataEmitter
from access_cam.timezones import resolve_time_zone


def _metadata(index: int = 0):
    emitter = ClipMetadataEmitter(resolve_time_zone("UTC"))
    start = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc) + timedelta(minutes=index)
    return emitter.build(
        start=start,
        end=start + timedelta(seconds=2.5),
        frames=51,
        fps=20.0,
        path=Path(f"recordings/clip_{index}.mp4"),
    )


def test_header_written_once(tmp_path: Path) -> None:
    ClipLog(tmp_path)
    ClipLog(tmp_path)
    lines = (tmp_path / "logs.csv").read_text(encoding="utf-8").splitlines()
    assert lines == [",".join(CSV_HEADER)]


def test_publish_appends_csv_row_and_json_line(tmp_path: Path) -> None:
    log = ClipLog(tmp_path)
    metadata = _metadata()
    log.publish(metadata)

    with log.csv_path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 1
    row = rows[0]
    assert row["start_utc_iso"] == "2024-05-01T09:00:00+00:00"
    assert row["duration_sec"] == "2.5"
    assert row["frames"] == "51"
    assert row["fps"] == "20"
    assert row["file_path"] == str(Path("recordings/clip_0.mp4"))
    assert row["timezone"] == "UTC"

    lines = log.jsonl_path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0]) == metadata.to_dict()


def test_entries_survive_restart(tmp_path: Path) -> None:
    log = ClipLog(tmp_path)
    for index in range(3):
        log.publish(_metadata(index))
    with (tmp_path / "logs.jsonl").open("a", encoding="utf-8") as handle:
        handle.write("not json\n")

    reloaded = ClipLog(tmp_path, max_entries=2)
    tail = reloaded.tail()
    assert [entry["path"] for entry in tail] == [
        str(Path("recordings/clip_1.mp4")),
        str(Path("recordings/clip_2.mp4")),
    ]
    assert len(reloaded.tail(limit=1)) == 1


def test_jsonl_failure_does_not_skip_csv(tmp_path: Path) -> None:
    log = ClipLog(tmp_path)
    log.jsonl_path.mkdir()
    log.publish(_metadata())
    rows = log.csv_path.read_text(encoding="utf-8").splitlines()
    assert len(rows) == 2
    assert len(log.tail()) == 1
