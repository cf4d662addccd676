"""Persistent CSV and JSON Lines log of closed clips."""

from __future__ import annotations

import csv
import io
import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Deque

from .recorder.metadata import ClipMetadata

logger = logging.getLogger(__name__)

CSV_HEADER = (
    "start_local_iso",
    "end_local_iso",
    "start_utc_iso",
    "end_utc_iso",
    "duration_sec",
    "frames",
    "fps",
    "file_path",
    "timezone",
)


def _format_number(value: float) -> str:
    text = f"{float(value):.3f}".rstrip("0").rstrip(".")
    return text or "0"


class ClipLog:
    """Append-only clip log acting as a metadata sink.

    Each clip is appended as one CSV row and one JSON line. The two appenders
    fail independently; a failure in one is logged and does not skip the other.
    The most recent entries are kept in memory for the status API.
    """

    def __init__(
        self,
        directory: Path | str,
        *,
        csv_name: str = "logs.csv",
        jsonl_name: str = "logs.jsonl",
        max_entries: int = 200,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)
        self._csv_path = self._directory / csv_name
        self._jsonl_path = self._directory / jsonl_name
        self._entries: Deque[dict[str, object]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._ensure_csv_header()
        self._load_entries()

    # ------------------------------ properties -----------------------------
    @property
    def csv_path(self) -> Path:
        return self._csv_path

    @property
    def jsonl_path(self) -> Path:
        return self._jsonl_path

    # ------------------------------ operations -----------------------------
    def publish(self, metadata: ClipMetadata) -> None:
        payload = metadata.to_dict()
        with self._lock:
            self._entries.append(payload)
            try:
                self._append_csv(metadata)
            except OSError as exc:
                logger.warning("Unable to append clip to CSV log: %s", exc)
            try:
                self._append_jsonl(payload)
            except OSError as exc:
                logger.warning("Unable to append clip to JSONL log: %s", exc)

    def tail(self, limit: int | None = None) -> list[dict[str, object]]:
        """Return the most recent entries, oldest first."""

        with self._lock:
            entries = list(self._entries)
        if limit is not None:
            try:
                limit_value = max(1, int(limit))
            except (TypeError, ValueError):
                limit_value = 1
            entries = entries[-limit_value:]
        return entries

    # ----------------------------- implementation --------------------------
    def _ensure_csv_header(self) -> None:
        if self._csv_path.exists():
            return
        with self._csv_path.open("w", encoding="utf-8", newline="") as handle:
            csv.writer(handle, lineterminator="\n").writerow(CSV_HEADER)

    def _append_csv(self, metadata: ClipMetadata) -> None:
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator="\n").writerow(
            (
                metadata.start_local.isoformat(),
                metadata.end_local.isoformat(),
                metadata.start_utc.isoformat(),
                metadata.end_utc.isoformat(),
                _format_number(metadata.duration_s),
                str(int(metadata.frames)),
                _format_number(metadata.fps),
                str(metadata.path),
                metadata.time_zone,
            )
        )
        with self._csv_path.open("a", encoding="utf-8", newline="") as handle:
            handle.write(buffer.getvalue())

    def _append_jsonl(self, payload: dict[str, object]) -> None:
        with self._jsonl_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, separators=(",", ":")) + "\n")

    def _load_entries(self) -> None:
        if not self._jsonl_path.exists():
            return
        try:
            with self._jsonl_path.open("r", encoding="utf-8") as handle:
                lines = handle.readlines()
        except OSError as exc:  # pragma: no cover - best effort logging
            logger.warning("Unable to load clip log: %s", exc)
            return
        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except ValueError:
                continue
            if isinstance(payload, dict) and isinstance(payload.get("path"), str):
                self._entries.append(payload)


__all__ = ["CSV_HEADER", "ClipLog"]
