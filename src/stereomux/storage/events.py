"""Append-only operational event journal."""

from __future__ import annotations

from datetime import date, datetime, timezone
import json
from pathlib import Path
from typing import Any, Iterator

from stereomux.storage.state_store import StatePaths


_DAILY_PREFIX = "events-"
_JSONL_SUFFIX = ".jsonl"


def _parse_daily_date(path: Path) -> date | None:
    stem = path.stem
    if not stem.startswith(_DAILY_PREFIX):
        return None
    value = stem[len(_DAILY_PREFIX) :]
    if len(value) != 8 or not value.isdigit():
        return None
    return datetime.strptime(value, "%Y%m%d").date()  # noqa: DTZ007


def append_event(paths: StatePaths, payload: dict[str, Any]) -> Path:
    """Append a JSON event line to today's journal file."""

    now = datetime.now(timezone.utc)
    out_path = paths.events / f"{_DAILY_PREFIX}{now.strftime('%Y%m%d')}{_JSONL_SUFFIX}"

    envelope: dict[str, Any] = {
        "ts": now.isoformat(),
        **payload,
    }
    if "correlation_id" not in envelope:
        job_id = envelope.get("job_id")
        if isinstance(job_id, str):
            envelope["correlation_id"] = job_id

    with out_path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(envelope, sort_keys=True) + "\n")
    return out_path


def iter_event_files(paths: StatePaths) -> Iterator[Path]:
    """Yield daily journal files in date order."""

    files = [
        candidate
        for candidate in paths.events.glob(f"{_DAILY_PREFIX}*{_JSONL_SUFFIX}")
        if _parse_daily_date(candidate) is not None
    ]
    yield from sorted(files)


def iter_events(paths: StatePaths, job_id: str | None = None) -> Iterator[dict[str, Any]]:
    """Iterate parsed events, optionally filtered to one job."""

    for event_file in iter_event_files(paths):
        with event_file.open("r", encoding="utf-8") as handle:
            for line in handle:
                text = line.strip()
                if not text:
                    continue
                payload = json.loads(text)
                if not isinstance(payload, dict):
                    raise TypeError(f"Event line is not a JSON object: {event_file}")
                if job_id is not None and payload.get("job_id") != job_id:
                    continue
                yield payload
