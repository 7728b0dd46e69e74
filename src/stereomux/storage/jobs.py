"""Persisted conversion job records."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from stereomux.storage.atomic import atomic_write_json, read_json
from stereomux.storage.state_store import StatePaths


def job_path(paths: StatePaths, job_id: str) -> Path:
    return paths.jobs / f"{job_id}.json"


def read_job(paths: StatePaths, job_id: str) -> dict[str, Any] | None:
    """Read a stored job record by id."""

    path = job_path(paths, job_id)
    if not path.exists():
        return None
    return read_json(path)


def write_job(paths: StatePaths, job_id: str, payload: dict[str, Any]) -> Path:
    """Overwrite a job record by id."""

    out_path = job_path(paths, job_id)
    atomic_write_json(out_path, payload)
    return out_path


def list_jobs(paths: StatePaths) -> list[dict[str, Any]]:
    """Return all stored job records, newest submission last."""

    records: list[dict[str, Any]] = []
    for candidate in sorted(paths.jobs.glob("*.json")):
        payload = read_json(candidate)
        if isinstance(payload, dict):
            records.append(payload)
    records.sort(key=lambda item: str(item.get("submitted_at", "")))
    return records
