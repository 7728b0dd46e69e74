"""Persistent operational metrics for local conversions."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import threading
from typing import Any, Callable

from stereomux.storage.atomic import atomic_write_json, read_json
from stereomux.storage.state_store import StatePaths


_METRICS_FILE = "metrics.json"

# Jobs in one process may finish concurrently; read-modify-write is serialized.
_LOCK = threading.Lock()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _metrics_path(paths: StatePaths) -> Path:
    return paths.runtime / _METRICS_FILE


def _empty_metrics() -> dict[str, Any]:
    return {
        "schema": "metrics/v1",
        "updated_at": _now(),
        "jobs": {
            "started": 0,
            "completed": 0,
            "failed": 0,
        },
        "failures": {},
        "frames": {
            "written": 0,
            "rejected": 0,
        },
        "last_job": {
            "status": None,
            "latency_sec": 0.0,
            "frames_per_sec": 0.0,
        },
    }


def _normalize(payload: dict[str, Any]) -> dict[str, Any]:
    base = _empty_metrics()

    jobs = payload.get("jobs") if isinstance(payload.get("jobs"), dict) else {}
    frames = payload.get("frames") if isinstance(payload.get("frames"), dict) else {}
    failures = payload.get("failures") if isinstance(payload.get("failures"), dict) else {}
    last_job = payload.get("last_job") if isinstance(payload.get("last_job"), dict) else {}

    base["updated_at"] = payload.get("updated_at", base["updated_at"])
    base["jobs"]["started"] = int(jobs.get("started", 0))
    base["jobs"]["completed"] = int(jobs.get("completed", 0))
    base["jobs"]["failed"] = int(jobs.get("failed", 0))
    base["failures"] = {str(key): int(value) for key, value in failures.items()}
    base["frames"]["written"] = int(frames.get("written", 0))
    base["frames"]["rejected"] = int(frames.get("rejected", 0))
    base["last_job"]["status"] = last_job.get("status")
    base["last_job"]["latency_sec"] = float(last_job.get("latency_sec", 0.0))
    base["last_job"]["frames_per_sec"] = float(last_job.get("frames_per_sec", 0.0))
    return base


def read_metrics(paths: StatePaths) -> dict[str, Any]:
    """Read current runtime metrics, returning defaults when not present."""

    path = _metrics_path(paths)
    if not path.exists():
        return _empty_metrics()
    payload = read_json(path)
    if not isinstance(payload, dict):
        raise TypeError(f"Metrics payload must be an object: {path}")
    return _normalize(payload)


def _update_metrics(
    paths: StatePaths,
    mutator: Callable[[dict[str, Any]], None],
) -> dict[str, Any]:
    with _LOCK:
        metrics = read_metrics(paths)
        mutator(metrics)
        metrics["updated_at"] = _now()
        atomic_write_json(_metrics_path(paths), metrics)
    return metrics


def record_job_started(paths: StatePaths) -> None:
    """Increment the global started-job counter."""

    def _mutate(metrics: dict[str, Any]) -> None:
        metrics["jobs"]["started"] += 1

    _update_metrics(paths, _mutate)


def record_job_finished(
    paths: StatePaths,
    *,
    status: str,
    frames_written: int,
    frames_rejected: int,
    latency_seconds: float,
    reason: str | None = None,
) -> None:
    """Record one job outcome, its frame counters and latency."""

    normalized = status.strip().upper()
    latency = max(0.0, float(latency_seconds))

    def _mutate(metrics: dict[str, Any]) -> None:
        if normalized == "COMPLETED":
            metrics["jobs"]["completed"] += 1
        elif normalized == "FAILED":
            metrics["jobs"]["failed"] += 1
            if reason:
                failures = metrics["failures"]
                failures[reason] = int(failures.get(reason, 0)) + 1

        metrics["frames"]["written"] += int(frames_written)
        metrics["frames"]["rejected"] += int(frames_rejected)
        metrics["last_job"] = {
            "status": normalized,
            "latency_sec": latency,
            "frames_per_sec": frames_written / latency if latency > 0 else 0.0,
        }

    _update_metrics(paths, _mutate)
