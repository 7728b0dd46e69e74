"""Conversion jobs: the `convert()` entry point and its background runner."""

from __future__ import annotations

import copy
from dataclasses import asdict
from datetime import datetime, timezone
import logging
from pathlib import Path
import threading
import time
import traceback
from typing import Any
from uuid import uuid4

from stereomux.config.loader import default_conversion_config
from stereomux.config.schema import ConversionConfig
from stereomux.errors import DestinationBusy, InputNotFound, UnsupportedFormat
from stereomux.media.sink import SinkOpener, validate_dimensions, validate_output_path
from stereomux.media.source import SourceOpener, open_opencv_source
from stereomux.observability.logging import get_logger, log_event
from stereomux.observability.metrics import record_job_finished, record_job_started
from stereomux.pipeline.driver import DriverState, PipelineDriver
from stereomux.pipeline.progress import ProgressReporter, ProgressSnapshot
from stereomux.storage.events import append_event
from stereomux.storage.jobs import write_job
from stereomux.storage.state_store import StatePaths, ensure_state_layout


_LOGGER = get_logger("stereomux.job")

_ACTIVE_LOCK = threading.Lock()
_ACTIVE_DESTINATIONS: dict[Path, str] = {}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _claim_destination(path: Path, job_id: str) -> None:
    with _ACTIVE_LOCK:
        owner = _ACTIVE_DESTINATIONS.get(path)
        if owner is not None:
            raise DestinationBusy(f"Job {owner} is already writing {path}.")
        _ACTIVE_DESTINATIONS[path] = job_id


def _release_destination(path: Path, job_id: str) -> None:
    with _ACTIVE_LOCK:
        if _ACTIVE_DESTINATIONS.get(path) == job_id:
            del _ACTIVE_DESTINATIONS[path]


def active_destinations() -> dict[Path, str]:
    """Return output paths currently owned by running jobs."""

    with _ACTIVE_LOCK:
        return dict(_ACTIVE_DESTINATIONS)


def _validate_input(path: Path, label: str) -> Path:
    if not path.exists():
        raise InputNotFound(f"{label} input does not exist: {path}")
    if not path.is_file():
        raise InputNotFound(f"{label} input is not a file: {path}")
    return path.resolve()


class ConversionJob:
    """One left+right to stereo conversion and its observable state.

    A job runs once. Re-running the same inputs requires a new job.
    """

    def __init__(
        self,
        *,
        left_path: Path,
        right_path: Path,
        output_path: Path,
        config: ConversionConfig,
        state_paths: StatePaths | None = None,
        open_source: SourceOpener = open_opencv_source,
        open_sink: SinkOpener | None = None,
        job_id: str | None = None,
    ) -> None:
        self.job_id = job_id or uuid4().hex
        self.left_path = left_path
        self.right_path = right_path
        self.output_path = output_path
        self.config = config
        self.state_paths = state_paths
        self.progress = ProgressReporter()
        self.submitted_at = _now()
        self.started_at: str | None = None
        self.finished_at: str | None = None
        self.driver = PipelineDriver(
            left_path=left_path,
            right_path=right_path,
            output_path=output_path,
            config=config,
            progress=self.progress,
            open_source=open_source,
            open_sink=open_sink,
            job_id=self.job_id,
        )
        self._thread: threading.Thread | None = None
        self._done = threading.Event()

    @property
    def status(self) -> str:
        state = self.driver.state
        if state is DriverState.COMPLETED:
            return "COMPLETED"
        if state is DriverState.FAILED:
            return "FAILED"
        return "RUNNING"

    @property
    def failure_reason(self) -> str | None:
        return self.progress.snapshot().reason

    @property
    def error(self) -> str | None:
        failure = self.driver.failure
        return None if failure is None else str(failure)

    def snapshot(self) -> ProgressSnapshot:
        return self.progress.snapshot()

    def start(self, *, background: bool = True) -> "ConversionJob":
        if self._thread is not None or self._done.is_set():
            raise RuntimeError(f"Job {self.job_id} was already started.")
        if background:
            self._thread = threading.Thread(
                target=self._run, name=f"stereomux-job-{self.job_id[:8]}", daemon=True
            )
            self._thread.start()
        else:
            self._run()
        return self

    def cancel(self) -> None:
        self.driver.cancel()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job reaches a terminal state; False on timeout."""

        return self._done.wait(timeout)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def to_record(self) -> dict[str, Any]:
        snapshot = self.snapshot()
        record: dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status,
            "submitted_at": self.submitted_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "updated_at": _now(),
            "left": str(self.left_path),
            "right": str(self.right_path),
            "output": str(self.output_path),
            "width": self.config.output.width,
            "height": self.config.output.height,
            "config": asdict(self.config),
            "frame_count": snapshot.frame_count,
            "processed_seconds": snapshot.processed_seconds,
            "total_seconds": snapshot.total_seconds,
            "writes_rejected": self.driver.writes_rejected,
        }
        if self.driver.failure is not None:
            record["reason"] = snapshot.reason
            record["error"] = self.error
        return record

    def _run(self) -> None:
        self.started_at = _now()
        started = time.monotonic()
        try:
            try:
                self._persist_started()
            except Exception as exc:
                self.driver.fail_before_start(exc)
            else:
                log_event(
                    _LOGGER,
                    "job_started",
                    job_id=self.job_id,
                    correlation_id=self.job_id,
                    left=str(self.left_path),
                    right=str(self.right_path),
                    output=str(self.output_path),
                    width=self.config.output.width,
                    height=self.config.output.height,
                )
                self.driver.run()
        finally:
            self.finished_at = _now()
            _release_destination(self.output_path, self.job_id)
            try:
                self._persist_finished(time.monotonic() - started)
            except Exception as exc:
                log_event(
                    _LOGGER,
                    "job_persist_failed",
                    level=logging.ERROR,
                    job_id=self.job_id,
                    correlation_id=self.job_id,
                    status=self.status,
                    error=f"{type(exc).__name__}: {exc}",
                )
            finally:
                self._done.set()

    def _persist_started(self) -> None:
        if self.state_paths is None:
            return
        write_job(self.state_paths, self.job_id, self.to_record())
        record_job_started(self.state_paths)
        append_event(
            self.state_paths,
            {
                "event": "job_started",
                "job_id": self.job_id,
                "output": str(self.output_path),
            },
        )

    def _persist_finished(self, latency_seconds: float) -> None:
        snapshot = self.snapshot()
        failure = self.driver.failure
        log_event(
            _LOGGER,
            "job_finished",
            level=logging.ERROR if failure is not None else logging.INFO,
            job_id=self.job_id,
            correlation_id=self.job_id,
            status=self.status,
            reason=snapshot.reason,
            error=self.error,
            frame_count=snapshot.frame_count,
            latency_seconds=round(latency_seconds, 3),
            traceback=(
                "".join(traceback.format_exception(failure)) if failure is not None else None
            ),
        )
        if self.state_paths is None:
            return
        write_job(self.state_paths, self.job_id, self.to_record())
        record_job_finished(
            self.state_paths,
            status=self.status,
            frames_written=self.driver.frames_written,
            frames_rejected=self.driver.writes_rejected,
            latency_seconds=latency_seconds,
            reason=snapshot.reason,
        )
        append_event(
            self.state_paths,
            {
                "event": "job_finished",
                "job_id": self.job_id,
                "status": self.status,
                "reason": snapshot.reason,
                "frame_count": snapshot.frame_count,
            },
        )


def convert(
    left_path: Path,
    right_path: Path,
    output_path: Path,
    width: int | None = None,
    height: int | None = None,
    *,
    config: ConversionConfig | None = None,
    state_root: Path | None = None,
    open_source: SourceOpener = open_opencv_source,
    open_sink: SinkOpener | None = None,
    background: bool = True,
) -> ConversionJob:
    """Validate inputs, then start a conversion job.

    Missing inputs and unsupported output settings raise immediately. Decode
    and encode failures arrive later through the job's terminal status.
    """

    # Each job owns its config; the caller may reuse theirs for another job.
    cfg = copy.deepcopy(config) if config is not None else default_conversion_config()
    if width is not None:
        cfg.output.width = width
    if height is not None:
        cfg.output.height = height

    left = _validate_input(Path(left_path), "Left")
    right = _validate_input(Path(right_path), "Right")
    output = Path(output_path).expanduser().resolve()
    if output in (left, right):
        raise UnsupportedFormat(f"Output path must differ from both inputs: {output}")
    validate_output_path(output)
    validate_dimensions(cfg.output.width, cfg.output.height)

    state_paths = ensure_state_layout(state_root) if state_root is not None else None
    job = ConversionJob(
        left_path=left,
        right_path=right,
        output_path=output,
        config=cfg,
        state_paths=state_paths,
        open_source=open_source,
        open_sink=open_sink,
    )
    _claim_destination(output, job.job_id)
    try:
        return job.start(background=background)
    except BaseException:
        if not job.done:
            _release_destination(output, job.job_id)
        raise
