"""Pipeline driver: the state machine that pairs, tags and muxes frames.

States run ``IDLE -> OPENING -> STREAMING -> FINALIZING`` and end in
``COMPLETED`` or ``FAILED``. Output goes to a hidden staging file beside the
destination and is renamed into place only on ``COMPLETED``.
"""

from __future__ import annotations

from enum import Enum
from fractions import Fraction
import logging
from pathlib import Path
import threading
import time
from typing import Callable
from uuid import uuid4

from stereomux.config.schema import ConversionConfig, OutputConfig
from stereomux.errors import (
    Cancelled,
    ConversionError,
    FinalizeError,
    FrameCountMismatch,
    ReaderStartError,
    StalledError,
    reason_of,
)
from stereomux.media.sink import MuxSink, SinkOpener, open_ffmpeg_sink
from stereomux.media.source import FrameSource, SourceOpener, open_opencv_source
from stereomux.media.types import FramePair, TaggedSample, ZERO_TIME, tag_pair
from stereomux.observability.logging import get_logger, log_event
from stereomux.pipeline.pairer import Desynchronized, EndOfBoth, FramePairer
from stereomux.pipeline.progress import ProgressReporter
from stereomux.storage.atomic import atomic_move, discard, staging_path


_LOGGER = get_logger("stereomux.driver")


class DriverState(str, Enum):
    IDLE = "IDLE"
    OPENING = "OPENING"
    STREAMING = "STREAMING"
    FINALIZING = "FINALIZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset({DriverState.COMPLETED, DriverState.FAILED})


class PipelineDriver:
    """Own both sources and the sink for one conversion and run it to a terminal state."""

    def __init__(
        self,
        *,
        left_path: Path,
        right_path: Path,
        output_path: Path,
        config: ConversionConfig,
        progress: ProgressReporter | None = None,
        open_source: SourceOpener = open_opencv_source,
        open_sink: SinkOpener | None = None,
        cancel_event: threading.Event | None = None,
        job_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.left_path = left_path
        self.right_path = right_path
        self.output_path = output_path
        self.config = config
        self.progress = progress or ProgressReporter()
        self.job_id = job_id or uuid4().hex
        self.staging_path = staging_path(output_path, self.job_id[:12])
        self._open_source = open_source
        self._open_sink = open_sink or self._default_sink_opener
        self._cancel = cancel_event or threading.Event()
        self._clock = clock

        self.state = DriverState.IDLE
        self.failure: ConversionError | None = None
        self.duration: Fraction = ZERO_TIME
        self.frames_written = 0
        self.writes_rejected = 0

        self._left: FrameSource | None = None
        self._right: FrameSource | None = None
        self._sink: MuxSink | None = None

    def _default_sink_opener(
        self, path: Path, output: OutputConfig, frame_rate: Fraction
    ) -> MuxSink:
        return open_ffmpeg_sink(
            path,
            output,
            frame_rate,
            ffmpeg_binary=self.config.ffmpeg_binary,
            queue_depth=self.config.driver.queue_depth,
        )

    def _transition(self, state: DriverState, reason: str | None = None) -> None:
        self.state = state
        self.progress.set_status(state.value, reason)
        log_event(
            _LOGGER,
            "driver_state",
            level=logging.DEBUG,
            job_id=self.job_id,
            correlation_id=self.job_id,
            state=state.value,
            reason=reason,
        )

    def cancel(self) -> None:
        """Request cooperative cancellation; honored once per streaming iteration."""

        self._cancel.set()

    def fail_before_start(self, exc: BaseException) -> None:
        """Record a failure that happened before `run()`, e.g. while persisting the job."""

        if self.state is not DriverState.IDLE:
            raise RuntimeError(f"Driver already ran (state={self.state.value}); start a new job.")
        log_event(
            _LOGGER,
            "driver_not_started",
            level=logging.ERROR,
            job_id=self.job_id,
            correlation_id=self.job_id,
            error=f"{type(exc).__name__}: {exc}",
        )
        self._fail(self._wrap_unexpected(exc))

    @staticmethod
    def _wrap_unexpected(exc: BaseException) -> ConversionError:
        if isinstance(exc, ConversionError):
            return exc
        wrapped = ConversionError(f"{type(exc).__name__}: {exc}")
        wrapped.__cause__ = exc
        return wrapped

    def run(self) -> DriverState:
        """Run to a terminal state. Failures are recorded on `failure`, never raised."""

        if self.state is not DriverState.IDLE:
            raise RuntimeError(f"Driver already ran (state={self.state.value}); start a new job.")

        try:
            self._open()
            self._start_readers()
            self._stream()
            self._finalize()
        except ConversionError as exc:
            self._fail(exc)
        except Exception as exc:
            log_event(
                _LOGGER,
                "driver_crashed",
                level=logging.ERROR,
                job_id=self.job_id,
                correlation_id=self.job_id,
                error=f"{type(exc).__name__}: {exc}",
            )
            self._fail(self._wrap_unexpected(exc))
        finally:
            self._close_sources()
        return self.state

    def _open(self) -> None:
        self._transition(DriverState.OPENING)
        self._left = self._open_source(self.left_path)
        self._right = self._open_source(self.right_path)

        # Left eye is the timing reference for both duration and timestamps.
        self.duration = self._left.duration()
        self.progress.set_total(self.duration)

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._sink = self._open_sink(
            self.staging_path,
            self.config.output,
            self._left.handle.frame_rate,
        )
        log_event(
            _LOGGER,
            "sources_opened",
            job_id=self.job_id,
            correlation_id=self.job_id,
            left=str(self.left_path),
            right=str(self.right_path),
            duration_seconds=float(self.duration),
            left_frames=self._left.handle.frame_count,
            right_frames=self._right.handle.frame_count,
        )

    def _start_readers(self) -> None:
        assert self._left is not None and self._right is not None and self._sink is not None
        for label, source in (("left", self._left), ("right", self._right)):
            try:
                source.start()
            except ReaderStartError:
                raise
            except Exception as exc:
                raise ReaderStartError(f"Could not start {label} reader: {exc}") from exc
        self._sink.start()
        self._transition(DriverState.STREAMING)

    def _await_ready(self, sink: MuxSink, last_progress_at: float) -> bool:
        if sink.is_ready():
            return True
        if sink.wait_ready(self.config.driver.ready_wait_seconds):
            return True
        stall_timeout = self.config.driver.stall_timeout_seconds
        if stall_timeout is not None and self._clock() - last_progress_at > stall_timeout:
            raise StalledError(f"Sink made no progress for {stall_timeout:.1f}s.")
        return False

    def _stream(self) -> None:
        assert self._left is not None and self._right is not None and self._sink is not None
        sink = self._sink
        pairer = FramePairer(self._left, self._right)
        layer_ids = self.config.output.layer_ids
        pending: tuple[FramePair, TaggedSample] | None = None
        last_progress_at = self._clock()

        while True:
            if self._cancel.is_set():
                raise Cancelled(f"Cancelled after {self.frames_written} frames.")

            if not self._await_ready(sink, last_progress_at):
                continue

            if pending is None:
                outcome = pairer.step()
                if isinstance(outcome, EndOfBoth):
                    return
                if isinstance(outcome, Desynchronized):
                    raise FrameCountMismatch(outcome.reason)
                pending = (outcome, tag_pair(outcome, layer_ids))

            pair, sample = pending
            if sink.write_frame(sample):
                self.frames_written += 1
                self.progress.record_write(pair.timestamp)
                last_progress_at = self._clock()
                pending = None
            else:
                self.writes_rejected += 1
                log_event(
                    _LOGGER,
                    "frame_rejected",
                    level=logging.DEBUG,
                    job_id=self.job_id,
                    frame_index=self.frames_written,
                )

    def _finalize(self) -> None:
        assert self._sink is not None
        self._transition(DriverState.FINALIZING)
        self._sink.mark_finished()
        try:
            self._sink.finish(self.duration)
        except FinalizeError:
            raise
        except Exception as exc:
            raise FinalizeError(f"Could not finalize output: {exc}") from exc

        self._sink = None
        self.progress.set_processed(self.duration)
        try:
            atomic_move(self.staging_path, self.output_path)
        except OSError as exc:
            raise FinalizeError(f"Could not move output into place: {exc}") from exc
        self._transition(DriverState.COMPLETED)

    def _fail(self, exc: ConversionError) -> None:
        self.failure = exc
        if self._sink is not None:
            try:
                self._sink.abort()
            except Exception as abort_exc:
                log_event(
                    _LOGGER,
                    "sink_abort_failed",
                    level=logging.WARNING,
                    job_id=self.job_id,
                    error=f"{type(abort_exc).__name__}: {abort_exc}",
                )
            self._sink = None
        discard(self.staging_path)
        self._transition(DriverState.FAILED, reason_of(exc).value)

    def _close_sources(self) -> None:
        for source in (self._left, self._right):
            if source is not None:
                source.close()
        self._left = None
        self._right = None
