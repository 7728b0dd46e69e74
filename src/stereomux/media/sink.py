"""Tagged multi-view mux sinks backed by an ffmpeg subprocess.

`FFmpegMuxSink` packs each tagged sample into one raw frame (layer order
decides placement) and streams it to ffmpeg's stdin from a writer thread.
The bounded hand-off queue between caller and writer thread is the
backpressure signal: when it is full the sink is not ready and writes are
rejected rather than blocking.
"""

from __future__ import annotations

from collections import deque
from fractions import Fraction
import logging
from pathlib import Path
import queue
import subprocess
import threading
from typing import IO, Any, Callable, Protocol

import cv2
import numpy as np

from stereomux.config.schema import OutputConfig
from stereomux.errors import FinalizeError, UnsupportedFormat, WriteError
from stereomux.media.types import TaggedSample
from stereomux.observability.logging import get_logger, log_event


_LOGGER = get_logger("stereomux.sink")

MIN_DIMENSION = 64
MAX_DIMENSION = 8192
SUPPORTED_SUFFIXES = (".mov", ".mp4", ".m4v", ".mkv")

_STOP = object()


class MuxSink(Protocol):
    """Writer side of the pipeline: one tagged sample per accepted write."""

    def start(self) -> None:
        ...

    def is_ready(self) -> bool:
        ...

    def wait_ready(self, timeout: float) -> bool:
        """Block up to `timeout` seconds for readiness; return is_ready()."""
        ...

    def write_frame(self, sample: TaggedSample) -> bool:
        """Append one sample; False means rejected and nothing was consumed."""
        ...

    def mark_finished(self) -> None:
        ...

    def finish(self, final_timestamp: Fraction) -> None:
        ...

    def abort(self) -> None:
        ...


SinkOpener = Callable[[Path, OutputConfig, Fraction], MuxSink]


def validate_dimensions(width: int, height: int) -> None:
    """Reject per-eye output sizes the encoder cannot take."""

    for label, value in (("width", width), ("height", height)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise UnsupportedFormat(f"Output {label} must be an integer, got {value!r}.")
        if value < MIN_DIMENSION or value > MAX_DIMENSION:
            raise UnsupportedFormat(
                f"Output {label} {value} is outside [{MIN_DIMENSION}, {MAX_DIMENSION}]."
            )
        if value % 2 != 0:
            raise UnsupportedFormat(f"Output {label} must be even, got {value}.")


def validate_output_path(path: Path) -> None:
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        known = ", ".join(SUPPORTED_SUFFIXES)
        raise UnsupportedFormat(f"Unsupported output container '{path.suffix}'. Use one of: {known}")


def packed_size(config: OutputConfig) -> tuple[int, int]:
    """Return (width, height) of one packed multi-view frame."""

    if config.packing == "side_by_side":
        return config.width * 2, config.height
    return config.width, config.height * 2


def pack_sample(sample: TaggedSample, config: OutputConfig) -> np.ndarray:
    """Arrange the sample's layers by layer id into one contiguous BGR frame."""

    layers: list[np.ndarray] = []
    for layer_id in config.layer_ids:
        image = sample.image_for_layer(layer_id)
        if image.shape[1] != config.width or image.shape[0] != config.height:
            image = cv2.resize(image, (config.width, config.height), interpolation=cv2.INTER_AREA)
        layers.append(image)

    if config.packing == "side_by_side":
        packed = np.hstack(layers)
    else:
        packed = np.vstack(layers)
    return np.ascontiguousarray(packed, dtype=np.uint8)


def build_ffmpeg_command(
    output_path: Path,
    config: OutputConfig,
    frame_rate: Fraction,
    *,
    ffmpeg_binary: str = "ffmpeg",
) -> list[str]:
    """Build the ffmpeg invocation for one packed stereo output."""

    width, height = packed_size(config)
    rate = frame_rate if frame_rate > 0 else Fraction(30)
    cmd = [
        ffmpeg_binary,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-f",
        "rawvideo",
        "-vcodec",
        "rawvideo",
        "-pix_fmt",
        "bgr24",
        "-s",
        f"{width}x{height}",
        "-r",
        f"{rate.numerator}/{rate.denominator}",
        "-i",
        "-",
        "-an",
        "-c:v",
        config.codec,
        "-preset",
        config.preset,
        "-crf",
        str(config.crf),
        "-pix_fmt",
        config.pixel_format,
    ]

    left_id, right_id = config.layer_ids
    cmd.extend(["-metadata:s:v:0", f"stereo_mode={config.packing}"])
    cmd.extend(["-metadata", f"stereo_layer_ids={left_id},{right_id}"])
    cmd.extend(["-metadata", f"horizontal_field_of_view={config.horizontal_field_of_view}"])
    cmd.extend(
        ["-metadata", f"horizontal_disparity_adjustment={config.horizontal_disparity_adjustment}"]
    )

    suffix = output_path.suffix.lower()
    if suffix in (".mp4", ".mov", ".m4v"):
        cmd.extend(["-movflags", "+use_metadata_tags+write_colr"])
        if config.codec in ("libx265", "hevc", "hevc_nvenc", "hevc_videotoolbox"):
            cmd.extend(["-tag:v", "hvc1"])

    cmd.append(str(output_path))
    return cmd


class FFmpegMuxSink:
    """Encode tagged samples into one packed stereo video via ffmpeg."""

    def __init__(
        self,
        output_path: Path,
        config: OutputConfig,
        frame_rate: Fraction,
        *,
        ffmpeg_binary: str = "ffmpeg",
        queue_depth: int = 8,
        process_factory: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        validate_output_path(output_path)
        validate_dimensions(config.width, config.height)
        if queue_depth <= 0:
            raise ValueError(f"queue_depth must be > 0, got {queue_depth}")

        self.output_path = output_path
        self.config = config
        self.frame_rate = frame_rate
        self.command = build_ffmpeg_command(
            output_path, config, frame_rate, ffmpeg_binary=ffmpeg_binary
        )
        self._process_factory = process_factory
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_depth)
        self._space = threading.Condition()
        self._process: Any = None
        self._writer: threading.Thread | None = None
        self._stderr_reader: threading.Thread | None = None
        self._stderr_tail: deque[str] = deque(maxlen=40)
        self._error: BaseException | None = None
        self._input_finished = False
        self.samples_written = 0

    def start(self) -> None:
        if self._process is not None:
            return
        try:
            self._process = self._process_factory(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise WriteError(f"ffmpeg executable not found: {self.command[0]}") from exc

        self._stderr_reader = threading.Thread(
            target=self._drain_stderr, args=(self._process.stderr,), daemon=True
        )
        self._stderr_reader.start()
        self._writer = threading.Thread(target=self._write_loop, daemon=True)
        self._writer.start()
        log_event(
            _LOGGER,
            "sink_started",
            level=logging.DEBUG,
            output=str(self.output_path),
            command=" ".join(self.command),
        )

    def _drain_stderr(self, pipe: IO[bytes] | None) -> None:
        if pipe is None:
            return
        for raw in pipe:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                self._stderr_tail.append(line)
                _LOGGER.debug(line)

    def _write_loop(self) -> None:
        stdin = self._process.stdin
        while True:
            item = self._queue.get()
            with self._space:
                self._space.notify_all()
            if item is _STOP:
                return
            if self._error is not None:
                continue
            try:
                stdin.write(item)
                self.samples_written += 1
            except (BrokenPipeError, OSError, ValueError) as exc:
                self._error = exc
                with self._space:
                    self._space.notify_all()

    def is_ready(self) -> bool:
        """True when a write can be accepted or a pending failure must surface."""

        if self._process is None or self._input_finished:
            return False
        return self._error is not None or not self._queue.full()

    def wait_ready(self, timeout: float) -> bool:
        with self._space:
            return self._space.wait_for(self.is_ready, timeout=timeout)

    def write_frame(self, sample: TaggedSample) -> bool:
        if self._error is not None:
            raise WriteError(f"Encoder stopped accepting frames: {self._describe_failure()}")
        if self._process is None or self._input_finished:
            raise WriteError("Sink is not accepting samples.")
        payload = pack_sample(sample, self.config).tobytes()
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            return False
        return True

    def mark_finished(self) -> None:
        self._input_finished = True

    def finish(self, final_timestamp: Fraction) -> None:
        """Flush queued samples, close the encoder and check its exit status."""

        self.mark_finished()
        if self._process is None:
            raise FinalizeError("Sink was never started.")

        self._queue.put(_STOP)
        if self._writer is not None:
            self._writer.join()
        try:
            self._process.stdin.close()
        except (BrokenPipeError, OSError) as exc:
            if self._error is None:
                self._error = exc
        returncode = self._process.wait()
        if self._stderr_reader is not None:
            self._stderr_reader.join(timeout=5.0)

        if self._error is not None or returncode != 0:
            raise FinalizeError(
                f"ffmpeg exited with code {returncode} for {self.output_path}: "
                f"{self._describe_failure()}"
            )
        log_event(
            _LOGGER,
            "sink_finished",
            output=str(self.output_path),
            samples=self.samples_written,
            final_timestamp=float(final_timestamp),
        )

    def abort(self) -> None:
        """Stop the encoder without waiting for queued samples."""

        self._input_finished = True
        if self._process is None:
            return
        if self._process.poll() is None:
            self._process.kill()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        self._queue.put(_STOP)
        if self._writer is not None:
            self._writer.join(timeout=5.0)
        self._process.wait()

    def _describe_failure(self) -> str:
        tail = " | ".join(self._stderr_tail)
        if self._error is not None:
            return f"{type(self._error).__name__}: {self._error}. {tail}".strip()
        return tail or "no encoder output"


def open_ffmpeg_sink(
    output_path: Path,
    config: OutputConfig,
    frame_rate: Fraction,
    *,
    ffmpeg_binary: str = "ffmpeg",
    queue_depth: int = 8,
) -> MuxSink:
    return FFmpegMuxSink(
        output_path,
        config,
        frame_rate,
        ffmpeg_binary=ffmpeg_binary,
        queue_depth=queue_depth,
    )
