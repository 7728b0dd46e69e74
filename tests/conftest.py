from __future__ import annotations

from fractions import Fraction
from pathlib import Path
from typing import Callable, Iterable

import numpy as np
import pytest

from stereomux.config.schema import ConversionConfig, OutputConfig
from stereomux.errors import DecodeError, FinalizeError, InputNotFound, ReaderStartError
from stereomux.media.types import Frame, MediaHandle, PixelFormat, TaggedSample


class FakeSource:
    """Scriptable in-memory frame source."""

    def __init__(
        self,
        path: Path,
        timestamps: Iterable[Fraction | int],
        *,
        duration: Fraction | int | None = None,
        fill: int = 0,
        decode_error_at: int | None = None,
        start_error: bool = False,
        size: tuple[int, int] = (8, 4),
    ) -> None:
        self.timestamps = [Fraction(ts) for ts in timestamps]
        width, height = size
        pixel_format = PixelFormat(width=width, height=height)
        if duration is None:
            duration = self.timestamps[-1] if self.timestamps else 0
        self.handle = MediaHandle(
            path=path,
            duration=Fraction(duration),
            frame_rate=Fraction(1),
            frame_count=len(self.timestamps),
            pixel_format=pixel_format,
        )
        self.fill = fill
        self.decode_error_at = decode_error_at
        self.start_error = start_error
        self.started = False
        self.closed = False
        self.pulls = 0
        self._index = 0

    def duration(self) -> Fraction:
        return self.handle.duration

    def start(self) -> None:
        if self.start_error:
            raise ReaderStartError(f"cannot start {self.handle.path}")
        self.started = True

    def next_frame(self) -> Frame | None:
        assert self.started
        self.pulls += 1
        if self._index == self.decode_error_at:
            raise DecodeError(f"bad frame {self._index}")
        if self._index >= len(self.timestamps):
            return None
        ts = self.timestamps[self._index]
        self._index += 1
        fmt = self.handle.pixel_format
        image = np.full((fmt.height, fmt.width, 3), self.fill, dtype=np.uint8)
        return Frame(image=image, timestamp=ts, pixel_format=fmt)

    def close(self) -> None:
        self.closed = True


class FakeSink:
    """Records samples and lets tests script readiness and rejections."""

    def __init__(
        self,
        *,
        ready: Callable[[int], bool] | None = None,
        accept: Callable[[int], bool] | None = None,
        finish_error: bool = False,
    ) -> None:
        self.path: Path | None = None
        self.output: OutputConfig | None = None
        self.frame_rate: Fraction | None = None
        self._ready = ready or (lambda _poll: True)
        self._accept = accept or (lambda _attempt: True)
        self.finish_error = finish_error
        self.samples: list[TaggedSample] = []
        self.calls: list[tuple[str, bool]] = []
        self.polls = 0
        self.attempts = 0
        self.started = False
        self.marked_finished = False
        self.finished_at: Fraction | None = None
        self.aborted = False

    def start(self) -> None:
        self.started = True

    def is_ready(self) -> bool:
        result = self._ready(self.polls)
        self.polls += 1
        self.calls.append(("ready", result))
        return result

    def wait_ready(self, timeout: float) -> bool:
        return self.is_ready()

    def write_frame(self, sample: TaggedSample) -> bool:
        accepted = self._accept(self.attempts)
        self.attempts += 1
        self.calls.append(("write", accepted))
        if accepted:
            self.samples.append(sample)
        return accepted

    def mark_finished(self) -> None:
        self.marked_finished = True

    def finish(self, final_timestamp: Fraction) -> None:
        if self.finish_error:
            raise FinalizeError("container could not be closed")
        assert self.path is not None
        self.finished_at = final_timestamp
        self.path.write_bytes(b"stereo:%d" % len(self.samples))

    def abort(self) -> None:
        self.aborted = True


class MediaWorld:
    """Maps input paths to fake sources and hands out one fake sink."""

    def __init__(self, sink: FakeSink | None = None) -> None:
        self.sources: dict[Path, FakeSource] = {}
        self.sink = sink or FakeSink()

    def add(self, path: Path, timestamps: Iterable[Fraction | int], **kwargs) -> FakeSource:
        path.write_bytes(b"video")
        source = FakeSource(path.resolve(), timestamps, **kwargs)
        self.sources[path.resolve()] = source
        return source

    def open_source(self, path: Path) -> FakeSource:
        key = Path(path).resolve()
        if key not in self.sources:
            raise InputNotFound(f"Input video does not exist: {path}")
        return self.sources[key]

    def open_sink(self, path: Path, output: OutputConfig, frame_rate: Fraction) -> FakeSink:
        self.sink.path = path
        self.sink.output = output
        self.sink.frame_rate = frame_rate
        return self.sink


@pytest.fixture
def world() -> MediaWorld:
    return MediaWorld()


@pytest.fixture
def small_config() -> ConversionConfig:
    cfg = ConversionConfig()
    cfg.output.width = 128
    cfg.output.height = 64
    cfg.driver.ready_wait_seconds = 0.0
    return cfg
