"""Decoded frame sources backed by OpenCV."""

from __future__ import annotations

from fractions import Fraction
from pathlib import Path
from typing import Any, Callable, Protocol

import cv2
import numpy as np

from stereomux.errors import DecodeError, InputNotFound, ReaderStartError, UnsupportedFormat
from stereomux.media.types import Frame, MediaHandle, PixelFormat, ZERO_TIME, to_media_time


class FrameSource(Protocol):
    """One eye's decoder: a finite, non-restartable sequence of frames."""

    handle: MediaHandle

    def duration(self) -> Fraction:
        ...

    def start(self) -> None:
        ...

    def next_frame(self) -> Frame | None:
        """Return the next frame, or None at end of stream."""
        ...

    def close(self) -> None:
        ...


SourceOpener = Callable[[Path], FrameSource]


def _frame_rate(capture: Any) -> Fraction:
    fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
    if fps <= 0.0 or not np.isfinite(fps):
        return Fraction(0)
    # NTSC-style rates come back as 29.97002997...; keep them exact.
    return Fraction(fps).limit_denominator(1001)


class OpenCVFrameSource:
    """Read frames from a video file with `cv2.VideoCapture`."""

    def __init__(self, path: Path, capture: Any, handle: MediaHandle) -> None:
        self.path = path
        self.handle = handle
        self._capture = capture
        self._started = False
        self._exhausted = False
        self._index = 0
        self._last_timestamp: Fraction | None = None

    @classmethod
    def open(
        cls,
        path: Path,
        *,
        capture_factory: Callable[[str], Any] = cv2.VideoCapture,
    ) -> "OpenCVFrameSource":
        """Open `path` and load its duration and geometry."""

        if not path.exists():
            raise InputNotFound(f"Input video does not exist: {path}")
        if not path.is_file():
            raise InputNotFound(f"Input video is not a file: {path}")

        capture = capture_factory(str(path))
        if not capture.isOpened():
            capture.release()
            raise UnsupportedFormat(f"Could not open a video track in: {path}")

        frame_rate = _frame_rate(capture)
        frame_count = max(0, int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0))
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        if frame_count > 0 and (frame_rate <= 0 or width <= 0 or height <= 0):
            capture.release()
            raise UnsupportedFormat(
                f"Video track in {path} reports no usable frame rate or size "
                f"(fps={float(frame_rate)}, size={width}x{height})."
            )

        duration = Fraction(frame_count) / frame_rate if frame_rate > 0 else ZERO_TIME
        handle = MediaHandle(
            path=path.resolve(),
            duration=duration,
            frame_rate=frame_rate,
            frame_count=frame_count,
            pixel_format=PixelFormat(width=width, height=height),
        )
        return cls(path, capture, handle)

    def duration(self) -> Fraction:
        return self.handle.duration

    def start(self) -> None:
        """Prepare the capture for sequential reads from the first frame."""

        if self._exhausted or self._capture is None:
            raise ReaderStartError(f"Source already consumed; reopen to read again: {self.path}")
        if self._started:
            return
        if not self._capture.isOpened():
            raise ReaderStartError(f"Decoder is not open for: {self.path}")
        self._capture.set(cv2.CAP_PROP_POS_FRAMES, 0)
        self._started = True

    def next_frame(self) -> Frame | None:
        if not self._started:
            raise ReaderStartError(f"Source was not started: {self.path}")
        if self._exhausted:
            return None

        ok, image = self._capture.read()
        if not ok:
            self._exhausted = True
            return None
        if image is None or image.ndim != 3:
            raise DecodeError(f"Frame {self._index} of {self.path} could not be decoded.")

        expected = self.handle.pixel_format
        height, width = image.shape[:2]
        if (width, height) != (expected.width, expected.height):
            raise DecodeError(
                f"Frame {self._index} of {self.path} is {width}x{height}, "
                f"expected {expected.width}x{expected.height}."
            )

        timestamp = self._timestamp_for(self._index)
        if self._last_timestamp is not None and timestamp <= self._last_timestamp:
            raise DecodeError(
                f"Non-increasing timestamp {float(timestamp):.6f}s at frame {self._index} of {self.path}."
            )
        self._last_timestamp = timestamp
        self._index += 1
        return Frame(image=image, timestamp=timestamp, pixel_format=expected)

    def _timestamp_for(self, index: int) -> Fraction:
        if self.handle.frame_rate > 0:
            return Fraction(index) / self.handle.frame_rate
        return to_media_time(float(self._capture.get(cv2.CAP_PROP_POS_MSEC) or 0.0) / 1000.0)

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        self._exhausted = True


def open_opencv_source(path: Path) -> FrameSource:
    return OpenCVFrameSource.open(path)


def probe_media(path: Path) -> dict[str, Any]:
    """Return JSON-ready metadata for one input video."""

    source = OpenCVFrameSource.open(path)
    try:
        handle = source.handle
        return {
            "path": str(handle.path),
            "duration_seconds": float(handle.duration),
            "frame_rate": str(handle.frame_rate),
            "frame_count": handle.frame_count,
            "width": handle.pixel_format.width,
            "height": handle.pixel_format.height,
            "pixel_layout": handle.pixel_format.layout,
            "tracks": list(handle.tracks),
        }
    finally:
        source.close()
