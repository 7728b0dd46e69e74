from fractions import Fraction
from pathlib import Path

import cv2
import numpy as np
import pytest

from stereomux.errors import InputNotFound, ReaderStartError, UnsupportedFormat
from stereomux.media.source import OpenCVFrameSource, probe_media


def _write_clip(path: Path, frames: int, *, fps: float = 10.0, size=(64, 48)) -> Path:
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, size)
    if not writer.isOpened():
        pytest.skip("OpenCV build cannot write MJPG AVI files")
    width, height = size
    for idx in range(frames):
        image = np.full((height, width, 3), (idx * 20) % 255, dtype=np.uint8)
        writer.write(image)
    writer.release()
    return path


def test_reads_frames_with_rational_timestamps(tmp_path) -> None:
    clip = _write_clip(tmp_path / "clip.avi", 5)
    source = OpenCVFrameSource.open(clip)

    assert source.handle.frame_count == 5
    assert source.handle.frame_rate == 10
    assert source.duration() == Fraction(1, 2)
    assert (source.handle.pixel_format.width, source.handle.pixel_format.height) == (64, 48)

    source.start()
    frames = []
    while (frame := source.next_frame()) is not None:
        frames.append(frame)
    assert [frame.timestamp for frame in frames] == [Fraction(i, 10) for i in range(5)]
    assert frames[0].image.shape == (48, 64, 3)
    assert source.next_frame() is None

    source.close()
    with pytest.raises(ReaderStartError):
        source.start()


def test_next_frame_requires_start(tmp_path) -> None:
    source = OpenCVFrameSource.open(_write_clip(tmp_path / "clip.avi", 2))
    try:
        with pytest.raises(ReaderStartError):
            source.next_frame()
    finally:
        source.close()


def test_missing_file_is_input_not_found(tmp_path) -> None:
    with pytest.raises(InputNotFound):
        OpenCVFrameSource.open(tmp_path / "nope.mov")


def test_non_video_is_unsupported(tmp_path) -> None:
    bogus = tmp_path / "notes.mov"
    bogus.write_text("not a movie", encoding="utf-8")
    with pytest.raises(UnsupportedFormat):
        OpenCVFrameSource.open(bogus)


def test_probe_reports_geometry(tmp_path) -> None:
    info = probe_media(_write_clip(tmp_path / "clip.avi", 3))
    assert info["frame_count"] == 3
    assert info["width"] == 64 and info["height"] == 48
    assert info["duration_seconds"] == pytest.approx(0.3)
