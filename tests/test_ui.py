from fractions import Fraction

import pytest

from stereomux.pipeline.progress import ProgressSnapshot
from stereomux.ui.app import parse_dimension, status_line


def test_parse_dimension_accepts_numbers_and_blank() -> None:
    assert parse_dimension("8192", 1) == 8192
    assert parse_dimension(" 4096.0 ", 1) == 4096
    assert parse_dimension("", 2048) == 2048
    with pytest.raises(ValueError):
        parse_dimension("wide", 1)


def test_status_line_shows_failure_reason() -> None:
    snap = ProgressSnapshot(Fraction(1), Fraction(4), 2, "FAILED", "FrameCountMismatch")
    text = status_line(snap)
    assert "Failed(FrameCountMismatch)" in text.plain
    assert "25.0%" in text.plain


def test_status_line_handles_unknown_duration() -> None:
    snap = ProgressSnapshot(Fraction(0), Fraction(0), 0, "OPENING")
    assert "0.0%" in status_line(snap).plain
