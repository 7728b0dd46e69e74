from fractions import Fraction

from stereomux.pipeline.progress import ProgressReporter, ProgressSnapshot


def test_zero_duration_reports_zero_progress() -> None:
    snap = ProgressSnapshot(
        processed_time=Fraction(0),
        total_duration=Fraction(0),
        frame_count=0,
        status="IDLE",
    )
    assert snap.fraction == 0.0
    assert snap.to_dict()["progress"] == 0.0


def test_fraction_is_clamped() -> None:
    snap = ProgressSnapshot(Fraction(12), Fraction(10), 3, "STREAMING")
    assert snap.fraction == 1.0


def test_reporter_tracks_writes_and_status() -> None:
    reporter = ProgressReporter()
    reporter.set_total(Fraction(4))
    reporter.record_write(Fraction(1))
    reporter.record_write(Fraction(2))
    reporter.set_status("FAILED", "Cancelled")

    snap = reporter.snapshot()
    assert snap.frame_count == 2
    assert snap.processed_seconds == 2.0
    assert snap.fraction == 0.5
    assert (snap.status, snap.reason) == ("FAILED", "Cancelled")
