from fractions import Fraction
from pathlib import Path
import random
import threading

import pytest

from stereomux.errors import FailureReason
from stereomux.media.types import StereoView
from stereomux.pipeline.driver import DriverState, PipelineDriver
from stereomux.pipeline.progress import ProgressReporter, ProgressSnapshot

from conftest import FakeSink, MediaWorld


def _driver(world: MediaWorld, tmp_path: Path, config, **kwargs) -> PipelineDriver:
    return PipelineDriver(
        left_path=tmp_path / "left.mov",
        right_path=tmp_path / "right.mov",
        output_path=tmp_path / "out" / "stereo.mov",
        config=config,
        open_source=world.open_source,
        open_sink=world.open_sink,
        **kwargs,
    )


def test_ten_frame_streams_complete(world, tmp_path, small_config) -> None:
    left = world.add(tmp_path / "left.mov", range(10), fill=10)
    right = world.add(tmp_path / "right.mov", range(10), fill=200)
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.COMPLETED

    samples = world.sink.samples
    assert [s.timestamp for s in samples] == [Fraction(i) for i in range(10)]
    snap = driver.progress.snapshot()
    assert snap.status == "COMPLETED"
    assert snap.frame_count == 10
    assert snap.processed_time == 9 == snap.total_duration
    assert world.sink.finished_at == 9
    assert world.sink.marked_finished
    assert driver.output_path.read_bytes() == b"stereo:10"
    assert not driver.staging_path.exists()
    assert left.closed and right.closed


def test_layers_are_tagged_left_zero_right_one(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", range(3), fill=10)
    world.add(tmp_path / "right.mov", range(3), fill=200)
    _driver(world, tmp_path, small_config).run()

    for sample in world.sink.samples:
        assert sample.left.tag.view is StereoView.LEFT_EYE
        assert sample.left.tag.layer_id == 0
        assert sample.right.tag.view is StereoView.RIGHT_EYE
        assert sample.right.tag.layer_id == 1
        assert sample.image_for_layer(0).max() == 10
        assert sample.image_for_layer(1).max() == 200


def test_unequal_frame_counts_fail_without_output(world, tmp_path, small_config) -> None:
    left = world.add(tmp_path / "left.mov", range(10))
    right = world.add(tmp_path / "right.mov", range(9))
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.FAILED

    snap = driver.progress.snapshot()
    assert snap.reason == FailureReason.FRAME_COUNT_MISMATCH.value
    assert left.pulls == 10
    assert len(world.sink.samples) == 9
    assert world.sink.aborted
    assert world.sink.finished_at is None
    assert not driver.output_path.exists()
    assert left.closed and right.closed


def test_zero_length_inputs_complete_immediately(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", [])
    world.add(tmp_path / "right.mov", [])
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.COMPLETED
    snap = driver.progress.snapshot()
    assert snap.frame_count == 0
    assert snap.fraction == 0.0
    assert snap.total_duration == 0


@pytest.mark.parametrize("seed", range(8))
def test_backpressure_never_loses_or_duplicates_frames(world, tmp_path, small_config, seed) -> None:
    rng = random.Random(seed)
    blocked_polls = rng.randint(0, 25)
    sink = FakeSink(
        ready=lambda poll: poll >= blocked_polls and rng.random() > 0.3,
        accept=lambda _attempt: rng.random() > 0.25,
    )
    world = MediaWorld(sink)
    world.add(tmp_path / "left.mov", range(20))
    world.add(tmp_path / "right.mov", range(20))

    assert _driver(world, tmp_path, small_config).run() is DriverState.COMPLETED

    timestamps = [sample.timestamp for sample in sink.samples]
    assert timestamps == [Fraction(i) for i in range(20)]
    assert all(a < b for a, b in zip(timestamps, timestamps[1:]))
    # Every write attempt directly follows a ready poll that returned True.
    for index, (kind, _result) in enumerate(sink.calls):
        if kind == "write":
            assert sink.calls[index - 1] == ("ready", True)
    assert ("write", True) not in sink.calls[: blocked_polls]


def test_rejected_writes_retry_the_same_pair(world, tmp_path, small_config) -> None:
    sink = FakeSink(accept=lambda attempt: attempt % 2 == 1)
    world = MediaWorld(sink)
    left = world.add(tmp_path / "left.mov", range(4))
    world.add(tmp_path / "right.mov", range(4))
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.COMPLETED
    assert driver.writes_rejected == 4
    assert driver.frames_written == 4
    assert left.pulls == 5


class _RecordingProgress(ProgressReporter):
    def __init__(self) -> None:
        super().__init__()
        self.history: list[ProgressSnapshot] = []

    def record_write(self, timestamp: Fraction) -> None:
        super().record_write(timestamp)
        self.history.append(self.snapshot())


def test_progress_advances_once_per_accepted_write(tmp_path, small_config) -> None:
    sink = FakeSink(accept=lambda attempt: attempt % 3 != 0)
    world = MediaWorld(sink)
    world.add(tmp_path / "left.mov", [Fraction(i, 30) for i in range(12)])
    world.add(tmp_path / "right.mov", [Fraction(i, 30) for i in range(12)])
    progress = _RecordingProgress()
    driver = _driver(world, tmp_path, small_config, progress=progress)

    assert driver.run() is DriverState.COMPLETED
    assert driver.writes_rejected > 0

    history = progress.history
    assert [snap.frame_count for snap in history] == list(range(1, 13))
    times = [snap.processed_time for snap in history]
    assert all(a < b for a, b in zip(times, times[1:]))
    assert times == [sample.timestamp for sample in sink.samples]


def test_failure_before_start_is_recorded(world, tmp_path, small_config) -> None:
    driver = _driver(world, tmp_path, small_config)

    driver.fail_before_start(OSError("disk full"))

    assert driver.state is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.INTERNAL_ERROR.value
    assert isinstance(driver.failure.__cause__, OSError)
    with pytest.raises(RuntimeError):
        driver.run()


def test_decode_error_aborts_job(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", range(5))
    world.add(tmp_path / "right.mov", range(5), decode_error_at=2)
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.DECODE_ERROR.value
    assert world.sink.aborted


def test_missing_input_fails_while_opening(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", range(2))
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.INPUT_NOT_FOUND.value
    assert world.sink.path is None


def test_reader_start_failure(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", range(2))
    world.add(tmp_path / "right.mov", range(2), start_error=True)
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.READER_START_ERROR.value


def test_finalize_failure_leaves_no_output(tmp_path, small_config) -> None:
    world = MediaWorld(FakeSink(finish_error=True))
    world.add(tmp_path / "left.mov", range(3))
    world.add(tmp_path / "right.mov", range(3))
    driver = _driver(world, tmp_path, small_config)

    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.FINALIZE_ERROR.value
    assert not driver.output_path.exists()


def test_cancellation_is_checked_each_iteration(world, tmp_path, small_config) -> None:
    cancel = threading.Event()
    sink = FakeSink(ready=lambda poll: not cancel.set() if poll == 3 else True)
    world = MediaWorld(sink)
    world.add(tmp_path / "left.mov", range(50))
    world.add(tmp_path / "right.mov", range(50))
    driver = _driver(world, tmp_path, small_config, cancel_event=cancel)

    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.CANCELLED.value
    assert len(sink.samples) < 50
    assert sink.aborted


def test_stall_timeout_fails_a_stuck_sink(tmp_path, small_config) -> None:
    ticks = iter(range(0, 10_000, 5))
    small_config.driver.stall_timeout_seconds = 30.0
    world = MediaWorld(FakeSink(ready=lambda _poll: False))
    world.add(tmp_path / "left.mov", range(3))
    world.add(tmp_path / "right.mov", range(3))
    driver = _driver(world, tmp_path, small_config, clock=lambda: float(next(ticks)))

    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.STALLED.value


def test_unexpected_exception_is_reported_not_raised(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", range(3))
    world.add(tmp_path / "right.mov", range(3))

    def broken_sink(*_args):
        raise KeyError("boom")

    driver = PipelineDriver(
        left_path=tmp_path / "left.mov",
        right_path=tmp_path / "right.mov",
        output_path=tmp_path / "stereo.mov",
        config=small_config,
        open_source=world.open_source,
        open_sink=broken_sink,
    )
    assert driver.run() is DriverState.FAILED
    assert driver.progress.snapshot().reason == FailureReason.INTERNAL_ERROR.value
    assert "KeyError" in str(driver.failure)


def test_driver_is_single_use(world, tmp_path, small_config) -> None:
    world.add(tmp_path / "left.mov", range(1))
    world.add(tmp_path / "right.mov", range(1))
    driver = _driver(world, tmp_path, small_config)
    driver.run()
    with pytest.raises(RuntimeError):
        driver.run()
