"""Observable progress state for one conversion job."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
import threading
from typing import Any

from stereomux.media.types import ZERO_TIME


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    """Read-only view of a job's progress at one instant."""

    processed_time: Fraction
    total_duration: Fraction
    frame_count: int
    status: str
    reason: str | None = None

    @property
    def processed_seconds(self) -> float:
        return float(self.processed_time)

    @property
    def total_seconds(self) -> float:
        return float(self.total_duration)

    @property
    def fraction(self) -> float:
        """Completed share in [0, 1]; 0 while the duration is unknown or zero."""

        if self.total_duration <= 0:
            return 0.0
        return min(1.0, max(0.0, float(self.processed_time / self.total_duration)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed_seconds": self.processed_seconds,
            "total_seconds": self.total_seconds,
            "frame_count": self.frame_count,
            "status": self.status,
            "reason": self.reason,
            "progress": self.fraction,
        }


class ProgressReporter:
    """Mutable progress fields written by the driver, read through `snapshot()`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processed_time = ZERO_TIME
        self._total_duration = ZERO_TIME
        self._frame_count = 0
        self._status = "IDLE"
        self._reason: str | None = None

    def set_total(self, duration: Fraction) -> None:
        with self._lock:
            self._total_duration = duration

    def record_write(self, timestamp: Fraction) -> None:
        with self._lock:
            self._frame_count += 1
            self._processed_time = timestamp

    def set_processed(self, timestamp: Fraction) -> None:
        with self._lock:
            self._processed_time = timestamp

    def set_status(self, status: str, reason: str | None = None) -> None:
        with self._lock:
            self._status = status
            self._reason = reason

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                processed_time=self._processed_time,
                total_duration=self._total_duration,
                frame_count=self._frame_count,
                status=self._status,
                reason=self._reason,
            )
