"""Lockstep pairing of left and right frame sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from stereomux.media.source import FrameSource
from stereomux.media.types import FramePair


@dataclass(frozen=True, slots=True)
class EndOfBoth:
    """Both eyes ended on the same step."""


@dataclass(frozen=True, slots=True)
class Desynchronized:
    """Exactly one eye ended; the streams hold unequal frame counts."""

    exhausted: Literal["left", "right"]
    step: int

    @property
    def reason(self) -> str:
        other = "right" if self.exhausted == "left" else "left"
        return (
            f"{self.exhausted} stream ended after {self.step} frames "
            f"while the {other} stream still had frames"
        )


PairOutcome = FramePair | EndOfBoth | Desynchronized


class FramePairer:
    """Advance both sources one frame per step.

    Streams are assumed pre-synchronized; no timestamp realignment happens.
    """

    def __init__(self, left: FrameSource, right: FrameSource) -> None:
        self.left = left
        self.right = right
        self.steps = 0
        self._done = False

    def step(self) -> PairOutcome:
        if self._done:
            raise RuntimeError("Pairer already reached a terminal outcome.")

        left_frame = self.left.next_frame()
        right_frame = self.right.next_frame()

        if left_frame is not None and right_frame is not None:
            self.steps += 1
            return FramePair(left=left_frame, right=right_frame)

        self._done = True
        if left_frame is None and right_frame is None:
            return EndOfBoth()
        exhausted: Literal["left", "right"] = "left" if left_frame is None else "right"
        return Desynchronized(exhausted=exhausted, step=self.steps)
