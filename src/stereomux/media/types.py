"""Frame, pair and tagged-sample models shared by sources, pairer and sinks.

Media time is carried as ``fractions.Fraction`` seconds so timestamps stay
exact rationals end to end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction
from pathlib import Path

import numpy as np


MediaTime = Fraction

ZERO_TIME = Fraction(0)


def to_media_time(value: float | int | Fraction, *, max_denominator: int = 10_000_000) -> Fraction:
    """Convert seconds to an exact rational, bounding float denominators."""

    if isinstance(value, Fraction):
        return value
    if isinstance(value, int):
        return Fraction(value)
    return Fraction(value).limit_denominator(max_denominator)


@dataclass(frozen=True, slots=True)
class PixelFormat:
    """Decoded image geometry and sample layout."""

    width: int
    height: int
    layout: str = "bgr24"
    bit_depth: int = 8


@dataclass(frozen=True, slots=True)
class MediaHandle:
    """Opened video asset metadata."""

    path: Path
    duration: Fraction
    frame_rate: Fraction
    frame_count: int
    pixel_format: PixelFormat
    tracks: tuple[str, ...] = ("video",)


@dataclass(frozen=True, slots=True)
class Frame:
    """One decoded image and its presentation timestamp."""

    image: np.ndarray = field(repr=False)
    timestamp: Fraction
    pixel_format: PixelFormat


class StereoView(str, Enum):
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"


@dataclass(frozen=True, slots=True)
class FramePair:
    """Left and right frames emitted together for one output timestamp.

    The left frame is the timing reference: ``timestamp`` is always the
    left frame's presentation timestamp.
    """

    left: Frame
    right: Frame

    @property
    def timestamp(self) -> Fraction:
        return self.left.timestamp


@dataclass(frozen=True, slots=True)
class SampleTag:
    """Stereo view plus video layer identifier attached to one image."""

    view: StereoView
    layer_id: int


@dataclass(frozen=True, slots=True)
class TaggedImage:
    tag: SampleTag
    image: np.ndarray = field(repr=False)


@dataclass(frozen=True, slots=True)
class TaggedSample:
    """The multi-view unit appended to the output container."""

    timestamp: Fraction
    layers: tuple[TaggedImage, TaggedImage]

    def __post_init__(self) -> None:
        views = [layer.tag.view for layer in self.layers]
        if views != [StereoView.LEFT_EYE, StereoView.RIGHT_EYE]:
            raise ValueError(f"Tagged sample must hold left then right eye, got {views}")

    @property
    def left(self) -> TaggedImage:
        return self.layers[0]

    @property
    def right(self) -> TaggedImage:
        return self.layers[1]

    def image_for_layer(self, layer_id: int) -> np.ndarray:
        for layer in self.layers:
            if layer.tag.layer_id == layer_id:
                return layer.image
        raise KeyError(f"No layer with id {layer_id}")


LEFT_LAYER_ID = 0
RIGHT_LAYER_ID = 1


def tag_pair(pair: FramePair, layer_ids: tuple[int, int] = (LEFT_LAYER_ID, RIGHT_LAYER_ID)) -> TaggedSample:
    """Tag a pair as (left eye, layer_ids[0]) and (right eye, layer_ids[1])."""

    left_id, right_id = layer_ids
    if left_id == right_id:
        raise ValueError(f"Layer ids must differ, got {layer_ids}")
    return TaggedSample(
        timestamp=pair.timestamp,
        layers=(
            TaggedImage(SampleTag(StereoView.LEFT_EYE, left_id), pair.left.image),
            TaggedImage(SampleTag(StereoView.RIGHT_EYE, right_id), pair.right.image),
        ),
    )
