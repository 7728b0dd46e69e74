"""Dataclass-based configuration schema for stereomux."""

from dataclasses import dataclass, field
from typing import Literal


@dataclass(slots=True)
class OutputConfig:
    """Encoder and container options for the stereo output."""

    width: int = 8192
    height: int = 4096
    layer_ids: tuple[int, int] = (0, 1)
    horizontal_field_of_view: int = 360_000
    horizontal_disparity_adjustment: int = 200
    codec: str = "libx265"
    pixel_format: str = "yuv422p10le"
    crf: int = 18
    preset: str = "medium"
    packing: Literal["top_bottom", "side_by_side"] = "top_bottom"


@dataclass(slots=True)
class DriverConfig:
    """Pipeline driver pacing and hardening options."""

    ready_wait_seconds: float = 0.05
    stall_timeout_seconds: float | None = None
    queue_depth: int = 8


@dataclass(slots=True)
class ConversionConfig:
    """Top-level conversion configuration."""

    output: OutputConfig = field(default_factory=OutputConfig)
    driver: DriverConfig = field(default_factory=DriverConfig)
    ffmpeg_binary: str = "ffmpeg"
