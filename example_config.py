"""Example stereomux conversion config."""

from stereomux.config.schema import ConversionConfig, DriverConfig, OutputConfig


LEFT_EYE = "/Volumes/footage/rig-a/left.mov"
RIGHT_EYE = "/Volumes/footage/rig-a/right.mov"

CONFIG = ConversionConfig(
    output=OutputConfig(
        width=4096,
        height=2048,
        layer_ids=(0, 1),
        horizontal_field_of_view=360_000,
        horizontal_disparity_adjustment=200,
        codec="libx265",
        pixel_format="yuv422p10le",
        crf=18,
        preset="slow",
        packing="top_bottom",
    ),
    driver=DriverConfig(
        ready_wait_seconds=0.05,
        stall_timeout_seconds=120.0,
        queue_depth=8,
    ),
    ffmpeg_binary="ffmpeg",
)
