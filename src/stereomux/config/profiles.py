"""Built-in output presets for common spatial video targets."""

from __future__ import annotations

from dataclasses import dataclass

from stereomux.config.schema import ConversionConfig


@dataclass(frozen=True, slots=True)
class ProfileSpec:
    """Declarative output defaults for a named preset."""

    name: str
    description: str
    width: int
    height: int
    preset: str
    crf: int


_PROFILES: dict[str, ProfileSpec] = {
    "reference": ProfileSpec(
        name="reference",
        description="Full-resolution 8192x4096 per eye.",
        width=8192,
        height=4096,
        preset="medium",
        crf=18,
    ),
    "mvhevc-1440": ProfileSpec(
        name="mvhevc-1440",
        description="Square 1440x1440 per eye, matching the MV-HEVC 1440 encoder preset.",
        width=1440,
        height=1440,
        preset="medium",
        crf=20,
    ),
    "preview": ProfileSpec(
        name="preview",
        description="Fast 1920x1080 per eye for checking alignment.",
        width=1920,
        height=1080,
        preset="veryfast",
        crf=26,
    ),
}


def available_profiles() -> dict[str, ProfileSpec]:
    """Return built-in profiles by name."""

    return dict(_PROFILES)


def resolve_profile(name: str) -> ProfileSpec:
    """Resolve one profile by name."""

    key = name.strip().lower()
    profile = _PROFILES.get(key)
    if profile is None:
        known = ", ".join(sorted(_PROFILES))
        raise ValueError(f"Unknown profile '{name}'. Available profiles: {known}")
    return profile


def apply_profile(config: ConversionConfig, profile_name: str) -> ProfileSpec:
    """Apply a profile directly onto a ConversionConfig instance."""

    profile = resolve_profile(profile_name)
    config.output.width = profile.width
    config.output.height = profile.height
    config.output.preset = profile.preset
    config.output.crf = profile.crf
    return profile
