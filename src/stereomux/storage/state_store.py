"""State directory layout helpers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_STATE_ROOT = Path(".stereomux/state/v1")


@dataclass(frozen=True, slots=True)
class StatePaths:
    """All important state paths rooted at `.stereomux/state/v1`."""

    root: Path
    jobs: Path
    events: Path
    runtime: Path


def build_state_paths(root: Path) -> StatePaths:
    """Build a typed state path object."""

    return StatePaths(
        root=root,
        jobs=root / "jobs",
        events=root / "events",
        runtime=root / "runtime",
    )


def ensure_state_layout(root: Path = DEFAULT_STATE_ROOT) -> StatePaths:
    """Create state directories if they do not already exist."""

    paths = build_state_paths(root)
    for directory in (paths.root, paths.jobs, paths.events, paths.runtime):
        directory.mkdir(parents=True, exist_ok=True)
    return paths
