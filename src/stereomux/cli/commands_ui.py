"""`stereomux ui` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from stereomux.storage.state_store import DEFAULT_STATE_ROOT
from stereomux.ui.app import run_converter_ui


@dataclass(slots=True)
class UiCommand:
    """Open the interactive converter."""

    state_root: Path = DEFAULT_STATE_ROOT
    config: str | None = None


def execute(command: UiCommand) -> int:
    run_converter_ui(state_root=command.state_root, config_ref=command.config)
    return 0
