"""`stereomux probe` command."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Annotated

import tyro

from stereomux.media.source import probe_media


@dataclass(slots=True)
class ProbeCommand:
    """Show duration, frame count and geometry of one input video."""

    path: Annotated[Path, tyro.conf.Positional]


def execute(command: ProbeCommand) -> int:
    print(json.dumps(probe_media(command.path), indent=2, sort_keys=True))
    return 0
