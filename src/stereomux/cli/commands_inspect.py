"""`stereomux inspect` command."""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Annotated

import tyro

from stereomux.storage.events import iter_events
from stereomux.storage.jobs import list_jobs, read_job
from stereomux.storage.state_store import DEFAULT_STATE_ROOT, ensure_state_layout


@dataclass(slots=True)
class InspectCommand:
    """Inspect one stored job record, or list all jobs when no id is given."""

    id: Annotated[str | None, tyro.conf.Positional] = None
    state_root: Path = DEFAULT_STATE_ROOT
    events: bool = False


def execute(command: InspectCommand) -> int:
    paths = ensure_state_layout(command.state_root)
    if command.id is None:
        rows = [
            {
                "job_id": job.get("job_id"),
                "status": job.get("status"),
                "reason": job.get("reason"),
                "frame_count": job.get("frame_count"),
                "output": job.get("output"),
            }
            for job in list_jobs(paths)
        ]
        print(json.dumps(rows, indent=2, sort_keys=True))
        return 0

    job = read_job(paths, command.id)
    if job is None:
        raise FileNotFoundError(f"Unknown job id: {command.id}")
    if command.events:
        job = {**job, "events": list(iter_events(paths, job_id=command.id))}
    print(json.dumps(job, indent=2, sort_keys=True))
    return 0
