"""`stereomux convert` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import sys
from typing import Annotated

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
import tyro

from stereomux.config.loader import conversion_config_from_dict, load_conversion_config
from stereomux.config.profiles import apply_profile
from stereomux.errors import ConversionError
from stereomux.pipeline.job import ConversionJob, convert
from stereomux.storage.jobs import read_job
from stereomux.storage.state_store import DEFAULT_STATE_ROOT, ensure_state_layout


@dataclass(slots=True)
class ConvertCommand:
    """Merge a left and right mono video into one stereo video."""

    left: Annotated[Path, tyro.conf.Positional]
    right: Annotated[Path, tyro.conf.Positional]
    output: Annotated[Path, tyro.conf.Positional]
    width: int | None = None
    height: int | None = None
    profile: str | None = None
    config: str | None = None
    state_root: Path = DEFAULT_STATE_ROOT
    stall_timeout_seconds: float | None = None
    refresh_seconds: float = 0.25


@dataclass(slots=True)
class RetryCommand:
    """Run a stored job again with its recorded inputs and config."""

    id: Annotated[str, tyro.conf.Positional]
    output: Path | None = None
    state_root: Path = DEFAULT_STATE_ROOT
    refresh_seconds: float = 0.25


def _follow(job: ConversionJob, console: Console, refresh_seconds: float) -> None:
    columns = (
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[frames]} frames"),
        TimeElapsedColumn(),
    )
    with Progress(*columns, console=console, transient=False) as bar:
        task = bar.add_task("converting", total=1.0, frames=0)
        while not job.wait(refresh_seconds):
            snap = job.snapshot()
            bar.update(task, completed=snap.fraction, frames=snap.frame_count)
        snap = job.snapshot()
        bar.update(task, completed=snap.fraction, frames=snap.frame_count)


def execute(command: ConvertCommand) -> int:
    cfg = load_conversion_config(command.config)
    if command.profile:
        apply_profile(cfg, command.profile)
    if command.stall_timeout_seconds is not None:
        cfg.driver.stall_timeout_seconds = command.stall_timeout_seconds

    console = Console(stderr=True)
    try:
        job = convert(
            command.left,
            command.right,
            command.output,
            width=command.width,
            height=command.height,
            config=cfg,
            state_root=command.state_root,
        )
    except ConversionError as exc:
        console.print(f"[red]{exc.reason.value}[/red]: {exc}")
        return 2
    return _follow_to_exit_code(job, console, command.refresh_seconds)


def execute_retry(command: RetryCommand) -> int:
    paths = ensure_state_layout(command.state_root)
    record = read_job(paths, command.id)
    if record is None:
        raise FileNotFoundError(f"Unknown job id: {command.id}")
    cfg = conversion_config_from_dict(record["config"])

    console = Console(stderr=True)
    try:
        job = convert(
            Path(record["left"]),
            Path(record["right"]),
            command.output or Path(record["output"]),
            config=cfg,
            state_root=command.state_root,
        )
    except ConversionError as exc:
        console.print(f"[red]{exc.reason.value}[/red]: {exc}")
        return 2
    return _follow_to_exit_code(job, console, command.refresh_seconds)


def _follow_to_exit_code(job: ConversionJob, console: Console, refresh_seconds: float) -> int:
    try:
        _follow(job, console, refresh_seconds)
    except KeyboardInterrupt:
        job.cancel()
        job.wait()

    snap = job.snapshot()
    if job.status == "COMPLETED":
        print(
            f"converted job_id={job.job_id} frames={snap.frame_count} "
            f"output={job.output_path}"
        )
        return 0
    print(
        f"failed job_id={job.job_id} reason={snap.reason} error={job.error}",
        file=sys.stderr,
    )
    return 1
