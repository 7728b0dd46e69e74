"""Interactive Textual front-end for picking inputs and following a conversion."""

from __future__ import annotations

from pathlib import Path
import sys

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Footer, Header, Input, ProgressBar, Static

from stereomux.config.loader import load_conversion_config
from stereomux.errors import ConversionError
from stereomux.observability.logging import redirect_logging
from stereomux.pipeline.job import ConversionJob, convert
from stereomux.pipeline.progress import ProgressSnapshot
from stereomux.storage.state_store import ensure_state_layout
from stereomux.ui.screens import ConfirmScreen


DEFAULT_WIDTH = 8192
DEFAULT_HEIGHT = 4096


def parse_dimension(text: str, default: int) -> int:
    """Parse a width/height field; blank means `default`."""

    value = text.strip()
    if not value:
        return default
    try:
        return int(float(value))
    except ValueError as exc:
        raise ValueError(f"Not a number: {value!r}") from exc


def status_line(snapshot: ProgressSnapshot) -> Text:
    """Render the one-line job status shown under the progress bar."""

    pct = snapshot.fraction * 100.0
    body = (
        f"{snapshot.status.title()}  {pct:5.1f}%  "
        f"{snapshot.processed_seconds:.2f}s / {snapshot.total_seconds:.2f}s  "
        f"{snapshot.frame_count} frames"
    )
    if snapshot.status == "FAILED":
        return Text(f"{body}  Failed({snapshot.reason})", style="bold red")
    if snapshot.status == "COMPLETED":
        return Text(body, style="bold green")
    return Text(body)


class ConverterApp(App[None]):
    """Pick left/right inputs and an output, then watch the conversion."""

    CSS = """
    Screen {
        layout: vertical;
    }

    #form {
        height: auto;
        margin: 1 2;
        border: round $panel;
        padding: 0 1;
    }

    .row {
        height: auto;
    }

    .row Input {
        width: 1fr;
    }

    #actions {
        height: auto;
        margin: 0 2;
    }

    #progress_box {
        height: auto;
        margin: 1 2;
        border: round $panel;
        padding: 0 1;
    }

    #status_line {
        height: 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("ctrl+r", "convert", "Convert"),
        Binding("escape", "cancel_job", "Cancel Job"),
    ]

    def __init__(
        self,
        *,
        state_root: Path,
        config_ref: str | None = None,
        refresh_interval: float = 0.25,
    ) -> None:
        super().__init__()
        self.state_root = state_root
        self.config_ref = config_ref
        self.refresh_interval = max(0.05, refresh_interval)
        self.job: ConversionJob | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Vertical(id="form"):
            yield Static("[b]Left mono video[/b]")
            yield Input(placeholder="/path/to/left.mov", id="left_path")
            yield Static("[b]Right mono video[/b]")
            yield Input(placeholder="/path/to/right.mov", id="right_path")
            yield Static("[b]Save stereo video as[/b]")
            yield Input(placeholder="/path/to/stereo.mov", id="output_path")
            with Horizontal(classes="row"):
                yield Input(value=str(DEFAULT_WIDTH), placeholder="Video width", id="width")
                yield Input(value=str(DEFAULT_HEIGHT), placeholder="Video height", id="height")
        with Horizontal(id="actions"):
            yield Button("Save Stereo Video", variant="primary", id="convert", disabled=True)
            yield Button("Cancel", variant="error", id="cancel", disabled=True)
        with Vertical(id="progress_box"):
            yield ProgressBar(total=1.0, show_eta=False, id="progress")
            yield Static("Idle", id="status_line")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#left_path", Input).focus()
        self.set_interval(self.refresh_interval, self._refresh)

    def _value(self, widget_id: str) -> str:
        return self.query_one(f"#{widget_id}", Input).value.strip()

    def _inputs_ready(self) -> bool:
        return bool(self._value("left_path") and self._value("right_path"))

    def _job_running(self) -> bool:
        return self.job is not None and not self.job.done

    def on_input_changed(self, event: Input.Changed) -> None:
        self.query_one("#convert", Button).disabled = (
            not self._inputs_ready() or self._job_running()
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "convert":
            self.action_convert()
            return
        if event.button.id == "cancel":
            self.action_cancel_job()

    def action_convert(self) -> None:
        if self._job_running() or not self._inputs_ready():
            return
        output_text = self._value("output_path")
        if not output_text:
            self.notify("Choose where to save the stereo video.", severity="warning")
            return
        output = Path(output_text).expanduser()
        if output.exists():

            def _confirm(ok: bool | None) -> None:
                if ok:
                    self._start(output)

            self.push_screen(
                ConfirmScreen(message=f"Overwrite {output}?", ok_label="Overwrite"),
                _confirm,
            )
            return
        self._start(output)

    def _start(self, output: Path) -> None:
        try:
            width = parse_dimension(self._value("width"), DEFAULT_WIDTH)
            height = parse_dimension(self._value("height"), DEFAULT_HEIGHT)
            cfg = load_conversion_config(self.config_ref)
            self.job = convert(
                Path(self._value("left_path")).expanduser(),
                Path(self._value("right_path")).expanduser(),
                output,
                width=width,
                height=height,
                config=cfg,
                state_root=self.state_root,
            )
        except (ConversionError, ValueError) as exc:
            self.notify(str(exc), title="Cannot convert", severity="error")
            return
        self.query_one("#convert", Button).disabled = True
        self.query_one("#cancel", Button).disabled = False
        self._refresh()

    def action_cancel_job(self) -> None:
        if self._job_running():
            assert self.job is not None
            self.job.cancel()
            self.notify("Cancelling...")

    def _refresh(self) -> None:
        if self.job is None:
            return
        snapshot = self.job.snapshot()
        self.query_one("#progress", ProgressBar).update(progress=snapshot.fraction)
        self.query_one("#status_line", Static).update(status_line(snapshot))
        if self.job.done:
            self.query_one("#cancel", Button).disabled = True
            self.query_one("#convert", Button).disabled = not self._inputs_ready()


def run_converter_ui(*, state_root: Path, config_ref: str | None = None) -> None:
    """Run the interactive converter."""

    if not sys.stdin.isatty() or not sys.stdout.isatty():
        raise SystemExit("stereomux ui requires an interactive terminal")

    paths = ensure_state_layout(state_root)
    redirect_logging(paths.runtime / "ui.log")
    ConverterApp(state_root=state_root, config_ref=config_ref).run()
