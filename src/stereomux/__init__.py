"""stereomux package entrypoint."""

from stereomux.cli.app import main as _cli_main


def main() -> None:
    """Run the stereomux CLI."""
    _cli_main()
