"""``python -m roster_rescue`` entry point."""

from roster_rescue import cli

cli.app()
