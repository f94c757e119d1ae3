"""Logging setup — a single Rich handler on the package logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_LOGGER = logging.getLogger("roster_rescue")
_FORMAT = "%(message)s"


def setup_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a Rich handler to the package logger (idempotent)."""
    level = logging.DEBUG if verbose else logging.WARNING
    for handler in list(_LOGGER.handlers):
        if isinstance(handler, RichHandler):
            _LOGGER.removeHandler(handler)
    handler = RichHandler(console=console, rich_tracebacks=True, show_path=verbose)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="[%X]"))
    _LOGGER.addHandler(handler)
    _LOGGER.setLevel(level)
    _LOGGER.propagate = False
    return _LOGGER
