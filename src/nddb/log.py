"""Logging setup for command-line use."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

# Logs go to stderr so that command output on stdout stays parseable.
console = Console(stderr=True)


def setup_logging(level: str | int | None = None) -> None:
    """Send log records through rich and install rich tracebacks.

    Args:
        level: Handler level. Defaults to the ``LOGLEVEL`` environment
            variable, or INFO.
    """
    if level is None:
        level = os.environ.get("LOGLEVEL", "INFO")
    if isinstance(level, str):
        level = level.upper()

    handler = RichHandler(
        level=level,
        console=console,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level="NOTSET", format="%(message)s", datefmt="[%X]", handlers=[handler], force=True
    )

    install(console=console)
