"""Logging setup for the command line interface."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .utils import colorize_text

__all__ = ["configure_logging", "level_for_verbosity"]

_LEVEL_COLOURS = {
    logging.DEBUG: "cyan",
    logging.INFO: "green",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "magenta",
}


class _ColourFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        colour = _LEVEL_COLOURS.get(record.levelno)
        if colour is None:
            return message
        return colorize_text(message, colour, bold=record.levelno >= logging.ERROR)


def level_for_verbosity(verbosity: int) -> int:
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def configure_logging(
    verbosity: int = 0,
    *,
    log_file: Optional[Path] = None,
    colour: bool = True,
) -> None:
    """Configure root logging handlers.

    ``verbosity`` 0 reports warnings only, 1 adds progress narration and 2
    adds per-function decoder traces.  When ``log_file`` is given every record
    at DEBUG level is also written there.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    level = level_for_verbosity(verbosity)
    root.setLevel(logging.DEBUG if log_file is not None else level)

    stream = logging.StreamHandler()
    stream.setLevel(level)
    if colour:
        stream.setFormatter(_ColourFormatter("%(levelname)s: %(message)s"))
    else:
        stream.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(stream)

    if log_file is not None:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
