"""Small helpers shared by the CLI and the report writer."""

from __future__ import annotations

import json
import os
import tempfile
from typing import Any, Callable, TextIO

__all__ = ["colorize_text", "write_text", "write_json"]

_COLOR_CODES = {
    "red": "31",
    "green": "32",
    "yellow": "33",
    "blue": "34",
    "magenta": "35",
    "cyan": "36",
}


def colorize_text(text: str, color: str, bold: bool = False) -> str:
    """Return *text* wrapped in ANSI color codes."""
    code = _COLOR_CODES.get(color, "0")
    style = "1;" if bold else ""
    return f"\033[{style}{code}m{text}\033[0m"


def _atomic_write(path: str | os.PathLike[str], writer: Callable[[TextIO], None]) -> None:
    target = os.fspath(path)
    directory = os.path.dirname(target) or "."
    os.makedirs(directory, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".partial", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            writer(handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise


def write_text(path: str | os.PathLike[str], content: str) -> None:
    """Atomically write ``content`` to ``path``."""

    _atomic_write(path, lambda handle: handle.write(content))


def write_json(path: str | os.PathLike[str], payload: Any, *, indent: int = 2) -> None:
    """Atomically serialise ``payload`` as JSON to ``path``."""

    def _writer(handle: TextIO) -> None:
        json.dump(payload, handle, indent=indent, sort_keys=True)
        handle.write("\n")

    _atomic_write(path, _writer)
