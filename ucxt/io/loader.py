"""Load the usecode image and its optional companion files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List

from ..exceptions import InputNotFound

LOGGER = logging.getLogger(__name__)

__all__ = [
    "load_image_bytes",
    "load_flag_names",
    "parse_flag_names",
    "load_intrinsic_names",
    "parse_intrinsic_names",
]

_INTRINSIC_ENTRY = re.compile(r"<\s*(0x[0-9a-fA-F]+|\d+)\s*>\s*([^<]*?)\s*</\s*>")


def _read_bytes(path: Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise InputNotFound(str(path), exc.strerror or str(exc)) from exc


def load_image_bytes(path: Path) -> bytes:
    """Read the whole usecode image into memory."""

    data = _read_bytes(path)
    LOGGER.info("Loaded %d bytes of usecode from %s", len(data), path)
    return data


def parse_flag_names(data: bytes) -> List[str]:
    """Split a flag-name file into identifiers indexed by flag number.

    Records are NUL separated.  A leading ``$`` is dropped and an empty record
    keeps its slot so the indices stay aligned.  Duplicated names get their
    index appended so every name is a valid, unique identifier.
    """

    names: List[str] = []
    seen: Dict[str, int] = {}
    records = data.split(b"\0")
    if records and records[-1] == b"":
        records.pop()
    for index, raw in enumerate(records):
        name = raw.decode("latin-1").strip()
        if name.startswith("$"):
            name = name[1:]
        if name and name in seen:
            name = f"{name}{index}"
        if name:
            seen[name] = index
        names.append(name)
    return names


def load_flag_names(path: Path) -> List[str]:
    names = parse_flag_names(_read_bytes(path))
    LOGGER.info("Loaded %d global flag names from %s", len(names), path)
    return names


def parse_intrinsic_names(text: str) -> Dict[int, str]:
    """Parse an ``<intrinsics>`` data block into an id to name mapping."""

    body = text
    start = body.find("<intrinsics>")
    if start >= 0:
        body = body[start + len("<intrinsics>") :]
    names: Dict[int, str] = {}
    for match in _INTRINSIC_ENTRY.finditer(body):
        number, name = match.groups()
        if not name:
            continue
        names[int(number, 0)] = name
    return names


def load_intrinsic_names(path: Path) -> Dict[int, str]:
    names = parse_intrinsic_names(_read_bytes(path).decode("latin-1"))
    LOGGER.info("Loaded %d intrinsic names from %s", len(names), path)
    return names
