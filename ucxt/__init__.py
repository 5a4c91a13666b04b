"""Usecode disassembler and decompiler."""

from __future__ import annotations

from .exceptions import (
    InputNotFound,
    MalformedFunction,
    RequestedFunctionNotFound,
    TranslationError,
    TruncatedInput,
    UnknownSymbolTableFormat,
    UsecodeError,
)
from .options import Game, Generation, Options

__version__ = "0.4.0"

__all__ = [
    "Game",
    "Generation",
    "InputNotFound",
    "MalformedFunction",
    "Options",
    "RequestedFunctionNotFound",
    "TranslationError",
    "TruncatedInput",
    "UnknownSymbolTableFormat",
    "UsecodeError",
    "__version__",
]
