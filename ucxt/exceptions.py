"""Custom exception hierarchy for the usecode decompiler."""

from __future__ import annotations

from typing import Optional


class UsecodeError(Exception):
    """Base class for all usecode decoding and rendering errors."""


class InputNotFound(UsecodeError):
    """Raised when the usecode image (or a companion file) cannot be opened."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        message = f"cannot open {path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class TruncatedInput(UsecodeError):
    """Raised when a read would cross the end of the buffer."""

    def __init__(self, offset: int, wanted: int, available: int) -> None:
        self.offset = offset
        self.wanted = wanted
        self.available = available
        super().__init__(
            f"truncated input at offset 0x{offset:x}: wanted {wanted} bytes, {available} available"
        )


class MalformedFunction(UsecodeError):
    """Raised when a function record cannot be decoded within its declared size."""

    def __init__(self, function_id: int, reason: str, offset: Optional[int] = None) -> None:
        self.function_id = function_id
        self.reason = reason
        self.offset = offset
        where = f" at code offset 0x{offset:04x}" if offset is not None else ""
        super().__init__(f"function 0x{function_id:04x} is malformed{where}: {reason}")


class UnknownSymbolTableFormat(UsecodeError):
    """Raised when an embedded symbol table uses an unsupported layout."""

    def __init__(self, reason: str, resume_offset: Optional[int] = None) -> None:
        self.reason = reason
        self.resume_offset = resume_offset
        super().__init__(f"unknown symbol table format: {reason}")


class RequestedFunctionNotFound(UsecodeError):
    """Raised when none of the requested function ids exist in the image."""

    def __init__(self, function_ids) -> None:
        self.function_ids = tuple(function_ids)
        listed = ", ".join(f"0x{fid:04x}" for fid in self.function_ids)
        super().__init__(f"function not found: {listed}")


class TranslationError(UsecodeError):
    """Raised when a function cannot be reconstructed as pseudo-source."""


__all__ = [
    "UsecodeError",
    "InputNotFound",
    "TruncatedInput",
    "MalformedFunction",
    "UnknownSymbolTableFormat",
    "RequestedFunctionNotFound",
    "TranslationError",
]
