"""Bounds-checked little-endian reader over an in-memory usecode image."""

from __future__ import annotations

import struct
from typing import Optional

from ..exceptions import TruncatedInput

__all__ = ["ByteCursor"]

_U8 = struct.Struct("<B")
_S8 = struct.Struct("<b")
_U16 = struct.Struct("<H")
_S16 = struct.Struct("<h")
_U32 = struct.Struct("<I")
_S32 = struct.Struct("<i")


class ByteCursor:
    """Forward-only reader with fixed-width integer and string accessors.

    A failed read raises :class:`TruncatedInput` and leaves the position
    untouched, so callers can still ask :meth:`at_end` afterwards.  Offsets
    reported by :attr:`offset` are relative to the start of this cursor;
    :attr:`absolute_offset` adds the position of the cursor inside its parent
    buffer.
    """

    def __init__(self, data: bytes, *, start: int = 0, end: Optional[int] = None, base: int = 0) -> None:
        self._data = memoryview(bytes(data)) if not isinstance(data, memoryview) else data
        self._start = start
        self._end = len(self._data) if end is None else end
        if not 0 <= self._start <= self._end <= len(self._data):
            raise ValueError("cursor window outside buffer")
        self._pos = start
        self._base = base

    # ------------------------------------------------------------------
    # Position
    # ------------------------------------------------------------------

    @property
    def offset(self) -> int:
        return self._pos - self._start

    @property
    def absolute_offset(self) -> int:
        return self._base + self._pos - self._start

    @property
    def remaining(self) -> int:
        return self._end - self._pos

    def __len__(self) -> int:
        return self._end - self._start

    def at_end(self) -> bool:
        return self._pos >= self._end

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self):
            raise TruncatedInput(self._base + offset, 0, self.remaining)
        self._pos = self._start + offset

    def skip(self, count: int) -> None:
        self._require(count)
        self._pos += count

    # ------------------------------------------------------------------
    # Raw reads
    # ------------------------------------------------------------------

    def _require(self, count: int) -> None:
        if count < 0 or self._pos + count > self._end:
            raise TruncatedInput(self.absolute_offset, count, self.remaining)

    def peek(self, count: int) -> bytes:
        self._require(count)
        return bytes(self._data[self._pos : self._pos + count])

    def read(self, count: int) -> bytes:
        chunk = self.peek(count)
        self._pos += count
        return chunk

    def sub(self, length: int) -> "ByteCursor":
        """Return a cursor over the next ``length`` bytes and advance past them."""

        self._require(length)
        child = ByteCursor(self._data, start=self._pos, end=self._pos + length, base=self.absolute_offset)
        self._pos += length
        return child

    def _unpack(self, fmt: struct.Struct) -> int:
        self._require(fmt.size)
        (value,) = fmt.unpack_from(self._data, self._pos)
        self._pos += fmt.size
        return value

    # ------------------------------------------------------------------
    # Integers
    # ------------------------------------------------------------------

    def u8(self) -> int:
        return self._unpack(_U8)

    def s8(self) -> int:
        return self._unpack(_S8)

    def u16(self) -> int:
        return self._unpack(_U16)

    def s16(self) -> int:
        return self._unpack(_S16)

    def u32(self) -> int:
        return self._unpack(_U32)

    def s32(self) -> int:
        return self._unpack(_S32)

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def cstring(self, encoding: str = "latin-1") -> str:
        """Read a NUL-terminated string; the terminator is consumed."""

        end = self._pos
        while end < self._end and self._data[end] != 0:
            end += 1
        if end >= self._end:
            raise TruncatedInput(self.absolute_offset, end - self._pos + 1, self.remaining)
        text = bytes(self._data[self._pos : end]).decode(encoding)
        self._pos = end + 1
        return text

    def lstring(self, encoding: str = "latin-1") -> str:
        """Read a string prefixed by its u16 byte length."""

        start = self._pos
        length = self.u16()
        try:
            return self.read(length).decode(encoding)
        except TruncatedInput:
            self._pos = start
            raise
