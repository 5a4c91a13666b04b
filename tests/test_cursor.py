from __future__ import annotations

import struct

import pytest

from ucxt.exceptions import TruncatedInput
from ucxt.io.cursor import ByteCursor


def test_little_endian_reads_and_position() -> None:
    cursor = ByteCursor(struct.pack("<BHIh", 0x7F, 0x1234, 0xDEADBEEF, -2))
    assert cursor.u8() == 0x7F
    assert cursor.u16() == 0x1234
    assert cursor.u32() == 0xDEADBEEF
    assert cursor.s16() == -2
    assert cursor.at_end()
    assert cursor.remaining == 0


def test_failed_read_does_not_move_cursor() -> None:
    cursor = ByteCursor(b"\x01\x02\x03")
    cursor.u8()
    with pytest.raises(TruncatedInput) as excinfo:
        cursor.u32()
    assert cursor.offset == 1
    assert excinfo.value.wanted == 4
    assert excinfo.value.available == 2
    assert cursor.u16() == 0x0302


def test_sub_cursor_is_bounded_and_advances_parent() -> None:
    cursor = ByteCursor(b"\xaa\xbb\xcc\xdd\xee")
    cursor.u8()
    child = cursor.sub(2)
    assert cursor.offset == 3
    assert child.offset == 0
    assert child.absolute_offset == 1
    assert child.u16() == 0xCCBB
    with pytest.raises(TruncatedInput):
        child.u8()
    with pytest.raises(TruncatedInput):
        cursor.sub(5)
    assert cursor.offset == 3


def test_strings() -> None:
    cursor = ByteCursor(b"abc\0" + struct.pack("<H", 2) + b"xy" + struct.pack("<H", 9) + b"z")
    assert cursor.cstring() == "abc"
    assert cursor.lstring() == "xy"
    before = cursor.offset
    with pytest.raises(TruncatedInput):
        cursor.lstring()
    assert cursor.offset == before


def test_unterminated_cstring_is_truncation() -> None:
    cursor = ByteCursor(b"abc")
    with pytest.raises(TruncatedInput):
        cursor.cstring()
    assert cursor.offset == 0


def test_seek_and_peek() -> None:
    cursor = ByteCursor(b"\x01\x02\x03\x04")
    assert cursor.peek(2) == b"\x01\x02"
    assert cursor.offset == 0
    cursor.seek(3)
    assert cursor.u8() == 4
    with pytest.raises(TruncatedInput):
        cursor.seek(5)
