from __future__ import annotations

import struct

import pytest

from ucxt.exceptions import UnknownSymbolTableFormat
from ucxt.io.cursor import ByteCursor
from ucxt.vm import symbols
from ucxt.vm.symbols import SymbolKind

from usecode_builder import ClassSpec, symbol_table


def test_detect_signature() -> None:
    blob = symbol_table()
    assert symbols.detect(blob)
    assert not symbols.detect(b"\x01\x04" + blob)
    assert blob[:8] == struct.pack("<II", 0xFFFFFFFF, 0x55435359)


def test_load_functions_classes_and_statics() -> None:
    blob = symbol_table(
        functions=[
            ("Orb", 0x96, SymbolKind.SHAPE_FUN),
            ("talk_iolo", 0x401, SymbolKind.OBJECT_FUN),
            ("helper", 0x900, SymbolKind.FUN_DEFINED),
        ],
        classes=[ClassSpec("Weapon", 2, [("use", 0xA00), ("drop", 0xA01)])],
        global_statics=3,
        shapes={0x96: 0x2C6},
    )
    cursor = ByteCursor(blob + b"\xff")
    table = symbols.load(cursor)

    assert cursor.offset == len(blob)
    assert table.version == 1
    assert table.global_static_count == 3
    assert table.function(0x96).shape == 0x2C6
    assert table.function(0x401).kind is SymbolKind.OBJECT_FUN
    assert table.function(0xA00).name == "Weapon::use"
    assert table.function(0xA00).class_index == 0
    weapon = table.class_by_name("Weapon")
    assert weapon.num_vars == 2
    assert weapon.method_ids == (0xA00, 0xA01)
    assert table.class_of_method(0xA01) == 0
    assert table.class_of_method(0x900) is None


def test_table_without_classes_is_valid() -> None:
    table = symbols.load(ByteCursor(symbol_table(functions=[("f", 0x900, SymbolKind.FUN_DEFINED)])))
    assert table.classes == ()
    assert list(table.functions) == [0x900]


def test_unsupported_version_reports_resume_offset() -> None:
    blob = symbol_table(functions=[("f", 0x900, SymbolKind.FUN_DEFINED)], version=7)
    cursor = ByteCursor(blob + b"rest")
    with pytest.raises(UnknownSymbolTableFormat) as excinfo:
        symbols.load(cursor)
    assert excinfo.value.resume_offset == len(blob)


def test_unknown_kind_cannot_be_resumed() -> None:
    entry = b"mystery\0" + struct.pack("<HI", 42, 0)
    blob = symbols.SYMBOL_TABLE_MAGIC + struct.pack("<II", 1, 1) + entry + struct.pack("<I", 0)
    with pytest.raises(UnknownSymbolTableFormat) as excinfo:
        symbols.load(ByteCursor(blob))
    assert excinfo.value.resume_offset is None


def test_unaddressable_global_static_count_is_rejected() -> None:
    blob = symbol_table(global_statics=symbols.MAX_GLOBAL_STATICS + 1)
    with pytest.raises(UnknownSymbolTableFormat) as excinfo:
        symbols.load(ByteCursor(blob + b"rest"))
    assert excinfo.value.resume_offset == len(blob)
    assert "global statics" in excinfo.value.reason

    table = symbols.load(ByteCursor(symbol_table(global_statics=symbols.MAX_GLOBAL_STATICS)))
    assert table.global_static_count == symbols.MAX_GLOBAL_STATICS
