from __future__ import annotations

from ucxt.analysis.function_index import FunctionKind, build_function_index, kind_for_id, synthesised_name
from ucxt.options import Options
from ucxt.vm.decoder import load_image
from ucxt.vm.symbols import SymbolKind

from usecode_builder import CodeBuilder, hello_function, symbol_table, u7_record


def test_id_ranges_decide_kind_without_symbols() -> None:
    assert kind_for_id(0x96) is FunctionKind.SHAPE
    assert kind_for_id(0x401) is FunctionKind.OBJECT
    assert kind_for_id(0x800) is FunctionKind.USER
    assert synthesised_name(0x96) == "Func0096"


def test_synthesised_names_and_signatures(sample_image: bytes) -> None:
    image = load_image(sample_image, Options())
    index = build_function_index(image)

    assert len(index) == 4
    assert index[0x401].name == "Func0401"
    assert index.signature(0x401) == "void Func0401 object#(0x401) ()"
    assert index.signature(0x800) == "void Func0800 0x800 (var var0000)"
    assert index.call_expression(0x801, ["var0000"]) == "Func0801(var0000)"
    assert index.name_of(0x999) == "Func0999"


def test_symbol_names_win_and_cover_missing_ids() -> None:
    table = symbol_table(
        functions=[
            ("Orb", 0x96, SymbolKind.SHAPE_FUN),
            ("helper", 0x900, SymbolKind.FUN_DEFINED),
            ("remote", 0xA00, SymbolKind.FUN_EXTERN),
        ],
        shapes={0x96: 0x2C6},
    )
    helper = u7_record(0x900, CodeBuilder().pushi(1).retv().build(), num_args=2)
    image = load_image(table + hello_function(0x96) + helper, Options())
    index = build_function_index(image, image.symbols)

    assert index[0x96].kind is FunctionKind.SHAPE
    assert index.signature(0x96) == "void Orb shape#(0x2c6) ()"
    assert index.signature(0x900) == "var helper 0x900 (var var0000, var var0001)"
    assert index[0x900].from_symbols
    assert 0xA00 not in index
    assert index.name_of(0xA00) == "remote"


def test_first_record_of_a_duplicated_id_wins() -> None:
    first = hello_function(0x401)
    second = u7_record(0x401, CodeBuilder().pushi(0).retv().build(), num_args=3)
    index = build_function_index(load_image(first + second, Options()))
    assert index[0x401].num_args == 0
    assert not index[0x401].returns_value
