from __future__ import annotations

from pathlib import Path

import pytest

from ucxt.exceptions import InputNotFound
from ucxt.io.loader import (
    load_flag_names,
    load_image_bytes,
    load_intrinsic_names,
    parse_flag_names,
    parse_intrinsic_names,
)


def test_flag_names_strip_dollar_and_deduplicate() -> None:
    names = parse_flag_names(b"$met_iolo\0\0asked\0asked\0")
    assert names == ["met_iolo", "", "asked", "asked3"]


def test_missing_image_raises_input_not_found(tmp_path: Path) -> None:
    with pytest.raises(InputNotFound) as excinfo:
        load_image_bytes(tmp_path / "absent")
    assert "absent" in str(excinfo.value)


def test_intrinsic_names_parse_hex_and_decimal() -> None:
    text = """
    <intrinsics>
        <0x00> get_random </>
        <0x0B> UI_get_item_frame </>
        <12> </>
    </>
    """
    names = parse_intrinsic_names(text)
    assert names == {0x00: "get_random", 0x0B: "UI_get_item_frame"}


def test_loaders_read_files(tmp_path: Path) -> None:
    flags = tmp_path / "flags.dat"
    flags.write_bytes(b"first\0second\0")
    intrinsics = tmp_path / "intrinsics.data"
    intrinsics.write_text("<intrinsics><0x10> say_hello </></>", encoding="latin-1")
    image = tmp_path / "usecode"
    image.write_bytes(b"\x01\x02")

    assert load_flag_names(flags) == ["first", "second"]
    assert load_intrinsic_names(intrinsics) == {0x10: "say_hello"}
    assert load_image_bytes(image) == b"\x01\x02"
