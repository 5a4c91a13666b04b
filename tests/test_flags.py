from __future__ import annotations

from ucxt.analysis.flags import FlagAccess, collect_flag_usage
from ucxt.options import Options
from ucxt.vm.decoder import load_image

from usecode_builder import CodeBuilder, u7_record


def test_reads_and_writes_in_both_orders(sample_image: bytes) -> None:
    extra = u7_record(0x403, CodeBuilder().pushb(0).popf(0x1C).pushf(0x05).pop(0).ret().build(), num_locals=1)
    image = load_image(sample_image + extra, Options())
    views = collect_flag_usage(image)

    assert len(views) == 4
    assert [(u.function_id, u.flag_index, u.access) for u in views.by_function] == [
        (0x402, 0x1C, FlagAccess.GET),
        (0x402, 0x1D, FlagAccess.SET),
        (0x403, 0x1C, FlagAccess.SET),
        (0x403, 0x05, FlagAccess.GET),
    ]
    assert [(u.flag_index, u.function_id) for u in views.by_flag] == [
        (0x05, 0x403),
        (0x1C, 0x402),
        (0x1C, 0x403),
        (0x1D, 0x402),
    ]
    assert views.flags() == [0x05, 0x1C, 0x1D]


def test_offsets_point_at_the_accessing_instruction(sample_image: bytes) -> None:
    image = load_image(sample_image, Options())
    views = collect_flag_usage(image)
    branch = image.find(0x402)
    for usage in views.by_function:
        instruction = branch.instruction_at(usage.offset)
        assert instruction is not None
        assert instruction.mnemonic in ("pushf", "popf")


def test_no_flag_access() -> None:
    image = load_image(u7_record(0x401, CodeBuilder().ret().build()), Options())
    views = collect_flag_usage(image)
    assert len(views) == 0
    assert views.flags() == []
