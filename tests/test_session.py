from __future__ import annotations

from pathlib import Path

import pytest

from ucxt.options import Options, OutputMode
from ucxt.session import DecompileSession

from usecode_builder import CodeBuilder, hello_function, symbol_table, u7_record

UNSTRUCTURED = u7_record(0x900, CodeBuilder().pushi(1).jmp("next").label("next").pop(0).ret().build(), num_locals=1)
MALFORMED = u7_record(0x700, bytes([0xFE, 0x25]))


def _run(data: bytes, **options):
    modes = frozenset(options.pop("modes", ()))
    return DecompileSession(Options(modes=modes, **options)).run(data)


def test_default_run_is_assembly_for_everything(sample_image: bytes) -> None:
    result = _run(sample_image)
    lines = result.output.splitlines()
    assert [line for line in lines if line.endswith(":") and not line.startswith(("L", "\t"))] == [
        "Func0401:",
        "Func0402:",
        "Func0800:",
        "Func0801:",
    ]
    assert result.found
    assert result.messages == ["Functions: 4"]
    assert result.report.rendered == {"asm": 4}


def test_pseudo_source_run_falls_back_per_function(sample_image: bytes) -> None:
    result = _run(sample_image + UNSTRUCTURED, modes={OutputMode.UCS})
    text = result.output

    assert text.startswith('#game "blackgate"\n')
    for signature in (
        "void Func0401 object#(0x401) ()",
        "void Func0402 object#(0x402) ()",
        "void Func0800 0x800 (var var0000)",
        "void Func0801 0x801 (var var0000)",
    ):
        assert signature + "\n{\n" in text
    assert "Func0900:\n\t.funcnumber\t0x0900\n" in text
    assert "void Func0900" not in text
    assert result.report.rendered == {"ucs": 4, "asm": 1}
    assert result.report.fallbacks == [
        {"function_id": 0x900, "mode": "ucs", "reason": "ucs could not render the function"}
    ]


def test_every_selected_function_gets_a_body(sample_image: bytes) -> None:
    result = _run(sample_image + UNSTRUCTURED, modes={OutputMode.UCS})
    for name in ("Func0401", "Func0402", "Func0800", "Func0801", "Func0900"):
        assert name in result.output


def test_requested_assembly_is_added_after_other_views(sample_image: bytes) -> None:
    result = _run(sample_image, modes={OutputMode.LISTING, OutputMode.ASM}, function_ids=frozenset({0x401}))
    lines = result.output.splitlines()
    assert lines[0].startswith("Function       offset")
    assert lines[1].split()[1] == "0401"
    assert lines[2] == "Func0401:"
    assert "Func0402:" not in lines
    assert result.messages == ["", "Functions: 4"]


def test_whole_image_views_skip_the_per_function_section(sample_image: bytes) -> None:
    result = _run(sample_image, modes={OutputMode.FLAGS, OutputMode.EXTERN})
    lines = result.output.splitlines()
    assert lines[0] == "Number of flags found: 2"
    assert "extern void Func0800 0x800 (var var0000);" in lines
    assert "Func0401:" not in lines
    assert result.report.rendered == {"flags": 1, "extern": 1}


def test_whole_image_view_counts_as_found(sample_image: bytes) -> None:
    result = _run(sample_image, modes={OutputMode.EXTERN}, function_ids=frozenset({0x999}))
    assert result.found
    assert result.report.missing_ids == [0x999]


def test_missing_function(sample_image: bytes) -> None:
    result = _run(sample_image, function_ids=frozenset({0x999}))
    assert not result.found
    assert result.output == ""
    assert result.messages == ["Function not found."]
    assert result.not_found.function_ids == (0x999,)


def test_malformed_selection_is_reported_in_the_output(sample_image: bytes) -> None:
    result = _run(sample_image + MALFORMED, function_ids=frozenset({0x700, 0x401}))
    lines = result.output.splitlines()
    assert lines[0] == "Func0401:"
    assert lines[-1] == "// Func0700 (0x0700) malformed, not decoded"
    assert result.found
    assert result.report.malformed == [0x700]
    assert any("unknown opcode" in error for error in result.report.errors)


def test_runs_are_deterministic(sample_image: bytes) -> None:
    first = _run(sample_image + UNSTRUCTURED, modes={OutputMode.UCS, OutputMode.TRANS_TABLE})
    second = _run(sample_image + UNSTRUCTURED, modes={OutputMode.UCS, OutputMode.TRANS_TABLE})
    assert first.output == second.output


def test_cfg_export(tmp_path: Path, sample_image: bytes, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ucxt.render.cfg_dot._try_render_with_graphviz", lambda dot, destination: False)
    session = DecompileSession(Options(), cfg_dir=tmp_path / "cfg")
    result = session.run(sample_image + UNSTRUCTURED)

    written = sorted(path.name for path in (tmp_path / "cfg").iterdir())
    assert written == ["0401_Func0401.dot", "0402_Func0402.dot", "0800_Func0800.dot", "0801_Func0801.dot"]
    assert len(result.report.cfg_artefacts) == 4
    dot = (tmp_path / "cfg" / "0402_Func0402.dot").read_text(encoding="utf-8")
    assert 'label="void Func0402 object#(0x402) ()";' in dot
    assert "if (gflags[0x001C])" in dot


def test_report_summarises_the_run(sample_image: bytes) -> None:
    session = DecompileSession(Options(modes=frozenset({OutputMode.UCS})), source="usecode")
    result = session.run(sample_image + UNSTRUCTURED + MALFORMED)
    report = result.report

    assert report.function_count == 5
    assert report.selected_count == 5
    assert report.image_size == len(sample_image + UNSTRUCTURED + MALFORMED)
    assert report.flag_usage_count == 2
    assert not report.symbol_table
    text = report.to_text()
    assert "Input: usecode" in text
    assert "  - 0x0900 (ucs): ucs could not render the function" in text
    assert "Malformed functions: 0x0700" in text


def _deeply_nested(depth: int) -> bytes:
    builder = CodeBuilder(wide_jumps=True)
    for flag in range(depth):
        builder.pushf(flag).jne("end")
    code = builder.pushi(1).pop(0).label("end").ret().build()
    return u7_record(0x401, code, num_locals=1)


def test_nesting_beyond_the_recursion_limit_falls_back_to_assembly() -> None:
    result = _run(_deeply_nested(800), modes={OutputMode.UCS})

    assert "Func0401:\n\t.funcnumber\t0x0401\n" in result.output
    assert "void Func0401" not in result.output
    assert result.report.fallbacks == [
        {"function_id": 0x401, "mode": "ucs", "reason": "ucs could not render the function"}
    ]
    assert result.found


def test_moderate_nesting_is_still_structured() -> None:
    result = _run(_deeply_nested(20), modes={OutputMode.UCS})
    assert "void Func0401 object#(0x401) ()" in result.output
    assert "\t" * 20 + "\tvar0000 = 1;" in result.output
    assert result.report.fallbacks == []


def test_implausible_global_static_count_is_ignored() -> None:
    image = symbol_table(global_statics=0xFFFFFFF0) + hello_function(0x401)
    result = _run(image, modes={OutputMode.UCS})

    assert "static var" not in result.output
    assert "void Func0401 object#(0x401) ()" in result.output
    assert result.report.symbol_table is False
    assert any("global statics exceed" in warning for warning in result.report.warnings)
