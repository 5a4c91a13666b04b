import json
from pathlib import Path

import pytest

from ucxt import __version__
from ucxt.cli import build_arg_parser, main, options_from_args
from ucxt.options import Game, Generation, OutputMode
from usecode_builder import CodeBuilder, u7_record


def test_options_from_arguments() -> None:
    args = build_arg_parser().parse_args(["-i", "usecode", "401", "0x402", "-z", "-s", "--game", "si", "--ext32"])
    options = options_from_args(args)
    assert options.function_ids == frozenset({0x401, 0x402})
    assert options.modes == frozenset({OutputMode.UCS, OutputMode.ASM})
    assert options.game is Game.SI
    assert options.generation is Generation.U7
    assert options.force_ext32


def test_all_overrides_function_ids() -> None:
    args = build_arg_parser().parse_args(["-i", "usecode", "401", "-a"])
    assert options_from_args(args).all_functions


def test_function_ids_must_be_hex() -> None:
    with pytest.raises(SystemExit):
        build_arg_parser().parse_args(["-i", "usecode", "nothex"])


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        main(["--version"])
    assert __version__ in capsys.readouterr().out


def test_default_run_prints_assembly(image_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["-i", str(image_file), "--no-colour"]) == 0
    captured = capsys.readouterr()
    assert "Func0401:\n\t.funcnumber\t0x0401\n" in captured.out
    assert "Functions: 4" in captured.err


def test_pseudo_source_to_file_with_flag_names(image_file: Path, tmp_path: Path) -> None:
    flags = tmp_path / "flags.flg"
    flags.write_bytes(b"\0" * 0x1C + b"$met_iolo\0")
    output = tmp_path / "out.uc"

    code = main(["-i", str(image_file), "-z", "402", "-g", str(flags), "-o", str(output), "--no-colour"])

    assert code == 0
    text = output.read_text(encoding="utf-8")
    assert "\tmet_iolo = 0x001c" in text
    assert "\tif (gflags[met_iolo]) {" in text


def test_intrinsic_names_are_used(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    image = tmp_path / "usecode"
    image.write_bytes(u7_record(0x401, CodeBuilder().pushi(5).calli(0x08, 1).ret().build()))
    names = tmp_path / "intrinsics.dat"
    names.write_text("<intrinsics>\n<0x08> kill_npc </>\n</>\n", encoding="latin-1")

    assert main(["-i", str(image), "-z", "--intrinsics", str(names), "--no-colour"]) == 0
    assert "\tkill_npc(5);" in capsys.readouterr().out


def test_missing_function_exits_with_one(image_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["-i", str(image_file), "999", "--no-colour"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Function not found." in captured.err


def test_missing_input_exits_with_two(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["-i", str(tmp_path / "absent"), "--no-colour"]) == 2
    assert "cannot open" in capsys.readouterr().err


def test_missing_flag_file_exits_with_two(image_file: Path, tmp_path: Path) -> None:
    assert main(["-i", str(image_file), "-g", str(tmp_path / "absent.flg"), "--no-colour"]) == 2


def test_report_and_log_file(image_file: Path, tmp_path: Path) -> None:
    report_path = tmp_path / "report.json"
    log_path = tmp_path / "run.log"

    code = main(
        ["-i", str(image_file), "-f", "--report", str(report_path), "--log-file", str(log_path), "--no-colour"]
    )

    assert code == 0
    payload = json.loads(report_path.read_text(encoding="utf-8"))
    assert payload["function_count"] == 4
    assert payload["modes"] == ["flags"]
    assert payload["rendered"] == {"flags": 1}
    assert "Decoded 4 functions" in log_path.read_text(encoding="utf-8")
