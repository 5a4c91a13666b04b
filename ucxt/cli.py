"""Command line interface for the usecode disassembler."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence

from . import __version__
from .exceptions import InputNotFound
from .io.loader import load_flag_names, load_image_bytes, load_intrinsic_names
from .logging_config import configure_logging
from .options import Game, Options, OutputMode
from .session import DecompileSession
from .utils import write_json, write_text

LOGGER = logging.getLogger(__name__)

__all__ = ["build_arg_parser", "options_from_args", "main"]

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_NO_INPUT = 2


def _function_id(text: str) -> int:
    try:
        value = int(text, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a hexadecimal function id: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"function ids are unsigned: {text!r}")
    return value


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ucxt",
        description="Disassemble and decompile Ultima VII / VIII usecode",
    )
    parser.add_argument("functions", nargs="*", type=_function_id, metavar="FUNC_ID", help="hex ids of functions to show (default: all)")
    parser.add_argument("-i", "--input", type=Path, required=True, help="usecode image to read")
    parser.add_argument("-o", "--output", type=Path, help="output file path (default: stdout)")
    parser.add_argument(
        "--game",
        choices=[game.value for game in Game],
        default=Game.BG.value,
        help="game the image belongs to; u8 selects the Ultima VIII VM",
    )
    parser.add_argument("-a", "--all", action="store_true", help="select every function")

    modes = parser.add_argument_group("output modes")
    modes.add_argument("-l", "--list", action="store_true", help="one-line listing per function")
    modes.add_argument("-s", "--asm", action="store_true", help="assembly dump")
    modes.add_argument("-z", "--ucs", action="store_true", help="reconstructed pseudo-source")
    modes.add_argument("-f", "--flags", action="store_true", help="global flag cross reference")
    modes.add_argument("-t", "--trans-table", action="store_true", help="translation table scaffold")
    modes.add_argument("--extern-header", action="store_true", help="extern prototypes for every function")

    parser.add_argument("-g", "--flag-names", type=Path, metavar="FLAGS_FILE", help="NUL separated global flag names")
    parser.add_argument("--intrinsics", type=Path, metavar="FILE", help="intrinsic name table")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for progress, -vv for decoder traces")
    parser.add_argument("--ext32", action="store_true", help="mark every function as 32-bit encoded on output")
    parser.add_argument("--rawops", action="store_true", help="show raw opcode bytes in assembly")
    parser.add_argument("--autocomment", action="store_true", help="annotate assembly lines")
    parser.add_argument("--debug-names", action="store_true", help="show names recorded by dbgfunc")
    parser.add_argument("--cfg-dot", type=Path, metavar="DIR", help="write per-function CFG DOT/SVG files")
    parser.add_argument("--report", type=Path, metavar="PATH", help="write a JSON run report")
    parser.add_argument("--log-file", type=Path, metavar="PATH", help="write a debug trace of the run")
    parser.add_argument("--no-colour", action="store_true", help="disable coloured log output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def options_from_args(args: argparse.Namespace) -> Options:
    selected: List[OutputMode] = []
    if args.list:
        selected.append(OutputMode.LISTING)
    if args.asm:
        selected.append(OutputMode.ASM)
    if args.ucs:
        selected.append(OutputMode.UCS)
    if args.flags:
        selected.append(OutputMode.FLAGS)
    if args.trans_table:
        selected.append(OutputMode.TRANS_TABLE)
    if args.extern_header:
        selected.append(OutputMode.EXTERN)
    function_ids: Optional[FrozenSet[int]] = None
    if args.functions and not args.all:
        function_ids = frozenset(args.functions)
    return Options(
        game=Game(args.game),
        modes=frozenset(selected),
        function_ids=function_ids,
        force_ext32=args.ext32,
        raw_ops=args.rawops,
        autocomment=args.autocomment,
        debug_names=args.debug_names,
        verbosity=args.verbose,
    )


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, log_file=args.log_file, colour=not args.no_colour)
    options = options_from_args(args)

    try:
        data = load_image_bytes(args.input)
        flag_names = load_flag_names(args.flag_names) if args.flag_names else []
        intrinsic_names = load_intrinsic_names(args.intrinsics) if args.intrinsics else {}
    except InputNotFound as exc:
        LOGGER.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_NO_INPUT

    session = DecompileSession(
        options,
        flag_names=flag_names,
        intrinsic_names=intrinsic_names,
        cfg_dir=args.cfg_dot,
        source=str(args.input),
    )
    result = session.run(data)

    if args.output:
        write_text(args.output, result.output)
        LOGGER.info("Wrote %s", args.output)
    else:
        sys.stdout.write(result.output)
    for message in result.messages:
        print(message, file=sys.stderr)

    if result.not_found is not None:
        LOGGER.error("%s", result.not_found)
    LOGGER.info("Run summary:\n%s", result.report.to_text())
    if args.report:
        write_json(args.report, result.report.to_json())
        LOGGER.info("Report written to %s", args.report)
    return EXIT_OK if result.found else EXIT_NOT_FOUND


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
