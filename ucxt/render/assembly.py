"""Assembly view: directives, data segment and one line per instruction.

This view never fails; it is the fallback for every other per-function
renderer.
"""

from __future__ import annotations

from typing import List, Optional, Set

from ..lifter.translate import Naming, quote
from ..options import Generation, OutputMode
from ..vm.model import Instruction, Operand, UsecodeFunction
from ..vm.opcodes import FlagAccess, OperandKind, VARIABLE_POPS
from .base import RenderContext, Renderer

__all__ = ["AssemblyRenderer", "format_operand", "label_for"]

_RAW_COLUMN = 24


def label_for(offset: int) -> str:
    return f"L{offset:04x}"


def _hex(value: int, width: int = 4) -> str:
    if value < 0:
        return f"-0x{-value:0{width}x}"
    return f"0x{value:0{width}x}"


def format_operand(operand: Operand, naming: Naming) -> str:
    """Printable form of one operand, resolving names where possible."""

    kind = operand.kind
    raw = int(operand.raw)
    if kind.is_jump:
        return label_for(int(operand.value))
    if kind in (OperandKind.DATA_STRING, OperandKind.DATA_STRING32, OperandKind.INLINE_STRING):
        return quote(str(operand.value))
    if kind in (OperandKind.LOCAL, OperandKind.LOCAL8):
        return f"[{naming.local(raw)}]"
    if kind is OperandKind.STATIC:
        return f"[{naming.static(raw)}]"
    if kind is OperandKind.CLASS_VAR:
        return f"[{naming.class_var(raw)}]"
    if kind is OperandKind.FLAG:
        return f"flag:[{naming.flag(raw)}]"
    if kind is OperandKind.GLOBAL:
        return f"global:[{_hex(raw)}:{operand.extra or 0}]"
    if kind.is_function:
        return naming.function(int(operand.value))
    if kind is OperandKind.INTRINSIC:
        return naming.intrinsic(raw)
    if kind is OperandKind.CLASS:
        symbols = naming.symbols
        if symbols is not None and 0 <= raw < len(symbols.classes):
            return symbols.classes[raw].name
        return f"class:{raw}"
    if kind in (OperandKind.COUNT, OperandKind.COUNT8, OperandKind.METHOD, OperandKind.LINE):
        return str(raw)
    if kind is OperandKind.BYTE:
        return _hex(raw, 2)
    return _hex(int(operand.value))


def _autocomment(instruction: Instruction, naming: Naming) -> str:
    info = instruction.info
    parts: List[str] = []
    if info.flag_access is FlagAccess.GET:
        parts.append("read global flag")
    elif info.flag_access is FlagAccess.SET:
        parts.append("write global flag")
    for operand in instruction.operands:
        if not operand.kind.is_function:
            continue
        if operand.kind is OperandKind.EXTERN:
            parts.append(f"extern #{operand.raw}")
        callee = naming.functions.get(int(operand.value))
        if callee is not None:
            parts.append(f"{callee.num_args} args" + (", returns value" if callee.returns_value else ""))
        else:
            parts.append("not in this image")
    if info.pops == VARIABLE_POPS:
        parts.append("pops count")
    elif info.pops:
        parts.append(f"pops {info.pops}")
    if info.pushes:
        parts.append(f"pushes {info.pushes}")
    return ", ".join(parts)


class AssemblyRenderer(Renderer):
    mode = OutputMode.ASM

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        naming = ctx.naming
        lines: List[str] = [f"{ctx.functions.name_of(function.id)}:"]
        lines.append(f"\t.funcnumber\t{_hex(function.id)}")
        lines.append(f"\t.argc\t\t{function.num_args}")
        if ctx.image.generation is Generation.U7:
            lines.append(f"\t.localc\t\t{function.num_locals}")
            lines.append(f"\t.externsize\t{len(function.externs)}")
            for extern in function.externs:
                lines.append(f"\t.extern\t\t{naming.function(extern)}")
        if function.uses_ext32_encoding:
            lines.append("\t.ext32")
        if function.debug_name and ctx.options.debug_names:
            lines.append(f"\t; debug name {function.debug_name}")
        if ctx.image.generation is Generation.U7:
            lines.append(".data")
            for offset, text in sorted(function.data.items()):
                lines.append(f"\t{offset:04x}: {quote(text)}")
        lines.append(".code")
        targets: Set[int] = {
            instruction.jump_target
            for instruction in function.instructions
            if instruction.jump_target is not None
        }
        for instruction in function.instructions:
            if instruction.offset in targets:
                lines.append(f"{label_for(instruction.offset)}:")
            lines.append(self._instruction_line(instruction, naming, ctx))
        lines.append("")
        return lines

    @staticmethod
    def _instruction_line(instruction: Instruction, naming: Naming, ctx: RenderContext) -> str:
        line = f"\t{instruction.offset:04x}:"
        if ctx.options.raw_ops:
            line += " " + instruction.raw.hex(" ").ljust(_RAW_COLUMN)
        line += f"\t{instruction.mnemonic}"
        operands = ", ".join(format_operand(operand, naming) for operand in instruction.operands)
        if operands:
            line += f"\t{operands}"
        if ctx.options.autocomment:
            comment = _autocomment(instruction, naming)
            if comment:
                line += f"\t; {comment}"
        return line
