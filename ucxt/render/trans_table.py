"""Translation-table scaffold listing every string a function displays."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..lifter.translate import quote
from ..options import OutputMode
from ..vm.model import UsecodeFunction
from ..vm.opcodes import OperandKind
from .base import RenderContext, Renderer

__all__ = ["TransTableRenderer", "function_strings"]


def function_strings(function: UsecodeFunction) -> Dict[int, str]:
    """Data-segment strings, or inline string operands when there is no data segment."""

    if function.data:
        return dict(function.data)
    strings: Dict[int, str] = {}
    for instruction in function.instructions:
        operand = instruction.operand(OperandKind.INLINE_STRING)
        if operand is not None:
            strings[instruction.offset] = str(operand.value)
    return strings


class TransTableRenderer(Renderer):
    mode = OutputMode.TRANS_TABLE

    def begin(self, ctx: RenderContext) -> List[str]:
        return ["<trans>"]

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        lines = [f"\t<0x{function.id:04x}> {ctx.functions.name_of(function.id)}"]
        for offset, text in sorted(function_strings(function).items()):
            lines.append(f"\t\t<0x{offset:04x}> {quote(text)} </>")
        lines.append("\t</>")
        return lines

    def end(self, ctx: RenderContext) -> List[str]:
        return ["</>"]
