"""Pseudo-source view with class blocks and structured function bodies."""

from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional

from ..exceptions import TranslationError
from ..lifter import structure_function
from ..options import Generation, OutputMode
from ..vm.model import UsecodeFunction
from .base import RenderContext, Renderer

LOGGER = logging.getLogger(__name__)

__all__ = ["PseudoSourceRenderer"]


class PseudoSourceRenderer(Renderer):
    """Reconstructs UCC-like source.

    Functions owned by a class are grouped in a ``class`` block; the block
    is closed as soon as a function of another class (or no class) follows.
    """

    mode = OutputMode.UCS

    def __init__(self) -> None:
        self._open_class: Optional[int] = None

    # ------------------------------------------------------------------
    # Framing
    # ------------------------------------------------------------------

    def begin(self, ctx: RenderContext) -> List[str]:
        self._open_class = None
        lines: List[str] = []
        tag = ctx.options.game.source_tag
        if ctx.image.generation is Generation.U7 and tag:
            lines.append(f'#game "{tag}"')
        entries = [
            f"\t{name} = 0x{index:04x}" for index, name in enumerate(ctx.flag_names) if name
        ]
        if entries:
            lines.append("enum GlobalFlags {")
            lines.append(",\n".join(entries))
            lines.append("};")
            lines.append("")
        statics = ctx.image.global_static_count
        if statics > 0:
            lines.append("// Global static variables")
            lines.extend(f"static var gstatic{index:04d};" for index in range(1, statics + 1))
            lines.append("")
        return lines

    def before_function(self, ctx: RenderContext, function: UsecodeFunction) -> List[str]:
        if function.class_index == self._open_class:
            return []
        lines = self._close_class()
        symbols = ctx.image.symbols
        if function.class_index is None or symbols is None:
            return lines
        if not 0 <= function.class_index < len(symbols.classes):
            return lines
        cls = symbols.classes[function.class_index]
        base = ctx.hierarchy.base_class(cls)
        lines.append(f"class {cls.name} : {base.name}" if base else f"class {cls.name}")
        lines.append("{")
        for index in range(ctx.hierarchy.inherited_vars(cls.index), cls.num_vars):
            lines.append(f"\tvar clsvar{index:04d};")
        self._open_class = cls.index
        return lines

    def end(self, ctx: RenderContext) -> List[str]:
        return self._close_class()

    def _close_class(self) -> List[str]:
        if self._open_class is None:
            return []
        self._open_class = None
        return ["}", ""]

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        try:
            body = structure_function(function, ctx.naming, ctx.image.generation)
        except TranslationError as exc:
            LOGGER.info("Function 0x%04x has no pseudo-source form: %s", function.id, exc)
            return None
        info = ctx.functions[function.id]
        if self._open_class is not None:
            info = dataclasses.replace(info, name=info.name.rsplit("::", 1)[-1])
        lines = [info.signature(), "{"]
        for index in range(function.num_args, function.num_args + function.num_locals):
            lines.append(f"\tvar {ctx.naming.local(index)};")
        if function.num_locals and body:
            lines.append("")
        lines.extend(f"\t{line}" for line in body)
        lines.append("}")
        if self._open_class is not None:
            return [f"\t{line}" if line else line for line in lines]
        lines.append("")
        return lines
