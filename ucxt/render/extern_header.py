"""Extern prototype header for every function in the image."""

from __future__ import annotations

from typing import List, Optional

from ..options import OutputMode
from ..vm.model import UsecodeFunction
from .base import RenderContext, Renderer

__all__ = ["ExternHeaderRenderer"]


class ExternHeaderRenderer(Renderer):
    mode = OutputMode.EXTERN
    per_function = False

    def begin(self, ctx: RenderContext) -> List[str]:
        return [f"extern {ctx.functions.signature(function_id)};" for function_id in ctx.functions]

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        return []
