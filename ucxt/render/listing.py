"""One-line-per-function listing view."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..options import OutputMode
from ..vm.model import UsecodeFunction
from .base import RenderContext, Renderer

__all__ = ["ListingRenderer", "LISTING_HEADER"]

LISTING_HEADER = "Function       offset    size  data  code"


class ListingRenderer(Renderer):
    mode = OutputMode.LISTING

    def __init__(self) -> None:
        self._positions: Dict[int, int] = {}

    def begin(self, ctx: RenderContext) -> List[str]:
        self._positions = {id(function): index for index, function in enumerate(ctx.image.functions)}
        header = LISTING_HEADER + (" funcname" if ctx.options.debug_names else "")
        return [header]

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        index = self._positions.get(id(function), 0)
        row = (
            f"#{index:<4d} {function.id:04x}  {function.raw_offset:9x}"
            f"{function.size:8d}{function.data_size:6d}{function.code_size:6d}"
        )
        if ctx.options.debug_names:
            row += f" {function.debug_name or ''}".rstrip()
        return [row]
