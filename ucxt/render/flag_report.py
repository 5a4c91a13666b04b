"""Global flag cross-reference view."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..analysis.flags import FlagUsage
from ..options import OutputMode
from ..vm.model import UsecodeFunction
from ..vm.opcodes import FlagAccess
from .base import RenderContext, Renderer

__all__ = ["FlagReportRenderer"]


def _access(usage: FlagUsage) -> str:
    return "push" if usage.access is FlagAccess.GET else "pop "


class FlagReportRenderer(Renderer):
    """Two tables: flags grouped per function, then functions grouped per flag."""

    mode = OutputMode.FLAGS
    per_function = False

    def begin(self, ctx: RenderContext) -> List[str]:
        views = ctx.flags
        lines = [f"Number of flags found: {len(views)}", ""]
        lines.extend(self._per_function(ctx, views.by_function))
        lines.extend(self._per_flag(ctx, views.by_flag))
        return lines

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        return []

    @staticmethod
    def _per_function(ctx: RenderContext, usages: Sequence[FlagUsage]) -> List[str]:
        lines: List[str] = []
        current: Optional[int] = None
        for usage in usages:
            if usage.function_id != current:
                current = usage.function_id
                lines.append(f"Function: {current:04x}")
                lines.append("              flag  offset")
            row = f"        {_access(usage)}  {usage.flag_index:04x}  {usage.offset:04x}"
            label = ctx.flag_label(usage.flag_index)
            lines.append(f"{row}  {label}" if label else row)
        return lines

    @staticmethod
    def _per_flag(ctx: RenderContext, usages: Sequence[FlagUsage]) -> List[str]:
        lines: List[str] = []
        current: Optional[int] = None
        for usage in usages:
            if usage.flag_index != current:
                current = usage.flag_index
                label = ctx.flag_label(current)
                lines.append(f"Flag: {current:04x}" + (f" {label}" if label else ""))
                lines.append("              func  offset")
            lines.append(f"        {_access(usage)}  {usage.function_id:04x}  {usage.offset:04x}")
        return lines
