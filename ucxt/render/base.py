"""Shared renderer plumbing.

Renderers produce lists of lines.  ``begin`` and ``end`` frame the output,
``render_function`` handles a single function and returns ``None`` when the
function cannot be shown in that view; the session then falls back to the
assembly renderer for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from ..analysis import (
    ClassHierarchy,
    FlagUsageViews,
    FunctionIndex,
    build_function_index,
    collect_flag_usage,
    infer_class_hierarchy,
)
from ..lifter.translate import Naming
from ..options import OutputMode, Options
from ..vm.model import UsecodeFunction, UsecodeImage

__all__ = ["RenderContext", "Renderer"]


@dataclass(frozen=True)
class RenderContext:
    """Everything a renderer may read; shared by all renderers of a run."""

    image: UsecodeImage
    functions: FunctionIndex
    hierarchy: ClassHierarchy
    flags: FlagUsageViews
    options: Options
    flag_names: Sequence[str] = ()
    intrinsic_names: Mapping[int, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        image: UsecodeImage,
        options: Options,
        *,
        flag_names: Sequence[str] = (),
        intrinsic_names: Optional[Mapping[int, str]] = None,
    ) -> "RenderContext":
        classes = image.symbols.classes if image.symbols else ()
        return cls(
            image=image,
            functions=build_function_index(image, image.symbols),
            hierarchy=infer_class_hierarchy(classes),
            flags=collect_flag_usage(image),
            options=options,
            flag_names=tuple(flag_names),
            intrinsic_names=dict(intrinsic_names or {}),
        )

    @property
    def naming(self) -> Naming:
        return Naming(
            functions=self.functions,
            symbols=self.image.symbols,
            flag_names=self.flag_names,
            intrinsic_names=self.intrinsic_names,
        )

    def flag_label(self, index: int) -> Optional[str]:
        if 0 <= index < len(self.flag_names) and self.flag_names[index]:
            return self.flag_names[index]
        return None


class Renderer:
    """Base class for output views."""

    mode: OutputMode
    per_function: bool = True

    def begin(self, ctx: RenderContext) -> List[str]:
        return []

    def before_function(self, ctx: RenderContext, function: UsecodeFunction) -> List[str]:
        return []

    def render_function(self, ctx: RenderContext, function: UsecodeFunction) -> Optional[List[str]]:
        raise NotImplementedError

    def end(self, ctx: RenderContext) -> List[str]:
        return []

    def render(self, ctx: RenderContext, functions: Iterable[UsecodeFunction]) -> str:
        """Render *functions* on their own, without assembly fallback."""

        lines = list(self.begin(ctx))
        for function in functions:
            lines.extend(self.before_function(ctx, function))
            body = self.render_function(ctx, function)
            if body is None:
                lines.append(f"// {ctx.functions.name_of(function.id)}: not rendered")
                continue
            lines.extend(body)
        lines.extend(self.end(ctx))
        return "\n".join(lines) + "\n" if lines else ""
