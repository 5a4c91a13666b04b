"""A decompilation run: decode once, analyse, render, report.

The session owns the composition rules between output views.  Per-function
views run in the order listing, pseudo-source, translation table; the
assembly view is added for a function when it was requested, when a
requested view could not render that function, or when nothing at all was
printed for it.  Whole-image views (flag report, extern header) follow.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from .exceptions import RequestedFunctionNotFound, TranslationError
from .lifter import CFGBuilder, translate_function
from .options import Options, OutputMode
from .render import RENDERERS, AssemblyRenderer, RenderContext, Renderer
from .render.cfg_dot import write_cfg_visualisation
from .report import DecompileReport
from .vm.decoder import load_image
from .vm.model import UsecodeFunction, UsecodeImage

LOGGER = logging.getLogger(__name__)

__all__ = ["SessionResult", "DecompileSession", "PER_FUNCTION_ORDER", "WHOLE_IMAGE_ORDER"]

PER_FUNCTION_ORDER = (OutputMode.LISTING, OutputMode.UCS, OutputMode.TRANS_TABLE)
WHOLE_IMAGE_ORDER = (OutputMode.FLAGS, OutputMode.EXTERN)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class SessionResult:
    """Rendered text plus everything the CLI needs to pick an exit status."""

    output: str
    report: DecompileReport
    messages: List[str] = field(default_factory=list)
    not_found: Optional[RequestedFunctionNotFound] = None

    @property
    def found(self) -> bool:
        return self.not_found is None


class DecompileSession:
    """Drives one run over an in-memory usecode image."""

    def __init__(
        self,
        options: Options,
        *,
        flag_names: Sequence[str] = (),
        intrinsic_names: Optional[Mapping[int, str]] = None,
        cfg_dir: Optional[Path] = None,
        source: Optional[str] = None,
    ) -> None:
        self.options = options
        self.flag_names = tuple(flag_names)
        self.intrinsic_names = dict(intrinsic_names or {})
        self.cfg_dir = cfg_dir
        self.report = DecompileReport(
            input_path=source,
            game=options.game.value,
            generation=options.generation.value,
            modes=sorted(mode.value for mode in options.modes),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, data: bytes) -> UsecodeImage:
        image = load_image(data, self.options)
        report = self.report
        report.image_size = image.size
        report.function_count = len(image)
        report.symbol_table = image.symbols is not None
        if image.symbols is not None:
            report.class_count = len(image.symbols.classes)
            report.global_static_count = image.symbols.global_static_count
        for diagnostic in image.diagnostics:
            if diagnostic.severity == "warning":
                report.warnings.append(diagnostic.describe())
            else:
                report.errors.append(diagnostic.describe())
        return image

    def run(self, data: bytes) -> SessionResult:
        return self.render(self.load(data))

    def render(self, image: UsecodeImage) -> SessionResult:
        options = self.options
        report = self.report
        ctx = RenderContext.build(
            image,
            options,
            flag_names=self.flag_names,
            intrinsic_names=self.intrinsic_names,
        )
        report.flag_usage_count = len(ctx.flags)

        selected = [function for function in image if options.selects(function.id)]
        malformed = [fid for fid in image.malformed_ids() if options.selects(fid)]
        report.selected_count = len(selected)
        report.malformed = list(malformed)

        whole_image = [mode for mode in WHOLE_IMAGE_ORDER if options.wants(mode)]
        per_function = [mode for mode in PER_FUNCTION_ORDER if options.wants(mode)]
        lines: List[str] = []
        if per_function or options.wants(OutputMode.ASM) or not whole_image:
            lines.extend(self._per_function_section(ctx, selected, malformed, per_function))
        for mode in whole_image:
            renderer = RENDERERS[mode]()
            lines.extend(renderer.begin(ctx))
            lines.extend(renderer.end(ctx))
            report.count_rendered(mode.value)

        result = SessionResult(output="\n".join(lines) + "\n" if lines else "", report=report)
        present = {function.id for function in image} | set(malformed)
        if options.function_ids:
            report.missing_ids = sorted(fid for fid in options.function_ids if fid not in present)
            if report.missing_ids:
                LOGGER.warning("Requested functions not in image: %s", ", ".join(f"0x{fid:04x}" for fid in report.missing_ids))
        if not selected and not malformed and not whole_image:
            ids = sorted(options.function_ids) if options.function_ids else []
            result.not_found = RequestedFunctionNotFound(ids)
            result.messages.append("Function not found.")
        if options.wants(OutputMode.LISTING):
            result.messages.extend(["", f"Functions: {len(image)}"])
        elif options.all_functions:
            result.messages.append(f"Functions: {len(image)}")
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _per_function_section(
        self,
        ctx: RenderContext,
        selected: Sequence[UsecodeFunction],
        malformed: Sequence[int],
        modes: Sequence[OutputMode],
    ) -> List[str]:
        renderers: Dict[OutputMode, Renderer] = {mode: RENDERERS[mode]() for mode in modes}
        assembly = AssemblyRenderer()
        lines: List[str] = []
        for renderer in renderers.values():
            lines.extend(renderer.begin(ctx))
        for function in selected:
            lines.extend(self._render_one(ctx, function, renderers, assembly))
            if self.cfg_dir is not None:
                self._export_cfg(ctx, function)
        for function_id in malformed:
            lines.append(f"// {ctx.functions.name_of(function_id)} (0x{function_id:04x}) malformed, not decoded")
        for renderer in renderers.values():
            lines.extend(renderer.end(ctx))
        return lines

    def _render_one(
        self,
        ctx: RenderContext,
        function: UsecodeFunction,
        renderers: Mapping[OutputMode, Renderer],
        assembly: AssemblyRenderer,
    ) -> List[str]:
        lines: List[str] = []
        printed = False
        fallback_reason: Optional[str] = None
        for mode, renderer in renderers.items():
            lines.extend(renderer.before_function(ctx, function))
            body = renderer.render_function(ctx, function)
            if body is None:
                fallback_reason = f"{mode.value} could not render the function"
                self.report.add_fallback(function.id, mode.value, fallback_reason)
                continue
            lines.extend(body)
            printed = printed or bool(body)
            self.report.count_rendered(mode.value)
        if self.options.wants(OutputMode.ASM) or fallback_reason is not None or not printed:
            LOGGER.debug("Assembly for 0x%04x (%s)", function.id, fallback_reason or "requested")
            lines.extend(assembly.render_function(ctx, function) or [])
            self.report.count_rendered(OutputMode.ASM.value)
        return lines

    def _export_cfg(self, ctx: RenderContext, function: UsecodeFunction) -> None:
        try:
            translations = translate_function(function, ctx.naming, ctx.image.generation)
        except TranslationError as exc:
            LOGGER.info("No CFG for 0x%04x: %s", function.id, exc)
            return
        cfg = CFGBuilder(translations).build()
        name = _UNSAFE_NAME.sub("_", ctx.functions.name_of(function.id))
        dot_path, svg_path = write_cfg_visualisation(
            cfg,
            self.cfg_dir,
            f"{function.id:04x}_{name}",
            translations=translations,
            title=ctx.functions.signature(function.id),
        )
        self.report.cfg_artefacts.append(str(dot_path))
        if svg_path is not None:
            self.report.cfg_artefacts.append(str(svg_path))
