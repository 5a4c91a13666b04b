"""Control-flow graph visualisation helpers.

Converts the CFG built for a function into DOT and, when the Graphviz
``dot`` executable is available, an SVG rendering.  Node labels carry the
statements reconstructed for each block so the graph can be read next to
the pseudo-source.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import graphviz

from ..lifter.cfg import CFG, BasicBlock
from ..lifter.translate import Translation

LOGGER = logging.getLogger(__name__)

__all__ = ["render_cfg_dot", "write_cfg_visualisation"]

_EDGE_STYLES = {
    "back": 'style=dashed, color="#b0413e"',
    "cross": 'color="#6b7280"',
}


def _escape_label(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _summarise_block(block: BasicBlock, translations: Sequence[Translation]) -> List[str]:
    lines = [f"B{block.id} [{block.start}-{block.end}]"]
    for index in block.instructions:
        if 0 <= index < len(translations):
            lines.extend(translations[index].lines)
    terminator = block.terminator
    if terminator is not None and terminator.kind == "cond":
        lines.append(f"{terminator.keyword} ({terminator.condition or ''})")
    return lines


def render_cfg_dot(
    cfg: CFG,
    translations: Sequence[Translation] = (),
    *,
    title: Optional[str] = None,
) -> str:
    """Render *cfg* as DOT text."""

    lines = ["digraph CFG {"]
    lines.append("  graph [rankdir=TB, splines=true, nodesep=0.6, fontname=Helvetica, fontsize=10];")
    lines.append("  node [shape=box, style=rounded, fontname=Helvetica, fontsize=9, align=left];")
    lines.append("  edge [fontname=Helvetica, fontsize=8];")
    if title:
        lines.append(f'  label="{_escape_label(title)}";')
        lines.append('  labelloc="t";')
    for block in cfg.blocks:
        label_text = "\\l".join(_escape_label(line) for line in _summarise_block(block, translations)) + "\\l"
        attrs = [f'label="{label_text}"']
        if block.id == cfg.entry:
            attrs.extend(["peripheries=2", "shape=doubleoctagon"])
        elif block.id in cfg.loops:
            attrs.append('color="#2a6f97"')
        elif block.terminator is not None and block.terminator.kind == "return":
            attrs.append('color="#1f7a4d"')
        lines.append(f"  B{block.id} [" + ", ".join(attrs) + "];")
        for successor in block.successors:
            style = _EDGE_STYLES.get(block.edge_kinds.get(successor, ""))
            suffix = f" [{style}]" if style else ""
            lines.append(f"  B{block.id} -> B{successor}{suffix};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def _try_render_with_graphviz(dot: str, destination: Path) -> bool:
    try:
        svg_bytes = graphviz.Source(dot).pipe(format="svg")
    except graphviz.ExecutableNotFound:
        LOGGER.warning("Graphviz 'dot' executable not found; keeping %s only", destination.with_suffix(".dot"))
        return False
    except graphviz.CalledProcessError as exc:
        LOGGER.warning("Graphviz failed to render %s: %s", destination.name, exc)
        return False
    destination.write_bytes(svg_bytes)
    return True


def write_cfg_visualisation(
    cfg: CFG,
    output_dir: Path,
    name: str,
    *,
    translations: Sequence[Translation] = (),
    title: Optional[str] = None,
) -> Tuple[Path, Optional[Path]]:
    """Write DOT and SVG artefacts for *cfg* and return their paths.

    The SVG path is ``None`` when Graphviz could not render the graph.
    """

    output_dir.mkdir(parents=True, exist_ok=True)
    dot_path = output_dir / f"{name}.dot"
    svg_path = output_dir / f"{name}.svg"

    dot_text = render_cfg_dot(cfg, translations, title=title)
    dot_path.write_text(dot_text, encoding="utf-8")

    if not _try_render_with_graphviz(dot_text, svg_path):
        return dot_path, None
    return dot_path, svg_path
