"""Structured decompilation report helpers."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional


@dataclass
class DecompileReport:
    """Summarises a single run for maintainers."""

    input_path: Optional[str] = None
    game: Optional[str] = None
    generation: Optional[str] = None
    image_size: int = 0
    function_count: int = 0
    selected_count: int = 0
    symbol_table: bool = False
    class_count: int = 0
    global_static_count: int = 0
    flag_usage_count: int = 0
    modes: List[str] = field(default_factory=list)
    rendered: Dict[str, int] = field(default_factory=dict)
    fallbacks: List[Dict[str, object]] = field(default_factory=list)
    malformed: List[int] = field(default_factory=list)
    missing_ids: List[int] = field(default_factory=list)
    cfg_artefacts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def count_rendered(self, mode: str) -> None:
        self.rendered[mode] = self.rendered.get(mode, 0) + 1

    def add_fallback(self, function_id: int, mode: str, reason: str) -> None:
        self.fallbacks.append({"function_id": function_id, "mode": mode, "reason": reason})

    def to_text(self) -> str:
        """Format the report as a human-readable summary."""

        lines: List[str] = []
        lines.append(f"Input: {self.input_path}")
        lines.append(f"Game: {self.game} ({self.generation})")
        lines.append(f"Image size: {self.image_size} bytes")
        lines.append(f"Functions decoded: {self.function_count}")
        lines.append(f"Functions selected: {self.selected_count}")
        if self.symbol_table:
            lines.append(
                f"Symbol table: {self.class_count} classes, {self.global_static_count} global statics"
            )
        else:
            lines.append("Symbol table: none")
        lines.append(f"Flag accesses: {self.flag_usage_count}")
        lines.append("Output modes: " + (", ".join(self.modes) if self.modes else "asm (default)"))
        if self.rendered:
            lines.append("Rendered:")
            for mode, count in sorted(self.rendered.items()):
                lines.append(f"  {mode}: {count}")
        if self.fallbacks:
            lines.append("Assembly fallbacks:")
            for entry in self.fallbacks:
                lines.append(
                    f"  - 0x{int(entry['function_id']):04x} ({entry['mode']}): {entry['reason']}"
                )
        if self.malformed:
            lines.append("Malformed functions: " + ", ".join(f"0x{fid:04x}" for fid in self.malformed))
        if self.missing_ids:
            lines.append("Not found: " + ", ".join(f"0x{fid:04x}" for fid in self.missing_ids))
        if self.cfg_artefacts:
            lines.append("CFG artefacts:")
            lines.extend(f"  - {path}" for path in self.cfg_artefacts)
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)
        if self.errors:
            lines.append("Errors:")
            lines.extend(f"  - {error}" for error in self.errors)
        return "\n".join(lines)

    def to_json(self) -> Dict[str, object]:
        """Return a JSON-serialisable representation."""

        data = asdict(self)
        data["fallbacks"] = [
            {
                "function_id": int(entry.get("function_id", 0)),
                "mode": str(entry.get("mode", "")),
                "reason": str(entry.get("reason", "")),
            }
            for entry in self.fallbacks
        ]
        return data
