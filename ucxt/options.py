"""Run options shared by the decoder and the renderers.

Options are passed explicitly into every call that needs them.  Nothing in
the package reads them from module state.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Optional


class Generation(str, enum.Enum):
    """Usecode virtual machine generation."""

    U7 = "u7"
    U8 = "u8"


class Game(str, enum.Enum):
    """Games whose usecode images can be decoded."""

    BG = "bg"
    FOV = "fov"
    SI = "si"
    SS = "ss"
    SIB = "sib"
    U8 = "u8"

    @property
    def generation(self) -> Generation:
        return Generation.U8 if self is Game.U8 else Generation.U7

    @property
    def source_tag(self) -> Optional[str]:
        """Return the ``#game`` identifier written at the top of pseudo-source."""

        if self in (Game.BG, Game.FOV):
            return "blackgate"
        if self in (Game.SI, Game.SS):
            return "serpentisle"
        if self is Game.SIB:
            return "serpentbeta"
        return None


class OutputMode(str, enum.Enum):
    LISTING = "listing"
    ASM = "asm"
    UCS = "ucs"
    FLAGS = "flags"
    TRANS_TABLE = "tt"
    EXTERN = "extern"


@dataclass(frozen=True)
class Options:
    """Immutable configuration for a single decompilation run."""

    game: Game = Game.BG
    modes: FrozenSet[OutputMode] = field(default_factory=frozenset)
    function_ids: Optional[FrozenSet[int]] = None
    force_ext32: bool = False
    raw_ops: bool = False
    autocomment: bool = False
    debug_names: bool = False
    verbosity: int = 0

    @property
    def generation(self) -> Generation:
        return self.game.generation

    @property
    def all_functions(self) -> bool:
        return not self.function_ids

    def selects(self, function_id: int) -> bool:
        return self.all_functions or function_id in self.function_ids

    def wants(self, mode: OutputMode) -> bool:
        return mode in self.modes


__all__ = ["Game", "Generation", "Options", "OutputMode"]
