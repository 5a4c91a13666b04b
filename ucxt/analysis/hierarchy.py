"""Single-inheritance inference for symbol-table classes.

Usecode carries no base-class pointer.  A class is taken to derive from the
closest earlier class whose variables fit inside its own and whose method
table is a prefix of its own.  This is an approximation: two unrelated
classes can share a method prefix by coincidence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..vm.symbols import ClassSymbol

LOGGER = logging.getLogger(__name__)

__all__ = ["ClassHierarchy", "is_base_candidate", "infer_class_hierarchy"]


def is_base_candidate(base: ClassSymbol, derived: ClassSymbol) -> bool:
    if base.num_vars > derived.num_vars:
        return False
    if len(base.method_ids) > len(derived.method_ids):
        return False
    return tuple(derived.method_ids[: len(base.method_ids)]) == tuple(base.method_ids)


@dataclass(frozen=True)
class ClassHierarchy:
    """Inferred base of each class, stored as class indices."""

    classes: Tuple[ClassSymbol, ...]
    bases: Tuple[Optional[int], ...]

    def base_of(self, index: int) -> Optional[int]:
        return self.bases[index]

    def base_class(self, cls: ClassSymbol) -> Optional[ClassSymbol]:
        base = self.bases[cls.index]
        return self.classes[base] if base is not None else None

    def edges(self) -> List[Tuple[int, int]]:
        """``(derived, base)`` pairs in declaration order."""

        return [(index, base) for index, base in enumerate(self.bases) if base is not None]

    def roots(self) -> List[int]:
        return [index for index, base in enumerate(self.bases) if base is None]

    def chain(self, index: int) -> List[int]:
        """``index`` followed by its ancestors, nearest first."""

        chain = [index]
        base = self.bases[index]
        while base is not None:
            chain.append(base)
            base = self.bases[base]
        return chain

    def inherited_vars(self, index: int) -> int:
        base = self.bases[index]
        return self.classes[base].num_vars if base is not None else 0


def infer_class_hierarchy(classes: Sequence[ClassSymbol]) -> ClassHierarchy:
    bases: List[Optional[int]] = []
    for i, cls in enumerate(classes):
        found: Optional[int] = None
        for j in range(i - 1, -1, -1):
            if is_base_candidate(classes[j], cls):
                found = j
                break
        if found is not None:
            LOGGER.debug("Class %s inherits from %s", cls.name, classes[found].name)
        bases.append(found)
    return ClassHierarchy(classes=tuple(classes), bases=tuple(bases))
