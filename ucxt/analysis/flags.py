"""Cross reference of global flag reads and writes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from ..vm.model import UsecodeFunction
from ..vm.opcodes import FlagAccess, OperandKind

__all__ = ["FlagAccess", "FlagUsage", "FlagUsageViews", "collect_flag_usage"]

_FLAG_OPERANDS = (OperandKind.FLAG, OperandKind.GLOBAL)


@dataclass(frozen=True)
class FlagUsage:
    function_id: int
    offset: int
    flag_index: int
    access: FlagAccess


@dataclass(frozen=True)
class FlagUsageViews:
    by_function: Tuple[FlagUsage, ...]
    by_flag: Tuple[FlagUsage, ...]

    def __len__(self) -> int:
        return len(self.by_function)

    def flags(self) -> List[int]:
        return sorted({usage.flag_index for usage in self.by_flag})


def _usages(function: UsecodeFunction) -> Iterable[FlagUsage]:
    for instruction in function.instructions:
        access = instruction.info.flag_access
        if access is None:
            continue
        for operand in instruction.operands:
            if operand.kind in _FLAG_OPERANDS:
                yield FlagUsage(function.id, instruction.offset, int(operand.raw), access)
                break


def collect_flag_usage(functions: Iterable[UsecodeFunction]) -> FlagUsageViews:
    usages = [usage for function in functions for usage in _usages(function)]
    by_function = sorted(usages, key=lambda usage: (usage.function_id, usage.offset))
    by_flag = sorted(usages, key=lambda usage: (usage.flag_index, usage.function_id))
    return FlagUsageViews(by_function=tuple(by_function), by_flag=tuple(by_flag))
