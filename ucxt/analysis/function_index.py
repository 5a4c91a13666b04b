"""Map function ids to printable names and call metadata.

The index is the only place where a function id is turned into something a
renderer prints.  Names come from the symbol table when one exists; other
ids get a synthesised ``FuncXXXX`` name and a kind derived from the id range
the engine reserves for shape and object triggered functions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Mapping, Optional, Sequence

from ..vm.model import UsecodeFunction
from ..vm.symbols import SymbolKind, SymbolTable

__all__ = [
    "SHAPE_FUNCTION_LIMIT",
    "OBJECT_FUNCTION_LIMIT",
    "FunctionKind",
    "FunctionInfo",
    "FunctionIndex",
    "kind_for_id",
    "synthesised_name",
    "build_function_index",
]

SHAPE_FUNCTION_LIMIT = 0x400
OBJECT_FUNCTION_LIMIT = 0x800


class FunctionKind(str, enum.Enum):
    SHAPE = "shape"
    OBJECT = "object"
    USER = "user"
    EXTERN = "extern"

    @classmethod
    def from_symbol(cls, kind: SymbolKind) -> "FunctionKind":
        if kind is SymbolKind.SHAPE_FUN:
            return cls.SHAPE
        if kind is SymbolKind.OBJECT_FUN:
            return cls.OBJECT
        if kind is SymbolKind.FUN_EXTERN:
            return cls.EXTERN
        return cls.USER


def kind_for_id(function_id: int) -> FunctionKind:
    if function_id < SHAPE_FUNCTION_LIMIT:
        return FunctionKind.SHAPE
    if function_id < OBJECT_FUNCTION_LIMIT:
        return FunctionKind.OBJECT
    return FunctionKind.USER


def synthesised_name(function_id: int) -> str:
    return f"Func{function_id:04X}"


@dataclass(frozen=True)
class FunctionInfo:
    id: int
    name: str
    kind: FunctionKind
    num_args: int
    returns_value: bool
    always_aborts: bool
    class_index: Optional[int] = None
    uses_ext32_encoding: bool = False
    from_symbols: bool = False
    shape: Optional[int] = None

    def parameters(self) -> Sequence[str]:
        return [f"var{index:04x}" for index in range(self.num_args)]

    def signature(self) -> str:
        """Callable prototype, e.g. ``var Func0800 0x800 (var var0000)``."""

        prefix = "var " if self.returns_value else "void "
        if self.kind is FunctionKind.SHAPE:
            number = f"shape#(0x{self.shape if self.shape is not None else self.id:x})"
        elif self.kind is FunctionKind.OBJECT:
            number = f"object#(0x{self.id:x})"
        else:
            number = f"0x{self.id:x}"
        params = ", ".join(f"var {name}" for name in self.parameters())
        return f"{prefix}{self.name} {number} ({params})"


class FunctionIndex(Mapping[int, FunctionInfo]):
    """Read-only mapping of function id to :class:`FunctionInfo`."""

    def __init__(self, entries: Mapping[int, FunctionInfo], symbols: Optional[SymbolTable] = None) -> None:
        self._entries: Dict[int, FunctionInfo] = dict(entries)
        self._symbols = symbols

    def __getitem__(self, function_id: int) -> FunctionInfo:
        return self._entries[function_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def name_of(self, function_id: int) -> str:
        """Printable name for any id, including ids not present in the image."""

        info = self._entries.get(function_id)
        if info is not None:
            return info.name
        if self._symbols is not None:
            symbol = self._symbols.function(function_id)
            if symbol is not None:
                return symbol.name
        return synthesised_name(function_id)

    def call_expression(self, function_id: int, args: Iterable[str]) -> str:
        return f"{self.name_of(function_id)}({', '.join(args)})"

    def signature(self, function_id: int) -> str:
        return self._entries[function_id].signature()


def build_function_index(
    functions: Iterable[UsecodeFunction],
    symbols: Optional[SymbolTable] = None,
) -> FunctionIndex:
    """Build the index for every decoded function; the first record of an id wins."""

    entries: Dict[int, FunctionInfo] = {}
    for function in functions:
        if function.id in entries:
            continue
        symbol = symbols.function(function.id) if symbols is not None else None
        if symbol is not None:
            name = symbol.name
            kind = FunctionKind.from_symbol(symbol.kind)
            shape = symbol.shape
        else:
            name = function.debug_name or synthesised_name(function.id)
            kind = kind_for_id(function.id)
            shape = None
        entries[function.id] = FunctionInfo(
            id=function.id,
            name=name,
            kind=kind,
            num_args=function.num_args,
            returns_value=function.returns_value,
            always_aborts=function.always_aborts,
            class_index=function.class_index,
            uses_ext32_encoding=function.uses_ext32_encoding,
            from_symbols=symbol is not None,
            shape=shape,
        )
    return FunctionIndex(entries, symbols)
