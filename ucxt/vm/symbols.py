"""Embedded symbol table of Ultima VII generation usecode images.

Images produced by the usecode compiler may start with a symbol table that
names functions and declares classes.  The table is recognised by an 8-byte
signature; its body is a tree of scopes::

    u32 0xFFFFFFFF, u32 'UCSY'
    scope  := u32 count, u32 version, count * symbol
    symbol := cstring name, u16 kind, u32 value, kind specific trailer
    version >= 1: u32 global static count after the outermost scope

Class scopes carry their own nested scope followed by the class method table
and variable count.  Methods inside a class are exposed as ``Class::method``.
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from ..exceptions import UnknownSymbolTableFormat
from ..io.cursor import ByteCursor

LOGGER = logging.getLogger(__name__)

__all__ = [
    "SYMBOL_TABLE_MAGIC",
    "SUPPORTED_VERSION",
    "MAX_GLOBAL_STATICS",
    "SymbolKind",
    "FunctionSymbol",
    "ClassSymbol",
    "SymbolTable",
    "detect",
    "load",
]

SYMBOL_TABLE_MAGIC0 = 0xFFFFFFFF
SYMBOL_TABLE_MAGIC1 = (ord("U") << 24) | (ord("C") << 16) | (ord("S") << 8) | ord("Y")
SYMBOL_TABLE_MAGIC = struct.pack("<II", SYMBOL_TABLE_MAGIC0, SYMBOL_TABLE_MAGIC1)
SUPPORTED_VERSION = 1
# Static operands are signed 16-bit; globals use the negative half.
MAX_GLOBAL_STATICS = 0x8000


class SymbolKind(enum.IntEnum):
    FUN_DEFINED = 1
    FUN_EXTERN = 2
    FUN_EXTERN_DEFINED = 3
    CLASS_SCOPE = 4
    TABLE_SCOPE = 5
    SHAPE_FUN = 6
    OBJECT_FUN = 7

    @property
    def is_function(self) -> bool:
        return self not in (SymbolKind.CLASS_SCOPE, SymbolKind.TABLE_SCOPE)


@dataclass(frozen=True)
class FunctionSymbol:
    """Name and kind of a function id."""

    id: int
    name: str
    kind: SymbolKind
    shape: Optional[int] = None
    class_index: Optional[int] = None


@dataclass(frozen=True)
class ClassSymbol:
    """A class declared in the symbol table.

    ``method_ids`` keeps declaration order; it is the only evidence available
    to the inheritance inference.  The base class is not stored here, see
    :class:`ucxt.analysis.hierarchy.ClassHierarchy`.
    """

    index: int
    name: str
    num_vars: int
    method_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class SymbolTable:
    classes: Tuple[ClassSymbol, ...] = ()
    functions: Mapping[int, FunctionSymbol] = field(default_factory=lambda: MappingProxyType({}))
    global_static_count: int = 0
    version: int = 0

    def function(self, function_id: int) -> Optional[FunctionSymbol]:
        return self.functions.get(function_id)

    def class_by_name(self, name: str) -> Optional[ClassSymbol]:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None

    def class_of_method(self, function_id: int) -> Optional[int]:
        """Return the index of the first class declaring ``function_id``."""

        symbol = self.functions.get(function_id)
        if symbol is not None and symbol.class_index is not None:
            return symbol.class_index
        for cls in self.classes:
            if function_id in cls.method_ids:
                return cls.index
        return None


def detect(data: bytes) -> bool:
    """Return ``True`` when *data* starts with an embedded symbol table."""

    return bytes(data[:8]) == SYMBOL_TABLE_MAGIC


class _ScopeReader:
    """Walks the scope tree, collecting symbols and remembering problems.

    Unknown kinds cannot be skipped reliably, so they end the walk; an
    unsupported version is only recorded and the walk continues so the
    cursor still ends up after the table.
    """

    def __init__(self, cursor: ByteCursor) -> None:
        self.cursor = cursor
        self.functions: Dict[int, FunctionSymbol] = {}
        self.classes: List[ClassSymbol] = []
        self.problem: Optional[str] = None

    def read_scope(self, owner: Optional[str] = None, owner_index: Optional[int] = None) -> int:
        count = self.cursor.u32()
        version = self.cursor.u32()
        if version > SUPPORTED_VERSION and self.problem is None:
            self.problem = f"unsupported symbol table version {version}"
        for _ in range(count):
            self._read_symbol(owner, owner_index)
        return version

    def _read_symbol(self, owner: Optional[str], owner_index: Optional[int]) -> None:
        name = self.cursor.cstring()
        raw_kind = self.cursor.u16()
        value = self.cursor.u32()
        try:
            kind = SymbolKind(raw_kind)
        except ValueError:
            raise UnknownSymbolTableFormat(
                f"unknown symbol kind {raw_kind} for {name!r}",
                resume_offset=None,
            ) from None
        if kind is SymbolKind.CLASS_SCOPE:
            self._read_class(name)
            return
        if kind is SymbolKind.TABLE_SCOPE:
            return
        shape = self.cursor.u32() if kind is SymbolKind.SHAPE_FUN else None
        qualified = f"{owner}::{name}" if owner else name
        if kind is SymbolKind.FUN_EXTERN and value in self.functions:
            return
        self.functions[value] = FunctionSymbol(
            id=value,
            name=qualified,
            kind=kind,
            shape=shape,
            class_index=owner_index,
        )

    def _read_class(self, name: str) -> None:
        index = len(self.classes)
        # Reserve the slot so nested declarations keep declaration order.
        self.classes.append(ClassSymbol(index=index, name=name, num_vars=0))
        self.read_scope(name, index)
        num_methods = self.cursor.u16()
        methods = tuple(self.cursor.u16() for _ in range(num_methods))
        num_vars = self.cursor.u16()
        self.classes[index] = ClassSymbol(index=index, name=name, num_vars=num_vars, method_ids=methods)


def load(cursor: ByteCursor) -> SymbolTable:
    """Parse the symbol table at the cursor position.

    On return the cursor sits on the first function record.  A table whose
    layout is not understood raises :class:`UnknownSymbolTableFormat`; when
    its extent could still be determined ``resume_offset`` says where the
    function records start.
    """

    magic = cursor.read(8)
    if magic != SYMBOL_TABLE_MAGIC:
        raise UnknownSymbolTableFormat("missing symbol table signature", resume_offset=None)
    reader = _ScopeReader(cursor)
    version = reader.read_scope()
    global_statics = cursor.u32() if version >= 1 else 0
    problem = reader.problem
    if problem is None and global_statics > MAX_GLOBAL_STATICS:
        problem = f"{global_statics} global statics exceed the addressable {MAX_GLOBAL_STATICS}"
    if problem is not None:
        raise UnknownSymbolTableFormat(problem, resume_offset=cursor.offset)
    table = SymbolTable(
        classes=tuple(reader.classes),
        functions=MappingProxyType(dict(reader.functions)),
        global_static_count=global_statics,
        version=version,
    )
    LOGGER.debug(
        "Symbol table v%d: %d functions, %d classes, %d global statics",
        version,
        len(table.functions),
        len(table.classes),
        global_statics,
    )
    return table
