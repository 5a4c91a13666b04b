"""Decoded representation of a usecode image."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union

from ..options import Generation
from .opcodes import OpcodeInfo, OperandKind
from .symbols import SymbolTable

__all__ = [
    "Operand",
    "Instruction",
    "UsecodeFunction",
    "DecodeDiagnostic",
    "UsecodeImage",
]

OperandValue = Union[int, str]


@dataclass(frozen=True)
class Operand:
    """A decoded operand.

    ``value`` is the resolved form (absolute jump target, callee function id,
    string text); ``raw`` is the number as stored in the opcode stream.
    """

    kind: OperandKind
    value: OperandValue
    raw: int = 0
    extra: Optional[int] = None

    @property
    def is_jump(self) -> bool:
        return self.kind.is_jump


@dataclass(frozen=True)
class Instruction:
    opcode: int
    offset: int
    size: int
    raw: bytes
    operands: Tuple[Operand, ...]
    info: OpcodeInfo

    @property
    def mnemonic(self) -> str:
        return self.info.mnemonic

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def jump_target(self) -> Optional[int]:
        for operand in self.operands:
            if operand.is_jump:
                return int(operand.value)
        return None

    def operand(self, kind: OperandKind) -> Optional[Operand]:
        for operand in self.operands:
            if operand.kind is kind:
                return operand
        return None


@dataclass(frozen=True)
class UsecodeFunction:
    """One decoded function record."""

    id: int
    num_args: int
    returns_value: bool
    always_aborts: bool
    class_index: Optional[int]
    uses_ext32_encoding: bool
    instructions: Tuple[Instruction, ...]
    raw_offset: int
    size: int
    data_size: int = 0
    code_size: int = 0
    num_locals: int = 0
    externs: Tuple[int, ...] = ()
    data: Mapping[int, str] = field(default_factory=lambda: MappingProxyType({}))
    debug_name: Optional[str] = None

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def instruction_at(self, offset: int) -> Optional[Instruction]:
        for instruction in self.instructions:
            if instruction.offset == offset:
                return instruction
        return None

    def string_at(self, offset: int) -> Optional[str]:
        """Return the data-segment string covering ``offset``.

        Offsets may point inside a string, in which case the tail is returned.
        """

        if offset in self.data:
            return self.data[offset]
        for start, text in self.data.items():
            if start < offset <= start + len(text):
                return text[offset - start :]
        return None


@dataclass(frozen=True)
class DecodeDiagnostic:
    """A problem met while decoding, kept for the run report."""

    severity: str
    message: str
    offset: int
    function_id: Optional[int] = None

    def describe(self) -> str:
        where = f"function 0x{self.function_id:04x}" if self.function_id is not None else "image"
        return f"{self.severity}: {where} @0x{self.offset:x}: {self.message}"


@dataclass(frozen=True)
class UsecodeImage:
    """Parse result shared read-only by every analysis and renderer."""

    generation: Generation
    functions: Tuple[UsecodeFunction, ...]
    symbols: Optional[SymbolTable] = None
    diagnostics: Tuple[DecodeDiagnostic, ...] = ()
    size: int = 0

    def __len__(self) -> int:
        return len(self.functions)

    def __iter__(self) -> Iterator[UsecodeFunction]:
        return iter(self.functions)

    def by_id(self) -> Dict[int, UsecodeFunction]:
        table: Dict[int, UsecodeFunction] = {}
        for function in self.functions:
            table.setdefault(function.id, function)
        return table

    def find(self, function_id: int) -> Optional[UsecodeFunction]:
        for function in self.functions:
            if function.id == function_id:
                return function
        return None

    def malformed_ids(self) -> Tuple[int, ...]:
        return tuple(
            diag.function_id
            for diag in self.diagnostics
            if diag.severity == "error" and diag.function_id is not None
        )

    @property
    def global_static_count(self) -> int:
        return self.symbols.global_static_count if self.symbols else 0
