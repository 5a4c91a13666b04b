"""Opcode tables for both usecode VM generations.

Each opcode is described once by an :class:`OpcodeInfo` entry: mnemonic,
operand shape, static stack effect and the control-flow behaviour the
lifter needs.  Decoding never branches on individual opcodes; it walks the
operand shape, reading each :class:`OperandKind` with the matching cursor
reader in :mod:`ucxt.vm.decoder`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from ..options import Generation

__all__ = [
    "OperandKind",
    "Flow",
    "FlagAccess",
    "OpcodeInfo",
    "U7_OPCODES",
    "U8_OPCODES",
    "opcode_table",
    "VARIABLE_POPS",
]


class OperandKind(str, enum.Enum):
    """Shape of a single operand as stored in the opcode stream."""

    BYTE = "byte"
    IMMEDIATE = "immediate"
    SIMMEDIATE = "simmediate"
    IMMEDIATE32 = "immediate32"
    DATA_STRING = "data_string"
    DATA_STRING32 = "data_string32"
    INLINE_STRING = "inline_string"
    JUMP = "jump"
    JUMP32 = "jump32"
    LOCAL = "local"
    LOCAL8 = "local8"
    STATIC = "static"
    CLASS_VAR = "class_var"
    FLAG = "flag"
    GLOBAL = "global"
    EXTERN = "extern"
    FUNCTION = "function"
    FUNCTION32 = "function32"
    CLASS_FUNCTION = "class_function"
    INTRINSIC = "intrinsic"
    COUNT = "count"
    COUNT8 = "count8"
    CLASS = "class"
    METHOD = "method"
    LINE = "line"

    @property
    def is_jump(self) -> bool:
        return self in (OperandKind.JUMP, OperandKind.JUMP32)

    @property
    def is_function(self) -> bool:
        return self in (
            OperandKind.EXTERN,
            OperandKind.FUNCTION,
            OperandKind.FUNCTION32,
            OperandKind.CLASS_FUNCTION,
        )


class Flow(str, enum.Enum):
    """Control-flow effect of an opcode."""

    NEXT = "next"
    BRANCH = "branch"
    JUMP = "jump"
    LOOP = "loop"
    CONVERSE = "converse"
    CASE = "case"
    DEFAULT_CASE = "default_case"
    RETURN = "return"
    ABORT = "abort"
    TRY = "try"


class FlagAccess(str, enum.Enum):
    GET = "get"
    SET = "set"


VARIABLE_POPS = -1


@dataclass(frozen=True)
class OpcodeInfo:
    """Static description of one opcode."""

    opcode: int
    mnemonic: str
    operands: Tuple[OperandKind, ...] = ()
    pops: int = 0
    pushes: int = 0
    flow: Flow = Flow.NEXT
    flag_access: Optional[FlagAccess] = None

    @property
    def is_return(self) -> bool:
        return self.flow is Flow.RETURN

    @property
    def is_abort(self) -> bool:
        return self.flow is Flow.ABORT

    @property
    def ends_block(self) -> bool:
        return self.flow not in (Flow.NEXT,)


def _table(*entries: OpcodeInfo) -> Mapping[int, OpcodeInfo]:
    table: Dict[int, OpcodeInfo] = {}
    for entry in entries:
        if entry.opcode in table:
            raise ValueError(f"duplicate opcode 0x{entry.opcode:02x}")
        table[entry.opcode] = entry
    return table


K = OperandKind
_LOOP = (K.LOCAL, K.LOCAL, K.LOCAL, K.LOCAL, K.JUMP)
_LOOP32 = (K.LOCAL, K.LOCAL, K.LOCAL, K.LOCAL, K.JUMP32)
_STATIC_LOOP = (K.LOCAL, K.LOCAL, K.LOCAL, K.STATIC, K.JUMP)
_STATIC_LOOP32 = (K.LOCAL, K.LOCAL, K.LOCAL, K.STATIC, K.JUMP32)
_CLSVAR_LOOP = (K.LOCAL, K.LOCAL, K.LOCAL, K.CLASS_VAR, K.JUMP)
_CLSVAR_LOOP32 = (K.LOCAL, K.LOCAL, K.LOCAL, K.CLASS_VAR, K.JUMP32)

U7_OPCODES: Mapping[int, OpcodeInfo] = _table(
    OpcodeInfo(0x02, "loop", _LOOP, flow=Flow.LOOP),
    OpcodeInfo(0x04, "startconv", (K.JUMP,), flow=Flow.CONVERSE),
    OpcodeInfo(0x05, "jne", (K.JUMP,), pops=1, flow=Flow.BRANCH),
    OpcodeInfo(0x06, "jmp", (K.JUMP,), flow=Flow.JUMP),
    OpcodeInfo(0x07, "cmps", (K.COUNT, K.JUMP), pops=VARIABLE_POPS, flow=Flow.CASE),
    OpcodeInfo(0x09, "add", pops=2, pushes=1),
    OpcodeInfo(0x0A, "sub", pops=2, pushes=1),
    OpcodeInfo(0x0B, "div", pops=2, pushes=1),
    OpcodeInfo(0x0C, "mul", pops=2, pushes=1),
    OpcodeInfo(0x0D, "mod", pops=2, pushes=1),
    OpcodeInfo(0x0E, "and", pops=2, pushes=1),
    OpcodeInfo(0x0F, "or", pops=2, pushes=1),
    OpcodeInfo(0x10, "not", pops=1, pushes=1),
    OpcodeInfo(0x12, "pop", (K.LOCAL,), pops=1),
    OpcodeInfo(0x13, "push true", pushes=1),
    OpcodeInfo(0x14, "push false", pushes=1),
    OpcodeInfo(0x16, "cmpgt", pops=2, pushes=1),
    OpcodeInfo(0x17, "cmplt", pops=2, pushes=1),
    OpcodeInfo(0x18, "cmpge", pops=2, pushes=1),
    OpcodeInfo(0x19, "cmple", pops=2, pushes=1),
    OpcodeInfo(0x1A, "cmpne", pops=2, pushes=1),
    OpcodeInfo(0x1C, "addsi", (K.DATA_STRING,)),
    OpcodeInfo(0x1D, "pushs", (K.DATA_STRING,), pushes=1),
    OpcodeInfo(0x1E, "arrc", (K.COUNT,), pops=VARIABLE_POPS, pushes=1),
    OpcodeInfo(0x1F, "pushi", (K.SIMMEDIATE,), pushes=1),
    OpcodeInfo(0x21, "push", (K.LOCAL,), pushes=1),
    OpcodeInfo(0x22, "cmpeq", pops=2, pushes=1),
    OpcodeInfo(0x24, "call", (K.EXTERN,), pops=VARIABLE_POPS),
    OpcodeInfo(0x25, "ret", flow=Flow.RETURN),
    OpcodeInfo(0x26, "aidx", (K.LOCAL,), pops=1, pushes=1),
    OpcodeInfo(0x2C, "ret2", flow=Flow.RETURN),
    OpcodeInfo(0x2D, "retv", pops=1, flow=Flow.RETURN),
    OpcodeInfo(0x2E, "initloop"),
    OpcodeInfo(0x2F, "addsv", (K.LOCAL,)),
    OpcodeInfo(0x30, "in", pops=2, pushes=1),
    OpcodeInfo(0x31, "conv_something", (K.IMMEDIATE, K.JUMP), flow=Flow.DEFAULT_CASE),
    OpcodeInfo(0x32, "retz", flow=Flow.RETURN),
    OpcodeInfo(0x33, "say"),
    OpcodeInfo(0x38, "callis", (K.INTRINSIC, K.COUNT8), pops=VARIABLE_POPS, pushes=1),
    OpcodeInfo(0x39, "calli", (K.INTRINSIC, K.COUNT8), pops=VARIABLE_POPS),
    OpcodeInfo(0x3E, "push itemref", pushes=1),
    OpcodeInfo(0x3F, "abrt", flow=Flow.ABORT),
    OpcodeInfo(0x40, "endconv"),
    OpcodeInfo(0x42, "pushf", (K.FLAG,), pushes=1, flag_access=FlagAccess.GET),
    OpcodeInfo(0x43, "popf", (K.FLAG,), pops=1, flag_access=FlagAccess.SET),
    OpcodeInfo(0x44, "pushb", (K.BYTE,), pushes=1),
    OpcodeInfo(0x46, "setarrayelem", (K.LOCAL,), pops=2),
    OpcodeInfo(0x47, "calle", (K.FUNCTION,), pops=1),
    OpcodeInfo(0x48, "push eventid", pushes=1),
    OpcodeInfo(0x4A, "arra", pops=2, pushes=1),
    OpcodeInfo(0x4B, "pop eventid", pops=1),
    OpcodeInfo(0x4C, "dbgline", (K.LINE,)),
    OpcodeInfo(0x4D, "dbgfunc", (K.DATA_STRING, K.DATA_STRING)),
    OpcodeInfo(0x50, "push static", (K.STATIC,), pushes=1),
    OpcodeInfo(0x51, "pop static", (K.STATIC,), pops=1),
    OpcodeInfo(0x52, "callo", (K.FUNCTION,), pops=1, pushes=1),
    OpcodeInfo(0x53, "callind", pops=2),
    OpcodeInfo(0x54, "push clsvar", (K.CLASS_VAR,), pushes=1),
    OpcodeInfo(0x55, "pop clsvar", (K.CLASS_VAR,), pops=1),
    OpcodeInfo(0x56, "callm", (K.METHOD,), pops=VARIABLE_POPS),
    OpcodeInfo(0x57, "callms", (K.METHOD, K.CLASS), pops=VARIABLE_POPS),
    OpcodeInfo(0x58, "clscreate", (K.CLASS,), pops=VARIABLE_POPS, pushes=1),
    OpcodeInfo(0x59, "classdel", pops=1),
    OpcodeInfo(0x5A, "aidxs", (K.STATIC,), pops=1, pushes=1),
    OpcodeInfo(0x5B, "setstaticarrayelem", (K.STATIC,), pops=2),
    OpcodeInfo(0x5C, "staticloop", _STATIC_LOOP, flow=Flow.LOOP),
    OpcodeInfo(0x5D, "aidxclsvar", (K.CLASS_VAR,), pops=1, pushes=1),
    OpcodeInfo(0x5E, "setclsvararrayelem", (K.CLASS_VAR,), pops=2),
    OpcodeInfo(0x5F, "clsvarloop", _CLSVAR_LOOP, flow=Flow.LOOP),
    OpcodeInfo(0x60, "push choice", pushes=1),
    OpcodeInfo(0x61, "starttry", (K.JUMP,), flow=Flow.TRY),
    OpcodeInfo(0x62, "endtry"),
    OpcodeInfo(0x82, "loop32", _LOOP32, flow=Flow.LOOP),
    OpcodeInfo(0x84, "startconv32", (K.JUMP32,), flow=Flow.CONVERSE),
    OpcodeInfo(0x85, "jne32", (K.JUMP32,), pops=1, flow=Flow.BRANCH),
    OpcodeInfo(0x86, "jmp32", (K.JUMP32,), flow=Flow.JUMP),
    OpcodeInfo(0x87, "cmps32", (K.COUNT, K.JUMP32), pops=VARIABLE_POPS, flow=Flow.CASE),
    OpcodeInfo(0x9C, "addsi32", (K.DATA_STRING32,)),
    OpcodeInfo(0x9D, "pushs32", (K.DATA_STRING32,), pushes=1),
    OpcodeInfo(0x9F, "pushi32", (K.IMMEDIATE32,), pushes=1),
    OpcodeInfo(0xA4, "call32", (K.FUNCTION32,), pops=VARIABLE_POPS),
    OpcodeInfo(0xAE, "initloop32"),
    OpcodeInfo(0xB1, "conv_something32", (K.IMMEDIATE, K.JUMP32), flow=Flow.DEFAULT_CASE),
    OpcodeInfo(0xBF, "throw", pops=1, flow=Flow.ABORT),
    OpcodeInfo(0xC2, "pushfvar", pops=1, pushes=1),
    OpcodeInfo(0xC3, "popfvar", pops=2),
    OpcodeInfo(0xC7, "calle32", (K.FUNCTION32,), pops=1),
    OpcodeInfo(0xCD, "dbgfunc32", (K.DATA_STRING32, K.DATA_STRING32)),
    OpcodeInfo(0xD4, "callindex", (K.COUNT8,), pops=VARIABLE_POPS),
    OpcodeInfo(0xDC, "staticloop32", _STATIC_LOOP32, flow=Flow.LOOP),
    OpcodeInfo(0xDF, "clsvarloop32", _CLSVAR_LOOP32, flow=Flow.LOOP),
    OpcodeInfo(0xE1, "starttry32", (K.JUMP32,), flow=Flow.TRY),
)

# Ultima VIII process VM: byte/word locals addressed relative to the frame
# pointer, inline strings, calls addressed by (class, offset).
U8_OPCODES: Mapping[int, OpcodeInfo] = _table(
    OpcodeInfo(0x00, "pop temp", (K.BYTE,), pops=1),
    OpcodeInfo(0x01, "pop", (K.LOCAL8,), pops=1),
    OpcodeInfo(0x02, "pop dword", (K.LOCAL8,), pops=1),
    OpcodeInfo(0x03, "pop huge", (K.LOCAL8, K.BYTE), pops=1),
    OpcodeInfo(0x08, "pop res", pops=1),
    OpcodeInfo(0x09, "pop element", (K.LOCAL8, K.BYTE, K.BYTE), pops=2),
    OpcodeInfo(0x0A, "push byte", (K.BYTE,), pushes=1),
    OpcodeInfo(0x0B, "push", (K.SIMMEDIATE,), pushes=1),
    OpcodeInfo(0x0C, "push dword", (K.IMMEDIATE32,), pushes=1),
    OpcodeInfo(0x0D, "push string", (K.INLINE_STRING,), pushes=1),
    OpcodeInfo(0x0E, "create list", (K.COUNT8, K.BYTE), pops=VARIABLE_POPS, pushes=1),
    OpcodeInfo(0x0F, "calli", (K.COUNT8, K.INTRINSIC), pops=VARIABLE_POPS),
    OpcodeInfo(0x11, "call", (K.CLASS_FUNCTION,), pops=VARIABLE_POPS),
    OpcodeInfo(0x12, "pop temp word", pops=1),
    OpcodeInfo(0x14, "add", pops=2, pushes=1),
    OpcodeInfo(0x15, "add dword", pops=2, pushes=1),
    OpcodeInfo(0x16, "concat", pops=2, pushes=1),
    OpcodeInfo(0x17, "append", pops=2, pushes=1),
    OpcodeInfo(0x19, "append slist", (K.BYTE,), pops=2, pushes=1),
    OpcodeInfo(0x1A, "remove slist", (K.BYTE,), pops=2, pushes=1),
    OpcodeInfo(0x1B, "remove list", (K.BYTE,), pops=2, pushes=1),
    OpcodeInfo(0x1C, "sub", pops=2, pushes=1),
    OpcodeInfo(0x1D, "sub dword", pops=2, pushes=1),
    OpcodeInfo(0x1E, "mul", pops=2, pushes=1),
    OpcodeInfo(0x1F, "mul dword", pops=2, pushes=1),
    OpcodeInfo(0x20, "div", pops=2, pushes=1),
    OpcodeInfo(0x21, "div dword", pops=2, pushes=1),
    OpcodeInfo(0x22, "mod", pops=2, pushes=1),
    OpcodeInfo(0x23, "mod dword", pops=2, pushes=1),
    OpcodeInfo(0x24, "cmp", pops=2, pushes=1),
    OpcodeInfo(0x25, "cmp dword", pops=2, pushes=1),
    OpcodeInfo(0x26, "str cmp", pops=2, pushes=1),
    OpcodeInfo(0x28, "lt", pops=2, pushes=1),
    OpcodeInfo(0x29, "lt dword", pops=2, pushes=1),
    OpcodeInfo(0x2A, "le", pops=2, pushes=1),
    OpcodeInfo(0x2B, "le dword", pops=2, pushes=1),
    OpcodeInfo(0x2C, "gt", pops=2, pushes=1),
    OpcodeInfo(0x2D, "gt dword", pops=2, pushes=1),
    OpcodeInfo(0x2E, "ge", pops=2, pushes=1),
    OpcodeInfo(0x2F, "ge dword", pops=2, pushes=1),
    OpcodeInfo(0x30, "not", pops=1, pushes=1),
    OpcodeInfo(0x32, "and", pops=2, pushes=1),
    OpcodeInfo(0x34, "or", pops=2, pushes=1),
    OpcodeInfo(0x36, "ne", pops=2, pushes=1),
    OpcodeInfo(0x38, "in list", (K.BYTE, K.BYTE), pops=2, pushes=1),
    OpcodeInfo(0x3A, "bit and", pops=2, pushes=1),
    OpcodeInfo(0x3B, "bit or", pops=2, pushes=1),
    OpcodeInfo(0x3C, "bit not", pops=1, pushes=1),
    OpcodeInfo(0x3E, "byte to word", pops=1, pushes=1),
    OpcodeInfo(0x3F, "push local byte", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x40, "push local", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x41, "push local dword", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x42, "push string local", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x43, "push list", (K.LOCAL8, K.BYTE), pushes=1),
    OpcodeInfo(0x44, "push slist", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x4B, "push indirect", (K.BYTE,), pops=1, pushes=1),
    OpcodeInfo(0x4C, "pop indirect", (K.BYTE,), pops=2),
    OpcodeInfo(0x4E, "push global", (K.GLOBAL,), pushes=1, flag_access=FlagAccess.GET),
    OpcodeInfo(0x4F, "pop global", (K.GLOBAL,), pops=1, flag_access=FlagAccess.SET),
    OpcodeInfo(0x50, "ret", flow=Flow.RETURN),
    OpcodeInfo(0x51, "jne", (K.JUMP,), pops=1, flow=Flow.BRANCH),
    OpcodeInfo(0x52, "jmp", (K.JUMP,), flow=Flow.JUMP),
    OpcodeInfo(0x53, "suspend"),
    OpcodeInfo(0x54, "implies", (K.BYTE, K.BYTE), pops=2),
    OpcodeInfo(0x57, "spawn", (K.BYTE, K.BYTE, K.CLASS_FUNCTION, K.BYTE), pops=VARIABLE_POPS, pushes=1),
    OpcodeInfo(0x59, "push pid", pushes=1),
    OpcodeInfo(0x5A, "init", (K.BYTE,)),
    OpcodeInfo(0x5B, "line number", (K.LINE,)),
    OpcodeInfo(0x5D, "push retval byte", pushes=1),
    OpcodeInfo(0x5E, "push retval", pushes=1),
    OpcodeInfo(0x5F, "push retval dword", pushes=1),
    OpcodeInfo(0x60, "word to dword", pops=1, pushes=1),
    OpcodeInfo(0x61, "dword to word", pops=1, pushes=1),
    OpcodeInfo(0x62, "free string local", (K.LOCAL8,)),
    OpcodeInfo(0x63, "free slist local", (K.LOCAL8,)),
    OpcodeInfo(0x64, "free list local", (K.LOCAL8,)),
    OpcodeInfo(0x65, "free string", (K.BYTE,)),
    OpcodeInfo(0x66, "free list", (K.BYTE,)),
    OpcodeInfo(0x67, "free slist", (K.BYTE,)),
    OpcodeInfo(0x69, "str to ptr", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x6B, "str to ptr temp", pops=1, pushes=1),
    OpcodeInfo(0x6C, "param pid change", (K.LOCAL8, K.BYTE, K.BYTE)),
    OpcodeInfo(0x6D, "push process result", pushes=1),
    OpcodeInfo(0x6E, "add sp", (K.BYTE,)),
    OpcodeInfo(0x6F, "push address", (K.LOCAL8,), pushes=1),
    OpcodeInfo(0x70, "loop", (K.LOCAL8, K.BYTE, K.BYTE), pops=VARIABLE_POPS),
    OpcodeInfo(0x73, "loopnext"),
    OpcodeInfo(0x74, "loopscr", (K.BYTE,)),
    OpcodeInfo(0x75, "foreach list", (K.LOCAL8, K.BYTE, K.JUMP), flow=Flow.BRANCH),
    OpcodeInfo(0x76, "foreach slist", (K.LOCAL8, K.BYTE, K.JUMP), flow=Flow.BRANCH),
    OpcodeInfo(0x77, "set info", pops=2),
    OpcodeInfo(0x78, "process exclude"),
    OpcodeInfo(0x79, "global address", (K.IMMEDIATE,), pushes=1),
    OpcodeInfo(0x7A, "end", flow=Flow.RETURN),
)

del K

_TABLES: Dict[Generation, Mapping[int, OpcodeInfo]] = {
    Generation.U7: U7_OPCODES,
    Generation.U8: U8_OPCODES,
}


def opcode_table(generation: Generation) -> Mapping[int, OpcodeInfo]:
    """Return the opcode table for *generation*."""

    return _TABLES[Generation(generation)]
