"""Function record decoders for both usecode generations.

Records are decoded one at a time until the cursor reaches the end of the
image.  Operands are read by a single table-driven routine
(:func:`read_operands`); only record headers differ between generations.

Ultima VII records::

    u16 id           0xFFFF: u16 id, u32 size (ext32)
                     0xFFFE: u32 id, u32 size (ext32)
                     other : u16 size
    body[size]:
        u16/u32 data size, data (NUL terminated strings)
        u16 num_args, u16 num_locals, u16 num_externs, u16 externs[]
        code (rest of the body)

Ultima VIII records::

    u32 id, u16 num_args, u16 flags, u32 code size, code

Jump operands are relative to the end of their instruction and are stored
as absolute code offsets.
"""

from __future__ import annotations

import dataclasses
import logging
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..exceptions import MalformedFunction, TruncatedInput, UnknownSymbolTableFormat
from ..io.cursor import ByteCursor
from ..options import Generation, Options
from . import symbols as symbol_table
from .model import DecodeDiagnostic, Instruction, Operand, UsecodeFunction, UsecodeImage
from .opcodes import Flow, OpcodeInfo, OperandKind, opcode_table
from .symbols import SymbolTable

LOGGER = logging.getLogger(__name__)

__all__ = [
    "U8_FLAG_RETURNS_VALUE",
    "U8_FLAG_ABORTS",
    "read_operands",
    "decode_instructions",
    "decode_u7",
    "decode_u8",
    "DECODERS",
    "load_image",
]

U8_FLAG_RETURNS_VALUE = 0x0001
U8_FLAG_ABORTS = 0x0002

_EXT32_U16_ID = 0xFFFF
_EXT32_U32_ID = 0xFFFE

_FIXED_READERS: Dict[OperandKind, Callable[[ByteCursor], int]] = {
    OperandKind.BYTE: ByteCursor.u8,
    OperandKind.IMMEDIATE: ByteCursor.u16,
    OperandKind.SIMMEDIATE: ByteCursor.s16,
    OperandKind.IMMEDIATE32: ByteCursor.s32,
    OperandKind.DATA_STRING: ByteCursor.u16,
    OperandKind.DATA_STRING32: ByteCursor.u32,
    OperandKind.JUMP: ByteCursor.s16,
    OperandKind.JUMP32: ByteCursor.s32,
    OperandKind.LOCAL: ByteCursor.u16,
    OperandKind.LOCAL8: ByteCursor.s8,
    OperandKind.STATIC: ByteCursor.s16,
    OperandKind.CLASS_VAR: ByteCursor.u16,
    OperandKind.FLAG: ByteCursor.u16,
    OperandKind.EXTERN: ByteCursor.u16,
    OperandKind.FUNCTION: ByteCursor.u16,
    OperandKind.FUNCTION32: ByteCursor.u32,
    OperandKind.INTRINSIC: ByteCursor.u16,
    OperandKind.COUNT: ByteCursor.u16,
    OperandKind.COUNT8: ByteCursor.u8,
    OperandKind.CLASS: ByteCursor.u16,
    OperandKind.METHOD: ByteCursor.u16,
    OperandKind.LINE: ByteCursor.u16,
}


class _FunctionContext:
    """What operand resolution needs to know about the enclosing record."""

    def __init__(
        self,
        function_id: int,
        code_size: int,
        externs: Sequence[int] = (),
        data: Mapping[int, str] | None = None,
    ) -> None:
        self.function_id = function_id
        self.code_size = code_size
        self.externs = tuple(externs)
        self.data = data or {}

    def string(self, offset: int) -> str:
        if offset in self.data:
            return self.data[offset]
        for start, text in self.data.items():
            if start < offset <= start + len(text):
                return text[offset - start :]
        return ""


def read_operands(
    cursor: ByteCursor,
    info: OpcodeInfo,
    context: _FunctionContext,
    instruction_offset: int,
) -> Tuple[Operand, ...]:
    """Read the operands of one instruction following ``info.operands``."""

    raw_values: List[Tuple[OperandKind, int, Optional[int], Optional[str]]] = []
    for kind in info.operands:
        extra: Optional[int] = None
        text: Optional[str] = None
        if kind is OperandKind.INLINE_STRING:
            text = cursor.lstring()
            raw = len(text)
        elif kind is OperandKind.GLOBAL:
            raw = cursor.u16()
            extra = cursor.u8()
        elif kind is OperandKind.CLASS_FUNCTION:
            class_id = cursor.u16()
            raw = cursor.u16()
            extra = class_id
        else:
            raw = _FIXED_READERS[kind](cursor)
        raw_values.append((kind, raw, extra, text))

    end = cursor.offset
    operands: List[Operand] = []
    for kind, raw, extra, text in raw_values:
        value: int | str = raw
        if kind.is_jump:
            value = end + raw
            if not 0 <= value < context.code_size:
                raise MalformedFunction(
                    context.function_id,
                    f"{info.mnemonic} jumps outside the function (to 0x{value:x})",
                    instruction_offset,
                )
        elif kind is OperandKind.EXTERN:
            if raw >= len(context.externs):
                raise MalformedFunction(
                    context.function_id,
                    f"extern index {raw} out of range ({len(context.externs)} externs)",
                    instruction_offset,
                )
            value = context.externs[raw]
        elif kind in (OperandKind.DATA_STRING, OperandKind.DATA_STRING32):
            value = context.string(raw)
        elif kind is OperandKind.INLINE_STRING:
            value = text or ""
        elif kind is OperandKind.CLASS_FUNCTION:
            value = ((extra or 0) << 16) | raw
        operands.append(Operand(kind=kind, value=value, raw=raw, extra=extra))
    return tuple(operands)


def decode_instructions(
    code: ByteCursor,
    table: Mapping[int, OpcodeInfo],
    context: _FunctionContext,
) -> Tuple[Instruction, ...]:
    """Decode an opcode stream that must end exactly on the cursor's end."""

    instructions: List[Instruction] = []
    while not code.at_end():
        start = code.offset
        opcode = code.u8()
        info = table.get(opcode)
        if info is None:
            raise MalformedFunction(context.function_id, f"unknown opcode 0x{opcode:02x}", start)
        try:
            operands = read_operands(code, info, context, start)
        except TruncatedInput as exc:
            raise MalformedFunction(
                context.function_id,
                f"{info.mnemonic} operands cross the end of the code",
                start,
            ) from exc
        end = code.offset
        code.seek(start)
        raw = code.read(end - start)
        instructions.append(
            Instruction(
                opcode=opcode,
                offset=start,
                size=end - start,
                raw=raw,
                operands=operands,
                info=info,
            )
        )
    boundaries = {instruction.offset for instruction in instructions}
    for instruction in instructions:
        target = instruction.jump_target
        if target is not None and target not in boundaries:
            raise MalformedFunction(
                context.function_id,
                f"jump into the middle of an instruction (0x{target:04x})",
                instruction.offset,
            )
    return tuple(instructions)


def _parse_data_segment(segment: ByteCursor) -> Mapping[int, str]:
    strings: Dict[int, str] = {}
    while not segment.at_end():
        start = segment.offset
        try:
            text = segment.cstring()
        except TruncatedInput:
            text = segment.read(segment.remaining).decode("latin-1")
        strings[start] = text
    return MappingProxyType(strings)


def _debug_name(instructions: Sequence[Instruction]) -> Optional[str]:
    for instruction in instructions:
        if instruction.mnemonic.startswith("dbgfunc") and instruction.operands:
            name = instruction.operands[0].value
            if isinstance(name, str) and name:
                return name
    return None


def _class_index(function_id: int, symbols: Optional[SymbolTable]) -> Optional[int]:
    if symbols is None:
        return None
    return symbols.class_of_method(function_id)


def decode_u7(cursor: ByteCursor, symbols: Optional[SymbolTable] = None) -> UsecodeFunction:
    """Decode one Ultima VII function record at the cursor.

    A header that cannot be read, or a record that extends beyond the image,
    raises :class:`TruncatedInput`.  Any problem inside the record raises
    :class:`MalformedFunction` with the cursor already past the record.
    """

    record_start = cursor.offset
    function_id = cursor.u16()
    ext32 = False
    if function_id == _EXT32_U16_ID:
        ext32 = True
        function_id = cursor.u16()
        size = cursor.u32()
    elif function_id == _EXT32_U32_ID:
        ext32 = True
        function_id = cursor.u32()
        size = cursor.u32()
    else:
        size = cursor.u16()
    header_size = cursor.offset - record_start
    body = cursor.sub(size)

    try:
        data_size = body.u32() if ext32 else body.u16()
        data = _parse_data_segment(body.sub(data_size))
        num_args = body.u16()
        num_locals = body.u16()
        num_externs = body.u16()
        externs = tuple(body.u16() for _ in range(num_externs))
    except TruncatedInput as exc:
        raise MalformedFunction(function_id, "function header exceeds the declared size") from exc

    code_size = body.remaining
    context = _FunctionContext(function_id, code_size, externs, data)
    instructions = decode_instructions(body.sub(code_size), opcode_table(Generation.U7), context)
    has_return = any(instruction.info.is_return for instruction in instructions)
    returns_value = any(instruction.mnemonic in ("retv", "retz") for instruction in instructions)
    aborts = any(instruction.info.flow is Flow.ABORT for instruction in instructions)

    function = UsecodeFunction(
        id=function_id,
        num_args=num_args,
        returns_value=returns_value,
        always_aborts=aborts and not has_return,
        class_index=_class_index(function_id, symbols),
        uses_ext32_encoding=ext32,
        instructions=instructions,
        raw_offset=record_start,
        size=header_size + size,
        data_size=data_size,
        code_size=code_size,
        num_locals=num_locals,
        externs=externs,
        data=data,
        debug_name=_debug_name(instructions),
    )
    LOGGER.debug(
        "Decoded function 0x%04x: %d instructions, %d bytes of code",
        function_id,
        len(instructions),
        code_size,
    )
    return function


def decode_u8(cursor: ByteCursor, symbols: Optional[SymbolTable] = None) -> UsecodeFunction:
    """Decode one Ultima VIII function record at the cursor."""

    record_start = cursor.offset
    function_id = cursor.u32()
    num_args = cursor.u16()
    flags = cursor.u16()
    code_size = cursor.u32()
    code = cursor.sub(code_size)

    context = _FunctionContext(function_id, code_size)
    instructions = decode_instructions(code, opcode_table(Generation.U8), context)
    function = UsecodeFunction(
        id=function_id,
        num_args=num_args,
        returns_value=bool(flags & U8_FLAG_RETURNS_VALUE),
        always_aborts=bool(flags & U8_FLAG_ABORTS),
        class_index=None,
        uses_ext32_encoding=True,
        instructions=instructions,
        raw_offset=record_start,
        size=cursor.offset - record_start,
        code_size=code_size,
    )
    LOGGER.debug("Decoded U8 function 0x%08x: %d instructions", function_id, len(instructions))
    return function


DECODERS: Dict[Generation, Callable[[ByteCursor, Optional[SymbolTable]], UsecodeFunction]] = {
    Generation.U7: decode_u7,
    Generation.U8: decode_u8,
}


def _load_symbols(
    cursor: ByteCursor,
    diagnostics: List[DecodeDiagnostic],
) -> Tuple[Optional[SymbolTable], bool]:
    """Load the symbol table; the flag says whether decoding may continue."""

    try:
        return symbol_table.load(cursor), True
    except UnknownSymbolTableFormat as exc:
        if exc.resume_offset is None:
            LOGGER.error("Symbol table cannot be skipped: %s", exc.reason)
            diagnostics.append(DecodeDiagnostic("error", str(exc), cursor.offset))
            return None, False
        LOGGER.warning("Ignoring symbol table: %s", exc.reason)
        diagnostics.append(DecodeDiagnostic("warning", str(exc), 0))
        cursor.seek(exc.resume_offset)
        return None, True
    except TruncatedInput as exc:
        LOGGER.error("Symbol table is truncated: %s", exc)
        diagnostics.append(DecodeDiagnostic("error", f"symbol table: {exc}", exc.offset))
        return None, False


def load_image(data: bytes, options: Options) -> UsecodeImage:
    """Decode a complete usecode image.

    Records are decoded until the end of the buffer.  Malformed records are
    skipped, a truncated record stops decoding; both leave a diagnostic and
    keep every function decoded before them.  The ``force_ext32`` option is
    applied only after a record has been decoded.
    """

    generation = options.generation
    cursor = ByteCursor(data)
    diagnostics: List[DecodeDiagnostic] = []
    symbols: Optional[SymbolTable] = None
    can_continue = True
    if generation is Generation.U7 and symbol_table.detect(data):
        LOGGER.info("Loading symbol table")
        symbols, can_continue = _load_symbols(cursor, diagnostics)

    decode = DECODERS[generation]
    functions: List[UsecodeFunction] = []
    seen: Dict[int, int] = {}
    while can_continue and not cursor.at_end():
        record_start = cursor.offset
        try:
            function = decode(cursor, symbols)
        except MalformedFunction as exc:
            LOGGER.warning("Skipping record at 0x%x: %s", record_start, exc)
            diagnostics.append(DecodeDiagnostic("error", exc.reason, record_start, exc.function_id))
            continue
        except TruncatedInput as exc:
            LOGGER.error("Stopping at record 0x%x: %s", record_start, exc)
            diagnostics.append(DecodeDiagnostic("fatal", str(exc), record_start))
            break
        if options.force_ext32 and not function.uses_ext32_encoding:
            function = dataclasses.replace(function, uses_ext32_encoding=True)
        if function.id in seen:
            diagnostics.append(
                DecodeDiagnostic(
                    "warning",
                    f"duplicate function id, first defined at 0x{seen[function.id]:x}",
                    record_start,
                    function.id,
                )
            )
        else:
            seen[function.id] = record_start
        functions.append(function)

    LOGGER.info("Decoded %d functions (%d diagnostics)", len(functions), len(diagnostics))
    return UsecodeImage(
        generation=generation,
        functions=tuple(functions),
        symbols=symbols,
        diagnostics=tuple(diagnostics),
        size=len(data),
    )
