"""Helpers that assemble small usecode images for the tests."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from ucxt.vm.symbols import SYMBOL_TABLE_MAGIC, SymbolKind


class CodeBuilder:
    """Emit Ultima VII opcodes with symbolic jump labels."""

    def __init__(self, *, wide_jumps: bool = False) -> None:
        self.code = bytearray()
        self.labels: Dict[str, int] = {}
        self._fixups: List[Tuple[int, str, int]] = []
        self._wide = wide_jumps

    # raw emission -------------------------------------------------------

    def emit(self, opcode: int, *fields: Tuple[str, int]) -> "CodeBuilder":
        self.code.append(opcode)
        for fmt, value in fields:
            self.code += struct.pack(fmt, value)
        return self

    def label(self, name: str) -> "CodeBuilder":
        self.labels[name] = len(self.code)
        return self

    def _jump(self, opcode: int, label: str, *fields: Tuple[str, int]) -> "CodeBuilder":
        wide = self._wide
        self.emit(opcode | (0x80 if wide else 0), *fields)
        position = len(self.code)
        self.code += b"\0" * (4 if wide else 2)
        self._fixups.append((position, label, 4 if wide else 2))
        return self

    def build(self) -> bytes:
        code = bytearray(self.code)
        for position, label, width in self._fixups:
            relative = self.labels[label] - (position + width)
            code[position : position + width] = struct.pack("<i" if width == 4 else "<h", relative)
        return bytes(code)

    # mnemonics ----------------------------------------------------------

    def pushi(self, value: int) -> "CodeBuilder":
        return self.emit(0x1F, ("<h", value))

    def pushb(self, value: int) -> "CodeBuilder":
        return self.emit(0x44, ("<B", value))

    def push(self, local: int) -> "CodeBuilder":
        return self.emit(0x21, ("<H", local))

    def pop(self, local: int) -> "CodeBuilder":
        return self.emit(0x12, ("<H", local))

    def push_true(self) -> "CodeBuilder":
        return self.emit(0x13)

    def pushs(self, offset: int) -> "CodeBuilder":
        return self.emit(0x1D, ("<H", offset))

    def addsi(self, offset: int) -> "CodeBuilder":
        return self.emit(0x1C, ("<H", offset))

    def say(self) -> "CodeBuilder":
        return self.emit(0x33)

    def binary(self, mnemonic: str) -> "CodeBuilder":
        opcodes = {"add": 0x09, "sub": 0x0A, "cmpgt": 0x16, "cmplt": 0x17, "cmpeq": 0x22, "and": 0x0E}
        return self.emit(opcodes[mnemonic])

    def pushf(self, flag: int) -> "CodeBuilder":
        return self.emit(0x42, ("<H", flag))

    def popf(self, flag: int) -> "CodeBuilder":
        return self.emit(0x43, ("<H", flag))

    def push_static(self, index: int) -> "CodeBuilder":
        return self.emit(0x50, ("<h", index))

    def push_clsvar(self, index: int) -> "CodeBuilder":
        return self.emit(0x54, ("<H", index))

    def call(self, extern_index: int) -> "CodeBuilder":
        return self.emit(0x24, ("<H", extern_index))

    def calli(self, number: int, argc: int) -> "CodeBuilder":
        return self.emit(0x39, ("<H", number), ("<B", argc))

    def callis(self, number: int, argc: int) -> "CodeBuilder":
        return self.emit(0x38, ("<H", number), ("<B", argc))

    def jne(self, label: str) -> "CodeBuilder":
        return self._jump(0x05, label)

    def jmp(self, label: str) -> "CodeBuilder":
        return self._jump(0x06, label)

    def startconv(self, label: str) -> "CodeBuilder":
        return self._jump(0x04, label)

    def cmps(self, count: int, label: str) -> "CodeBuilder":
        return self._jump(0x07, label, ("<H", count))

    def endconv(self) -> "CodeBuilder":
        return self.emit(0x40)

    def initloop(self) -> "CodeBuilder":
        return self.emit(0x2E)

    def loop(self, counter: int, length: int, element: int, array: int, label: str) -> "CodeBuilder":
        return self._jump(0x02, label, ("<H", counter), ("<H", length), ("<H", element), ("<H", array))

    def ret(self) -> "CodeBuilder":
        return self.emit(0x25)

    def retv(self) -> "CodeBuilder":
        return self.emit(0x2D)

    def abrt(self) -> "CodeBuilder":
        return self.emit(0x3F)


def data_segment(*strings: str) -> Tuple[bytes, List[int]]:
    """NUL-terminated strings plus the offset of each."""

    blob = bytearray()
    offsets: List[int] = []
    for text in strings:
        offsets.append(len(blob))
        blob += text.encode("latin-1") + b"\0"
    return bytes(blob), offsets


def u7_record(
    function_id: int,
    code: bytes,
    *,
    data: bytes = b"",
    num_args: int = 0,
    num_locals: int = 0,
    externs: Sequence[int] = (),
    ext32: bool = False,
    size_adjust: int = 0,
) -> bytes:
    """One Ultima VII function record; ``size_adjust`` corrupts the declared size."""

    body = bytearray()
    body += struct.pack("<I" if ext32 else "<H", len(data))
    body += data
    body += struct.pack("<HHH", num_args, num_locals, len(externs))
    for extern in externs:
        body += struct.pack("<H", extern)
    body += code
    size = len(body) + size_adjust
    if ext32:
        if function_id > 0xFFFF:
            header = struct.pack("<HII", 0xFFFE, function_id, size)
        else:
            header = struct.pack("<HHI", 0xFFFF, function_id, size)
    else:
        header = struct.pack("<HH", function_id, size)
    return header + bytes(body)


def u8_record(function_id: int, code: bytes, *, num_args: int = 0, flags: int = 0) -> bytes:
    return struct.pack("<IHHI", function_id, num_args, flags, len(code)) + code


@dataclass
class ClassSpec:
    name: str
    num_vars: int
    methods: List[Tuple[str, int]] = field(default_factory=list)
    inherited: List[int] = field(default_factory=list)

    @property
    def method_table(self) -> List[int]:
        return list(self.inherited) + [value for _, value in self.methods]


def _symbol(name: str, kind: int, value: int) -> bytes:
    return name.encode("latin-1") + b"\0" + struct.pack("<HI", kind, value)


def _scope(symbols: Sequence[bytes], version: int) -> bytes:
    return struct.pack("<II", len(symbols), version) + b"".join(symbols)


def symbol_table(
    functions: Iterable[Tuple[str, int, SymbolKind]] = (),
    classes: Iterable[ClassSpec] = (),
    *,
    version: int = 1,
    global_statics: int = 0,
    shapes: Dict[int, int] | None = None,
) -> bytes:
    """Serialise an embedded symbol table."""

    shapes = shapes or {}
    entries: List[bytes] = []
    for name, value, kind in functions:
        entry = _symbol(name, int(kind), value)
        if kind is SymbolKind.SHAPE_FUN:
            entry += struct.pack("<I", shapes.get(value, value))
        entries.append(entry)
    for index, cls in enumerate(classes):
        methods = [_symbol(name, int(SymbolKind.FUN_DEFINED), value) for name, value in cls.methods]
        entry = _symbol(cls.name, int(SymbolKind.CLASS_SCOPE), index)
        entry += _scope(methods, version)
        entry += struct.pack("<H", len(cls.method_table))
        entry += b"".join(struct.pack("<H", value) for value in cls.method_table)
        entry += struct.pack("<H", cls.num_vars)
        entries.append(entry)
    blob = SYMBOL_TABLE_MAGIC + _scope(entries, version)
    if version >= 1:
        blob += struct.pack("<I", global_statics)
    return blob


def hello_function(function_id: int = 0x401, text: str = "Hello") -> bytes:
    """A function that says one line and returns."""

    data, offsets = data_segment(text)
    code = CodeBuilder().addsi(offsets[0]).say().ret().build()
    return u7_record(function_id, code, data=data)
