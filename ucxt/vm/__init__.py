"""Usecode image model, opcode tables and decoders."""

from .decoder import DECODERS, decode_u7, decode_u8, load_image
from .model import DecodeDiagnostic, Instruction, Operand, UsecodeFunction, UsecodeImage
from .opcodes import FlagAccess, Flow, OpcodeInfo, OperandKind, opcode_table
from .symbols import ClassSymbol, FunctionSymbol, SymbolKind, SymbolTable

__all__ = [
    "ClassSymbol",
    "DECODERS",
    "DecodeDiagnostic",
    "FlagAccess",
    "Flow",
    "FunctionSymbol",
    "Instruction",
    "OpcodeInfo",
    "Operand",
    "OperandKind",
    "SymbolKind",
    "SymbolTable",
    "UsecodeFunction",
    "UsecodeImage",
    "decode_u7",
    "decode_u8",
    "load_image",
    "opcode_table",
]
