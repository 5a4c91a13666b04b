"""Translate Ultima VII opcode streams into pseudo-source statements.

The translator simulates the VM expression stack.  Each instruction yields a
:class:`Translation` holding the statements it completes plus control-flow
metadata for :class:`~ucxt.lifter.cfg.CFGBuilder`::

    {"control": {"type": "cond", "true_target": i, "false_target": j,
                 "condition": "...", "keyword": "if" | "for" | "converse"}}
    {"control": {"type": "jump", "target": i}}
    {"control": {"type": "return"}}

Targets are instruction indices.  Compiled usecode leaves the stack empty
between basic blocks; a function that does not is rejected with
:class:`TranslationError` and rendered as assembly instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set

from ..analysis.function_index import FunctionIndex
from ..exceptions import TranslationError
from ..options import Generation
from ..vm.model import Instruction, UsecodeFunction
from ..vm.opcodes import Flow, OperandKind
from ..vm.symbols import SymbolTable

LOGGER = logging.getLogger(__name__)

__all__ = ["Naming", "Translation", "FunctionTranslator", "translate_function", "quote"]


_BINARY_OPERATORS: Dict[str, str] = {
    "add": "+",
    "sub": "-",
    "div": "/",
    "mul": "*",
    "mod": "%",
    "and": "&&",
    "or": "||",
    "cmpgt": ">",
    "cmplt": "<",
    "cmpge": ">=",
    "cmple": "<=",
    "cmpne": "!=",
    "cmpeq": "==",
    "in": "in",
    "arra": "&",
}

_SILENT = {"initloop", "initloop32", "endconv", "dbgline", "dbgfunc", "dbgfunc32"}


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


@dataclass(frozen=True)
class Naming:
    """Printable names for everything an operand can refer to."""

    functions: FunctionIndex
    symbols: Optional[SymbolTable] = None
    flag_names: Sequence[str] = ()
    intrinsic_names: Mapping[int, str] = field(default_factory=dict)

    @staticmethod
    def local(index: int) -> str:
        return f"var{index:04x}"

    @staticmethod
    def static(raw: int) -> str:
        if raw < 0:
            return f"gstatic{-raw:04d}"
        return f"static{raw:04d}"

    @staticmethod
    def class_var(index: int) -> str:
        return f"clsvar{index:04d}"

    def flag(self, index: int) -> str:
        if 0 <= index < len(self.flag_names) and self.flag_names[index]:
            return self.flag_names[index]
        return f"0x{index:04X}"

    def intrinsic(self, number: int) -> str:
        name = self.intrinsic_names.get(number)
        return name if name else f"UI_{number:02x}"

    def function(self, function_id: int) -> str:
        return self.functions.name_of(function_id)


@dataclass
class Translation:
    instruction_index: int
    lines: List[str] = field(default_factory=list)
    metadata: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class _Expr:
    text: str
    compound: bool = False

    def wrapped(self) -> str:
        return f"({self.text})" if self.compound else self.text


class FunctionTranslator:
    """Stack simulation for a single function."""

    def __init__(self, function: UsecodeFunction, naming: Naming) -> None:
        self._function = function
        self._naming = naming
        self._instructions = function.instructions
        self._index_of: Dict[int, int] = {
            instruction.offset: index for index, instruction in enumerate(self._instructions)
        }
        self._stack: List[_Expr] = []
        self._handlers: Dict[str, Callable[[Instruction, Translation], None]] = {
            "pop": self._pop_local,
            "push true": lambda ins, out: self._push("true"),
            "push false": lambda ins, out: self._push("false"),
            "push itemref": lambda ins, out: self._push("item"),
            "push eventid": lambda ins, out: self._push("event"),
            "push choice": lambda ins, out: self._push("user_choice"),
            "pop eventid": lambda ins, out: out.lines.append(f"event = {self._pop().text};"),
            "not": self._not,
            "pushi": self._push_number,
            "pushi32": self._push_number,
            "pushb": self._push_number,
            "pushs": self._push_string,
            "pushs32": self._push_string,
            "push": lambda ins, out: self._push(self._naming.local(self._raw(ins))),
            "push static": lambda ins, out: self._push(self._naming.static(self._raw(ins))),
            "push clsvar": lambda ins, out: self._push(self._naming.class_var(self._raw(ins))),
            "pop static": self._pop_static,
            "pop clsvar": self._pop_class_var,
            "pushf": self._push_flag,
            "popf": self._pop_flag,
            "pushfvar": self._push_flag_var,
            "popfvar": self._pop_flag_var,
            "arrc": self._array,
            "aidx": self._index_local,
            "aidxs": self._index_static,
            "aidxclsvar": self._index_class_var,
            "setarrayelem": self._set_local_element,
            "setstaticarrayelem": self._set_static_element,
            "setclsvararrayelem": self._set_class_var_element,
            "addsi": self._message_string,
            "addsi32": self._message_string,
            "addsv": lambda ins, out: out.lines.append(f"message({self._naming.local(self._raw(ins))});"),
            "say": lambda ins, out: out.lines.append("say();"),
            "call": self._call,
            "call32": self._call,
            "calle": self._call_on_item,
            "calle32": self._call_on_item,
            "callo": self._call_on_item_value,
            "calli": self._call_intrinsic,
            "callis": self._call_intrinsic,
            "callm": self._call_method,
            "callms": self._call_method,
            "classdel": lambda ins, out: out.lines.append(f"delete {self._pop().text};"),
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def translate(self) -> List[Translation]:
        leaders = self._leaders()
        translations: List[Translation] = []
        for index, instruction in enumerate(self._instructions):
            if instruction.offset in leaders and self._stack:
                raise TranslationError(
                    f"expression stack not empty at 0x{instruction.offset:04x}"
                )
            translation = Translation(instruction_index=index)
            self._translate_one(index, instruction, translation)
            translations.append(translation)
        return translations

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _leaders(self) -> Set[int]:
        leaders: Set[int] = set()
        for instruction in self._instructions:
            target = instruction.jump_target
            if target is not None:
                leaders.add(target)
            if instruction.info.flow is not Flow.NEXT:
                leaders.add(instruction.end)
        return leaders

    def _target_index(self, instruction: Instruction) -> int:
        target = instruction.jump_target
        if target is None or target not in self._index_of:
            raise TranslationError(f"{instruction.mnemonic} at 0x{instruction.offset:04x} has no target")
        return self._index_of[target]

    def _push(self, text: str, compound: bool = False) -> None:
        self._stack.append(_Expr(text, compound))

    def _pop(self) -> _Expr:
        if not self._stack:
            raise TranslationError("expression stack underflow")
        return self._stack.pop()

    def _pop_args(self, count: int) -> List[str]:
        return [self._pop().text for _ in range(count)]

    @staticmethod
    def _raw(instruction: Instruction, position: int = 0) -> int:
        return int(instruction.operands[position].raw)

    def _translate_one(self, index: int, instruction: Instruction, out: Translation) -> None:
        flow = instruction.info.flow
        mnemonic = instruction.mnemonic
        if flow in (Flow.BRANCH, Flow.LOOP, Flow.CONVERSE, Flow.CASE, Flow.JUMP):
            self._control(index, instruction, out)
            return
        if flow in (Flow.RETURN, Flow.ABORT):
            self._exit(index, instruction, out)
            return
        if flow in (Flow.TRY, Flow.DEFAULT_CASE):
            raise TranslationError(f"{mnemonic} blocks are not reconstructed")
        if mnemonic in _SILENT:
            return
        operator = _BINARY_OPERATORS.get(mnemonic)
        if operator is not None:
            right = self._pop()
            left = self._pop()
            self._push(f"{left.wrapped()} {operator} {right.wrapped()}", compound=True)
            return
        handler = self._handlers.get(mnemonic)
        if handler is None:
            raise TranslationError(f"no pseudo-source form for {mnemonic}")
        handler(instruction, out)

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------

    def _control(self, index: int, instruction: Instruction, out: Translation) -> None:
        flow = instruction.info.flow
        target = self._target_index(instruction)
        if flow is Flow.JUMP:
            out.metadata["control"] = {"type": "jump", "target": target}
            return
        control: Dict[str, object] = {
            "type": "cond",
            "true_target": index + 1,
            "false_target": target,
            "keyword": "if",
        }
        if flow is Flow.BRANCH:
            control["condition"] = self._pop().text
        elif flow is Flow.LOOP:
            counter, length, element = (self._naming.local(self._raw(instruction, i)) for i in range(3))
            array_operand = instruction.operands[3]
            if array_operand.kind is OperandKind.STATIC:
                array = self._naming.static(int(array_operand.raw))
            elif array_operand.kind is OperandKind.CLASS_VAR:
                array = self._naming.class_var(int(array_operand.raw))
            else:
                array = self._naming.local(int(array_operand.raw))
            control["keyword"] = "for"
            control["condition"] = f"{element} in {array} with {counter} to {length}"
        elif flow is Flow.CONVERSE:
            control["keyword"] = "converse"
            control["condition"] = ""
        elif flow is Flow.CASE:
            count = self._raw(instruction)
            choices = self._pop_args(count)
            if len(choices) == 1:
                control["condition"] = f"user_choice == {choices[0]}"
            else:
                control["condition"] = f"user_choice in [{', '.join(choices)}]"
        if index + 1 >= len(self._instructions):
            raise TranslationError(f"{instruction.mnemonic} falls off the end of the function")
        out.metadata["control"] = control

    def _exit(self, index: int, instruction: Instruction, out: Translation) -> None:
        mnemonic = instruction.mnemonic
        if mnemonic == "retv":
            out.lines.append(f"return {self._pop().text};")
        elif mnemonic == "retz":
            out.lines.append("return 0;")
        elif mnemonic == "throw":
            out.lines.append(f"throw {self._pop().text};")
        elif mnemonic == "abrt":
            out.lines.append("abort;")
        elif index != len(self._instructions) - 1:
            out.lines.append("return;")
        out.metadata["control"] = {"type": "return"}

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def _push_number(self, instruction: Instruction, out: Translation) -> None:
        self._push(str(instruction.operands[0].value))

    def _push_string(self, instruction: Instruction, out: Translation) -> None:
        self._push(quote(str(instruction.operands[0].value)))

    def _not(self, instruction: Instruction, out: Translation) -> None:
        self._push(f"!{self._pop().wrapped()}")

    def _array(self, instruction: Instruction, out: Translation) -> None:
        elements = self._pop_args(self._raw(instruction))
        self._push(f"[{', '.join(elements)}]")

    def _pop_local(self, instruction: Instruction, out: Translation) -> None:
        out.lines.append(f"{self._naming.local(self._raw(instruction))} = {self._pop().text};")

    def _pop_static(self, instruction: Instruction, out: Translation) -> None:
        out.lines.append(f"{self._naming.static(self._raw(instruction))} = {self._pop().text};")

    def _pop_class_var(self, instruction: Instruction, out: Translation) -> None:
        out.lines.append(f"{self._naming.class_var(self._raw(instruction))} = {self._pop().text};")

    def _push_flag(self, instruction: Instruction, out: Translation) -> None:
        self._push(f"gflags[{self._naming.flag(self._raw(instruction))}]")

    def _pop_flag(self, instruction: Instruction, out: Translation) -> None:
        out.lines.append(f"gflags[{self._naming.flag(self._raw(instruction))}] = {self._pop().text};")

    def _push_flag_var(self, instruction: Instruction, out: Translation) -> None:
        self._push(f"gflags[{self._pop().text}]")

    def _pop_flag_var(self, instruction: Instruction, out: Translation) -> None:
        flag = self._pop().text
        value = self._pop().text
        out.lines.append(f"gflags[{flag}] = {value};")

    def _index_local(self, instruction: Instruction, out: Translation) -> None:
        self._push(f"{self._naming.local(self._raw(instruction))}[{self._pop().text}]")

    def _index_static(self, instruction: Instruction, out: Translation) -> None:
        self._push(f"{self._naming.static(self._raw(instruction))}[{self._pop().text}]")

    def _index_class_var(self, instruction: Instruction, out: Translation) -> None:
        self._push(f"{self._naming.class_var(self._raw(instruction))}[{self._pop().text}]")

    def _set_element(self, name: str, out: Translation) -> None:
        index = self._pop().text
        value = self._pop().text
        out.lines.append(f"{name}[{index}] = {value};")

    def _set_local_element(self, instruction: Instruction, out: Translation) -> None:
        self._set_element(self._naming.local(self._raw(instruction)), out)

    def _set_static_element(self, instruction: Instruction, out: Translation) -> None:
        self._set_element(self._naming.static(self._raw(instruction)), out)

    def _set_class_var_element(self, instruction: Instruction, out: Translation) -> None:
        self._set_element(self._naming.class_var(self._raw(instruction)), out)

    def _message_string(self, instruction: Instruction, out: Translation) -> None:
        out.lines.append(f"message({quote(str(instruction.operands[0].value))});")

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _callee(self, function_id: int):
        info = self._naming.functions.get(function_id)
        if info is None:
            raise TranslationError(f"arity of {self._naming.function(function_id)} is unknown")
        return info

    def _emit_call(self, text: str, returns_value: bool, out: Translation) -> None:
        if returns_value:
            self._push(text)
        else:
            out.lines.append(f"{text};")

    def _call(self, instruction: Instruction, out: Translation) -> None:
        callee = self._callee(int(instruction.operands[0].value))
        args = self._pop_args(callee.num_args)
        self._emit_call(self._naming.functions.call_expression(callee.id, args), callee.returns_value, out)

    def _call_on_item(self, instruction: Instruction, out: Translation) -> None:
        function_id = int(instruction.operands[0].value)
        target = self._pop().wrapped()
        out.lines.append(f"{target}->{self._naming.function(function_id)}();")

    def _call_on_item_value(self, instruction: Instruction, out: Translation) -> None:
        function_id = int(instruction.operands[0].value)
        target = self._pop().wrapped()
        self._push(f"{target}->{self._naming.function(function_id)}()")

    def _call_intrinsic(self, instruction: Instruction, out: Translation) -> None:
        number = self._raw(instruction, 0)
        args = self._pop_args(self._raw(instruction, 1))
        text = f"{self._naming.intrinsic(number)}({', '.join(args)})"
        self._emit_call(text, instruction.mnemonic == "callis", out)

    def _call_method(self, instruction: Instruction, out: Translation) -> None:
        symbols = self._naming.symbols
        method = self._raw(instruction, 0)
        if len(instruction.operands) > 1:
            class_index: Optional[int] = self._raw(instruction, 1)
        else:
            class_index = self._function.class_index
        if symbols is None or class_index is None or not 0 <= class_index < len(symbols.classes):
            raise TranslationError("method call outside a known class")
        methods = symbols.classes[class_index].method_ids
        if not 0 <= method < len(methods):
            raise TranslationError(f"method slot {method} not declared by class {class_index}")
        callee = self._callee(methods[method])
        args = self._pop_args(callee.num_args)
        name = callee.name.rsplit("::", 1)[-1]
        if args:
            text = f"{args[0]}->{name}({', '.join(args[1:])})"
        else:
            text = f"{name}()"
        self._emit_call(text, callee.returns_value, out)


def translate_function(function: UsecodeFunction, naming: Naming, generation: Generation = Generation.U7) -> List[Translation]:
    """Translate *function* or raise :class:`TranslationError`."""

    if Generation(generation) is not Generation.U7:
        raise TranslationError("pseudo-source is only reconstructed for Ultima VII usecode")
    if not function.instructions:
        raise TranslationError("function has no code")
    return FunctionTranslator(function, naming).translate()
