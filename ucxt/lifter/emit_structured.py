"""Structured emission helpers that turn a CFG into pseudo-source statements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..exceptions import TranslationError
from .cfg import CFG, BasicBlock, LoopInfo, Terminator
from .translate import Translation

__all__ = [
    "InstructionNode",
    "IfNode",
    "WhileNode",
    "JumpNode",
    "StructuredEmitter",
]

INDENT = "\t"


@dataclass
class InstructionNode:
    """Straight-line statements emitted for a single instruction."""

    instruction_index: int
    lines: List[str]


@dataclass
class IfNode:
    """Structured conditional node."""

    instruction_index: int
    condition: str
    then_branch: List["Statement"] = field(default_factory=list)
    else_branch: List["Statement"] = field(default_factory=list)


@dataclass
class WhileNode:
    """Structured natural loop node.

    ``keyword`` is ``while``, ``for`` or ``converse``; the last one is
    rendered without a condition.
    """

    instruction_index: int
    condition: str
    keyword: str = "while"
    body: List["Statement"] = field(default_factory=list)
    loop: Optional[LoopInfo] = None


@dataclass
class JumpNode:
    """``break`` or ``continue`` out of the innermost loop."""

    keyword: str


Statement = InstructionNode | IfNode | WhileNode | JumpNode


@dataclass(frozen=True)
class _LoopFrame:
    header: int
    exit: Optional[int]


class StructuredEmitter:
    """Emit structured statements from a CFG annotated with metadata.

    Control flow that does not reduce to nested ``if`` and loop constructs
    raises :class:`TranslationError`; callers fall back to assembly.
    """

    def __init__(
        self,
        cfg: CFG,
        translations: Sequence[Translation],
    ) -> None:
        self._cfg = cfg
        self._translations = translations
        self._ast: List[Statement] = []
        self._visited_blocks: Set[int] = set()
        self._emitted_loops: Set[int] = set()
        self._loop_stack: List[_LoopFrame] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def ast(self) -> List[Statement]:
        return self._ast

    def emit(self) -> List[str]:
        for loop in self._cfg.loops.values():
            if not loop.reducible:
                raise TranslationError(f"irreducible loop at block {loop.header}")
        self._ast = self._build_block(self._cfg.entry, exit_block=None)
        missing = self._cfg.reachable() - self._visited_blocks
        if missing:
            raise TranslationError(
                "unstructured control flow reaches blocks " + ", ".join(str(b) for b in sorted(missing))
            )
        self._ast = self._normalise(self._ast)
        lines: List[str] = []
        self._render_statements(self._ast, indent=0, lines=lines)
        return lines

    # ------------------------------------------------------------------
    # AST construction
    # ------------------------------------------------------------------

    def _build_block(
        self,
        start_block: Optional[int],
        *,
        exit_block: Optional[int],
        allowed_blocks: Optional[Iterable[int]] = None,
    ) -> List[Statement]:
        statements: List[Statement] = []
        allowed = set(allowed_blocks) if allowed_blocks is not None else None
        block_id = start_block
        while block_id is not None and block_id != exit_block:
            frame = self._loop_stack[-1] if self._loop_stack else None
            if frame is not None and block_id == frame.exit:
                statements.append(JumpNode("break"))
                break
            if frame is not None and block_id == frame.header:
                statements.append(JumpNode("continue"))
                break

            loop_info = self._cfg.loops.get(block_id)
            if loop_info and block_id not in self._emitted_loops:
                loop_stmt, next_block = self._build_loop(loop_info, allowed)
                statements.append(loop_stmt)
                block_id = next_block
                continue

            if allowed is not None and block_id not in allowed:
                if frame is not None and self._only_jumps_to(block_id, frame.exit):
                    self._visited_blocks.add(block_id)
                    statements.append(JumpNode("break"))
                    break
                raise TranslationError(f"jump out of loop body to block {block_id}")
            if block_id in self._visited_blocks:
                raise TranslationError(f"block {block_id} is shared between branches")

            self._visited_blocks.add(block_id)
            block = self._cfg.block(block_id)
            statements.extend(self._instruction_nodes(block))
            terminator = block.terminator
            if terminator is None or terminator.kind == "fallthrough":
                block_id = block.linear_successor
                continue
            if terminator.kind == "cond":
                join = self._join_for(terminator, frame, allowed)
                statements.append(self._build_conditional(terminator, join, allowed))
                block_id = join
                continue
            if terminator.kind == "jump":
                if terminator.target is None:
                    raise TranslationError(f"jump without target in block {block_id}")
                block_id = terminator.target
                continue
            if terminator.kind == "return":
                break
        return statements

    def _build_loop(
        self,
        loop: LoopInfo,
        allowed: Optional[Set[int]],
    ) -> Tuple[WhileNode, Optional[int]]:
        header_block = self._cfg.block(loop.header)
        self._emitted_loops.add(loop.header)
        if header_block.id in self._visited_blocks:
            raise TranslationError(f"loop header {header_block.id} reached twice")
        self._visited_blocks.add(header_block.id)
        if self._instruction_nodes(header_block):
            raise TranslationError(f"loop header {header_block.id} has side effects")
        terminator = header_block.terminator
        if terminator is None or terminator.kind != "cond":
            raise TranslationError(f"loop at block {header_block.id} has no exit test")
        true_target = terminator.true_target
        false_target = terminator.false_target
        condition = self._condition_text(terminator) or ""
        if true_target in loop.body and false_target not in loop.body:
            body_entry, exit_target = true_target, false_target
        elif false_target in loop.body and true_target not in loop.body:
            if terminator.keyword != "if":
                raise TranslationError(f"{terminator.keyword} loop at block {header_block.id} is inverted")
            body_entry, exit_target = false_target, true_target
            condition = self._negate_condition(condition)
        else:
            raise TranslationError(f"loop at block {header_block.id} has no single exit")
        keyword = "while" if terminator.keyword == "if" else terminator.keyword
        inner_allowed = set(loop.body) if allowed is None else (set(loop.body) & allowed)
        self._loop_stack.append(_LoopFrame(header=loop.header, exit=exit_target))
        try:
            body = self._build_block(
                body_entry,
                exit_block=loop.header,
                allowed_blocks=inner_allowed,
            )
        finally:
            self._loop_stack.pop()
        while_node = WhileNode(
            instruction_index=terminator.instruction_index,
            condition=condition,
            keyword=keyword,
            body=body,
            loop=loop,
        )
        return while_node, exit_target

    @staticmethod
    def _join_for(
        terminator: Terminator,
        frame: Optional[_LoopFrame],
        allowed: Optional[Set[int]],
    ) -> Optional[int]:
        join = terminator.join
        if frame is not None and allowed is not None and join is not None and join not in allowed:
            # Branches leaving the loop end in break; the rest rejoin at the header.
            return frame.header
        return join

    def _build_conditional(
        self,
        terminator: Terminator,
        join: Optional[int],
        allowed: Optional[Set[int]],
    ) -> IfNode:
        if terminator.keyword != "if":
            raise TranslationError(f"{terminator.keyword} test outside a loop header")
        condition = self._condition_text(terminator) or "true"
        then_branch = self._build_block(
            terminator.true_target,
            exit_block=join,
            allowed_blocks=allowed,
        )
        else_branch = self._build_block(
            terminator.false_target,
            exit_block=join,
            allowed_blocks=allowed,
        )
        return IfNode(
            instruction_index=terminator.instruction_index,
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _instruction_nodes(self, block: BasicBlock) -> List[InstructionNode]:
        statements: List[InstructionNode] = []
        for instr_index in block.instructions:
            node = self._instruction_node(instr_index)
            if node.lines:
                statements.append(node)
        return statements

    def _instruction_node(self, instruction_index: int) -> InstructionNode:
        lines = self._translations[instruction_index].lines
        return InstructionNode(instruction_index=instruction_index, lines=[str(line) for line in lines])

    def _only_jumps_to(self, block_id: int, target: Optional[int]) -> bool:
        """True for an empty block whose only effect is reaching ``target``."""

        if target is None:
            return False
        block = self._cfg.block(block_id)
        if self._instruction_nodes(block):
            return False
        terminator = block.terminator
        if terminator is None or terminator.kind == "fallthrough":
            return block.linear_successor == target
        return terminator.kind == "jump" and terminator.target == target

    @staticmethod
    def _condition_text(terminator: Optional[Terminator]) -> Optional[str]:
        if not terminator:
            return None
        return terminator.condition

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------

    def _render_statements(
        self, statements: List[Statement], *, indent: int, lines: List[str]
    ) -> None:
        for statement in statements:
            if isinstance(statement, InstructionNode):
                for fragment in statement.lines:
                    lines.append(INDENT * indent + fragment)
            elif isinstance(statement, IfNode):
                self._render_if(statement, indent, lines)
            elif isinstance(statement, WhileNode):
                self._render_while(statement, indent, lines)
            elif isinstance(statement, JumpNode):
                lines.append(INDENT * indent + f"{statement.keyword};")

    def _render_if(self, node: IfNode, indent: int, lines: List[str]) -> None:
        pad = INDENT * indent
        lines.append(f"{pad}if ({node.condition}) {{")
        self._render_statements(node.then_branch, indent=indent + 1, lines=lines)
        else_branch = list(node.else_branch)
        while len(else_branch) == 1 and isinstance(else_branch[0], IfNode):
            chained = else_branch[0]
            lines.append(f"{pad}}} else if ({chained.condition}) {{")
            self._render_statements(chained.then_branch, indent=indent + 1, lines=lines)
            else_branch = list(chained.else_branch)
        if else_branch:
            lines.append(f"{pad}}} else {{")
            self._render_statements(else_branch, indent=indent + 1, lines=lines)
        lines.append(f"{pad}}}")

    def _render_while(self, node: WhileNode, indent: int, lines: List[str]) -> None:
        pad = INDENT * indent
        if node.keyword == "converse":
            lines.append(f"{pad}converse {{")
        else:
            lines.append(f"{pad}{node.keyword} ({node.condition}) {{")
        self._render_statements(node.body, indent=indent + 1, lines=lines)
        lines.append(f"{pad}}}")

    # ------------------------------------------------------------------
    # Misc helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _wrapped_in_parens(text: str) -> bool:
        if not (text.startswith("(") and text.endswith(")")):
            return False
        depth = 0
        in_string = False
        previous = ""
        for position, char in enumerate(text):
            if char == '"' and previous != "\\":
                in_string = not in_string
            elif not in_string:
                if char == "(":
                    depth += 1
                elif char == ")":
                    depth -= 1
                    if depth == 0 and position != len(text) - 1:
                        return False
            previous = char
        return depth == 0

    @classmethod
    def _negate_condition(cls, condition: str) -> str:
        stripped = condition.strip()
        if stripped.startswith("!") and cls._wrapped_in_parens(stripped[1:]):
            return stripped[2:-1]
        if cls._wrapped_in_parens(stripped):
            return f"!{stripped}"
        return f"!({stripped})"

    # ------------------------------------------------------------------
    # Normalisation helpers
    # ------------------------------------------------------------------

    def _normalise(self, statements: List[Statement]) -> List[Statement]:
        normalised: List[Statement] = []
        for statement in statements:
            if isinstance(statement, IfNode):
                then_branch = self._normalise(statement.then_branch)
                else_branch = self._normalise(statement.else_branch)
                condition = statement.condition
                if not then_branch and else_branch:
                    condition = self._negate_condition(condition)
                    then_branch, else_branch = else_branch, []
                statement = IfNode(
                    instruction_index=statement.instruction_index,
                    condition=condition,
                    then_branch=then_branch,
                    else_branch=else_branch,
                )
            elif isinstance(statement, WhileNode):
                statement = WhileNode(
                    instruction_index=statement.instruction_index,
                    condition=statement.condition,
                    keyword=statement.keyword,
                    body=self._normalise(statement.body),
                    loop=statement.loop,
                )
            normalised.append(statement)
        return normalised
