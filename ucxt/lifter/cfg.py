"""Control-flow graph utilities for the structured lifter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .translate import Translation

__all__ = [
    "Terminator",
    "BasicBlock",
    "LoopInfo",
    "CFG",
    "CFGBuilder",
]


@dataclass
class Terminator:
    """Describes the terminating control-flow behaviour of a basic block."""

    kind: str
    instruction_index: int
    true_target: Optional[int] = None
    false_target: Optional[int] = None
    target: Optional[int] = None
    join: Optional[int] = None
    loop: Optional["LoopInfo"] = None
    condition: Optional[str] = None
    keyword: str = "if"


@dataclass
class BasicBlock:
    """A basic block in the reconstructed control-flow graph."""

    id: int
    start: int
    end: int
    instructions: List[int]
    successors: List[int] = field(default_factory=list)
    predecessors: Set[int] = field(default_factory=set)
    terminator: Optional[Terminator] = None
    linear_successor: Optional[int] = None
    dominators: Set[int] = field(default_factory=set)
    postdominators: Set[int] = field(default_factory=set)
    edge_kinds: Dict[int, str] = field(default_factory=dict)


@dataclass
class LoopInfo:
    """Metadata describing a natural loop discovered in the CFG."""

    header: int
    body: Set[int] = field(default_factory=set)
    latches: Set[int] = field(default_factory=set)
    exits: Set[int] = field(default_factory=set)
    reducible: bool = True
    back_edges: Set[Tuple[int, int]] = field(default_factory=set)

    def include_body(self, nodes: Iterable[int]) -> None:
        for node in nodes:
            self.body.add(node)

    def add_back_edge(self, tail: int, head: int) -> None:
        self.back_edges.add((tail, head))
        self.latches.add(tail)


@dataclass
class CFG:
    """Control-flow graph of one function."""

    blocks: List[BasicBlock]
    entry: int
    block_for_instruction: Dict[int, int]
    loops: Dict[int, LoopInfo]

    def block(self, block_id: int) -> BasicBlock:
        return self.blocks[block_id]

    def reachable(self) -> Set[int]:
        if not self.blocks:
            return set()
        seen: Set[int] = {self.entry}
        worklist = [self.entry]
        while worklist:
            node = worklist.pop()
            for succ in self.blocks[node].successors:
                if succ not in seen:
                    seen.add(succ)
                    worklist.append(succ)
        return seen


class CFGBuilder:
    """Constructs a CFG with dominator, postdominator, and loop metadata.

    ``translations`` holds one :class:`Translation` per instruction; its
    ``metadata["control"]`` record decides how the block ends.
    """

    def __init__(self, translations: Sequence[Translation]) -> None:
        self._translations = translations

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self) -> CFG:
        block_starts = self._collect_block_starts()
        blocks, block_for_instruction = self._create_blocks(block_starts)
        self._link_successors(blocks, block_for_instruction)
        self._compute_dominators(blocks)
        self._compute_postdominators(blocks)
        loops = self._discover_loops(blocks)
        self._attach_loop_metadata(blocks, loops)
        self._compute_join_points(blocks)
        self._classify_edges(blocks)
        return CFG(
            blocks=blocks,
            entry=0,
            block_for_instruction=block_for_instruction,
            loops=loops,
        )

    # ------------------------------------------------------------------
    # Block construction helpers
    # ------------------------------------------------------------------

    def _control_at(self, index: int) -> Optional[Mapping[str, object]]:
        control = self._translations[index].metadata.get("control")
        return control if isinstance(control, Mapping) else None

    def _collect_block_starts(self) -> List[int]:
        count = len(self._translations)
        block_starts: Set[int] = {0}
        for index in range(count):
            control = self._control_at(index)
            if control is None:
                continue
            ctype = str(control.get("type") or "").lower()
            if ctype == "cond":
                for key in ("true_target", "false_target"):
                    target = control.get(key)
                    if isinstance(target, int):
                        block_starts.add(target)
            elif ctype == "jump":
                target = control.get("target")
                if isinstance(target, int):
                    block_starts.add(target)
            if index + 1 < count:
                block_starts.add(index + 1)
        return sorted(i for i in block_starts if 0 <= i < count)

    def _create_blocks(
        self, block_starts: Iterable[int]
    ) -> Tuple[List[BasicBlock], Dict[int, int]]:
        block_for_instruction: Dict[int, int] = {}
        starts = list(block_starts)
        blocks: List[BasicBlock] = []
        for block_id, start in enumerate(starts):
            end = starts[block_id + 1] - 1 if block_id + 1 < len(starts) else len(self._translations) - 1
            instructions = list(range(start, end + 1))
            for idx in instructions:
                block_for_instruction[idx] = block_id
            block = BasicBlock(
                id=block_id,
                start=start,
                end=end,
                instructions=instructions,
            )
            if block_id + 1 < len(starts):
                block.linear_successor = block_id + 1
            blocks.append(block)
        return blocks, block_for_instruction

    def _link_successors(
        self, blocks: List[BasicBlock], block_for_instruction: Mapping[int, int]
    ) -> None:
        for block in blocks:
            terminator = self._terminator_for_block(block, block_for_instruction)
            block.terminator = terminator
            if terminator.kind == "cond":
                for target in (terminator.true_target, terminator.false_target):
                    if isinstance(target, int) and target not in block.successors:
                        block.successors.append(target)
            elif terminator.kind == "jump":
                if isinstance(terminator.target, int):
                    block.successors.append(terminator.target)
            elif terminator.kind == "fallthrough":
                if block.linear_successor is not None:
                    block.successors.append(block.linear_successor)
            for succ in block.successors:
                blocks[succ].predecessors.add(block.id)

    def _terminator_for_block(
        self, block: BasicBlock, block_for_instruction: Mapping[int, int]
    ) -> Terminator:
        last_index = block.end
        control = self._control_at(last_index)
        if control is None:
            return Terminator(kind="fallthrough", instruction_index=last_index)
        ctype = str(control.get("type") or "").lower()
        if ctype == "cond":
            condition = control.get("condition")
            return Terminator(
                kind="cond",
                instruction_index=last_index,
                true_target=self._target_to_block(control.get("true_target"), block_for_instruction),
                false_target=self._target_to_block(control.get("false_target"), block_for_instruction),
                condition=str(condition) if condition is not None else None,
                keyword=str(control.get("keyword") or "if"),
            )
        if ctype == "jump":
            return Terminator(
                kind="jump",
                instruction_index=last_index,
                target=self._target_to_block(control.get("target"), block_for_instruction),
            )
        if ctype == "return":
            return Terminator(kind="return", instruction_index=last_index)
        return Terminator(kind="fallthrough", instruction_index=last_index)

    def _target_to_block(
        self, target: object, block_for_instruction: Mapping[int, int]
    ) -> Optional[int]:
        if not isinstance(target, int):
            return None
        if target < 0 or target >= len(self._translations):
            return None
        return block_for_instruction.get(target)

    # ------------------------------------------------------------------
    # Dominator and postdominator computation
    # ------------------------------------------------------------------

    def _compute_dominators(self, blocks: List[BasicBlock]) -> None:
        num_blocks = len(blocks)
        if num_blocks == 0:
            return
        for block in blocks:
            block.dominators = set(range(num_blocks))
        entry = blocks[0]
        entry.dominators = {entry.id}
        changed = True
        while changed:
            changed = False
            for block in blocks[1:]:
                if not block.predecessors:
                    new_dom = {block.id}
                else:
                    intersection = set(range(num_blocks))
                    for pred in block.predecessors:
                        intersection &= blocks[pred].dominators
                    new_dom = {block.id} | intersection
                if new_dom != block.dominators:
                    block.dominators = new_dom
                    changed = True

    def _compute_postdominators(self, blocks: List[BasicBlock]) -> None:
        num_blocks = len(blocks)
        if num_blocks == 0:
            return
        exits = [block.id for block in blocks if not block.successors]
        for block in blocks:
            block.postdominators = set(range(num_blocks))
        if not exits:
            exits = [blocks[-1].id]
        # Only the last exit closes the function; earlier returns and aborts
        # are sinks that never reach a merge point and constrain nothing.
        final_exit = max(exits)
        blocks[final_exit].postdominators = {final_exit}
        changed = True
        order = list(reversed(blocks))
        while changed:
            changed = False
            for block in order:
                if not block.successors:
                    continue
                intersection = set(range(num_blocks))
                for succ in block.successors:
                    intersection &= blocks[succ].postdominators
                new_postdom = {block.id} | intersection
                if new_postdom != block.postdominators:
                    block.postdominators = new_postdom
                    changed = True

    # ------------------------------------------------------------------
    # Loop discovery and edge classification
    # ------------------------------------------------------------------

    def _discover_loops(self, blocks: List[BasicBlock]) -> Dict[int, LoopInfo]:
        loops: Dict[int, LoopInfo] = {}
        for block in blocks:
            for succ in block.successors:
                if succ in block.dominators:
                    loop = loops.setdefault(succ, LoopInfo(header=succ))
                    loop.add_back_edge(block.id, succ)
                    loop.include_body(self._collect_natural_loop(blocks, succ, block.id))
        for loop in loops.values():
            loop.body.add(loop.header)
            for node in list(loop.body):
                if loop.header not in blocks[node].dominators:
                    loop.reducible = False
                for succ in blocks[node].successors:
                    if succ not in loop.body:
                        loop.exits.add(succ)
        return loops

    def _collect_natural_loop(
        self, blocks: Sequence[BasicBlock], header: int, latch: int
    ) -> Set[int]:
        body: Set[int] = {header, latch}
        worklist = [latch]
        while worklist:
            node = worklist.pop()
            if node == header:
                continue
            for pred in blocks[node].predecessors:
                if pred not in body:
                    body.add(pred)
                    worklist.append(pred)
        return body

    def _attach_loop_metadata(
        self, blocks: List[BasicBlock], loops: Mapping[int, LoopInfo]
    ) -> None:
        for header, loop in loops.items():
            terminator = blocks[header].terminator
            if terminator and terminator.kind == "cond":
                terminator.loop = loop

    @staticmethod
    def _reachable_from(blocks: Sequence[BasicBlock], start: int) -> Set[int]:
        seen: Set[int] = set()
        worklist = list(blocks[start].successors)
        while worklist:
            node = worklist.pop()
            if node in seen:
                continue
            seen.add(node)
            worklist.extend(blocks[node].successors)
        return seen

    def _compute_join_points(self, blocks: List[BasicBlock]) -> None:
        num_blocks = len(blocks)
        for block in blocks:
            terminator = block.terminator
            if not terminator or terminator.kind != "cond":
                continue
            true_target = terminator.true_target
            false_target = terminator.false_target
            if true_target is None or false_target is None:
                continue
            common = (blocks[true_target].postdominators & blocks[false_target].postdominators) - {block.id}
            common &= self._reachable_from(blocks, block.id)
            # A full set only belongs to sinks; both branches terminate.
            common = {node for node in common if len(blocks[node].postdominators) < num_blocks}
            if common:
                # Postdominators form a chain; the nearest one has the largest set.
                terminator.join = max(common, key=lambda node: (len(blocks[node].postdominators), -node))

    def _classify_edges(self, blocks: List[BasicBlock]) -> None:
        for block in blocks:
            for succ in block.successors:
                if succ in block.dominators:
                    kind = "back"
                elif block.id in blocks[succ].dominators:
                    kind = "forward"
                else:
                    kind = "cross"
                block.edge_kinds[succ] = kind
