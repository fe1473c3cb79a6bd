"""Boolean requirement trees over province traits.

A building may carry a ``logic`` tree instead of flat per-category criteria.
Leaves test a single trait category for equality; groups combine their
children with one of the operators in :data:`LOGIC_OPS`.  Trees are supplied
by the catalog and are treated as finite, acyclic and immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Union

if TYPE_CHECKING:
    from dominion.state import Province

LogicOp = Literal["and", "or", "not", "xor", "nand", "nor", "implies", "eq"]

LOGIC_OPS: tuple[str, ...] = ("and", "or", "not", "xor", "nand", "nor", "implies", "eq")


@dataclass(frozen=True, slots=True)
class TraitLeaf:
    category: str
    id: str


@dataclass(frozen=True, slots=True)
class LogicGroup:
    op: LogicOp
    children: tuple["RequirementNode", ...] = ()


RequirementNode = Union[TraitLeaf, LogicGroup]


def evaluate_requirement_node(node: RequirementNode, province: "Province") -> bool:
    """Evaluate ``node`` against ``province``.

    The walk keeps its own stack (post-order) so deeply nested catalog trees
    cannot exhaust the interpreter recursion limit.
    """

    pending: list[tuple[RequirementNode, bool]] = [(node, False)]
    results: list[bool] = []
    while pending:
        current, expanded = pending.pop()
        match current:
            case TraitLeaf(category=category, id=target):
                value = province.trait(category)
                results.append(value is not None and value == target)
            case LogicGroup(op=op, children=children):
                if not expanded:
                    pending.append((current, True))
                    pending.extend((child, False) for child in reversed(children))
                    continue
                count = len(children)
                child_results = results[len(results) - count :] if count else []
                if count:
                    del results[len(results) - count :]
                results.append(_combine(op, child_results))
            case _:
                raise TypeError(f"Unsupported requirement node: {current!r}")
    return results[-1]


def _combine(op: str, results: list[bool]) -> bool:
    if op == "and":
        return all(results)
    if op == "or":
        return any(results)
    if op in {"not", "nor"}:
        return not any(results)
    if op == "xor":
        return sum(results) == 1
    if op == "nand":
        return not all(results)
    if op == "implies":
        # only the first two children take part
        if len(results) < 2:
            return True
        return (not results[0]) or results[1]
    if op == "eq":
        return len(set(results)) <= 1
    # Unknown operators never block; payload parsing rejects them earlier.
    return True


def iter_leaves(node: RequirementNode):
    """Yield every :class:`TraitLeaf` in the tree, depth first."""

    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, TraitLeaf):
            yield current
        else:
            stack.extend(reversed(current.children))


__all__ = [
    "LOGIC_OPS",
    "LogicGroup",
    "LogicOp",
    "RequirementNode",
    "TraitLeaf",
    "evaluate_requirement_node",
    "iter_leaves",
]
