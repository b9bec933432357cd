# src/odegen/compiler/codegen/ir.py
"""
Typed intermediate representation of a generated derivative procedure.

Expression nodes: Const, Name, Access, BinOp, UnaryOp, Call, Compare,
BoolOp, Select, Indicator, Guarded, BoundedSum, RangeSum.
Statement nodes: Assign, Loop. The root is a Procedure.

Every node is a frozen dataclass, so whole programs are hashable, printable
and picklable. ``Guarded`` and ``BoundedSum`` only exist between lowering and
the rewrite passes; renderers never see them.
"""
from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Iterator, Tuple, Union

__all__ = [
    "Node", "Const", "Name", "Access", "BinOp", "UnaryOp", "Call", "Compare", "BoolOp",
    "Select", "Indicator", "Guarded", "BoundedSum", "RangeSum",
    "Assign", "Loop", "Procedure",
    "IRTransformer", "walk", "add", "sub", "mul", "neg", "as_int", "is_zero",
]

Number = Union[int, float, complex, bool]


@dataclass(frozen=True)
class Node:
    pass


@dataclass(frozen=True)
class Const(Node):
    value: Number


@dataclass(frozen=True)
class Name(Node):
    id: str


@dataclass(frozen=True)
class Access(Node):
    array: Node
    index: Tuple[Node, ...]


@dataclass(frozen=True)
class BinOp(Node):
    op: str  # "+" | "-" | "*" | "/" | "**"
    left: Node
    right: Node


@dataclass(frozen=True)
class UnaryOp(Node):
    op: str  # "-"
    operand: Node


@dataclass(frozen=True)
class Call(Node):
    func: str  # dotted runtime name after canonicalization, e.g. "np.exp" or "int"
    args: Tuple[Node, ...]


@dataclass(frozen=True)
class Compare(Node):
    op: str  # "==" | "!=" | "<" | "<=" | ">" | ">="
    left: Node
    right: Node


@dataclass(frozen=True)
class BoolOp(Node):
    op: str  # "and" | "or"
    values: Tuple[Node, ...]


@dataclass(frozen=True)
class Select(Node):
    cond: Node
    body: Node
    orelse: Node


@dataclass(frozen=True)
class Indicator(Node):
    """1 where ``cond`` holds, 0 elsewhere."""
    cond: Compare


@dataclass(frozen=True)
class Guarded(Node):
    """``body`` where every condition holds, 0 elsewhere."""
    body: Node
    conds: Tuple[Compare, ...]


@dataclass(frozen=True)
class BoundedSum(Node):
    """Symbolic sum as it comes out of the expression tree."""
    var: str
    lower: Node
    upper: Node  # inclusive
    body: Node


@dataclass(frozen=True)
class RangeSum(Node):
    """Native range summation; ``guards`` restrict the range until absorbed."""
    var: str
    lower: Node
    upper: Node  # inclusive
    body: Node
    guards: Tuple[Compare, ...] = ()


@dataclass(frozen=True)
class Assign(Node):
    target: Access
    value: Node


@dataclass(frozen=True)
class Loop(Node):
    var: str
    lower: Node
    upper: Node  # inclusive
    body: Tuple[Node, ...]


@dataclass(frozen=True)
class Procedure(Node):
    name: str
    args: Tuple[str, ...]
    body: Tuple[Node, ...]
    check_bounds: bool = True


def _children(node: Node) -> Iterator[Node]:
    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, Node):
            yield value
        elif isinstance(value, tuple):
            for item in value:
                if isinstance(item, Node):
                    yield item


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants, parents first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(_children(current))))


class IRTransformer:
    """Rebuild an IR tree bottom-up, in the manner of ``ast.NodeTransformer``."""

    def visit(self, node: Node) -> Node:
        method = getattr(self, "visit_" + type(node).__name__, self.generic_visit)
        return method(node)

    def generic_visit(self, node: Node) -> Node:
        changes = {}
        for f in fields(node):
            value = getattr(node, f.name)
            if isinstance(value, Node):
                new = self.visit(value)
            elif isinstance(value, tuple) and any(isinstance(v, Node) for v in value):
                new = tuple(self.visit(v) if isinstance(v, Node) else v for v in value)
                if all(a is b for a, b in zip(new, value)):
                    continue
            else:
                continue
            if new is not value:
                changes[f.name] = new
        return replace(node, **changes) if changes else node


# ---- builders with light constant folding --------------------------------------

def is_zero(node: Node) -> bool:
    return isinstance(node, Const) and not isinstance(node.value, bool) and node.value == 0


def _split_const(node: Node) -> Tuple[Node | None, Number]:
    if isinstance(node, Const) and not isinstance(node.value, bool):
        return None, node.value
    if isinstance(node, BinOp) and isinstance(node.right, Const) and node.op in ("+", "-"):
        c = node.right.value
        return node.left, (c if node.op == "+" else -c)
    return node, 0


def add(a: Node, b: Node) -> Node:
    if is_zero(b):
        return a
    if is_zero(a):
        return b
    if isinstance(b, Const):
        rest, c = _split_const(a)
        total = c + b.value
        if rest is None:
            return Const(total)
        if total == 0:
            return rest
        if isinstance(total, (int, float)) and total < 0:
            return BinOp("-", rest, Const(-total))
        return BinOp("+", rest, Const(total))
    if isinstance(b, UnaryOp) and b.op == "-":
        return BinOp("-", a, b.operand)
    return BinOp("+", a, b)


def neg(a: Node) -> Node:
    if isinstance(a, Const) and not isinstance(a.value, bool):
        return Const(-a.value)
    if isinstance(a, UnaryOp) and a.op == "-":
        return a.operand
    return UnaryOp("-", a)


def sub(a: Node, b: Node) -> Node:
    if isinstance(b, Const):
        return add(a, neg(b))
    if is_zero(a):
        return neg(b)
    return BinOp("-", a, b)


def mul(a: Node, b: Node) -> Node:
    if is_zero(a) or is_zero(b):
        return Const(0)
    if isinstance(a, Const) and a.value == 1:
        return b
    if isinstance(b, Const) and b.value == 1:
        return a
    return BinOp("*", a, b)


def as_int(node: Node) -> Node:
    """Wrap non-literal integer expressions (e.g. parameter reads) into ``int(...)``."""
    if isinstance(node, Const) and isinstance(node.value, int) and not isinstance(node.value, bool):
        return node
    if isinstance(node, Const) and isinstance(node.value, float) and node.value.is_integer():
        return Const(int(node.value))
    if isinstance(node, Name):
        return node
    if isinstance(node, Call) and node.func == "int":
        return node
    if isinstance(node, BinOp) and node.op in ("+", "-", "*"):
        left, right = as_int(node.left), as_int(node.right)
        if _is_int_valued(left) and _is_int_valued(right):
            return BinOp(node.op, left, right)
    return Call("int", (node,))


def _is_int_valued(node: Node) -> bool:
    if isinstance(node, Const):
        return isinstance(node.value, int) and not isinstance(node.value, bool)
    if isinstance(node, (Name, Call)):
        return not isinstance(node, Call) or node.func == "int"
    if isinstance(node, BinOp):
        return node.op in ("+", "-", "*") and _is_int_valued(node.left) and _is_int_valued(node.right)
    return False
