# src/odegen/compiler/codegen/passes.py
"""
Ordered rewrite passes over lowered right-hand sides.

    (a) rewrite_sums         BoundedSum -> RangeSum, range guards attached
    (b) rewrite_guards       Guarded(x, i != j) -> indicator(i != j) * x
    (c) rewrite_range_guards drop range guards absorbed by (b)
    (d) collapse_zero_access (0)[j] -> 0, then fold the arithmetic around it

`canonicalize_tokens` runs last, over the whole procedure, and renames
SymPy spellings (I, conjugate, Dagger, exp, ...) to runtime names.
"""
from __future__ import annotations
from typing import Dict, List, Tuple

from odegen.compiler.codegen import ir
from odegen.errors import UnsupportedShapeError

__all__ = [
    "rewrite_sums",
    "rewrite_guards",
    "rewrite_range_guards",
    "collapse_zero_access",
    "run_rewrite_passes",
    "canonicalize_tokens",
    "NUMERIC_FUNCS",
]


def _mentions(node: ir.Node, name: str) -> bool:
    return any(isinstance(n, ir.Name) and n.id == name for n in ir.walk(node))


def _factors(node: ir.Node) -> List[ir.Node]:
    if isinstance(node, ir.BinOp) and node.op == "*":
        return _factors(node.left) + _factors(node.right)
    return [node]


def _product(factors: List[ir.Node], body: ir.Node) -> ir.Node:
    for f in reversed(factors):
        body = ir.mul(f, body)
    return body


class _SumRewriter(ir.IRTransformer):
    def visit_BoundedSum(self, node: ir.BoundedSum) -> ir.Node:
        body = self.visit(node.body)
        guards: Tuple[ir.Compare, ...] = ()
        if isinstance(body, ir.Guarded):
            guards = tuple(c for c in body.conds if _mentions(c, node.var))
        return ir.RangeSum(node.var, self.visit(node.lower), self.visit(node.upper), body, guards)


class _GuardRewriter(ir.IRTransformer):
    def visit_Guarded(self, node: ir.Guarded) -> ir.Node:
        body = self.visit(node.body)
        return _product([ir.Indicator(self.visit(c)) for c in node.conds], body)


class _RangeGuardRewriter(ir.IRTransformer):
    def visit_RangeSum(self, node: ir.RangeSum) -> ir.Node:
        node = self.generic_visit(node)
        if not node.guards:
            return node
        absorbed = {f.cond for f in _factors(node.body) if isinstance(f, ir.Indicator)}
        residual = [ir.Indicator(g) for g in node.guards if g not in absorbed]
        return ir.RangeSum(node.var, node.lower, node.upper, _product(residual, node.body), ())


class _ZeroAccessCollapser(ir.IRTransformer):
    def visit_Access(self, node: ir.Access) -> ir.Node:
        node = self.generic_visit(node)
        if ir.is_zero(node.array):
            return ir.Const(0)
        return node

    def visit_BinOp(self, node: ir.BinOp) -> ir.Node:
        node = self.generic_visit(node)
        left, right = node.left, node.right
        if node.op == "*":
            if ir.is_zero(left) or ir.is_zero(right):
                return ir.Const(0)
        elif node.op == "+":
            if ir.is_zero(left):
                return right
            if ir.is_zero(right):
                return left
        elif node.op == "-":
            if ir.is_zero(right):
                return left
            if ir.is_zero(left):
                return ir.neg(right)
        elif node.op == "/":
            if ir.is_zero(left):
                return ir.Const(0)
        return node

    def visit_UnaryOp(self, node: ir.UnaryOp) -> ir.Node:
        node = self.generic_visit(node)
        if ir.is_zero(node.operand):
            return ir.Const(0)
        return node

    def visit_RangeSum(self, node: ir.RangeSum) -> ir.Node:
        node = self.generic_visit(node)
        if ir.is_zero(node.body):
            return ir.Const(0)
        return node

    def visit_Select(self, node: ir.Select) -> ir.Node:
        node = self.generic_visit(node)
        if ir.is_zero(node.body) and ir.is_zero(node.orelse):
            return ir.Const(0)
        return node


def rewrite_sums(node: ir.Node) -> ir.Node:
    return _SumRewriter().visit(node)


def rewrite_guards(node: ir.Node) -> ir.Node:
    return _GuardRewriter().visit(node)


def rewrite_range_guards(node: ir.Node) -> ir.Node:
    return _RangeGuardRewriter().visit(node)


def collapse_zero_access(node: ir.Node) -> ir.Node:
    return _ZeroAccessCollapser().visit(node)


def run_rewrite_passes(node: ir.Node) -> ir.Node:
    """Apply passes (a)-(d) in order."""
    node = rewrite_sums(node)
    node = rewrite_guards(node)
    node = rewrite_range_guards(node)
    node = collapse_zero_access(node)
    return node


# SymPy function name -> runtime callable (numpy works for real and complex
# scalars, both in plain Python and under numba)
NUMERIC_FUNCS: Dict[str, str] = {
    "conjugate": "np.conj",
    "Dagger": "np.conj",
    "adjoint": "np.conj",
    "re": "np.real",
    "im": "np.imag",
    "Abs": "np.abs",
    "sign": "np.sign",
    "exp": "np.exp",
    "log": "np.log",
    "sqrt": "np.sqrt",
    "sin": "np.sin",
    "cos": "np.cos",
    "tan": "np.tan",
    "asin": "np.arcsin",
    "acos": "np.arccos",
    "atan": "np.arctan",
    "atan2": "np.arctan2",
    "sinh": "np.sinh",
    "cosh": "np.cosh",
    "tanh": "np.tanh",
    "floor": "np.floor",
    "ceiling": "np.ceil",
    "Min": "min",
    "Max": "max",
    "int": "int",
}

# Runtime names already in canonical form (e.g. re-canonicalizing a procedure).
_RUNTIME_NAMES = frozenset(NUMERIC_FUNCS.values())


class _TokenCanonicalizer(ir.IRTransformer):
    def visit_Name(self, node: ir.Name) -> ir.Node:
        if node.id == "I":
            return ir.Const(1j)
        return node

    def visit_Call(self, node: ir.Call) -> ir.Node:
        node = self.generic_visit(node)
        if node.func in _RUNTIME_NAMES:
            return node
        func = NUMERIC_FUNCS.get(node.func)
        if func is None:
            raise UnsupportedShapeError(f"No numeric equivalent for function '{node.func}'")
        return ir.Call(func, node.args)


def canonicalize_tokens(node: ir.Node) -> ir.Node:
    return _TokenCanonicalizer().visit(node)
