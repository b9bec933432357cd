# src/odegen/compiler/codegen/render.py
"""
Python backend for the IR: builds an ``ast.Module`` holding one function

    def ode(du, u, p, t):
        du[0] = ...
        for i in range(1, int(p[0]) + 1):
            du[i] = ...
        return None

Range sums are hoisted into accumulator loops placed right before the
statement that uses them, which keeps the body numba-friendly. A sum feeding
one arm of a conditional runs under that arm's condition.
"""
from __future__ import annotations
from typing import Dict, List
import ast
import copy
import math

from odegen.compiler.codegen import ir
from odegen.config import ACC_PREFIX
from odegen.errors import UnsupportedShapeError

__all__ = ["render_module", "render_source"]

_BINOPS: Dict[str, ast.operator] = {
    "+": ast.Add(),
    "-": ast.Sub(),
    "*": ast.Mult(),
    "/": ast.Div(),
    "**": ast.Pow(),
}

_CMPOPS: Dict[str, ast.cmpop] = {
    "==": ast.Eq(),
    "!=": ast.NotEq(),
    "<": ast.Lt(),
    "<=": ast.LtE(),
    ">": ast.Gt(),
    ">=": ast.GtE(),
}


def _load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def _dotted(name: str) -> ast.expr:
    head, *rest = name.split(".")
    node: ast.expr = _load(head)
    for attr in rest:
        node = ast.Attribute(value=node, attr=attr, ctx=ast.Load())
    return node


def _range(lower: ast.expr, upper_inclusive: ast.expr) -> ast.Call:
    return ast.Call(func=_load("range"), args=[lower, upper_inclusive], keywords=[])


def _is_acc_init(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Assign)
        and isinstance(stmt.targets[0], ast.Name)
        and stmt.targets[0].id.startswith(ACC_PREFIX)
        and isinstance(stmt.value, ast.Constant)
    )


class _Renderer:
    def __init__(self):
        self._n_acc = 0

    def _new_acc(self) -> str:
        name = f"{ACC_PREFIX}{self._n_acc}"
        self._n_acc += 1
        return name

    # ---- expressions -------------------------------------------------------------

    def expr(self, node: ir.Node, prelude: List[ast.stmt]) -> ast.expr:
        if isinstance(node, ir.Const):
            return self._const(node.value)
        if isinstance(node, ir.Name):
            return _load(node.id)
        if isinstance(node, ir.Access):
            index = [self.expr(ix, prelude) for ix in node.index]
            slice_ = index[0] if len(index) == 1 else ast.Tuple(elts=index, ctx=ast.Load())
            return ast.Subscript(value=self.expr(node.array, prelude), slice=slice_, ctx=ast.Load())
        if isinstance(node, ir.BinOp) and node.op == "*" and isinstance(node.left, ir.Indicator):
            # (x if i != j else 0.0): the guarded access is never evaluated when the guard fails
            test = self.expr(node.left.cond, prelude)
            return ast.IfExp(
                test=test,
                body=self._branch(node.right, test, prelude),
                orelse=ast.Constant(0.0),
            )
        if isinstance(node, ir.BinOp):
            return ast.BinOp(left=self.expr(node.left, prelude), op=_BINOPS[node.op], right=self.expr(node.right, prelude))
        if isinstance(node, ir.UnaryOp):
            return ast.UnaryOp(op=ast.USub(), operand=self.expr(node.operand, prelude))
        if isinstance(node, ir.Call):
            return ast.Call(func=_dotted(node.func), args=[self.expr(a, prelude) for a in node.args], keywords=[])
        if isinstance(node, ir.Compare):
            return ast.Compare(
                left=self.expr(node.left, prelude),
                ops=[_CMPOPS[node.op]],
                comparators=[self.expr(node.right, prelude)],
            )
        if isinstance(node, ir.BoolOp):
            op = ast.And() if node.op == "and" else ast.Or()
            return ast.BoolOp(op=op, values=[self.expr(v, prelude) for v in node.values])
        if isinstance(node, ir.Select):
            test = self.expr(node.cond, prelude)
            return ast.IfExp(
                test=test,
                body=self._branch(node.body, test, prelude),
                orelse=self._branch(node.orelse, ast.UnaryOp(op=ast.Not(), operand=test), prelude),
            )
        if isinstance(node, ir.Indicator):
            return ast.IfExp(test=self.expr(node.cond, prelude), body=ast.Constant(1.0), orelse=ast.Constant(0.0))
        if isinstance(node, ir.RangeSum):
            return self._range_sum(node, prelude)
        raise UnsupportedShapeError(
            f"{type(node).__name__} must be rewritten before rendering"
        )

    def _const(self, value) -> ast.expr:
        if isinstance(value, float) and math.isnan(value):
            return _dotted("np.nan")
        if isinstance(value, float) and math.isinf(value):
            inf = _dotted("np.inf")
            return inf if value > 0 else ast.UnaryOp(op=ast.USub(), operand=inf)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
            return ast.UnaryOp(op=ast.USub(), operand=ast.Constant(-value))
        return ast.Constant(value)

    def _branch(self, node: ir.Node, test: ast.expr, prelude: List[ast.stmt]) -> ast.expr:
        """Render one arm of a conditional; its accumulator loops only run under ``test``."""
        inner: List[ast.stmt] = []
        value = self.expr(node, inner)
        if inner:
            inits = [s for s in inner if _is_acc_init(s)]
            loops = [s for s in inner if not _is_acc_init(s)]
            prelude.extend(inits)
            prelude.append(ast.If(test=copy.deepcopy(test), body=loops, orelse=[]))
        return value

    def _range_sum(self, node: ir.RangeSum, prelude: List[ast.stmt]) -> ast.expr:
        if node.guards:
            raise UnsupportedShapeError("Range guards must be absorbed before rendering")
        acc = self._new_acc()
        inner: List[ast.stmt] = []
        term = self.expr(node.body, inner)
        prelude.append(ast.Assign(targets=[ast.Name(id=acc, ctx=ast.Store())], value=ast.Constant(0.0)))
        inner.append(ast.AugAssign(target=ast.Name(id=acc, ctx=ast.Store()), op=ast.Add(), value=term))
        prelude.append(ast.For(
            target=ast.Name(id=node.var, ctx=ast.Store()),
            iter=_range(self.expr(node.lower, prelude), self.expr(ir.add(node.upper, ir.Const(1)), prelude)),
            body=inner,
            orelse=[],
        ))
        return _load(acc)

    # ---- statements --------------------------------------------------------------

    def stmt(self, node: ir.Node) -> List[ast.stmt]:
        if isinstance(node, ir.Assign):
            prelude: List[ast.stmt] = []
            value = self.expr(node.value, prelude)
            target = self.expr(node.target, prelude)
            target.ctx = ast.Store()
            return prelude + [ast.Assign(targets=[target], value=value)]
        if isinstance(node, ir.Loop):
            prelude = []
            iter_ = _range(self.expr(node.lower, prelude), self.expr(ir.add(node.upper, ir.Const(1)), prelude))
            body: List[ast.stmt] = []
            for child in node.body:
                body.extend(self.stmt(child))
            return prelude + [ast.For(
                target=ast.Name(id=node.var, ctx=ast.Store()),
                iter=iter_,
                body=body or [ast.Pass()],
                orelse=[],
            )]
        raise UnsupportedShapeError(f"Unknown statement node {type(node).__name__}")

    def function(self, proc: ir.Procedure) -> ast.FunctionDef:
        body: List[ast.stmt] = []
        for node in proc.body:
            body.extend(self.stmt(node))
        body.append(ast.Return(value=ast.Constant(None)))
        return ast.FunctionDef(
            name=proc.name,
            args=ast.arguments(
                posonlyargs=[],
                args=[ast.arg(arg=a) for a in proc.args],
                vararg=None, kwonlyargs=[], kw_defaults=[], kwarg=None, defaults=[],
            ),
            body=body,
            decorator_list=[],
            returns=None,
            type_params=[],
        )


def render_module(proc: ir.Procedure) -> ast.Module:
    mod = ast.Module(
        body=[
            ast.Import(names=[ast.alias(name="numpy", asname="np")]),
            _Renderer().function(proc),
        ],
        type_ignores=[],
    )
    ast.fix_missing_locations(mod)
    return mod


def render_source(proc: ir.Procedure) -> str:
    return ast.unparse(render_module(proc)) + "\n"
