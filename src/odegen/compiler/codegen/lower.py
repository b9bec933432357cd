# src/odegen/compiler/codegen/lower.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple
import math

import sympy as sp
from sympy.core.function import AppliedUndef

from odegen.compiler.codegen import ir
from odegen.errors import MissingSymbolsError, UnsupportedShapeError

__all__ = ["Lowerer", "state_mapping", "param_mapping", "index_name"]


def index_name(var: sp.Basic) -> str:
    """Python identifier of a summation/loop variable."""
    if isinstance(var, sp.Idx):
        return str(var.label)
    return str(var)


def _slot(array: str, k: int) -> ir.Access:
    return ir.Access(ir.Name(array), (ir.Const(k),))


def state_mapping(lhs: Sequence[sp.Basic], usym: str) -> Dict[sp.Basic, ir.Node]:
    """Map the i-th state symbol to ``u[i]``."""
    return {sp.sympify(s): _slot(usym, i) for i, s in enumerate(lhs)}


def param_mapping(params: Sequence[Any], psym: str) -> Tuple[Dict[sp.Basic, ir.Node], Dict[sp.IndexedBase, ir.Node]]:
    """
    Map parameters to ``p[k]`` by declaration order.

    Returns (scalar_map, family_map); a parameter family ``J`` (an IndexedBase,
    or any ``J[...]`` entry) maps to the array ``p[k]`` and is indexed later.
    """
    scalars: Dict[sp.Basic, ir.Node] = {}
    families: Dict[sp.IndexedBase, ir.Node] = {}
    for k, par in enumerate(params):
        par = sp.sympify(par)
        if isinstance(par, sp.IndexedBase):
            families[par] = _slot(psym, k)
        elif isinstance(par, sp.Indexed):
            families[par.base] = _slot(psym, k)
        else:
            scalars[par] = _slot(psym, k)
    return scalars, families


@dataclass
class Lowerer:
    """
    Structural walk from a SymPy expression tree into IR.

    ``mapping`` is consulted before anything else, so any subexpression that
    is a declared state or parameter (symbols, indexed symbols, undefined
    functions like ``x(t)``) becomes its array access. Indexed state
    families are resolved through ``relabel``; parameter families through
    ``param_families``. Function names stay in SymPy spelling here and are
    canonicalized to runtime names by a later pass.
    """
    mapping: Dict[sp.Basic, ir.Node]
    param_families: Dict[sp.IndexedBase, ir.Node] = field(default_factory=dict)
    relabel: Optional[Any] = None  # RelabelEngine
    zero_bases: frozenset = frozenset()
    zero_unknowns: bool = False
    default_lower: sp.Expr = sp.Integer(0)

    def lower(self, expr: Any) -> ir.Node:
        expr = sp.sympify(expr)
        hit = self.mapping.get(expr)
        if hit is not None:
            return hit
        if self.relabel is not None:
            hit = self.relabel.lookup(expr)
            if hit is not None:
                return hit
        return self._lower(expr)

    def lower_bound(self, expr: Any) -> ir.Node:
        return ir.as_int(self.lower(expr))

    # ---- dispatch ------------------------------------------------------------

    def _lower(self, expr: sp.Basic) -> ir.Node:
        if expr.is_Integer:
            return ir.Const(int(expr))
        if expr.is_Rational:
            return ir.BinOp("/", ir.Const(int(expr.p)), ir.Const(int(expr.q)))
        if expr.is_Float:
            return ir.Const(float(expr))
        if expr is sp.I:
            return ir.Name("I")
        if expr.is_NumberSymbol:
            return ir.Const(float(expr))
        if expr in (sp.oo, -sp.oo, sp.nan, sp.zoo):
            return ir.Const(float(expr) if expr is not sp.zoo else math.nan)
        if expr is sp.true or expr is sp.false:
            return ir.Const(bool(expr))
        if isinstance(expr, sp.Idx):
            return ir.Name(index_name(expr))
        if isinstance(expr, sp.Indexed):
            return self._lower_indexed(expr)
        if isinstance(expr, sp.Symbol):
            # time, loop/sum variables and unresolved bounds all stay plain names
            return ir.Name(expr.name)
        if isinstance(expr, sp.Add):
            return self._lower_add(expr)
        if isinstance(expr, sp.Mul):
            return self._lower_mul(expr)
        if isinstance(expr, sp.Pow):
            return self._lower_pow(expr)
        if isinstance(expr, sp.Sum):
            return self._lower_sum(expr)
        if isinstance(expr, sp.Piecewise):
            return self._lower_piecewise(expr)
        if isinstance(expr, sp.KroneckerDelta):
            return ir.Indicator(ir.Compare("==", self.lower(expr.args[0]), self.lower(expr.args[1])))
        if isinstance(expr, sp.Rel):
            return ir.Compare(expr.rel_op, self.lower(expr.lhs), self.lower(expr.rhs))
        if isinstance(expr, (sp.And, sp.Or)):
            op = "and" if isinstance(expr, sp.And) else "or"
            return ir.BoolOp(op, tuple(self.lower(a) for a in expr.args))
        if isinstance(expr, AppliedUndef):
            if self.zero_unknowns:
                return ir.Const(0)
            raise MissingSymbolsError([expr])
        if expr.is_Function:
            return ir.Call(type(expr).__name__, tuple(self.lower(a) for a in expr.args))
        raise UnsupportedShapeError(f"Cannot lower {type(expr).__name__} expression: {expr}")

    # ---- arithmetic ------------------------------------------------------------

    def _lower_add(self, expr: sp.Add) -> ir.Node:
        terms = list(expr.args)
        # keep a positive leading term where possible: a - b rather than -b + a
        terms.sort(key=lambda a: a.could_extract_minus_sign())
        node = self.lower(terms[0])
        for term in terms[1:]:
            if term.could_extract_minus_sign():
                node = ir.BinOp("-", node, self.lower(-term))
            else:
                node = ir.BinOp("+", node, self.lower(term))
        return node

    def _lower_mul(self, expr: sp.Mul) -> ir.Node:
        coeff, _ = expr.as_coeff_Mul()
        if coeff.is_negative:
            return ir.UnaryOp("-", self.lower(-expr))
        num, den = [], []
        for factor in expr.args:
            if factor.is_Pow and factor.exp.is_Number and factor.exp.is_negative:
                den.append(sp.Pow(factor.base, -factor.exp))
            else:
                num.append(factor)
        node = self.lower(num[0]) if num else ir.Const(1)
        for factor in num[1:]:
            node = ir.BinOp("*", node, self.lower(factor))
        for factor in den:
            node = ir.BinOp("/", node, self.lower(factor))
        return node

    def _lower_pow(self, expr: sp.Pow) -> ir.Node:
        base, exp = expr.args
        if exp.is_Number and exp.is_negative:
            return ir.BinOp("/", ir.Const(1), self.lower(sp.Pow(base, -exp)))
        if exp == sp.S.Half:
            return ir.Call("sqrt", (self.lower(base),))
        return ir.BinOp("**", self.lower(base), self.lower(exp))

    # ---- indexed access ----------------------------------------------------------

    def _zero_based(self, ix: sp.Expr) -> ir.Node:
        inner = [a for a in sp.preorder_traversal(ix) if isinstance(a, sp.Idx)]
        lower = inner[0].lower if inner and inner[0].lower is not None else self.default_lower
        return ir.sub(self.lower(ix), self.lower_bound(lower))

    def _lower_indexed(self, expr: sp.Indexed) -> ir.Node:
        base = expr.base
        if self.relabel is not None and self.relabel.owns(base):
            return self.relabel.resolve(expr, self)
        if base in self.param_families:
            return ir.Access(self.param_families[base], tuple(self._zero_based(ix) for ix in expr.indices))
        if base in self.zero_bases or self.zero_unknowns:
            # (0)[j]: collapsed by the zero-access pass
            return ir.Access(ir.Const(0), tuple(self.lower(ix) for ix in expr.indices))
        raise MissingSymbolsError([base])

    # ---- sums and guards ---------------------------------------------------------

    def _lower_sum(self, expr: sp.Sum) -> ir.Node:
        node = self.lower(expr.function)
        for limit in expr.limits:
            if len(limit) != 3:
                raise UnsupportedShapeError(f"Sum without explicit bounds: {expr}")
            var, lo, hi = limit
            node = ir.BoundedSum(index_name(var), self.lower_bound(lo), self.lower_bound(hi), node)
        return node

    def _guard_conditions(self, cond: sp.Basic) -> Optional[Tuple[ir.Compare, ...]]:
        parts = cond.args if isinstance(cond, sp.And) else (cond,)
        if not all(isinstance(p, sp.Ne) for p in parts):
            return None
        return tuple(ir.Compare("!=", self.lower(p.lhs), self.lower(p.rhs)) for p in parts)

    def _lower_piecewise(self, expr: sp.Piecewise) -> ir.Node:
        pairs = list(expr.args)
        if len(pairs) == 2 and pairs[1].cond is sp.true and pairs[1].expr.is_zero:
            conds = self._guard_conditions(pairs[0].cond)
            if conds is not None:
                return ir.Guarded(self.lower(pairs[0].expr), conds)
        if pairs[-1].cond is sp.true:
            node = self.lower(pairs[-1].expr)
            pairs = pairs[:-1]
        else:
            node = ir.Const(math.nan)
        for pair in reversed(pairs):
            node = ir.Select(self.lower(pair.cond), self.lower(pair.expr), node)
        return node
