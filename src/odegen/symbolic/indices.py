# src/odegen/symbolic/indices.py
"""
Constructors for index families on top of SymPy's tensor module.

An index is a ``sympy.Idx`` carrying its (lower, upper) range, an indexed
symbol is ``sympy.IndexedBase(...)[i]``. Terms that must vanish when two
indices coincide are written as a guarded piecewise::

    Piecewise((J[i, j] * n[j], Ne(i, j)), (0, True))

which is what ``unequal`` builds and what the compiler turns into an
indicator product.
"""
from __future__ import annotations
from typing import Any, Iterable, Sequence, Tuple

import sympy as sp

__all__ = ["index", "family", "unequal", "site_sum", "free_indices", "declared_indices"]


def index(label: str, lower: Any, upper: Any) -> sp.Idx:
    """An index running over ``lower..upper`` (both inclusive)."""
    return sp.Idx(label, (sp.sympify(lower), sp.sympify(upper)))


def family(name: str, **assumptions: Any) -> sp.IndexedBase:
    return sp.IndexedBase(name, **assumptions)


def unequal(expr: Any, *pairs: Tuple[Any, Any]) -> sp.Expr:
    """``expr`` where every pair of indices differs, zero otherwise."""
    if not pairs:
        return sp.sympify(expr)
    cond = sp.And(*[sp.Ne(a, b) for a, b in pairs])
    return sp.Piecewise((expr, cond), (0, True))


def site_sum(expr: Any, j: sp.Idx, *, unequal_to: Sequence[sp.Idx] | sp.Idx = ()) -> sp.Expr:
    """Sum ``expr`` over the range of ``j``, optionally skipping ``j == k`` for each k."""
    if isinstance(unequal_to, sp.Idx):
        unequal_to = (unequal_to,)
    body = unequal(expr, *[(j, k) for k in unequal_to])
    return sp.Sum(body, (j, j.lower, j.upper))


def free_indices(expr: sp.Basic) -> Tuple[sp.Idx, ...]:
    """Indices that occur free in ``expr`` (summation indices excluded), sorted canonically."""
    return tuple(sorted((s for s in expr.free_symbols if isinstance(s, sp.Idx)), key=sp.default_sort_key))


def declared_indices(exprs: Iterable[sp.Basic]) -> Tuple[sp.Idx, ...]:
    """Every ``Idx`` occurring in ``exprs`` (bound or free), in first-seen order."""
    found: list[sp.Idx] = []
    for expr in exprs:
        for node in sp.preorder_traversal(expr):
            if isinstance(node, sp.Idx) and node not in found:
                found.append(node)
    return tuple(found)
