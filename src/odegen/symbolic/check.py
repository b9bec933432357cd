# src/odegen/symbolic/check.py
from __future__ import annotations
from dataclasses import replace
from typing import Any, Iterable, List, Sequence, Set
import warnings

import sympy as sp
from sympy.core.function import AppliedUndef

from odegen.errors import MissingSymbolsError
from odegen.symbolic.equations import EquationSet

__all__ = [
    "check_missing",
    "check_missing_indexed",
    "check_missing_families",
    "missing_symbols",
    "remove_unknowns",
    "require_complete",
]


def _free_symbols(exprs: Iterable[Any]) -> List[sp.Basic]:
    """Free symbols of ``exprs`` without duplicates, in a deterministic order."""
    seen: Set[sp.Basic] = set()
    out: List[sp.Basic] = []
    for expr in exprs:
        for s in sorted(sp.sympify(expr).free_symbols, key=sp.default_sort_key):
            if s not in seen:
                seen.add(s)
                out.append(s)
    return out


def _undefined_calls(exprs: Iterable[Any]) -> List[sp.Basic]:
    """Applied undefined functions such as ``f(t)``; their free symbols hide them."""
    out: List[sp.Basic] = []
    for expr in exprs:
        for call in sorted(sp.sympify(expr).atoms(AppliedUndef), key=sp.default_sort_key):
            if call not in out:
                out.append(call)
    return out


def _bases(exprs: Iterable[Any]) -> List[sp.IndexedBase]:
    out: List[sp.IndexedBase] = []
    for expr in exprs:
        expr = sp.sympify(expr)
        if isinstance(expr, sp.IndexedBase):
            found = [expr]
        else:
            found = sorted((ix.base for ix in expr.atoms(sp.Indexed)), key=sp.default_sort_key)
        for base in found:
            if base not in out:
                out.append(base)
    return out


def _declared(lhs: Sequence[Any], params: Sequence[Any]) -> Set[sp.Basic]:
    known = {sp.sympify(x) for x in list(lhs) + list(params)}
    for base in _bases(params):
        known.add(base)
        known.add(base.label)
    return known


def check_missing(rhs: Sequence[Any], lhs: Sequence[Any], params: Sequence[Any] = ()) -> List[sp.Basic]:
    """
    Return the symbols occurring in ``rhs`` that are neither in ``lhs`` nor in ``params``.

    Indexed entries whose base is a declared parameter family count as declared,
    as do the bases of indexed states (``x`` for a state ``x[0]``). Applied
    undefined functions (``f(t)``) that are not states are reported after the
    symbols.
    """
    known = _declared(lhs, params)
    families = set(_bases(params))
    state_bases = set(_bases(lhs))
    missed = []
    for s in _free_symbols(rhs):
        if s in known:
            continue
        if isinstance(s, sp.Indexed) and s.base in families:
            continue
        if isinstance(s, sp.IndexedBase) and s in state_bases:
            continue
        missed.append(s)
    missed.extend(c for c in _undefined_calls(rhs) if c not in known)
    return missed


def check_missing_indexed(rhs: Sequence[Any], lhs: Sequence[Any], params: Sequence[Any] = ()) -> List[sp.Basic]:
    """
    Index-aware variant of `check_missing`.

    Indices, indexed symbols and their bases are resolved by the index
    machinery later on, so they are never reported here. ``lhs`` and
    ``params`` are expanded into their own free symbols before exclusion.
    """
    known = _declared(lhs, params)
    known.update(_free_symbols(lhs))
    known.update(_free_symbols(params))
    labels = {base.label for base in _bases(rhs)}
    missed = []
    for s in _free_symbols(rhs):
        if isinstance(s, (sp.Idx, sp.Indexed, sp.IndexedBase)):
            continue
        if s in known or s in labels:
            continue
        missed.append(s)
    missed.extend(c for c in _undefined_calls(rhs) if c not in known)
    return missed


def check_missing_families(rhs: Sequence[Any], lhs: Sequence[Any], params: Sequence[Any] = ()) -> List[sp.IndexedBase]:
    """Indexed bases used in ``rhs`` that are neither state families nor parameter families."""
    declared = set(_bases(lhs)) | set(_bases(params))
    return [base for base in _bases(rhs) if base not in declared]


def missing_symbols(eqs: EquationSet, params: Sequence[Any] = ()) -> List[sp.Basic]:
    """Dispatch to the flat or index-aware check depending on the equation set."""
    if eqs.is_indexed:
        return check_missing_indexed(eqs.rhs, eqs.lhs, params)
    return check_missing(eqs.rhs, eqs.lhs, params)


def require_complete(missed: Sequence[sp.Basic], *, set_unknowns_zero: bool, stacklevel: int = 2) -> None:
    """Raise for missing symbols, or warn that they are being neglected."""
    if not missed:
        return
    if not set_unknowns_zero:
        raise MissingSymbolsError(missed)
    warnings.warn(
        "Neglecting unknown symbols (set to 0): " + ", ".join(str(s) for s in missed),
        RuntimeWarning,
        stacklevel=stacklevel + 1,
    )


def remove_unknowns(target, unknowns: Sequence[Any] | None = None, params: Sequence[Any] = ()):
    """
    Substitute every symbol in ``unknowns`` by zero.

    ``target`` is either a sequence of expressions (a list is returned) or an
    EquationSet. For an EquationSet, ``unknowns`` defaults to the symbols
    reported by `missing_symbols`, and every equation whose lhs vanishes after
    the substitution is dropped.
    """
    if isinstance(target, EquationSet):
        if unknowns is None:
            unknowns = missing_symbols(target, params)
        subs = {u: 0 for u in unknowns}
        kept = []
        for eq in target:
            lhs = eq.lhs.subs(subs) if subs else eq.lhs
            if lhs.is_zero:
                continue
            rhs = eq.rhs.subs(subs) if subs else eq.rhs
            kept.append(replace(eq, lhs=lhs, rhs=rhs))
        return EquationSet(tuple(kept))

    if unknowns is None:
        raise TypeError("remove_unknowns() needs explicit unknowns for a sequence of expressions")
    subs = {u: 0 for u in unknowns}
    return [sp.sympify(e).subs(subs) if subs else sp.sympify(e) for e in target]
