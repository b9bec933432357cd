# src/odegen/compiler/codegen/relabel.py
"""
Index relabeling for indexed state families.

A family is written once over an abstract index (``n[i]``) but referenced
on right-hand sides through other indices (``n[j]`` inside a sum, ``n[i]``
in a coupling term). For every family template and every declared index
with the same range, the relabeled template and its flattened location are
precomputed into a rule table keyed by the concrete expression; lowering
looks expressions up in that table. Index expressions that are not declared
indices (``n[1]``, ``n[i + 1]``) unify through the family's base instead.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import sympy as sp

from odegen.compiler.codegen import ir
from odegen.compiler.codegen.lower import Lowerer, index_name
from odegen.errors import StructureError

__all__ = ["FamilyLayout", "RelabelEngine", "same_range"]


def same_range(a: sp.Idx, b: sp.Idx) -> bool:
    return a.lower == b.lower and a.upper == b.upper


@dataclass(frozen=True)
class FamilyLayout:
    """Placement of one indexed family inside the flat state vector."""
    template: sp.Expr  # lhs written over the loop index
    index: sp.Idx
    position: int      # rank among indexed families
    start: sp.Expr     # first (zero-based) slot
    size: sp.Expr

    @property
    def base(self) -> Optional[sp.IndexedBase]:
        if isinstance(self.template, sp.Indexed):
            return self.template.base
        return None


class RelabelEngine:
    def __init__(
        self,
        families: Sequence[FamilyLayout],
        declared: Sequence[sp.Idx],
        *,
        usym: str,
        bounds: Lowerer,
        max_relabelings: int,
    ):
        if len(families) * len(declared) > max_relabelings:
            raise StructureError(
                f"Relabeling {len(families)} index families over {len(declared)} indices "
                f"exceeds max_relabelings={max_relabelings}"
            )
        self.usym = usym
        self.families: Tuple[FamilyLayout, ...] = tuple(families)
        self._start = {fam.position: bounds.lower_bound(fam.start) for fam in families}
        self._lower = {fam.position: bounds.lower_bound(fam.index.lower) for fam in families}
        self._by_base: Dict[sp.IndexedBase, FamilyLayout] = {
            fam.base: fam for fam in families if fam.base is not None
        }
        self._table: Dict[sp.Basic, ir.Node] = {}
        for fam in families:
            for idx in declared:
                if not same_range(idx, fam.index):
                    continue
                concrete = fam.template.xreplace({fam.index: idx})
                self._table[concrete] = self.slot(fam, ir.Name(index_name(idx)))

    def __len__(self) -> int:
        return len(self._table)

    def slot(self, fam: FamilyLayout, at: ir.Node) -> ir.Access:
        """``u[start + (at - lower)]`` for the family."""
        offset = ir.add(ir.sub(at, self._lower[fam.position]), self._start[fam.position])
        return ir.Access(ir.Name(self.usym), (offset,))

    def lookup(self, expr: sp.Basic) -> Optional[ir.Node]:
        return self._table.get(expr)

    def owns(self, base: sp.IndexedBase) -> bool:
        return base in self._by_base

    def resolve(self, expr: sp.Indexed, lowerer: Lowerer) -> ir.Node:
        fam = self._by_base[expr.base]
        if len(expr.indices) != 1:
            raise StructureError(
                f"{expr} uses {len(expr.indices)} indices but family {fam.template} has one"
            )
        (at,) = expr.indices
        if isinstance(at, sp.Idx):
            raise StructureError(
                f"Index {at} of {expr} ranges over ({at.lower}, {at.upper}), "
                f"but family {expr.base} is declared over ({fam.index.lower}, {fam.index.upper})"
            )
        return self.slot(fam, lowerer.lower(at))
