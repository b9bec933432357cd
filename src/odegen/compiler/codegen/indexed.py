# src/odegen/compiler/codegen/indexed.py
"""
Code generation for equation sets replicated over an index family.

Layout of the state vector (``offset`` = number of scalar equations)::

    u[0 : offset]                        scalar states, in source order
    u[offset + k*size + (i - lower)]     k-th indexed family at site i

and the emitted body::

    def ode(du, u, p, t):
        du[0] = ...                      # scalar prologue
        for i in range(lower, upper + 1):
            du[offset + i - lower] = ...  # one assignment per family
"""
from __future__ import annotations
from typing import Any, List, Sequence, Tuple

import sympy as sp

from odegen.compiler.codegen import ir
from odegen.compiler.codegen.flat import PROCEDURE_NAME
from odegen.compiler.codegen.lower import Lowerer, index_name, param_mapping, state_mapping
from odegen.compiler.codegen.passes import canonicalize_tokens, run_rewrite_passes
from odegen.compiler.codegen.relabel import FamilyLayout, RelabelEngine, same_range
from odegen.config import BuildOptions, CodegenNames
from odegen.errors import StructureError, UnsupportedShapeError
from odegen.symbolic.check import (
    check_missing_families,
    check_missing_indexed,
    remove_unknowns,
    require_complete,
)
from odegen.symbolic.indices import declared_indices, free_indices
from odegen.symbolic.equations import Equation, EquationSet

__all__ = ["compile_indexed"]


def _check_depth(eqs: EquationSet) -> None:
    for eq in eqs:
        if eq.depth > 1:
            raise UnsupportedShapeError(
                f"{eq.lhs} is replicated over {eq.depth} indices "
                f"({', '.join(str(i) for i in eq.indices)}); only one index level is supported"
            )


def _check_range(idx: sp.Idx, where: sp.Basic) -> None:
    if idx.lower is None or idx.upper is None:
        raise StructureError(f"Index {idx} used in {where} has no (lower, upper) range")


def _family_templates(indexed: Sequence[Equation], loop: sp.Idx) -> List[Tuple[sp.Expr, sp.Expr]]:
    """Rewrite every indexed equation over the loop index."""
    out = []
    for eq in indexed:
        (idx,) = eq.indices
        _check_range(idx, eq.lhs)
        if not same_range(idx, loop):
            raise StructureError(
                f"{eq.lhs} ranges over ({idx.lower}, {idx.upper}) but the loop over {loop} "
                f"ranges over ({loop.lower}, {loop.upper}); all families must share one range"
            )
        out.append((eq.lhs.xreplace({idx: loop}), eq.rhs.xreplace({idx: loop})))
    return out


def _check_free_indices(rhs: sp.Expr, lhs: sp.Expr, allowed: Tuple[sp.Idx, ...]) -> None:
    stray = [ix for ix in free_indices(rhs) if ix not in allowed]
    if stray:
        raise StructureError(
            f"Right-hand side of {lhs} uses indices {', '.join(str(s) for s in stray)} "
            f"that are bound neither by its left-hand side nor by a sum"
        )


def compile_indexed(
    eqs: EquationSet,
    params: Sequence[Any] = (),
    names: CodegenNames | None = None,
    options: BuildOptions | None = None,
    *,
    stacklevel: int = 2,
) -> Tuple[ir.Procedure, Tuple[sp.Expr, ...], Tuple[FamilyLayout, ...]]:
    """
    Compile an equation set whose left-hand sides carry at most one index.

    Returns the procedure, the scalar states (``u[0..offset-1]``) and the
    layout of each indexed family.
    """
    names = names or CodegenNames()
    options = options or BuildOptions()
    params = [sp.sympify(p) for p in params]

    missed = [s for s in check_missing_indexed(eqs.rhs, eqs.lhs, params) if str(s) != names.tsym]
    unknown_families = check_missing_families(eqs.rhs, eqs.lhs, params)
    require_complete(
        missed + unknown_families,
        set_unknowns_zero=options.set_unknowns_zero,
        stacklevel=stacklevel,
    )
    eqs = remove_unknowns(eqs, missed)
    _check_depth(eqs)

    ordered = eqs.scalars_first()
    scalars = [eq for eq in ordered if not eq.is_indexed]
    indexed = [eq for eq in ordered if eq.is_indexed]
    if not indexed:
        raise StructureError("Equation set carries no indexed left-hand side")
    offset = len(scalars)

    loop = indexed[0].indices[0]
    _check_range(loop, indexed[0].lhs)
    templates = _family_templates(indexed, loop)

    family_bases = {t.base for t, _ in templates if isinstance(t, sp.Indexed)}
    for eq in scalars:
        if isinstance(eq.lhs, sp.Indexed) and eq.lhs.base in family_bases:
            raise StructureError(
                f"{eq.lhs} is a concrete entry of an indexed family; "
                f"write it through the family's index instead"
            )
        _check_free_indices(eq.rhs, eq.lhs, ())
    for lhs, rhs in templates:
        _check_free_indices(rhs, lhs, (loop,))

    size = loop.upper - loop.lower + 1
    families = tuple(
        FamilyLayout(template=lhs, index=loop, position=k, start=offset + k * size, size=size)
        for k, (lhs, _) in enumerate(templates)
    )

    mapping = state_mapping([eq.lhs for eq in scalars], names.usym)
    scalar_params, param_families = param_mapping(params, names.psym)
    mapping.update(scalar_params)
    bounds = Lowerer(mapping, param_families=param_families, default_lower=loop.lower)

    declared = declared_indices([eq.rhs for eq in scalars] + [rhs for _, rhs in templates])
    if loop not in declared:
        declared = (loop,) + declared
    engine = RelabelEngine(
        families,
        declared,
        usym=names.usym,
        bounds=bounds,
        max_relabelings=options.max_relabelings,
    )
    lowerer = Lowerer(
        mapping,
        param_families=param_families,
        relabel=engine,
        zero_bases=frozenset(unknown_families),
        zero_unknowns=options.set_unknowns_zero,
        default_lower=loop.lower,
    )

    du = ir.Name(names.dusym)
    body: List[ir.Node] = []
    for i, eq in enumerate(scalars):
        target = ir.Access(du, (ir.Const(i),))
        body.append(ir.Assign(target, run_rewrite_passes(lowerer.lower(eq.rhs))))

    loop_var = ir.Name(index_name(loop))
    loop_body = []
    for fam, (_, rhs) in zip(families, templates):
        target = ir.Access(du, engine.slot(fam, loop_var).index)
        loop_body.append(ir.Assign(target, run_rewrite_passes(lowerer.lower(rhs))))
    body.append(ir.Loop(
        var=loop_var.id,
        lower=bounds.lower_bound(loop.lower),
        upper=bounds.lower_bound(loop.upper),
        body=tuple(loop_body),
    ))

    proc = ir.Procedure(
        name=PROCEDURE_NAME,
        args=names.arguments,
        body=tuple(body),
        check_bounds=options.check_bounds,
    )
    return canonicalize_tokens(proc), tuple(eq.lhs for eq in scalars), families
