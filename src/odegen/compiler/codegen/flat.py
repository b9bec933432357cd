# src/odegen/compiler/codegen/flat.py
from __future__ import annotations
from typing import Any, Sequence, Tuple

import sympy as sp

from odegen.compiler.codegen import ir
from odegen.compiler.codegen.lower import Lowerer, param_mapping, state_mapping
from odegen.compiler.codegen.passes import canonicalize_tokens, run_rewrite_passes
from odegen.config import BuildOptions, CodegenNames
from odegen.errors import StructureError
from odegen.symbolic.check import check_missing, remove_unknowns, require_complete

__all__ = ["compile_flat", "PROCEDURE_NAME"]

PROCEDURE_NAME = "ode"


def compile_flat(
    rhs: Sequence[Any],
    lhs: Sequence[Any],
    params: Sequence[Any] = (),
    names: CodegenNames | None = None,
    options: BuildOptions | None = None,
    *,
    stacklevel: int = 2,
) -> Tuple[ir.Procedure, Tuple[sp.Expr, ...]]:
    """
    Emit straight-line derivative code for a non-indexed system:

        def ode(du, u, p, t):
            du[0] = <rhs[0] with lhs[i] -> u[i], params[k] -> p[k]>
            ...

    Returns the procedure and the state ordering (``u[i]`` holds ``lhs[i]``).
    """
    names = names or CodegenNames()
    options = options or BuildOptions()
    rhs = [sp.sympify(r) for r in rhs]
    lhs = [sp.sympify(l) for l in lhs]
    params = [sp.sympify(p) for p in params]
    if len(rhs) != len(lhs):
        raise StructureError(
            f"Number of equations ({len(rhs)}) does not match number of states ({len(lhs)})"
        )

    missed = [s for s in check_missing(rhs, lhs, params) if str(s) != names.tsym]
    require_complete(missed, set_unknowns_zero=options.set_unknowns_zero, stacklevel=stacklevel)
    rhs = remove_unknowns(rhs, missed)

    mapping = state_mapping(lhs, names.usym)
    scalar_params, param_families = param_mapping(params, names.psym)
    mapping.update(scalar_params)
    lowerer = Lowerer(
        mapping,
        param_families=param_families,
        zero_unknowns=options.set_unknowns_zero,
    )

    body = []
    for i, expr in enumerate(rhs):
        target = ir.Access(ir.Name(names.dusym), (ir.Const(i),))
        body.append(ir.Assign(target, run_rewrite_passes(lowerer.lower(expr))))

    proc = ir.Procedure(
        name=PROCEDURE_NAME,
        args=names.arguments,
        body=tuple(body),
        check_bounds=options.check_bounds,
    )
    return canonicalize_tokens(proc), tuple(lhs)
