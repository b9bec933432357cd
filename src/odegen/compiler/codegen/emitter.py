# src/odegen/compiler/codegen/emitter.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Set, Tuple
import warnings

import sympy as sp

from odegen.compiler.codegen import ir
from odegen.compiler.codegen.flat import compile_flat
from odegen.compiler.codegen.indexed import compile_indexed
from odegen.compiler.codegen.render import render_source
from odegen.config import BuildOptions, CodegenNames
from odegen.symbolic.equations import EquationSet

__all__ = ["StateSlot", "OdeProgram", "emit_program"]


@dataclass(frozen=True)
class StateSlot:
    """Contiguous block of the state vector owned by one left-hand side."""
    lhs: sp.Expr
    start: Any            # int, or a SymPy expression for symbolic ranges
    size: Any = 1
    index: Optional[sp.Idx] = None


@dataclass(frozen=True)
class OdeProgram:
    """Inspectable form of a generated derivative procedure; nothing is executed."""
    procedure: ir.Procedure
    states: Tuple[StateSlot, ...]
    params: Tuple[sp.Basic, ...]
    names: CodegenNames

    @property
    def name(self) -> str:
        return self.procedure.name

    @property
    def check_bounds(self) -> bool:
        return self.procedure.check_bounds

    @property
    def n_states(self):
        total = sp.Add(*[sp.sympify(s.size) for s in self.states])
        return int(total) if total.is_Integer else total

    @property
    def source(self) -> str:
        return render_source(self.procedure)

    def __str__(self) -> str:
        return self.source


def _bound_names(proc: ir.Procedure) -> Set[str]:
    bound = set(proc.args)
    for node in ir.walk(proc):
        if isinstance(node, (ir.Loop, ir.RangeSum)):
            bound.add(node.var)
    return bound


def _warn_unresolved(proc: ir.Procedure, *, stacklevel: int) -> None:
    bound = _bound_names(proc)
    free = sorted({n.id for n in ir.walk(proc) if isinstance(n, ir.Name) and n.id not in bound})
    if free:
        warnings.warn(
            f"Generated procedure '{proc.name}' references unresolved names "
            f"{', '.join(free)} (e.g. symbolic loop bounds that are not parameters); "
            f"it will fail when first executed",
            RuntimeWarning,
            stacklevel=stacklevel,
        )


def emit_program(
    eqs: EquationSet,
    params: Sequence[Any] = (),
    names: CodegenNames | None = None,
    options: BuildOptions | None = None,
    *,
    stacklevel: int = 2,
) -> OdeProgram:
    """
    Dispatch to the flat or indexed compiler and collect the state layout.

    ``stacklevel`` follows `warnings.warn`: build warnings are attributed to
    that frame, counting this function as 1.
    """
    names = names or CodegenNames()
    options = options or BuildOptions()
    params = tuple(sp.sympify(p) for p in params)

    if eqs.is_indexed:
        proc, scalars, families = compile_indexed(eqs, params, names, options, stacklevel=stacklevel + 1)
        states = tuple(StateSlot(lhs, i) for i, lhs in enumerate(scalars))
        states += tuple(
            StateSlot(fam.template, sp.sympify(fam.start), sp.sympify(fam.size), fam.index)
            for fam in families
        )
    else:
        proc, lhs = compile_flat(eqs.rhs, eqs.lhs, params, names, options, stacklevel=stacklevel + 1)
        states = tuple(StateSlot(s, i) for i, s in enumerate(lhs))

    _warn_unresolved(proc, stacklevel=stacklevel + 1)
    return OdeProgram(procedure=proc, states=states, params=params, names=names)
