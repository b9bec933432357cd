# src/odegen/compiler/build.py
from __future__ import annotations
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence, Union

from odegen.compiler.codegen.emitter import OdeProgram, emit_program
from odegen.compiler.jit.compile import CompiledOde, materialize
from odegen.config import BuildOptions, CodegenNames
from odegen.symbolic.equations import EquationSet, as_equation_set, build_equations

__all__ = [
    "build_procedure",
    "build_procedure_from_lists",
    "generate_procedure",
    "export_program_source",
]

Equations = Union[EquationSet, Mapping[Any, Any], Iterable[Any]]


def build_procedure(
    eqs: Equations,
    params: Sequence[Any] = (),
    usym: str = "u",
    psym: str = "p",
    tsym: str = "t",
    *,
    set_unknowns_zero: bool = False,
    check_bounds: bool = True,
    max_relabelings: int = BuildOptions.max_relabelings,
) -> OdeProgram:
    """
    Translate symbolic equations into an inspectable derivative procedure.

    Parameters:
        eqs: An EquationSet, a ``{lhs: rhs}`` mapping or an iterable of
            ``(lhs, rhs)`` pairs / ``sympy.Eq`` objects.
        params: Parameter symbols; the k-th one is read as ``p[k]``. An
            ``IndexedBase`` parameter is read as the array ``p[k][...]``.
        usym, psym, tsym: Argument names of the emitted procedure
            (``(d<usym>, usym, psym, tsym)``).
        set_unknowns_zero: Replace symbols that are neither states nor
            parameters by zero instead of raising MissingSymbolsError.
        check_bounds: Keep array bounds checks in the JIT-compiled body.
        max_relabelings: Upper bound on the relabeling table of indexed systems.

    Returns:
        OdeProgram. Nothing is executed; call `materialize` (or use
        `generate_procedure`) to obtain a callable.
    """
    return _build_program(
        eqs, params, usym, psym, tsym,
        stacklevel=3,
        set_unknowns_zero=set_unknowns_zero,
        check_bounds=check_bounds,
        max_relabelings=max_relabelings,
    )


def _build_program(
    eqs: Equations,
    params: Sequence[Any] = (),
    usym: str = "u",
    psym: str = "p",
    tsym: str = "t",
    *,
    stacklevel: int,
    set_unknowns_zero: bool = False,
    check_bounds: bool = True,
    max_relabelings: int = BuildOptions.max_relabelings,
) -> OdeProgram:
    names = CodegenNames(usym=usym, psym=psym, tsym=tsym)
    options = BuildOptions(
        set_unknowns_zero=set_unknowns_zero,
        check_bounds=check_bounds,
        max_relabelings=max_relabelings,
    )
    return emit_program(as_equation_set(eqs), params, names, options, stacklevel=stacklevel + 1)


def build_procedure_from_lists(
    rhs: Sequence[Any],
    lhs: Sequence[Any],
    params: Sequence[Any] = (),
    usym: str = "u",
    psym: str = "p",
    tsym: str = "t",
    **kwargs: Any,
) -> OdeProgram:
    """List form: ``rhs[i]`` is the derivative of ``lhs[i]``."""
    return _build_program(build_equations(lhs, rhs), params, usym, psym, tsym, stacklevel=3, **kwargs)


def generate_procedure(*args: Any, jit: bool = True, **kwargs: Any) -> CompiledOde:
    """``materialize(build_procedure(...))``."""
    return materialize(_build_program(*args, stacklevel=3, **kwargs), jit=jit)


def export_program_source(program: OdeProgram, path: Union[str, Path]) -> Path:
    """
    Write the rendered source of ``program`` to ``path``.

    If ``path`` is an existing directory the file is named after the procedure.
    """
    path = Path(path)
    if path.is_dir():
        path = path / f"{program.name}.py"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(program.source, encoding="utf-8")
    return path
