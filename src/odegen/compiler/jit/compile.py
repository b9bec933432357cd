# src/odegen/compiler/jit/compile.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict

import numpy as np
from numba import njit

from odegen.compiler.codegen.emitter import OdeProgram
from odegen.compiler.codegen.render import render_module
from odegen.errors import JitCompileError

# JIT toggle applied *only here*.

__all__ = ["CompiledOde", "compile_procedure", "jit_compile", "materialize"]


@dataclass(frozen=True)
class JittedCallable:
    fn: Callable
    jitted: bool


@dataclass(frozen=True)
class CompiledOde:
    """Invokable derivative procedure ``f(du, u, p, t) -> None``."""
    fn: Callable
    program: OdeProgram
    jitted: bool = False

    def __call__(self, du, u, p, t) -> None:
        self.fn(du, u, p, t)

    @property
    def source(self) -> str:
        return self.program.source

    def as_solve_ivp(self, p: Any) -> Callable[[float, np.ndarray], np.ndarray]:
        """
        Adapt to the ``f(t, y) -> dy`` convention of ``scipy.integrate.solve_ivp``.

        A fresh output array is allocated on every call; ``p`` is bound once.
        """
        fn = self.fn

        def rhs(t, y):
            dy = np.empty_like(y)
            fn(dy, y, p, t)
            return dy

        return rhs


def compile_procedure(program: OdeProgram) -> Callable:
    """Compile the rendered module in-process and return the plain Python function."""
    mod = render_module(program.procedure)
    ns: Dict[str, Any] = {}
    exec(compile(mod, f"<odegen-{program.name}>", "exec"), ns, ns)
    return ns[program.name]


def jit_compile(fn: Callable, *, jit: bool = True, boundscheck: bool = True) -> JittedCallable:
    """
    Centralized JIT compilation with consistent error handling.

    Behavior:
        - If jit=False: returns original Python function
        - If jit=True and compilation fails: raises JitCompileError with details

    Numba compiles lazily, so typing errors that depend on the argument
    types surface on the first call instead.
    """
    if not jit:
        return JittedCallable(fn=fn, jitted=False)
    try:
        compiled = njit(cache=False, boundscheck=boundscheck)(fn)
    except Exception as e:
        raise JitCompileError(getattr(fn, "__name__", "<anonymous>"), e) from e
    return JittedCallable(fn=compiled, jitted=True)


def materialize(program: OdeProgram, *, jit: bool = True) -> CompiledOde:
    """Turn an OdeProgram into a callable; the only place generated code is executed."""
    fn = compile_procedure(program)
    compiled = jit_compile(fn, jit=jit, boundscheck=program.check_bounds)
    return CompiledOde(fn=compiled.fn, program=program, jitted=compiled.jitted)
