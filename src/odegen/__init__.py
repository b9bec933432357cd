# src/odegen/__init__.py
from __future__ import annotations

from .compiler.build import (
    build_procedure, build_procedure_from_lists, generate_procedure, export_program_source,
)
from .compiler.codegen.emitter import OdeProgram, StateSlot
from .compiler.jit.compile import CompiledOde, materialize
from .config import BuildOptions, CodegenNames
from .errors import (
    OdegenError, ConfigError, MissingSymbolsError, StructureError,
    UnsupportedShapeError, JitCompileError,
)
from .symbolic.check import check_missing, check_missing_indexed, missing_symbols, remove_unknowns
from .symbolic.indices import index, family, unequal, site_sum
from .symbolic.equations import Equation, EquationKind, EquationSet, equation, build_equations

__all__ = [
    # Core entry points
    "build_procedure", "build_procedure_from_lists", "generate_procedure", "materialize",
    "export_program_source",
    # Results
    "OdeProgram", "StateSlot", "CompiledOde",
    # Equations and indices
    "Equation", "EquationKind", "EquationSet", "equation", "build_equations",
    "index", "family", "unequal", "site_sum",
    # Validation
    "check_missing", "check_missing_indexed", "missing_symbols", "remove_unknowns",
    # Configuration
    "BuildOptions", "CodegenNames",
    # Errors
    "OdegenError", "ConfigError", "MissingSymbolsError", "StructureError",
    "UnsupportedShapeError", "JitCompileError",
]
