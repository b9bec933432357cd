# src/odegen/errors.py
from __future__ import annotations
from typing import Iterable, List

__all__ = [
    "OdegenError",
    "ConfigError",
    "MissingSymbolsError",
    "StructureError",
    "UnsupportedShapeError",
    "JitCompileError",
]

class OdegenError(Exception):
    """Base error for the odegen package."""


class ConfigError(OdegenError):
    """Raised when naming tokens or build options are malformed."""
    def __init__(self, message: str):
        super().__init__(message)


class MissingSymbolsError(OdegenError):
    """Raised when a right-hand side references symbols that are neither states nor parameters."""
    def __init__(self, symbols: Iterable[object]):
        self.symbols: List[object] = list(symbols)
        msg = "The following symbols (either parameters or states) are missing: "
        msg += " ".join(str(s) for s in self.symbols)
        msg += "\n"
        msg += "If you want to neglect those, pass set_unknowns_zero=True."
        super().__init__(msg)


class StructureError(OdegenError):
    """Raised when an equation set is inconsistent (counts, duplicates, index families)."""
    def __init__(self, message: str):
        super().__init__(message)


class UnsupportedShapeError(OdegenError):
    """Raised for shapes the compiler refuses to emit (nested loops, unknown constructs)."""
    def __init__(self, message: str):
        super().__init__(message)


class JitCompileError(OdegenError):
    """Raised when numba is available but compiling a generated procedure fails."""
    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        msg = f"JIT compilation of '{name}' with numba failed: "
        msg += f"{type(cause).__name__}: {cause}"
        super().__init__(msg)
