# src/odegen/config.py
from __future__ import annotations
from dataclasses import dataclass
import keyword

from odegen.errors import ConfigError

__all__ = ["CodegenNames", "BuildOptions", "RESERVED_NAMES", "ACC_PREFIX"]

# Names the generated module binds on its own (module imports, builtins, hoisted sums).
RESERVED_NAMES = frozenset({"np", "range", "int", "float", "abs"})
ACC_PREFIX = "_acc"


def _check_token(kind: str, token: str) -> None:
    if not isinstance(token, str) or not token.isidentifier() or keyword.iskeyword(token):
        raise ConfigError(f"{kind} token must be a valid Python identifier, got {token!r}")
    if token in RESERVED_NAMES or token.startswith(ACC_PREFIX):
        raise ConfigError(f"{kind} token {token!r} clashes with a name used by generated code")


@dataclass(frozen=True)
class CodegenNames:
    """Identifiers used for the arguments of the generated procedure.

    The derivative argument is always ``"d" + usym``, so the emitted
    signature is ``(du, u, p, t)`` with the defaults.
    """
    usym: str = "u"
    psym: str = "p"
    tsym: str = "t"

    def __post_init__(self) -> None:
        _check_token("state", self.usym)
        _check_token("parameter", self.psym)
        _check_token("time", self.tsym)
        tokens = self.arguments
        if len(set(tokens)) != len(tokens):
            raise ConfigError(f"Naming tokens must be distinct, got {tokens}")

    @property
    def dusym(self) -> str:
        return f"d{self.usym}"

    @property
    def arguments(self) -> tuple[str, str, str, str]:
        return (self.dusym, self.usym, self.psym, self.tsym)


@dataclass(frozen=True)
class BuildOptions:
    set_unknowns_zero: bool = False
    # False lets numba skip index checks inside the generated body
    check_bounds: bool = True
    # upper bound on (index families x declared indices) explored by the relabeling pass
    max_relabelings: int = 100_000

    def __post_init__(self) -> None:
        if int(self.max_relabelings) < 1:
            raise ConfigError(f"max_relabelings must be positive, got {self.max_relabelings}")
