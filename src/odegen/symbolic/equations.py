# src/odegen/symbolic/equations.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Sequence, Tuple

import sympy as sp

from odegen.errors import StructureError
from odegen.symbolic.indices import declared_indices

__all__ = [
    "EquationKind",
    "Equation",
    "EquationSet",
    "equation",
    "build_equations",
    "as_equation_set",
    "ordered_indices",
]


class EquationKind(str, Enum):
    SCALAR = "scalar"
    INDEXED = "indexed"


def ordered_indices(expr: sp.Basic) -> Tuple[sp.Idx, ...]:
    """Return the ``Idx`` objects of ``expr`` in first-seen (preorder) order."""
    return declared_indices((expr,))


@dataclass(frozen=True)
class Equation:
    lhs: sp.Expr
    rhs: sp.Expr
    kind: EquationKind
    indices: Tuple[sp.Idx, ...]  # ordered index bindings of the lhs

    @property
    def depth(self) -> int:
        return len(self.indices)

    @property
    def is_indexed(self) -> bool:
        return self.kind is EquationKind.INDEXED


def equation(lhs: Any, rhs: Any) -> Equation:
    """Build an Equation and decide its kind from the indices bound on the lhs."""
    lhs = sp.sympify(lhs)
    rhs = sp.sympify(rhs)
    indices = ordered_indices(lhs)
    kind = EquationKind.INDEXED if indices else EquationKind.SCALAR
    return Equation(lhs=lhs, rhs=rhs, kind=kind, indices=indices)


@dataclass(frozen=True)
class EquationSet:
    """Ordered equations with pairwise distinct left-hand sides."""
    equations: Tuple[Equation, ...]

    def __post_init__(self) -> None:
        seen: set = set()
        for eq in self.equations:
            if eq.lhs in seen:
                raise StructureError(f"Duplicate left-hand side in equation set: {eq.lhs}")
            seen.add(eq.lhs)

    def __len__(self) -> int:
        return len(self.equations)

    def __iter__(self) -> Iterator[Equation]:
        return iter(self.equations)

    def __getitem__(self, i: int) -> Equation:
        return self.equations[i]

    @property
    def lhs(self) -> Tuple[sp.Expr, ...]:
        return tuple(eq.lhs for eq in self.equations)

    @property
    def rhs(self) -> Tuple[sp.Expr, ...]:
        return tuple(eq.rhs for eq in self.equations)

    @property
    def is_indexed(self) -> bool:
        return any(eq.is_indexed for eq in self.equations)

    @property
    def depth(self) -> int:
        return max((eq.depth for eq in self.equations), default=0)

    def scalars_first(self) -> "EquationSet":
        """Stable partition: scalar equations, then indexed ones, each in source order."""
        scalars = tuple(eq for eq in self.equations if not eq.is_indexed)
        indexed = tuple(eq for eq in self.equations if eq.is_indexed)
        return EquationSet(scalars + indexed)


def build_equations(lhs: Sequence[Any], rhs: Sequence[Any]) -> EquationSet:
    lhs = list(lhs)
    rhs = list(rhs)
    if len(lhs) != len(rhs):
        raise StructureError(
            f"Number of equations ({len(rhs)}) does not match number of states ({len(lhs)})"
        )
    return EquationSet(tuple(equation(l, r) for l, r in zip(lhs, rhs)))


def as_equation_set(eqs: EquationSet | Mapping[Any, Any] | Iterable[Any]) -> EquationSet:
    """Coerce an EquationSet, a {lhs: rhs} mapping or an iterable of pairs/Equations."""
    if isinstance(eqs, EquationSet):
        return eqs
    if isinstance(eqs, Mapping):
        return build_equations(list(eqs.keys()), list(eqs.values()))
    items = []
    for item in eqs:
        if isinstance(item, Equation):
            items.append(item)
        elif isinstance(item, sp.Eq):
            items.append(equation(item.lhs, item.rhs))
        else:
            try:
                lhs, rhs = item
            except (TypeError, ValueError) as e:
                raise StructureError(f"Expected an (lhs, rhs) pair, got {item!r}") from e
            items.append(equation(lhs, rhs))
    return EquationSet(tuple(items))
