# tests/unit/test_equation_set.py
import pytest
import sympy as sp

from odegen.errors import StructureError
from odegen.symbolic.indices import declared_indices, family, free_indices, index, site_sum, unequal
from odegen.symbolic.equations import (
    EquationKind,
    EquationSet,
    as_equation_set,
    build_equations,
    equation,
    ordered_indices,
)

a, b, g = sp.symbols("a b g")
i = index("i", 1, 3)
j = index("j", 1, 3)
n = family("n")
x = family("x")


def test_equation_kind_is_decided_once():
    scalar = equation(a, -g * a)
    indexed = equation(n[i], -n[i])
    assert scalar.kind is EquationKind.SCALAR
    assert not scalar.is_indexed and scalar.depth == 0
    assert indexed.kind is EquationKind.INDEXED
    assert indexed.indices == (i,)
    assert indexed.depth == 1


def test_ordered_indices_follow_lhs_order():
    assert ordered_indices(x[i, j]) == (i, j)
    assert ordered_indices(x[j, i]) == (j, i)
    assert equation(x[i, j], 0).depth == 2


def test_equation_set_rejects_duplicate_lhs():
    with pytest.raises(StructureError, match="Duplicate"):
        EquationSet((equation(a, 1), equation(a, 2)))


def test_build_equations_count_mismatch():
    with pytest.raises(StructureError, match="does not match"):
        build_equations([a, b], [a])


def test_scalars_first_is_stable():
    eqs = build_equations([n[i], a, x[i], b], [0, 1, 2, 3])
    ordered = eqs.scalars_first()
    assert ordered.lhs == (a, b, n[i], x[i])
    # original order is kept on the input
    assert eqs.lhs == (n[i], a, x[i], b)


def test_equation_set_properties():
    eqs = build_equations([a, n[i]], [-a, -n[i]])
    assert len(eqs) == 2
    assert eqs.is_indexed
    assert eqs.depth == 1
    assert eqs[0].lhs == a
    assert [eq.lhs for eq in eqs] == [a, n[i]]
    assert not build_equations([a], [-a]).is_indexed


def test_as_equation_set_accepts_several_forms():
    from_pairs = as_equation_set([(a, -g * a), (b, a)])
    from_eqs = as_equation_set([sp.Eq(a, -g * a), sp.Eq(b, a)])
    from_map = as_equation_set({a: -g * a, b: a})
    assert from_pairs == from_eqs == from_map
    assert as_equation_set(from_pairs) is from_pairs


def test_as_equation_set_rejects_malformed_items():
    with pytest.raises(StructureError, match="pair"):
        as_equation_set([a])


def test_unequal_builds_guarded_piecewise():
    term = unequal(n[j], (i, j))
    assert isinstance(term, sp.Piecewise)
    assert term.args[1].expr == 0
    assert unequal(n[j]) == n[j]


def test_site_sum_binds_its_index():
    total = site_sum(n[j] - n[i], j, unequal_to=i)
    assert isinstance(total, sp.Sum)
    assert free_indices(total) == (i,)
    assert set(declared_indices([total])) == {i, j}
