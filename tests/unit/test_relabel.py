# tests/unit/test_relabel.py
import pytest
import sympy as sp

from odegen.compiler.codegen import ir
from odegen.compiler.codegen.lower import Lowerer
from odegen.compiler.codegen.relabel import FamilyLayout, RelabelEngine, same_range
from odegen.errors import StructureError
from odegen.symbolic.indices import family, index

i = index("i", 1, 3)
j = index("j", 1, 3)
k = index("k", 1, 5)
n = family("n")


def _engine(max_relabelings=100):
    fam = FamilyLayout(template=n[i], index=i, position=0, start=sp.Integer(2), size=sp.Integer(3))
    engine = RelabelEngine(
        [fam], (i, j, k), usym="u", bounds=Lowerer({}), max_relabelings=max_relabelings
    )
    return fam, engine


def test_same_range():
    assert same_range(i, j)
    assert not same_range(i, k)


def test_family_layout_base():
    fam, _ = _engine()
    assert fam.base == n


def test_rule_table_covers_same_range_indices():
    _, engine = _engine()
    assert len(engine) == 2
    assert engine.lookup(n[k]) is None


def test_relabeled_location():
    _, engine = _engine()
    # u[start + (j - lower)] = u[j + 1]
    expected = ir.Access(ir.Name("u"), (ir.BinOp("+", ir.Name("j"), ir.Const(1)),))
    assert engine.lookup(n[j]) == expected
    assert engine.owns(n)
    assert not engine.owns(family("m"))


def test_literal_index_resolves_through_base():
    _, engine = _engine()
    assert engine.resolve(n[2], Lowerer({})) == ir.Access(ir.Name("u"), (ir.Const(3),))


def test_incompatible_range_is_structural_error():
    _, engine = _engine()
    with pytest.raises(StructureError, match="declared over"):
        engine.resolve(n[k], Lowerer({}))


def test_wrong_index_count():
    _, engine = _engine()
    with pytest.raises(StructureError, match="uses 2 indices"):
        engine.resolve(n[1, 2], Lowerer({}))


def test_relabeling_budget():
    with pytest.raises(StructureError, match="max_relabelings"):
        _engine(max_relabelings=2)
