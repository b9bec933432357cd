# tests/integration/test_indexed_generation.py
import numpy as np
import pytest
import sympy as sp

from odegen import (
    MissingSymbolsError,
    StructureError,
    UnsupportedShapeError,
    build_procedure,
    family,
    generate_procedure,
    index,
    materialize,
    site_sum,
)

i = index("i", 1, 2)
j = index("j", 1, 2)
n = family("n")
J = family("J")
a, g = sp.symbols("a g")


def _coupling(i, j):
    return site_sum(J[i, j] * (n[j] - n[i]), j, unequal_to=i)


def test_two_site_coupling():
    f = generate_procedure([(n[i], _coupling(i, j))], [J], jit=False)
    du = np.zeros(2)
    f(du, np.array([1.0, 0.5]), (np.ones((2, 2)),), 0.0)
    assert du == pytest.approx([-0.5, 0.5])


def test_two_site_coupling_jit_parity():
    u = np.array([1.0, 0.5])
    p = (np.ones((2, 2)),)
    out = []
    for jit in (False, True):
        f = generate_procedure([(n[i], _coupling(i, j))], [J], jit=jit)
        du = np.zeros(2)
        f(du, u, p, 0.0)
        out.append(du)
    assert out[1] == pytest.approx(out[0])


def test_emitted_loop_shape():
    src = build_procedure([(n[i], _coupling(i, j))], [J]).source
    assert "for i in range(1, 3):" in src
    assert "_acc0 = 0.0" in src
    assert "for j in range(1, 3):" in src
    assert "else 0.0" in src
    assert "du[i - 1] = _acc0" in src


def test_scalars_lead_the_layout():
    eqs = [(n[i], _coupling(i, j)), (a, -g * a)]
    prog = build_procedure(eqs, [g, J])
    scalar, fam = prog.states
    assert scalar.lhs == a and scalar.start == 0 and scalar.size == 1
    assert fam.lhs == n[i]
    assert fam.start == 1 and fam.size == 2
    assert fam.index == i
    assert prog.n_states == 3

    f = materialize(prog, jit=False)
    du = np.zeros(3)
    f(du, np.array([2.0, 1.0, 0.5]), (0.3, np.ones((2, 2))), 0.0)
    assert du == pytest.approx([-0.6, -0.5, 0.5])


def test_scalar_reads_family_entry():
    eqs = [(a, -n[1] * a), (n[i], -n[i])]
    f = generate_procedure(eqs, jit=False)
    du = np.zeros(3)
    f(du, np.array([2.0, 3.0, 4.0]), (), 0.0)
    assert du == pytest.approx([-6.0, -3.0, -4.0])


def test_two_families_share_one_loop():
    k = index("k", 1, 2)
    m = family("m")
    prog = build_procedure([(n[i], -m[i]), (m[k], n[k])])
    assert [(s.lhs, s.start) for s in prog.states] == [(n[i], 0), (m[i], 2)]
    f = materialize(prog, jit=False)
    du = np.zeros(4)
    f(du, np.array([1.0, 2.0, 3.0, 4.0]), (), 0.0)
    assert du == pytest.approx([-3.0, -4.0, 1.0, 2.0])


def test_neighbour_offsets():
    ring = index("i", 1, 4)
    eqs = [(n[ring], sp.Piecewise((n[ring + 1], sp.Ne(ring, 4)), (0, True)) - n[ring])]
    f = generate_procedure(eqs, jit=False)
    du = np.zeros(4)
    f(du, np.array([1.0, 2.0, 4.0, 8.0]), (), 0.0)
    assert du == pytest.approx([1.0, 2.0, 4.0, -8.0])


def test_parameter_backed_bounds():
    N = sp.Symbol("N", integer=True, positive=True)
    iN, jN = index("i", 1, N), index("j", 1, N)
    prog = build_procedure([(n[iN], _coupling(iN, jN))], [N, J])
    assert "range(1, int(p[0]) + 1)" in prog.source
    assert prog.n_states == N

    f = materialize(prog, jit=False)
    du = np.zeros(3)
    f(du, np.array([1.0, 0.5, 0.0]), (3, np.ones((3, 3))), 0.0)
    assert du == pytest.approx([-1.5, 0.0, 1.5])

    du = np.zeros(2)
    f(du, np.array([1.0, 0.5]), (2, np.ones((2, 2))), 0.0)
    assert du == pytest.approx([-0.5, 0.5])


def test_unresolved_bound_fails_on_first_call():
    M = sp.Symbol("M")
    iM = index("i", 1, M)
    with pytest.warns(RuntimeWarning, match="unresolved names M") as rec:
        prog = build_procedure([(n[iM], -n[iM])])
    assert rec[0].filename == __file__
    f = materialize(prog, jit=False)
    with pytest.raises(NameError):
        f(np.zeros(2), np.ones(2), (), 0.0)


def test_depth_two_is_unsupported():
    x = family("x")
    with pytest.raises(UnsupportedShapeError, match="only one index level"):
        build_procedure([(x[i, j], -x[i, j])])


def test_unknown_family_is_missing():
    m = family("m")
    with pytest.raises(MissingSymbolsError) as exc:
        build_procedure([(n[i], -n[i] + m[i])])
    assert exc.value.symbols == [m]


def test_unknown_family_zero_filled():
    m = family("m")
    s = sp.Symbol("s")
    with pytest.warns(RuntimeWarning, match="Neglecting unknown symbols") as rec:
        f = generate_procedure([(n[i], -n[i] + m[i] + s)], set_unknowns_zero=True, jit=False)
    assert rec[0].filename == __file__
    assert "0[" not in f.source
    du = np.zeros(2)
    f(du, np.array([1.0, 0.5]), (), 0.0)
    assert du == pytest.approx([-1.0, -0.5])


def test_stray_index_is_structural_error():
    k = index("k", 1, 2)
    with pytest.raises(StructureError, match="bound neither"):
        build_procedure([(n[i], -n[k])])


def test_mismatched_family_ranges():
    k = index("k", 1, 3)
    m = family("m")
    with pytest.raises(StructureError, match="share one range"):
        build_procedure([(n[i], -n[i]), (m[k], -m[k])])


def test_concrete_lhs_entry_of_family():
    with pytest.raises(StructureError, match="concrete entry"):
        build_procedure([(n[i], -n[i]), (n[1], 0)])


def test_reference_over_incompatible_range():
    k = index("k", 1, 3)
    with pytest.raises(StructureError, match="declared over"):
        build_procedure([(n[i], sp.Sum(n[k], (k, 1, 3)))])


def test_relabeling_budget():
    with pytest.raises(StructureError, match="max_relabelings"):
        build_procedure([(n[i], _coupling(i, j))], [J], max_relabelings=1)


@pytest.mark.parametrize("jit", [False, True])
def test_sum_under_guard_skips_dead_sites(jit):
    s = index("s", 1, 4)
    r = index("r", 1, 4)
    rhs = sp.Piecewise((sp.Sum(J[s, r] * n[s + 1], (r, 1, 4)), sp.Ne(s, 4)), (0, True))
    f = generate_procedure([(n[s], rhs)], [J], jit=jit)
    du = np.zeros(4)
    f(du, np.array([1.0, 2.0, 3.0, 4.0]), (np.ones((4, 4)),), 0.0)
    assert du == pytest.approx([8.0, 12.0, 16.0, 0.0])
