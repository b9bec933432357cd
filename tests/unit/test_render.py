# tests/unit/test_render.py
import math

import numpy as np
import pytest

from odegen.compiler.codegen import ir
from odegen.compiler.codegen.render import render_module, render_source
from odegen.errors import UnsupportedShapeError

ARGS = ("du", "u", "p", "t")
i, j = ir.Name("i"), ir.Name("j")
p0 = ir.Access(ir.Name("p"), (ir.Const(0),))


def _du(k):
    return ir.Access(ir.Name("du"), (k,))


def _proc(*body):
    return ir.Procedure("ode", ARGS, tuple(body))


def test_signature_and_return():
    src = render_source(_proc(ir.Assign(_du(ir.Const(0)), ir.Const(1.0))))
    assert src.startswith("import numpy as np\n")
    assert "def ode(du, u, p, t):" in src
    assert "du[0] = 1.0" in src
    assert src.rstrip().endswith("return None")


def test_loop_over_parameter_bound():
    loop = ir.Loop("i", ir.Const(1), ir.Call("int", (p0,)), (ir.Assign(_du(ir.sub(i, ir.Const(1))), i),))
    src = render_source(_proc(loop))
    assert "for i in range(1, int(p[0]) + 1):" in src
    assert "du[i - 1] = i" in src


def test_indicator_rendering():
    cond = ir.Compare("==", i, j)
    assert "1.0 if i == j else 0.0" in render_source(_proc(ir.Assign(_du(ir.Const(0)), ir.Indicator(cond))))

    guarded = ir.BinOp("*", ir.Indicator(ir.Compare("!=", i, j)), ir.Access(ir.Name("u"), (j,)))
    assert "u[j] if i != j else 0.0" in render_source(_proc(ir.Assign(_du(ir.Const(0)), guarded)))


def test_special_constants():
    src = render_source(_proc(
        ir.Assign(_du(ir.Const(0)), ir.Const(math.nan)),
        ir.Assign(_du(ir.Const(1)), ir.Const(-math.inf)),
        ir.Assign(_du(ir.Const(2)), ir.Const(-2)),
    ))
    assert "du[0] = np.nan" in src
    assert "du[1] = -np.inf" in src
    assert "du[2] = -2" in src


def test_range_sum_is_hoisted():
    body = ir.Access(ir.Name("u"), (ir.sub(j, ir.Const(1)),))
    total = ir.RangeSum("j", ir.Const(1), ir.Const(3), body)
    proc = _proc(ir.Assign(_du(ir.Const(0)), ir.BinOp("*", ir.Const(2), total)))
    src = render_source(proc)
    assert "_acc0 = 0.0" in src
    assert "for j in range(1, 4):" in src
    assert "_acc0 += u[j - 1]" in src
    assert "du[0] = 2 * _acc0" in src

    ns = {}
    exec(compile(render_module(proc), "<test>", "exec"), ns, ns)
    du = np.zeros(1)
    ns["ode"](du, np.array([1.0, 2.0, 3.0]), (), 0.0)
    assert du[0] == pytest.approx(12.0)


@pytest.mark.parametrize(
    "node",
    [
        ir.Guarded(ir.Const(1), (ir.Compare("!=", i, j),)),
        ir.BoundedSum("j", ir.Const(1), ir.Const(2), j),
        ir.RangeSum("j", ir.Const(1), ir.Const(2), j, (ir.Compare("!=", i, j),)),
    ],
)
def test_unrewritten_nodes_are_rejected(node):
    with pytest.raises(UnsupportedShapeError):
        render_source(_proc(ir.Assign(_du(ir.Const(0)), node)))


def test_sum_in_conditional_arm_runs_under_its_condition():
    total = ir.RangeSum("j", ir.Const(1), ir.Const(3), ir.Access(ir.Name("u"), (ir.add(i, j),)))
    guarded = ir.BinOp("*", ir.Indicator(ir.Compare("==", i, ir.Const(0))), total)
    selected = ir.Select(ir.Compare("!=", i, ir.Const(0)), ir.Const(1.0), total)
    proc = _proc(ir.Loop("i", ir.Const(0), ir.Const(1), (
        ir.Assign(_du(i), guarded),
        ir.Assign(_du(ir.add(i, ir.Const(2))), selected),
    )))
    src = render_source(proc)
    assert "if i == 0:" in src
    assert "if not i != 0:" in src
    assert "_acc0 if i == 0 else 0.0" in src
    assert "1.0 if i != 0 else _acc1" in src

    ns = {}
    exec(compile(render_module(proc), "<test>", "exec"), ns, ns)
    du = np.zeros(4)
    # u has 4 entries: i + j would run past the end for i == 1 without the guard
    ns["ode"](du, np.array([1.0, 2.0, 3.0, 4.0]), (), 0.0)
    assert du == pytest.approx([9.0, 0.0, 9.0, 1.0])
