# tests/unit/test_config_errors.py
import pytest
import sympy as sp

from odegen.config import BuildOptions, CodegenNames
from odegen.errors import (
    ConfigError,
    JitCompileError,
    MissingSymbolsError,
    OdegenError,
    StructureError,
    UnsupportedShapeError,
)


def test_default_names():
    names = CodegenNames()
    assert names.arguments == ("du", "u", "p", "t")


def test_derivative_name_follows_state_name():
    names = CodegenNames(usym="x", psym="q", tsym="s")
    assert names.dusym == "dx"
    assert names.arguments == ("dx", "x", "q", "s")


@pytest.mark.parametrize("usym", ["1u", "for", "np", "range", "_acc0", ""])
def test_invalid_state_token(usym):
    with pytest.raises(ConfigError):
        CodegenNames(usym=usym)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(usym="p"),
        dict(tsym="u"),
        dict(tsym="du"),
    ],
)
def test_tokens_must_be_distinct(kwargs):
    with pytest.raises(ConfigError, match="distinct"):
        CodegenNames(**kwargs)


def test_build_options_defaults():
    opts = BuildOptions()
    assert opts.set_unknowns_zero is False
    assert opts.check_bounds is True
    assert opts.max_relabelings == 100_000


def test_build_options_rejects_non_positive_budget():
    with pytest.raises(ConfigError):
        BuildOptions(max_relabelings=0)


def test_error_hierarchy():
    for cls in (ConfigError, MissingSymbolsError, StructureError, UnsupportedShapeError, JitCompileError):
        assert issubclass(cls, OdegenError)


def test_missing_symbols_message():
    s, r = sp.symbols("s r")
    err = MissingSymbolsError([s, r])
    assert err.symbols == [s, r]
    text = str(err)
    assert "missing: s r" in text
    assert "set_unknowns_zero=True" in text


def test_jit_compile_error_message():
    err = JitCompileError("ode", TypeError("bad types"))
    assert "'ode'" in str(err)
    assert "TypeError: bad types" in str(err)
    assert isinstance(err.cause, TypeError)
