# src/odegen/compiler/codegen/__init__.py
from . import emitter, flat, indexed, ir, lower, passes, relabel, render

__all__ = ["emitter", "flat", "indexed", "ir", "lower", "passes", "relabel", "render"]
