# src/odegen/symbolic/__init__.py
from . import check, equations, indices

__all__ = ["check", "equations", "indices"]
