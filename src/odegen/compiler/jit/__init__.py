# src/odegen/compiler/jit/__init__.py
