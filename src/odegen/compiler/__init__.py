# src/odegen/compiler/__init__.py
