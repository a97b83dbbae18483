# -*- coding: utf-8 -*-
"""Boundary representation modeling kernel.

Parametric curves and surfaces, a topological entity graph, constraint and
degree-of-freedom bookkeeping, validation and tessellation.
"""
from importlib.metadata import PackageNotFoundError, version


try:
    __version__ = version("brepcore")
except PackageNotFoundError:  # pragma: no cover - handled when package not installed
    __version__ = "unknown"
