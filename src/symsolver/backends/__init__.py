"""Backends implementing the symsolver job protocol."""

from __future__ import annotations

from .ldl import ScipyLDLBackend
from .mumps import MumpsBackend

__all__ = [
    "MumpsBackend",
    "ScipyLDLBackend",
]
