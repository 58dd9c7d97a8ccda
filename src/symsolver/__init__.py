"""symsolver: adaptive control of sparse symmetric-indefinite direct solvers."""

from __future__ import annotations

import logging

from .adapter import JournalSink, SymmetricSolverAdapter
from .backend import BackendSession, Job, SymmetricBackend
from .backends import MumpsBackend, ScipyLDLBackend
from .config import MAX_MEMORY_RETRIES, AdapterOptions, QualityParameters
from .errors import (
    BackendInitializationError,
    InertiaUnavailableError,
    InvalidWarmStartError,
    OptionalDependencyMissingError,
    OptionInvalidError,
    SolverClosedError,
    SolverUsageError,
    StructureMismatchError,
    SymSolverError,
)
from .status import SymSolverStatus

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "MAX_MEMORY_RETRIES",
    "AdapterOptions",
    "BackendInitializationError",
    "BackendSession",
    "InertiaUnavailableError",
    "InvalidWarmStartError",
    "Job",
    "JournalSink",
    "MumpsBackend",
    "OptionInvalidError",
    "OptionalDependencyMissingError",
    "QualityParameters",
    "ScipyLDLBackend",
    "SolverClosedError",
    "SolverUsageError",
    "StructureMismatchError",
    "SymSolverError",
    "SymSolverStatus",
    "SymmetricBackend",
    "SymmetricSolverAdapter",
]

__version__ = "0.1.0"
