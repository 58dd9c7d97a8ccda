# symsolver/src/symsolver/errors.py
"""Error types for symsolver.

Numerical conditions (singular matrix, wrong inertia) are statuses, not
exceptions; everything raised from here is a usage or setup error. Each error
also subclasses the builtin a caller would naturally catch.

The MUMPS backend is optional. :func:`mumps_backend_availability` reports
which of its modules are missing without importing them, and
:class:`~symsolver.backends.mumps.MumpsBackend` calls
:func:`require_mumps_backend` on construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib.util import find_spec
from typing import Final

_MUMPS_MODULES: Final[tuple[str, ...]] = ("mumps", "mpi4py")

_MUMPS_INSTALL_HINT: Final[str] = (
    "Both come with the 'mumps' extra, which also needs a MUMPS library the\n"
    "PyMUMPS build can link against:\n"
    "  pip install 'symsolver[mumps]'"
)


class SymSolverError(Exception):
    """Base exception for symsolver usage and setup errors."""


class OptionalDependencyMissingError(SymSolverError, ImportError):
    """Raised when an optional dependency is required but missing."""


class BackendInitializationError(SymSolverError, RuntimeError):
    """Raised when the backend rejects its one-time initialization job."""


class OptionInvalidError(SymSolverError, ValueError):
    """Raised when adapter options are invalid or inconsistent."""


class InvalidWarmStartError(SymSolverError, RuntimeError):
    """Raised when a warm start is requested but the structure does not allow it."""


class StructureMismatchError(SymSolverError, ValueError):
    """Raised when pattern arrays or sizes disagree with the bound structure."""


class SolverUsageError(SymSolverError, RuntimeError):
    """Raised when the phase protocol is driven out of order."""


class SolverClosedError(SolverUsageError):
    """Raised when an operation is attempted on a closed adapter."""


class InertiaUnavailableError(SolverUsageError):
    """Raised when inertia is queried before any factorization reported it."""


@dataclass(frozen=True, slots=True)
class BackendAvailability:
    """Which Python modules an optional backend imports are missing."""

    backend: str
    missing: tuple[str, ...] = ()

    @property
    def is_available(self) -> bool:
        return not self.missing


def mumps_backend_availability() -> BackendAvailability:
    """Look up the modules ``MumpsBackend`` imports without importing them.

    PyMUMPS imports mpi4py on load, so both must resolve.

    Returns:
        BackendAvailability naming the modules that cannot be found.
    """
    missing = tuple(name for name in _MUMPS_MODULES if find_spec(name) is None)
    return BackendAvailability(backend="mumps", missing=missing)


def require_mumps_backend() -> None:
    """Fail fast when ``MumpsBackend`` cannot import its binding.

    Raises:
        OptionalDependencyMissingError: Naming every missing module.
    """
    availability = mumps_backend_availability()
    if availability.is_available:
        return

    msg = (
        "MumpsBackend cannot run: no module named "
        f"{', '.join(repr(name) for name in availability.missing)}.\n\n"
        f"{_MUMPS_INSTALL_HINT}"
    )
    raise OptionalDependencyMissingError(msg)


def raise_invalid_warm_start(*, reason: str) -> None:
    """Raise a standardized InvalidWarmStartError.

    Args:
        reason: Human-readable reason the warm start cannot proceed.

    Raises:
        InvalidWarmStartError: Always.
    """
    msg = (
        "Solver called with warm_start_same_structure, but "
        f"{reason}\n\n"
        "Disable warm_start_same_structure when the problem is solved for the "
        "first time or when its sparsity structure changes."
    )
    raise InvalidWarmStartError(msg)


def raise_structure_mismatch(*, name: str, expected: str, got: object) -> None:
    """Raise a standardized StructureMismatchError.

    Args:
        name: Name of the object with the mismatch.
        expected: Human-readable expected value description.
        got: Actual observed value.

    Raises:
        StructureMismatchError: Always.
    """
    msg = (
        f"{name} does not match the bound structure. "
        f"Expected {expected}. Got: {got!r}."
    )
    raise StructureMismatchError(msg)
