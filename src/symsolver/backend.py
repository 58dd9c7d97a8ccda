# symsolver/src/symsolver/backend.py
"""Capability boundary between the adapter and a sparse direct backend.

A backend is any callable that accepts a :class:`BackendSession`, performs the
job selected by ``session.job`` and writes its status to ``session.info[0]``.
This mirrors the classic single-entry-point protocol of multifrontal codes:

    session.job = Job.FACTORIZE
    backend(session)
    if session.info[INFO_STATUS] < 0: ...

The adapter depends only on this contract. Control and result slots use
zero-based indices into fixed-size arrays; their meaning is given by the
constants below.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Final, Protocol

import numpy as np
from numpy.typing import NDArray

# =============================================================================
# Jobs
# =============================================================================


class Job(enum.IntEnum):
    """Job codes understood by a backend."""

    NONE = 0
    INITIALIZE = -1
    TERMINATE = -2
    ANALYZE = 1
    FACTORIZE = 2
    SOLVE = 3


# Matrix type: general symmetric (indefinite).
SYM_GENERAL_SYMMETRIC: Final[int] = 2
# The host process takes part in the factorization.
PAR_HOST_WORKING: Final[int] = 1

# =============================================================================
# Control slots
# =============================================================================

ICNTL_SIZE: Final[int] = 40
CNTL_SIZE: Final[int] = 15
INFO_SIZE: Final[int] = 40
INFOG_SIZE: Final[int] = 80
RINFOG_SIZE: Final[int] = 40

# Largest value an integer control slot can hold.
ICNTL_MAX: Final[int] = int(np.iinfo(np.intc).max)

ICNTL_ERROR_STREAM: Final[int] = 0
ICNTL_DIAGNOSTIC_STREAM: Final[int] = 1
ICNTL_GLOBAL_STREAM: Final[int] = 2
ICNTL_PRINT_LEVEL: Final[int] = 3
ICNTL_COLUMN_PERMUTATION: Final[int] = 5
ICNTL_ORDERING: Final[int] = 6
ICNTL_SCALING: Final[int] = 7
ICNTL_REFINEMENT: Final[int] = 9
ICNTL_INERTIA_SAFETY: Final[int] = 12
ICNTL_MEMORY_PERCENT: Final[int] = 13

CNTL_PIVOT_TOLERANCE: Final[int] = 0
CNTL_NULL_PIVOT: Final[int] = 2

ORDERING_AMD: Final[int] = 0
ORDERING_AUTOMATIC: Final[int] = 7

# =============================================================================
# Result slots and codes
# =============================================================================

INFO_STATUS: Final[int] = 0
INFOG_STATUS: Final[int] = 0
INFO_REQUIRED_SIZE: Final[int] = 1
INFOG_NEGATIVE_PIVOTS: Final[int] = 11
INFOG_ESTIMATED_FACTOR_ENTRIES: Final[int] = 19
INFOG_FACTOR_ENTRIES: Final[int] = 28
RINFOG_PIVOT_TOLERANCE: Final[int] = 0

STATUS_OK: Final[int] = 0
STATUS_BAD_NZ: Final[int] = -2
STATUS_INVALID_JOB: Final[int] = -3
STATUS_STRUCTURALLY_SINGULAR: Final[int] = -6
STATUS_INTEGER_WORKSPACE_TOO_SMALL: Final[int] = -8
STATUS_REAL_WORKSPACE_TOO_SMALL: Final[int] = -9
STATUS_NUMERICALLY_SINGULAR: Final[int] = -10
STATUS_BAD_ORDER: Final[int] = -16
STATUS_INVALID_ARRAY: Final[int] = -22

MEMORY_STATUSES: Final[frozenset[int]] = frozenset(
    {STATUS_INTEGER_WORKSPACE_TOO_SMALL, STATUS_REAL_WORKSPACE_TOO_SMALL}
)


# =============================================================================
# Session
# =============================================================================


def _zeros_int(size: int) -> NDArray[np.intc]:
    return np.zeros(size, dtype=np.intc)


def _zeros_real(size: int) -> NDArray[np.float64]:
    return np.zeros(size, dtype=np.float64)


@dataclass(slots=True)
class BackendSession:
    """Opaque-to-the-caller backend context shared by all phases.

    The adapter owns exactly one session. Index arrays are borrowed from the
    caller, the value array is adapter-owned, and `rhs` is a view into the
    caller's right-hand-side buffer that the backend overwrites in place.

    Attributes:
        job: Job code of the next backend call.
        sym: Matrix type.
        par: Host participation mode.
        n: Matrix order.
        nz: Number of stored entries.
        irn: Zero-based row indices of the stored entries.
        jcn: Zero-based column indices of the stored entries.
        a: Values of the stored entries.
        rhs: Right-hand side, overwritten by the solution.
        icntl: Integer controls.
        cntl: Real controls.
        info: Local integer results; `info[0]` is the job status.
        infog: Global integer results; `infog[11]` is the negative pivot count.
        rinfog: Global real results.
    """

    job: int = Job.NONE
    sym: int = SYM_GENERAL_SYMMETRIC
    par: int = PAR_HOST_WORKING
    n: int = 0
    nz: int = 0
    irn: NDArray[np.integer] | None = None
    jcn: NDArray[np.integer] | None = None
    a: NDArray[np.float64] | None = None
    rhs: NDArray[np.float64] | None = None
    icntl: NDArray[np.intc] = field(default_factory=lambda: _zeros_int(ICNTL_SIZE))
    cntl: NDArray[np.float64] = field(default_factory=lambda: _zeros_real(CNTL_SIZE))
    info: NDArray[np.intc] = field(default_factory=lambda: _zeros_int(INFO_SIZE))
    infog: NDArray[np.intc] = field(default_factory=lambda: _zeros_int(INFOG_SIZE))
    rinfog: NDArray[np.float64] = field(
        default_factory=lambda: _zeros_real(RINFOG_SIZE)
    )

    @property
    def status(self) -> int:
        """Return the status code of the last job."""
        return int(self.info[INFO_STATUS])

    def set_status(self, code: int) -> None:
        """Record a job status in both the local and the global result slot."""
        self.info[INFO_STATUS] = code
        self.infog[INFOG_STATUS] = code


class SymmetricBackend(Protocol):
    """Minimal backend interface required by the adapter."""

    def __call__(self, session: BackendSession) -> None:
        """Run ``session.job`` and report the outcome in ``session.info``."""
        ...


def run_job(backend: SymmetricBackend, session: BackendSession, job: Job) -> int:
    """Select a job, invoke the backend once, and return its status code.

    Args:
        backend: Backend to drive.
        session: Session to run the job on.
        job: Job to run.

    Returns:
        The backend status code (negative on failure).
    """
    session.job = job
    session.set_status(STATUS_OK)
    backend(session)
    return session.status
