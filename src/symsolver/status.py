# symsolver/src/symsolver/status.py
"""Outcome taxonomy shared by every phase of the solver adapter.

Numerical conditions that the calling algorithm is expected to handle are
reported as a status, never raised. Contract violations are exceptions (see
:mod:`symsolver.errors`).
"""

from __future__ import annotations

import enum


class SymSolverStatus(enum.Enum):
    """Closed set of outcomes returned by the adapter phase operations.

    Attributes:
        SUCCESS: The phase completed.
        SINGULAR: The matrix is structurally or numerically singular. The caller
            may perturb the matrix and try again.
        WRONG_INERTIA: The factorization succeeded but the number of negative
            eigenvalues does not match the expectation. The caller may modify
            the matrix and try again.
        CALL_AGAIN: No work was performed. The caller must supply the (possibly
            unchanged) values again and repeat the call.
        FATAL_ERROR: Backend failure not covered above, or exhausted workspace
            growth. Not recoverable within the adapter.
    """

    SUCCESS = "success"
    SINGULAR = "singular"
    WRONG_INERTIA = "wrong_inertia"
    CALL_AGAIN = "call_again"
    FATAL_ERROR = "fatal_error"

    @property
    def is_recoverable(self) -> bool:
        """Return True for outcomes the caller can act on without aborting."""
        return self is not SymSolverStatus.FATAL_ERROR
