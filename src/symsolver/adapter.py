# symsolver/src/symsolver/adapter.py
"""Adaptive control layer around a sparse symmetric-indefinite direct solver.

An optimization algorithm factors one matrix per iteration, usually with an
unchanged nonzero pattern, and needs the inertia of each factorization to
certify curvature conditions. :class:`SymmetricSolverAdapter` drives a
backend (see :mod:`symsolver.backend`) through four phases:

    1. structure setup      initialize_structure(...)   once per pattern
    2. symbolic analysis    (internal)                  pattern only
    3. numeric factorization (internal)                 once per new values
    4. triangular solve     multi_solve(...)            every call

and owns the policy around them:

- the pattern is analyzed once and reused for every numeric refactorization;
- a backend memory underestimate is recovered by doubling the workspace
  control and refactoring, a bounded number of times;
- quality escalation (:meth:`SymmetricSolverAdapter.increase_quality`) raises
  the pivot tolerance, and the next solve on an unchanged matrix answers
  ``CALL_AGAIN`` so the caller re-supplies values before the refactorization;
- singular and wrong-inertia matrices are reported as statuses, not raised.

Typical call sequence:

    adapter = SymmetricSolverAdapter(ScipyLDLBackend(), {"pivot_tolerance": 1e-6})
    adapter.initialize_structure(n, nz, irn, jcn)
    adapter.values[:] = a
    status = adapter.multi_solve(True, irn, jcn, 1, rhs)

Usage errors (mismatched arrays, broken warm starts, phases out of order) are
exceptions from :mod:`symsolver.errors`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Final, Protocol

import numpy as np
from numpy.typing import NDArray

from .backend import (
    CNTL_PIVOT_TOLERANCE,
    ICNTL_COLUMN_PERMUTATION,
    ICNTL_DIAGNOSTIC_STREAM,
    ICNTL_GLOBAL_STREAM,
    ICNTL_INERTIA_SAFETY,
    ICNTL_MAX,
    ICNTL_MEMORY_PERCENT,
    ICNTL_ORDERING,
    ICNTL_PRINT_LEVEL,
    ICNTL_REFINEMENT,
    ICNTL_SCALING,
    INFOG_NEGATIVE_PIVOTS,
    MEMORY_STATUSES,
    ORDERING_AMD,
    STATUS_NUMERICALLY_SINGULAR,
    STATUS_STRUCTURALLY_SINGULAR,
    BackendSession,
    Job,
    SymmetricBackend,
    run_job,
)
from .config import AdapterOptions, QualityParameters, coerce_options
from .errors import (
    BackendInitializationError,
    InertiaUnavailableError,
    SolverClosedError,
    SolverUsageError,
    raise_invalid_warm_start,
    raise_structure_mismatch,
)
from .status import SymSolverStatus

if TYPE_CHECKING:
    from types import TracebackType

_LOGGER_NAME: Final[str] = "symsolver.adapter"

# =============================================================================
# Errors / messages
# =============================================================================

_CLOSED_MSG = "The solver adapter has been closed"
_NOT_INITIALIZED_MSG = "initialize_structure must be called before multi_solve"
_NO_VALUES_MSG = "No value buffer: initialize_structure has not been called"
_NO_FACTORIZATION_MSG = (
    "multi_solve called with matrix_changed=False, but the current values have "
    "no successful factorization"
)
_NO_INERTIA_MSG = "No factorization has reported the inertia yet"
_INIT_FAILED_MSG = "Backend initialization failed with status {status}"
_BOUND_ARRAY = "the array bound by initialize_structure"

# Fixed controls for symbolic analysis.
_ANALYSIS_CONTROLS: Final[dict[int, int]] = {
    ICNTL_DIAGNOSTIC_STREAM: 0,
    ICNTL_GLOBAL_STREAM: 0,
    ICNTL_PRINT_LEVEL: 0,
    ICNTL_COLUMN_PERMUTATION: 0,
    ICNTL_ORDERING: ORDERING_AMD,
    ICNTL_SCALING: 1,
    ICNTL_REFINEMENT: 0,
    # Keeps the reported inertia exact on rank-deficient fronts.
    ICNTL_INERTIA_SAFETY: 1,
}

_SINGULAR_STATUSES: Final[frozenset[int]] = frozenset(
    {STATUS_NUMERICALLY_SINGULAR, STATUS_STRUCTURALLY_SINGULAR}
)


class JournalSink(Protocol):
    """Severity-tagged printf-style sinks used for diagnostics.

    A :class:`logging.Logger` or :class:`logging.LoggerAdapter` satisfies this.
    """

    def error(self, msg: str, *args: object) -> None:
        """Report a fatal condition."""
        ...

    def warning(self, msg: str, *args: object) -> None:
        """Report a recovered condition."""
        ...

    def info(self, msg: str, *args: object) -> None:
        """Report progress."""
        ...

    def debug(self, msg: str, *args: object) -> None:
        """Report expected numerical conditions in detail."""
        ...


def _grow_memory_percent(percent: int) -> int:
    """Return the doubled workspace over-allocation, starting from 1 at zero.

    The result saturates at the largest value an integer control can hold.
    """
    return min(ICNTL_MAX, max(1, 2 * percent))


class SymmetricSolverAdapter:
    """Four-phase driver for a sparse symmetric-indefinite direct backend."""

    def __init__(
        self,
        backend: SymmetricBackend,
        options: AdapterOptions | Mapping[str, Any] | None = None,
        *,
        journal: JournalSink | None = None,
    ) -> None:
        """Create the backend session and run the backend's initialize job.

        Args:
            backend: Backend capability driven through the job protocol.
            options: Initial options (see :meth:`configure`).
            journal: Diagnostic sinks; defaults to the ``symsolver.adapter``
                logger.

        Raises:
            BackendInitializationError: If the backend rejects initialization.
        """
        opts = coerce_options(options)
        self._backend = backend
        self._journal: JournalSink = (
            journal if journal is not None else logging.getLogger(_LOGGER_NAME)
        )

        self._options = AdapterOptions()
        self._quality = QualityParameters()

        self._structure_initialized = False
        self._pivot_tolerance_changed = False
        self._force_refactorize = False
        self._analysis_succeeded = False
        self._have_factorization = False
        self._negative_eigenvalues = -1

        self._session: BackendSession | None = None
        session = BackendSession()
        status = run_job(backend, session, Job.INITIALIZE)
        if status < 0:
            self._journal.error(
                "Error=%d returned from the backend in initialization.", status
            )
            raise BackendInitializationError(_INIT_FAILED_MSG.format(status=status))
        self._session = session

        try:
            self.configure(opts)
        except Exception:
            self.close()
            raise

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Run the backend's terminate job and release the session.

        Calling close more than once is a no-op.
        """
        session = self._session
        if session is None:
            return
        try:
            status = run_job(self._backend, session, Job.TERMINATE)
            if status < 0:
                self._journal.error(
                    "Error=%d returned from the backend in termination.", status
                )
        finally:
            session.a = None
            session.irn = None
            session.jcn = None
            session.rhs = None
            self._session = None
            self._structure_initialized = False
            self._have_factorization = False

    def __enter__(self) -> SymmetricSolverAdapter:
        """Return self for use as a context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the adapter on scope exit."""
        self.close()

    def _require_session(self) -> BackendSession:
        if self._session is None:
            raise SolverClosedError(_CLOSED_MSG)
        return self._session

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, options: AdapterOptions | Mapping[str, Any] | None) -> None:
        """Start a new run with the given options.

        Resets the structure, escalation and refactorization flags. Unless
        ``warm_start_same_structure`` is set, the bound structure is forgotten.

        Args:
            options: AdapterOptions, a mapping of option values, or None for
                defaults.

        Raises:
            InvalidWarmStartError: If a warm start is requested but no
                structure was ever initialized.
        """
        opts = coerce_options(options)
        session = self._require_session()

        if opts.warm_start_same_structure:
            if not (session.n > 0 and session.nz > 0):
                raise_invalid_warm_start(
                    reason="the problem is solved for the first time."
                )
        else:
            session.n = 0
            session.nz = 0
            self._analysis_succeeded = False
            self._have_factorization = False

        self._options = opts
        self._quality = opts.to_quality_parameters()
        self._structure_initialized = False
        self._pivot_tolerance_changed = False
        self._force_refactorize = False

    # ------------------------------------------------------------------
    # Phase 1: structure
    # ------------------------------------------------------------------

    @staticmethod
    def _check_index_array(
        name: str,
        indices: NDArray[np.integer],
        nonzeros: int,
    ) -> None:
        """Validate one pattern array without copying it.

        Raises:
            TypeError: If indices is not an integer ndarray.
        """
        if not isinstance(indices, np.ndarray) or not np.issubdtype(
            indices.dtype, np.integer
        ):
            msg = f"{name} must be an integer numpy.ndarray; got {type(indices)!r}"
            raise TypeError(msg)
        if indices.ndim != 1 or indices.size != nonzeros:
            raise_structure_mismatch(
                name=name,
                expected=f"a 1D array with {nonzeros} entries",
                got=indices.shape,
            )

    def initialize_structure(
        self,
        dimension: int,
        nonzeros: int,
        row_index: NDArray[np.integer],
        col_index: NDArray[np.integer],
    ) -> SymSolverStatus:
        """Bind a sparsity pattern and run the symbolic analysis.

        The index arrays are borrowed, not copied: they must stay alive and
        unchanged until the next structure initialization, and the very same
        objects must be handed to :meth:`multi_solve`.

        Args:
            dimension: Matrix order.
            nonzeros: Number of stored entries (one triangle).
            row_index: Zero-based row index of each stored entry.
            col_index: Zero-based column index of each stored entry.

        Raises:
            InvalidWarmStartError: If warm-starting and the structure changed.
            StructureMismatchError: If sizes or array shapes are inconsistent.

        Returns:
            Outcome of the symbolic analysis (SUCCESS when warm-starting).
        """
        session = self._require_session()
        dimension = int(dimension)
        nonzeros = int(nonzeros)

        if self._options.warm_start_same_structure:
            if session.n != dimension or session.nz != nonzeros:
                raise_invalid_warm_start(
                    reason=(
                        "the problem size has changed (dimension "
                        f"{session.n} -> {dimension}, nonzeros "
                        f"{session.nz} -> {nonzeros})."
                    )
                )
            self._check_index_array("row_index", row_index, nonzeros)
            self._check_index_array("col_index", col_index, nonzeros)
            if row_index is not session.irn and not np.array_equal(
                row_index, session.irn
            ):
                raise_invalid_warm_start(reason="the row indices have changed.")
            if col_index is not session.jcn and not np.array_equal(
                col_index, session.jcn
            ):
                raise_invalid_warm_start(reason="the column indices have changed.")
            session.irn = row_index
            session.jcn = col_index
            self._structure_initialized = True
            return SymSolverStatus.SUCCESS

        if dimension < 1:
            raise_structure_mismatch(
                name="dimension", expected="a positive integer", got=dimension
            )
        if nonzeros < 1:
            raise_structure_mismatch(
                name="nonzeros", expected="a positive integer", got=nonzeros
            )
        self._check_index_array("row_index", row_index, nonzeros)
        self._check_index_array("col_index", col_index, nonzeros)

        session.n = dimension
        session.nz = nonzeros
        session.a = np.zeros(nonzeros, dtype=np.float64)
        session.irn = row_index
        session.jcn = col_index
        self._have_factorization = False
        self._negative_eigenvalues = -1

        status = self._symbolic_factorization()
        self._structure_initialized = True
        return status

    # ------------------------------------------------------------------
    # Phase 2: symbolic analysis
    # ------------------------------------------------------------------

    def _symbolic_factorization(self) -> SymSolverStatus:
        session = self._require_session()
        for slot, value in _ANALYSIS_CONTROLS.items():
            session.icntl[slot] = value
        session.icntl[ICNTL_MEMORY_PERCENT] = self._quality.memory_growth_percent
        session.cntl[CNTL_PIVOT_TOLERANCE] = self._quality.pivot_tolerance

        self._analysis_succeeded = False
        error = run_job(self._backend, session, Job.ANALYZE)

        if error == STATUS_STRUCTURALLY_SINGULAR:
            self._journal.debug(
                "Backend returned INFO(1) = %d, matrix is singular.", error
            )
            return SymSolverStatus.SINGULAR
        if error < 0:
            self._journal.error(
                "Error=%d returned from the backend in symbolic analysis.", error
            )
            return SymSolverStatus.FATAL_ERROR

        self._analysis_succeeded = True
        return SymSolverStatus.SUCCESS

    # ------------------------------------------------------------------
    # Phase 3: numeric factorization
    # ------------------------------------------------------------------

    def _numeric_factorization(
        self,
        check_inertia: bool,
        expected_negative_eigenvalues: int,
    ) -> SymSolverStatus:
        session = self._require_session()
        session.cntl[CNTL_PIVOT_TOLERANCE] = self._quality.pivot_tolerance
        self._have_factorization = False

        error = run_job(self._backend, session, Job.FACTORIZE)

        if error in MEMORY_STATUSES:
            for attempt in range(1, self._quality.max_memory_retries + 1):
                self._journal.warning(
                    "Backend returned INFO(1) = %d and requires more memory, "
                    "reallocating.  Attempt %d",
                    error,
                    attempt,
                )
                old_percent = int(session.icntl[ICNTL_MEMORY_PERCENT])
                new_percent = _grow_memory_percent(old_percent)
                if new_percent == old_percent:
                    self._journal.error(
                        "Workspace percent is at its limit of %d.", old_percent
                    )
                    break
                session.icntl[ICNTL_MEMORY_PERCENT] = new_percent
                self._journal.warning(
                    "  Increasing workspace percent from %d to %d.",
                    old_percent,
                    new_percent,
                )
                error = run_job(self._backend, session, Job.FACTORIZE)
                if error not in MEMORY_STATUSES:
                    self._journal.info(
                        "Backend workspace sufficient after %d increase(s), "
                        "workspace percent is now %d.",
                        attempt,
                        new_percent,
                    )
                    break
            if error in MEMORY_STATUSES:
                self._journal.error(
                    "The backend was not able to obtain enough memory."
                )
                return SymSolverStatus.FATAL_ERROR

        # Failures are classified before inertia is read: a failed
        # factorization reports no usable negative pivot count.
        if error in _SINGULAR_STATUSES:
            self._journal.debug(
                "Backend returned INFO(1) = %d, matrix is singular.", error
            )
            return SymSolverStatus.SINGULAR
        if error < 0:
            self._journal.error(
                "Backend returned INFO(1) = %d in numeric factorization.", error
            )
            return SymSolverStatus.FATAL_ERROR

        self._negative_eigenvalues = int(session.infog[INFOG_NEGATIVE_PIVOTS])
        wrong_inertia = expected_negative_eigenvalues != self._negative_eigenvalues
        if check_inertia and wrong_inertia:
            self._journal.debug(
                "Numeric factorization: negative eigenvalues = %d, but %d expected.",
                self._negative_eigenvalues,
                expected_negative_eigenvalues,
            )
            return SymSolverStatus.WRONG_INERTIA

        self._have_factorization = True
        return SymSolverStatus.SUCCESS

    # ------------------------------------------------------------------
    # Phase 4: solve
    # ------------------------------------------------------------------

    def _rhs_blocks(
        self,
        rhs_count: int,
        rhs_values: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Return a flat writable view of the right-hand sides.

        Raises:
            TypeError: If rhs_values is not a float64 ndarray.
            StructureMismatchError: If its layout does not hold rhs_count
                contiguous blocks of the matrix dimension.
        """
        session = self._require_session()
        if not isinstance(rhs_values, np.ndarray) or rhs_values.dtype != np.float64:
            msg = (
                "rhs_values must be a float64 numpy.ndarray; "
                f"got {type(rhs_values)!r}"
            )
            raise TypeError(msg)
        expected = rhs_count * session.n
        if rhs_count < 0 or rhs_values.size != expected:
            raise_structure_mismatch(
                name="rhs_values",
                expected=f"{rhs_count} x {session.n} = {expected} entries",
                got=rhs_values.shape,
            )
        if not (rhs_values.flags.c_contiguous and rhs_values.flags.writeable):
            raise_structure_mismatch(
                name="rhs_values",
                expected="a writable C-contiguous array",
                got=rhs_values.flags,
            )
        return rhs_values.reshape(-1)

    def _solve(self, rhs_count: int, flat_rhs: NDArray[np.float64]) -> SymSolverStatus:
        session = self._require_session()
        retval = SymSolverStatus.SUCCESS
        n = session.n
        try:
            for i in range(rhs_count):
                offset = i * n
                session.rhs = flat_rhs[offset : offset + n]
                error = run_job(self._backend, session, Job.SOLVE)
                if error < 0:
                    self._journal.error(
                        "Error=%d returned from the backend in solve "
                        "(right-hand side %d).",
                        error,
                        i,
                    )
                    retval = SymSolverStatus.FATAL_ERROR
        finally:
            session.rhs = None
        return retval

    def multi_solve(
        self,
        matrix_changed: bool,
        row_index: NDArray[np.integer],
        col_index: NDArray[np.integer],
        rhs_count: int,
        rhs_values: NDArray[np.float64],
        *,
        check_inertia: bool = False,
        expected_negative_eigenvalues: int = 0,
    ) -> SymSolverStatus:
        """Factor (when needed) and solve for several right-hand sides.

        The right-hand sides are stored as `rhs_count` contiguous blocks of
        length `dimension` and are overwritten with the solutions.

        Args:
            matrix_changed: True if the caller wrote new values since the last
                factorization.
            row_index: The row index array bound by initialize_structure.
            col_index: The column index array bound by initialize_structure.
            rhs_count: Number of right-hand sides.
            rhs_values: C-contiguous float64 array of `rhs_count * dimension`
                entries, overwritten in place.
            check_inertia: Compare the factorization inertia to
                `expected_negative_eigenvalues`.
            expected_negative_eigenvalues: Expected number of negative
                eigenvalues when `check_inertia` is set.

        Raises:
            SolverUsageError: If no structure is initialized, or no valid
                factorization exists and none is due.
            StructureMismatchError: If the index arrays are not the bound ones
                or rhs_values has the wrong size or layout.

        Returns:
            CALL_AGAIN if a pending quality escalation requires fresh values;
            otherwise the factorization outcome if it failed, or the solve
            outcome.
        """
        session = self._require_session()
        if not self._structure_initialized:
            raise SolverUsageError(_NOT_INITIALIZED_MSG)
        if row_index is not session.irn:
            raise_structure_mismatch(
                name="row_index", expected=_BOUND_ARRAY, got=type(row_index)
            )
        if col_index is not session.jcn:
            raise_structure_mismatch(
                name="col_index", expected=_BOUND_ARRAY, got=type(col_index)
            )
        flat_rhs = self._rhs_blocks(int(rhs_count), rhs_values)

        if self._pivot_tolerance_changed:
            self._journal.debug("Pivot tolerance has changed.")
            self._pivot_tolerance_changed = False
            # The last factorization used the old tolerance; the caller must
            # provide the values again before we can refactor.
            if not matrix_changed:
                self._journal.debug("Asking the caller to call again.")
                self._force_refactorize = True
                return SymSolverStatus.CALL_AGAIN

        if not self._analysis_succeeded:
            status = self._symbolic_factorization()
            if status is not SymSolverStatus.SUCCESS:
                return status

        if matrix_changed or self._force_refactorize:
            self._force_refactorize = False
            status = self._numeric_factorization(
                check_inertia, int(expected_negative_eigenvalues)
            )
            if status is not SymSolverStatus.SUCCESS:
                return status
        elif not self._have_factorization:
            raise SolverUsageError(_NO_FACTORIZATION_MSG)

        return self._solve(int(rhs_count), flat_rhs)

    # ------------------------------------------------------------------
    # Quality escalation
    # ------------------------------------------------------------------

    def increase_quality(self) -> bool:
        """Raise the pivot tolerance towards its ceiling.

        The new tolerance is ``min(pivot_tolerance_max, sqrt(pivot_tolerance))``;
        a zero tolerance jumps straight to the ceiling. The change takes effect
        at the next factorization.

        Returns:
            False if the tolerance is already at its ceiling (nothing changes),
            True otherwise.
        """
        self._require_session()
        quality = self._quality
        if quality.pivot_tolerance == quality.pivot_tolerance_max:
            return False
        self._pivot_tolerance_changed = True

        old = quality.pivot_tolerance
        new = min(quality.pivot_tolerance_max, math.sqrt(old))
        if new == old:
            new = quality.pivot_tolerance_max
        quality.pivot_tolerance = new
        self._journal.debug(
            "Increasing pivot tolerance from %7.2e to %7.2e.", old, new
        )
        return True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def values(self) -> NDArray[np.float64]:
        """Adapter-owned value buffer the caller fills before a factorization.

        Raises:
            SolverUsageError: If no structure has been initialized.
        """
        session = self._require_session()
        if session.a is None:
            raise SolverUsageError(_NO_VALUES_MSG)
        return session.a

    def get_values_array(self) -> NDArray[np.float64]:
        """Return the adapter-owned value buffer (same as :attr:`values`)."""
        return self.values

    @property
    def number_of_negative_eigenvalues(self) -> int:
        """Negative eigenvalue count reported by the last factorization.

        Raises:
            InertiaUnavailableError: If no factorization reported inertia yet.
        """
        if self._negative_eigenvalues < 0:
            raise InertiaUnavailableError(_NO_INERTIA_MSG)
        return self._negative_eigenvalues

    @property
    def provides_inertia(self) -> bool:
        """Return True: factorizations report the negative eigenvalue count."""
        return True

    @property
    def provides_degeneracy_detection(self) -> bool:
        """Return False: dependent rows are not identified."""
        return False

    @property
    def matrix_format(self) -> str:
        """Return the input format of the pattern arrays."""
        return "triplet"

    @property
    def dimension(self) -> int:
        """Order of the bound matrix (0 if none)."""
        return self._require_session().n

    @property
    def nonzeros(self) -> int:
        """Number of stored entries of the bound matrix (0 if none)."""
        return self._require_session().nz

    @property
    def pivot_tolerance(self) -> float:
        """Current pivot tolerance."""
        return self._quality.pivot_tolerance

    @property
    def pivot_tolerance_max(self) -> float:
        """Ceiling for quality escalation."""
        return self._quality.pivot_tolerance_max

    @property
    def memory_growth_percent(self) -> int:
        """Current backend workspace over-allocation control."""
        return int(self._require_session().icntl[ICNTL_MEMORY_PERCENT])

    @property
    def options(self) -> AdapterOptions:
        """Options of the current run."""
        return self._options

    @property
    def is_initialized(self) -> bool:
        """True once a structure is bound for the current run."""
        return self._structure_initialized

    @property
    def closed(self) -> bool:
        """True after close()."""
        return self._session is None
