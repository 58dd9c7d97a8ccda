# symsolver/src/symsolver/backends/ldl.py
"""Reference backend built on SciPy's dense Bunch-Kaufman LDL^T.

This backend makes the job protocol of :mod:`symsolver.backend` usable without
a compiled sparse solver. The numerical work is delegated to SciPy:

- analysis: symmetric pattern assembly (`scipy.sparse`), structural rank and
  reverse Cuthill-McKee ordering (`scipy.sparse.csgraph`);
- factorization: `scipy.linalg.ldl` (LAPACK ``?sytrf``) on the permuted,
  optionally scaled, dense matrix;
- solve: two triangular solves around the block-diagonal factor.

Workspace model:
    Analysis estimates the factor size by the profile (envelope) of the
    permuted pattern. Cholesky-like elimination without pivoting never fills
    outside the envelope; symmetric interchanges can. The factorization is
    rejected with the "real workspace too small" status when the factor needs
    more entries than::

        ceil(estimate * (1 + icntl[ICNTL_MEMORY_PERCENT] / 100))

    so raising the workspace percent and refactoring is the recovery path,
    exactly as with a multifrontal code.

The dense factorization is O(n^3); this backend targets tests, examples and
small problems.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import ldl, solve, solve_triangular
from scipy.sparse import coo_matrix, csr_matrix
from scipy.sparse.csgraph import reverse_cuthill_mckee, structural_rank

from symsolver.backend import (
    CNTL_NULL_PIVOT,
    CNTL_PIVOT_TOLERANCE,
    ICNTL_MEMORY_PERCENT,
    ICNTL_ORDERING,
    ICNTL_SCALING,
    INFO_REQUIRED_SIZE,
    INFOG_ESTIMATED_FACTOR_ENTRIES,
    INFOG_FACTOR_ENTRIES,
    INFOG_NEGATIVE_PIVOTS,
    ORDERING_AMD,
    ORDERING_AUTOMATIC,
    RINFOG_PIVOT_TOLERANCE,
    STATUS_BAD_NZ,
    STATUS_BAD_ORDER,
    STATUS_INVALID_ARRAY,
    STATUS_INVALID_JOB,
    STATUS_NUMERICALLY_SINGULAR,
    STATUS_OK,
    STATUS_REAL_WORKSPACE_TOO_SMALL,
    STATUS_STRUCTURALLY_SINGULAR,
    BackendSession,
    Job,
)

_DEFAULT_MEMORY_PERCENT: Final[int] = 20
_DEFAULT_PIVOT_TOLERANCE: Final[float] = 0.01
_DEFAULT_NULL_PIVOT: Final[float] = 1e-12
_FILL_REDUCING_ORDERINGS: Final[frozenset[int]] = frozenset(
    {ORDERING_AMD, ORDERING_AUTOMATIC}
)


@dataclass(frozen=True, slots=True)
class _Analysis:
    """Pattern-only results of the analysis job."""

    n: int
    nz: int
    rows: NDArray[np.int64]
    cols: NDArray[np.int64]
    ordering: NDArray[np.int64]
    estimated_entries: int


@dataclass(frozen=True, slots=True)
class _Factors:
    """Numeric factors of the permuted, scaled matrix."""

    lower: NDArray[np.float64]
    block_diag: NDArray[np.float64]
    pivots: NDArray[np.intp]
    ordering: NDArray[np.int64]
    scale: NDArray[np.float64]


def symmetric_pattern(
    n: int,
    rows: NDArray[np.int64],
    cols: NDArray[np.int64],
) -> csr_matrix:
    """Return the full symmetric 0/1 pattern of a one-triangle triplet list.

    Args:
        n: Matrix order.
        rows: Row indices.
        cols: Column indices.

    Returns:
        CSR matrix with ones at every structurally nonzero position.
    """
    ones = np.ones(rows.size, dtype=np.float64)
    half = coo_matrix((ones, (rows, cols)), shape=(n, n)).tocsr()
    full = (half + half.T).tocsr()
    full.data[:] = 1.0
    return full


def profile_size(pattern: csr_matrix, ordering: NDArray[np.int64]) -> int:
    """Return the number of entries in the lower envelope of a permuted pattern.

    Row ``i`` of the envelope spans from its first structurally nonzero column
    up to the diagonal.

    Args:
        pattern: Symmetric pattern.
        ordering: New-to-old permutation.

    Returns:
        Envelope size, diagonal included.
    """
    n = pattern.shape[0]
    permuted = pattern[ordering][:, ordering].tocoo()
    first = np.arange(n)
    lower = permuted.col <= permuted.row
    np.minimum.at(first, permuted.row[lower], permuted.col[lower])
    return int(np.sum(np.arange(n) - first + 1))


def assemble_symmetric(
    n: int,
    rows: NDArray[np.int64],
    cols: NDArray[np.int64],
    values: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Expand a one-triangle triplet list into a dense symmetric matrix.

    An entry ``(i, j)`` contributes to both ``A[i, j]`` and ``A[j, i]``.
    Duplicates are summed.

    Args:
        n: Matrix order.
        rows: Row indices.
        cols: Column indices.
        values: Entry values.

    Returns:
        Dense symmetric matrix.
    """
    off = rows != cols
    all_rows = np.concatenate([rows, cols[off]])
    all_cols = np.concatenate([cols, rows[off]])
    all_vals = np.concatenate([values, values[off]])
    return np.asarray(
        coo_matrix((all_vals, (all_rows, all_cols)), shape=(n, n)).toarray()
    )


def pivot_eigenvalues(block_diag: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return the eigenvalues of the 1x1 and 2x2 pivot blocks of D.

    Args:
        block_diag: Block-diagonal factor from `scipy.linalg.ldl`.

    Returns:
        One eigenvalue per row of D.
    """
    n = block_diag.shape[0]
    sub = np.diag(block_diag, -1)
    eigs = np.empty(n, dtype=np.float64)
    i = 0
    while i < n:
        if i + 1 < n and sub[i] != 0.0:
            eigs[i : i + 2] = np.linalg.eigvalsh(block_diag[i : i + 2, i : i + 2])
            i += 2
        else:
            eigs[i] = block_diag[i, i]
            i += 1
    return eigs


def _equilibrate(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return symmetric scaling factors 1/sqrt(max |row|)."""
    row_max = np.max(np.abs(matrix), axis=1)
    scale = np.ones_like(row_max)
    positive = row_max > 0.0
    scale[positive] = 1.0 / np.sqrt(row_max[positive])
    return scale


class ScipyLDLBackend:
    """Job-protocol backend delegating to `scipy.linalg.ldl`."""

    def __init__(self) -> None:
        """Create an uninitialized backend; the adapter runs the initialize job."""
        self._initialized = False
        self._analysis: _Analysis | None = None
        self._factors: _Factors | None = None
        self._handlers: dict[int, Callable[[BackendSession], int]] = {
            Job.INITIALIZE: self._initialize,
            Job.TERMINATE: self._terminate,
            Job.ANALYZE: self._analyze,
            Job.FACTORIZE: self._factorize,
            Job.SOLVE: self._solve,
        }

    def __call__(self, session: BackendSession) -> None:
        """Run ``session.job`` and record its status."""
        handler = self._handlers.get(int(session.job))
        if handler is None or (
            not self._initialized and session.job != Job.INITIALIZE
        ):
            session.set_status(STATUS_INVALID_JOB)
            return
        session.set_status(handler(session))

    @property
    def initialized(self) -> bool:
        """True between the initialize and terminate jobs."""
        return self._initialized

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def _initialize(self, session: BackendSession) -> int:
        session.icntl[ICNTL_ORDERING] = ORDERING_AUTOMATIC
        session.icntl[ICNTL_SCALING] = 1
        session.icntl[ICNTL_MEMORY_PERCENT] = _DEFAULT_MEMORY_PERCENT
        session.cntl[CNTL_PIVOT_TOLERANCE] = _DEFAULT_PIVOT_TOLERANCE
        session.cntl[CNTL_NULL_PIVOT] = _DEFAULT_NULL_PIVOT
        self._initialized = True
        self._analysis = None
        self._factors = None
        return STATUS_OK

    def _terminate(self, session: BackendSession) -> int:  # noqa: ARG002
        self._initialized = False
        self._analysis = None
        self._factors = None
        return STATUS_OK

    def _analyze(self, session: BackendSession) -> int:
        self._analysis = None
        self._factors = None

        n, nz = int(session.n), int(session.nz)
        if n < 1:
            return STATUS_BAD_ORDER
        if nz < 1 or session.irn is None or session.jcn is None:
            return STATUS_BAD_NZ
        rows = np.asarray(session.irn, dtype=np.int64).reshape(-1)
        cols = np.asarray(session.jcn, dtype=np.int64).reshape(-1)
        if rows.size != nz or cols.size != nz:
            return STATUS_BAD_NZ
        if min(rows.min(), cols.min()) < 0 or max(rows.max(), cols.max()) >= n:
            return STATUS_BAD_NZ

        pattern = symmetric_pattern(n, rows, cols)
        if structural_rank(pattern) < n:
            return STATUS_STRUCTURALLY_SINGULAR

        if int(session.icntl[ICNTL_ORDERING]) in _FILL_REDUCING_ORDERINGS:
            ordering = np.asarray(
                reverse_cuthill_mckee(pattern, symmetric_mode=True), dtype=np.int64
            )
        else:
            ordering = np.arange(n, dtype=np.int64)

        estimate = profile_size(pattern, ordering)
        session.infog[INFOG_ESTIMATED_FACTOR_ENTRIES] = estimate
        self._analysis = _Analysis(
            n=n,
            nz=nz,
            rows=rows,
            cols=cols,
            ordering=ordering,
            estimated_entries=estimate,
        )
        return STATUS_OK

    def _factorize(self, session: BackendSession) -> int:
        self._factors = None
        analysis = self._analysis
        if analysis is None or (session.n, session.nz) != (analysis.n, analysis.nz):
            return STATUS_INVALID_JOB
        values = session.a
        if values is None or values.size != analysis.nz:
            return STATUS_INVALID_ARRAY
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if not np.all(np.isfinite(values)):
            return STATUS_INVALID_ARRAY

        dense = assemble_symmetric(analysis.n, analysis.rows, analysis.cols, values)
        order = analysis.ordering
        permuted = dense[np.ix_(order, order)]
        if int(session.icntl[ICNTL_SCALING]) != 0:
            scale = _equilibrate(permuted)
            permuted = scale[:, None] * permuted * scale[None, :]
        else:
            scale = np.ones(analysis.n, dtype=np.float64)

        lower, block_diag, pivots = ldl(permuted, lower=True, hermitian=True)

        entries = int(np.count_nonzero(lower))
        budget = math.ceil(
            analysis.estimated_entries
            * (1.0 + int(session.icntl[ICNTL_MEMORY_PERCENT]) / 100.0)
        )
        session.infog[INFOG_FACTOR_ENTRIES] = entries
        if entries > budget:
            session.info[INFO_REQUIRED_SIZE] = entries
            return STATUS_REAL_WORKSPACE_TOO_SMALL

        eigs = pivot_eigenvalues(block_diag)
        largest = float(np.max(np.abs(eigs)))
        threshold = float(session.cntl[CNTL_NULL_PIVOT]) * largest
        if largest == 0.0 or bool(np.any(np.abs(eigs) <= threshold)):
            return STATUS_NUMERICALLY_SINGULAR

        session.infog[INFOG_NEGATIVE_PIVOTS] = int(np.count_nonzero(eigs < 0.0))
        session.rinfog[RINFOG_PIVOT_TOLERANCE] = session.cntl[CNTL_PIVOT_TOLERANCE]
        self._factors = _Factors(
            lower=lower,
            block_diag=block_diag,
            pivots=pivots,
            ordering=order,
            scale=scale,
        )
        return STATUS_OK

    def _solve(self, session: BackendSession) -> int:
        factors = self._factors
        if factors is None:
            return STATUS_INVALID_JOB
        rhs = session.rhs
        n = factors.ordering.size
        if rhs is None or rhs.size != n or rhs.dtype != np.float64:
            return STATUS_INVALID_ARRAY

        b = rhs.reshape(-1)[factors.ordering] * factors.scale
        triangular = factors.lower[factors.pivots]
        u = solve_triangular(triangular, b[factors.pivots], lower=True)
        w = solve(factors.block_diag, u, assume_a="sym")
        v = solve_triangular(triangular, w, lower=True, trans="T")
        y = np.empty(n, dtype=np.float64)
        y[factors.pivots] = v

        x = np.empty(n, dtype=np.float64)
        x[factors.ordering] = y * factors.scale
        rhs.reshape(-1)[:] = x
        return STATUS_OK
