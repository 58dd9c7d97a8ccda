# symsolver/src/symsolver/backends/mumps.py
"""MUMPS backend through the PyMUMPS binding.

Requires the optional extra:

    pip install 'symsolver[mumps]'

The job protocol of :mod:`symsolver.backend` is MUMPS' own, so this backend is
a thin translation layer: it mirrors the session controls into the MUMPS
structure, runs the job, and mirrors the results back. Differences handled
here:

- MUMPS uses one-based Fortran indices; the zero-based pattern is converted
  to ``int32`` once per analysis and kept alive for the session.
- PyMUMPS raises ``RuntimeError`` on a negative status; the status itself is
  read back from ``INFO(1)``.
- The MUMPS defaults installed by the initialize job are copied into the
  session, so controls the adapter never touches keep their library values.

MPI bootstrap is left to mpi4py (imported by PyMUMPS).
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray

from symsolver.backend import (
    CNTL_SIZE,
    ICNTL_SIZE,
    INFO_SIZE,
    INFOG_SIZE,
    RINFOG_SIZE,
    STATUS_INVALID_ARRAY,
    STATUS_INVALID_JOB,
    BackendSession,
    Job,
)
from symsolver.errors import require_mumps_backend

# No more specific code is available when the context cannot be created.
_STATUS_CONTEXT_FAILED = -1


class MumpsBackend:
    """Job-protocol backend forwarding to ``mumps.DMumpsContext``."""

    def __init__(self, *, comm: Any | None = None) -> None:
        """Check that PyMUMPS and mpi4py are importable.

        Args:
            comm: Optional mpi4py communicator; PyMUMPS defaults to
                ``MPI.COMM_WORLD``.

        Raises:
            OptionalDependencyMissingError: If either module is missing.
        """
        require_mumps_backend()
        from mumps import DMumpsContext  # noqa: PLC0415

        self._context_type = DMumpsContext
        self._comm = comm
        self._ctx: Any | None = None
        self._pattern: tuple[int, int] | None = None
        self._irn: NDArray[np.int32] | None = None
        self._jcn: NDArray[np.int32] | None = None

    def __call__(self, session: BackendSession) -> None:
        """Run ``session.job`` on the MUMPS instance."""
        job = int(session.job)
        if job == Job.INITIALIZE:
            self._initialize(session)
            return
        if self._ctx is None:
            session.set_status(STATUS_INVALID_JOB)
            return
        if job == Job.TERMINATE:
            self._terminate(session)
            return
        if job not in (Job.ANALYZE, Job.FACTORIZE, Job.SOLVE):
            session.set_status(STATUS_INVALID_JOB)
            return
        if not self._bind_arrays(session, job):
            session.set_status(STATUS_INVALID_ARRAY)
            return
        self._push_controls(session)
        self._run(session, job)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _initialize(self, session: BackendSession) -> None:
        try:
            self._ctx = self._context_type(
                par=session.par, sym=session.sym, comm=self._comm
            )
        except RuntimeError:
            self._ctx = None
            session.set_status(_STATUS_CONTEXT_FAILED)
            return
        self._ctx.set_silent()
        struct = self._ctx.id
        for i in range(ICNTL_SIZE):
            session.icntl[i] = struct.icntl[i]
        for i in range(CNTL_SIZE):
            session.cntl[i] = struct.cntl[i]
        self._pull_results(session)

    def _terminate(self, session: BackendSession) -> None:
        ctx = self._ctx
        self._ctx = None
        self._pattern = None
        self._irn = None
        self._jcn = None
        try:
            ctx.destroy()
        except RuntimeError:
            session.set_status(_STATUS_CONTEXT_FAILED)

    def _bind_arrays(self, session: BackendSession, job: int) -> bool:
        ctx = self._ctx
        if job == Job.ANALYZE:
            if session.irn is None or session.jcn is None:
                return False
            key = (id(session.irn), id(session.jcn))
            if key != self._pattern or self._irn is None:
                self._irn = np.asarray(session.irn, dtype=np.int32) + 1
                self._jcn = np.asarray(session.jcn, dtype=np.int32) + 1
                self._pattern = key
            ctx.set_shape(int(session.n))
            ctx.set_centralized_assembled_rows_cols(self._irn, self._jcn)
        elif job == Job.FACTORIZE:
            if session.a is None or session.a.size != session.nz:
                return False
            ctx.set_centralized_assembled_values(session.a)
        elif job == Job.SOLVE:
            if session.rhs is None or session.rhs.size != session.n:
                return False
            ctx.set_rhs(session.rhs)
        return True

    def _push_controls(self, session: BackendSession) -> None:
        struct = self._ctx.id
        for i in range(ICNTL_SIZE):
            struct.icntl[i] = int(session.icntl[i])
        for i in range(CNTL_SIZE):
            struct.cntl[i] = float(session.cntl[i])

    def _run(self, session: BackendSession, job: int) -> None:
        try:
            self._ctx.run(job=job)
        except RuntimeError:
            # Status is in INFO(1).
            pass
        self._pull_results(session)

    def _pull_results(self, session: BackendSession) -> None:
        struct = self._ctx.id
        for i in range(INFO_SIZE):
            session.info[i] = struct.info[i]
        for i in range(INFOG_SIZE):
            session.infog[i] = struct.infog[i]
        for i in range(RINFOG_SIZE):
            session.rinfog[i] = struct.rinfog[i]
