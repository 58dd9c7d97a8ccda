# tests/conftest.py
"""Global pytest configuration and shared fixtures for symsolver."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

import numpy as np
import pytest

from symsolver.adapter import SymmetricSolverAdapter
from symsolver.backend import (
    CNTL_PIVOT_TOLERANCE,
    ICNTL_MEMORY_PERCENT,
    INFOG_NEGATIVE_PIVOTS,
    STATUS_OK,
    BackendSession,
    Job,
)
from symsolver.errors import mumps_backend_availability

if TYPE_CHECKING:
    from numpy.typing import NDArray

# -----------------------------------------------------------------------------
# Tests that need a real MUMPS build
# -----------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register the ``mumps`` marker."""
    config.addinivalue_line(
        "markers",
        "mumps: runs the real MUMPS library through PyMUMPS",
    )


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Skip ``mumps``-marked tests when MumpsBackend could not be constructed."""
    availability = mumps_backend_availability()
    if availability.is_available:
        return
    skip = pytest.mark.skip(
        reason=f"missing module(s): {', '.join(availability.missing)}"
    )
    for item in items:
        if item.get_closest_marker("mumps") is not None:
            item.add_marker(skip)


# -----------------------------------------------------------------------------
# Scripted backend
# -----------------------------------------------------------------------------


class ScriptedBackend:
    """Fake backend that records every job and replays scripted status codes.

    Statuses are queued per job with :meth:`script`; once a queue is empty the
    job succeeds. Each solve stamps its right-hand side with the running solve
    count so tests can see which blocks were touched.
    """

    def __init__(self, *, negative_pivots: int = 0) -> None:
        self.jobs: list[Job] = []
        self.negative_pivots = negative_pivots
        self.memory_percents: list[int] = []
        self.pivot_tolerances: list[float] = []
        self._scripts: dict[Job, list[int]] = {}

    def script(self, job: Job, *codes: int) -> None:
        self._scripts.setdefault(job, []).extend(codes)

    def count(self, job: Job) -> int:
        return self.jobs.count(job)

    def __call__(self, session: BackendSession) -> None:
        job = Job(int(session.job))
        self.jobs.append(job)
        queue = self._scripts.get(job)
        code = queue.pop(0) if queue else STATUS_OK

        if job == Job.FACTORIZE:
            self.memory_percents.append(int(session.icntl[ICNTL_MEMORY_PERCENT]))
            self.pivot_tolerances.append(float(session.cntl[CNTL_PIVOT_TOLERANCE]))
            session.infog[INFOG_NEGATIVE_PIVOTS] = self.negative_pivots
        elif job == Job.SOLVE:
            assert session.rhs is not None
            session.rhs[:] = float(self.count(Job.SOLVE))

        session.set_status(code)


@pytest.fixture
def backend() -> ScriptedBackend:
    """Fresh scripted backend."""
    return ScriptedBackend()


Pattern = tuple[int, int, "NDArray[np.intc]", "NDArray[np.intc]"]


@pytest.fixture
def pattern() -> Pattern:
    """Lower-triangle pattern of a 3x3 tridiagonal-like matrix with 4 entries."""
    irn = np.array([0, 1, 1, 2], dtype=np.intc)
    jcn = np.array([0, 0, 1, 1], dtype=np.intc)
    return 3, 4, irn, jcn


@pytest.fixture
def make_adapter(
    backend: ScriptedBackend,
) -> Iterator[Callable[..., SymmetricSolverAdapter]]:
    """Factory for adapters driving the scripted backend."""
    created: list[SymmetricSolverAdapter] = []

    def _make(options: Any = None, **kwargs: Any) -> SymmetricSolverAdapter:
        adapter = SymmetricSolverAdapter(backend, options, **kwargs)
        created.append(adapter)
        return adapter

    yield _make

    for adapter in created:
        adapter.close()
