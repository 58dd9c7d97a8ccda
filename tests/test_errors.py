# tests/test_errors.py
"""Unit tests for symsolver.errors."""

from __future__ import annotations

from importlib.util import find_spec

import pytest

from symsolver import errors


def test_mumps_backend_availability_matches_environment() -> None:
    availability = errors.mumps_backend_availability()
    assert availability.backend == "mumps"
    expected = tuple(n for n in ("mumps", "mpi4py") if find_spec(n) is None)
    assert availability.missing == expected
    assert availability.is_available == (not expected)


def test_availability_lists_only_missing_modules(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """PyMUMPS present without mpi4py still leaves the backend unavailable."""
    monkeypatch.setattr(
        errors, "find_spec", lambda name: None if name == "mpi4py" else object()
    )

    availability = errors.mumps_backend_availability()
    assert availability.missing == ("mpi4py",)
    assert availability.is_available is False


def test_require_mumps_backend_names_every_missing_module(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(errors, "find_spec", lambda _name: None)

    with pytest.raises(errors.OptionalDependencyMissingError) as excinfo:
        errors.require_mumps_backend()

    msg = str(excinfo.value)
    assert msg.startswith("MumpsBackend cannot run: no module named 'mumps', 'mpi4py'.")
    assert "symsolver[mumps]" in msg
    # Also catchable as the builtin.
    assert isinstance(excinfo.value, ImportError)


def test_require_mumps_backend_passes_when_modules_resolve(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(errors, "find_spec", lambda _name: object())

    errors.require_mumps_backend()


def test_raise_invalid_warm_start_message() -> None:
    with pytest.raises(errors.InvalidWarmStartError, match="changed") as excinfo:
        errors.raise_invalid_warm_start(reason="the row indices have changed.")

    msg = str(excinfo.value)
    assert msg.startswith("Solver called with warm_start_same_structure, but ")
    assert "Disable warm_start_same_structure" in msg
    assert isinstance(excinfo.value, RuntimeError)


def test_raise_structure_mismatch_message() -> None:
    with pytest.raises(errors.StructureMismatchError) as excinfo:
        errors.raise_structure_mismatch(name="rhs_values", expected="6 entries", got=5)

    msg = str(excinfo.value)
    assert "rhs_values does not match the bound structure" in msg
    assert "Expected 6 entries" in msg
    assert "Got: 5" in msg
    assert isinstance(excinfo.value, ValueError)


@pytest.mark.parametrize(
    ("exc_type", "builtin"),
    [
        (errors.OptionInvalidError, ValueError),
        (errors.StructureMismatchError, ValueError),
        (errors.BackendInitializationError, RuntimeError),
        (errors.InvalidWarmStartError, RuntimeError),
        (errors.SolverUsageError, RuntimeError),
        (errors.SolverClosedError, errors.SolverUsageError),
        (errors.InertiaUnavailableError, errors.SolverUsageError),
    ],
)
def test_exception_hierarchy(exc_type: type[Exception], builtin: type) -> None:
    assert issubclass(exc_type, errors.SymSolverError)
    assert issubclass(exc_type, builtin)
