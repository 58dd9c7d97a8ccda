# symsolver/examples/inertia_correction.py
"""Inertia correction for a KKT system, as done inside an interior-point step.

The primal-dual step of an equality-constrained problem solves

    [ H + delta * I   J^T ] [dx]   [-g]
    [ J               0   ] [dy] = [-c]

and is only a descent step if the matrix has exactly `m` negative eigenvalues
(`m` = number of constraints). When the reported inertia is wrong, the primal
regularization `delta` is increased and the matrix refactored; the pattern
never changes, so the symbolic analysis runs once.

Only the diagonal values of the Hessian block change between attempts. The
script prints the attempts and the final step.
"""

from __future__ import annotations

import logging

import numpy as np

from symsolver import ScipyLDLBackend, SymmetricSolverAdapter, SymSolverStatus

_MAX_ATTEMPTS = 20
_DELTA_FIRST = 1e-4
_DELTA_GROWTH = 8.0


def kkt_pattern(n: int, m: int) -> tuple[np.ndarray, np.ndarray]:
    """Lower-triangle pattern of a KKT matrix with dense H and dense J.

    Args:
        n: Number of primal variables.
        m: Number of constraints.

    Returns:
        Zero-based (row, col) index arrays.
    """
    rows: list[int] = []
    cols: list[int] = []
    for i in range(n):
        for j in range(i + 1):
            rows.append(i)
            cols.append(j)
    for k in range(m):
        for j in range(n):
            rows.append(n + k)
            cols.append(j)
    return np.array(rows, dtype=np.intc), np.array(cols, dtype=np.intc)


def kkt_values(
    hessian: np.ndarray,
    jacobian: np.ndarray,
    delta: float,
) -> np.ndarray:
    """Values matching `kkt_pattern`, with `delta` added to the H diagonal.

    Returns:
        Value array in pattern order.
    """
    n = hessian.shape[0]
    h = hessian + delta * np.eye(n)
    lower = [h[i, j] for i in range(n) for j in range(i + 1)]
    return np.concatenate([np.array(lower), jacobian.reshape(-1)])


def main() -> None:
    """Run the inertia-correction loop on a nonconvex problem."""
    logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(message)s")

    # Indefinite Hessian: the unregularized KKT matrix has the wrong inertia.
    hessian = np.array([[1.0, 0.0, 0.0], [0.0, -2.0, 0.5], [0.0, 0.5, 1.0]])
    jacobian = np.array([[1.0, 1.0, 1.0]])
    n, m = hessian.shape[0], jacobian.shape[0]
    gradient = np.array([1.0, -1.0, 0.5])
    residual = np.array([0.2])

    rows, cols = kkt_pattern(n, m)
    options = {"pivot_tolerance": 1e-6, "pivot_tolerance_max": 0.1}

    with SymmetricSolverAdapter(ScipyLDLBackend(), options) as adapter:
        status = adapter.initialize_structure(n + m, rows.size, rows, cols)
        if status is not SymSolverStatus.SUCCESS:
            msg = f"symbolic analysis failed: {status}"
            raise RuntimeError(msg)

        delta = 0.0
        for attempt in range(_MAX_ATTEMPTS):
            adapter.values[:] = kkt_values(hessian, jacobian, delta)
            rhs = -np.concatenate([gradient, residual])
            status = adapter.multi_solve(
                True,
                rows,
                cols,
                1,
                rhs,
                check_inertia=True,
                expected_negative_eigenvalues=m,
            )
            print(f"attempt {attempt}: delta={delta:.3e} status={status.value}")
            if status is SymSolverStatus.SUCCESS:
                break
            if status is SymSolverStatus.WRONG_INERTIA:
                negative = adapter.number_of_negative_eigenvalues
                print(f"  negative eigenvalues: {negative}")
            if not status.is_recoverable:
                msg = f"factorization failed: {status}"
                raise RuntimeError(msg)
            delta = _DELTA_FIRST if delta == 0.0 else _DELTA_GROWTH * delta
        else:
            msg = "inertia correction did not converge"
            raise RuntimeError(msg)

    print(f"step dx = {rhs[:n]}")
    print(f"multipliers dy = {rhs[n:]}")


if __name__ == "__main__":
    main()
