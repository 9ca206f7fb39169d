"""Dense linear algebra and Newton-Raphson helpers.

All item parameter steps share :func:`solve`; singular or ill-conditioned
systems surface as :class:`SingularMatrixError` so that the caller can
treat the affected unit as failed without aborting its siblings.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from catirt.constants import MIN_RECIPROCAL_CONDITION
from catirt.exceptions import SingularMatrixError

logger = logging.getLogger(__name__)


def _check_square(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise SingularMatrixError("Matrix contains non-finite entries")
    return matrix


def reciprocal_condition(matrix: NDArray[np.float64]) -> float:
    """Reciprocal 2-norm condition number; 0 for singular matrices."""
    singular_values = linalg.svdvals(matrix)
    if singular_values[0] == 0:
        return 0.0
    return float(singular_values[-1] / singular_values[0])


def lu_factor(
    matrix: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.int32]]:
    """LU factorisation with partial pivoting after a conditioning check.

    Raises
    ------
    SingularMatrixError
        If the matrix is singular, ill-conditioned or not finite.
    """
    matrix = _check_square(matrix)
    rcond = reciprocal_condition(matrix)
    if rcond < MIN_RECIPROCAL_CONDITION:
        raise SingularMatrixError(
            f"Matrix is singular to working precision (rcond={rcond:.3e})"
        )
    return linalg.lu_factor(matrix, check_finite=False)


def solve(
    matrix: NDArray[np.float64],
    rhs: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Solve ``matrix @ x = rhs``.

    Parameters
    ----------
    matrix : ndarray of shape (n, n)
        Coefficient matrix.
    rhs : ndarray of shape (n,) or (n, k)
        Right-hand side.

    Returns
    -------
    ndarray
        Solution with the shape of ``rhs``.

    Raises
    ------
    SingularMatrixError
        If the matrix is singular, ill-conditioned or not finite.
    """
    factor = lu_factor(matrix)
    rhs = np.asarray(rhs, dtype=np.float64)
    if not np.all(np.isfinite(rhs)):
        raise SingularMatrixError("Right-hand side contains non-finite entries")
    return linalg.lu_solve(factor, rhs, check_finite=False)


def inverse(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Invert a square matrix through its LU factorisation."""
    matrix = _check_square(matrix)
    return solve(matrix, np.eye(matrix.shape[0]))


def newton_step(
    gradient: NDArray[np.float64],
    hessian: NDArray[np.float64],
    max_step: float | None = None,
) -> NDArray[np.float64]:
    """Newton-Raphson step ``-H⁻¹ g`` for maximising an objective.

    When the step is not an ascent direction (the Hessian is not negative
    definite along it), the scaled gradient is returned instead. The step
    norm is capped at ``max_step``.
    """
    gradient = np.asarray(gradient, dtype=np.float64)
    step = -solve(hessian, gradient)
    if float(step @ gradient) <= 0:
        scale = np.max(np.abs(np.diag(np.atleast_2d(hessian))))
        step = gradient / max(scale, 1.0)
    if max_step is not None:
        norm = float(np.linalg.norm(step))
        if norm > max_step:
            step = step * (max_step / norm)
    return step

