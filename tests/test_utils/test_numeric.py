"""Tests for the linear algebra and Newton-Raphson helpers."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from catirt.exceptions import SingularMatrixError
from catirt.utils.numeric import (
    inverse,
    newton_step,
    reciprocal_condition,
    solve,
)


class TestSolve:
    """Tests for solve and inverse."""

    def test_solve(self):
        matrix = np.array([[4.0, 1.0], [1.0, 3.0]])
        rhs = np.array([1.0, 2.0])
        assert_allclose(matrix @ solve(matrix, rhs), rhs)

    def test_multiple_right_hand_sides(self):
        matrix = np.array([[2.0, 0.0], [0.0, 5.0]])
        rhs = np.array([[2.0, 4.0], [5.0, 10.0]])
        assert_allclose(solve(matrix, rhs), [[1.0, 2.0], [1.0, 2.0]])

    def test_scalar_system(self):
        assert_allclose(solve(np.array([[-0.5]]), np.array([1.0])), [-2.0])

    def test_inverse(self):
        matrix = np.array([[2.0, 1.0], [1.0, 2.0]])
        assert_allclose(inverse(matrix) @ matrix, np.eye(2), atol=1e-12)

    def test_singular(self):
        with pytest.raises(SingularMatrixError):
            solve(np.array([[1.0, 2.0], [2.0, 4.0]]), np.array([1.0, 1.0]))

    def test_ill_conditioned(self):
        with pytest.raises(SingularMatrixError):
            inverse(np.array([[1.0, 0.0], [0.0, 1e-14]]))

    def test_non_finite(self):
        with pytest.raises(SingularMatrixError):
            solve(np.array([[np.nan, 0.0], [0.0, 1.0]]), np.array([1.0, 1.0]))
        with pytest.raises(SingularMatrixError):
            solve(np.eye(2), np.array([np.inf, 1.0]))

    def test_not_square(self):
        with pytest.raises(ValueError):
            solve(np.ones((2, 3)), np.ones(2))

    def test_singular_is_linalg_error(self):
        with pytest.raises(np.linalg.LinAlgError):
            inverse(np.zeros((2, 2)))

    def test_reciprocal_condition(self):
        assert reciprocal_condition(np.eye(3)) == pytest.approx(1.0)
        assert reciprocal_condition(np.zeros((2, 2))) == 0.0


class TestNewtonStep:
    """Tests for newton_step."""

    def test_concave_step(self):
        hessian = np.array([[-2.0, 0.0], [0.0, -4.0]])
        gradient = np.array([1.0, 2.0])
        assert_allclose(newton_step(gradient, hessian), [0.5, 0.5])

    def test_capped_norm(self):
        hessian = np.array([[-0.01]])
        step = newton_step(np.array([1.0]), hessian, max_step=1.0)
        assert_allclose(step, [1.0])

    def test_not_ascent_falls_back_to_gradient(self):
        """A convex Hessian gives an ascent step along the gradient."""
        hessian = np.array([[2.0, 0.0], [0.0, 2.0]])
        gradient = np.array([1.0, -1.0])
        step = newton_step(gradient, hessian)
        assert float(step @ gradient) > 0
        assert_allclose(step, gradient / 2.0)

