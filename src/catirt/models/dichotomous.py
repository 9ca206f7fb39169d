"""Dichotomous response models (Rasch family).

Only a fraction of one counts as a correct response for ``rasch``,
``raschbirnbaum`` and ``raschbirnbaumc``. The mixed Rasch-Birnbaum model
uses the raw fraction as a fractional success, so partial credit
contributes proportionally to the likelihood.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray

from catirt._core import log_sigmoid, logit, sigmoid
from catirt.constants import DEFAULT_GUESSING, PROB_EPSILON
from catirt.models.base import ModelVariant, clipped_proportion, safe_divide
from catirt.typing import ParameterMapping, ParameterRole


class DichotomousVariant(ModelVariant):
    """Common layout of the dichotomous models.

    The parameter vector is ``[difficulty, discrimination, guessing]``
    truncated to the parameters the model estimates.
    """

    estimates_discrimination: bool = False
    estimates_guessing: bool = False

    def parameter_roles(self, n_categories: int = 2) -> tuple[ParameterRole, ...]:
        roles: list[ParameterRole] = ["difficulty"]
        if self.estimates_discrimination:
            roles.append("discrimination")
        if self.estimates_guessing:
            roles.append("guessing")
        return tuple(roles)

    def to_vector(self, params: ParameterMapping) -> NDArray[np.float64]:
        difficulty = params.get("difficulty", 0.0)
        if not np.isscalar(difficulty):
            raise ValueError(f"{self.model_name} expects a scalar difficulty")
        values = [float(difficulty)]
        if self.estimates_discrimination:
            values.append(float(params.get("discrimination", 1.0)))
        if self.estimates_guessing:
            values.append(float(params.get("guessing", DEFAULT_GUESSING)))
        return np.array(values, dtype=np.float64)

    def from_vector(
        self,
        vector: NDArray[np.float64],
        categories: tuple[float, ...] = (0.0, 1.0),
    ) -> dict[str, Any]:
        return {
            role: float(value)
            for role, value in zip(self.parameter_roles(), vector)
        }

    def categories(self, params: ParameterMapping) -> tuple[float, ...]:
        return (0.0, 1.0)

    def encode(
        self,
        fraction: NDArray[np.float64],
        categories: tuple[float, ...] = (0.0, 1.0),
    ) -> NDArray[np.float64]:
        return (np.asarray(fraction) >= 1.0 - PROB_EPSILON).astype(np.float64)

    def initial_vector(
        self,
        response: NDArray[np.float64],
        categories: tuple[float, ...] = (0.0, 1.0),
    ) -> NDArray[np.float64]:
        vector = [-logit(clipped_proportion(response))]
        if self.estimates_discrimination:
            vector.append(1.0)
        if self.estimates_guessing:
            vector.append(DEFAULT_GUESSING)
        return np.array(vector, dtype=np.float64)

    def _unpack(
        self, vector: NDArray[np.float64]
    ) -> tuple[float, float, float]:
        difficulty = vector[0]
        discrimination = vector[1] if self.estimates_discrimination else 1.0
        guessing = vector[-1] if self.estimates_guessing else 0.0
        return difficulty, discrimination, guessing

    def correct_probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Probability of a fully correct response."""
        b, a, c = self._unpack(vector)
        return c + (1.0 - c) * sigmoid(a * (np.asarray(theta) - b))

    def expected_fraction(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        categories: tuple[float, ...] = (0.0, 1.0),
    ) -> NDArray[np.float64]:
        return self.correct_probability(theta, vector)

    def sample(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
        rng: np.random.Generator,
    ) -> NDArray[np.float64]:
        p = self.correct_probability(theta, vector)
        return (rng.random(p.shape) < p).astype(np.float64)


class _LogisticVariant(DichotomousVariant):
    """One- and two-parameter logistic models, ``P = σ(a(θ - b))``."""

    def _z(
        self, theta: NDArray[np.float64], vector: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], float, NDArray[np.float64]]:
        b, a, _ = self._unpack(vector)
        return a * (theta - b), a, theta - b

    def probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, _, _ = self._z(theta, vector)
        return sigmoid(np.where(response >= 0.5, z, -z))

    def log_probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, _, _ = self._z(theta, vector)
        return log_sigmoid(np.where(response >= 0.5, z, -z))

    def d_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, a, _ = self._z(theta, vector)
        return a * (response - sigmoid(z))

    def d2_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, a, _ = self._z(theta, vector)
        p = sigmoid(z)
        return -(a**2) * p * (1.0 - p)

    def jacobian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, a, centred = self._z(theta, vector)
        residual = response - sigmoid(z)
        columns = [-a * residual]
        if self.estimates_discrimination:
            columns.append(centred * residual)
        return np.stack(columns, axis=-1)

    def hessian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, a, centred = self._z(theta, vector)
        p = sigmoid(z)
        pq = p * (1.0 - p)
        n = len(vector)
        hess = np.zeros(z.shape + (n, n))
        hess[..., 0, 0] = -(a**2) * pq
        if self.estimates_discrimination:
            cross = a * centred * pq - (response - p)
            hess[..., 1, 1] = -(centred**2) * pq
            hess[..., 0, 1] = cross
            hess[..., 1, 0] = cross
        return hess

    def information(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        z, a, _ = self._z(theta, vector)
        p = sigmoid(z)
        return a**2 * p * (1.0 - p)


class Rasch(_LogisticVariant):
    """Rasch (1PL) model.

    P(X=1 | θ) = 1 / (1 + exp(-(θ - b)))

    Parameters: ``difficulty``.

    Examples
    --------
    >>> model = Rasch()
    >>> round(model.likelihood(0.0, {"difficulty": 0.0}, 1.0), 3)
    0.5
    """

    model_name = "rasch"


class TwoParameterLogistic(_LogisticVariant):
    """Two-parameter logistic (Rasch-Birnbaum) model.

    P(X=1 | θ) = 1 / (1 + exp(-a(θ - b)))

    Parameters: ``difficulty``, ``discrimination``.
    """

    model_name = "raschbirnbaum"
    estimates_discrimination = True


class _AsymptoticVariant(DichotomousVariant):
    """Models with a lower asymptote, ``P = c + (1 - c)σ(a(θ - b))``.

    Derivatives are formed from those of P through
    ``u = y/P - (1-y)/Q`` and ``v = -y/P² - (1-y)/Q²``.
    """

    estimates_discrimination = True
    estimates_guessing = True

    def _terms(self, theta, vector):
        b, a, c = self._unpack(vector)
        centred = theta - b
        z = a * centred
        s = sigmoid(z)
        s1 = s * (1.0 - s)
        s2 = s1 * (1.0 - 2.0 * s)
        p = c + (1.0 - c) * s
        q = (1.0 - c) * sigmoid(-z)
        return a, c, centred, s, s1, s2, p, q

    @staticmethod
    def _u_v(y, p, q):
        u = safe_divide(y, p) - safe_divide(1.0 - y, q)
        v = -safe_divide(y, p**2) - safe_divide(1.0 - y, q**2)
        return u, v

    def log_probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        *_, p, q = self._terms(theta, vector)
        with np.errstate(divide="ignore"):
            log_p = np.where(response > 0, response * np.log(p), 0.0)
            log_q = np.where(response < 1, (1.0 - response) * np.log(q), 0.0)
        return log_p + log_q

    def probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        return np.exp(self.log_probability(theta, vector, response))

    def d_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, c, _, _, s1, _, p, q = self._terms(theta, vector)
        u, _ = self._u_v(response, p, q)
        return u * (1.0 - c) * a * s1

    def d2_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, c, _, _, s1, s2, p, q = self._terms(theta, vector)
        u, v = self._u_v(response, p, q)
        dp = (1.0 - c) * a * s1
        return v * dp**2 + u * (1.0 - c) * a**2 * s2

    def _dp(self, theta, vector):
        a, c, centred, s, s1, s2, p, q = self._terms(theta, vector)
        dp = np.stack(
            [-(1.0 - c) * a * s1, (1.0 - c) * centred * s1, 1.0 - s], axis=-1
        )
        return dp, (a, c, centred, s1, s2, p, q)

    def jacobian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        dp, (_, _, _, _, _, p, q) = self._dp(theta, vector)
        u, _ = self._u_v(response, p, q)
        return u[..., None] * dp

    def hessian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        dp, (a, c, centred, s1, s2, p, q) = self._dp(theta, vector)
        u, v = self._u_v(response, p, q)

        d2p = np.zeros(dp.shape + (3,))
        d2p[..., 0, 0] = (1.0 - c) * a**2 * s2
        d2p[..., 1, 1] = (1.0 - c) * centred**2 * s2
        d2p[..., 0, 1] = d2p[..., 1, 0] = -(1.0 - c) * (a * centred * s2 + s1)
        d2p[..., 0, 2] = d2p[..., 2, 0] = a * s1
        d2p[..., 1, 2] = d2p[..., 2, 1] = -centred * s1

        outer = dp[..., :, None] * dp[..., None, :]
        return v[..., None, None] * outer + u[..., None, None] * d2p

    def information(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, c, _, _, s1, _, p, q = self._terms(theta, vector)
        dp = (1.0 - c) * a * s1
        return safe_divide(dp**2, p * q)


class ThreeParameterLogistic(_AsymptoticVariant):
    """Three-parameter logistic model with a guessing asymptote.

    P(X=1 | θ) = c + (1 - c) / (1 + exp(-a(θ - b)))

    Parameters: ``difficulty``, ``discrimination``, ``guessing``.
    """

    model_name = "raschbirnbaumc"


class MixedRaschBirnbaum(_AsymptoticVariant):
    """Three-parameter model scoring partial credit as fractional success.

    The likelihood of a response with fraction ``y`` is
    ``P^y (1 - P)^(1 - y)`` where P follows the three-parameter curve.
    """

    model_name = "mixedraschbirnbaum"

    def encode(
        self,
        fraction: NDArray[np.float64],
        categories: tuple[float, ...] = (0.0, 1.0),
    ) -> NDArray[np.float64]:
        return np.clip(np.asarray(fraction, dtype=np.float64), 0.0, 1.0)
