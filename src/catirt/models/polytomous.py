"""Polytomous response models.

Polytomous items store ``difficulty`` as an ordered mapping from response
fraction to threshold, e.g. ``{0.5: -1.0, 1.0: 0.5}`` for an item scored
0, 0.5 or 1. The base category (fraction 0) carries no threshold; an
explicit ``0.0`` key is accepted and ignored. Category ``k`` of an item
is the k-th smallest fraction, with 0 as category 0.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy.special import logsumexp, softmax

from catirt._core import log_sigmoid, logit, sigmoid
from catirt.constants import PROB_CLIP_MAX, PROB_CLIP_MIN
from catirt.models.base import (
    ModelVariant,
    safe_divide,
    thresholds_from_mapping,
)
from catirt.typing import ParameterMapping, ParameterRole


class PolytomousVariant(ModelVariant):
    """Common parameter layout of the polytomous models.

    The parameter vector is ``[threshold_1, ..., threshold_m]`` followed
    by ``discrimination`` for the generalized variants.
    """

    is_polytomous = True
    estimates_discrimination: bool = False

    def parameter_roles(self, n_categories: int = 2) -> tuple[ParameterRole, ...]:
        roles: tuple[ParameterRole, ...] = ("difficulty",) * (n_categories - 1)
        if self.estimates_discrimination:
            roles += ("discrimination",)
        return roles

    def categories(self, params: ParameterMapping) -> tuple[float, ...]:
        if "difficulty" not in params:
            return (0.0, 1.0)
        categories, _ = thresholds_from_mapping(params["difficulty"])
        return categories

    def to_vector(self, params: ParameterMapping) -> NDArray[np.float64]:
        _, thresholds = thresholds_from_mapping(params.get("difficulty", 0.0))
        if self.ordered_thresholds:
            # Cumulative curves only form a distribution with sorted thresholds.
            thresholds = np.sort(thresholds)
        if self.estimates_discrimination:
            discrimination = float(params.get("discrimination", 1.0))
            return np.append(thresholds, discrimination)
        return thresholds

    def from_vector(
        self,
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> dict[str, Any]:
        m = len(categories) - 1
        params: dict[str, Any] = {
            "difficulty": {
                float(fraction): float(value)
                for fraction, value in zip(categories[1:], vector[:m])
            }
        }
        if self.estimates_discrimination:
            params["discrimination"] = float(vector[m])
        return params

    def observed_categories(self, fractions: NDArray[np.float64]) -> tuple[float, ...]:
        positive = np.unique(np.round(fractions[fractions > 0], 6))
        if positive.size == 0:
            return (0.0, 1.0)
        return (0.0,) + tuple(float(f) for f in positive)

    def encode(
        self,
        fraction: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]:
        fraction = np.atleast_1d(np.asarray(fraction, dtype=np.float64))
        levels = np.asarray(categories, dtype=np.float64)
        index = np.abs(fraction[..., None] - levels).argmin(axis=-1)
        return index.astype(np.float64)

    def _split(
        self, vector: NDArray[np.float64]
    ) -> tuple[NDArray[np.float64], float]:
        if self.estimates_discrimination:
            return vector[:-1], float(vector[-1])
        return vector, 1.0

    @staticmethod
    def _category_index(response: NDArray[np.float64]) -> NDArray[np.intp]:
        return np.rint(response).astype(np.intp)

    @abstractmethod
    def _category_probabilities(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Probabilities of every category, shape ``(n, m + 1)``."""
        ...

    def probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        probs = self._category_probabilities(theta, vector)
        k = self._category_index(response)
        return probs[np.arange(len(k)), k]

    def expected_fraction(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]:
        probs = self._category_probabilities(np.atleast_1d(theta), vector)
        return probs @ np.asarray(categories, dtype=np.float64)

    def sample(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
        rng: np.random.Generator,
    ) -> NDArray[np.float64]:
        probs = self._category_probabilities(np.atleast_1d(theta), vector)
        cumulative = np.cumsum(probs, axis=1)
        u = rng.random(len(probs))
        k = np.minimum((u[:, None] > cumulative).sum(axis=1), len(categories) - 1)
        return np.asarray(categories, dtype=np.float64)[k]


class _GradedVariant(PolytomousVariant):
    """Graded response models on cumulative logistic curves.

    P(X >= k | θ) = 1 / (1 + exp(-a(θ - b_k)))
    P(X = k | θ) = P(X >= k | θ) - P(X >= k+1 | θ)

    The lowest and highest categories use the one-sided logistic
    directly, which keeps them exact when the curves saturate.
    """

    ordered_thresholds = True

    def _curves(self, theta: NDArray[np.float64], vector: NDArray[np.float64]):
        thresholds, a = self._split(vector)
        centred = np.asarray(theta, dtype=np.float64)[:, None] - thresholds[None, :]
        z = a * centred
        s = sigmoid(z).reshape(z.shape)
        s1 = s * (1.0 - s)
        s2 = s1 * (1.0 - 2.0 * s)
        return a, centred, z, s, s1, s2

    @staticmethod
    def _pad(values: NDArray[np.float64], first: float) -> NDArray[np.float64]:
        n = values.shape[0]
        return np.hstack([np.full((n, 1), first), values, np.zeros((n, 1))])

    def _category_probabilities(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        _, _, z, s, _, _ = self._curves(theta, vector)
        padded = self._pad(s, 1.0)
        probs = np.clip(padded[:, :-1] - padded[:, 1:], 0.0, 1.0)
        probs[:, 0] = sigmoid(-z[:, 0])
        probs[:, -1] = sigmoid(z[:, -1])
        return probs

    def log_probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        _, _, z, _, _, _ = self._curves(theta, vector)
        k = self._category_index(response)
        m = z.shape[1]
        with np.errstate(divide="ignore"):
            result = np.log(self.probability(theta, vector, response))
        result = np.where(k == 0, log_sigmoid(-z[:, 0]), result)
        return np.where(k == m, log_sigmoid(z[:, m - 1]), result)

    def d_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, _, _, s, s1, _ = self._curves(theta, vector)
        k = self._category_index(response)
        m = s.shape[1]
        rows = np.arange(len(k))
        s1_pad = self._pad(s1, 0.0)
        p = self.probability(theta, vector, response)
        result = safe_divide(a * (s1_pad[rows, k] - s1_pad[rows, k + 1]), p)
        result = np.where(k == 0, -a * s[:, 0], result)
        return np.where(k == m, a * (1.0 - s[:, m - 1]), result)

    def d2_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, _, _, s, s1, s2 = self._curves(theta, vector)
        k = self._category_index(response)
        m = s.shape[1]
        rows = np.arange(len(k))
        s1_pad = self._pad(s1, 0.0)
        s2_pad = self._pad(s2, 0.0)
        p = self.probability(theta, vector, response)
        g = safe_divide(a * (s1_pad[rows, k] - s1_pad[rows, k + 1]), p)
        h = safe_divide(a**2 * (s2_pad[rows, k] - s2_pad[rows, k + 1]), p)
        result = h - g**2
        result = np.where(k == 0, -(a**2) * s1[:, 0], result)
        return np.where(k == m, -(a**2) * s1[:, m - 1], result)

    def _dz(self, j: int, a: float, centred: NDArray[np.float64], n_params: int):
        """Gradient and Hessian of ``z_j = a(θ - b_j)`` over the parameters."""
        grad = np.zeros((centred.shape[0], n_params))
        grad[:, j] = -a
        hess = np.zeros((n_params, n_params))
        if self.estimates_discrimination:
            grad[:, -1] = centred[:, j]
            hess[j, -1] = hess[-1, j] = -1.0
        return grad, hess

    def _log_derivatives(self, theta, vector, response):
        a, centred, _, s, s1, s2 = self._curves(theta, vector)
        k = self._category_index(response)
        n, m = s.shape
        n_params = len(vector)
        jac = np.zeros((n, n_params))
        hess = np.zeros((n, n_params, n_params))

        for category in range(m + 1):
            rows = np.flatnonzero(k == category)
            if rows.size == 0:
                continue
            c = centred[rows]

            if category in (0, m):
                j = 0 if category == 0 else m - 1
                grad_z, hess_z = self._dz(j, a, c, n_params)
                # log σ(-z) for the lowest category, log σ(z) for the highest
                if category == 0:
                    d1 = -s[rows, j]
                else:
                    d1 = 1.0 - s[rows, j]
                d2 = -s1[rows, j]
                jac[rows] = d1[:, None] * grad_z
                hess[rows] = (
                    d2[:, None, None] * grad_z[:, :, None] * grad_z[:, None, :]
                    + d1[:, None, None] * hess_z
                )
                continue

            upper, lower = category - 1, category
            grad_u, hess_u = self._dz(upper, a, c, n_params)
            grad_l, hess_l = self._dz(lower, a, c, n_params)
            d_prob = s1[rows, upper, None] * grad_u - s1[rows, lower, None] * grad_l
            h_prob = (
                s2[rows, upper, None, None] * grad_u[:, :, None] * grad_u[:, None, :]
                + s1[rows, upper, None, None] * hess_u
                - s2[rows, lower, None, None] * grad_l[:, :, None] * grad_l[:, None, :]
                - s1[rows, lower, None, None] * hess_l
            )
            p = np.maximum(s[rows, upper] - s[rows, lower], 1e-300)
            g = d_prob / p[:, None]
            jac[rows] = g
            hess[rows] = h_prob / p[:, None, None] - g[:, :, None] * g[:, None, :]

        return jac, hess

    def jacobian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        jac, _ = self._log_derivatives(theta, vector, response)
        return jac

    def hessian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        _, hess = self._log_derivatives(theta, vector, response)
        return hess

    def information(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        theta = np.atleast_1d(theta)
        a, _, _, _, s1, _ = self._curves(theta, vector)
        s1_pad = self._pad(s1, 0.0)
        d_prob = a * (s1_pad[:, :-1] - s1_pad[:, 1:])
        probs = self._category_probabilities(theta, vector)
        return np.sum(safe_divide(d_prob**2, probs), axis=1)

    def initial_vector(
        self,
        response: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]:
        m = len(categories) - 1
        at_least = np.array(
            [np.mean(response >= j) if response.size else 0.5 for j in range(1, m + 1)]
        )
        thresholds = -logit(np.clip(at_least, PROB_CLIP_MIN, PROB_CLIP_MAX))
        thresholds = np.maximum.accumulate(np.atleast_1d(thresholds))
        if self.estimates_discrimination:
            return np.append(thresholds, 1.0)
        return thresholds


class GradedResponseModel(_GradedVariant):
    """Graded Response Model with unit discrimination.

    Parameters: one ``difficulty`` threshold per category above the lowest.

    Examples
    --------
    >>> model = GradedResponseModel()
    >>> params = {"difficulty": {0.5: -3.5, 1.0: -2.5}}
    >>> round(model.likelihood(-3.0, params, 0.0), 6)
    0.377541
    """

    model_name = "grm"


class GeneralizedGradedResponseModel(_GradedVariant):
    """Graded Response Model with an item-specific discrimination.

    Parameters: thresholds as for :class:`GradedResponseModel` plus
    ``discrimination``.
    """

    model_name = "grmgeneralized"
    estimates_discrimination = True


class _PartialCreditVariant(PolytomousVariant):
    """Divide-by-total partial credit models.

    ψ_k = a(kθ - Σ_{j<=k} δ_j),  ψ_0 = 0
    P(X = k | θ) = exp(ψ_k) / Σ_l exp(ψ_l)
    """

    def _kernel(self, theta: NDArray[np.float64], vector: NDArray[np.float64]):
        steps, a = self._split(vector)
        m = len(steps)
        ks = np.arange(m + 1, dtype=np.float64)
        cumulative = np.concatenate([[0.0], np.cumsum(steps)])
        w = np.asarray(theta, dtype=np.float64)[:, None] * ks[None, :] - cumulative
        return a, ks, w, a * w

    def _category_probabilities(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        _, _, _, psi = self._kernel(theta, vector)
        return softmax(psi, axis=1)

    def log_probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        _, _, _, psi = self._kernel(theta, vector)
        k = self._category_index(response)
        return psi[np.arange(len(k)), k] - logsumexp(psi, axis=1)

    def _moments(self, theta, vector):
        a, ks, _, psi = self._kernel(theta, vector)
        probs = softmax(psi, axis=1)
        mean = probs @ ks
        var = probs @ ks**2 - mean**2
        return a, mean, np.maximum(var, 0.0)

    def d_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, mean, _ = self._moments(theta, vector)
        return a * (response - mean)

    def d2_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, _, var = self._moments(theta, vector)
        return -(a**2) * var

    def information(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        a, _, var = self._moments(np.atleast_1d(theta), vector)
        return a**2 * var

    def _kernel_derivatives(self, theta, vector):
        """Derivatives of every ψ_l over the parameters.

        Returns ``d_psi`` of shape ``(n, m + 1, p)`` and the constant
        second derivatives of shape ``(m + 1, p, p)``.
        """
        a, _, w, psi = self._kernel(theta, vector)
        n, n_cat = w.shape
        m = n_cat - 1
        n_params = len(vector)
        below = np.tril(np.ones((n_cat, m)), k=-1)

        d_psi = np.zeros((n, n_cat, n_params))
        d_psi[:, :, :m] = -a * below
        d2_psi = np.zeros((n_cat, n_params, n_params))
        if self.estimates_discrimination:
            d_psi[:, :, -1] = w
            d2_psi[:, :m, -1] = -below
            d2_psi[:, -1, :m] = -below
        return softmax(psi, axis=1), d_psi, d2_psi

    def jacobian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        probs, d_psi, _ = self._kernel_derivatives(theta, vector)
        k = self._category_index(response)
        expected = np.einsum("nl,nlp->np", probs, d_psi)
        return d_psi[np.arange(len(k)), k] - expected

    def hessian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        probs, d_psi, d2_psi = self._kernel_derivatives(theta, vector)
        k = self._category_index(response)
        expected = np.einsum("nl,nlp->np", probs, d_psi)
        second_moment = np.einsum("nl,nlp,nlq->npq", probs, d_psi, d_psi)
        covariance = second_moment - expected[:, :, None] * expected[:, None, :]
        expected_d2 = np.einsum("nl,lpq->npq", probs, d2_psi)
        return d2_psi[k] - expected_d2 - covariance

    def initial_vector(
        self,
        response: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]:
        m = len(categories) - 1
        counts = np.bincount(
            self._category_index(response), minlength=m + 1
        ).astype(np.float64)
        steps = np.log(counts[:-1] + 0.5) - np.log(counts[1:] + 0.5)
        if self.estimates_discrimination:
            return np.append(steps, 1.0)
        return steps


class PartialCreditModel(_PartialCreditVariant):
    """Partial Credit Model with unit discrimination.

    Parameters: one ``difficulty`` step per category above the lowest.
    """

    model_name = "pcm"


class GeneralizedPartialCreditModel(_PartialCreditVariant):
    """Generalized Partial Credit Model.

    Parameters: steps as for :class:`PartialCreditModel` plus
    ``discrimination``.
    """

    model_name = "pcmgeneralized"
    estimates_discrimination = True
