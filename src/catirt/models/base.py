"""Capability set shared by every response model.

A response model is stateless: the same instance serves every item
calibrated under it. Numeric methods work on a flat parameter vector and
on arrays of abilities and encoded responses so that the estimator can
evaluate all responses to an item at once. The ``params`` based methods
(``likelihood``, ``log_likelihood``, ...) wrap them for callers holding
an :class:`~catirt.params.ItemParam` style mapping and raw fractions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from catirt.constants import (
    DEFAULT_GUESSING,
    PROB_CLIP_MAX,
    PROB_CLIP_MIN,
    PROB_EPSILON,
)
from catirt.typing import ParameterMapping, ParameterRole

if TYPE_CHECKING:
    from catirt.estimation.trusted_region import TrustedRegionFilter


def _as_array(x: Any) -> NDArray[np.float64]:
    return np.atleast_1d(np.asarray(x, dtype=np.float64))


def _unwrap(result: NDArray[np.float64], scalar: bool) -> Any:
    return float(result[0]) if scalar else result


class ModelVariant(ABC):
    """Base class for item response models.

    Subclasses declare ``model_name`` and implement the vector-form
    methods. Arrays ``theta`` and ``response`` share the leading shape
    ``(n,)``; ``vector`` is the item's flat parameter vector.

    Attributes
    ----------
    model_name : str
        Registry key of the model.
    is_polytomous : bool
        Whether the model distinguishes more than two response categories.
    ordered_thresholds : bool
        Whether difficulty thresholds must be non-decreasing.
    """

    model_name: str = "base"
    is_polytomous: bool = False
    ordered_thresholds: bool = False

    # -- parameter layout -------------------------------------------------

    @abstractmethod
    def parameter_roles(self, n_categories: int = 2) -> tuple[ParameterRole, ...]:
        """Role of every slot of the parameter vector."""
        ...

    @abstractmethod
    def to_vector(self, params: ParameterMapping) -> NDArray[np.float64]: ...

    @abstractmethod
    def from_vector(
        self,
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> dict[str, Any]: ...

    @abstractmethod
    def categories(self, params: ParameterMapping) -> tuple[float, ...]:
        """Response fractions of the item's categories, lowest first."""
        ...

    @abstractmethod
    def encode(
        self,
        fraction: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]:
        """Map response fractions to the model's observed scores."""
        ...

    @abstractmethod
    def initial_vector(
        self,
        response: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]:
        """Starting parameter vector derived from encoded responses."""
        ...

    def parameter_names(self, params: ParameterMapping | None = None) -> list[str]:
        """Names of the parameter vector slots, in vector order.

        Polytomous models label each threshold with its response fraction,
        e.g. ``["difficulty[0.5]", "difficulty[1.0]", "discrimination"]``.
        """
        categories = self.categories(params or {})
        roles = self.parameter_roles(len(categories))
        upper = iter(categories[1:])
        return [
            f"{role}[{next(upper):g}]" if role == "difficulty" and self.is_polytomous
            else role
            for role in roles
        ]

    def vector_roles(self, vector: NDArray[np.float64]) -> tuple[ParameterRole, ...]:
        """Role of every slot of a concrete parameter vector."""
        n_fixed = len(self.parameter_roles(2)) - 1
        return self.parameter_roles(len(vector) - n_fixed + 1)

    def n_parameters(self, params: ParameterMapping | None = None) -> int:
        """Number of free parameters of an item."""
        return len(self.parameter_roles(len(self.categories(params or {}))))

    def default_parameters(
        self, categories: tuple[float, ...] = (0.0, 1.0)
    ) -> dict[str, Any]:
        """Neutral parameters: zero difficulty, unit discrimination."""
        roles = self.parameter_roles(len(categories))
        start = {"difficulty": 0.0, "discrimination": 1.0, "guessing": DEFAULT_GUESSING}
        vector = np.array([start[role] for role in roles])
        if self.is_polytomous:
            vector[: len(categories) - 1] = np.linspace(-1.0, 1.0, len(categories) - 1)
        return self.from_vector(vector, categories)

    def initial_parameters(
        self,
        fractions: NDArray[np.float64],
        categories: tuple[float, ...] | None = None,
    ) -> dict[str, Any]:
        """Starting parameters derived from the fractions observed for an item."""
        fractions = _as_array(fractions)
        if categories is None:
            categories = self.observed_categories(fractions)
        return self.from_vector(
            self.initial_vector(self.encode(fractions, categories), categories),
            categories,
        )

    def observed_categories(self, fractions: NDArray[np.float64]) -> tuple[float, ...]:
        """Category fractions implied by observed data."""
        return (0.0, 1.0)

    # -- vector form ------------------------------------------------------

    @abstractmethod
    def probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Probability of each observed response."""
        ...

    def log_probability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Natural log of :meth:`probability`, ``-inf`` where it underflows."""
        with np.errstate(divide="ignore"):
            return np.log(self.probability(theta, vector, response))

    @abstractmethod
    def d_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]: ...

    @abstractmethod
    def d2_ability(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]: ...

    @abstractmethod
    def jacobian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Gradient of each log-probability, shape ``(n, n_params)``."""
        ...

    @abstractmethod
    def hessian(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        response: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Hessian of each log-probability, shape ``(n, n_params, n_params)``."""
        ...

    @abstractmethod
    def information(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Expected Fisher information about ability."""
        ...

    @abstractmethod
    def expected_fraction(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
    ) -> NDArray[np.float64]: ...

    @abstractmethod
    def sample(
        self,
        theta: NDArray[np.float64],
        vector: NDArray[np.float64],
        categories: tuple[float, ...],
        rng: np.random.Generator,
    ) -> NDArray[np.float64]:
        """Draw response fractions for the given abilities."""
        ...

    # -- mapping form -----------------------------------------------------

    def _prepare(
        self,
        ability: Any,
        params: ParameterMapping,
        fraction: Any,
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], bool]:
        scalar = np.ndim(ability) == 0 and np.ndim(fraction) == 0
        theta, fraction = np.broadcast_arrays(_as_array(ability), _as_array(fraction))
        response = self.encode(fraction, self.categories(params))
        return theta, self.to_vector(params), response, scalar

    def likelihood(self, ability: Any, params: ParameterMapping, fraction: Any) -> Any:
        """Probability of the observed response fraction, in [0, 1].

        Parameters
        ----------
        ability : float or array_like
            Person ability.
        params : Mapping
            Item parameters.
        fraction : float or array_like
            Observed response fraction.

        Returns
        -------
        float or ndarray
            Likelihood, a float when both inputs are scalars.
        """
        theta, vector, response, scalar = self._prepare(ability, params, fraction)
        return _unwrap(np.clip(self.probability(theta, vector, response), 0.0, 1.0), scalar)

    def log_likelihood(self, ability: Any, params: ParameterMapping, fraction: Any) -> Any:
        """Log of :meth:`likelihood`; ``-inf`` if the likelihood underflows."""
        theta, vector, response, scalar = self._prepare(ability, params, fraction)
        return _unwrap(self.log_probability(theta, vector, response), scalar)

    def log_likelihood_d_ability(
        self, ability: Any, params: ParameterMapping, fraction: Any
    ) -> Any:
        """First derivative of the log-likelihood with respect to ability."""
        theta, vector, response, scalar = self._prepare(ability, params, fraction)
        return _unwrap(self.d_ability(theta, vector, response), scalar)

    def log_likelihood_d2_ability(
        self, ability: Any, params: ParameterMapping, fraction: Any
    ) -> Any:
        """Second derivative of the log-likelihood with respect to ability."""
        theta, vector, response, scalar = self._prepare(ability, params, fraction)
        return _unwrap(self.d2_ability(theta, vector, response), scalar)

    def log_likelihood_jacobian(
        self, ability: Any, params: ParameterMapping, fraction: Any
    ) -> NDArray[np.float64]:
        """Gradient over the item parameter vector, in :meth:`parameter_names` order."""
        theta, vector, response, scalar = self._prepare(ability, params, fraction)
        result = self.jacobian(theta, vector, response)
        return result[0] if scalar else result

    def log_likelihood_hessian(
        self, ability: Any, params: ParameterMapping, fraction: Any
    ) -> NDArray[np.float64]:
        """Symmetric second-derivative matrix over the item parameter vector."""
        theta, vector, response, scalar = self._prepare(ability, params, fraction)
        result = self.hessian(theta, vector, response)
        return result[0] if scalar else result

    def fisher_info(self, ability: Any, params: ParameterMapping) -> Any:
        """Expected information about ability, summed over response categories."""
        scalar = np.ndim(ability) == 0
        result = self.information(_as_array(ability), self.to_vector(params))
        return _unwrap(result, scalar)

    def expected_score(self, ability: Any, params: ParameterMapping) -> Any:
        """Expected response fraction at the given ability."""
        scalar = np.ndim(ability) == 0
        result = self.expected_fraction(
            _as_array(ability), self.to_vector(params), self.categories(params)
        )
        return _unwrap(result, scalar)

    def category_of(self, fraction: Any, params: ParameterMapping) -> Any:
        """Index of the response category a fraction falls into."""
        scalar = np.ndim(fraction) == 0
        categories = np.asarray(self.categories(params))
        fraction = _as_array(fraction)
        index = np.abs(fraction[:, None] - categories[None, :]).argmin(axis=1)
        return int(index[0]) if scalar else index

    # -- trusted region ---------------------------------------------------

    def trusted_region_clamp(
        self,
        params: ParameterMapping,
        region: TrustedRegionFilter | None = None,
    ) -> dict[str, Any]:
        """Clamp parameters into the trusted region."""
        region = _default_region(region)
        vector = region.clamp(self, self.to_vector(params))
        return self.from_vector(vector, self.categories(params))

    def trusted_region_jacobian(
        self,
        params: ParameterMapping,
        region: TrustedRegionFilter | None = None,
    ) -> NDArray[np.float64]:
        """Gradient of the trusted-region log penalty."""
        return _default_region(region).jacobian(self, self.to_vector(params))

    def trusted_region_hessian(
        self,
        params: ParameterMapping,
        region: TrustedRegionFilter | None = None,
    ) -> NDArray[np.float64]:
        """Hessian of the trusted-region log penalty."""
        return _default_region(region).hessian(self, self.to_vector(params))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model_name={self.model_name!r})"


def _default_region(region: TrustedRegionFilter | None) -> TrustedRegionFilter:
    if region is not None:
        return region
    from catirt.estimation.trusted_region import TrustedRegionFilter

    return TrustedRegionFilter()


def clipped_proportion(values: NDArray[np.float64]) -> float:
    """Mean of ``values`` clipped away from 0 and 1."""
    if values.size == 0:
        return 0.5
    return float(np.clip(np.mean(values), PROB_CLIP_MIN, PROB_CLIP_MAX))


def safe_divide(
    numerator: NDArray[np.float64], denominator: NDArray[np.float64]
) -> NDArray[np.float64]:
    return numerator / np.maximum(denominator, PROB_EPSILON)


def thresholds_from_mapping(value: Any) -> tuple[tuple[float, ...], NDArray[np.float64]]:
    """Split a difficulty mapping into category fractions and thresholds.

    Fractions of zero or below are the base category and carry no
    threshold.
    """
    if not isinstance(value, Mapping):
        return (0.0, 1.0), np.array([float(value)])
    items = sorted((float(k), float(v)) for k, v in value.items() if float(k) > 0)
    if not items:
        raise ValueError("Polytomous difficulty needs at least one positive fraction")
    categories = (0.0,) + tuple(k for k, _ in items)
    return categories, np.array([v for _, v in items], dtype=np.float64)
