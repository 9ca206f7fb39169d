"""Trusted region for item parameters.

Sparse or extreme response patterns push maximum-likelihood estimates
towards infinity. The trusted region keeps every parameter inside a
plausible interval and, inside the optimiser, adds a smooth log penalty
whose derivatives enter the Newton step alongside the likelihood:

* difficulty: Gaussian log density around a mean,
  ``-(b - μ)² / (2σ²)``, hard bounds ``μ ± kσ`` within ``[min, max]``;
* discrimination: logistic barrier ``log σ(-s(a - p))`` that grows
  steeply beyond the placement ``p``, hard bounds ``[min, min(f·p, max)]``;
* guessing: Gaussian log density around a mean within ``[min, max]``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from catirt._core import log_sigmoid, sigmoid
from catirt.config import TrustedRegionConfig
from catirt.constants import PARAMETER_LIMIT

if TYPE_CHECKING:
    from catirt.models.base import ModelVariant


@dataclass(frozen=True)
class LocationBounds:
    """Gaussian trusted region ``mean ± sd_factor · sd`` within ``[minimum, maximum]``."""

    mean: float
    sd: float
    sd_factor: float
    minimum: float
    maximum: float

    @property
    def lower(self) -> float:
        return max(self.mean - self.sd_factor * self.sd, self.minimum)

    @property
    def upper(self) -> float:
        return min(self.mean + self.sd_factor * self.sd, self.maximum)

    def penalty(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return -((x - self.mean) ** 2) / (2.0 * self.sd**2)

    def d1(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return (self.mean - x) / self.sd**2

    def d2(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.full_like(x, -1.0 / self.sd**2)


@dataclass(frozen=True)
class SlopeBounds:
    """Logistic barrier above ``placement`` within ``[minimum, min(factor_max · placement, maximum)]``."""

    minimum: float
    maximum: float
    placement: float
    slope: float
    factor_max: float

    @property
    def lower(self) -> float:
        return self.minimum

    @property
    def upper(self) -> float:
        return min(self.factor_max * self.placement, self.maximum)

    def penalty(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return log_sigmoid(-self.slope * (x - self.placement))

    def d1(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return -self.slope * sigmoid(self.slope * (x - self.placement))

    def d2(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        s = sigmoid(self.slope * (x - self.placement))
        return -(self.slope**2) * s * (1.0 - s)


@dataclass(frozen=True)
class AsymptoteBounds:
    """Gaussian pull towards ``mean`` within ``[minimum, maximum]``."""

    mean: float
    sd: float
    minimum: float
    maximum: float

    @property
    def lower(self) -> float:
        return self.minimum

    @property
    def upper(self) -> float:
        return self.maximum

    def penalty(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return -((x - self.mean) ** 2) / (2.0 * self.sd**2)

    def d1(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return (self.mean - x) / self.sd**2

    def d2(self, x: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.full_like(x, -1.0 / self.sd**2)


class TrustedRegionFilter:
    """Clamp item parameters and supply the penalty derivatives.

    Parameters
    ----------
    config : TrustedRegionConfig, optional
        Bounds configuration. Defaults to :class:`TrustedRegionConfig()`.

    Examples
    --------
    >>> from catirt.models import TwoParameterLogistic
    >>> region = TrustedRegionFilter()
    >>> model = TwoParameterLogistic()
    >>> region.clamp(model, np.array([12.0, 50.0]))
    array([5., 9.])
    """

    def __init__(self, config: TrustedRegionConfig | None = None) -> None:
        self.config = config or TrustedRegionConfig()
        cfg = self.config
        self.difficulty = LocationBounds(
            mean=cfg.mean_difficulty,
            sd=cfg.sd_difficulty,
            sd_factor=cfg.sd_factor_difficulty,
            minimum=cfg.min_difficulty,
            maximum=cfg.max_difficulty,
        )
        self.discrimination = SlopeBounds(
            minimum=cfg.min_discrimination,
            maximum=cfg.max_discrimination,
            placement=cfg.placement_discrimination,
            slope=cfg.slope_discrimination,
            factor_max=cfg.factor_max_discrimination,
        )
        self.guessing = AsymptoteBounds(
            mean=cfg.mean_guessing,
            sd=cfg.sd_guessing,
            minimum=cfg.min_guessing,
            maximum=cfg.max_guessing,
        )

    def with_sample(self, difficulties: NDArray[np.float64]) -> TrustedRegionFilter:
        """Filter whose difficulty region follows the sample's mean and sd.

        Returns ``self`` unless ``derive_difficulty_from_sample`` is set or
        when fewer than two finite difficulties are available.
        """
        difficulties = np.asarray(difficulties, dtype=np.float64)
        difficulties = difficulties[np.isfinite(difficulties)]
        if not self.config.derive_difficulty_from_sample or difficulties.size < 2:
            return self
        sd = float(np.std(difficulties, ddof=1))
        if sd <= 0:
            return self
        derived = TrustedRegionFilter(self.config)
        derived.difficulty = replace(
            self.difficulty, mean=float(np.mean(difficulties)), sd=sd
        )
        return derived

    def _components(self, model: ModelVariant, vector: NDArray[np.float64]) -> list:
        return [getattr(self, role) for role in model.vector_roles(vector)]

    def bounds(
        self,
        model: ModelVariant,
        vector: NDArray[np.float64],
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Lower and upper bound of every parameter slot."""
        components = self._components(model, vector)
        lower = np.array([c.lower for c in components], dtype=np.float64)
        upper = np.array([c.upper for c in components], dtype=np.float64)
        return (
            np.maximum(lower, -PARAMETER_LIMIT),
            np.minimum(upper, PARAMETER_LIMIT),
        )

    def clamp(
        self,
        model: ModelVariant,
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Clip every parameter into its bounds.

        Thresholds of models with ordered categories are sorted after
        clipping. The operation is idempotent.
        """
        vector = np.asarray(vector, dtype=np.float64)
        lower, upper = self.bounds(model, vector)
        clamped = np.clip(np.nan_to_num(vector, nan=0.0), lower, upper)
        if model.ordered_thresholds:
            roles = model.vector_roles(clamped)
            slots = [i for i, role in enumerate(roles) if role == "difficulty"]
            clamped[slots] = np.sort(clamped[slots])
        return clamped

    def contains(self, model: ModelVariant, vector: NDArray[np.float64]) -> bool:
        lower, upper = self.bounds(model, vector)
        return bool(np.all((vector >= lower) & (vector <= upper)))

    def log_penalty(self, model: ModelVariant, vector: NDArray[np.float64]) -> float:
        """Sum of the log penalties of all parameter slots."""
        components = self._components(model, vector)
        return float(
            sum(c.penalty(np.float64(x)) for c, x in zip(components, vector))
        )

    def jacobian(
        self,
        model: ModelVariant,
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Gradient of :meth:`log_penalty`."""
        components = self._components(model, vector)
        return np.array(
            [c.d1(np.float64(x)) for c, x in zip(components, vector)],
            dtype=np.float64,
        )

    def hessian(
        self,
        model: ModelVariant,
        vector: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Hessian of :meth:`log_penalty`; diagonal since slots are independent."""
        components = self._components(model, vector)
        return np.diag(
            [float(c.d2(np.float64(x))) for c, x in zip(components, vector)]
        )

    def __repr__(self) -> str:
        return (
            f"TrustedRegionFilter("
            f"difficulty=[{self.difficulty.lower:g}, {self.difficulty.upper:g}], "
            f"discrimination=[{self.discrimination.lower:g}, "
            f"{self.discrimination.upper:g}], "
            f"guessing=[{self.guessing.lower:g}, {self.guessing.upper:g}])"
        )
