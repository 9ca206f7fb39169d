"""Base class for parameter estimation algorithms."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from catirt.config import EstimatorConfig

if TYPE_CHECKING:
    from catirt.models.base import ModelVariant
    from catirt.responses import ResponseSet
    from catirt.results.fit_result import EstimationResult

logger = logging.getLogger(__name__)


class BaseEstimator(ABC):
    """Abstract base class for calibration algorithms.

    Parameters
    ----------
    config : EstimatorConfig, optional
        Iteration limits and tolerances. Keyword overrides such as
        ``max_iter=100`` are applied on top of it.

    Attributes
    ----------
    config : EstimatorConfig
        Effective configuration.
    convergence_history : list of float
        Log-likelihood values at each iteration.
    """

    def __init__(self, config: EstimatorConfig | None = None, **overrides) -> None:
        base = config or EstimatorConfig()
        if overrides:
            values = {name: getattr(base, name) for name in base.__dataclass_fields__}
            values.update(overrides)
            base = EstimatorConfig.from_mapping(values)
        self.config = base
        self._convergence_history: list[float] = []

    @property
    def max_iter(self) -> int:
        return self.config.max_iter

    @property
    def verbose(self) -> bool:
        return self.config.verbose

    @abstractmethod
    def fit(
        self,
        responses: ResponseSet,
        model: ModelVariant | str,
        **kwargs,
    ) -> EstimationResult:
        """Estimate item and person parameters from response data.

        Parameters
        ----------
        responses : ResponseSet
            Calibration sample.
        model : ModelVariant or str
            Response model, or its registered name.
        **kwargs
            Additional arguments specific to the estimation method.

        Returns
        -------
        EstimationResult
            Parameters, convergence flags and fit statistics.
        """
        ...

    @property
    def convergence_history(self) -> list[float]:
        """Return log-likelihood history across iterations."""
        return self._convergence_history.copy()

    def _log_iteration(
        self,
        iteration: int,
        log_likelihood: float,
        **kwargs,
    ) -> None:
        """Log iteration progress, at INFO when verbose and DEBUG otherwise.

        Parameters
        ----------
        iteration : int
            Current iteration number.
        log_likelihood : float
            Current log-likelihood value.
        **kwargs
            Additional values to log.
        """
        level = logging.INFO if self.verbose else logging.DEBUG
        if not logger.isEnabledFor(level):
            return
        extras = ", ".join(f"{k}={v:.4f}" for k, v in kwargs.items())
        msg = f"Iteration {iteration:4d}: LL = {log_likelihood:.4f}"
        if extras:
            msg += f", {extras}"
        logger.log(level, msg)

    def _compute_aic(
        self,
        log_likelihood: float,
        n_parameters: int,
    ) -> float:
        """Compute Akaike Information Criterion.

        AIC = 2 × k - 2 × LL

        Parameters
        ----------
        log_likelihood : float
            Final log-likelihood.
        n_parameters : int
            Number of free parameters.

        Returns
        -------
        float
            AIC value.
        """
        return compute_aic(log_likelihood, n_parameters)

    def _compute_bic(
        self,
        log_likelihood: float,
        n_parameters: int,
        n_observations: int,
    ) -> float:
        """Compute Bayesian Information Criterion.

        BIC = k × ln(n) - 2 × LL

        Parameters
        ----------
        log_likelihood : float
            Final log-likelihood.
        n_parameters : int
            Number of free parameters.
        n_observations : int
            Number of responses used.

        Returns
        -------
        float
            BIC value.
        """
        return compute_bic(log_likelihood, n_parameters, n_observations)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"max_iter={self.config.max_iter}, "
            f"ability_tol={self.config.ability_tol}, "
            f"param_tol={self.config.param_tol})"
        )


def compute_aic(log_likelihood: float, n_parameters: int) -> float:
    """``AIC = 2k - 2 logL``."""
    return 2 * n_parameters - 2 * log_likelihood


def compute_bic(log_likelihood: float, n_parameters: int, n_observations: int) -> float:
    """``BIC = k ln(n) - 2 logL``; ``nan`` without observations."""
    if n_observations <= 0:
        return float("nan")
    return n_parameters * float(np.log(n_observations)) - 2 * log_likelihood
