"""Alternating Newton-Raphson calibration (CatCalc).

The estimator alternates two conditional maximum-likelihood steps:

1. ability step: with item parameters fixed, every person's ability is
   updated by one-dimensional Newton-Raphson on the summed first and
   second log-likelihood derivatives of the items they answered;
2. item step: with abilities fixed, every item's parameter vector is
   updated by multi-dimensional Newton-Raphson on its summed log-likelihood
   plus the trusted-region log penalty, then clamped into the region.

Persons share no data within an ability step and items share no data
within an item step, so both are evaluated unit by unit; the item step
may run on a thread pool (``n_jobs``).
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from catirt._core import logit
from catirt.config import EstimatorConfig, TrustedRegionConfig
from catirt.constants import CURVATURE_EPSILON, PROB_CLIP_MAX, PROB_CLIP_MIN
from catirt.estimation._common import map_units
from catirt.estimation.base import BaseEstimator
from catirt.estimation.trusted_region import TrustedRegionFilter
from catirt.exceptions import SingularMatrixError
from catirt.models import ModelVariant, create_model
from catirt.params import (
    ItemParam,
    ItemParamList,
    ItemParamStatus,
    PersonParam,
    PersonParamList,
)
from catirt.responses import ResponseRecord, ResponseSet
from catirt.results.fit_result import EstimationResult
from catirt.utils.numeric import newton_step

logger = logging.getLogger(__name__)

_MAX_HALVINGS = 10
_OBJECTIVE_SLACK = 1e-10


@dataclass
class ItemUnit:
    """Working state of one item during estimation.

    Attributes
    ----------
    item_id : Hashable
        Identifier of the item.
    model : ModelVariant
        Response model of the item.
    categories : tuple of float
        Category fractions of the item.
    vector : ndarray
        Current parameter vector.
    persons : ndarray of int
        Person index of every response to the item.
    response : ndarray
        Encoded responses, aligned with ``persons``.
    locked : bool
        Held fixed during the item step.
    prior : ItemParam or None
        Parameters the item started from.
    """

    item_id: Hashable
    model: ModelVariant
    categories: tuple[float, ...]
    vector: NDArray[np.float64]
    persons: NDArray[np.intp]
    response: NDArray[np.float64]
    locked: bool = False
    prior: ItemParam | None = None
    converged: bool = True
    failed: bool = False

    @property
    def n_responses(self) -> int:
        return len(self.persons)

    def log_likelihood(self, theta: NDArray[np.float64]) -> float:
        return float(
            np.sum(self.model.log_probability(theta[self.persons], self.vector, self.response))
        )


class CatCalcEstimator(BaseEstimator):
    """Alternating Newton-Raphson estimator of abilities and item parameters.

    Parameters
    ----------
    config : EstimatorConfig, optional
        Iteration limits, tolerances and parallelism.
    trusted_region : TrustedRegionConfig or TrustedRegionFilter, optional
        Plausible parameter ranges. Defaults to ``TrustedRegionConfig()``.
    **overrides
        Individual :class:`EstimatorConfig` fields, e.g. ``max_iter=100``.

    Examples
    --------
    >>> estimator = CatCalcEstimator(max_iter=100)
    >>> result = estimator.fit(responses, "raschbirnbaum")
    >>> result.converged
    True
    """

    def __init__(
        self,
        config: EstimatorConfig | None = None,
        trusted_region: TrustedRegionConfig | TrustedRegionFilter | None = None,
        **overrides,
    ) -> None:
        super().__init__(config, **overrides)
        if isinstance(trusted_region, TrustedRegionFilter):
            self.trusted_region = trusted_region
        else:
            self.trusted_region = TrustedRegionFilter(trusted_region)

    def fit(
        self,
        responses: ResponseSet | Iterable[ResponseRecord],
        model: ModelVariant | str,
        initial_items: Iterable[ItemParam] | None = None,
        initial_abilities: Mapping[Hashable, float] | None = None,
        scale_id: Hashable | None = None,
    ) -> EstimationResult:
        """Estimate item parameters and abilities under one model.

        Parameters
        ----------
        responses : ResponseSet or iterable of ResponseRecord
            Calibration sample.
        model : ModelVariant or str
            Response model or its registered name.
        initial_items : iterable of ItemParam, optional
            Prior parameters. Entries under ``model`` with status
            ``SET_MANUALLY`` are held fixed, ``EXCLUDED_MANUALLY`` items
            are left out and passed through; other entries provide
            starting values.
        initial_abilities : Mapping, optional
            Starting abilities by person id.
        scale_id : Hashable, optional
            Scale recorded on the person parameters.

        Returns
        -------
        EstimationResult
            Estimates with convergence flags. Numeric trouble is reported,
            never raised.

        Raises
        ------
        ConfigurationError
            If the model name is unknown.
        """
        model = create_model(model)
        if not isinstance(responses, ResponseSet):
            responses = ResponseSet(responses)
        self._convergence_history = []
        cfg = self.config

        priors = ItemParamList(tuple(initial_items or ())).for_model(model.model_name)
        units, passthrough, skipped = self._build_units(responses, model, priors)
        free = [u for u in units if not u.locked]

        theta = self._initial_abilities(responses, initial_abilities)
        answered = np.zeros(responses.n_persons, dtype=bool)
        for unit in units:
            answered[unit.persons] = True

        logger.info(
            "Calibrating %d items (%d fixed, %d skipped) for %d persons under %s",
            len(units),
            len(units) - len(free),
            len(skipped),
            responses.n_persons,
            model.model_name,
        )

        converged = False
        person_ok = np.ones(responses.n_persons, dtype=bool)
        iteration = 0
        log_likelihood = self._log_likelihood(units, theta)
        for iteration in range(1, cfg.max_iter + 1):
            new_theta, person_ok = self.ability_step(units, theta, answered)
            ability_change = float(np.max(np.abs(new_theta - theta), initial=0.0))
            theta = new_theta

            param_change = self._item_step(free, theta)

            log_likelihood = self._log_likelihood(units, theta)
            self._convergence_history.append(log_likelihood)
            self._log_iteration(
                iteration,
                log_likelihood,
                max_ability_change=ability_change,
                max_param_change=param_change,
            )

            if ability_change < cfg.ability_tol and param_change < cfg.param_tol:
                converged = True
                break

        if not converged:
            logger.warning(
                "%s calibration did not converge within %d iterations",
                model.model_name,
                cfg.max_iter,
            )

        return self._build_result(
            responses,
            model,
            units,
            passthrough,
            skipped,
            theta,
            answered,
            person_ok,
            converged,
            iteration,
            log_likelihood,
            scale_id,
        )

    def estimate_abilities(
        self,
        responses: ResponseSet | Iterable[ResponseRecord],
        item_params: Iterable[ItemParam],
        initial_abilities: Mapping[Hashable, float] | None = None,
        scale_id: Hashable | None = None,
    ) -> PersonParamList:
        """Estimate abilities with every item held at the given parameters.

        Each item is evaluated under the model named by its parameters,
        so items calibrated under different models can be combined.
        Responses to items without parameters, or excluded items, are
        ignored.
        """
        if not isinstance(responses, ResponseSet):
            responses = ResponseSet(responses)
        units = []
        for param in item_params:
            if param.is_excluded or param.item_id not in responses.item_ids:
                continue
            model = create_model(param.model_name)
            rows = np.flatnonzero(responses.item_mask(param.item_id))
            categories = model.categories(param.parameters)
            units.append(
                ItemUnit(
                    item_id=param.item_id,
                    model=model,
                    categories=categories,
                    vector=model.to_vector(param.parameters),
                    persons=responses.person_idx[rows],
                    response=model.encode(responses.fractions[rows], categories),
                    locked=True,
                    prior=param,
                )
            )

        theta = self._initial_abilities(responses, initial_abilities)
        answered = np.zeros(responses.n_persons, dtype=bool)
        for unit in units:
            answered[unit.persons] = True

        person_ok = np.ones(responses.n_persons, dtype=bool)
        for _ in range(self.config.max_iter):
            new_theta, person_ok = self.ability_step(units, theta, answered)
            change = float(np.max(np.abs(new_theta - theta), initial=0.0))
            theta = new_theta
            if change < self.config.ability_tol:
                break
        return self._person_params(
            responses, units, theta, answered, person_ok, scale_id
        )

    # -- steps ------------------------------------------------------------

    def ability_derivatives(
        self,
        units: Iterable[ItemUnit],
        theta: NDArray[np.float64],
    ) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Summed first and second ability derivatives per person."""
        gradient = np.zeros_like(theta)
        curvature = np.zeros_like(theta)
        for unit in units:
            t = theta[unit.persons]
            np.add.at(gradient, unit.persons, unit.model.d_ability(t, unit.vector, unit.response))
            np.add.at(curvature, unit.persons, unit.model.d2_ability(t, unit.vector, unit.response))
        return gradient, curvature

    def ability_step(
        self,
        units: list[ItemUnit],
        theta: NDArray[np.float64],
        answered: NDArray[np.bool_],
    ) -> tuple[NDArray[np.float64], NDArray[np.bool_]]:
        """Newton-Raphson update of every ability with item parameters fixed.

        Returns
        -------
        tuple of ndarray
            Updated abilities and a per-person convergence flag. A person
            whose curvature is flat or positive keeps the ability they
            entered the step with and is flagged as not converged.
        """
        cfg = self.config
        lower, upper = cfg.ability_bounds
        start = theta.copy()
        theta = theta.copy()
        pending = answered.copy()
        flat = np.zeros_like(answered)

        for _ in range(cfg.max_inner_iter):
            gradient, curvature = self.ability_derivatives(units, theta)
            usable = curvature < -CURVATURE_EPSILON
            flat |= pending & ~usable
            pending &= usable
            if not pending.any():
                break

            step = np.zeros_like(theta)
            step[pending] = -gradient[pending] / curvature[pending]
            step = np.clip(step, -cfg.max_step, cfg.max_step)
            new_theta = np.clip(theta + step, lower, upper)
            change = np.abs(new_theta - theta)
            theta = new_theta
            pending &= change >= cfg.ability_tol

        theta[flat] = start[flat]
        if flat.any():
            logger.debug("%d persons have flat ability curvature", int(flat.sum()))
        return theta, ~(flat | pending)

    def _item_step(self, units: list[ItemUnit], theta: NDArray[np.float64]) -> float:
        """Update all free items; returns the largest parameter change."""
        active = [u for u in units if not u.failed]
        if not active:
            return 0.0

        region = self.trusted_region.with_sample(
            np.array(
                [
                    r
                    for u in active
                    for r, role in zip(u.vector, u.model.vector_roles(u.vector))
                    if role == "difficulty"
                ]
            )
        )

        def fit_one(unit: ItemUnit):
            try:
                return self.fit_item(unit, theta, region)
            except SingularMatrixError as exc:
                return exc

        largest = 0.0
        for unit, outcome in zip(active, map_units(fit_one, active, self.config.n_jobs)):
            if isinstance(outcome, SingularMatrixError):
                unit.failed = True
                unit.converged = False
                logger.warning(
                    "Estimation failed for item %r under %s: %s",
                    unit.item_id,
                    unit.model.model_name,
                    outcome,
                )
                continue
            vector, item_converged = outcome
            largest = max(largest, float(np.linalg.norm(vector - unit.vector)))
            unit.vector = vector
            unit.converged = item_converged
        return largest

    def fit_item(
        self,
        unit: ItemUnit,
        theta: NDArray[np.float64],
        region: TrustedRegionFilter | None = None,
    ) -> tuple[NDArray[np.float64], bool]:
        """Maximise the penalised log-likelihood of one item.

        Parameters
        ----------
        unit : ItemUnit
            Item to update; not modified.
        theta : ndarray
            Abilities of all persons.
        region : TrustedRegionFilter, optional
            Trusted region, defaults to the estimator's.

        Returns
        -------
        tuple of (ndarray, bool)
            New parameter vector and whether the iteration converged.

        Raises
        ------
        SingularMatrixError
            If the Newton system is singular or ill-conditioned.
        """
        cfg = self.config
        region = region or self.trusted_region
        model = unit.model
        t = theta[unit.persons]

        def objective(vector: NDArray[np.float64]) -> float:
            ll = np.sum(model.log_probability(t, vector, unit.response))
            return float(ll) + region.log_penalty(model, vector)

        vector = region.clamp(model, unit.vector)
        current = objective(vector)
        for _ in range(cfg.max_inner_iter):
            gradient = model.jacobian(t, vector, unit.response).sum(axis=0)
            hessian = model.hessian(t, vector, unit.response).sum(axis=0)
            gradient = gradient + region.jacobian(model, vector)
            hessian = hessian + region.hessian(model, vector)

            step = newton_step(gradient, hessian, cfg.max_step)
            candidate = region.clamp(model, vector + step)
            value = objective(candidate)
            halvings = 0
            while not _accept(value, current) and halvings < _MAX_HALVINGS:
                step = step / 2.0
                candidate = region.clamp(model, vector + step)
                value = objective(candidate)
                halvings += 1
            if not _accept(value, current):
                # No ascent left inside the region.
                return vector, True

            change = float(np.linalg.norm(candidate - vector))
            vector, current = candidate, value
            if change < cfg.param_tol:
                return vector, True
        return vector, False

    # -- setup and results --------------------------------------------------

    def _build_units(
        self,
        responses: ResponseSet,
        model: ModelVariant,
        priors: ItemParamList,
    ) -> tuple[list[ItemUnit], list[ItemParam], list[Hashable]]:
        units: list[ItemUnit] = []
        passthrough: list[ItemParam] = []
        skipped: list[Hashable] = []
        seen = set()

        for item_id in responses.item_ids:
            seen.add(item_id)
            prior = priors.get(item_id, model.model_name)
            if prior is not None and prior.is_excluded:
                passthrough.append(prior)
                continue

            rows = np.flatnonzero(responses.item_mask(item_id))
            fractions = responses.fractions[rows]
            if prior is not None:
                categories = model.categories(prior.parameters)
            else:
                categories = model.observed_categories(fractions)
            encoded = model.encode(fractions, categories)

            locked = prior is not None and prior.status is ItemParamStatus.SET_MANUALLY
            sparse = (
                len(rows) < self.config.min_responses_per_item
                or np.unique(encoded).size < 2
            )
            if sparse and not locked:
                skipped.append(item_id)
                if prior is not None:
                    passthrough.append(prior)
                logger.debug(
                    "Skipping item %r: %d responses in %d categories",
                    item_id,
                    len(rows),
                    np.unique(encoded).size,
                )
                continue

            if prior is not None:
                vector = model.to_vector(prior.parameters)
            else:
                vector = model.initial_vector(encoded, categories)
            if not locked:
                vector = self.trusted_region.clamp(model, vector)

            units.append(
                ItemUnit(
                    item_id=item_id,
                    model=model,
                    categories=categories,
                    vector=vector,
                    persons=responses.person_idx[rows],
                    response=encoded,
                    locked=locked,
                    prior=prior,
                )
            )

        for prior in priors:
            if prior.item_id not in seen:
                passthrough.append(prior)
        return units, passthrough, skipped

    def _initial_abilities(
        self,
        responses: ResponseSet,
        initial: Mapping[Hashable, float] | None,
    ) -> NDArray[np.float64]:
        proportions = np.clip(
            responses.mean_fraction_by_person(), PROB_CLIP_MIN, PROB_CLIP_MAX
        )
        theta = np.atleast_1d(np.asarray(logit(proportions), dtype=np.float64))
        if initial:
            index = {person_id: i for i, person_id in enumerate(responses.person_ids)}
            for person_id, ability in initial.items():
                if person_id in index:
                    theta[index[person_id]] = float(ability)
        return np.clip(theta, *self.config.ability_bounds)

    @staticmethod
    def _log_likelihood(units: Iterable[ItemUnit], theta: NDArray[np.float64]) -> float:
        return float(sum(unit.log_likelihood(theta) for unit in units))

    def _person_params(
        self,
        responses: ResponseSet,
        units: list[ItemUnit],
        theta: NDArray[np.float64],
        answered: NDArray[np.bool_],
        person_ok: NDArray[np.bool_],
        scale_id: Hashable | None,
    ) -> PersonParamList:
        information = np.zeros_like(theta)
        for unit in units:
            np.add.at(
                information,
                unit.persons,
                unit.model.information(theta[unit.persons], unit.vector),
            )
        with np.errstate(divide="ignore"):
            se = np.where(information > 0, 1.0 / np.sqrt(information), np.inf)

        return PersonParamList(
            tuple(
                PersonParam(
                    person_id=person_id,
                    ability=float(theta[i]),
                    standard_error=float(se[i]),
                    scale_id=scale_id,
                    converged=bool(person_ok[i] or not answered[i]),
                )
                for i, person_id in enumerate(responses.person_ids)
            )
        )

    def _build_result(
        self,
        responses: ResponseSet,
        model: ModelVariant,
        units: list[ItemUnit],
        passthrough: list[ItemParam],
        skipped: list[Hashable],
        theta: NDArray[np.float64],
        answered: NDArray[np.bool_],
        person_ok: NDArray[np.bool_],
        converged: bool,
        n_iterations: int,
        log_likelihood: float,
        scale_id: Hashable | None,
    ) -> EstimationResult:
        item_params: list[ItemParam] = []
        for unit in units:
            if unit.locked and unit.prior is not None:
                item_params.append(unit.prior)
                continue
            item_params.append(
                ItemParam(
                    item_id=unit.item_id,
                    model_name=model.model_name,
                    parameters=model.from_vector(unit.vector, unit.categories),
                    status=ItemParamStatus.CALCULATED_AUTOMATICALLY,
                    converged=unit.converged and not unit.failed,
                    n_responses=unit.n_responses,
                    log_likelihood=unit.log_likelihood(theta),
                )
            )
        item_params.extend(passthrough)

        person_params = self._person_params(
            responses, units, theta, answered, person_ok, scale_id
        )
        n_observations = sum(unit.n_responses for unit in units)
        n_parameters = sum(len(unit.vector) for unit in units if not unit.locked)

        return EstimationResult(
            model_name=model.model_name,
            item_params=ItemParamList(tuple(item_params)),
            person_params=person_params,
            converged=converged,
            n_iterations=n_iterations,
            log_likelihood=log_likelihood,
            n_observations=n_observations,
            n_parameters=n_parameters,
            aic=self._compute_aic(log_likelihood, n_parameters),
            bic=self._compute_bic(log_likelihood, n_parameters, n_observations),
            failed_items=[u.item_id for u in units if u.failed],
            skipped_items=skipped,
            non_converged_persons=[
                person_id
                for i, person_id in enumerate(responses.person_ids)
                if answered[i] and not person_ok[i]
            ],
        )


def _accept(value: float, current: float) -> bool:
    if np.isnan(value):
        return False
    return value >= current - _OBJECTIVE_SLACK


def estimate(
    responses: ResponseSet | Iterable[ResponseRecord],
    model_variant: ModelVariant | str,
    config: EstimatorConfig | None = None,
    trusted_region: TrustedRegionConfig | TrustedRegionFilter | None = None,
    initial_items: Iterable[ItemParam] | None = None,
) -> tuple[ItemParamList, PersonParamList, bool]:
    """Calibrate one model on a response sample.

    Returns
    -------
    tuple
        ``(item_params, person_params, converged)``.
    """
    result = CatCalcEstimator(config, trusted_region).fit(
        responses, model_variant, initial_items=initial_items
    )
    return result.item_params, result.person_params, result.converged
