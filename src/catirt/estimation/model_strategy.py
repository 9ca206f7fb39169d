"""Per-item model selection across candidate response models.

The strategy calibrates the sample once under every candidate model,
compares the models item by item with an information criterion and
merges the winners into a new :class:`~catirt.context.Context`.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, Sequence
from typing import get_args

import numpy as np

from catirt.config import EstimatorConfig, TrustedRegionConfig
from catirt.context import Context
from catirt.estimation.base import compute_aic, compute_bic
from catirt.estimation.catcalc import CatCalcEstimator
from catirt.estimation.trusted_region import TrustedRegionFilter
from catirt.exceptions import ConfigurationError
from catirt.models import MODEL_REGISTRY, ModelVariant, create_model
from catirt.params import ItemParam, ItemParamList
from catirt.responses import ResponseRecord, ResponseSet
from catirt.results.fit_result import EstimationResult, ModelSelectionResult
from catirt.typing import InformationCriterion

logger = logging.getLogger(__name__)


def item_criterion(param: ItemParam, criterion: InformationCriterion = "aic") -> float:
    """Information criterion of one calibrated item.

    ``k`` is the number of the item's free parameters and ``n`` the number
    of its responses; lower is better. Items without a finite
    log-likelihood score ``inf``.
    """
    if not np.isfinite(param.log_likelihood) or param.n_responses <= 0:
        return float("inf")
    k = create_model(param.model_name).n_parameters(param.parameters)
    if criterion == "bic":
        return compute_bic(param.log_likelihood, k, param.n_responses)
    return compute_aic(param.log_likelihood, k)


class ModelStrategy:
    """Calibrate under every candidate model and keep the best per item.

    Parameters
    ----------
    model_names : sequence of str, optional
        Candidate models, in preference order for ties. Defaults to every
        registered model.
    criterion : {"aic", "bic"}
        Information criterion used for the comparison.
    config : EstimatorConfig, optional
        Estimator settings shared by every candidate run.
    trusted_region : TrustedRegionConfig or TrustedRegionFilter, optional
        Trusted region shared by every candidate run.

    Examples
    --------
    >>> strategy = ModelStrategy(["rasch", "raschbirnbaum"], criterion="bic")
    >>> selection = strategy.run(responses)
    >>> selection.best_models["q1"]
    'rasch'
    """

    def __init__(
        self,
        model_names: Sequence[str | ModelVariant] | None = None,
        criterion: InformationCriterion = "aic",
        config: EstimatorConfig | None = None,
        trusted_region: TrustedRegionConfig | TrustedRegionFilter | None = None,
    ) -> None:
        if criterion not in get_args(InformationCriterion):
            raise ConfigurationError(
                f"criterion must be one of {get_args(InformationCriterion)}, "
                f"got {criterion!r}"
            )
        candidates = list(model_names) if model_names is not None else list(MODEL_REGISTRY)
        if not candidates:
            raise ConfigurationError("At least one candidate model is required")
        self.models = [create_model(name) for name in candidates]
        names = [m.model_name for m in self.models]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate candidate models: {names}")
        self.criterion = criterion
        self.config = config or EstimatorConfig()
        self.trusted_region = trusted_region

    @property
    def model_names(self) -> list[str]:
        return [m.model_name for m in self.models]

    def run(
        self,
        responses: ResponseSet | Iterable[ResponseRecord],
        prior: Context | None = None,
        scale_id: Hashable | None = None,
    ) -> ModelSelectionResult:
        """Calibrate all candidates and merge the per-item winners.

        Parameters
        ----------
        responses : ResponseSet or iterable of ResponseRecord
            Calibration sample.
        prior : Context, optional
            Context the new one derives from. Its manually set or excluded
            parameters pass through unchanged and its other parameters seed
            the estimation.
        scale_id : Hashable, optional
            Scale of the new context; defaults to the prior's.

        Returns
        -------
        ModelSelectionResult
            The new context with per-item winners and every candidate run.
        """
        if not isinstance(responses, ResponseSet):
            responses = ResponseSet(responses)
        if scale_id is None and prior is not None:
            scale_id = prior.scale_id
        prior_params = prior.item_params if prior is not None else ItemParamList()
        initial_abilities = prior.person_params.abilities() if prior is not None else None

        estimations: dict[str, EstimationResult] = {}
        for model in self.models:
            estimator = CatCalcEstimator(self.config, self.trusted_region)
            estimations[model.model_name] = estimator.fit(
                responses,
                model,
                initial_items=prior_params,
                initial_abilities=initial_abilities,
                scale_id=scale_id,
            )
            logger.info("Candidate %r: %r", model.model_name, estimations[model.model_name])

        best_models, carried, criteria = self._select(responses, prior, estimations)

        all_params = ItemParamList()
        for estimation in estimations.values():
            all_params = all_params.merge(estimation.item_params)
        all_params = all_params.merge(carried)

        selected = ItemParamList(
            tuple(all_params.get(item_id, name) for item_id, name in best_models.items())
        )
        person_params = CatCalcEstimator(self.config).estimate_abilities(
            responses, selected, initial_abilities, scale_id=scale_id
        )
        context = Context(
            item_params=all_params,
            person_params=person_params,
            selected_models=best_models,
            scale_id=scale_id,
            parent_id=prior.context_id if prior is not None else None,
        )
        logger.info("Model selection produced %r", context)
        return ModelSelectionResult(
            context=context,
            best_models=best_models,
            item_params=selected,
            estimations=estimations,
            criteria=criteria,
            criterion=self.criterion,
        )

    def _select(
        self,
        responses: ResponseSet,
        prior: Context | None,
        estimations: dict[str, EstimationResult],
    ) -> tuple[
        dict[Hashable, str], list[ItemParam], dict[Hashable, dict[str, float]]
    ]:
        """Pick a model per item.

        Manually set or excluded items keep their manual parameters. Items
        that no candidate could calibrate, either unobserved, skipped for
        sparsity or failed under every model, keep the prior's selection.
        """
        order = {name: rank for rank, name in enumerate(self.model_names)}
        item_ids = list(responses.item_ids)
        observed = set(item_ids)
        if prior is not None:
            item_ids.extend(i for i in prior.item_ids if i not in observed)

        best_models: dict[Hashable, str] = {}
        carried: list[ItemParam] = []
        criteria: dict[Hashable, dict[str, float]] = {}
        for item_id in item_ids:
            manual = self._manual_choice(prior, item_id)
            if manual is not None:
                best_models[item_id] = manual.model_name
                carried.append(manual)
                continue

            scores: dict[str, float] = {}
            ranking = []
            for name, estimation in estimations.items():
                if item_id not in observed or item_id in estimation.skipped_items:
                    continue
                if item_id in estimation.failed_items:
                    continue
                param = estimation.item_params.get(item_id, name)
                if param is None or param.n_responses == 0:
                    continue
                score = item_criterion(param, self.criterion)
                scores[name] = score
                k = len(create_model(name).to_vector(param.parameters))
                ranking.append((score, k, order[name], name))

            if ranking:
                criteria[item_id] = scores
                best_models[item_id] = min(ranking)[3]
                continue

            previous = prior.get_item_param(item_id) if prior is not None else None
            if previous is not None:
                best_models[item_id] = previous.model_name
                carried.append(previous)
                logger.debug(
                    "Item %r keeps prior model %r", item_id, previous.model_name
                )
        return best_models, carried, criteria

    @staticmethod
    def _manual_choice(prior: Context | None, item_id: Hashable) -> ItemParam | None:
        if prior is None:
            return None
        current = prior.get_item_param(item_id)
        if current is not None and current.is_locked:
            return current
        locked = [p for p in prior.item_params.for_item(item_id) if p.is_locked]
        return locked[0] if locked else None

    def __repr__(self) -> str:
        return f"ModelStrategy(models={self.model_names}, criterion={self.criterion!r})"


def select_best_model(
    responses: ResponseSet | Iterable[ResponseRecord],
    candidate_variants: Sequence[str | ModelVariant] | None = None,
    criterion: InformationCriterion = "aic",
    config: EstimatorConfig | None = None,
    prior: Context | None = None,
) -> tuple[dict[Hashable, str], ItemParamList]:
    """Choose the best model per item and merge the winning parameters.

    Returns
    -------
    tuple
        ``(best_models, item_params)``; ``best_models`` maps item id to the
        selected model name.
    """
    result = ModelStrategy(candidate_variants, criterion, config).run(responses, prior)
    return result.best_models, result.item_params
