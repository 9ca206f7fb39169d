"""Result containers for calibration runs."""

from __future__ import annotations

from collections.abc import Hashable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np

from catirt.params import ItemParam, ItemParamList, PersonParamList

if TYPE_CHECKING:
    import pandas as pd

    from catirt.context import Context


@dataclass
class EstimationResult:
    """Container for the outcome of one estimator run under one model.

    Numeric trouble never raises; it is reported here instead. Items
    whose Newton system was singular are listed in ``failed_items`` and
    keep their last estimate. Items with fewer than two observed
    response categories are listed in ``skipped_items`` and carry their
    prior parameters, if any.

    Parameters
    ----------
    model_name : str
        Model the parameters were estimated under.
    item_params : ItemParamList
        One parameter set per calibrated or carried-over item.
    person_params : PersonParamList
        Ability estimates of every person in the sample.
    converged : bool
        Whether ability and item updates both fell below tolerance.
    n_iterations : int
        Number of outer iterations run.
    log_likelihood : float
        Summed log-likelihood of all responses used.
    n_observations : int
        Number of responses used.
    n_parameters : int
        Number of free item parameters estimated.
    aic : float
        Akaike Information Criterion, ``2k - 2 logL``.
    bic : float
        Bayesian Information Criterion, ``k ln(n) - 2 logL``.
    failed_items : list
        Items whose estimation failed.
    skipped_items : list
        Items excluded for data sparsity.
    non_converged_persons : list
        Persons whose ability iteration did not converge.

    Examples
    --------
    >>> result = CatCalcEstimator().fit(responses, "rasch")
    >>> print(result.summary())
    >>> table = result.to_dataframe()
    """

    model_name: str
    item_params: ItemParamList
    person_params: PersonParamList
    converged: bool
    n_iterations: int
    log_likelihood: float
    n_observations: int = 0
    n_parameters: int = 0
    aic: float = float("nan")
    bic: float = float("nan")
    failed_items: list[Hashable] = field(default_factory=list)
    skipped_items: list[Hashable] = field(default_factory=list)
    non_converged_persons: list[Hashable] = field(default_factory=list)

    def __iter__(self) -> Iterator[Any]:
        """Unpack as ``(item_params, person_params, converged)``."""
        return iter((self.item_params, self.person_params, self.converged))

    def fit_statistics(self) -> dict[str, float]:
        """Return model fit statistics.

        Returns
        -------
        dict
            Log-likelihood, information criteria and sample sizes.
        """
        return {
            "log_likelihood": self.log_likelihood,
            "aic": self.aic,
            "bic": self.bic,
            "n_observations": self.n_observations,
            "n_parameters": self.n_parameters,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Return item parameters as a DataFrame, one row per item.

        Threshold mappings of polytomous items are expanded into
        ``difficulty[<fraction>]`` columns.
        """
        import pandas as pd

        rows = []
        for param in self.item_params:
            row: dict[str, Any] = {
                "item_id": param.item_id,
                "model": param.model_name,
                "status": param.status.name,
                "converged": param.converged,
                "n_responses": param.n_responses,
                "log_likelihood": param.log_likelihood,
            }
            for name, value in param.parameters.items():
                if isinstance(value, Mapping):
                    for fraction, threshold in value.items():
                        row[f"{name}[{fraction:g}]"] = threshold
                else:
                    row[name] = value
            rows.append(row)
        return pd.DataFrame(rows).set_index("item_id") if rows else pd.DataFrame()

    def abilities(self) -> pd.DataFrame:
        """Return person abilities and standard errors as a DataFrame."""
        import pandas as pd

        return pd.DataFrame(
            {
                "person_id": [p.person_id for p in self.person_params],
                "ability": [p.ability for p in self.person_params],
                "standard_error": [p.standard_error for p in self.person_params],
                "converged": [p.converged for p in self.person_params],
            }
        ).set_index("person_id")

    def summary(self) -> str:
        """Generate a formatted summary of the results."""
        width = 72
        lines = [
            "=" * width,
            f"{'Calibration Results':^{width}}",
            "=" * width,
            f"Model:              {self.model_name:<18} "
            f"Log-Likelihood:  {self.log_likelihood:>12.4f}",
            f"No. Items:          {len(self.item_params):<18} "
            f"AIC:             {self.aic:>12.4f}",
            f"No. Persons:        {len(self.person_params):<18} "
            f"BIC:             {self.bic:>12.4f}",
            f"No. Responses:      {self.n_observations:<18} "
            f"No. Parameters:  {self.n_parameters:>12}",
            f"Converged:          {str(self.converged):<18} "
            f"Iterations:      {self.n_iterations:>12}",
            "-" * width,
        ]
        lines.append(f"{'Item':<16} {'Difficulty':>12} {'Discrim.':>10} {'Guessing':>10}")
        for param in self.item_params:
            discrimination = param.parameters.get("discrimination", np.nan)
            guessing = param.parameters.get("guessing", np.nan)
            lines.append(
                f"{str(param.item_id):<16} {param.difficulty:>12.4f} "
                f"{discrimination:>10.4f} {guessing:>10.4f}"
            )
        if self.failed_items:
            lines.append(f"Failed items:  {', '.join(map(str, self.failed_items))}")
        if self.skipped_items:
            lines.append(f"Skipped items: {', '.join(map(str, self.skipped_items))}")
        lines.append("=" * width)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"EstimationResult(model={self.model_name!r}, "
            f"n_items={len(self.item_params)}, "
            f"log_likelihood={self.log_likelihood:.4f}, "
            f"converged={self.converged})"
        )


@dataclass
class ModelSelectionResult:
    """Outcome of running every candidate model and merging the winners.

    Parameters
    ----------
    context : Context
        New context holding every candidate's item parameters, the
        selected model per item and re-estimated abilities.
    best_models : dict
        Selected model name per item.
    item_params : ItemParamList
        The selected parameter set of every item.
    estimations : dict
        Estimator result per model name.
    criteria : dict
        Information criterion value per item and model name.
    criterion : str
        Criterion used, ``"aic"`` or ``"bic"``.
    """

    context: Context
    best_models: dict[Hashable, str]
    item_params: ItemParamList
    estimations: dict[str, EstimationResult]
    criteria: dict[Hashable, dict[str, float]] = field(default_factory=dict)
    criterion: str = "aic"

    def __iter__(self) -> Iterator[Any]:
        """Unpack as ``(best_models, item_params)``."""
        return iter((self.best_models, self.item_params))

    @property
    def person_params(self) -> PersonParamList:
        return self.context.person_params

    def selected(self, item_id: Hashable) -> ItemParam | None:
        return self.context.get_item_param(item_id)

    def criteria_table(self) -> pd.DataFrame:
        """Criterion value of every item (rows) under every model (columns)."""
        import pandas as pd

        table = pd.DataFrame.from_dict(self.criteria, orient="index")
        table.index.name = "item_id"
        table["selected"] = pd.Series(self.best_models)
        return table

    def __repr__(self) -> str:
        counts: dict[str, int] = {}
        for name in self.best_models.values():
            counts[name] = counts.get(name, 0) + 1
        summary = ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
        return (
            f"ModelSelectionResult(context={self.context.context_id!r}, "
            f"criterion={self.criterion!r}, selected=[{summary}])"
        )
