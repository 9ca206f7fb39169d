"""Item selection strategies and first-question policies."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Mapping, Sequence
from typing import Any, get_args

from catirt.cat.pool import Candidate
from catirt.exceptions import ConfigurationError
from catirt.models import create_model
from catirt.typing import FirstQuestionPolicy


def item_id_key(item_id: Hashable) -> tuple[int, Any]:
    """Sort key ordering numeric ids numerically and all others as text."""
    if isinstance(item_id, (int, float)) and not isinstance(item_id, bool):
        return (0, item_id)
    return (1, str(item_id))


class ItemSelectionStrategy(ABC):
    """Abstract base class for item selection strategies.

    A strategy scores every candidate; higher is better. Equal scores are
    resolved by item id so that decisions are deterministic.
    """

    @abstractmethod
    def _compute_criterion(self, candidate: Candidate, ability: float) -> float:
        """Compute the selection criterion for a single candidate.

        Parameters
        ----------
        candidate : Candidate
            Item with its parameters.
        ability : float
            Current ability on the candidate's scale.

        Returns
        -------
        float
            Criterion value (higher = more desirable).
        """
        pass

    def get_item_criteria(
        self,
        candidates: Sequence[Candidate],
        abilities: Mapping[Hashable, float],
    ) -> dict[Hashable, float]:
        """Criterion value of every candidate, by item id.

        Parameters
        ----------
        candidates : sequence of Candidate
            Eligible items.
        abilities : Mapping
            Current ability by scale id.
        """
        return {
            c.item_id: self._compute_criterion(c, abilities[c.scale_id])
            for c in candidates
        }

    def select_item(
        self,
        candidates: Sequence[Candidate],
        abilities: Mapping[Hashable, float],
    ) -> tuple[Candidate, float]:
        """Return the best candidate and its criterion value.

        Raises
        ------
        ValueError
            If there are no candidates.
        """
        if not candidates:
            raise ValueError("No candidates to select from")
        criteria = self.get_item_criteria(candidates, abilities)
        best = min(
            candidates,
            key=lambda c: (-_finite(criteria[c.item_id]), item_id_key(c.item_id)),
        )
        return best, criteria[best.item_id]


class MaxFisherInformation(ItemSelectionStrategy):
    """Select the item with maximum Fisher information at the current ability."""

    def _compute_criterion(self, candidate: Candidate, ability: float) -> float:
        model = create_model(candidate.param.model_name)
        return float(model.fisher_info(ability, candidate.param.parameters))


def _finite(value: float) -> float:
    return value if math.isfinite(value) else -math.inf


def _quantile_index(quantile: float, n: int) -> int:
    return min(math.ceil(quantile * n), n - 1)


_FIRST_QUESTION_INDEX: dict[str, Callable[[int], int]] = {
    "easiest": lambda n: 0,
    "first_of_second_quintile": lambda n: _quantile_index(0.2, n),
    "first_of_second_quartile": lambda n: _quantile_index(0.25, n),
    "most_difficult_of_second_quartile": lambda n: max(math.ceil(0.5 * n) - 1, 0),
}


def select_first_question(
    candidates: Sequence[Candidate],
    policy: FirstQuestionPolicy,
) -> Candidate | None:
    """Pick the first item of an attempt by its position in difficulty order.

    Candidates are ordered by ascending difficulty, ties by item id.
    ``"current_ability"`` defers to information scoring and returns None.

    Raises
    ------
    ConfigurationError
        If the policy is unknown.
    """
    if policy not in get_args(FirstQuestionPolicy):
        raise ConfigurationError(f"Unknown first question policy: {policy!r}")
    if policy == "current_ability" or not candidates:
        return None
    ordered = sorted(candidates, key=lambda c: (c.difficulty, item_id_key(c.item_id)))
    return ordered[_FIRST_QUESTION_INDEX[policy](len(ordered))]


def create_selection_strategy(method: str = "MFI") -> ItemSelectionStrategy:
    """Factory function to create item selection strategies.

    Parameters
    ----------
    method : str
        Strategy name. Currently ``"MFI"`` (maximum Fisher information).

    Raises
    ------
    ConfigurationError
        If the method is not recognized.
    """
    strategies: dict[str, type[ItemSelectionStrategy]] = {
        "MFI": MaxFisherInformation,
    }
    if method not in strategies:
        valid = ", ".join(strategies)
        raise ConfigurationError(
            f"Unknown selection strategy '{method}'. Valid options: {valid}"
        )
    return strategies[method]()
