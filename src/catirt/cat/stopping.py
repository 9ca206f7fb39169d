"""Termination rules for adaptive attempts.

Rules are evaluated in a fixed order and the first one that fires
decides the :class:`~catirt.cat.results.TerminationReason`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field

from catirt.cat.results import AttemptState, TerminationReason
from catirt.config import SelectorConfig


@dataclass(frozen=True)
class DecisionSnapshot:
    """Everything a stopping rule may look at for one decision.

    Attributes
    ----------
    state : AttemptState
        Attempt before the decision.
    n_candidates : int
        Items left after pool filtering.
    tracked_scales : list
        Scales whose precision matters for the attempt.
    measured_scales : frozenset
        Tracked scales at or below the standard error threshold with
        enough responses.
    now : float
        Seconds since the epoch.
    """

    state: AttemptState
    n_candidates: int
    tracked_scales: list[Hashable] = field(default_factory=list)
    measured_scales: frozenset[Hashable] = frozenset()
    now: float = 0.0

    @property
    def all_scales_measured(self) -> bool:
        return bool(self.tracked_scales) and all(
            s in self.measured_scales for s in self.tracked_scales
        )


def measured_scales(
    state: AttemptState,
    scale_ids: Iterable[Hashable],
    threshold: float,
    minimum_per_scale: int = 0,
) -> frozenset[Hashable]:
    """Scales whose standard error reached ``threshold`` with enough responses."""
    result = set()
    for scale_id in scale_ids:
        estimate = state.estimate(scale_id)
        if (
            estimate.standard_error <= threshold
            and estimate.n_questions >= minimum_per_scale
        ):
            result.add(scale_id)
    return frozenset(result)


class StoppingRule(ABC):
    """Abstract base class for stopping rules."""

    reason: TerminationReason

    @abstractmethod
    def should_stop(self, snapshot: DecisionSnapshot) -> bool:
        """Check if the attempt should stop.

        Parameters
        ----------
        snapshot : DecisionSnapshot
            Current decision inputs.

        Returns
        -------
        bool
            True if the attempt should stop, False otherwise.
        """
        pass

    def get_reason(self) -> str:
        return self.reason.value


class MaxQuestionsStop(StoppingRule):
    """Stop after a maximum number of responses, whatever the pool holds."""

    reason = TerminationReason.REACHED_MAXIMUM_QUESTIONS

    def __init__(self, maximum_questions: int):
        if maximum_questions < 0:
            raise ValueError("maximum_questions must be non-negative")
        self.maximum_questions = maximum_questions

    def should_stop(self, snapshot: DecisionSnapshot) -> bool:
        return snapshot.state.questions_attempted >= self.maximum_questions

    def get_reason(self) -> str:
        return f"Maximum questions reached ({self.maximum_questions})"


class NoRemainingQuestionsStop(StoppingRule):
    """Stop when the filtered pool is empty."""

    reason = TerminationReason.NO_REMAINING_QUESTIONS

    def should_stop(self, snapshot: DecisionSnapshot) -> bool:
        return snapshot.n_candidates == 0


class StandardErrorStop(StoppingRule):
    """Stop when every tracked scale is measured precisely enough.

    Parameters
    ----------
    threshold : float
        Standard error at or below which a scale counts as measured.
    minimum_questions : int
        Responses required before this rule may fire.
    """

    reason = TerminationReason.STANDARD_ERROR_REACHED

    def __init__(self, threshold: float = 0.3, minimum_questions: int = 0):
        if threshold <= 0:
            raise ValueError("SE threshold must be positive")
        self.threshold = threshold
        self.minimum_questions = minimum_questions

    def should_stop(self, snapshot: DecisionSnapshot) -> bool:
        if snapshot.state.questions_attempted < self.minimum_questions:
            return False
        return snapshot.all_scales_measured

    def get_reason(self) -> str:
        return f"Standard error threshold reached (SE <= {self.threshold})"


class TimeLimitStop(StoppingRule):
    """Stop once the attempt has lasted longer than ``time_limit`` seconds."""

    reason = TerminationReason.TIME_LIMIT_REACHED

    def __init__(self, time_limit: float):
        if time_limit <= 0:
            raise ValueError("time_limit must be positive")
        self.time_limit = time_limit

    def should_stop(self, snapshot: DecisionSnapshot) -> bool:
        return snapshot.now - snapshot.state.started_at > self.time_limit


class AbilityUnchangedStop(StoppingRule):
    """Stop when the latest response barely moved the ability.

    Parameters
    ----------
    threshold : float
        Change below which the ability counts as unchanged.
    minimum_questions : int
        Responses required before this rule may fire.
    """

    reason = TerminationReason.ABILITY_NOT_CHANGED

    def __init__(self, threshold: float, minimum_questions: int = 0):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = threshold
        self.minimum_questions = minimum_questions

    def should_stop(self, snapshot: DecisionSnapshot) -> bool:
        state = snapshot.state
        if state.questions_attempted < max(self.minimum_questions, 1):
            return False
        if state.last_scale_id is None:
            return False
        return state.estimate(state.last_scale_id).ability_change < self.threshold


class StoppingChain:
    """Ordered stopping rules; the first rule that fires wins."""

    def __init__(self, rules: Sequence[StoppingRule]):
        self.rules = list(rules)

    def check(self, snapshot: DecisionSnapshot) -> TerminationReason | None:
        for rule in self.rules:
            if rule.should_stop(snapshot):
                return rule.reason
        return None

    def __repr__(self) -> str:
        names = ", ".join(type(rule).__name__ for rule in self.rules)
        return f"StoppingChain([{names}])"


def build_stopping_rules(config: SelectorConfig) -> StoppingChain:
    """Assemble the rules enabled by ``config`` in evaluation order.

    Maximum questions, no remaining questions, standard error, time limit,
    ability unchanged.
    """
    rules: list[StoppingRule] = []
    if config.maximum_questions is not None:
        rules.append(MaxQuestionsStop(config.maximum_questions))
    rules.append(NoRemainingQuestionsStop())
    if config.standard_error_strategy != "never":
        rules.append(
            StandardErrorStop(config.standard_error_threshold, config.minimum_questions)
        )
    if config.time_limit is not None:
        rules.append(TimeLimitStop(config.time_limit))
    if config.stop_if_ability_unchanged:
        rules.append(
            AbilityUnchangedStop(config.ability_change_threshold, config.minimum_questions)
        )
    return StoppingChain(rules)
