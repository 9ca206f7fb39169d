"""Attempt state and decision results for adaptive testing."""

from __future__ import annotations

import enum
import time
import uuid
from collections import Counter
from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import numpy as np

from catirt.params import ItemParam

if TYPE_CHECKING:
    import pandas as pd


class TerminationReason(enum.Enum):
    """Why an attempt stopped. Ordinary outcomes, not errors."""

    REACHED_MAXIMUM_QUESTIONS = "ReachedMaximumQuestions"
    NO_REMAINING_QUESTIONS = "NoRemainingQuestions"
    STANDARD_ERROR_REACHED = "StandardErrorReached"
    TIME_LIMIT_REACHED = "TimeLimitReached"
    ABILITY_NOT_CHANGED = "AbilityNotChanged"


class AttemptStatus(enum.Enum):
    AWAITING_FIRST_ITEM = "AwaitingFirstItem"
    IN_PROGRESS = "InProgress"
    TERMINATED = "Terminated"


@dataclass(frozen=True)
class ScaleEstimate:
    """Ability estimate of the examinee on one scale.

    Attributes
    ----------
    scale_id : Hashable
        Scale the estimate belongs to.
    ability : float
        Current ability estimate.
    standard_error : float
        ``1 / sqrt(information)`` over the items administered on the scale
        and its subscales; ``inf`` before any item.
    n_questions : int
        Items administered on the scale, subscales included.
    ability_change : float
        Absolute change caused by the latest update, ``inf`` before any.
    """

    scale_id: Hashable
    ability: float
    standard_error: float = float("inf")
    n_questions: int = 0
    ability_change: float = float("inf")

    def __repr__(self) -> str:
        return (
            f"ScaleEstimate(scale={self.scale_id!r}, "
            f"ability={self.ability:.3f}, "
            f"se={self.standard_error:.3f}, "
            f"n={self.n_questions})"
        )


@dataclass(frozen=True)
class AdministeredItem:
    """One scored response within an attempt.

    Pilot responses carry no information and are left out of every
    ability update.
    """

    item_id: Hashable
    scale_id: Hashable
    fraction: float
    timestamp: float
    information: float = float("nan")
    pilot: bool = False


@dataclass(frozen=True)
class AttemptState:
    """Immutable state of one adaptive attempt.

    Every update returns a new state; a state object never changes, so
    it can be stored or shared between threads freely.

    Attributes
    ----------
    attempt_id : str
        Identifier of the attempt.
    person_id : Hashable or None
        Examinee taking the attempt.
    context_id : str or None
        Context the attempt is bound to.
    estimates : Mapping[Hashable, ScaleEstimate]
        Ability estimate per tracked scale.
    history : tuple of AdministeredItem
        Scored responses in administration order.
    started_at : float
        Seconds since the epoch at which the attempt started.
    termination : TerminationReason or None
        Set once the attempt terminated.
    last_scale_id : Hashable or None
        Scale of the most recently answered item.
    """

    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    person_id: Hashable | None = None
    context_id: str | None = None
    estimates: Mapping[Hashable, ScaleEstimate] = field(default_factory=dict)
    history: tuple[AdministeredItem, ...] = ()
    started_at: float = field(default_factory=time.time)
    termination: TerminationReason | None = None
    last_scale_id: Hashable | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "estimates", MappingProxyType(dict(self.estimates)))
        object.__setattr__(self, "history", tuple(self.history))

    @property
    def status(self) -> AttemptStatus:
        if self.termination is not None:
            return AttemptStatus.TERMINATED
        if not self.history:
            return AttemptStatus.AWAITING_FIRST_ITEM
        return AttemptStatus.IN_PROGRESS

    @property
    def is_terminated(self) -> bool:
        return self.termination is not None

    @property
    def questions_attempted(self) -> int:
        return len(self.history)

    @property
    def administered_item_ids(self) -> list[Hashable]:
        return [entry.item_id for entry in self.history]

    @property
    def scale_ids(self) -> list[Hashable]:
        return list(self.estimates)

    def has_answered(self, item_id: Hashable) -> bool:
        return any(entry.item_id == item_id for entry in self.history)

    @property
    def n_pilot_questions(self) -> int:
        return sum(entry.pilot for entry in self.history)

    def questions_by_scale(self) -> Counter[Hashable]:
        """Responses per scale, pilot items included, subscales separate."""
        return Counter(entry.scale_id for entry in self.history)

    def estimate(self, scale_id: Hashable, default_ability: float = 0.0) -> ScaleEstimate:
        """Estimate for a scale, a fresh one at ``default_ability`` if untracked."""
        current = self.estimates.get(scale_id)
        if current is None:
            return ScaleEstimate(scale_id=scale_id, ability=default_ability)
        return current

    def ability(self, scale_id: Hashable, default_ability: float = 0.0) -> float:
        return self.estimate(scale_id, default_ability).ability

    def standard_error(self, scale_id: Hashable) -> float:
        return self.estimate(scale_id).standard_error

    def with_estimates(self, updates: Mapping[Hashable, ScaleEstimate], **changes: Any) -> AttemptState:
        """Return a copy with some scale estimates replaced."""
        estimates = dict(self.estimates)
        estimates.update(updates)
        return replace(self, estimates=estimates, **changes)

    def terminate(self, reason: TerminationReason) -> AttemptState:
        return replace(self, termination=reason)

    def summary(self) -> str:
        """Return a formatted summary of the attempt.

        Returns
        -------
        str
            Multi-line summary string.
        """
        reason = self.termination.value if self.termination else "-"
        lines = [
            "Attempt Summary",
            "=" * 40,
            f"Attempt:               {self.attempt_id}",
            f"Status:                {self.status.value}",
            f"Items administered:    {self.questions_attempted}",
            f"Pilot items:           {self.n_pilot_questions}",
            f"Termination reason:    {reason}",
            "",
            "Scale estimates:",
        ]
        for estimate in self.estimates.values():
            lines.append(
                f"  {str(estimate.scale_id):<20} {estimate.ability:7.4f} "
                f"(SE: {estimate.standard_error:.4f}, n={estimate.n_questions})"
            )
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """Administration history as a DataFrame, one row per response."""
        import pandas as pd

        return pd.DataFrame(
            {
                "step": np.arange(1, len(self.history) + 1),
                "item": [e.item_id for e in self.history],
                "scale": [e.scale_id for e in self.history],
                "fraction": [e.fraction for e in self.history],
                "timestamp": [e.timestamp for e in self.history],
                "info": [e.information for e in self.history],
                "pilot": [e.pilot for e in self.history],
            }
        )

    def __repr__(self) -> str:
        return (
            f"AttemptState(attempt={self.attempt_id!r}, "
            f"status={self.status.value}, "
            f"n_items={self.questions_attempted}, "
            f"n_scales={len(self.estimates)})"
        )


@dataclass(frozen=True)
class NextItem:
    """Item selected for administration.

    Attributes
    ----------
    item_param : ItemParam or None
        Parameters of the selected item in the bound context; None for a
        pilot item.
    scale_id : Hashable
        Scale the item belongs to.
    score : float
        Fisher information at the current ability on the item's scale,
        ``nan`` for a pilot item.
    first_question_policy : str or None
        Policy that chose the item on the first decision, if any.
    item_id : Hashable
        Identifier of the item; taken from ``item_param`` when omitted.
    """

    item_param: ItemParam | None
    scale_id: Hashable
    score: float
    first_question_policy: str | None = None
    item_id: Hashable = None
    is_terminated = False

    def __post_init__(self) -> None:
        if self.item_id is None:
            if self.item_param is None:
                raise ValueError("NextItem needs an item_param or an item_id")
            object.__setattr__(self, "item_id", self.item_param.item_id)

    @property
    def is_pilot(self) -> bool:
        return self.item_param is None


@dataclass(frozen=True)
class Terminated:
    """Termination outcome of a selection decision."""

    reason: TerminationReason
    is_terminated = True

    def __repr__(self) -> str:
        return f"Terminated({self.reason.value})"


SelectionResult = NextItem | Terminated
