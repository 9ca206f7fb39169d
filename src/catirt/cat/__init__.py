"""Computerized adaptive testing on calibrated contexts.

This module provides:
- Attempt state as immutable values, updated per response
- Maximum Fisher information item selection with first-question policies
- Ordered termination rules (maximum questions, empty pool, standard
  error, time limit, unchanged ability)
- Scale hierarchies whose ancestors are updated with every response

Examples
--------
>>> from catirt.cat import AdaptiveItemSelector
>>> selector = AdaptiveItemSelector(context, config={"maximum_questions": 20})
>>> state = selector.start(person_id="p1")
>>> result = selector.next_item(state)
>>> while not result.is_terminated:
...     fraction = get_response(result.item_id)
...     state = selector.apply_response(state, result.item_id, fraction)
...     result = selector.next_item(state)
>>> print(state.summary())

With subscales and per-scale exclusion:

>>> selector = AdaptiveItemSelector(
...     context,
...     pool=[PoolItem("q1", "algebra"), PoolItem("q2", "geometry")],
...     hierarchy={"algebra": "math", "geometry": "math"},
...     config={"standard_error_strategy": "exclude_scale"},
... )
"""

from catirt.cat.engine import AdaptiveItemSelector, apply_response, next_item
from catirt.cat.pool import Candidate, ItemPool, PoolItem, apply_cool_down
from catirt.cat.results import (
    AdministeredItem,
    AttemptState,
    AttemptStatus,
    NextItem,
    ScaleEstimate,
    SelectionResult,
    Terminated,
    TerminationReason,
)
from catirt.cat.scales import ScaleHierarchy
from catirt.cat.selection import (
    ItemSelectionStrategy,
    MaxFisherInformation,
    create_selection_strategy,
    select_first_question,
)
from catirt.cat.stopping import (
    AbilityUnchangedStop,
    DecisionSnapshot,
    MaxQuestionsStop,
    NoRemainingQuestionsStop,
    StandardErrorStop,
    StoppingChain,
    StoppingRule,
    TimeLimitStop,
    build_stopping_rules,
)

__all__ = [
    "AdaptiveItemSelector",
    "next_item",
    "apply_response",
    "AttemptState",
    "AttemptStatus",
    "AdministeredItem",
    "ScaleEstimate",
    "NextItem",
    "Terminated",
    "TerminationReason",
    "SelectionResult",
    "PoolItem",
    "ItemPool",
    "Candidate",
    "apply_cool_down",
    "ScaleHierarchy",
    "ItemSelectionStrategy",
    "MaxFisherInformation",
    "create_selection_strategy",
    "select_first_question",
    "StoppingRule",
    "StoppingChain",
    "DecisionSnapshot",
    "MaxQuestionsStop",
    "NoRemainingQuestionsStop",
    "StandardErrorStop",
    "TimeLimitStop",
    "AbilityUnchangedStop",
    "build_stopping_rules",
]
