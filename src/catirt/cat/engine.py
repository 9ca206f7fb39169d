"""Adaptive item selector for computerized adaptive testing."""

from __future__ import annotations

import logging
import math
import time
import zlib
from collections.abc import Callable, Hashable, Mapping
from typing import Any

import numpy as np

from catirt.cat.pool import (
    Candidate,
    ItemPool,
    PoolItem,
    apply_cool_down,
    exclude_scales,
)
from catirt.cat.results import (
    AdministeredItem,
    AttemptState,
    NextItem,
    ScaleEstimate,
    SelectionResult,
    Terminated,
)
from catirt.cat.scales import ScaleHierarchy
from catirt.cat.selection import (
    ItemSelectionStrategy,
    create_selection_strategy,
    select_first_question,
)
from catirt.cat.stopping import DecisionSnapshot, build_stopping_rules, measured_scales
from catirt.config import SelectorConfig
from catirt.constants import CURVATURE_EPSILON
from catirt.context import Context
from catirt.exceptions import (
    AttemptTerminatedError,
    InvalidResponseError,
    UnknownItemError,
)
from catirt.models import create_model
from catirt.responses import ResponseRecord

logger = logging.getLogger(__name__)


class AdaptiveItemSelector:
    """Select items and update abilities for adaptive attempts.

    The selector is bound to one immutable context and holds no per-attempt
    state: every attempt is an :class:`AttemptState` value that
    :meth:`apply_response` replaces by a new one. Many attempts can share
    one selector.

    Parameters
    ----------
    context : Context
        Calibrated parameters the attempts are bound to.
    pool : ItemPool or iterable of PoolItem, optional
        Items that may be administered. Defaults to every active item of
        the context on the context's scale.
    config : SelectorConfig or Mapping, optional
        Termination and selection settings.
    hierarchy : ScaleHierarchy or Mapping, optional
        Parent scale by scale id. Responses update the item's scale and
        all its ancestors.
    selection : ItemSelectionStrategy or str, optional
        Item scoring, or the name of a registered strategy. Defaults to
        maximum Fisher information.
    clock : callable, optional
        Returns the current time in seconds since the epoch.

    Examples
    --------
    >>> selector = AdaptiveItemSelector(context, config={"maximum_questions": 10})
    >>> state = selector.start(person_id="p1")
    >>> result = selector.next_item(state)
    >>> while not result.is_terminated:
    ...     fraction = ask(result.item_id)
    ...     state = selector.apply_response(state, result.item_id, fraction)
    ...     result = selector.next_item(state)
    >>> result.reason
    <TerminationReason.STANDARD_ERROR_REACHED: 'StandardErrorReached'>
    """

    def __init__(
        self,
        context: Context,
        pool: ItemPool | list[PoolItem] | None = None,
        config: SelectorConfig | Mapping[str, Any] | None = None,
        hierarchy: ScaleHierarchy | Mapping[Hashable, Hashable | None] | None = None,
        selection: ItemSelectionStrategy | str = "MFI",
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(config, Mapping):
            config = SelectorConfig.from_mapping(config)
        self.config = config or SelectorConfig()
        self.context = context
        if pool is None:
            pool = ItemPool.from_context(context)
        elif not isinstance(pool, ItemPool):
            pool = ItemPool(pool)
        self.pool = pool
        if hierarchy is None:
            hierarchy = ScaleHierarchy()
        elif not isinstance(hierarchy, ScaleHierarchy):
            hierarchy = ScaleHierarchy(hierarchy)
        self.hierarchy = hierarchy
        if isinstance(selection, str):
            self._selection = create_selection_strategy(selection)
        else:
            self._selection = selection
        self._stopping = build_stopping_rules(self.config)
        self.clock = clock

    @property
    def tracked_scales(self) -> list[Hashable]:
        """Scales owning pool items plus all their ancestors."""
        scales: dict[Hashable, None] = {}
        for scale_id in self.pool.scale_ids(self.context):
            for s in self.hierarchy.lineage(scale_id):
                scales[s] = None
        return list(scales)

    def start(
        self,
        person_id: Hashable | None = None,
        attempt_id: str | None = None,
        initial_abilities: Mapping[Hashable, float] | None = None,
    ) -> AttemptState:
        """Create the state of a new attempt in ``AwaitingFirstItem``.

        Every tracked scale starts at ``initial_abilities[scale]`` when
        given, else at the person's ability in the context when it was
        calibrated for that scale, else at ``config.initial_ability``.
        """
        initial_abilities = initial_abilities or {}
        person = self.context.person_params.get(person_id) if person_id is not None else None
        lower, upper = self.config.ability_bounds
        estimates = {}
        for scale_id in self.tracked_scales:
            ability = self.config.initial_ability
            if scale_id in initial_abilities:
                ability = float(initial_abilities[scale_id])
            elif person is not None and scale_id in (person.scale_id, self.context.scale_id):
                ability = person.ability
            estimates[scale_id] = ScaleEstimate(
                scale_id=scale_id, ability=float(np.clip(ability, lower, upper))
            )
        changes: dict[str, Any] = {}
        if attempt_id is not None:
            changes["attempt_id"] = attempt_id
        state = AttemptState(
            person_id=person_id,
            context_id=self.context.context_id,
            estimates=estimates,
            started_at=self.clock(),
            **changes,
        )
        logger.debug("Started %r", state)
        return state

    # -- decisions ----------------------------------------------------------

    def _check_binding(self, state: AttemptState) -> None:
        if state.context_id is not None and state.context_id != self.context.context_id:
            raise ValueError(
                f"Attempt {state.attempt_id!r} is bound to context "
                f"{state.context_id!r}, not {self.context.context_id!r}"
            )

    def _abilities(self, state: AttemptState) -> dict[Hashable, float]:
        return {
            s: state.ability(s, self.config.initial_ability) for s in self.tracked_scales
        }

    def eligible_items(self, state: AttemptState, now: float | None = None) -> list[Candidate]:
        """Candidates left after every pool filter of one decision.

        Inactive, manually excluded and already administered items are
        removed. Uncalibrated items are kept as pilot candidates only when
        ``pilot_ratio`` is positive. Items of scales that reached
        ``maximum_questions_per_scale`` are removed. With the
        ``"exclude_scale"`` strategy, items of scales that reached the
        standard error threshold are removed as long as some scale has not.
        Items inside their cool-down window are removed unless that would
        empty the pool.
        """
        cfg = self.config
        now = self.clock() if now is None else now
        candidates = self.pool.candidates(
            self.context,
            state.administered_item_ids,
            include_pilots=cfg.pilot_ratio > 0,
        )
        if cfg.maximum_questions_per_scale is not None:
            full = [
                s
                for s, n in state.questions_by_scale().items()
                if n >= cfg.maximum_questions_per_scale
            ]
            candidates = exclude_scales(candidates, full)
        if cfg.standard_error_strategy == "exclude_scale":
            tracked = self.tracked_scales
            measured = self._measured(state, tracked)
            if not all(s in measured for s in tracked):
                candidates = exclude_scales(candidates, measured)
        return apply_cool_down(candidates, now, cfg.cool_down_period)

    def _measured(self, state: AttemptState, scales: list[Hashable]) -> frozenset[Hashable]:
        return measured_scales(
            state,
            scales,
            self.config.standard_error_threshold,
            self.config.minimum_questions_per_scale,
        )

    def next_item(self, state: AttemptState) -> SelectionResult:
        """Decide the next item of an attempt, or that it terminates.

        Parameters
        ----------
        state : AttemptState
            Current attempt.

        Returns
        -------
        NextItem or Terminated
            The selected item with its information score, or the reason
            the attempt ends. Termination is a return value, never raised.

        Notes
        -----
        The state is not modified, so a ``Terminated`` result is not
        recorded in it. Callers that keep the attempt going should use
        :meth:`advance`, which stores the termination so that later
        calls to :meth:`apply_response` are rejected.

        Raises
        ------
        ValueError
            If the attempt is bound to another context.
        """
        self._check_binding(state)
        if state.termination is not None:
            return Terminated(state.termination)

        now = self.clock()
        candidates = self.eligible_items(state, now)
        tracked = self.tracked_scales
        snapshot = DecisionSnapshot(
            state=state,
            n_candidates=len(candidates),
            tracked_scales=tracked,
            measured_scales=self._measured(state, tracked),
            now=now,
        )
        reason = self._stopping.check(snapshot)
        if reason is not None:
            logger.debug(
                "Attempt %s terminates after %d items: %s",
                state.attempt_id,
                state.questions_attempted,
                reason.value,
            )
            return Terminated(reason)

        pilots = [c for c in candidates if c.is_pilot]
        calibrated = [c for c in candidates if not c.is_pilot]
        if pilots and (not calibrated or self._serve_pilot(state)):
            pilot = pilots[0]
            logger.debug(
                "Attempt %s: serving pilot item %r (scale %r)",
                state.attempt_id,
                pilot.item_id,
                pilot.scale_id,
            )
            return NextItem(
                item_param=None,
                scale_id=pilot.scale_id,
                score=math.nan,
                item_id=pilot.item_id,
            )

        abilities = self._abilities(state)
        policy = None
        chosen = None
        if state.questions_attempted == state.n_pilot_questions:
            chosen = select_first_question(calibrated, self.config.first_question_policy)
            policy = self.config.first_question_policy if chosen is not None else None
        if chosen is None:
            chosen, score = self._selection.select_item(calibrated, abilities)
        else:
            score = self._selection.get_item_criteria([chosen], abilities)[chosen.item_id]

        logger.debug(
            "Attempt %s: selected item %r (scale %r, information %.4f)",
            state.attempt_id,
            chosen.item_id,
            chosen.scale_id,
            score,
        )
        return NextItem(
            item_param=chosen.param,
            scale_id=chosen.scale_id,
            score=score,
            first_question_policy=policy,
        )

    def _serve_pilot(self, state: AttemptState) -> bool:
        """Draw whether this decision serves a pilot item.

        The draw is seeded by the attempt and its number of responses, so
        repeated decisions on the same state agree.
        """
        ratio = self.config.pilot_ratio
        if ratio <= 0:
            return False
        seed = [zlib.crc32(str(state.attempt_id).encode()), state.questions_attempted]
        return bool(np.random.default_rng(seed).random() < ratio)

    def advance(self, state: AttemptState) -> tuple[AttemptState, SelectionResult]:
        """Like :meth:`next_item`, also recording a termination in the state."""
        result = self.next_item(state)
        if isinstance(result, Terminated) and state.termination is None:
            state = state.terminate(result.reason)
        return state, result

    # -- responses ----------------------------------------------------------

    def apply_response(
        self,
        state: AttemptState,
        item_id: Hashable,
        fraction: float,
        timestamp: float | None = None,
    ) -> AttemptState:
        """Record a scored response and update the affected abilities.

        The item's scale and each of its ancestors take one capped
        Newton-Raphson step on the log-likelihood of every item answered on
        that scale or its subscales. The standard error becomes
        ``1 / sqrt(information)`` at the new ability. Responses to pilot
        items are recorded without changing any estimate.

        Parameters
        ----------
        state : AttemptState
            Current attempt.
        item_id : Hashable
            Item that was answered.
        fraction : float
            Achieved fraction of the maximum score, in [0, 1].
        timestamp : float, optional
            When the response was given; defaults to now.

        Returns
        -------
        AttemptState
            New state; ``state`` is left unchanged.

        Raises
        ------
        AttemptTerminatedError
            If the attempt already terminated.
        UnknownItemError
            If the item is not in the pool, is excluded, or has no
            parameters while pilot items are disabled.
        InvalidResponseError
            If the fraction is invalid or the item was already answered.
        """
        self._check_binding(state)
        if state.termination is not None:
            raise AttemptTerminatedError(
                f"Attempt {state.attempt_id!r} terminated: {state.termination.value}"
            )
        item = self.pool.get(item_id)
        param = self.context.get_item_param(item_id)
        if item is None or (param is not None and param.is_excluded):
            raise UnknownItemError(item_id)
        if param is None and self.config.pilot_ratio <= 0:
            raise UnknownItemError(item_id)
        if state.has_answered(item_id):
            raise InvalidResponseError(
                f"Item {item_id!r} was already answered in attempt {state.attempt_id!r}"
            )
        timestamp = self.clock() if timestamp is None else timestamp
        record = ResponseRecord(state.person_id, item_id, fraction, timestamp)

        scale_id = self.pool.scale_of(item, self.context)
        if param is None:
            entry = AdministeredItem(
                item_id=item_id,
                scale_id=scale_id,
                fraction=record.fraction,
                timestamp=record.timestamp,
                pilot=True,
            )
            logger.debug(
                "Attempt %s: pilot item %r scored %.3f; abilities unchanged",
                state.attempt_id,
                item_id,
                record.fraction,
            )
            return state.with_estimates(
                {},
                history=state.history + (entry,),
                context_id=self.context.context_id,
            )

        model = create_model(param.model_name)
        ability = state.ability(scale_id, self.config.initial_ability)
        entry = AdministeredItem(
            item_id=item_id,
            scale_id=scale_id,
            fraction=record.fraction,
            timestamp=record.timestamp,
            information=float(model.fisher_info(ability, param.parameters)),
        )
        history = state.history + (entry,)

        updates = {
            s: self._update_scale(state, s, history)
            for s in self.hierarchy.lineage(scale_id)
        }
        new_state = state.with_estimates(
            updates,
            history=history,
            context_id=self.context.context_id,
            last_scale_id=scale_id,
        )
        logger.debug(
            "Attempt %s: item %r scored %.3f; %s",
            state.attempt_id,
            item_id,
            record.fraction,
            ", ".join(repr(e) for e in updates.values()),
        )
        return new_state

    def _update_scale(
        self,
        state: AttemptState,
        scale_id: Hashable,
        history: tuple[AdministeredItem, ...],
    ) -> ScaleEstimate:
        cfg = self.config
        covered = {scale_id, *self.hierarchy.descendants(scale_id)}
        answered = [e for e in history if e.scale_id in covered and not e.pilot]
        current = state.ability(scale_id, cfg.initial_ability)

        items = []
        for entry in answered:
            param = self.context.get_item_param(entry.item_id)
            items.append((create_model(param.model_name), param.parameters, entry.fraction))

        gradient = sum(m.log_likelihood_d_ability(current, p, f) for m, p, f in items)
        curvature = sum(m.log_likelihood_d2_ability(current, p, f) for m, p, f in items)
        if curvature < -CURVATURE_EPSILON:
            step = -gradient / curvature
        else:
            # Flat or convex: move along the gradient instead.
            step = gradient
        step = float(np.clip(step, -cfg.max_ability_step, cfg.max_ability_step))
        if not math.isfinite(step):
            step = 0.0
        ability = float(np.clip(current + step, *cfg.ability_bounds))

        information = sum(m.fisher_info(ability, p) for m, p, _ in items)
        standard_error = 1.0 / math.sqrt(information) if information > 0 else math.inf
        return ScaleEstimate(
            scale_id=scale_id,
            ability=ability,
            standard_error=standard_error,
            n_questions=len(answered),
            ability_change=abs(ability - current),
        )

    # -- simulation ---------------------------------------------------------

    def run_simulation(
        self,
        true_abilities: Mapping[Hashable, float] | float,
        seed: int | None = None,
        person_id: Hashable | None = None,
    ) -> tuple[AttemptState, Terminated]:
        """Run a complete attempt with responses drawn from known abilities.

        Pilot items are answered correctly with probability 0.5.

        Parameters
        ----------
        true_abilities : Mapping or float
            True ability per scale, or one ability for every scale.
        seed : int, optional
            Random seed for reproducibility.

        Returns
        -------
        tuple
            Final attempt state and its termination.
        """
        rng = np.random.default_rng(seed)
        state = self.start(person_id=person_id)
        while True:
            state, result = self.advance(state)
            if isinstance(result, Terminated):
                return state, result
            if isinstance(true_abilities, Mapping):
                theta = float(true_abilities[result.scale_id])
            else:
                theta = float(true_abilities)
            param = result.item_param
            if param is None:
                # Pilot items have no model to draw from.
                fraction = float(rng.random() < 0.5)
            else:
                model = create_model(param.model_name)
                fraction = model.sample(
                    np.array([theta]),
                    model.to_vector(param.parameters),
                    model.categories(param.parameters),
                    rng,
                )[0]
            state = self.apply_response(state, result.item_id, float(fraction))

    def __repr__(self) -> str:
        return (
            f"AdaptiveItemSelector(context={self.context.context_id!r}, "
            f"n_items={len(self.pool)}, "
            f"n_scales={len(self.tracked_scales)})"
        )


def next_item(
    attempt_state: AttemptState,
    context: Context,
    pool: ItemPool | list[PoolItem] | None = None,
    config: SelectorConfig | Mapping[str, Any] | None = None,
    hierarchy: ScaleHierarchy | Mapping[Hashable, Hashable | None] | None = None,
) -> SelectionResult:
    """Decide the next item of ``attempt_state`` under ``context``.

    The returned termination is not recorded in ``attempt_state``; use
    :meth:`AdaptiveItemSelector.advance` to keep it.

    Returns
    -------
    NextItem or Terminated
    """
    selector = AdaptiveItemSelector(context, pool, config, hierarchy)
    return selector.next_item(attempt_state)


def apply_response(
    attempt_state: AttemptState,
    item_id: Hashable,
    fraction: float,
    context: Context,
    pool: ItemPool | list[PoolItem] | None = None,
    config: SelectorConfig | Mapping[str, Any] | None = None,
    hierarchy: ScaleHierarchy | Mapping[Hashable, Hashable | None] | None = None,
) -> AttemptState:
    """Record a response and return the updated attempt state."""
    selector = AdaptiveItemSelector(context, pool, config, hierarchy)
    return selector.apply_response(attempt_state, item_id, fraction)
