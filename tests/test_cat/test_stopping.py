"""Tests for termination rules."""

import pytest

from catirt.cat.results import (
    AdministeredItem,
    AttemptState,
    ScaleEstimate,
    TerminationReason,
)
from catirt.cat.stopping import (
    AbilityUnchangedStop,
    DecisionSnapshot,
    MaxQuestionsStop,
    NoRemainingQuestionsStop,
    StandardErrorStop,
    StoppingChain,
    TimeLimitStop,
    build_stopping_rules,
    measured_scales,
)
from catirt.config import SelectorConfig


def _state(n_items=0, estimates=(), started_at=0.0, last_scale_id=None):
    history = tuple(
        AdministeredItem(f"q{j}", "math", 1.0, float(j)) for j in range(n_items)
    )
    return AttemptState(
        estimates={e.scale_id: e for e in estimates},
        history=history,
        started_at=started_at,
        last_scale_id=last_scale_id,
    )


def _snapshot(state, n_candidates=5, tracked=("math",), measured=(), now=0.0):
    return DecisionSnapshot(
        state=state,
        n_candidates=n_candidates,
        tracked_scales=list(tracked),
        measured_scales=frozenset(measured),
        now=now,
    )


class TestMeasuredScales:
    """Tests for deciding which scales are measured."""

    def test_threshold_and_count(self):
        state = _state(
            estimates=[
                ScaleEstimate("a", 0.0, 0.25, 3),
                ScaleEstimate("b", 0.0, 0.45, 9),
                ScaleEstimate("c", 0.0, 0.2, 1),
            ]
        )
        assert measured_scales(state, ["a", "b", "c"], 0.3) == {"a", "c"}
        assert measured_scales(state, ["a", "b", "c"], 0.3, minimum_per_scale=2) == {"a"}

    def test_untracked_scale_is_not_measured(self):
        assert measured_scales(_state(), ["x"], 0.3) == frozenset()

    def test_threshold_is_inclusive(self):
        state = _state(estimates=[ScaleEstimate("a", 0.0, 0.3, 4)])
        assert measured_scales(state, ["a"], 0.3) == {"a"}


class TestRules:
    """Tests for individual stopping rules."""

    def test_max_questions(self):
        rule = MaxQuestionsStop(3)
        assert not rule.should_stop(_snapshot(_state(2)))
        assert rule.should_stop(_snapshot(_state(3)))
        assert "3" in rule.get_reason()

    def test_max_questions_zero(self):
        assert MaxQuestionsStop(0).should_stop(_snapshot(_state()))

    def test_max_questions_negative(self):
        with pytest.raises(ValueError):
            MaxQuestionsStop(-1)

    def test_no_remaining(self):
        rule = NoRemainingQuestionsStop()
        assert rule.should_stop(_snapshot(_state(), n_candidates=0))
        assert not rule.should_stop(_snapshot(_state(), n_candidates=1))
        assert rule.get_reason() == "NoRemainingQuestions"

    def test_standard_error_needs_every_scale(self):
        rule = StandardErrorStop(0.3)
        state = _state(4)
        assert not rule.should_stop(_snapshot(state, tracked=("a", "b"), measured=("a",)))
        assert rule.should_stop(_snapshot(state, tracked=("a", "b"), measured=("a", "b")))

    def test_standard_error_without_scales(self):
        assert not StandardErrorStop(0.3).should_stop(_snapshot(_state(4), tracked=()))

    def test_standard_error_minimum_questions(self):
        rule = StandardErrorStop(0.3, minimum_questions=5)
        assert not rule.should_stop(_snapshot(_state(4), measured=("math",)))
        assert rule.should_stop(_snapshot(_state(5), measured=("math",)))

    def test_time_limit_is_strict(self):
        rule = TimeLimitStop(60)
        state = _state(started_at=100.0)
        assert not rule.should_stop(_snapshot(state, now=160.0))
        assert rule.should_stop(_snapshot(state, now=160.5))

    def test_ability_unchanged(self):
        rule = AbilityUnchangedStop(0.01)
        settled = _state(
            1, [ScaleEstimate("math", 0.4, 0.8, 1, 0.005)], last_scale_id="math"
        )
        moving = _state(1, [ScaleEstimate("math", 0.4, 0.8, 1, 0.5)], last_scale_id="math")
        assert rule.should_stop(_snapshot(settled))
        assert not rule.should_stop(_snapshot(moving))

    def test_ability_unchanged_needs_a_response(self):
        rule = AbilityUnchangedStop(0.01)
        assert not rule.should_stop(_snapshot(_state()))

    def test_ability_unchanged_uses_last_scale(self):
        rule = AbilityUnchangedStop(0.01)
        state = _state(
            2,
            [
                ScaleEstimate("math", 0.4, 0.8, 1, 0.005),
                ScaleEstimate("reading", 0.1, 0.9, 1, 0.7),
            ],
            last_scale_id="reading",
        )
        assert not rule.should_stop(_snapshot(state, tracked=("math", "reading")))


class TestStoppingChain:
    """Tests for rule ordering."""

    def test_first_rule_wins(self):
        chain = build_stopping_rules(SelectorConfig(maximum_questions=2))
        # Both the maximum and the empty pool apply.
        reason = chain.check(_snapshot(_state(2), n_candidates=0))
        assert reason is TerminationReason.REACHED_MAXIMUM_QUESTIONS

    def test_no_rule_fires(self):
        chain = build_stopping_rules(SelectorConfig(maximum_questions=10))
        assert chain.check(_snapshot(_state(2))) is None

    def test_rules_follow_config(self):
        chain = build_stopping_rules(
            SelectorConfig(
                maximum_questions=10,
                standard_error_strategy="never",
                time_limit=30,
                stop_if_ability_unchanged=True,
            )
        )
        assert [type(r) for r in chain.rules] == [
            MaxQuestionsStop,
            NoRemainingQuestionsStop,
            TimeLimitStop,
            AbilityUnchangedStop,
        ]

    def test_default_rules(self):
        chain = build_stopping_rules(SelectorConfig())
        assert [type(r) for r in chain.rules] == [NoRemainingQuestionsStop, StandardErrorStop]
        assert "StandardErrorStop" in repr(chain)

    def test_empty_chain(self):
        assert StoppingChain([]).check(_snapshot(_state(), n_candidates=0)) is None
