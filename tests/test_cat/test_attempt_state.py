"""Tests for attempt state values and decision results."""

import dataclasses
import math

import pytest

from catirt.cat.results import (
    AdministeredItem,
    AttemptState,
    AttemptStatus,
    NextItem,
    ScaleEstimate,
    Terminated,
    TerminationReason,
)
from catirt.params import ItemParam


@pytest.fixture
def state():
    return AttemptState(
        attempt_id="att",
        person_id="p1",
        estimates={"math": ScaleEstimate("math", 0.5, 0.4, 2, 0.1)},
        history=(
            AdministeredItem("q1", "math", 1.0, 10.0, 0.2),
            AdministeredItem("q2", "math", 0.0, 20.0, 0.25),
        ),
        started_at=5.0,
        last_scale_id="math",
    )


class TestAttemptState:
    """Tests for AttemptState."""

    def test_status_lifecycle(self, state):
        assert AttemptState().status is AttemptStatus.AWAITING_FIRST_ITEM
        assert state.status is AttemptStatus.IN_PROGRESS
        terminated = state.terminate(TerminationReason.TIME_LIMIT_REACHED)
        assert terminated.status is AttemptStatus.TERMINATED
        assert terminated.is_terminated
        assert not state.is_terminated

    def test_frozen(self, state):
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.history = ()
        with pytest.raises(TypeError):
            state.estimates["math"] = ScaleEstimate("math", 0.0)

    def test_counts(self, state):
        assert state.questions_attempted == 2
        assert state.administered_item_ids == ["q1", "q2"]
        assert state.has_answered("q1")
        assert not state.has_answered("q3")
        assert state.scale_ids == ["math"]

    def test_untracked_scale(self, state):
        estimate = state.estimate("reading", default_ability=0.7)
        assert estimate.ability == 0.7
        assert math.isinf(estimate.standard_error)
        assert estimate.n_questions == 0
        assert state.ability("reading") == 0.0

    def test_with_estimates(self, state):
        updated = state.with_estimates(
            {"reading": ScaleEstimate("reading", -0.2, 0.9, 1, 0.2)},
            last_scale_id="reading",
        )
        assert updated.ability("math") == 0.5
        assert updated.ability("reading") == -0.2
        assert updated.last_scale_id == "reading"
        assert "reading" not in state.estimates

    def test_summary(self, state):
        summary = state.summary()
        assert "Attempt Summary" in summary
        assert "InProgress" in summary
        assert "math" in summary

    def test_to_dataframe(self, state):
        df = state.to_dataframe()
        assert list(df.columns) == ["step", "item", "scale", "fraction", "timestamp", "info", "pilot"]
        assert df["step"].tolist() == [1, 2]
        assert df["item"].tolist() == ["q1", "q2"]

    def test_pilot_counts(self, state):
        pilot = AdministeredItem("new", "reading", 1.0, 30.0, pilot=True)
        extended = dataclasses.replace(state, history=state.history + (pilot,))
        assert extended.n_pilot_questions == 1
        assert extended.questions_attempted == 3
        assert extended.questions_by_scale() == {"math": 2, "reading": 1}
        assert extended.to_dataframe()["pilot"].tolist() == [False, False, True]

    def test_repr(self, state):
        assert "n_items=2" in repr(state)


class TestSelectionResults:
    """Tests for NextItem and Terminated."""

    def test_next_item(self):
        param = ItemParam("q", "rasch", {"difficulty": 0.4})
        result = NextItem(item_param=param, scale_id="math", score=0.24)
        assert result.item_id == "q"
        assert not result.is_terminated

    def test_pilot_item(self):
        result = NextItem(item_param=None, scale_id="math", score=math.nan, item_id="new")
        assert result.is_pilot
        assert result.item_id == "new"

    def test_needs_an_item(self):
        with pytest.raises(ValueError):
            NextItem(item_param=None, scale_id="math", score=0.0)

    def test_terminated(self):
        result = Terminated(TerminationReason.NO_REMAINING_QUESTIONS)
        assert result.is_terminated
        assert repr(result) == "Terminated(NoRemainingQuestions)"

    def test_reason_values(self):
        assert {r.value for r in TerminationReason} == {
            "ReachedMaximumQuestions",
            "NoRemainingQuestions",
            "StandardErrorReached",
            "TimeLimitReached",
            "AbilityNotChanged",
        }
