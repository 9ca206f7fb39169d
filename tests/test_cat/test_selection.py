"""Tests for item selection strategies and first-question policies."""

import pytest

from catirt.cat.pool import Candidate, PoolItem
from catirt.cat.selection import (
    MaxFisherInformation,
    create_selection_strategy,
    item_id_key,
    select_first_question,
)
from catirt.exceptions import ConfigurationError
from catirt.params import ItemParam


def _candidate(item_id, difficulty, scale_id="math", discrimination=1.0):
    param = ItemParam(
        item_id,
        "raschbirnbaum",
        {"difficulty": difficulty, "discrimination": discrimination},
    )
    return Candidate(PoolItem(item_id, scale_id), param, scale_id)


class TestMaxFisherInformation:
    """Tests for maximum information selection."""

    def test_selects_closest_difficulty(self):
        candidates = [_candidate("a", -1.0), _candidate("b", 0.2), _candidate("c", 1.5)]
        best, score = MaxFisherInformation().select_item(candidates, {"math": 0.0})
        assert best.item_id == "b"
        assert score == pytest.approx(0.2475, abs=1e-3)

    def test_discrimination_matters(self):
        candidates = [_candidate("flat", 0.0, discrimination=0.5), _candidate("sharp", 0.5, discrimination=2.0)]
        best, _ = MaxFisherInformation().select_item(candidates, {"math": 0.0})
        assert best.item_id == "sharp"

    def test_ability_per_scale(self):
        candidates = [_candidate("m", 2.0, "math"), _candidate("r", -2.0, "reading")]
        best, _ = MaxFisherInformation().select_item(
            candidates, {"math": -2.0, "reading": -2.0}
        )
        assert best.item_id == "r"

    def test_ties_resolved_by_item_id(self):
        candidates = [_candidate("z", 0.3), _candidate("a", 0.3)]
        best, _ = MaxFisherInformation().select_item(candidates, {"math": 0.0})
        assert best.item_id == "a"

    def test_criteria_by_item(self):
        candidates = [_candidate("a", 0.0), _candidate("b", 3.0)]
        criteria = MaxFisherInformation().get_item_criteria(candidates, {"math": 0.0})
        assert criteria["a"] == pytest.approx(0.25)
        assert criteria["a"] > criteria["b"]

    def test_empty_candidates(self):
        with pytest.raises(ValueError):
            MaxFisherInformation().select_item([], {"math": 0.0})


class TestFirstQuestion:
    """Tests for first-question policies."""

    @pytest.fixture
    def candidates(self):
        # Deliberately unsorted.
        return [_candidate(f"d{j}", float(j)) for j in (7, 2, 9, 0, 4, 1, 8, 3, 6, 5)]

    def test_current_ability_defers(self, candidates):
        assert select_first_question(candidates, "current_ability") is None

    def test_empty_pool(self):
        assert select_first_question([], "easiest") is None

    def test_easiest(self, candidates):
        assert select_first_question(candidates, "easiest").item_id == "d0"

    def test_small_pool_positions(self):
        three = [_candidate("hard", 1.0), _candidate("easy", -1.0), _candidate("mid", 0.0)]
        assert select_first_question(three, "first_of_second_quintile").item_id == "mid"
        assert select_first_question(three, "first_of_second_quartile").item_id == "mid"
        assert select_first_question(three, "most_difficult_of_second_quartile").item_id == "mid"

    def test_single_item(self):
        only = [_candidate("only", 1.23)]
        for policy in (
            "easiest",
            "first_of_second_quintile",
            "first_of_second_quartile",
            "most_difficult_of_second_quartile",
        ):
            assert select_first_question(only, policy).item_id == "only"

    def test_unknown_policy(self, candidates):
        with pytest.raises(ConfigurationError):
            select_first_question(candidates, "random")


class TestFactory:
    """Tests for create_selection_strategy."""

    def test_mfi(self):
        assert isinstance(create_selection_strategy("MFI"), MaxFisherInformation)

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="Valid options"):
            create_selection_strategy("KL")


def test_item_id_key_orders_numbers_before_text():
    assert sorted([10, "b", 2, "a"], key=item_id_key) == [2, 10, "a", "b"]
