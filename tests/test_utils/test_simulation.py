"""Tests for response simulation."""

import numpy as np
import pytest

from catirt.params import ItemParam
from catirt.responses import ResponseSet
from catirt.utils.simulation import simulate_responses


class TestSimulateResponses:
    """Tests for simulate_responses."""

    def test_complete_matrix(self, rng):
        theta = rng.standard_normal(50)
        params = {"a": {"difficulty": 0.0}, "b": {"difficulty": 1.0}}
        responses = simulate_responses("rasch", params, theta, seed=1)

        assert isinstance(responses, ResponseSet)
        assert responses.n_persons == 50
        assert responses.n_items == 2
        assert responses.n_observations == 100
        assert set(np.unique(responses.fractions)) <= {0.0, 1.0}

    def test_reproducible(self, rng):
        theta = rng.standard_normal(30)
        params = {"a": {"difficulty": 0.0}}
        first = simulate_responses("rasch", params, theta, seed=9)
        second = simulate_responses("rasch", params, theta, seed=9)
        np.testing.assert_array_equal(first.fractions, second.fractions)

    def test_easier_items_solved_more_often(self, rng):
        theta = rng.standard_normal(2000)
        params = {"easy": {"difficulty": -2.0}, "hard": {"difficulty": 2.0}}
        by_item = simulate_responses("rasch", params, theta, seed=2).by_item()
        assert by_item["easy"].mean() > 0.8
        assert by_item["hard"].mean() < 0.2

    def test_missing_rate(self, rng):
        theta = rng.standard_normal(500)
        params = {f"q{j}": {"difficulty": 0.0} for j in range(4)}
        responses = simulate_responses("rasch", params, theta, seed=4, missing_rate=0.5)
        assert 800 < responses.n_observations < 1200

    def test_invalid_missing_rate(self):
        with pytest.raises(ValueError, match="missing_rate"):
            simulate_responses("rasch", {"a": {"difficulty": 0.0}}, np.zeros(3), missing_rate=1.0)

    def test_abilities_mapping_keeps_ids(self):
        responses = simulate_responses(
            "rasch", {"a": {"difficulty": 0.0}}, {"ann": 1.0, "bob": -1.0}, seed=0
        )
        assert responses.person_ids == ["ann", "bob"]

    def test_item_params_under_own_model(self):
        item_params = [
            ItemParam("d", "rasch", {"difficulty": 0.0}),
            ItemParam("p", "pcm", {"difficulty": {0.5: -0.5, 1.0: 0.5}}),
        ]
        responses = simulate_responses(None, item_params, np.zeros(300), seed=6)
        by_item = responses.by_item()
        assert set(np.unique(by_item["d"])) <= {0.0, 1.0}
        assert set(np.unique(by_item["p"])) == {0.0, 0.5, 1.0}

    def test_mapping_requires_model(self):
        with pytest.raises(ValueError, match="model is required"):
            simulate_responses(None, {"a": {"difficulty": 0.0}}, np.zeros(3))
