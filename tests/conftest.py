"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from catirt.context import Context
from catirt.params import ItemParam, ItemParamList, ItemParamStatus
from catirt.utils.simulation import simulate_responses


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(42)


@pytest.fixture
def rasch_data(rng):
    """Rasch responses of 400 persons to 25 items with known parameters."""
    n_persons = 400
    difficulties = np.linspace(-1.5, 1.5, 25)
    theta = rng.standard_normal(n_persons)
    params = {f"q{j:02d}": {"difficulty": b} for j, b in enumerate(difficulties)}
    responses = simulate_responses("rasch", params, theta, seed=7)
    return {
        "responses": responses,
        "theta": theta,
        "difficulties": difficulties,
        "item_ids": list(params),
    }


@pytest.fixture
def twopl_data(rng):
    """Two-parameter logistic responses of 500 persons to 15 items."""
    n_persons = 500
    n_items = 15
    difficulties = np.linspace(-1.5, 1.5, n_items)
    discriminations = rng.uniform(0.8, 1.8, n_items)
    theta = rng.standard_normal(n_persons)
    params = {
        f"q{j:02d}": {"difficulty": b, "discrimination": a}
        for j, (b, a) in enumerate(zip(difficulties, discriminations))
    }
    responses = simulate_responses("raschbirnbaum", params, theta, seed=11)
    return {
        "responses": responses,
        "theta": theta,
        "difficulties": difficulties,
        "discriminations": discriminations,
    }


def make_context(item_specs, scale_id="math", model_name="raschbirnbaum"):
    """Context with one calibrated parameter set per ``(item_id, difficulty)``."""
    params = [
        ItemParam(
            item_id=item_id,
            model_name=model_name,
            parameters={"difficulty": difficulty, "discrimination": 1.0}
            if model_name == "raschbirnbaum"
            else {"difficulty": difficulty},
            status=ItemParamStatus.CALCULATED_AUTOMATICALLY,
        )
        for item_id, difficulty in item_specs
    ]
    return Context(item_params=ItemParamList(tuple(params)), scale_id=scale_id)


@pytest.fixture
def cat_context():
    """Context with 20 two-parameter items spread over [-2, 2]."""
    difficulties = np.linspace(-2.0, 2.0, 20)
    return make_context([(f"i{j:02d}", float(b)) for j, b in enumerate(difficulties)])


class FakeClock:
    """Manually advanced clock for time-dependent tests."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    """Fake clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def context_factory():
    """Factory building contexts from ``(item_id, difficulty)`` pairs."""
    return make_context
