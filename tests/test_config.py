"""Tests for the configuration dataclasses."""

import dataclasses

import pytest

from catirt.config import EstimatorConfig, SelectorConfig
from catirt.exceptions import ConfigurationError


class TestEstimatorConfig:
    """Tests for EstimatorConfig."""

    def test_defaults(self):
        config = EstimatorConfig()
        assert config.max_iter == 50
        assert config.ability_bounds == (-6.0, 6.0)
        assert config.n_jobs == 1

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            EstimatorConfig().max_iter = 3

    @pytest.mark.parametrize(
        "options",
        [
            {"max_iter": 0},
            {"ability_tol": 0.0},
            {"max_step": -1.0},
            {"ability_bounds": (3.0, -3.0)},
            {"ability_bounds": (0.0, float("inf"))},
            {"min_responses_per_item": 0},
            {"n_jobs": 0},
        ],
    )
    def test_invalid(self, options):
        with pytest.raises(ConfigurationError):
            EstimatorConfig(**options)

    def test_from_mapping_converts_bounds(self):
        config = EstimatorConfig.from_mapping({"ability_bounds": [-4, 4], "n_jobs": -1})
        assert config.ability_bounds == (-4, 4)
        assert config.n_jobs == -1

    def test_from_mapping_unknown(self):
        with pytest.raises(ConfigurationError, match="Recognized options"):
            EstimatorConfig.from_mapping({"iterations": 10})

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            EstimatorConfig(max_iter=-1)


class TestSelectorConfig:
    """Tests for SelectorConfig."""

    def test_defaults(self):
        config = SelectorConfig()
        assert config.maximum_questions is None
        assert config.standard_error_threshold == 0.3
        assert config.standard_error_strategy == "all_scales"
        assert config.first_question_policy == "current_ability"
        assert not config.stop_if_ability_unchanged
        assert config.pilot_ratio == 0.0
        assert config.maximum_questions_per_scale is None

    @pytest.mark.parametrize(
        "options",
        [
            {"maximum_questions": -1},
            {"minimum_questions": -2},
            {"standard_error_threshold": 0.0},
            {"standard_error_strategy": "sometimes"},
            {"first_question_policy": "hardest"},
            {"time_limit": 0},
            {"cool_down_period": -5},
            {"ability_change_threshold": 0.0},
            {"max_ability_step": 0.0},
            {"initial_ability": 9.0},
            {"maximum_questions_per_scale": 0},
            {"pilot_ratio": 1.5},
            {"pilot_ratio": -0.1},
        ],
    )
    def test_invalid(self, options):
        with pytest.raises(ConfigurationError):
            SelectorConfig(**options)

    def test_zero_maximum_allowed(self):
        assert SelectorConfig(maximum_questions=0).maximum_questions == 0

    def test_from_mapping(self):
        config = SelectorConfig.from_mapping(
            {
                "maximum_questions": 20,
                "standard_error_strategy": "exclude_scale",
                "ability_bounds": [-4.0, 4.0],
            }
        )
        assert config.maximum_questions == 20
        assert config.standard_error_strategy == "exclude_scale"
        assert config.ability_bounds == (-4.0, 4.0)

    def test_from_mapping_lists_options(self):
        with pytest.raises(ConfigurationError) as excinfo:
            SelectorConfig.from_mapping({"max_items": 5, "timelimit": 10})
        message = str(excinfo.value)
        assert "max_items" in message
        assert "timelimit" in message
        assert "maximum_questions" in message
