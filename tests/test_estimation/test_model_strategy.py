"""Tests for per-item model selection."""

import numpy as np
import pytest

from catirt.config import EstimatorConfig
from catirt.context import Context
from catirt.estimation.model_strategy import (
    ModelStrategy,
    item_criterion,
    select_best_model,
)
from catirt.exceptions import ConfigurationError
from catirt.params import (
    ItemParam,
    ItemParamList,
    ItemParamStatus,
    PersonParamList,
)
from catirt.responses import ResponseRecord, ResponseSet
from catirt.results import EstimationResult, ModelSelectionResult

FAST = EstimatorConfig(max_iter=15)


class TestItemCriterion:
    """Tests for the per-item information criterion."""

    def test_aic(self):
        param = ItemParam("q", "rasch", {"difficulty": 0.0}, n_responses=20, log_likelihood=-10.0)
        assert item_criterion(param, "aic") == pytest.approx(22.0)

    def test_bic(self):
        param = ItemParam(
            "q",
            "raschbirnbaum",
            {"difficulty": 0.0, "discrimination": 1.0},
            n_responses=20,
            log_likelihood=-10.0,
        )
        assert item_criterion(param, "bic") == pytest.approx(2 * np.log(20) + 20.0)

    def test_uncalibrated_item_scores_infinity(self):
        param = ItemParam("q", "rasch", {"difficulty": 0.0})
        assert item_criterion(param) == float("inf")


class TestModelStrategyConfiguration:
    """Tests for ModelStrategy validation."""

    def test_defaults_to_every_model(self):
        strategy = ModelStrategy()
        assert "rasch" in strategy.model_names
        assert "pcmgeneralized" in strategy.model_names

    def test_unknown_criterion(self):
        with pytest.raises(ConfigurationError, match="criterion"):
            ModelStrategy(["rasch"], criterion="hqic")

    def test_unknown_model(self):
        with pytest.raises(ConfigurationError):
            ModelStrategy(["rasch", "nominal"])

    def test_empty_candidates(self):
        with pytest.raises(ConfigurationError):
            ModelStrategy([])

    def test_duplicate_candidates(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            ModelStrategy(["rasch", "RASCH"])

    def test_repr(self):
        assert "raschbirnbaum" in repr(ModelStrategy(["rasch", "raschbirnbaum"]))


class TestModelStrategyRun:
    """Tests for running the strategy on simulated data."""

    def test_every_item_gets_a_model(self, twopl_data):
        strategy = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST)
        result = strategy.run(twopl_data["responses"], scale_id="math")

        assert isinstance(result, ModelSelectionResult)
        assert set(result.best_models) == set(twopl_data["responses"].item_ids)
        assert set(result.estimations) == {"rasch", "raschbirnbaum"}
        for item_id, name in result.best_models.items():
            assert name in ("rasch", "raschbirnbaum")
            assert result.context.get_item_param(item_id).model_name == name

    def test_winner_has_lowest_criterion(self, twopl_data):
        result = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST).run(
            twopl_data["responses"]
        )
        for item_id, scores in result.criteria.items():
            assert scores[result.best_models[item_id]] == min(scores.values())

    def test_context_holds_all_candidates(self, twopl_data):
        result = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST).run(
            twopl_data["responses"], scale_id="math"
        )
        context = result.context
        assert context.scale_id == "math"
        assert context.parent_id is None
        for item_id in twopl_data["responses"].item_ids:
            assert context.get_item_param(item_id, "rasch") is not None
            assert context.get_item_param(item_id, "raschbirnbaum") is not None
        assert len(context.person_params) == twopl_data["responses"].n_persons

    def test_unpacks_to_models_and_params(self, twopl_data):
        best_models, item_params = select_best_model(
            twopl_data["responses"], ["rasch", "raschbirnbaum"], criterion="bic", config=FAST
        )
        assert isinstance(item_params, ItemParamList)
        assert len(item_params) == len(best_models)
        for param in item_params:
            assert best_models[param.item_id] == param.model_name


class TestModelStrategyPriors:
    """Tests for deriving a context from a prior one."""

    @pytest.fixture
    def prior(self, twopl_data):
        manual = ItemParam(
            "q00", "rasch", {"difficulty": 0.25}, status=ItemParamStatus.SET_MANUALLY
        )
        excluded = ItemParam(
            "q01",
            "raschbirnbaum",
            {"difficulty": 0.0, "discrimination": 1.0},
            status=ItemParamStatus.EXCLUDED_MANUALLY,
        )
        retired = ItemParam(
            "old",
            "rasch",
            {"difficulty": 1.5},
            status=ItemParamStatus.CALCULATED_AUTOMATICALLY,
            n_responses=80,
            log_likelihood=-40.0,
        )
        return Context(
            item_params=ItemParamList((manual, excluded, retired)),
            selected_models={"q00": "rasch", "q01": "raschbirnbaum", "old": "rasch"},
            scale_id="math",
        )

    def test_manual_parameters_pass_through(self, twopl_data, prior):
        result = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST).run(
            twopl_data["responses"], prior=prior
        )
        assert result.best_models["q00"] == "rasch"
        assert result.context.get_item_param("q00") == prior.get_item_param("q00")
        assert "q00" not in result.criteria

    def test_excluded_item_stays_excluded(self, twopl_data, prior):
        result = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST).run(
            twopl_data["responses"], prior=prior
        )
        assert result.context.get_item_param("q01").is_excluded
        assert "q01" not in result.context.active_item_params().item_ids

    def test_unobserved_item_carried(self, twopl_data, prior):
        result = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST).run(
            twopl_data["responses"], prior=prior
        )
        assert result.best_models["old"] == "rasch"
        assert result.context.get_item_param("old") == prior.get_item_param("old")

    def test_new_context_derives_from_prior(self, twopl_data, prior):
        result = ModelStrategy(["rasch", "raschbirnbaum"], config=FAST).run(
            twopl_data["responses"], prior=prior
        )
        assert result.context.parent_id == prior.context_id
        assert result.context.context_id != prior.context_id
        assert result.context.scale_id == "math"
        assert len(prior.item_params) == 3


class TestTieBreaking:
    """Equal criteria prefer the model with fewer parameters."""

    def test_fewer_parameters_win(self):
        responses = ResponseSet([ResponseRecord("p", "q", 1.0)])
        rasch = ItemParam("q", "rasch", {"difficulty": 0.0}, n_responses=20, log_likelihood=-10.0)
        twopl = ItemParam(
            "q",
            "raschbirnbaum",
            {"difficulty": 0.0, "discrimination": 1.0},
            n_responses=20,
            log_likelihood=-9.0,
        )

        def fake_result(param):
            return EstimationResult(
                model_name=param.model_name,
                item_params=ItemParamList((param,)),
                person_params=PersonParamList(),
                converged=True,
                n_iterations=1,
                log_likelihood=param.log_likelihood,
            )

        strategy = ModelStrategy(["raschbirnbaum", "rasch"])
        best, carried, criteria = strategy._select(
            responses,
            None,
            {"raschbirnbaum": fake_result(twopl), "rasch": fake_result(rasch)},
        )
        assert criteria["q"] == {"raschbirnbaum": 22.0, "rasch": 22.0}
        assert best == {"q": "rasch"}
        assert carried == []


class TestFailedEstimates:
    """Items whose estimation failed under a model never win with it."""

    def test_failed_item_not_ranked(self):
        responses = ResponseSet([ResponseRecord("p", "q", 1.0)])
        rasch = ItemParam("q", "rasch", {"difficulty": 0.0}, n_responses=20, log_likelihood=-10.0)
        twopl = ItemParam(
            "q",
            "raschbirnbaum",
            {"difficulty": 0.0, "discrimination": 4.0},
            n_responses=20,
            log_likelihood=-2.0,
        )
        failed = EstimationResult(
            model_name="raschbirnbaum",
            item_params=ItemParamList((twopl,)),
            person_params=PersonParamList(),
            converged=False,
            n_iterations=1,
            log_likelihood=-2.0,
            failed_items=["q"],
        )
        ok = EstimationResult(
            model_name="rasch",
            item_params=ItemParamList((rasch,)),
            person_params=PersonParamList(),
            converged=True,
            n_iterations=1,
            log_likelihood=-10.0,
        )

        strategy = ModelStrategy(["raschbirnbaum", "rasch"])
        best, _, criteria = strategy._select(
            responses, None, {"raschbirnbaum": failed, "rasch": ok}
        )
        assert best == {"q": "rasch"}
        assert criteria["q"] == {"rasch": 22.0}

    def test_failed_everywhere_keeps_prior(self):
        responses = ResponseSet([ResponseRecord("p", "q", 1.0)])
        previous = ItemParam("q", "rasch", {"difficulty": 0.4}, n_responses=5)
        prior = Context(item_params=ItemParamList((previous,)))
        failed = EstimationResult(
            model_name="rasch",
            item_params=ItemParamList(
                (ItemParam("q", "rasch", {"difficulty": 3.0}, n_responses=20, log_likelihood=-1.0),)
            ),
            person_params=PersonParamList(),
            converged=False,
            n_iterations=1,
            log_likelihood=-1.0,
            failed_items=["q"],
        )

        best, carried, criteria = ModelStrategy(["rasch"])._select(
            responses, prior, {"rasch": failed}
        )
        assert best == {"q": "rasch"}
        assert carried == [previous]
        assert "q" not in criteria
