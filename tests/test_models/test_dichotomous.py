"""Tests for the dichotomous response models."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from catirt.exceptions import ConfigurationError
from catirt.models import (
    MixedRaschBirnbaum,
    Rasch,
    ThreeParameterLogistic,
    TwoParameterLogistic,
    available_models,
    create_model,
)

DICHOTOMOUS_CASES = [
    ("rasch", {"difficulty": 0.4}),
    ("raschbirnbaum", {"difficulty": -0.3, "discrimination": 1.4}),
    ("raschbirnbaumc", {"difficulty": 0.2, "discrimination": 1.1, "guessing": 0.2}),
    ("mixedraschbirnbaum", {"difficulty": 0.5, "discrimination": 0.9, "guessing": 0.1}),
]


def _numeric_gradient(func, x, eps=1e-6):
    x = np.asarray(x, dtype=np.float64)
    grad = np.zeros_like(x)
    for i in range(len(x)):
        step = np.zeros_like(x)
        step[i] = eps
        grad[i] = (func(x + step) - func(x - step)) / (2 * eps)
    return grad


class TestRegistry:
    """Tests for model lookup by name."""

    def test_available_models(self):
        """Every model family is registered."""
        names = available_models()
        for name in (
            "rasch",
            "raschbirnbaum",
            "raschbirnbaumc",
            "mixedraschbirnbaum",
            "grm",
            "grmgeneralized",
            "pcm",
            "pcmgeneralized",
        ):
            assert name in names

    def test_create_model_case_insensitive(self):
        """Names are matched case-insensitively."""
        assert isinstance(create_model("RaschBirnbaum"), TwoParameterLogistic)

    def test_create_model_passes_instances_through(self):
        """Existing instances are returned unchanged."""
        model = Rasch()
        assert create_model(model) is model

    def test_unknown_model(self):
        """Unknown names raise ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Unknown model"):
            create_model("nominal")


class TestRasch:
    """Tests for the Rasch model."""

    def test_likelihood_at_difficulty(self):
        """Likelihood is 0.5 when ability equals difficulty."""
        model = Rasch()
        assert model.likelihood(0.0, {"difficulty": 0.0}, 1.0) == pytest.approx(0.5)

    def test_likelihood_complement(self):
        """Correct and incorrect likelihoods sum to one."""
        model = Rasch()
        params = {"difficulty": 0.7}
        theta = np.linspace(-4, 4, 9)
        total = model.likelihood(theta, params, 1.0) + model.likelihood(theta, params, 0.0)
        assert_allclose(total, 1.0)

    def test_partial_credit_counts_as_incorrect(self):
        """Only a full fraction counts as correct."""
        model = Rasch()
        params = {"difficulty": 0.0}
        assert model.likelihood(1.0, params, 0.9) == pytest.approx(
            model.likelihood(1.0, params, 0.0)
        )

    def test_fisher_info_maximum(self):
        """Information peaks at 0.25 when ability equals difficulty."""
        model = Rasch()
        assert model.fisher_info(1.2, {"difficulty": 1.2}) == pytest.approx(0.25)
        assert model.fisher_info(3.0, {"difficulty": 1.2}) < 0.25

    def test_initial_parameters(self):
        """Starting difficulty follows the proportion correct."""
        model = Rasch()
        easy = model.initial_parameters(np.array([1.0, 1.0, 1.0, 0.0]))
        hard = model.initial_parameters(np.array([0.0, 0.0, 0.0, 1.0]))
        assert easy["difficulty"] < 0 < hard["difficulty"]

    def test_n_parameters(self):
        """Rasch estimates difficulty only."""
        assert Rasch().n_parameters() == 1
        assert Rasch().parameter_names() == ["difficulty"]


class TestTwoParameterLogistic:
    """Tests for the two-parameter logistic model."""

    def test_jacobian_reference_values(self):
        """Gradient over (difficulty, discrimination) at a known point."""
        model = TwoParameterLogistic()
        params = {"difficulty": -2.5, "discrimination": 0.7}
        jac = model.log_likelihood_jacobian(-3.0, params, 1.0)
        assert_allclose(jac, [-0.410632, -0.293309], atol=1e-6)

    def test_higher_discrimination_is_steeper(self):
        """Higher discrimination gives more information at the difficulty."""
        model = TwoParameterLogistic()
        low = model.fisher_info(0.0, {"difficulty": 0.0, "discrimination": 0.5})
        high = model.fisher_info(0.0, {"difficulty": 0.0, "discrimination": 2.0})
        assert high > low

    def test_trusted_region_clamp(self):
        """Out-of-range parameters are clamped into the default region."""
        model = TwoParameterLogistic()
        clamped = model.trusted_region_clamp({"difficulty": 12.0, "discrimination": 50.0})
        assert clamped == {"difficulty": 5.0, "discrimination": 9.0}


class TestThreeParameterLogistic:
    """Tests for the models with a guessing asymptote."""

    def test_lower_asymptote(self):
        """Very low abilities answer correctly with the guessing probability."""
        model = ThreeParameterLogistic()
        params = {"difficulty": 0.0, "discrimination": 1.5, "guessing": 0.2}
        assert model.likelihood(-30.0, params, 1.0) == pytest.approx(0.2, abs=1e-6)

    def test_guessing_raises_information_floor(self):
        """Guessing lowers information compared with the 2PL."""
        three = ThreeParameterLogistic()
        two = TwoParameterLogistic()
        info_3pl = three.fisher_info(
            0.0, {"difficulty": 0.0, "discrimination": 1.0, "guessing": 0.25}
        )
        info_2pl = two.fisher_info(0.0, {"difficulty": 0.0, "discrimination": 1.0})
        assert info_3pl < info_2pl

    def test_mixed_model_uses_fraction(self):
        """Partial credit is scored as fractional success."""
        model = MixedRaschBirnbaum()
        params = {"difficulty": 0.0, "discrimination": 1.0, "guessing": 0.1}
        p = model.expected_score(0.3, params)
        expected = 0.5 * np.log(p) + 0.5 * np.log(1 - p)
        assert model.log_likelihood(0.3, params, 0.5) == pytest.approx(expected)


@pytest.mark.parametrize("name,params", DICHOTOMOUS_CASES)
class TestDichotomousDerivatives:
    """Analytic derivatives agree with finite differences."""

    def test_likelihood_in_unit_interval(self, name, params):
        """Likelihoods lie in [0, 1] over a wide ability grid."""
        model = create_model(name)
        theta = np.linspace(-8, 8, 33)
        for fraction in (0.0, 1.0):
            values = model.likelihood(theta, params, fraction)
            assert np.all((values >= 0) & (values <= 1))

    def test_log_likelihood_consistent(self, name, params):
        """log_likelihood is the log of likelihood."""
        model = create_model(name)
        theta = np.linspace(-3, 3, 7)
        for fraction in (0.0, 1.0):
            assert_allclose(
                model.log_likelihood(theta, params, fraction),
                np.log(model.likelihood(theta, params, fraction)),
                rtol=1e-10,
            )

    def test_ability_derivatives(self, name, params):
        """First and second ability derivatives match finite differences."""
        model = create_model(name)
        eps = 1e-5
        for theta in (-1.5, 0.2, 1.7):
            for fraction in (0.0, 1.0):
                ll_plus = model.log_likelihood(theta + eps, params, fraction)
                ll_minus = model.log_likelihood(theta - eps, params, fraction)
                d1 = model.log_likelihood_d_ability(theta, params, fraction)
                assert d1 == pytest.approx((ll_plus - ll_minus) / (2 * eps), abs=1e-6)

                d1_plus = model.log_likelihood_d_ability(theta + eps, params, fraction)
                d1_minus = model.log_likelihood_d_ability(theta - eps, params, fraction)
                d2 = model.log_likelihood_d2_ability(theta, params, fraction)
                assert d2 == pytest.approx((d1_plus - d1_minus) / (2 * eps), abs=1e-5)

    def test_parameter_derivatives(self, name, params):
        """Jacobian and Hessian match finite differences over the vector."""
        model = create_model(name)
        vector = model.to_vector(params)
        theta = np.array([-0.8, 0.4, 1.3])
        for fraction in (0.0, 1.0):
            response = model.encode(np.full(3, fraction))

            def total_ll(v):
                return float(np.sum(model.log_probability(theta, v, response)))

            def total_jac(v):
                return model.jacobian(theta, v, response).sum(axis=0)

            jac = total_jac(vector)
            assert_allclose(jac, _numeric_gradient(total_ll, vector), atol=1e-5)

            hess = model.hessian(theta, vector, response).sum(axis=0)
            numeric = np.column_stack(
                [
                    _numeric_gradient(lambda v, i=i: total_jac(v)[i], vector)
                    for i in range(len(vector))
                ]
            )
            assert_allclose(hess, numeric.T, atol=1e-4)
            assert_allclose(hess, hess.T, atol=1e-12)

    def test_information_positive(self, name, params):
        """Fisher information is positive."""
        model = create_model(name)
        assert np.all(model.fisher_info(np.linspace(-3, 3, 7), params) > 0)
