"""Configuration values injected into the estimator and the item selector.

Every configuration is a frozen dataclass. Values coming from an
administrative form or a settings store are plain mappings; use
``from_mapping`` to turn them into a validated configuration. Unknown
option names and malformed bounds raise :class:`ConfigurationError`
before any estimation work starts.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Self, get_args

from catirt.constants import ABILITY_CHANGE_THRESHOLD
from catirt.exceptions import ConfigurationError
from catirt.typing import FirstQuestionPolicy, StandardErrorStrategy


def _build(cls: type, mapping: Mapping[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(mapping) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown option(s) for {cls.__name__}: {', '.join(unknown)}. "
            f"Recognized options: {', '.join(sorted(known))}"
        )
    return cls(**dict(mapping))


def _require_finite(**values: float) -> None:
    for name, value in values.items():
        if value is None or not math.isfinite(value):
            raise ConfigurationError(f"{name} must be a finite number, got {value!r}")


def _require_range(name: str, lower: float, upper: float) -> None:
    if lower > upper:
        raise ConfigurationError(
            f"Malformed bounds for {name}: minimum {lower} exceeds maximum {upper}"
        )


@dataclass(frozen=True)
class TrustedRegionConfig:
    """Plausible ranges for item parameters.

    Difficulty bounds are ``mean ± sd_factor · sd`` intersected with the
    absolute ``[min, max]``. Discrimination bounds are the absolute
    minimum and ``min(factor_max · placement, max)``. Guessing is kept in
    its absolute range and pulled towards ``mean_guessing``.

    Parameters
    ----------
    min_difficulty, max_difficulty : float
        Absolute difficulty range.
    mean_difficulty, sd_difficulty : float
        Centre and spread of the difficulty region.
    sd_factor_difficulty : float
        Number of standard deviations the difficulty region extends.
    derive_difficulty_from_sample : bool
        Replace the configured mean and sd by those of the current
        difficulty estimates of the calibration sample.
    min_discrimination, max_discrimination : float
        Absolute discrimination range.
    placement_discrimination : float
        Discrimination at which the soft upper barrier is centred.
    slope_discrimination : float
        Steepness of the soft upper barrier.
    factor_max_discrimination : float
        Multiple of the placement used as hard upper bound.
    min_guessing, max_guessing : float
        Absolute range of the lower asymptote.
    mean_guessing, sd_guessing : float
        Centre and spread of the guessing penalty.
    """

    min_difficulty: float = -5.0
    max_difficulty: float = 5.0
    mean_difficulty: float = 0.0
    sd_difficulty: float = 2.0
    sd_factor_difficulty: float = 3.0
    derive_difficulty_from_sample: bool = False
    min_discrimination: float = 0.1
    max_discrimination: float = 10.0
    placement_discrimination: float = 3.0
    slope_discrimination: float = 3.0
    factor_max_discrimination: float = 3.0
    min_guessing: float = 0.0
    max_guessing: float = 0.5
    mean_guessing: float = 0.15
    sd_guessing: float = 0.1

    def __post_init__(self) -> None:
        _require_finite(
            min_difficulty=self.min_difficulty,
            max_difficulty=self.max_difficulty,
            mean_difficulty=self.mean_difficulty,
            sd_difficulty=self.sd_difficulty,
            sd_factor_difficulty=self.sd_factor_difficulty,
            min_discrimination=self.min_discrimination,
            max_discrimination=self.max_discrimination,
            placement_discrimination=self.placement_discrimination,
            slope_discrimination=self.slope_discrimination,
            factor_max_discrimination=self.factor_max_discrimination,
            min_guessing=self.min_guessing,
            max_guessing=self.max_guessing,
            mean_guessing=self.mean_guessing,
            sd_guessing=self.sd_guessing,
        )
        _require_range("difficulty", self.min_difficulty, self.max_difficulty)
        _require_range(
            "discrimination", self.min_discrimination, self.max_discrimination
        )
        _require_range("guessing", self.min_guessing, self.max_guessing)
        _require_range(
            "difficulty region",
            max(
                self.mean_difficulty - self.sd_factor_difficulty * self.sd_difficulty,
                self.min_difficulty,
            ),
            min(
                self.mean_difficulty + self.sd_factor_difficulty * self.sd_difficulty,
                self.max_difficulty,
            ),
        )
        if self.sd_difficulty <= 0 or self.sd_guessing <= 0:
            raise ConfigurationError("Standard deviations must be positive")
        if self.sd_factor_difficulty <= 0 or self.factor_max_discrimination <= 0:
            raise ConfigurationError("Bound factors must be positive")
        if self.slope_discrimination <= 0:
            raise ConfigurationError("slope_discrimination must be positive")
        if self.min_discrimination > min(
            self.factor_max_discrimination * self.placement_discrimination,
            self.max_discrimination,
        ):
            raise ConfigurationError(
                "Malformed bounds for discrimination: effective maximum "
                "falls below min_discrimination"
            )
        if self.min_guessing < 0 or self.max_guessing >= 1:
            raise ConfigurationError("Guessing bounds must lie within [0, 1)")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Self:
        """Build a configuration from option names, rejecting unknown keys."""
        return _build(cls, mapping)


@dataclass(frozen=True)
class EstimatorConfig:
    """Iteration limits and tolerances for alternating Newton-Raphson.

    Parameters
    ----------
    max_iter : int
        Maximum number of outer (ability step + item step) iterations.
    ability_tol : float
        Convergence tolerance for ability changes.
    param_tol : float
        Convergence tolerance for the norm of item parameter changes.
    max_inner_iter : int
        Newton iterations per person or item within one outer iteration.
    max_step : float
        Largest ability change, or item parameter step norm, per Newton step.
    ability_bounds : tuple of float
        Abilities are kept within this interval.
    min_responses_per_item : int
        Items with fewer responses are skipped.
    n_jobs : int
        Worker threads for the item step; -1 uses all cores.
    verbose : bool
        Log iteration progress at INFO instead of DEBUG.
    """

    max_iter: int = 50
    ability_tol: float = 1e-3
    param_tol: float = 1e-3
    max_inner_iter: int = 20
    max_step: float = 1.0
    ability_bounds: tuple[float, float] = (-6.0, 6.0)
    min_responses_per_item: int = 1
    n_jobs: int = 1
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.max_iter < 1 or self.max_inner_iter < 1:
            raise ConfigurationError("Iteration limits must be at least 1")
        if self.ability_tol <= 0 or self.param_tol <= 0:
            raise ConfigurationError("Tolerances must be positive")
        if self.max_step <= 0:
            raise ConfigurationError("max_step must be positive")
        if len(self.ability_bounds) != 2:
            raise ConfigurationError("ability_bounds must be a (lower, upper) pair")
        _require_finite(
            lower_ability=self.ability_bounds[0],
            upper_ability=self.ability_bounds[1],
        )
        _require_range("ability", *self.ability_bounds)
        if self.min_responses_per_item < 1:
            raise ConfigurationError("min_responses_per_item must be at least 1")
        if self.n_jobs == 0 or self.n_jobs < -1:
            raise ConfigurationError("n_jobs must be a positive integer or -1")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Self:
        """Build a configuration from option names, rejecting unknown keys."""
        values = dict(mapping)
        if "ability_bounds" in values:
            values["ability_bounds"] = tuple(values["ability_bounds"])
        return _build(cls, values)


@dataclass(frozen=True)
class SelectorConfig:
    """Settings of the adaptive item selector.

    Parameters
    ----------
    maximum_questions : int or None
        Attempt ends after this many responses. None means unlimited.
    minimum_questions : int
        Standard error and ability-change termination are suppressed
        until this many responses were given.
    minimum_questions_per_scale : int
        Responses a scale needs before its standard error may end it.
    maximum_questions_per_scale : int or None
        Items of a scale are no longer selected once this many responses
        were given on it. None means unlimited.
    standard_error_threshold : float
        Standard error at or below which a scale counts as measured.
    standard_error_strategy : {"never", "all_scales", "exclude_scale"}
        ``"all_scales"`` terminates when every tracked scale is measured.
        ``"exclude_scale"`` additionally drops items of measured scales
        from the pool while other scales still need items.
    time_limit : float or None
        Wall-clock seconds an attempt may last.
    cool_down_period : float
        Items shown to the person within this many seconds are avoided.
    first_question_policy : str
        How the first item of an attempt is chosen.
    pilot_ratio : float
        Probability, in [0, 1], that a decision serves a pilot item, i.e. a
        pool item without calibrated parameters. Pilot responses are
        recorded but never move an ability estimate. With 0, pilot items
        are never served.
    stop_if_ability_unchanged : bool
        Terminate once the ability estimate stops moving.
    ability_change_threshold : float
        Change below which the ability counts as unchanged.
    initial_ability : float
        Ability every tracked scale starts from.
    ability_bounds : tuple of float
        Abilities are kept within this interval.
    max_ability_step : float
        Largest ability change a single response may cause.
    """

    maximum_questions: int | None = None
    minimum_questions: int = 0
    minimum_questions_per_scale: int = 0
    maximum_questions_per_scale: int | None = None
    standard_error_threshold: float = 0.3
    standard_error_strategy: StandardErrorStrategy = "all_scales"
    time_limit: float | None = None
    cool_down_period: float = 0.0
    first_question_policy: FirstQuestionPolicy = "current_ability"
    pilot_ratio: float = 0.0
    stop_if_ability_unchanged: bool = False
    ability_change_threshold: float = ABILITY_CHANGE_THRESHOLD
    initial_ability: float = 0.0
    ability_bounds: tuple[float, float] = (-6.0, 6.0)
    max_ability_step: float = 1.0

    def __post_init__(self) -> None:
        if self.maximum_questions is not None and self.maximum_questions < 0:
            raise ConfigurationError("maximum_questions must be non-negative")
        if self.minimum_questions < 0 or self.minimum_questions_per_scale < 0:
            raise ConfigurationError("Minimum question counts must be non-negative")
        if (
            self.maximum_questions_per_scale is not None
            and self.maximum_questions_per_scale < 1
        ):
            raise ConfigurationError("maximum_questions_per_scale must be at least 1")
        if not 0.0 <= self.pilot_ratio <= 1.0:
            raise ConfigurationError("pilot_ratio must lie within [0, 1]")
        if self.standard_error_threshold <= 0:
            raise ConfigurationError("standard_error_threshold must be positive")
        if self.standard_error_strategy not in get_args(StandardErrorStrategy):
            raise ConfigurationError(
                f"Unknown standard_error_strategy: {self.standard_error_strategy!r}"
            )
        if self.first_question_policy not in get_args(FirstQuestionPolicy):
            raise ConfigurationError(
                f"Unknown first_question_policy: {self.first_question_policy!r}"
            )
        if self.time_limit is not None and self.time_limit <= 0:
            raise ConfigurationError("time_limit must be positive")
        if self.cool_down_period < 0:
            raise ConfigurationError("cool_down_period must be non-negative")
        if self.ability_change_threshold <= 0 or self.max_ability_step <= 0:
            raise ConfigurationError(
                "ability_change_threshold and max_ability_step must be positive"
            )
        if len(self.ability_bounds) != 2:
            raise ConfigurationError("ability_bounds must be a (lower, upper) pair")
        _require_range("ability", *self.ability_bounds)
        if not self.ability_bounds[0] <= self.initial_ability <= self.ability_bounds[1]:
            raise ConfigurationError("initial_ability lies outside ability_bounds")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> Self:
        """Build a configuration from option names, rejecting unknown keys."""
        values = dict(mapping)
        if "ability_bounds" in values:
            values["ability_bounds"] = tuple(values["ability_bounds"])
        return _build(cls, values)
