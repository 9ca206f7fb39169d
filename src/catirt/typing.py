"""Type definitions for the catirt package."""

from collections.abc import Mapping
from typing import Literal, Union

import numpy as np
from numpy.typing import NDArray

# Array types
AbilityArray = NDArray[np.float64]  # Shape: (n_observations,)
ResponseArray = NDArray[np.float64]  # Encoded responses, shape: (n_observations,)
ParameterVector = NDArray[np.float64]  # Shape: (n_parameters,)

# Parameter mapping, e.g. {"difficulty": {0.5: -1.0, 1.0: 0.5}, "discrimination": 1.2}
ParameterValue = Union[float, Mapping[float, float]]
ParameterMapping = Mapping[str, ParameterValue]

# Model name literals
DichotomousModelName = Literal[
    "rasch", "raschbirnbaum", "raschbirnbaumc", "mixedraschbirnbaum"
]
PolytomousModelName = Literal["grm", "grmgeneralized", "pcm", "pcmgeneralized"]
ModelName = Union[DichotomousModelName, PolytomousModelName]

# Parameter roles used by the trusted region
ParameterRole = Literal["difficulty", "discrimination", "guessing"]

# Model selection criteria
InformationCriterion = Literal["aic", "bic"]

# Standard error termination strategies
StandardErrorStrategy = Literal["never", "all_scales", "exclude_scale"]

# First question policies
FirstQuestionPolicy = Literal[
    "current_ability",
    "easiest",
    "first_of_second_quintile",
    "first_of_second_quartile",
    "most_difficult_of_second_quartile",
]
