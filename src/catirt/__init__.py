"""Item response calibration and adaptive item selection.

Examples
--------
Calibrate one model:

>>> from catirt import ResponseSet, estimate
>>> responses = ResponseSet.from_matrix(data)
>>> item_params, person_params, converged = estimate(responses, "raschbirnbaum")

Pick the best model per item and run an adaptive attempt:

>>> from catirt import AdaptiveItemSelector, ModelStrategy
>>> selection = ModelStrategy(["rasch", "raschbirnbaum"]).run(responses)
>>> selector = AdaptiveItemSelector(selection.context, config={"maximum_questions": 20})
>>> state = selector.start()
>>> selector.next_item(state)
"""

from catirt._version import __version__
from catirt.cat import (
    AdaptiveItemSelector,
    AttemptState,
    ItemPool,
    NextItem,
    PoolItem,
    ScaleEstimate,
    ScaleHierarchy,
    Terminated,
    TerminationReason,
    apply_response,
    next_item,
)
from catirt.config import EstimatorConfig, SelectorConfig, TrustedRegionConfig
from catirt.context import Context, ContextStore, InMemoryContextStore
from catirt.estimation import (
    CatCalcEstimator,
    ModelStrategy,
    TrustedRegionFilter,
    estimate,
    select_best_model,
)
from catirt.exceptions import (
    AttemptTerminatedError,
    CatIRTError,
    ConfigurationError,
    InvalidResponseError,
    SingularMatrixError,
    UnknownItemError,
)
from catirt.models import (
    GeneralizedGradedResponseModel,
    GeneralizedPartialCreditModel,
    GradedResponseModel,
    MixedRaschBirnbaum,
    ModelVariant,
    PartialCreditModel,
    Rasch,
    ThreeParameterLogistic,
    TwoParameterLogistic,
    available_models,
    create_model,
)
from catirt.params import (
    ItemParam,
    ItemParamList,
    ItemParamStatus,
    PersonParam,
    PersonParamList,
)
from catirt.responses import ResponseRecord, ResponseSet
from catirt.results import EstimationResult, ModelSelectionResult
from catirt.utils import simulate_responses

__all__ = [
    "__version__",
    # Data
    "ResponseRecord",
    "ResponseSet",
    "ItemParam",
    "ItemParamList",
    "ItemParamStatus",
    "PersonParam",
    "PersonParamList",
    "Context",
    "ContextStore",
    "InMemoryContextStore",
    # Models
    "ModelVariant",
    "Rasch",
    "TwoParameterLogistic",
    "ThreeParameterLogistic",
    "MixedRaschBirnbaum",
    "GradedResponseModel",
    "GeneralizedGradedResponseModel",
    "PartialCreditModel",
    "GeneralizedPartialCreditModel",
    "available_models",
    "create_model",
    # Configuration
    "TrustedRegionConfig",
    "EstimatorConfig",
    "SelectorConfig",
    # Estimation
    "CatCalcEstimator",
    "TrustedRegionFilter",
    "ModelStrategy",
    "estimate",
    "select_best_model",
    "EstimationResult",
    "ModelSelectionResult",
    # Adaptive testing
    "AdaptiveItemSelector",
    "AttemptState",
    "ScaleEstimate",
    "ItemPool",
    "PoolItem",
    "ScaleHierarchy",
    "NextItem",
    "Terminated",
    "TerminationReason",
    "next_item",
    "apply_response",
    # Simulation
    "simulate_responses",
    # Exceptions
    "CatIRTError",
    "ConfigurationError",
    "SingularMatrixError",
    "InvalidResponseError",
    "UnknownItemError",
    "AttemptTerminatedError",
]
