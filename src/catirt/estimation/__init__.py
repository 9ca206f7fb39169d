from catirt.estimation.base import BaseEstimator, compute_aic, compute_bic
from catirt.estimation.catcalc import CatCalcEstimator, ItemUnit, estimate
from catirt.estimation.model_strategy import (
    ModelStrategy,
    item_criterion,
    select_best_model,
)
from catirt.estimation.trusted_region import TrustedRegionFilter

__all__ = [
    # Estimators
    "BaseEstimator",
    "CatCalcEstimator",
    "ItemUnit",
    "estimate",
    # Model selection
    "ModelStrategy",
    "select_best_model",
    "item_criterion",
    "compute_aic",
    "compute_bic",
    # Trusted region
    "TrustedRegionFilter",
]
