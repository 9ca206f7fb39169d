"""Item response models and the name-keyed model registry."""

from catirt.exceptions import ConfigurationError
from catirt.models.base import ModelVariant
from catirt.models.dichotomous import (
    DichotomousVariant,
    MixedRaschBirnbaum,
    Rasch,
    ThreeParameterLogistic,
    TwoParameterLogistic,
)
from catirt.models.polytomous import (
    GeneralizedGradedResponseModel,
    GeneralizedPartialCreditModel,
    GradedResponseModel,
    PartialCreditModel,
    PolytomousVariant,
)

MODEL_REGISTRY: dict[str, type[ModelVariant]] = {
    cls.model_name: cls
    for cls in (
        Rasch,
        TwoParameterLogistic,
        ThreeParameterLogistic,
        MixedRaschBirnbaum,
        GradedResponseModel,
        GeneralizedGradedResponseModel,
        PartialCreditModel,
        GeneralizedPartialCreditModel,
    )
}
"""Model classes by model name, simplest first within each family."""


def available_models() -> list[str]:
    """Names of every registered model."""
    return list(MODEL_REGISTRY)


def create_model(model: str | ModelVariant) -> ModelVariant:
    """Resolve a model name to a model instance.

    Parameters
    ----------
    model : str or ModelVariant
        Model name (case-insensitive) or an existing instance.

    Returns
    -------
    ModelVariant
        The model.

    Raises
    ------
    ConfigurationError
        If the name is not registered.
    """
    if isinstance(model, ModelVariant):
        return model
    try:
        return MODEL_REGISTRY[str(model).lower()]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown model: {model!r}. Available models: "
            f"{', '.join(available_models())}"
        ) from None


__all__ = [
    "MODEL_REGISTRY",
    "DichotomousVariant",
    "GeneralizedGradedResponseModel",
    "GeneralizedPartialCreditModel",
    "GradedResponseModel",
    "MixedRaschBirnbaum",
    "ModelVariant",
    "PartialCreditModel",
    "PolytomousVariant",
    "Rasch",
    "ThreeParameterLogistic",
    "TwoParameterLogistic",
    "available_models",
    "create_model",
]
