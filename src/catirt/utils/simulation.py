"""Data simulation utilities for response models."""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping

import numpy as np
from numpy.typing import NDArray

from catirt.models import ModelVariant, create_model
from catirt.params import ItemParam
from catirt.responses import ResponseRecord, ResponseSet


def simulate_responses(
    model: ModelVariant | str | None,
    item_params: Iterable[ItemParam] | Mapping[Hashable, Mapping],
    abilities: Mapping[Hashable, float] | NDArray[np.float64],
    seed: int | None = None,
    missing_rate: float = 0.0,
) -> ResponseSet:
    """Draw responses from known item parameters and abilities.

    Parameters
    ----------
    model : ModelVariant, str or None
        Response model for every item. When None, each ``ItemParam`` is
        simulated under its own ``model_name``.
    item_params : iterable of ItemParam or Mapping
        Item parameters, either as ``ItemParam`` records or as a mapping
        from item id to a parameter mapping.
    abilities : Mapping or ndarray
        True abilities by person id. An array uses positions as ids.
    seed : int, optional
        Random seed for reproducibility.
    missing_rate : float, default=0.0
        Probability that a person did not answer an item.

    Returns
    -------
    ResponseSet
        One record per administered (person, item) pair.

    Examples
    --------
    >>> b = np.linspace(-2, 2, 10)
    >>> params = {f"q{j}": {"difficulty": v} for j, v in enumerate(b)}
    >>> theta = np.random.default_rng(0).standard_normal(200)
    >>> responses = simulate_responses("rasch", params, theta, seed=42)
    >>> responses.n_items
    10
    """
    if not 0.0 <= missing_rate < 1.0:
        raise ValueError(f"missing_rate must lie in [0, 1), got {missing_rate}")
    rng = np.random.default_rng(seed)

    if isinstance(abilities, Mapping):
        person_ids = list(abilities)
        theta = np.array([float(abilities[p]) for p in person_ids], dtype=np.float64)
    else:
        theta = np.asarray(abilities, dtype=np.float64)
        person_ids = list(range(len(theta)))

    if isinstance(item_params, Mapping):
        if model is None:
            raise ValueError("model is required when item_params is a mapping")
        items = [(item_id, create_model(model), p) for item_id, p in item_params.items()]
    else:
        items = [
            (p.item_id, create_model(model or p.model_name), p.parameters)
            for p in item_params
        ]

    records = []
    for item_id, variant, params in items:
        categories = variant.categories(params)
        fractions = variant.sample(theta, variant.to_vector(params), categories, rng)
        administered = rng.random(len(theta)) >= missing_rate
        records.extend(
            ResponseRecord(person_ids[i], item_id, float(fractions[i]))
            for i in np.flatnonzero(administered)
        )
    return ResponseSet(records)
