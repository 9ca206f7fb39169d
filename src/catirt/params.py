"""Item and person parameter records."""

from __future__ import annotations

import enum
from collections.abc import Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Self

import numpy as np


class ItemParamStatus(enum.Enum):
    """Provenance of an item parameter, deciding who may overwrite it."""

    NOT_CALCULATED = "not_calculated"
    CALCULATED_AUTOMATICALLY = "calculated_automatically"
    SET_MANUALLY = "set_manually"
    EXCLUDED_MANUALLY = "excluded_manually"

    @property
    def is_manual(self) -> bool:
        """Whether automatic calibration must leave the parameter untouched."""
        return self in (ItemParamStatus.SET_MANUALLY, ItemParamStatus.EXCLUDED_MANUALLY)


def _freeze_parameters(parameters: Mapping[str, Any]) -> Mapping[str, Any]:
    frozen: dict[str, Any] = {}
    for name, value in parameters.items():
        if isinstance(value, Mapping):
            frozen[name] = MappingProxyType(
                {float(k): float(v) for k, v in sorted(value.items())}
            )
        else:
            frozen[name] = float(value)
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class ItemParam:
    """Calibrated parameters of one item under one response model.

    Attributes
    ----------
    item_id : Hashable
        Identifier of the item.
    model_name : str
        Name of the response model the parameters belong to.
    parameters : Mapping[str, float | Mapping[float, float]]
        Parameter values by name. Polytomous models store ``difficulty``
        as an ordered mapping from response fraction to threshold.
    status : ItemParamStatus
        Provenance of the parameters.
    converged : bool
        Whether the last estimation of these parameters converged.
    n_responses : int
        Number of responses the estimate is based on.
    log_likelihood : float
        Log-likelihood contribution of the item at the estimate.
    """

    item_id: Hashable
    model_name: str
    parameters: Mapping[str, Any]
    status: ItemParamStatus = ItemParamStatus.NOT_CALCULATED
    converged: bool = True
    n_responses: int = 0
    log_likelihood: float = float("nan")

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _freeze_parameters(self.parameters))

    @property
    def difficulty(self) -> float:
        """Overall location of the item; the mean threshold for polytomous items."""
        value = self.parameters.get("difficulty", 0.0)
        if isinstance(value, Mapping):
            thresholds = [v for k, v in value.items() if k > 0]
            return float(np.mean(thresholds)) if thresholds else 0.0
        return float(value)

    @property
    def is_locked(self) -> bool:
        """Whether automatic calibration must not overwrite this parameter."""
        return self.status.is_manual

    @property
    def is_excluded(self) -> bool:
        return self.status is ItemParamStatus.EXCLUDED_MANUALLY

    def with_parameters(self, parameters: Mapping[str, Any], **changes: Any) -> Self:
        """Return a copy with new parameter values and optional field changes."""
        return replace(self, parameters=parameters, **changes)

    def __repr__(self) -> str:
        return (
            f"ItemParam(item_id={self.item_id!r}, "
            f"model={self.model_name!r}, "
            f"difficulty={self.difficulty:.3f}, "
            f"status={self.status.name})"
        )


@dataclass(frozen=True)
class PersonParam:
    """Ability estimate of one person on one scale.

    Attributes
    ----------
    person_id : Hashable
        Identifier of the examinee.
    ability : float
        Ability estimate.
    standard_error : float
        Standard error of the ability, ``inf`` without information.
    scale_id : Hashable or None
        Scale the ability was estimated for.
    converged : bool
        Whether the Newton iteration for this person converged.
    """

    person_id: Hashable
    ability: float
    standard_error: float = float("inf")
    scale_id: Hashable | None = None
    converged: bool = True

    def __repr__(self) -> str:
        return (
            f"PersonParam(person_id={self.person_id!r}, "
            f"ability={self.ability:.3f}, "
            f"se={self.standard_error:.3f})"
        )


@dataclass(frozen=True)
class ItemParamList:
    """Immutable collection of item parameters.

    At most one entry exists per ``(item_id, model_name)`` pair.
    """

    entries: tuple[ItemParam, ...] = ()

    def __post_init__(self) -> None:
        entries = tuple(self.entries)
        index: dict[tuple[Hashable, str], ItemParam] = {}
        for entry in entries:
            key = (entry.item_id, entry.model_name)
            if key in index:
                raise ValueError(
                    f"Duplicate parameters for item {entry.item_id!r} "
                    f"under model {entry.model_name!r}"
                )
            index[key] = entry
        object.__setattr__(self, "entries", entries)
        object.__setattr__(self, "_index", MappingProxyType(index))

    @property
    def item_ids(self) -> list[Hashable]:
        return list(dict.fromkeys(entry.item_id for entry in self.entries))

    def get(self, item_id: Hashable, model_name: str) -> ItemParam | None:
        return self._index.get((item_id, model_name))

    def for_item(self, item_id: Hashable) -> list[ItemParam]:
        return [entry for entry in self.entries if entry.item_id == item_id]

    def for_model(self, model_name: str) -> ItemParamList:
        return ItemParamList(
            tuple(e for e in self.entries if e.model_name == model_name)
        )

    def merge(self, other: Iterable[ItemParam]) -> ItemParamList:
        """Return a new list where entries of ``other`` replace matching ones."""
        merged = dict(self._index)
        for entry in other:
            merged[(entry.item_id, entry.model_name)] = entry
        return ItemParamList(tuple(merged.values()))

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[ItemParam]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class PersonParamList:
    """Immutable collection of person parameters keyed by person id."""

    entries: tuple[PersonParam, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(
            self, "_index", MappingProxyType({p.person_id: p for p in self.entries})
        )

    def get(self, person_id: Hashable) -> PersonParam | None:
        return self._index.get(person_id)

    def __getitem__(self, person_id: Hashable) -> PersonParam:
        return self._index[person_id]

    def abilities(self) -> dict[Hashable, float]:
        return {p.person_id: p.ability for p in self.entries}

    def __iter__(self) -> Iterator[PersonParam]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)
