"""Response records and indexed response sets."""

from __future__ import annotations

import math
from collections.abc import Hashable, Iterable, Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from catirt.exceptions import InvalidResponseError


@dataclass(frozen=True)
class ResponseRecord:
    """One scored response of a person to an item.

    Attributes
    ----------
    person_id : Hashable
        Identifier of the examinee.
    item_id : Hashable
        Identifier of the item.
    fraction : float
        Achieved fraction of the maximum score, in [0, 1]. Dichotomous
        items use 0 and 1; polytomous items use intermediate values.
    timestamp : float
        Seconds since the epoch at which the response was recorded.
    """

    person_id: Hashable
    item_id: Hashable
    fraction: float
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        fraction = float(self.fraction)
        if not math.isfinite(fraction) or not 0.0 <= fraction <= 1.0:
            raise InvalidResponseError(
                f"Response fraction must lie in [0, 1], got {self.fraction!r} "
                f"(person {self.person_id!r}, item {self.item_id!r})"
            )
        object.__setattr__(self, "fraction", fraction)


class ResponseSet:
    """Collection of response records with array views for estimation.

    Persons and items are indexed in order of first appearance. When a
    person answered the same item more than once, the most recent record
    (by timestamp, then by position) wins.

    Parameters
    ----------
    records : iterable of ResponseRecord
        Raw response records.

    Examples
    --------
    >>> responses = ResponseSet([ResponseRecord("p1", "q1", 1.0)])
    >>> responses.n_persons, responses.n_items
    (1, 1)
    """

    def __init__(self, records: Iterable[ResponseRecord] = ()) -> None:
        latest: dict[tuple[Hashable, Hashable], ResponseRecord] = {}
        for record in records:
            if not isinstance(record, ResponseRecord):
                raise InvalidResponseError(
                    f"Expected ResponseRecord, got {type(record).__name__}"
                )
            key = (record.person_id, record.item_id)
            previous = latest.get(key)
            if previous is None or record.timestamp >= previous.timestamp:
                latest[key] = record
        self.records = list(latest.values())

        self._person_ids: list[Hashable] = []
        self._item_ids: list[Hashable] = []
        person_index: dict[Hashable, int] = {}
        item_index: dict[Hashable, int] = {}
        for record in self.records:
            if record.person_id not in person_index:
                person_index[record.person_id] = len(self._person_ids)
                self._person_ids.append(record.person_id)
            if record.item_id not in item_index:
                item_index[record.item_id] = len(self._item_ids)
                self._item_ids.append(record.item_id)
        self._person_index = person_index
        self._item_index = item_index

        self.person_idx = np.array(
            [person_index[r.person_id] for r in self.records], dtype=np.intp
        )
        self.item_idx = np.array(
            [item_index[r.item_id] for r in self.records], dtype=np.intp
        )
        self.fractions = np.array(
            [r.fraction for r in self.records], dtype=np.float64
        )

    @classmethod
    def from_matrix(
        cls,
        matrix: NDArray[np.float64],
        person_ids: list[Hashable] | None = None,
        item_ids: list[Hashable] | None = None,
    ) -> ResponseSet:
        """Build a response set from a (n_persons, n_items) fraction matrix.

        Missing responses are coded as NaN or any negative value.
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.ndim != 2:
            raise InvalidResponseError(f"matrix must be 2D, got {matrix.ndim}D")
        n_persons, n_items = matrix.shape
        person_ids = person_ids or list(range(n_persons))
        item_ids = item_ids or list(range(n_items))
        if len(person_ids) != n_persons or len(item_ids) != n_items:
            raise InvalidResponseError("Identifier lists do not match matrix shape")

        records = [
            ResponseRecord(person_ids[i], item_ids[j], float(matrix[i, j]))
            for i in range(n_persons)
            for j in range(n_items)
            if not np.isnan(matrix[i, j]) and matrix[i, j] >= 0
        ]
        return cls(records)

    @property
    def person_ids(self) -> list[Hashable]:
        return list(self._person_ids)

    @property
    def item_ids(self) -> list[Hashable]:
        return list(self._item_ids)

    @property
    def n_persons(self) -> int:
        return len(self._person_ids)

    @property
    def n_items(self) -> int:
        return len(self._item_ids)

    @property
    def n_observations(self) -> int:
        return len(self.records)

    def person_index(self, person_id: Hashable) -> int:
        return self._person_index[person_id]

    def item_index(self, item_id: Hashable) -> int:
        return self._item_index[item_id]

    def item_mask(self, item_id: Hashable) -> NDArray[np.bool_]:
        """Boolean mask selecting the observations of one item."""
        return self.item_idx == self._item_index[item_id]

    def by_item(self) -> dict[Hashable, NDArray[np.float64]]:
        """Map each item id to the fractions observed for it."""
        return {
            item_id: self.fractions[self.item_idx == j]
            for j, item_id in enumerate(self._item_ids)
        }

    def by_person(self) -> dict[Hashable, dict[Hashable, float]]:
        """Map each person id to their {item_id: fraction} responses."""
        result: dict[Hashable, dict[Hashable, float]] = {
            person_id: {} for person_id in self._person_ids
        }
        for record in self.records:
            result[record.person_id][record.item_id] = record.fraction
        return result

    def mean_fraction_by_person(self) -> NDArray[np.float64]:
        """Average fraction achieved by every person, in index order."""
        totals = np.bincount(
            self.person_idx, weights=self.fractions, minlength=self.n_persons
        )
        counts = np.bincount(self.person_idx, minlength=self.n_persons)
        return totals / np.maximum(counts, 1)

    def subset(self, item_ids: Iterable[Hashable]) -> ResponseSet:
        """Return the responses restricted to the given items."""
        keep = set(item_ids)
        return ResponseSet(r for r in self.records if r.item_id in keep)

    def __iter__(self) -> Iterator[ResponseRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return (
            f"ResponseSet(n_persons={self.n_persons}, "
            f"n_items={self.n_items}, "
            f"n_observations={self.n_observations})"
        )
