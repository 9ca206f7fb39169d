"""Item pool of an adaptive test and its per-decision filtering."""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, Iterator
from dataclasses import dataclass

from catirt.context import Context
from catirt.params import ItemParam

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolItem:
    """An item that may be administered.

    Attributes
    ----------
    item_id : Hashable
        Identifier of the item.
    scale_id : Hashable or None
        Scale the item belongs to. None means the context's scale.
    active : bool
        Inactive items are never administered.
    last_attempt_time : float or None
        When the examinee last saw the item in another attempt, in seconds
        since the epoch.
    """

    item_id: Hashable
    scale_id: Hashable | None = None
    active: bool = True
    last_attempt_time: float | None = None

    def in_cool_down(self, now: float, period: float) -> bool:
        """Whether the item was shown less than ``period`` seconds ago."""
        if period <= 0 or self.last_attempt_time is None:
            return False
        return now - self.last_attempt_time < period


@dataclass(frozen=True)
class Candidate:
    """A pool item together with its parameters in the bound context.

    Pilot candidates have no calibrated parameters; ``param`` is None.
    """

    item: PoolItem
    param: ItemParam | None
    scale_id: Hashable

    @property
    def item_id(self) -> Hashable:
        return self.item.item_id

    @property
    def is_pilot(self) -> bool:
        return self.param is None

    @property
    def difficulty(self) -> float:
        if self.param is None:
            raise ValueError(f"Pilot item {self.item_id!r} has no difficulty")
        return self.param.difficulty


class ItemPool:
    """Items available to an attempt, keyed by item id.

    Parameters
    ----------
    items : iterable of PoolItem
        Pool entries. Later entries replace earlier ones with the same id.

    Examples
    --------
    >>> pool = ItemPool([PoolItem("q1", "math"), PoolItem("q2", "math", active=False)])
    >>> len(pool)
    2
    """

    def __init__(self, items: Iterable[PoolItem] = ()) -> None:
        self._items: dict[Hashable, PoolItem] = {item.item_id: item for item in items}

    @classmethod
    def from_context(cls, context: Context, scale_id: Hashable | None = None) -> ItemPool:
        """Every active item parameter of a context, on one scale."""
        scale_id = context.scale_id if scale_id is None else scale_id
        return cls(
            PoolItem(item_id=param.item_id, scale_id=scale_id)
            for param in context.active_item_params()
        )

    def get(self, item_id: Hashable) -> PoolItem | None:
        return self._items.get(item_id)

    def scale_of(self, item: PoolItem, context: Context) -> Hashable:
        return context.scale_id if item.scale_id is None else item.scale_id

    def scale_ids(self, context: Context) -> list[Hashable]:
        """Scales that own at least one pool item, in pool order."""
        return list(dict.fromkeys(self.scale_of(item, context) for item in self))

    def candidates(
        self,
        context: Context,
        administered: Iterable[Hashable] = (),
        include_pilots: bool = False,
    ) -> list[Candidate]:
        """Active items with usable parameters that were not administered yet.

        Items excluded manually are dropped. Items lacking parameters in
        ``context`` are dropped too, unless ``include_pilots`` is set, in
        which case they are returned as pilot candidates.
        """
        done = set(administered)
        result = []
        for item in self:
            if not item.active or item.item_id in done:
                continue
            param = context.get_item_param(item.item_id)
            if param is None and not include_pilots:
                continue
            if param is not None and param.is_excluded:
                continue
            result.append(Candidate(item, param, self.scale_of(item, context)))
        return result

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[PoolItem]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        n_active = sum(item.active for item in self)
        return f"ItemPool(n_items={len(self)}, n_active={n_active})"


def apply_cool_down(
    candidates: list[Candidate],
    now: float,
    period: float,
) -> list[Candidate]:
    """Drop candidates inside their cool-down window.

    When every candidate is cooling down, the unfiltered list is returned
    so that the attempt can continue.
    """
    if period <= 0:
        return candidates
    fresh = [c for c in candidates if not c.item.in_cool_down(now, period)]
    if not fresh and candidates:
        logger.debug(
            "All %d candidates are cooling down; ignoring the cool-down period",
            len(candidates),
        )
        return candidates
    return fresh


def exclude_scales(
    candidates: list[Candidate],
    scale_ids: Iterable[Hashable],
) -> list[Candidate]:
    excluded = set(scale_ids)
    return [c for c in candidates if c.scale_id not in excluded]
