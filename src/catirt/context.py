"""Versioned, immutable parameter contexts and their store.

A context is a snapshot of item and person parameters computed together.
Calibration always produces a new context; an adaptive attempt binds to
one context for its whole duration. Publishing is copy-on-write: the
store swaps the active context pointer of a scale, never the context.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

from catirt.params import ItemParam, ItemParamList, PersonParamList

logger = logging.getLogger(__name__)


def new_context_id() -> str:
    """Return a fresh, globally unique context id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Context:
    """Immutable snapshot of calibrated parameters.

    Attributes
    ----------
    item_params : ItemParamList
        Parameters of every item under every model that was calibrated.
        At most one entry per ``(item_id, model_name)``.
    person_params : PersonParamList
        Abilities the item parameters were calibrated against.
    selected_models : Mapping[Hashable, str]
        Model chosen for each item. Items without an entry fall back to
        their only parameter set.
    scale_id : Hashable or None
        Scale the context was calibrated for.
    context_id : str
        Unique identifier; generated when omitted.
    parent_id : str or None
        Context this one was derived from.
    created_at : float
        Seconds since the epoch.
    """

    item_params: ItemParamList = field(default_factory=ItemParamList)
    person_params: PersonParamList = field(default_factory=PersonParamList)
    selected_models: Mapping[Hashable, str] = field(default_factory=dict)
    scale_id: Hashable | None = None
    context_id: str = field(default_factory=new_context_id)
    parent_id: str | None = None
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not isinstance(self.item_params, ItemParamList):
            object.__setattr__(self, "item_params", ItemParamList(tuple(self.item_params)))
        if not isinstance(self.person_params, PersonParamList):
            object.__setattr__(
                self, "person_params", PersonParamList(tuple(self.person_params))
            )
        object.__setattr__(
            self, "selected_models", MappingProxyType(dict(self.selected_models))
        )
        for item_id, model_name in self.selected_models.items():
            if self.item_params.get(item_id, model_name) is None:
                raise ValueError(
                    f"Selected model {model_name!r} for item {item_id!r} "
                    "has no parameters in this context"
                )

    @property
    def item_ids(self) -> list[Hashable]:
        return self.item_params.item_ids

    def get_item_param(
        self, item_id: Hashable, model_name: str | None = None
    ) -> ItemParam | None:
        """Return the parameters of an item, under its selected model by default."""
        if model_name is not None:
            return self.item_params.get(item_id, model_name)
        selected = self.selected_models.get(item_id)
        if selected is not None:
            return self.item_params.get(item_id, selected)
        candidates = self.item_params.for_item(item_id)
        return candidates[0] if len(candidates) == 1 else None

    def active_item_params(self) -> ItemParamList:
        """One parameter set per item: the selected, non-excluded one."""
        active = []
        for item_id in self.item_ids:
            param = self.get_item_param(item_id)
            if param is not None and not param.is_excluded:
                active.append(param)
        return ItemParamList(tuple(active))

    def __repr__(self) -> str:
        return (
            f"Context(id={self.context_id!r}, "
            f"scale={self.scale_id!r}, "
            f"n_items={len(self.item_ids)}, "
            f"n_persons={len(self.person_params)})"
        )


class ContextStore(Protocol):
    """Store of published contexts with an active pointer per scale."""

    def publish(self, context: Context, activate: bool = True) -> None: ...

    def get(self, context_id: str) -> Context: ...

    def active(self, scale_id: Hashable) -> Context | None: ...

    def swap(
        self,
        scale_id: Hashable,
        context_id: str,
        expected: str | None = None,
    ) -> bool: ...


class InMemoryContextStore:
    """Thread-safe in-process :class:`ContextStore`.

    Contexts are never mutated once published. Activation is an atomic
    compare-and-swap of the per-scale pointer.

    Examples
    --------
    >>> store = InMemoryContextStore()
    >>> store.publish(Context(scale_id="math"))
    >>> store.active("math") is not None
    True
    """

    def __init__(self) -> None:
        self._contexts: dict[str, Context] = {}
        self._active: dict[Hashable, str] = {}
        self._lock = threading.Lock()

    def publish(self, context: Context, activate: bool = True) -> None:
        with self._lock:
            existing = self._contexts.get(context.context_id)
            if existing is not None and existing is not context:
                raise ValueError(f"Context {context.context_id!r} is already published")
            self._contexts[context.context_id] = context
            if activate and context.scale_id is not None:
                self._active[context.scale_id] = context.context_id
        logger.debug("Published context %s for scale %r", context.context_id, context.scale_id)

    def get(self, context_id: str) -> Context:
        with self._lock:
            return self._contexts[context_id]

    def active(self, scale_id: Hashable) -> Context | None:
        with self._lock:
            context_id = self._active.get(scale_id)
            return self._contexts.get(context_id) if context_id is not None else None

    def swap(
        self,
        scale_id: Hashable,
        context_id: str,
        expected: str | None = None,
    ) -> bool:
        """Point ``scale_id`` at ``context_id``.

        When ``expected`` is given, the swap only happens if the currently
        active context id equals it. Returns whether the swap happened.
        """
        with self._lock:
            if context_id not in self._contexts:
                raise KeyError(f"Unknown context {context_id!r}")
            current = self._active.get(scale_id)
            if expected is not None and current != expected:
                return False
            self._active[scale_id] = context_id
        logger.info("Scale %r now uses context %s (was %s)", scale_id, context_id, current)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
