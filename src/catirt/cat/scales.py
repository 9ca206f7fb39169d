"""Scale hierarchy as a parent-id tree."""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Iterator, Mapping

from catirt.exceptions import ConfigurationError


class ScaleHierarchy:
    """Parent/child relations between scales.

    Each scale stores the id of its parent, or None for a root scale.
    Relations are resolved through lookups, never through object
    references.

    Parameters
    ----------
    parents : Mapping
        Parent id by scale id. Parents that are not keys themselves are
        added as roots.

    Raises
    ------
    ConfigurationError
        If the relations contain a cycle.

    Examples
    --------
    >>> scales = ScaleHierarchy({"algebra": "math", "geometry": "math"})
    >>> scales.ancestors("algebra")
    ['math']
    >>> sorted(scales.descendants("math"))
    ['algebra', 'geometry']
    """

    def __init__(self, parents: Mapping[Hashable, Hashable | None] | None = None) -> None:
        self._parent: dict[Hashable, Hashable | None] = dict(parents or {})
        for parent in list(self._parent.values()):
            if parent is not None and parent not in self._parent:
                self._parent[parent] = None
        self._children: dict[Hashable, list[Hashable]] = {s: [] for s in self._parent}
        for scale_id, parent in self._parent.items():
            if parent is not None:
                self._children[parent].append(scale_id)
        for scale_id in self._parent:
            self._check_acyclic(scale_id)

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[Hashable, Hashable]]) -> ScaleHierarchy:
        """Build from ``(parent, child)`` pairs."""
        parents: dict[Hashable, Hashable | None] = {}
        for parent, child in edges:
            if parents.get(child) not in (None, parent):
                raise ConfigurationError(f"Scale {child!r} has more than one parent")
            parents[child] = parent
        return cls(parents)

    def _check_acyclic(self, scale_id: Hashable) -> None:
        seen = {scale_id}
        current = self._parent[scale_id]
        while current is not None:
            if current in seen:
                raise ConfigurationError(f"Scale hierarchy has a cycle through {scale_id!r}")
            seen.add(current)
            current = self._parent.get(current)

    def parent(self, scale_id: Hashable) -> Hashable | None:
        return self._parent.get(scale_id)

    def children(self, scale_id: Hashable) -> list[Hashable]:
        return list(self._children.get(scale_id, ()))

    def ancestors(self, scale_id: Hashable) -> list[Hashable]:
        """Parent, grandparent, ... up to the root."""
        result = []
        current = self._parent.get(scale_id)
        while current is not None:
            result.append(current)
            current = self._parent.get(current)
        return result

    def lineage(self, scale_id: Hashable) -> list[Hashable]:
        """The scale itself followed by its ancestors."""
        return [scale_id, *self.ancestors(scale_id)]

    def descendants(self, scale_id: Hashable) -> list[Hashable]:
        """All scales below ``scale_id``, breadth first."""
        result: list[Hashable] = []
        queue = self.children(scale_id)
        while queue:
            current = queue.pop(0)
            result.append(current)
            queue.extend(self.children(current))
        return result

    def roots(self) -> list[Hashable]:
        return [s for s, parent in self._parent.items() if parent is None]

    def __contains__(self, scale_id: object) -> bool:
        return scale_id in self._parent

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._parent)

    def __len__(self) -> int:
        return len(self._parent)

    def __repr__(self) -> str:
        return f"ScaleHierarchy(n_scales={len(self)}, roots={self.roots()!r})"
