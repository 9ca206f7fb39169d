"""Shared helper utilities for estimation implementations."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


def resolve_n_jobs(n_jobs: int) -> int:
    """Resolve n_jobs configuration, including -1 for all cores."""
    if n_jobs == -1:
        return os.cpu_count() or 1
    return n_jobs


def map_units(
    func: Callable[[T], R],
    units: Iterable[T],
    n_jobs: int = 1,
) -> list[R]:
    """Apply ``func`` to every unit either serially or with a thread pool.

    Each call must only read shared input and return its own result, so
    the order of execution does not matter. Results keep input order.
    """
    units = list(units)
    if not units:
        return []

    worker_count = resolve_n_jobs(n_jobs)

    if worker_count == 1:
        return list(map(func, units))
    with ThreadPoolExecutor(max_workers=min(worker_count, len(units))) as executor:
        return list(executor.map(func, units))
