"""Parallel sorting by regular sampling (PSRS).

The input is cut into ``ncpus`` equal chunks.  Each chunk is sorted on its
own and contributes ``ncpus - 1`` regularly spaced samples.  From the
sorted samples, ``ncpus - 1`` global pivots are picked.  Each sorted chunk
is then split at those pivots.  Partition ``j`` collects the ``j``-th piece
of every chunk, so every element of partition ``j`` orders before every
element of partition ``j + 1``.  Inputs smaller than ``ncpus ** 3`` are
sorted as a single chunk.
"""

from __future__ import annotations

import functools
import heapq
from itertools import chain
from typing import Any, Callable, Iterable, Sequence

Compare = Callable[[Any, Any], int]


def _bisect_right(items: Sequence[Any], x: Any, compare: Compare) -> int:
    """Return the index of the first element of sorted items that is > x."""
    lo, hi = 0, len(items)
    while lo < hi:
        mid = (lo + hi) // 2
        if compare(x, items[mid]) < 0:
            hi = mid
        else:
            lo = mid + 1
    return lo


def sublist_bounds(items: Sequence[Any], pivots: Sequence[Any], compare: Compare) -> list[int]:
    """Split sorted items at sorted pivots.

    Returns ``[0, b1, ..., bk, len(items)]``, where ``bi`` is the index of
    the first element greater than ``pivots[i - 1]``.
    """
    return [0, *(_bisect_right(items, p, compare) for p in pivots), len(items)]


def psrs_partitions(
    collections: Iterable[Iterable[Any]], ncpus: int, compare: Compare
) -> list[list[list[Any]]]:
    """Return the partitions of all elements, each as a list of sorted runs.

    Every element of a partition orders no later than every element of the
    next one.  Small inputs, or a single CPU, give one partition with one run.
    """
    if ncpus < 1:
        raise ValueError(f"ncpus must be at least 1, got {ncpus}")
    key = functools.cmp_to_key(compare)
    items = list(chain.from_iterable(collections))
    total = len(items)
    if ncpus == 1 or total < ncpus ** 3:
        return [[sorted(items, key=key)]]

    width = -(-total // ncpus)
    runs = [sorted(items[width * i:width * (i + 1)], key=key) for i in range(ncpus)]

    samples = []
    for run in runs:
        rsize = -(-len(run) // ncpus)
        for i in range(ncpus - 1):
            pos = (i + 1) * rsize
            samples.append(run[pos] if pos < len(run) else run[-1])
    samples.sort(key=key)
    pivots = [samples[i * ncpus + ncpus // 2] for i in range(ncpus - 1)]

    bounds = [sublist_bounds(run, pivots, compare) for run in runs]
    return [
        [run[b[j]:b[j + 1]] for run, b in zip(runs, bounds)]
        for j in range(ncpus)
    ]


def psrs(collections: Iterable[Iterable[Any]], ncpus: int, compare: Compare) -> list[Any]:
    """Return every element of the collections as one stably sorted list."""
    key = functools.cmp_to_key(compare)
    out: list[Any] = []
    for runs in psrs_partitions(collections, ncpus, compare):
        out.extend(heapq.merge(*runs, key=key))
    return out