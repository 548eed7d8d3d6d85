"""Reduce buckets: the collections that hold the output of reduce or group."""

from __future__ import annotations

import threading
from itertools import chain
from typing import Any, Callable, Iterable

from mapcore.mrtypes import AppType, KeyVal, KeyVals, KeyValsLen
from mapcore.psrs import psrs, psrs_partitions
from mapcore.reduce import reduce_or_group_kv, reduce_or_group_kvs

KeyCmp = Callable[[Any, Any], int]


class ReduceBuckets:
    """A fixed number of output buckets; each reduce task writes to its own.

    The bucket a thread emits into is set with set_reduce_task().
    """

    def __init__(self, nbuckets: int, app: Any, key_cmp: KeyCmp) -> None:
        if nbuckets < 1:
            raise ValueError(f"nbuckets must be at least 1, got {nbuckets}")
        self.app = app
        self.key_cmp = key_cmp
        self._buckets: list[list[Any]] = [[] for _ in range(nbuckets)]
        self._local = threading.local()

    def __len__(self) -> int:
        return len(self._buckets)

    def get(self, index: int) -> list[Any]:
        """Return the bucket at index."""
        return self._buckets[index]

    def set_reduce_task(self, index: int) -> None:
        """Direct this thread's emits to bucket index."""
        if not 0 <= index < len(self._buckets):
            raise IndexError(f"bucket {index} is out of range")
        self._local.task = index

    def _current(self) -> list[Any]:
        return self._buckets[getattr(self._local, "task", 0)]

    def emit_kv(self, key: Any, val: Any) -> None:
        """Append a key with one value to the current bucket."""
        self._current().append(KeyVal(key, val))

    def emit_kvs_len(self, key: Any, vals: Iterable[Any]) -> None:
        """Append a key with its grouped values to the current bucket."""
        self._current().append(KeyValsLen(key, list(vals)))

    def _pair_cmp(self, a: Any, b: Any) -> int:
        outcmp = getattr(self.app, "outcmp", None)
        if outcmp is not None:
            return outcmp(a, b)
        return self.key_cmp(a.key, b.key)

    def _key_only_cmp(self, a: Any, b: Any) -> int:
        return self.key_cmp(a.key, b.key)

    def _cat(self) -> None:
        if len(self._buckets) == 1:
            return
        merged = list(chain.from_iterable(self._buckets))
        self._buckets = [merged] + [[] for _ in self._buckets[1:]]

    def merge(self, ncpus: int) -> None:
        """Sort all buckets together into bucket 0, leaving the others empty."""
        merged = psrs(self._buckets, ncpus, self._pair_cmp)
        self._buckets = [merged] + [[] for _ in self._buckets[1:]]

    def merge_reduce(self, collections: Iterable[Iterable[Any]], ncpus: int) -> None:
        """Sort the mapped pairs by key, then reduce or group each key.

        Partition i is handled as reduce task i.  The output ends up in
        bucket 0, ordered by the app's outcmp if it has one, else by key.
        """
        if ncpus > len(self._buckets):
            raise ValueError(f"{ncpus} CPUs need at least as many buckets")
        colls = [list(c) for c in collections]
        partitions = psrs_partitions(colls, ncpus, self._key_only_cmp)
        for lcpu, runs in enumerate(partitions):
            self.set_reduce_task(lcpu)
            grouped = any(isinstance(p, KeyVals) for run in runs for p in run)
            if grouped:
                reduce_or_group_kvs(runs, self.app, self.key_cmp, self)
            else:
                reduce_or_group_kv(runs, self.app, self.key_cmp, self)
        self.set_reduce_task(0)
        if getattr(self.app, "outcmp", None) is not None:
            self.merge(ncpus)
        self._cat()

    def set_elems(self, index: int, elems: Iterable[KeyVal], bsorted: bool = False) -> None:
        """Store the output of a map-only task in bucket index.

        bsorted is informational: merge() sorts every bucket regardless.
        """
        if getattr(self.app, "atype", None) is not AppType.MAPONLY:
            raise ValueError("elements can only be set directly for map-only apps")
        self._buckets[index] = list(elems)

    def results(self) -> list[Any]:
        """Return the contents of all buckets, in bucket order."""
        return list(chain.from_iterable(self._buckets))