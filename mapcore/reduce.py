"""Reduce or group pairs gathered from several collections."""

from __future__ import annotations

import functools
from itertools import chain
from typing import Any, Callable, Iterable, Iterator, Optional

from mapcore.mrtypes import KeyVal, KeyVals, MapReduceApp
from mapcore.values import insert_value, move_values

KeyCmp = Callable[[Any, Any], int]
GroupEmit = Callable[[KeyVals], None]


def _require_sink(sink: Any) -> Any:
    if sink is None:
        raise ValueError("a sink is required to emit results")
    return sink


def _finish(kvs: KeyVals, app: Any, sink: Any) -> None:
    """Reduce or emit one key with all its values."""
    if isinstance(app, MapReduceApp):
        if app.vm is not None:
            if len(kvs) != 1:
                raise ValueError("with a value modifier a key holds exactly one value")
            _require_sink(sink).emit_kv(kvs.key, kvs.vals[0])
            return
        if app.reduce_func is None:
            raise ValueError("a map-reduce app needs reduce_func or vm")
        result = app.reduce_func(kvs.key, kvs.vals)
        if result is not None:
            _require_sink(sink).emit_kv(kvs.key, result)
        return
    _require_sink(sink).emit_kvs_len(kvs.key, kvs.vals)


def _next_kvs(it: Iterator[KeyVals]) -> Optional[KeyVals]:
    item = next(it, None)
    if item is None:
        return None
    return KeyVals(item.key, list(item.vals), item.hash)


def reduce_or_group_kvs(
    collections: Iterable[Iterable[KeyVals]],
    app: Any,
    key_cmp: KeyCmp,
    sink: Any = None,
) -> None:
    """Merge collections of KeyVals, each sorted by key, key by key.

    Each key's values are reduced (map-reduce apps) or emitted to
    ``sink.emit_kvs_len`` (grouping apps), in ascending key order.
    The input KeyVals are left unchanged.
    """
    iters = [iter(c) for c in collections]
    heads = [_next_kvs(it) for it in iters]
    while True:
        min_idx = None
        for i, head in enumerate(heads):
            if head is None:
                continue
            if min_idx is None or key_cmp(heads[min_idx].key, head.key) > 0:
                min_idx = i
        if min_idx is None:
            break
        dst = KeyVals(heads[min_idx].key)
        same = [
            i for i, head in enumerate(heads)
            if head is not None and key_cmp(dst.key, head.key) == 0
        ]
        for i in same:
            while True:
                move_values(dst, heads[i], app)
                heads[i] = _next_kvs(iters[i])
                if heads[i] is None or key_cmp(dst.key, heads[i].key) != 0:
                    break
        _finish(dst, app, sink)


def reduce_or_group_kv(
    collections: Iterable[Iterable[KeyVal]],
    app: Any,
    key_cmp: KeyCmp,
    sink: Any = None,
    meth: Optional[GroupEmit] = None,
) -> None:
    """Sort KeyVal pairs from all collections by key and handle each key once.

    If ``meth`` is given it receives each KeyVals; otherwise the key is
    reduced or emitted as in reduce_or_group_kvs.
    """
    order = functools.cmp_to_key(lambda a, b: key_cmp(a.key, b.key))
    pairs = sorted(chain.from_iterable(collections), key=order)
    start = 0
    while start < len(pairs):
        end = start + 1
        while end < len(pairs) and key_cmp(pairs[start].key, pairs[end].key) == 0:
            end += 1
        kvs = KeyVals(pairs[start].key)
        for pair in pairs[start:end]:
            insert_value(kvs, pair.val, app)
        if meth is not None:
            meth(kvs)
        else:
            _finish(kvs, app, sink)
        start = end