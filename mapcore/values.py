"""Helpers that gather, move and clear the values of a key."""

from __future__ import annotations

from typing import Any

from mapcore.mrtypes import KeyVals, MapReduceApp

# Number of values gathered before the combiner is run.
COMBINER_THRESHOLD = 8


def _uses_vm(app: Any) -> bool:
    return isinstance(app, MapReduceApp) and app.vm is not None


def insert_value(kvs: KeyVals, val: Any, app: Any) -> None:
    """Add val to kvs, folding it with the app's value modifier if it has one."""
    if _uses_vm(app):
        if len(kvs) == 0:
            kvs.vals = [app.vm(None, val, True)]
        else:
            kvs.vals = [app.vm(kvs.vals[0], val, False)]
        return
    kvs.vals.append(val)
    if (
        isinstance(app, MapReduceApp)
        and app.combiner is not None
        and len(kvs) >= COMBINER_THRESHOLD
    ):
        kvs.vals = list(app.combiner(kvs.key, kvs.vals))


def clear_values(kvs: KeyVals) -> None:
    """Drop all values of kvs."""
    kvs.vals = []


def move_values(dst: KeyVals, src: KeyVals, app: Any) -> None:
    """Move the values of src onto dst, leaving src empty."""
    if _uses_vm(app):
        if len(src) != 1:
            raise ValueError("with a value modifier a key holds exactly one value")
        if len(dst) == 0:
            dst.vals = src.vals
        else:
            dst.vals = [app.vm(dst.vals[0], src.vals[0], False)]
        src.vals = []
        return
    dst.vals.extend(src.vals)
    clear_values(src)