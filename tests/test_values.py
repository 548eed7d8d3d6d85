import pytest

from mapcore.mrtypes import KeyVals, MapGroupApp, MapReduceApp
from mapcore.values import COMBINER_THRESHOLD, clear_values, insert_value, move_values


def test_insert_appends_in_order():
    kvs = KeyVals("k")
    for v in ["x", "y", "z"]:
        insert_value(kvs, v, MapGroupApp())
    assert kvs.vals == ["x", "y", "z"]


def test_combiner_not_called_below_threshold():
    calls = []

    def combiner(key, vals):
        calls.append(list(vals))
        return [sum(vals)]

    app = MapReduceApp(reduce_func=lambda k, v: None, combiner=combiner)
    kvs = KeyVals("k")
    for _ in range(COMBINER_THRESHOLD - 1):
        insert_value(kvs, 1, app)
    assert calls == []
    assert len(kvs) == COMBINER_THRESHOLD - 1


def test_combiner_keeps_sum_and_shrinks():
    def combiner(key, vals):
        return [sum(vals)]

    app = MapReduceApp(reduce_func=lambda k, v: None, combiner=combiner)
    kvs = KeyVals("k")
    for _ in range(COMBINER_THRESHOLD + 2):
        insert_value(kvs, 1, app)
    assert sum(kvs.vals) == COMBINER_THRESHOLD + 2
    assert len(kvs) < COMBINER_THRESHOLD


def test_combiner_receives_key():
    seen = []

    def combiner(key, vals):
        seen.append(key)
        return vals[:1]

    app = MapReduceApp(reduce_func=lambda k, v: None, combiner=combiner)
    kvs = KeyVals("word")
    for i in range(COMBINER_THRESHOLD):
        insert_value(kvs, i, app)
    assert seen == ["word"]
    assert kvs.vals == [0]


def test_group_app_ignores_threshold():
    kvs = KeyVals("k")
    n = COMBINER_THRESHOLD * 2
    for i in range(n):
        insert_value(kvs, i, MapGroupApp())
    assert kvs.vals == list(range(n))


def test_value_modifier_folds_values():
    calls = []

    def vm(old, new, isnew):
        calls.append(isnew)
        return new if isnew else old + new

    app = MapReduceApp(vm=vm)
    kvs = KeyVals("k")
    for v in [3, 4, 5]:
        insert_value(kvs, v, app)
    assert len(kvs) == 1
    assert kvs.vals[0] == 3 + 4 + 5
    assert calls == [True, False, False]


def test_clear_values():
    kvs = KeyVals("k", [1, 2])
    clear_values(kvs)
    assert kvs.vals == []
    assert kvs.key == "k"


def test_move_values_concatenates():
    dst = KeyVals("k", ["a"])
    src = KeyVals("k", ["b", "c"])
    move_values(dst, src, MapGroupApp())
    assert dst.vals == ["a", "b", "c"]
    assert src.vals == []


def test_move_values_with_vm():
    app = MapReduceApp(vm=lambda old, new, isnew: new if isnew else old + new)
    dst = KeyVals("k")
    move_values(dst, KeyVals("k", [10]), app)
    assert dst.vals == [10]
    src = KeyVals("k", [5])
    move_values(dst, src, app)
    assert dst.vals == [15]
    assert src.vals == []


def test_move_values_with_vm_requires_single_value():
    app = MapReduceApp(vm=lambda old, new, isnew: new)
    with pytest.raises(ValueError):
        move_values(KeyVals("k"), KeyVals("k", [1, 2]), app)