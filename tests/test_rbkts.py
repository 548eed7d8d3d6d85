from collections import Counter

import pytest

from mapcore.mrtypes import KeyVal, KeyVals, KeyValsLen, MapGroupApp, MapOnlyApp, MapReduceApp
from mapcore.rbkts import ReduceBuckets


def cmp(a, b):
    return (a > b) - (a < b)


WORDS = ("pear fig apple fig kiwi pear apple fig plum kiwi date fig "
         "pear lime apple fig").split()


def word_collections():
    half = len(WORDS) // 2
    return [[KeyVal(w, 1) for w in WORDS[:half]], [KeyVal(w, 1) for w in WORDS[half:]]]


@pytest.mark.parametrize("ncpus", [1, 2])
def test_word_count_reduce(ncpus):
    app = MapReduceApp(reduce_func=lambda k, vs: sum(vs))
    rb = ReduceBuckets(2, app, cmp)
    rb.merge_reduce(word_collections(), ncpus)
    res = rb.results()
    assert [kv.key for kv in res] == sorted(Counter(WORDS))
    assert {kv.key: kv.val for kv in res} == dict(Counter(WORDS))
    assert rb.get(1) == []


def test_word_count_value_modifier():
    app = MapReduceApp(vm=lambda old, new, isnew: new if isnew else old + new)
    rb = ReduceBuckets(2, app, cmp)
    rb.merge_reduce(word_collections(), 2)
    assert {kv.key: kv.val for kv in rb.results()} == dict(Counter(WORDS))


def test_outcmp_orders_output():
    app = MapReduceApp(reduce_func=lambda k, vs: sum(vs), outcmp=lambda a, b: b.val - a.val)
    rb = ReduceBuckets(2, app, cmp)
    rb.merge_reduce(word_collections(), 2)
    vals = [kv.val for kv in rb.results()]
    assert vals == sorted(vals, reverse=True)
    assert sum(vals) == len(WORDS)


def test_group_keyval_pairs():
    rb = ReduceBuckets(2, MapGroupApp(), cmp)
    colls = [[KeyVal(w, i) for i, w in enumerate(WORDS)]]
    rb.merge_reduce(colls, 2)
    res = rb.results()
    assert all(isinstance(g, KeyValsLen) for g in res)
    assert [g.key for g in res] == sorted(set(WORDS))
    for g in res:
        assert sorted(g.vals) == [i for i, w in enumerate(WORDS) if w == g.key]


def test_group_keyvals_collections():
    rb = ReduceBuckets(1, MapGroupApp(), cmp)
    colls = [
        [KeyVals("a", [1]), KeyVals("b", [2])],
        [KeyVals("a", [3]), KeyVals("c", [4])],
    ]
    rb.merge_reduce(colls, 1)
    res = rb.results()
    assert [g.key for g in res] == ["a", "b", "c"]
    assert sorted(res[0].vals) == [1, 3]
    assert colls[0][0].vals == [1]


def test_emit_goes_to_current_task():
    rb = ReduceBuckets(3, MapGroupApp(), cmp)
    rb.set_reduce_task(1)
    rb.emit_kv("k", 5)
    rb.emit_kvs_len("g", (1, 2))
    assert rb.get(1) == [KeyVal("k", 5), KeyValsLen("g", [1, 2])]
    assert rb.get(0) == []


def test_set_reduce_task_out_of_range():
    rb = ReduceBuckets(2, MapGroupApp(), cmp)
    with pytest.raises(IndexError):
        rb.set_reduce_task(2)


def test_maponly_set_elems_and_merge():
    rb = ReduceBuckets(2, MapOnlyApp(), cmp)
    rb.set_elems(0, [KeyVal(k, k * 10) for k in (9, 3, 7)], False)
    rb.set_elems(1, [KeyVal(k, k * 10) for k in (1, 8)], False)
    rb.merge(2)
    assert [kv.key for kv in rb.get(0)] == [1, 3, 7, 8, 9]
    assert rb.get(1) == []
    assert all(kv.val == kv.key * 10 for kv in rb.results())


def test_set_elems_requires_maponly():
    rb = ReduceBuckets(1, MapGroupApp(), cmp)
    with pytest.raises(ValueError):
        rb.set_elems(0, [KeyVal(1, 1)], True)


def test_merge_reduce_needs_enough_buckets():
    rb = ReduceBuckets(2, MapGroupApp(), cmp)
    with pytest.raises(ValueError):
        rb.merge_reduce(word_collections(), 3)


def test_zero_buckets_rejected():
    with pytest.raises(ValueError):
        ReduceBuckets(0, MapGroupApp(), cmp)