import pytest

from mapcore.bitlock import AtomicWord, BitSpinLock, DummyBitSpinLock
from mapcore.radix_nodes import LeafNode, NodeKind, NodePtr, RadixGeometry, UpperNode


class Cell:
    def __init__(self, value=None):
        self.value = value
        self.word = AtomicWord(0)

    def __copy__(self):
        other = Cell(self.value)
        other.word.store(self.word.load())
        return other

    def get_lock(self):
        return BitSpinLock(self.word, 0)

    def is_set(self):
        return self.value is not None


class Plain:
    def __init__(self, value=None):
        self.value = value

    def get_lock(self):
        return DummyBitSpinLock()

    def is_set(self):
        return self.value is not None


@pytest.fixture
def geom():
    return RadixGeometry(1 << 10, upper_fanout=8, leaf_fanout=4)


def test_key_shift_leaf_is_zero(geom):
    assert geom.key_shift(0) == 0
    assert geom.level_span(0) == 1


def test_key_mask_uses_fanouts(geom):
    assert geom.key_mask(0) == 4 - 1
    assert geom.key_mask(1) == 8 - 1
    assert geom.key_mask(3) == 8 - 1


def test_levels_cover_size(geom):
    assert geom.level_span(geom.levels) >= geom.size
    assert geom.level_span(geom.levels - 1) < geom.size


def test_spans_grow_by_fanout(geom):
    assert geom.level_span(1) == geom.leaf_fanout
    for level in range(1, geom.levels):
        assert geom.level_span(level + 1) == geom.level_span(level) * geom.upper_fanout


def test_subkeys_reconstruct_key(geom):
    for key in (0, 1, 5, 37, 500, geom.size - 1):
        rebuilt = sum(
            geom.subkey(key, level) << geom.key_shift(level) for level in range(geom.levels)
        )
        assert rebuilt == key
        assert geom.subkey(key, geom.levels) == 0


def test_level_fanout(geom):
    assert geom.level_fanout(0) == geom.leaf_fanout
    assert geom.level_fanout(1) == geom.upper_fanout
    top = geom.level_fanout(geom.levels)
    assert 1 <= top <= geom.upper_fanout
    assert top * geom.level_span(geom.levels - 1) <= geom.size


@pytest.mark.parametrize("upper, leaf", [(6, 4), (8, 3), (1, 4), (8, 0)])
def test_geometry_rejects_bad_fanouts(upper, leaf):
    with pytest.raises(ValueError):
        RadixGeometry(64, upper_fanout=upper, leaf_fanout=leaf)


def test_geometry_rejects_tiny_size():
    with pytest.raises(ValueError):
        RadixGeometry(1, upper_fanout=8, leaf_fanout=4)


def test_node_ptr_defaults_null():
    ptr = NodePtr()
    assert ptr.is_null()
    assert not ptr.is_external()
    assert not ptr.get_lock().is_locked()


def test_node_ptr_lock_cycle():
    ptr = NodePtr(NodeKind.EXTERNAL, Cell(3))
    lock = ptr.get_lock()
    assert lock.try_acquire()
    assert ptr.get_lock().is_locked()
    assert not ptr.get_lock().try_acquire()
    lock.release()
    assert not ptr.get_lock().is_locked()


def test_node_ptr_initially_locked():
    ptr = NodePtr(NodeKind.NONE, None, True)
    assert ptr.is_null()
    assert ptr.get_lock().is_locked()


@pytest.mark.parametrize(
    "kind, target",
    [
        (NodeKind.NONE, Cell(1)),
        (NodeKind.EXTERNAL, None),
        (NodeKind.UPPER, Cell(1)),
        (NodeKind.LEAF, UpperNode(2)),
    ],
)
def test_node_ptr_rejects_mismatched_target(kind, target):
    with pytest.raises(ValueError):
        NodePtr(kind, target)


def test_upper_create_from_null(geom):
    node = UpperNode.create(NodePtr(), geom, 2)
    assert len(node) == geom.upper_fanout
    assert all(c.is_null() and not c.get_lock().is_locked() for c in node.children)


def test_upper_create_propagates_lock(geom):
    level = geom.levels
    node = UpperNode.create(NodePtr(NodeKind.NONE, None, True), geom, level)
    used = geom.level_fanout(level)
    assert all(c.is_null() and c.get_lock().is_locked() for c in node.children[:used])
    assert all(not c.get_lock().is_locked() for c in node.children[used:])


def test_upper_create_copies_external(geom):
    orig = Cell(42)
    node = UpperNode.create(NodePtr(NodeKind.EXTERNAL, orig, True), geom, 2)
    assert len(node) == geom.upper_fanout
    targets = [c.target for c in node.children]
    assert all(c.is_external() and c.get_lock().is_locked() for c in node.children)
    assert all(t.value == 42 and t is not orig for t in targets)
    assert len({id(t) for t in targets}) == len(targets)


def test_upper_create_rejects_bad_source(geom):
    inner = NodePtr(NodeKind.UPPER, UpperNode(2))
    with pytest.raises(ValueError):
        UpperNode.create(inner, geom, 1)


@pytest.mark.parametrize("level_offset", [0, 1])
def test_upper_create_rejects_bad_level(geom, level_offset):
    level = 0 if level_offset == 0 else geom.levels + 1
    with pytest.raises(ValueError):
        UpperNode.create(NodePtr(), geom, level)


def test_leaf_create_from_null(geom):
    leaf = LeafNode.create(NodePtr(), geom, Cell)
    assert len(leaf) == geom.leaf_fanout
    assert not any(c.is_set() for c in leaf.children)
    assert not any(c.get_lock().is_locked() for c in leaf.children)


def test_leaf_create_from_locked_null(geom):
    leaf = LeafNode.create(NodePtr(NodeKind.NONE, None, True), geom, Cell)
    assert all(c.get_lock().is_locked() for c in leaf.children)


def test_leaf_create_from_external(geom):
    orig = Cell(7)
    leaf = LeafNode.create(NodePtr(NodeKind.EXTERNAL, orig), geom, Cell)
    assert [c.value for c in leaf.children] == [7] * geom.leaf_fanout
    assert all(c is not orig for c in leaf.children)
    leaf.children[0].value = 8
    assert orig.value == 7


def test_leaf_create_locked_with_dummy_lock_fails(geom):
    with pytest.raises(ValueError):
        LeafNode.create(NodePtr(NodeKind.NONE, None, True), geom, Plain)


def test_leaf_create_rejects_leaf_source(geom):
    src = NodePtr(NodeKind.LEAF, LeafNode([Plain()]))
    with pytest.raises(ValueError):
        LeafNode.create(src, geom, Plain)