"""A sparse array with range fills, run compression and range locking.

Values are kept in a radix tree (see ``mapcore.radix_nodes``).  A range
that holds the same value across a whole node's span is stored only once,
as an external value in the parent slot.  Ranges can be locked through
lock bits kept in the tree itself.  Modifications to disjoint ranges may
run concurrently.
"""

from __future__ import annotations

import copy
import functools
import threading
from typing import Any, Callable

from mapcore.bitlock import CliManager
from mapcore.radix_nodes import LeafNode, NodeKind, NodePtr, RadixGeometry, UpperNode


@functools.total_ordering
class RadixIterator:
    """A position in a RadixArray with a lazily descended node cache."""

    __slots__ = ("_r", "_k", "_node", "_level")

    def __init__(self, array: RadixArray, key: int) -> None:
        self._r = array
        self._k = key
        self._reset_node()

    def _reset_node(self) -> None:
        self._node = self._r._root
        self._level = self._r._geom.levels

    def _copy(self) -> RadixIterator:
        it = RadixIterator.__new__(RadixIterator)
        it._r = self._r
        it._k = self._k
        it._node = self._node
        it._level = self._level
        return it

    def _assert_valid(self) -> None:
        if not 0 <= self._k < self._r._geom.size:
            raise IndexError(f"index {self._k} is out of range")

    def _slot(self) -> int:
        return self._r._geom.subkey(self._k, self._level)

    def _force_terminal(self, limit: int = 0) -> NodePtr | None:
        """Descend until the slot for this key is a null or external pointer.

        Stops early when reaching level ``limit``.  Returns the pointer
        found, or None once the leaf level is reached.
        """
        while self._level > 0:
            child = self._node.children[self._slot()]
            if child.is_null() or child.is_external() or self._level == limit:
                return child
            self._node = child.target
            self._level -= 1
        return None

    def _set_at_level(self, level: int, value: Any) -> None:
        """Set the range [index, index + level_span(level)) to value."""
        r = self._r
        geom = r._geom
        unset = not value.is_set()
        if self._level < level:
            self._reset_node()
        while self._level > level:
            orig = self._force_terminal(level)
            if self._level <= level:
                break
            if unset and orig.is_null():
                return
            word_at_read = orig.word.load()
            if self._level > 1:
                new = NodePtr(NodeKind.UPPER, UpperNode.create(orig, geom, self._level))
            else:
                new = NodePtr(NodeKind.LEAF, LeafNode.create(orig, geom, r._factory))
            children = self._node.children
            slot = self._slot()
            with r._mutex:
                if children[slot] is orig and orig.word.load() == word_at_read:
                    children[slot] = new
            # On failure the loop retries with whatever is now in the slot.
        lockable = copy.copy(value)
        _set_recursive(r, self._node, level, self._slot(), 1, lockable, unset)

    def _lock(self) -> None:
        r = self._r
        while self._level:
            children = self._node.children
            slot = self._slot()
            child = children[slot]
            if child.is_null() or child.is_external():
                lock = child.get_lock()
                lock.acquire(CliManager.CALLER)
                with r._mutex:
                    current = children[slot]
                if current is child:
                    return
                # The slot was expanded while we waited; push down.
                lock.release(CliManager.CALLER)
            self._force_terminal()
        self._node.children[self._slot()].get_lock().acquire(CliManager.CALLER)

    def _unlock(self) -> None:
        while self._level:
            child = self._node.children[self._slot()]
            if child.is_null() or child.is_external():
                lock = child.get_lock()
                if not lock.is_locked():
                    raise RuntimeError("releasing a slot that is not locked")
                lock.release(CliManager.CALLER)
                return
            self._force_terminal()
        lock = self._node.children[self._slot()].get_lock()
        if not lock.is_locked():
            raise RuntimeError("releasing a value that is not locked")
        lock.release(CliManager.CALLER)

    def index(self) -> int:
        """Return the index this iterator points at."""
        return self._k

    def is_set(self) -> bool:
        """Return whether the value at this index is set."""
        self._assert_valid()
        while self._level:
            child = self._node.children[self._slot()]
            if child.is_external():
                return True
            if child.is_null():
                return False
            self._force_terminal()
        return self._node.children[self._slot()].is_set()

    def value(self) -> Any:
        """Return the value at this index; raise IndexError if it is unset."""
        self._assert_valid()
        while self._level:
            child = self._node.children[self._slot()]
            if child.is_external():
                return child.target
            if child.is_null():
                raise IndexError("value is not set")
            self._force_terminal()
        item = self._node.children[self._slot()]
        if not item.is_set():
            raise IndexError("value is not set")
        return item

    def span(self) -> int:
        """Return how many indexes from here on are known to hold the same value."""
        self._assert_valid()
        self._force_terminal()
        geom = self._r._geom
        if self._level == geom.levels:
            return geom.size - self._k
        ls = geom.level_span(self._level)
        return ls - (self._k & (ls - 1))

    def base(self) -> int:
        """Return the start of the compressed range holding this index."""
        geom = self._r._geom
        if self._k >= geom.size:
            return geom.size
        self._force_terminal()
        ls = geom.level_span(self._level)
        return self._k & ~(ls - 1)

    def base_span(self) -> int:
        """Return the length of the compressed range holding this index."""
        self._assert_valid()
        self._force_terminal()
        geom = self._r._geom
        if self._level == geom.levels:
            return geom.size
        return geom.level_span(self._level)

    def __iadd__(self, skip: int) -> RadixIterator:
        shift = self._r._geom.key_shift(self._level + 1)
        if self._k >> shift != (self._k + skip) >> shift:
            self._reset_node()
        self._k += skip
        return self

    def __isub__(self, skip: int) -> RadixIterator:
        return self.__iadd__(-skip)

    def __add__(self, skip: int) -> RadixIterator:
        it = self._copy()
        it += skip
        return it

    def __sub__(self, other: Any) -> Any:
        if isinstance(other, RadixIterator):
            return self._k - other._k
        it = self._copy()
        it -= other
        return it

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RadixIterator):
            return NotImplemented
        return self._k == other._k and self._r is other._r

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RadixIterator):
            return NotImplemented
        return (id(self._r), self._k) < (id(other._r), other._k)

    def __hash__(self) -> int:
        return hash((id(self._r), self._k))

    def __repr__(self) -> str:
        return f"RadixIterator(index={self._k})"


def _set_recursive(
    r: RadixArray, node: Any, level: int, idx: int, length: int, value: Any, unset: bool
) -> None:
    """Set every terminal in node[idx:idx+length] to value, keeping lock states."""
    geom = r._geom
    if level == 0:
        for i in range(idx, idx + length):
            value.get_lock().init(node.children[i].get_lock().is_locked())
            node.children[i] = copy.copy(value)
        return
    for i in range(idx, idx + length):
        child = node.children[i]
        if child.is_null():
            if not unset:
                node.children[i] = NodePtr(
                    NodeKind.EXTERNAL, copy.copy(value), child.get_lock().is_locked()
                )
        elif child.is_external():
            if not unset:
                child.target = copy.copy(value)
            else:
                node.children[i] = NodePtr(NodeKind.NONE, None, child.get_lock().is_locked())
        else:
            fanout = geom.leaf_fanout if level == 1 else geom.upper_fanout
            _set_recursive(r, child.target, level - 1, 0, fanout, value, unset)


class RangeLock:
    """A lock held on a range of a RadixArray; released on exit or release()."""

    def __init__(self, array: RadixArray, low: int, high: int) -> None:
        self._r: RadixArray | None = array
        self.low = low
        self.high = high

    def release(self) -> None:
        """Release the lock; does nothing if it is already released."""
        if self._r is None:
            return
        it = RadixIterator(self._r, self.low)
        if self.low + 1 == self.high:
            it._unlock()
        else:
            while it._k < self.high:
                it._unlock()
                it += it.span()
        self._r = None

    def __enter__(self) -> RangeLock:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


class RadixArray:
    """A fixed-size sparse array of values that provide get_lock() and is_set().

    ``factory`` builds a default, unset value.
    """

    def __init__(
        self,
        size: int,
        factory: Callable[[], Any],
        upper_fanout: int = 512,
        leaf_fanout: int = 512,
    ) -> None:
        self._geom = RadixGeometry(size, upper_fanout, leaf_fanout)
        self._factory = factory
        self._root = UpperNode(1)
        self._mutex = threading.Lock()

    def _iter_of(self, pos: Any) -> RadixIterator:
        if isinstance(pos, RadixIterator):
            if pos._r is not self:
                raise ValueError("iterator belongs to a different array")
            return pos._copy()
        if not 0 <= pos <= self._geom.size:
            raise IndexError(f"index {pos} is out of range")
        return RadixIterator(self, pos)

    def begin(self) -> RadixIterator:
        return RadixIterator(self, 0)

    def end(self) -> RadixIterator:
        return RadixIterator(self, self._geom.size)

    def find(self, index: int) -> RadixIterator:
        """Return an iterator at index, or end() if index is past the array."""
        if index >= self._geom.size:
            return self.end()
        return RadixIterator(self, index)

    def __len__(self) -> int:
        return self._geom.size

    def empty(self) -> bool:
        """Return whether every value in the array is unset."""
        it = self.begin()
        while it._k < self._geom.size:
            if it.is_set():
                return False
            it += it.span()
        return True

    def fill(self, low: Any, high: Any, value: Any, must_be_unset: bool = False) -> None:
        """Set every index in [low, high) to a copy of value."""
        geom = self._geom
        high_key = self._iter_of(high)._k
        it = self._iter_of(low)
        level = 0
        span = 1
        while it._k < high_key:
            if it._k + span > high_key or geom.subkey(it._k, level) == 0:
                level = 0
                span = 1
                while geom.subkey(it._k, level) == 0:
                    nspan = geom.level_span(level + 1)
                    if it._k + nspan > high_key:
                        break
                    level += 1
                    span = nspan
            if must_be_unset and it.is_set():
                raise ValueError(f"index {it._k} is already set")
            it._set_at_level(level, value)
            it += span

    def set(self, it: Any, value: Any) -> None:
        """Set the single index at it to a copy of value."""
        if not isinstance(it, RadixIterator):
            it = self._iter_of(it)
        elif it._r is not self:
            raise ValueError("iterator belongs to a different array")
        it._assert_valid()
        it._set_at_level(0, value)

    def unset(self, low: Any, high: Any) -> None:
        """Unset every index in [low, high)."""
        self.fill(low, high, self._factory())

    def acquire(self, low: Any, high: Any) -> RangeLock:
        """Lock [low, high), widened to the compressed ranges it touches."""
        low_it = self._iter_of(low)
        high_it = self._iter_of(high)
        low_key = low_it.base()
        high_key = high_it.base()
        if high_key != high_it.index():
            high_key += high_it.base_span()
        lock = RangeLock(self, low_key, high_key)
        it = self.find(low_key)
        while it._k < high_key:
            it._lock()
            it += it.span()
        return lock

    def acquire_one(self, it: Any) -> RangeLock:
        """Lock the value at it."""
        it = self._iter_of(it) if not isinstance(it, RadixIterator) else it
        it._assert_valid()
        base = it.base()
        lock = RangeLock(self, base, base + it.base_span())
        it._lock()
        return lock