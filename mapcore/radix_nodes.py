"""Building blocks of a radix array: geometry, tagged child pointers and nodes.

A radix array splits its index space into leaf nodes that hold values
directly.  Pointers to those leaves live in upper nodes, which are in turn
pointed to by higher upper nodes, up to a single root.  A slot in an upper
node is a ``NodePtr``.  It is null, a pointer to a child node, or an
*external* value that stands for every index the slot spans.  Each pointer
carries its own lock bit.

Values stored in the array must provide ``get_lock()``, which returns an
object with ``init``, ``is_locked``, ``acquire`` and ``release``.  They must
also provide ``is_set()``.  ``copy.copy`` must give them an independent lock.
"""

from __future__ import annotations

import copy
import enum
from typing import Any, Callable

from mapcore.bitlock import AtomicWord, BitSpinLock

_LOCK_BIT = 2


def _exact_log2(x: int, what: str) -> int:
    if x < 2 or x & (x - 1):
        raise ValueError(f"{what} must be a power of two of at least 2, got {x}")
    return x.bit_length() - 1


class NodeKind(enum.Enum):
    """What a node pointer refers to."""

    NONE = 0
    UPPER = 1
    LEAF = 2
    EXTERNAL = 3


class RadixGeometry:
    """The shape of a radix tree covering ``size`` indexes.

    Level 0 is the leaf level.  The root is a virtual node at level
    ``levels`` with a single child.
    """

    def __init__(self, size: int, upper_fanout: int = 512, leaf_fanout: int = 512) -> None:
        if size < 2:
            raise ValueError(f"size must be at least 2, got {size}")
        self.size = size
        self.upper_fanout = upper_fanout
        self.leaf_fanout = leaf_fanout
        self.upper_bits = _exact_log2(upper_fanout, "upper_fanout")
        self.leaf_bits = _exact_log2(leaf_fanout, "leaf_fanout")
        level = 0
        while self.level_span(level) < size:
            level += 1
        self.levels = level

    def key_shift(self, level: int) -> int:
        """Return how far a key is shifted to get its index on ``level``."""
        if level < 0:
            raise ValueError(f"level must be non-negative, got {level}")
        if level == 0:
            return 0
        return self.leaf_bits + (level - 1) * self.upper_bits

    def key_mask(self, level: int) -> int:
        """Return the mask that selects a slot index on ``level``."""
        return self.leaf_fanout - 1 if level == 0 else self.upper_fanout - 1

    def level_span(self, level: int) -> int:
        """Return the key space spanned by one slot on ``level``."""
        return 1 << self.key_shift(level)

    def level_fanout(self, level: int) -> int:
        """Return the number of used slots in a node created below ``level``."""
        if level == self.levels:
            return self.size >> self.key_shift(self.levels - 1)
        if level > 0:
            return self.upper_fanout
        return self.leaf_fanout

    def subkey(self, key: int, level: int) -> int:
        """Return the slot index for ``key`` in a node on ``level``."""
        return (key >> self.key_shift(level)) & self.key_mask(level)


class NodePtr:
    """A tagged pointer to nothing, a node, or an external value, with a lock bit."""

    __slots__ = ("kind", "target", "word")

    def __init__(
        self, kind: NodeKind = NodeKind.NONE, target: Any = None, locked: bool = False
    ) -> None:
        if kind is NodeKind.NONE:
            if target is not None:
                raise ValueError("a null node pointer cannot have a target")
        elif target is None:
            raise ValueError(f"a {kind.name} node pointer needs a target")
        elif kind is NodeKind.UPPER and not isinstance(target, UpperNode):
            raise ValueError("an UPPER node pointer must refer to an UpperNode")
        elif kind is NodeKind.LEAF and not isinstance(target, LeafNode):
            raise ValueError("a LEAF node pointer must refer to a LeafNode")
        self.kind = kind
        self.target = target
        self.word = AtomicWord(1 << _LOCK_BIT if locked else 0)

    def is_null(self) -> bool:
        return self.kind is NodeKind.NONE

    def is_external(self) -> bool:
        return self.kind is NodeKind.EXTERNAL

    def get_lock(self) -> BitSpinLock:
        """Return the lock stored in this pointer."""
        return BitSpinLock(self.word, _LOCK_BIT)

    def __repr__(self) -> str:
        locked = self.get_lock().is_locked()
        return f"NodePtr({self.kind.name}, {self.target!r}, locked={locked})"


class UpperNode:
    """A node on level 1 or above whose slots are node pointers."""

    __slots__ = ("children",)

    def __init__(self, fanout: int) -> None:
        if fanout < 1:
            raise ValueError(f"fanout must be positive, got {fanout}")
        self.children: list[NodePtr] = [NodePtr() for _ in range(fanout)]

    @staticmethod
    def create(src: NodePtr, geometry: RadixGeometry, level: int) -> UpperNode:
        """Create a node that replaces the null or external ``src`` below ``level``.

        An external is copied into every used slot.  A lock on ``src`` is
        passed on to every used slot.
        """
        if not (src.is_null() or src.is_external()):
            raise ValueError("only a null or external pointer can be expanded")
        if not 0 < level <= geometry.levels:
            raise ValueError(f"level must be in [1, {geometry.levels}], got {level}")
        node = UpperNode(geometry.upper_fanout)
        locked = src.get_lock().is_locked()
        fanout = geometry.level_fanout(level)
        if src.is_external():
            for i in range(fanout):
                node.children[i] = NodePtr(NodeKind.EXTERNAL, copy.copy(src.target), locked)
        elif locked:
            for i in range(fanout):
                node.children[i] = NodePtr(NodeKind.NONE, None, True)
        return node

    def __len__(self) -> int:
        return len(self.children)


class LeafNode:
    """A level-0 node that holds values directly."""

    __slots__ = ("children",)

    def __init__(self, children: list[Any]) -> None:
        self.children = list(children)

    @staticmethod
    def create(
        src: NodePtr, geometry: RadixGeometry, factory: Callable[[], Any]
    ) -> LeafNode:
        """Create a leaf that replaces the null or external ``src``.

        Null sources give default values from ``factory``.  External sources
        are copied into every slot.  A lock on ``src`` locks every value.
        """
        if not (src.is_null() or src.is_external()):
            raise ValueError("only a null or external pointer can be expanded")
        locked = src.get_lock().is_locked()
        if src.is_null():
            children = [factory() for _ in range(geometry.leaf_fanout)]
            if locked:
                for child in children:
                    child.get_lock().init(True)
        else:
            children = []
            for _ in range(geometry.leaf_fanout):
                child = copy.copy(src.target)
                if locked:
                    child.get_lock().init(True)
                children.append(child)
        return LeafNode(children)

    def __len__(self) -> int:
        return len(self.children)