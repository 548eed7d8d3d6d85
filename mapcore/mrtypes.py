"""Data types shared by the map, reduce and merge phases."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Optional

# Suggested number of map tasks per core.
DEF_NSPLITS_PER_CORE = 16

KeyCmp = Callable[[Any, Any], int]


@dataclass
class Split:
    """One piece of input handed to a map task."""

    data: Any
    length: int = 0


@dataclass
class KeyVal:
    """A key with a single value."""

    key: Any
    val: Any
    hash: int = 0


@dataclass
class KeyVals:
    """A key with the list of values gathered for it so far."""

    key: Any = None
    vals: list = field(default_factory=list)
    hash: int = 0

    def __len__(self) -> int:
        return len(self.vals)


@dataclass
class KeyValsLen:
    """A key with its final list of values, as produced by grouping."""

    key: Any
    vals: list = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.vals)


class TaskType(enum.IntEnum):
    """The phases a worker can run."""

    MAP = 0
    REDUCE = 1
    MERGE = 2


class AppType(enum.IntEnum):
    """The kind of job an application runs."""

    MAPONLY = 0
    MAPGROUP = 1
    MAPREDUCE = 2


@dataclass
class MapReduceApp:
    """Map, then reduce the values of each key.

    ``reduce_func(key, vals)`` is called per key; a result other than None is
    emitted for that key.  ``combiner(key, vals)`` returns a shorter list of
    values.  ``vm(old, new, isnew)`` folds each value into a running value,
    and cannot be combined with ``reduce_func`` or ``combiner``.
    """

    results: list = field(default_factory=list)
    outcmp: Optional[Callable[[Any, Any], int]] = None
    reduce_tasks: int = 0
    reduce_func: Optional[Callable[[Any, list], Any]] = None
    combiner: Optional[Callable[[Any, list], list]] = None
    vm: Optional[Callable[[Any, Any, bool], Any]] = None

    atype: ClassVar[AppType] = AppType.MAPREDUCE

    def __post_init__(self) -> None:
        if self.vm is not None and (self.reduce_func is not None or self.combiner is not None):
            raise ValueError("a value modifier cannot be used with reduce_func or combiner")

    @property
    def tasks(self) -> int:
        """Number of reduce tasks; 0 means it is chosen by sampling."""
        return self.reduce_tasks

    @tasks.setter
    def tasks(self, value: int) -> None:
        self.reduce_tasks = value


@dataclass
class MapOnlyApp:
    """Map only; the output holds every mapped pair."""

    results: list = field(default_factory=list)
    outcmp: Optional[Callable[[Any, Any], int]] = None

    atype: ClassVar[AppType] = AppType.MAPONLY

    @property
    def tasks(self) -> int:
        return 0


@dataclass
class MapGroupApp:
    """Map, then group all values of each key."""

    results: list = field(default_factory=list)
    outcmp: Optional[Callable[[Any, Any], int]] = None
    group_tasks: int = 0

    atype: ClassVar[AppType] = AppType.MAPGROUP

    @property
    def tasks(self) -> int:
        """Number of group tasks; 0 means it is chosen by sampling."""
        return self.group_tasks

    @tasks.setter
    def tasks(self, value: int) -> None:
        self.group_tasks = value