"""Split the whole input up front, then hand splits to workers one at a time."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterator, Optional

from mapcore.mrtypes import Split

Splitter = Callable[[Any, int], Optional[Split]]


class Presplitter:
    """Holds every split of the input; next_split() is safe across threads.

    ``split(arg, ncores)`` is called until it returns None.
    """

    def __init__(self, split: Splitter, arg: Any, ncores: int) -> None:
        splits: list[Split] = []
        while True:
            piece = split(arg, ncores)
            if piece is None:
                break
            splits.append(piece)
        if not splits:
            raise ValueError("the splitter produced no splits")
        self._splits = splits
        self._count = len(splits)
        self._splits_bak = splits
        self._count_bak = self._count
        self._idx = 0
        self._mutex = threading.Lock()

    def next_split(self) -> Optional[Split]:
        """Claim the next split, or return None when none are left."""
        with self._mutex:
            i = self._idx
            self._idx += 1
            if i >= self._count:
                return None
            return self._splits[i]

    def __iter__(self) -> Iterator[Split]:
        """Claim splits until none are left."""
        while True:
            piece = self.next_split()
            if piece is None:
                return
            yield piece

    def nsplits(self) -> int:
        """Return the number of splits currently on offer."""
        return self._count

    def reset(self) -> None:
        """Offer every saved split again from the start."""
        with self._mutex:
            self._idx = 0
            self._count = self._count_bak
            self._splits = self._splits_bak

    def prep_sample(self, ntasks: int) -> None:
        """Offer only the first ntasks splits, for a sampling run."""
        if not 0 <= ntasks <= self._count:
            raise ValueError(f"cannot sample {ntasks} of {self._count} splits")
        with self._mutex:
            self._splits_bak = list(self._splits)
            self._count_bak = self._count
            self._count = ntasks

    def done_sample(self) -> None:
        """End sampling; the splits not sampled remain on offer."""
        with self._mutex:
            self._idx = self._count
            self._count = self._count_bak