"""A scalable size-class allocator over a simulated address space.

Allocations are rounded up to size classes, where a class is
ceil(log2(bytes)).  Each thread keeps its own free lists, and memory freed
by a thread can only be reused by that thread.

Requests of more than half a page go to the *large* allocator.  It hands
out page runs and gives back the unused tail of a run, so a region is never
more than a page minus one byte larger than requested.  It records the
state of every page in a radix array.  On free, a run is merged with the
adjacent free runs that the same thread owns.

Smaller requests go to the *small* allocator.  It carves a page from the
large allocator into equal fragments and writes a header, holding a magic
number and the size class, at the start of the page.

Memory is obtained in chunks of at least ``min_map_bytes`` from a simulated
address space.  The space can be read and written with ``read`` and
``write``.
"""

from __future__ import annotations

import bisect
import dataclasses
import struct
import threading

from mapcore.bitlock import DummyBitSpinLock
from mapcore.log2 import ceil_log2, floor_log2
from mapcore.radix_array import RadixArray

PGSIZE = 4096
LARGE_THRESHOLD = 2049
MAX_LARGE_CLASS = 48
SMALL_CLASSES = 13
MIN_FRAGMENT = 16
FRAGMENT_OFFSET = 16
PAGE_HDR_MAGIC = 0x2065C977E3516564
DEFAULT_MIN_MAP_BYTES = 256 * 1024

UNMAPPED = 0
ALLOCATED_HEAD = 1
ALLOCATED_REST = -1

_ADDRESS_LIMIT = 1 << 47
_MAP_BASE = 0x10000000
_HEADER = struct.Struct("<QQ")


def size_to_class(nbytes: int) -> int:
    """Return the size class of a byte count."""
    return ceil_log2(nbytes)


def class_max_size(size_class: int) -> int:
    """Return the most bytes an object of the given size class can hold."""
    if size_class < 0:
        raise ValueError(f"size class must be non-negative, got {size_class}")
    return 1 << size_class


def size_fit_class(nbytes: int) -> int:
    """Return the largest size class that fits in nbytes."""
    return floor_log2(nbytes)


class AllocatorError(RuntimeError):
    """An invalid free, a corrupted page, or an access to unmapped memory."""


class BlockList:
    """A LIFO list of free block addresses that supports removal by address."""

    def __init__(self) -> None:
        self._blocks: dict[int, None] = {}

    def __bool__(self) -> bool:
        return bool(self._blocks)

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, addr: object) -> bool:
        return addr in self._blocks

    def __iter__(self):
        return reversed(list(self._blocks))

    def push(self, addr: int) -> None:
        """Put addr at the head of the list."""
        if addr in self._blocks:
            raise ValueError(f"block {addr:#x} is already on the list")
        self._blocks[addr] = None

    def pop(self) -> int:
        """Remove and return the block at the head of the list."""
        if not self._blocks:
            raise IndexError("pop from an empty block list")
        addr, _ = self._blocks.popitem()
        return addr

    def remove(self, addr: int) -> None:
        """Remove addr from wherever it is in the list."""
        try:
            del self._blocks[addr]
        except KeyError:
            raise ValueError(f"block {addr:#x} is not on the list") from None


@dataclasses.dataclass
class _PageInfo:
    # UNMAPPED, a thread id (head of a free run), its negation (rest of the
    # run), ALLOCATED_HEAD or ALLOCATED_REST.
    owner: int = UNMAPPED

    def get_lock(self) -> DummyBitSpinLock:
        return DummyBitSpinLock()

    def is_set(self) -> bool:
        return self.owner != UNMAPPED


def _normalize_unit(nbytes: int) -> int:
    return class_max_size(size_to_class(max(nbytes, PGSIZE)))


class Allocator:
    """malloc, free, calloc and realloc over a simulated address space."""

    def __init__(self, min_map_bytes: int = DEFAULT_MIN_MAP_BYTES) -> None:
        self.min_map_bytes = _normalize_unit(min_map_bytes)
        self._pages = RadixArray(_ADDRESS_LIMIT // PGSIZE + 1, _PageInfo)
        self._local = threading.local()
        self._map_lock = threading.Lock()
        self._next_map = _MAP_BASE
        self._map_starts: list[int] = []
        self._map_ends: list[int] = []
        self._memory: dict[int, bytearray] = {}

    # -- simulated address space -------------------------------------------

    def _mmap(self, nbytes: int) -> int | None:
        with self._map_lock:
            base = self._next_map
            if base + nbytes > _ADDRESS_LIMIT:
                return None
            self._next_map = base + nbytes
            self._map_starts.append(base)
            self._map_ends.append(base + nbytes)
        return base

    def _is_mapped(self, addr: int) -> bool:
        i = bisect.bisect_right(self._map_starts, addr) - 1
        return i >= 0 and addr < self._map_ends[i]

    def _check_range(self, addr: int, length: int) -> None:
        if length < 0:
            raise ValueError("length must be non-negative")
        i = bisect.bisect_right(self._map_starts, addr) - 1
        if length == 0:
            return
        if i < 0 or addr + length > self._map_ends[i]:
            # Adjacent mappings may together cover the range.
            pos = addr
            while pos < addr + length:
                j = bisect.bisect_right(self._map_starts, pos) - 1
                if j < 0 or pos >= self._map_ends[j]:
                    raise AllocatorError(f"access to unmapped memory at {pos:#x}")
                pos = self._map_ends[j]

    def read(self, addr: int, length: int) -> bytes:
        """Return length bytes starting at addr."""
        self._check_range(addr, length)
        out = bytearray()
        pos, end = addr, addr + length
        while pos < end:
            page, offset = divmod(pos, PGSIZE)
            chunk = min(PGSIZE - offset, end - pos)
            data = self._memory.get(page)
            out += data[offset:offset + chunk] if data is not None else bytes(chunk)
            pos += chunk
        return bytes(out)

    def write(self, addr: int, data: bytes) -> None:
        """Store data starting at addr."""
        self._check_range(addr, len(data))
        view = memoryview(bytes(data))
        pos, done = addr, 0
        while done < len(view):
            page, offset = divmod(pos, PGSIZE)
            chunk = min(PGSIZE - offset, len(view) - done)
            buf = self._memory.setdefault(page, bytearray(PGSIZE))
            buf[offset:offset + chunk] = view[done:done + chunk]
            pos += chunk
            done += chunk

    # -- per-thread state ----------------------------------------------------

    def _free_runs(self) -> list[BlockList]:
        runs = getattr(self._local, "runs", None)
        if runs is None:
            runs = self._local.runs = [BlockList() for _ in range(MAX_LARGE_CLASS)]
        return runs

    def _free_fragments(self) -> list[BlockList]:
        frags = getattr(self._local, "fragments", None)
        if frags is None:
            frags = self._local.fragments = [BlockList() for _ in range(SMALL_CLASSES)]
        return frags

    @staticmethod
    def _tid() -> int:
        return threading.get_native_id()

    # -- large allocator -----------------------------------------------------

    def _add_free_run(self, run: int, nbytes: int) -> None:
        if nbytes < PGSIZE or nbytes % PGSIZE:
            raise AllocatorError(f"bad free run size {nbytes}")
        tid = self._tid()
        runs = self._free_runs()
        end = run + nbytes
        it = self._pages.find(run // PGSIZE)
        while run < end:
            fsc = size_fit_class(end - run)
            fbytes = class_max_size(fsc)
            runs[fsc].push(run)
            nextit = it + fbytes // PGSIZE
            self._pages.set(it, _PageInfo(tid))
            it += 1
            if it != nextit:
                self._pages.fill(it, nextit, _PageInfo(-tid))
                it = nextit
            run += fbytes

    def _alloc_from_run(self, run: int, size_class: int, nbytes: int) -> int:
        used_pages = (nbytes + PGSIZE - 1) // PGSIZE
        have_pages = class_max_size(size_class) // PGSIZE
        if have_pages > used_pages:
            self._add_free_run(run + used_pages * PGSIZE, (have_pages - used_pages) * PGSIZE)
        start = self._pages.find(run // PGSIZE)
        self._pages.set(start, _PageInfo(ALLOCATED_HEAD))
        if used_pages > 1:
            self._pages.fill(start + 1, start + used_pages, _PageInfo(ALLOCATED_REST))
        return run

    def _alloc_large(self, nbytes: int) -> int | None:
        sc = size_to_class(nbytes)
        runs = self._free_runs()
        for i in range(sc, MAX_LARGE_CLASS):
            if runs[i]:
                return self._alloc_from_run(runs[i].pop(), i, nbytes)
        map_bytes = class_max_size(sc)
        map_sc = sc
        if map_bytes < self.min_map_bytes:
            map_bytes = self.min_map_bytes
            map_sc = size_to_class(map_bytes)
        run = self._mmap(map_bytes)
        if run is None:
            return None
        return self._alloc_from_run(run, map_sc, nbytes)

    def _remove_free_run(self, addr: int) -> None:
        for runs in self._free_runs():
            if addr in runs:
                runs.remove(addr)
                return
        raise AllocatorError(f"free run {addr:#x} is not on any free list")

    def _free_large(self, addr: int) -> None:
        tid = self._tid()
        start = self._pages.find(addr // PGSIZE)
        if not start.is_set():
            raise AllocatorError("Free of non-mapped memory")
        owner = start.value().owner
        if owner != ALLOCATED_HEAD:
            if owner == ALLOCATED_REST:
                raise AllocatorError("Free in the middle of a block")
            raise AllocatorError("Double free")
        end = start + 1
        while end.is_set() and end.value().owner == ALLOCATED_REST:
            end += 1

        pre = start - 1
        while pre.is_set():
            owner = pre.value().owner
            if owner == tid:
                self._remove_free_run(pre.index() * PGSIZE)
            elif owner != -tid:
                break
            pre -= 1
        pre += 1

        post = end + 0
        while post.is_set():
            owner = post.value().owner
            if owner == tid:
                self._remove_free_run(post.index() * PGSIZE)
            elif owner != -tid:
                break
            post += 1

        self._add_free_run(pre.index() * PGSIZE, (post - pre) * PGSIZE)

    def _size_large(self, addr: int) -> int:
        start = self._pages.find(addr // PGSIZE)
        end = start + 1
        while end.is_set() and end.value().owner == ALLOCATED_REST:
            end += 1
        return (end - start) * PGSIZE

    # -- small allocator -----------------------------------------------------

    def _alloc_small(self, nbytes: int) -> int | None:
        nbytes = max(nbytes, MIN_FRAGMENT)
        sc = size_to_class(nbytes)
        frags = self._free_fragments()
        if not frags[sc]:
            page = self._alloc_large(PGSIZE)
            if page is None:
                return None
            self.write(page, _HEADER.pack(PAGE_HDR_MAGIC, sc))
            sbytes = class_max_size(sc)
            for fragment in range(page + FRAGMENT_OFFSET, page + PGSIZE - sbytes + 1, sbytes):
                frags[sc].push(fragment)
        return frags[sc].pop()

    def _small_class(self, addr: int) -> int:
        page = addr & ~(PGSIZE - 1)
        if not self._is_mapped(page):
            raise AllocatorError("Free of non-mapped memory")
        magic, sc = _HEADER.unpack(self.read(page, _HEADER.size))
        if magic != PAGE_HDR_MAGIC or sc >= SMALL_CLASSES:
            raise AllocatorError("Bad free or corrupted page magic")
        return sc

    # -- public interface ----------------------------------------------------

    def malloc(self, size: int) -> int | None:
        """Allocate size bytes; return the address, or None if out of space."""
        if size < 0:
            raise ValueError("size must be non-negative")
        if size < LARGE_THRESHOLD:
            return self._alloc_small(size)
        return self._alloc_large(size)

    def free(self, addr: int | None) -> None:
        """Free an allocation; None and 0 are ignored."""
        if not addr:
            return
        if addr % PGSIZE == 0:
            self._free_large(addr)
        else:
            sc = self._small_class(addr)
            self._free_fragments()[sc].push(addr)

    def calloc(self, count: int, size: int) -> int | None:
        """Allocate count * size zeroed bytes."""
        if count < 0 or size < 0:
            raise ValueError("count and size must be non-negative")
        n = count * size
        addr = self.malloc(n)
        if addr is not None and n:
            self.write(addr, bytes(n))
        return addr

    def allocated_size(self, addr: int) -> int:
        """Return how many bytes the allocation at addr can hold."""
        if addr % PGSIZE == 0:
            return self._size_large(addr)
        return class_max_size(self._small_class(addr))

    def realloc(self, addr: int | None, nbytes: int) -> int | None:
        """Resize an allocation, moving it if it does not fit."""
        if not addr:
            return self.malloc(nbytes)
        cur_size = self.allocated_size(addr)
        if nbytes <= cur_size:
            return addr
        new = self.malloc(nbytes)
        if new is None:
            return None
        self.write(new, self.read(addr, cur_size))
        self.free(addr)
        return new

    def set_alloc_unit(self, nbytes: int) -> None:
        """Set the least amount of memory requested from the address space."""
        self.min_map_bytes = _normalize_unit(nbytes)

    def show_state(self) -> list[tuple[int, int, int]]:
        """Print and return (first byte, last byte, owner) for each page range."""
        pages = self._pages
        size = len(pages)
        regions: list[tuple[int, int, int]] = []
        it = pages.begin()
        while it.index() < size:
            if not it.is_set():
                it += it.span()
                continue
            owner = it.value().owner
            it2 = it + 0
            while it2.index() < size and it2.is_set() and it2.value().owner == owner:
                it2 += it2.span()
            regions.append((it.index() * PGSIZE, it2.index() * PGSIZE - 1, owner))
            it = it2
        for first, last, owner in regions:
            print(f"{first:#x}-{last:#x} {owner}")
        return regions