# mapcore

mapcore provides the parts that a shared-memory MapReduce runtime is built
from. It is plain Python and has no third-party dependencies.

## What is in the package

- `mapcore.mrtypes` holds the record types. These are `Split`, `KeyVal`,
  `KeyVals` and `KeyValsLen`. It also defines the `TaskType` and `AppType`
  enums and the application descriptions `MapReduceApp`, `MapOnlyApp` and
  `MapGroupApp`.
- `mapcore.presplitter.Presplitter` handles input splitting. It calls a
  splitter function until that function returns `None`. Splits are then
  handed out one at a time through `next_split()`, which is safe to call
  from several threads, or by iterating. `prep_sample()` and
  `done_sample()` set a prefix of the splits aside for a sampling run.
- `mapcore.values` handles the values of a key:
  - `insert_value` adds a value and applies a combiner or value modifier.
  - `move_values` moves values from one key to another.
  - `clear_values` drops them.
- `mapcore.reduce` does the grouping and reducing:
  - `reduce_or_group_kvs` merges collections of `KeyVals` that are already
    sorted by key.
  - `reduce_or_group_kv` sorts `KeyVal` pairs and handles each key once.
- `mapcore.psrs` sorts by Parallel Sorting by Regular Sampling:
  - `psrs` returns one sorted list.
  - `psrs_partitions` returns the key-ordered partitions.
  - `sublist_bounds` splits a sorted list at a set of pivots.
- `mapcore.rbkts.ReduceBuckets` manages the output buckets. Each thread
  emits into its current bucket. `merge` sorts all buckets into the first
  one. `merge_reduce` partitions the mapped pairs, reduces or groups them,
  and leaves the ordered results in bucket 0. `results()` returns the
  contents of every bucket.
- `mapcore.threadpool.ThreadPool` runs one persistent worker per logical
  CPU and pins it to a core where the platform allows. Work for the main
  logical CPU runs inline. `join()` returns the task's result or raises
  its exception. `current_lcpu()` gives the logical CPU of the calling
  thread.
- The low-level structures are:
  - `mapcore.radix_array.RadixArray` is a fixed-size sparse array. It
    supports range fills, stores runs of equal values only once, and
    locks ranges (`acquire` returns a `RangeLock` context manager). Its
    tree parts live in `mapcore.radix_nodes`.
  - `mapcore.allocator.Allocator` is a size-class allocator over a
    simulated address space. It provides `malloc`, `free`, `calloc`,
    `realloc`, `allocated_size`, `read`, `write` and `show_state`. Invalid
    frees raise `AllocatorError`.
  - `mapcore.bitlock.BitSpinLock` is a spin lock kept in one bit of an
    `AtomicWord`. `DummyBitSpinLock` is always unlocked and may never be
    taken.
  - `mapcore.log2` provides `ceil_log2`, `floor_log2`,
    `round_up_to_pow2` and `round_down_to_pow2`.
  - `mapcore.bench` provides a 32-bit linear congruential generator,
    `round_up`/`round_down`, `get_core_count`, `get_cpu_freq` and
    `core_ids`.
- `mapcore.wordgen` and `mapcore.filecat` are input tools. They are also
  available as commands.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Examples

Power-of-two helpers:

```python
from mapcore.log2 import ceil_log2, floor_log2, round_up_to_pow2

ceil_log2(5)          # 3
floor_log2(5)         # 2
round_up_to_pow2(5)   # 8
```

Sorting with PSRS:

```python
from mapcore.psrs import psrs

def cmp(a, b):
    return (a > b) - (a < b)

psrs([[3, 1], [2]], 2, cmp)   # [1, 2, 3]
```

Grouping pairs by key:

```python
from mapcore.mrtypes import KeyVal, MapGroupApp
from mapcore.rbkts import ReduceBuckets

def cmp(a, b):
    return (a > b) - (a < b)

buckets = ReduceBuckets(1, MapGroupApp(), cmp)
buckets.merge_reduce([[KeyVal("b", 1), KeyVal("a", 2), KeyVal("b", 3)]], 1)
[(kv.key, kv.vals) for kv in buckets.results()]   # [("a", [2]), ("b", [1, 3])]
```

Allocating and reading back memory from the simulated allocator:

```python
from mapcore.allocator import Allocator

heap = Allocator(256 * 1024)
addr = heap.malloc(100)
heap.write(addr, b"hello")
heap.read(addr, 5)            # b"hello"
heap.allocated_size(addr)     # 128, the size class that holds 100 bytes
heap.free(addr)
```

Making word lists to use as test input:

```python
from mapcore.wordgen import random_words, all_words

text = " ".join(random_words(4096, 0, 1))   # about 4 KB of random words
words = list(all_words(2))                  # every two-letter lower-case word
```

## Command-line tools

`mapcore-gen` writes random upper-case words, each followed by a space, to
standard output. The first argument is the size in kilobytes. A non-zero
`fixedlen` gives every word that length; otherwise words are 1 to 12
letters long. A non-zero `nodup` instead prints each lower-case word of
length `fixedlen` exactly once, so it needs a `fixedlen` of at least 1.

```
mapcore-gen <size(KB)> [fixedlen] [nodup]
```

`mapcore-merge` concatenates the files under a directory into one output
file. It skips files that are unreadable or that have a NUL byte in their
first 128 bytes. The walk stops after `nfiles` files have been visited
(0 means no limit) or once the output exceeds `nsize` megabytes.

```
mapcore-merge <input dir> <output file> <nfiles> <nsize MB>
```

## What the package does not do

There is no scheduler that runs a whole job from start to finish. Nothing
samples the input to choose the number of reduce tasks, runs the map,
reduce and merge phases in order, or prints phase timings. The parts
above have to be combined by the caller. There is also no profiling with
hardware counters and no collection of kernel or lock statistics.