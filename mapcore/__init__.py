"""Building blocks of a shared-memory MapReduce runtime."""

__version__ = "0.1.0"

__all__ = [
    "allocator",
    "bench",
    "bitlock",
    "filecat",
    "log2",
    "mrtypes",
    "presplitter",
    "psrs",
    "radix_array",
    "radix_nodes",
    "rbkts",
    "reduce",
    "threadpool",
    "values",
    "wordgen",
]