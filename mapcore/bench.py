"""Small benchmarking helpers: a seeded generator, rounding and CPU queries."""

import os
import sys

PAGE_SIZE = 4096
CPU_FREQ_PATH = "/sys/devices/system/cpu/cpu0/cpufreq/cpuinfo_max_freq"

_MASK32 = 0xFFFFFFFF


class LinearCongruential:
    """The classic 32-bit linear congruential generator."""

    def __init__(self, seed: int = 0) -> None:
        self.seed = seed & _MASK32

    def next(self) -> int:
        """Advance the state and return a value in [0, 2**31)."""
        self.seed = (self.seed * 1103515245 + 12345) & _MASK32
        return self.seed & 0x7FFFFFFF

    def __iter__(self):
        return self

    def __next__(self) -> int:
        return self.next()


def round_down(a: int, n: int) -> int:
    """Round a down to the nearest multiple of n."""
    if n <= 0:
        raise ValueError("n must be positive")
    return a - a % n


def round_up(a: int, n: int) -> int:
    """Round a up to the nearest multiple of n."""
    return round_down(a + n - 1, n)


def get_core_count() -> int:
    """Return the number of online processors."""
    count = os.cpu_count()
    if count is None:
        raise OSError("get_core_count: cannot determine the number of processors")
    return count


def get_cpu_freq(path: str = CPU_FREQ_PATH) -> int:
    """Return the maximum CPU frequency in Hz, or 0 if it cannot be read."""
    try:
        with open(path, encoding="ascii") as fp:
            text = fp.read()
    except OSError as exc:
        print(f"failed to get cpu frequency: {exc}", file=sys.stderr)
        return 0
    try:
        khz = int(text.split()[0])
    except (IndexError, ValueError):
        print(f"Failed to read frequency from {path}", file=sys.stderr)
        return 0
    return khz * 1000


def core_ids(n: int) -> list[int]:
    """Return the ids of all cores, requiring room for at least that many."""
    count = get_core_count()
    if n < count:
        raise ValueError(f"room for {n} cores, but {count} are online")
    return list(range(count))