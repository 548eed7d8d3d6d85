"""Generate word lists to use as input for word-count style jobs."""

from __future__ import annotations

import itertools
import random
import re
import string
import sys
from typing import Iterator, Optional, Sequence

DEFAULT_SEED = 1
MAX_RANDOM_LEN = 12


def _atoi(text: str) -> int:
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def random_words(size_bytes: int, fixedlen: int = 0, seed: int = DEFAULT_SEED) -> Iterator[str]:
    """Yield random upper-case words until they, each with a separator, fill size_bytes.

    Words are fixedlen long, or 1 to 12 letters when fixedlen is 0.
    """
    if fixedlen < 0:
        raise ValueError(f"fixedlen must be non-negative, got {fixedlen}")
    rng = random.Random(seed)
    cur = 0
    while cur < size_bytes:
        length = fixedlen or rng.randrange(MAX_RANDOM_LEN) + 1
        yield "".join(rng.choice(string.ascii_uppercase) for _ in range(length))
        cur += length + 1


def all_words(length: int) -> Iterator[str]:
    """Yield every lower-case word of the given length, first letter fastest."""
    if length < 1:
        raise ValueError(f"length must be at least 1, got {length}")
    for combo in itertools.product(string.ascii_lowercase, repeat=length):
        yield "".join(reversed(combo))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Write words to standard output: <size(KB)> [fixedlen] [nodup]."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("usage: wordgen <size(KB)> [fixedlen] [nodup]")
        return 0
    size = _atoi(args[0]) * 1024
    fixedlen = _atoi(args[1]) if len(args) >= 2 else 0
    nodup = _atoi(args[2]) if len(args) >= 3 else 0
    words = all_words(fixedlen) if nodup else random_words(size, fixedlen)
    out = sys.stdout
    for word in words:
        out.write(word + " ")
    out.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())