"""Integer base-2 logarithms and power-of-two rounding."""

_WORD_BITS = 64


def _check(x: int) -> int:
    if x < 1:
        raise ValueError(f"argument must be a positive integer, got {x}")
    if x >= 1 << _WORD_BITS:
        raise ValueError(f"argument does not fit in {_WORD_BITS} bits: {x}")
    return x.bit_length()


def ceil_log2(x: int) -> int:
    """Return ceil(log2(x))."""
    bits = _check(x)
    if x == 1 << (bits - 1):
        return bits - 1
    return bits


def floor_log2(x: int) -> int:
    """Return floor(log2(x))."""
    return _check(x) - 1


def round_up_to_pow2(x: int) -> int:
    """Round x up to the nearest power of two."""
    bits = _check(x)
    if x == 1 << (bits - 1):
        return x
    return 1 << bits


def round_down_to_pow2(x: int) -> int:
    """Round x down to the nearest power of two."""
    return 1 << (_check(x) - 1)