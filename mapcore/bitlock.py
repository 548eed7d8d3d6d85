"""A spinlock stored as a single bit of a shared word."""

import enum
import threading
import time

_WORD_BITS = 64


class CliManager(enum.Enum):
    """Who manages the interrupt mask around a lock operation."""

    INTERNAL = "internal"
    CALLER = "caller"


class AtomicWord:
    """A machine word whose bit operations are atomic."""

    def __init__(self, value: int = 0) -> None:
        self._value = value
        self._mutex = threading.Lock()

    def load(self) -> int:
        return self._value

    def store(self, value: int) -> None:
        self._value = value

    def test_and_set_bit(self, bit: int) -> bool:
        """Set the bit and return whether it was already set."""
        mask = 1 << bit
        with self._mutex:
            old = self._value & mask
            self._value |= mask
        return bool(old)

    def clear_bit(self, bit: int) -> None:
        mask = 1 << bit
        with self._mutex:
            self._value &= ~mask


class BitSpinLock:
    """A spinlock that uses one bit of an AtomicWord.

    Copies share the underlying word, so they refer to the same lock.
    """

    def __init__(self, word: AtomicWord, bit: int) -> None:
        if not 0 <= bit < _WORD_BITS:
            raise ValueError(f"bit must be in [0, {_WORD_BITS}), got {bit}")
        self.word = word
        self.bit = bit

    def init(self, locked: bool = False) -> None:
        """Set the lock state without interlocking; not for concurrent use."""
        mask = 1 << self.bit
        value = self.word.load()
        self.word.store(value | mask if locked else value & ~mask)

    def is_locked(self) -> bool:
        return bool(self.word.load() & (1 << self.bit))

    def acquire(self, cli: CliManager = CliManager.INTERNAL) -> None:
        while self.word.test_and_set_bit(self.bit):
            time.sleep(0)

    def try_acquire(self, cli: CliManager = CliManager.INTERNAL) -> bool:
        return not self.word.test_and_set_bit(self.bit)

    def release(self, cli: CliManager = CliManager.INTERNAL) -> None:
        self.word.clear_bit(self.bit)


def _require_unlocked(locked: object) -> bool:
    """Return False for an unlocked request; a locked one is an error."""
    state = bool(locked)
    if state:
        raise ValueError("a dummy lock cannot be initialised locked")
    return state


def _refuse(operation: str, cli: object) -> bool:
    """Reject a locking operation on a dummy lock."""
    if not isinstance(cli, CliManager):
        raise TypeError(f"cli must be a CliManager, got {type(cli).__name__}")
    raise RuntimeError(f"a dummy lock cannot {operation} ({cli.value} cli)")


class DummyBitSpinLock:
    """A lock that is always unlocked and may never be taken."""

    def init(self, locked: bool = False) -> None:
        _require_unlocked(locked)

    def is_locked(self) -> bool:
        return False

    def acquire(self, cli: CliManager = CliManager.INTERNAL) -> None:
        _refuse("be acquired", cli)

    def try_acquire(self, cli: CliManager = CliManager.INTERNAL) -> bool:
        return _refuse("be acquired", cli)

    def release(self, cli: CliManager = CliManager.INTERNAL) -> None:
        _refuse("be released", cli)