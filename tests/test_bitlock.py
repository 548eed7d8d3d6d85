import threading

import pytest

from mapcore.bitlock import AtomicWord, BitSpinLock, CliManager, DummyBitSpinLock


def test_atomic_word_test_and_set():
    word = AtomicWord(0)
    assert word.test_and_set_bit(3) is False
    assert word.test_and_set_bit(3) is True
    assert word.load() == 1 << 3
    word.clear_bit(3)
    assert word.load() == 0


def test_init_sets_and_clears_only_its_bit():
    word = AtomicWord(0b1010)
    lock = BitSpinLock(word, 0)
    lock.init(True)
    assert lock.is_locked()
    assert word.load() == 0b1011
    lock.init(False)
    assert not lock.is_locked()
    assert word.load() == 0b1010


def test_try_acquire_and_release():
    lock = BitSpinLock(AtomicWord(), 5)
    assert lock.try_acquire() is True
    assert lock.is_locked()
    assert lock.try_acquire(CliManager.CALLER) is False
    lock.release()
    assert not lock.is_locked()
    lock.acquire()
    assert lock.is_locked()


def test_bits_are_independent():
    word = AtomicWord()
    a = BitSpinLock(word, 1)
    b = BitSpinLock(word, 2)
    a.acquire()
    assert b.try_acquire() is True
    a.release()
    assert b.is_locked() and not a.is_locked()


def test_copies_share_state():
    word = AtomicWord()
    a = BitSpinLock(word, 7)
    b = BitSpinLock(word, 7)
    a.acquire()
    assert b.is_locked()
    assert b.try_acquire() is False


def test_mutual_exclusion_under_contention():
    lock = BitSpinLock(AtomicWord(), 0)
    counter = {"n": 0}

    def work():
        for _ in range(500):
            lock.acquire()
            value = counter["n"]
            counter["n"] = value + 1
            lock.release()

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert counter["n"] == 2000
    assert not lock.is_locked()


@pytest.mark.parametrize("bit", [-1, 64])
def test_bit_out_of_range(bit):
    with pytest.raises(ValueError):
        BitSpinLock(AtomicWord(), bit)


def test_dummy_lock():
    dummy = DummyBitSpinLock()
    dummy.init(False)
    assert dummy.is_locked() is False
    with pytest.raises(ValueError):
        dummy.init(True)
    with pytest.raises(RuntimeError):
        dummy.acquire()
    with pytest.raises(RuntimeError):
        dummy.try_acquire()
    with pytest.raises(RuntimeError):
        dummy.release()