"""A pool of worker threads, one per logical CPU, each pinned to a core."""

import os
import queue
import threading
from typing import Any, Callable

_local = threading.local()
_STOP = object()


def set_affinity(cpu: int) -> None:
    """Pin the calling thread to the given CPU where the platform allows it."""
    if hasattr(os, "sched_setaffinity"):
        os.sched_setaffinity(0, {cpu})


def current_lcpu() -> int:
    """Return the logical CPU of the calling thread (0 if unassigned)."""
    return getattr(_local, "lcpu", 0)


def _available_cpus() -> list[int]:
    if hasattr(os, "sched_getaffinity"):
        return sorted(os.sched_getaffinity(0))
    return list(range(os.cpu_count() or 1))


class _Slot:
    def __init__(self) -> None:
        self.tasks: queue.Queue = queue.Queue()
        self.idle = threading.Event()
        self.idle.set()
        self.result: Any = None
        self.error: BaseException | None = None
        self.thread: threading.Thread | None = None


class ThreadPool:
    """Persistent workers addressed by logical CPU number.

    Work for the main logical CPU runs directly in the calling thread.
    """

    def __init__(self, nlcpus: int, main_lcpu: int = 0) -> None:
        if nlcpus < 1:
            raise ValueError("nlcpus must be at least 1")
        self.nlcpus = nlcpus
        self.main_lcpu = main_lcpu
        cpus = _available_cpus()
        self._cpu_map = [cpus[i % len(cpus)] for i in range(max(nlcpus, main_lcpu + 1))]
        self._saved_affinity = (
            os.sched_getaffinity(0) if hasattr(os, "sched_getaffinity") else None
        )
        self._saved_lcpu = current_lcpu()
        _local.lcpu = main_lcpu
        set_affinity(self._cpu_map[main_lcpu])
        self._slots: dict[int, _Slot] = {}
        self._main_slot = _Slot()
        for lcpu in range(nlcpus):
            if lcpu == main_lcpu:
                continue
            slot = _Slot()
            slot.thread = threading.Thread(
                target=self._worker, args=(lcpu, slot), name=f"lcpu-{lcpu}", daemon=True
            )
            self._slots[lcpu] = slot
            slot.thread.start()
        self._active = True

    def _worker(self, lcpu: int, slot: _Slot) -> None:
        _local.lcpu = lcpu
        set_affinity(self._cpu_map[lcpu])
        while True:
            task = slot.tasks.get()
            if task is _STOP:
                slot.idle.set()
                return
            func, arg = task
            try:
                slot.result = func(arg)
            except BaseException as exc:  # handed back to join()
                slot.error = exc
            slot.idle.set()

    def is_main(self, lcpu: int) -> bool:
        return lcpu == self.main_lcpu

    def _slot(self, lcpu: int) -> _Slot:
        try:
            return self._slots[lcpu]
        except KeyError:
            raise ValueError(f"no worker for logical CPU {lcpu}") from None

    def run(self, lcpu: int, func: Callable[[Any], Any], arg: Any = None) -> None:
        """Start func(arg) on the given logical CPU.

        On the main CPU the call runs to completion before returning;
        otherwise it waits for the worker's previous task to finish first.
        """
        if not self._active:
            raise RuntimeError("thread pool is not running")
        if self.is_main(lcpu):
            slot = self._main_slot
            slot.error = None
            try:
                slot.result = func(arg)
            except BaseException as exc:
                slot.error = exc
            return
        slot = self._slot(lcpu)
        slot.idle.wait()
        slot.idle.clear()
        slot.result = None
        slot.error = None
        slot.tasks.put((func, arg))

    def join(self, lcpu: int) -> Any:
        """Wait for the task on lcpu and return its result, re-raising its error."""
        slot = self._main_slot if self.is_main(lcpu) else self._slot(lcpu)
        slot.idle.wait()
        if slot.error is not None:
            error, slot.error = slot.error, None
            raise error
        return slot.result

    def finalize(self) -> None:
        """Stop all workers and restore the calling thread's settings."""
        if not self._active:
            return
        for slot in self._slots.values():
            slot.idle.wait()
            slot.idle.clear()
            slot.tasks.put(_STOP)
        for slot in self._slots.values():
            if slot.thread is not None:
                slot.thread.join()
        self._slots.clear()
        self._active = False
        _local.lcpu = self._saved_lcpu
        if self._saved_affinity is not None:
            os.sched_setaffinity(0, self._saved_affinity)