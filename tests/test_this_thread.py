import errno
import time
from collections import deque

import pytest

from unikern import this_thread
from unikern.sched import Scheduler, create_thread, destroy_thread, run
from unikern.thread import (
    PRIO_EMPTY,
    Thread,
    current_thread,
    halt,
    thread_start,
    thread_switch,
)


class FifoScheduler(Scheduler):
    def __init__(self):
        self.ready = deque()
        self.waiting = []
        self.exited = []
        self.next = None
        self._started = False

    def start(self):
        self._started = True
        thread_start(self.ready.popleft())

    def started(self):
        return self._started

    def yield_(self):
        cur = current_thread()
        if cur.is_exited:
            self.exited.append(cur)
        elif cur.is_runnable and cur not in self.ready:
            self.ready.append(cur)
        for t in [t for t in self.exited if t is not cur]:
            self.exited.remove(t)
            t.finish()
        now = time.monotonic()
        for t in [t for t in self.waiting if t.wakeup_time <= now]:
            self.waiting.remove(t)
            t.set_runnable()
            self.ready.append(t)
        nxt = self.ready.popleft()
        if nxt.prio == PRIO_EMPTY and self.ready:
            self.ready.append(nxt)
            nxt = self.ready.popleft()
        if nxt is not cur:
            thread_switch(cur, nxt)
        elif cur.prio == PRIO_EMPTY:
            time.sleep(0.001)

    def add_thread(self, thread):
        thread.sched = self
        thread.set_runnable()
        self.ready.append(thread)

    def remove_thread(self, thread):
        if thread is current_thread():
            raise RuntimeError("a thread cannot remove itself")
        if thread in self.ready:
            self.ready.remove(thread)
        if thread in self.waiting:
            self.waiting.remove(thread)
        thread.exit()
        destroy_thread(thread)

    def thread_blocked(self, thread):
        if thread in self.ready:
            self.ready.remove(thread)
        if thread.waiting_for is None:
            self.waiting.append(thread)
        if thread is current_thread():
            self.yield_()

    def thread_woken(self, thread):
        if thread.waiting_for is not None:
            thread.waiting_for = None
        elif thread in self.waiting:
            self.waiting.remove(thread)
        thread.set_runnable()
        self.ready.append(thread)

    def set_thread_prio(self, thread, prio):
        raise OSError(errno.ENOTSUP, "priorities are not supported")

    def set_thread_timeslice(self, thread, timeslice):
        raise OSError(errno.ENOTSUP, "time slices are not supported")

    def set_next(self, sched):
        self.next = sched

    def workload(self):
        return len(self.ready)


def test_control_block_outside_kernel_thread_fails():
    with pytest.raises(RuntimeError):
        this_thread.control_block()


def test_control_block_is_the_running_thread():
    def main(_):
        block = this_thread.control_block()
        return block.name, block is current_thread(), block.is_runnable

    assert run(FifoScheduler(), main) == ("main", True, True)


def test_yield_alternates_threads():
    log = []

    def worker(tag):
        for i in range(3):
            log.append((tag, i))
            this_thread.yield_()

    def main(_):
        first = create_thread("a", worker, "a")
        second = create_thread("b", worker, "b")
        this_thread.control_block().block_for_thread(first)
        this_thread.control_block().block_for_thread(second)
        return list(log)

    result = run(FifoScheduler(), main)
    assert result == [("a", 0), ("b", 0), ("a", 1), ("b", 1), ("a", 2), ("b", 2)]


def test_sleep_for_waits_at_least_the_duration():
    def main(_):
        start = time.monotonic()
        this_thread.sleep_for(0.05)
        return time.monotonic() - start

    assert run(FifoScheduler(), main) >= 0.05


def test_sleeping_thread_lets_others_run():
    log = []

    def worker(_):
        log.append("worker")

    def main(_):
        thread = create_thread("w", worker)
        this_thread.sleep_for(0.02)
        log.append("main")
        return thread.is_exited

    assert run(FifoScheduler(), main) is True
    assert log == ["worker", "main"]


def test_exit_asks_scheduler_to_remove_thread():
    def main(_):
        with pytest.raises(RuntimeError, match="cannot remove itself"):
            this_thread.exit()
        return this_thread.control_block().is_exited

    assert run(FifoScheduler(), main) is False


def test_yield_without_scheduler_fails():
    seen = []
    blocks = []

    def lone(_):
        blocks.append(this_thread.control_block())
        try:
            this_thread.yield_()
        except RuntimeError as error:
            seen.append(str(error))
        halt()

    thread = Thread("lone", lone)
    thread_start(thread)
    assert len(blocks) == 1
    assert blocks[0] is thread
    assert blocks[0].name == "lone"
    assert len(seen) == 1
    assert "scheduler" in seen[0]