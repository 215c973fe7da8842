import errno
import time
from collections import deque

import pytest

from unikern import sched as sched_mod
from unikern import this_thread
from unikern.sched import (
    MAX_SCHEDULERS,
    Scheduler,
    create_thread,
    create_thread_on_sched,
    destroy_thread,
    register,
    run,
)
from unikern.thread import (
    PRIO_EMPTY,
    ThreadAttr,
    current_thread,
    register_init_hook,
    thread_start,
    thread_switch,
)


class FifoScheduler(Scheduler):
    def __init__(self, refuse=False):
        self.ready = deque()
        self.waiting = []
        self.exited = []
        self.next = None
        self._started = False
        self.refuse = refuse

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
        if self.refuse:
            raise MemoryError("no room for thread")
        thread.sched = self
        thread.set_runnable()
        self.ready.append(thread)

    def remove_thread(self, thread):
        if thread.waiting_for is None:
            if thread in self.ready:
                self.ready.remove(thread)
            if thread in self.waiting:
                self.waiting.remove(thread)
        if thread is current_thread():
            raise RuntimeError("a thread cannot remove itself")
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


@pytest.fixture(autouse=True)
def clean_registry():
    sched_mod._reset()
    yield
    sched_mod._reset()


def _noop(_):
    return None


def test_register_returns_consecutive_ids():
    assert register(FifoScheduler()) == 0
    assert register(FifoScheduler()) == 1


def test_register_refuses_more_than_the_limit():
    for _ in range(MAX_SCHEDULERS):
        register(FifoScheduler())
    with pytest.raises(RuntimeError):
        register(FifoScheduler())


def test_create_thread_without_scheduler_fails():
    with pytest.raises(RuntimeError):
        create_thread("lonely", _noop)


def test_create_thread_spreads_threads_in_turn():
    first, second = FifoScheduler(), FifoScheduler()
    register(first)
    register(second)
    threads = [create_thread(f"t{i}", _noop) for i in range(3)]
    assert [t.sched for t in threads] == [first, second, first]
    assert first.workload() == 2
    assert second.workload() == 1
    assert all(t.is_runnable for t in threads)


def test_create_thread_on_unknown_scheduler_fails():
    register(FifoScheduler())
    with pytest.raises(ValueError):
        create_thread_on_sched("t", 5, _noop)


def test_create_thread_copies_attributes():
    register(FifoScheduler())
    attr = ThreadAttr(prio=5)
    thread = create_thread("t", _noop, None, attr)
    attr.prio = 9
    assert thread.prio == 5
    assert thread.name == "t"


def test_refused_thread_is_finished():
    register(FifoScheduler(refuse=True))
    finished = []
    unregister = register_init_hook(lambda t: None, finished.append)
    try:
        with pytest.raises(MemoryError):
            create_thread("refused", _noop)
    finally:
        unregister()
    assert len(finished) == 1
    assert finished[0].is_finished
    assert finished[0].name == "refused"


def test_destroy_thread_requires_exit():
    register(FifoScheduler())
    thread = create_thread("t", _noop)
    with pytest.raises(RuntimeError):
        destroy_thread(thread)


def test_run_returns_result_and_unregisters():
    assert run(FifoScheduler(), lambda value: value * 2, 21) == 42
    with pytest.raises(RuntimeError):
        create_thread("after", _noop)


def test_run_raises_error_of_main():
    def main(_):
        raise ValueError("broken main")

    with pytest.raises(ValueError, match="broken main"):
        run(FifoScheduler(), main)


def test_run_starts_the_scheduler():
    sched = FifoScheduler()
    assert not sched.started()
    run(sched, _noop)
    assert sched.started()


def test_threads_run_in_turn_and_exit():
    counter = {"cnt": 0}
    set_times = [0] * 150
    exited = [False] * 6

    def worker(ident):
        while counter["cnt"] < ident * 30:
            set_times[counter["cnt"]] += 1
            counter["cnt"] += 1
            this_thread.yield_()
        exited[ident] = True

    def main(_):
        threads = []
        for i in range(5):
            threads.append(create_thread(f"thread #{i + 1}", worker, i + 1))
            this_thread.yield_()
        states = []
        for thread in threads:
            this_thread.control_block().block_for_thread(thread)
            destroy_thread(thread)
            states.append((thread.is_exited, thread.is_finished))
        return states

    states = run(FifoScheduler(), main)
    assert states == [(True, True)] * 5
    assert exited[1:] == [True] * 5
    assert set_times == [1] * 150


def test_remove_thread_destroys_a_waiting_thread():
    def worker(_):
        this_thread.sleep_for(10)

    def main(_):
        thread = create_thread("sleeper", worker)
        this_thread.yield_()
        thread.kill()
        return thread.is_exited, thread.is_finished

    assert run(FifoScheduler(), main) == (True, True)