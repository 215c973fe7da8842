"""A preemptive round-robin scheduler.

Threads are in one of three states:

* ready: queued in the scheduler's ready queue;
* waiting: either until a point in time (queued in the scheduler's waiting
  queue) or for an event (queued on that event's wait queue);
* running: in no queue at all.

Each thread runs for at most its time slice before the scheduler hands the
processor to the next ready thread. The timer is modelled with a trace hook
installed on the kernel threads' host threads: once the running thread's
slice has expired, the next line it executes outside the kernel yields.
"""

from __future__ import annotations

import errno
import os
import threading
import time
from collections import OrderedDict
from types import FrameType
from typing import Any, Callable, List, Optional

from .sched import Scheduler, destroy_thread
from .thread import PRIO_EMPTY, Thread, current_thread, thread_start, thread_switch

_MAX_WAKE_REQUESTS = 16
_IDLE_SLEEP = 10.0
_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
# Code that must never be interrupted: interrupts are masked while the kernel
# itself runs, and host-level locks must not be held across a switch.
_UNINTERRUPTIBLE_FILES = frozenset({os.path.abspath(threading.__file__)})

_Tracer = Callable[[FrameType, str, Any], Any]


def _running_thread() -> Optional[Thread]:
    try:
        return current_thread()
    except RuntimeError:
        return None


def _interruptible(frame: FrameType) -> bool:
    filename = os.path.abspath(frame.f_code.co_filename)
    if filename.startswith(_PACKAGE_DIR + os.sep):
        return False
    return filename not in _UNINTERRUPTIBLE_FILES


class Schedpreem(Scheduler):
    """Preemptive round-robin scheduler: a thread runs until it yields, blocks
    or uses up its time slice."""

    def __init__(self, lcpuid: int = 0) -> None:
        self.lcpuid = lcpuid
        self._threads_started = False
        self._ready: "OrderedDict[Thread, None]" = OrderedDict()
        self._waiting: "OrderedDict[Thread, None]" = OrderedDict()
        self._exited: "OrderedDict[Thread, None]" = OrderedDict()
        self._to_add: List[Thread] = []
        self._wake_requests: List[Thread] = []
        self._nothing_to_do = False
        self._next: Optional[Scheduler] = None
        self._cond = threading.Condition(threading.RLock())
        self._slice_end = float("inf")

    def __repr__(self) -> str:
        return (
            f"Schedpreem(lcpuid={self.lcpuid}, ready={len(self._ready)}, "
            f"waiting={len(self._waiting)}, started={self._threads_started})"
        )

    # -- timer -----------------------------------------------------------

    def _arm_timer(self, thread: Thread) -> None:
        self._slice_end = time.monotonic() + thread.attr.timeslice

    def _trace(self, frame: FrameType, event: str, arg: Any) -> Optional[_Tracer]:
        if event != "call" or not _interruptible(frame):
            return None
        current = _running_thread()
        if current is None or current.sched is not self:
            return None
        return self._tick

    def _tick(self, frame: FrameType, event: str, arg: Any) -> _Tracer:
        if event == "line":
            self._timer_interrupt()
        return self._tick

    def _timer_interrupt(self) -> None:
        if not self._threads_started or time.monotonic() < self._slice_end:
            return
        current = _running_thread()
        if current is None or current.sched is not self:
            return
        if current.is_exited or not current.is_runnable:
            return
        self._schedule()

    # -- scheduling ------------------------------------------------------

    def _is_local(self) -> bool:
        """Whether the caller runs on a thread owned by this scheduler."""
        current = _running_thread()
        return current is not None and current.sched is self

    def _is_queued(self, thread: Thread) -> bool:
        return thread in self._ready or thread in self._waiting or thread in self._exited

    def _push_ready(self, thread: Thread) -> None:
        self._ready[thread] = None

    def _pop_ready(self) -> Thread:
        if not self._ready:
            raise RuntimeError("no thread is ready to run")
        thread, _ = self._ready.popitem(last=False)
        return thread

    def _schedule(self) -> None:
        current = current_thread()
        if current.is_exited:
            self._exited[current] = None
        elif current.is_runnable and not self._is_queued(current):
            # The running thread yielded or its time slice ran out.
            self._push_ready(current)

        for thread in list(self._exited):
            if thread is current:
                continue
            del self._exited[thread]
            thread.finish()
            # Detached threads are cleaned up here, others by their creator.
            if thread.attr.detached:
                destroy_thread(thread)

        with self._cond:
            to_add, self._to_add = self._to_add, []
            requests, self._wake_requests = self._wake_requests, []
            self._cond.notify_all()
        for thread in to_add:
            self._push_ready(thread)
        for thread in requests:
            if thread.waiting_for is not None:
                thread.waiting_for = None
                thread.set_runnable()
                self._push_ready(thread)
            else:
                thread.wakeup_time = 0.0

        now = time.monotonic()
        sleep_until = now + _IDLE_SLEEP
        for thread in list(self._waiting):
            if thread.wakeup_time <= now:
                del self._waiting[thread]
                if thread.is_exited:
                    self._exited[thread] = None
                else:
                    thread.set_runnable()
                    self._push_ready(thread)
            elif thread.wakeup_time < sleep_until:
                sleep_until = thread.wakeup_time

        ready_count = len(self._ready)
        front = self._pop_ready()
        # The idle thread runs only when nothing else is ready.
        if ready_count != 1 and front.attr.prio == PRIO_EMPTY:
            self._push_ready(front)
            front = self._pop_ready()

        self._arm_timer(front)
        if front is not current:
            thread_switch(current, front)
        elif current.attr.prio == PRIO_EMPTY:
            with self._cond:
                if not self._to_add and not self._wake_requests:
                    self._nothing_to_do = True
                    try:
                        self._cond.wait(timeout=max(0.0, sleep_until - time.monotonic()))
                    finally:
                        self._nothing_to_do = False

    def _remove_ready(self, thread: Thread) -> None:
        self._ready.pop(thread, None)

    def _remove_waiting(self, thread: Thread) -> None:
        self._waiting.pop(thread, None)

    def _add_thread_sync(self, thread: Thread) -> None:
        thread.sched = self
        thread.set_runnable()
        self._push_ready(thread)

    def _thread_woken_sync(self, thread: Thread) -> None:
        if thread.waiting_for is not None:
            thread.waiting_for = None
        else:
            self._remove_waiting(thread)
        thread.set_runnable()
        self._push_ready(thread)

    # -- scheduler interface ---------------------------------------------

    def start(self) -> None:
        """Run the first ready thread with the timer armed; return when the system halts."""
        self._threads_started = True
        first = self._pop_ready()
        self._arm_timer(first)
        previous = threading.gettrace()
        threading.settrace(self._trace)
        try:
            thread_start(first)
        finally:
            threading.settrace(previous)  # type: ignore[arg-type]

    def started(self) -> bool:
        return self._threads_started

    def yield_(self) -> None:
        self._schedule()

    def add_thread(self, thread: Thread) -> None:
        if not self._threads_started or self._is_local():
            self._add_thread_sync(thread)
            return
        thread.sched = self
        thread.set_runnable()
        with self._cond:
            self._to_add.append(thread)
            self._cond.notify_all()

    def remove_thread(self, thread: Thread) -> None:
        if thread is _running_thread():
            raise RuntimeError(
                f"A thread cannot remove itself. name={thread.name} id={thread.id}"
            )
        if thread.waiting_for is None:
            if thread.is_runnable:
                self._remove_ready(thread)
            else:
                self._remove_waiting(thread)
        self._exited.pop(thread, None)
        thread.exit()
        destroy_thread(thread)

    def thread_blocked(self, thread: Thread) -> None:
        self._remove_ready(thread)
        if thread.waiting_for is None:
            self._waiting[thread] = None
        if thread is _running_thread():
            self._schedule()

    def thread_woken(self, thread: Thread) -> None:
        """Make ``thread`` ready again; meant to be called through ``Thread.wake``."""
        if self._is_local() or not self._threads_started:
            self._thread_woken_sync(thread)
            return
        with self._cond:
            while len(self._wake_requests) >= _MAX_WAKE_REQUESTS:
                self._cond.wait()
            self._wake_requests.append(thread)
            self._cond.notify_all()

    def set_thread_prio(self, thread: Thread, prio: int) -> None:
        raise OSError(errno.ENOTSUP, "this scheduler does not support thread priorities")

    def set_thread_timeslice(self, thread: Thread, timeslice: float) -> None:
        raise OSError(errno.ENOTSUP, "this scheduler does not support changing time slices")

    def set_next(self, sched: Scheduler) -> None:
        if self._next is not None:
            raise RuntimeError("the next scheduler is already set")
        self._next = sched

    def workload(self) -> int:
        return len(self._ready)