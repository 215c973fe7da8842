"""Scheduler interface, the scheduler registry and thread creation.

Every hardware thread owns one scheduler; the schedulers are linked into a
ring with :meth:`Scheduler.set_next`. New threads are spread over the
registered schedulers in turn.
"""

from __future__ import annotations

import abc
import threading
from typing import Any, Callable, List, Optional

from . import this_thread
from .thread import (
    PRIO_EMPTY,
    Thread,
    ThreadAttr,
    ThreadLimit,
    current_thread,
    halt,
)

MAX_SCHEDULERS = 16


class Scheduler(abc.ABC):
    """Interface of a thread scheduler.

    A scheduler decides the order in which its threads run. Threads that
    wait for an event sit on that event's wait queue; once the event happens
    they are handed back to the scheduler in ``Thread.sched``.
    """

    @abc.abstractmethod
    def start(self) -> None:
        """Hand control to the scheduler; return when the system halts."""

    @abc.abstractmethod
    def started(self) -> bool:
        """Return whether the scheduler has been started."""

    @abc.abstractmethod
    def yield_(self) -> None:
        """Suspend the running thread and let the scheduler pick the next one."""

    @abc.abstractmethod
    def add_thread(self, thread: Thread) -> None:
        """Take ``thread`` into the scheduler."""

    @abc.abstractmethod
    def remove_thread(self, thread: Thread) -> None:
        """Take ``thread`` out of the scheduler and destroy it."""

    @abc.abstractmethod
    def thread_blocked(self, thread: Thread) -> None:
        """Mark ``thread`` as not runnable."""

    @abc.abstractmethod
    def thread_woken(self, thread: Thread) -> None:
        """Mark ``thread`` as runnable again."""

    @abc.abstractmethod
    def set_thread_prio(self, thread: Thread, prio: int) -> None:
        """Change the priority of ``thread``."""

    @abc.abstractmethod
    def set_thread_timeslice(self, thread: Thread, timeslice: float) -> None:
        """Change the time slice of ``thread``, in seconds."""

    @abc.abstractmethod
    def set_next(self, sched: "Scheduler") -> None:
        """Link the scheduler of the next hardware thread into the ring."""

    @abc.abstractmethod
    def workload(self) -> int:
        """Return the load of the scheduler, usually its number of ready threads."""


_lock = threading.Lock()
_registry: List[Scheduler] = []
_next_id = 0


def register(sched: Scheduler) -> int:
    """Register ``sched`` and return its id."""
    with _lock:
        if len(_registry) >= MAX_SCHEDULERS:
            raise RuntimeError(f"at most {MAX_SCHEDULERS} schedulers can be registered")
        _registry.append(sched)
        return len(_registry) - 1


def _unregister(sched: Scheduler) -> None:
    global _next_id
    with _lock:
        for index, entry in enumerate(_registry):
            if entry is sched:
                del _registry[index]
                _next_id = 0
                return


def _reset() -> None:
    global _next_id
    with _lock:
        _registry.clear()
        _next_id = 0


def _index_of(sched: Scheduler) -> Optional[int]:
    with _lock:
        return next((i for i, entry in enumerate(_registry) if entry is sched), None)


def _take_next_id() -> int:
    global _next_id
    with _lock:
        if not _registry:
            raise RuntimeError("no scheduler is registered")
        sched_id = _next_id % len(_registry)
        _next_id = (sched_id + 1) % len(_registry)
        return sched_id


def _scheduler_by_id(sched_id: int) -> Scheduler:
    with _lock:
        if not _registry:
            raise RuntimeError("no scheduler is registered")
        if not 0 <= sched_id < len(_registry):
            raise ValueError(f"no scheduler with id {sched_id}")
        return _registry[sched_id]


def _entry_point(function: Callable[[Any], Any]) -> Callable[[Any], None]:
    def run_thread(arg: Any) -> None:
        function(arg)
        me = current_thread()
        me.exit()
        me.sched.yield_()
        raise RuntimeError(f"thread {me.name!r} ran on after exiting")

    return run_thread


def create_thread_on_sched(
    name: str,
    sched_id: int,
    function: Callable[[Any], Any],
    arg: Any = None,
    attr: Optional[ThreadAttr] = None,
    limit: Optional[ThreadLimit] = None,
) -> Thread:
    """Create a thread running ``function(arg)`` and add it to scheduler ``sched_id``."""
    sched = _scheduler_by_id(sched_id)
    thread = Thread(name, _entry_point(function), arg, attr, limit)
    try:
        sched.add_thread(thread)
    except BaseException:
        thread.finish()
        raise
    return thread


def create_thread(
    name: str,
    function: Callable[[Any], Any],
    arg: Any = None,
    attr: Optional[ThreadAttr] = None,
    limit: Optional[ThreadLimit] = None,
) -> Thread:
    """Create a thread on the next scheduler in turn."""
    return create_thread_on_sched(name, _take_next_id(), function, arg, attr, limit)


def destroy_thread(thread: Thread) -> None:
    """Release an exited thread that has not been detached."""
    if not thread.is_exited:
        raise RuntimeError(f"thread {thread.name!r} has not exited")
    if not thread.is_finished:
        thread.finish()


def empty_thread_function(arg: Any) -> None:
    """Body of the idle thread each scheduler must hold before it starts."""
    while True:
        this_thread.yield_()


def run(sched: Scheduler, main: Callable[[Any], Any], arg: Any = None) -> Any:
    """Run ``main(arg)`` as the first thread of ``sched`` and return its result.

    An idle thread is added alongside it. The system halts when ``main``
    returns; an exception escaping any thread is raised here.
    """
    result: List[Any] = []

    def main_thread(value: Any) -> None:
        result.append(main(value))
        halt()

    sched_id = _index_of(sched)
    owned = sched_id is None
    if sched_id is None:
        sched_id = register(sched)
    try:
        create_thread_on_sched("main", sched_id, main_thread, arg)
        create_thread_on_sched(
            "idle", sched_id, empty_thread_function, None, ThreadAttr(prio=PRIO_EMPTY)
        )
        sched.start()
    finally:
        if owned:
            _unregister(sched)
    if not result:
        raise RuntimeError("the system halted before main returned")
    return result[0]