"""Kernel threads: attributes, limits, control blocks and context switching.

Each kernel thread runs on its own host thread, but only one of the kernel
threads handed to a scheduler runs at a time: switching from one to another
resumes the target and parks the caller.
"""

from __future__ import annotations

import copy
import enum
import itertools
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from .wait import WaitQueue

WAITABLE = False
DETACHED = True

PRIO_INVALID = -1
PRIO_HIGHEST = 0
PRIO_LOWEST = 255
PRIO_DEFAULT = 127
# Priority of the idle thread: it runs only when nothing else is ready and
# never terminates, yielding in an endless loop.
PRIO_EMPTY = 2**31 - 1

# Timer granularity in seconds; no time slice may be shorter.
TICK = 0.001
DEFAULT_TIMESLICE = 0.5
# Zero means the platform's default stack size.
DEFAULT_STACK_SIZE = 0

InitHook = Callable[["Thread"], None]
FinishHook = Callable[["Thread"], None]


class ThreadAttr:
    """Attributes a thread is created with.

    The constructor stores its arguments as given; assigning ``prio``,
    ``timeslice`` or ``deadline`` afterwards validates the value and raises
    ValueError if it is out of range.
    """

    def __init__(
        self,
        detached: bool = WAITABLE,
        pinned: bool = False,
        prio: int = PRIO_DEFAULT,
        timeslice: float = DEFAULT_TIMESLICE,
        deadline: float = math.inf,
        stack_size: int = DEFAULT_STACK_SIZE,
        tls_size: int = 0,
    ) -> None:
        self.detached = detached
        self.pinned = pinned
        self._prio = prio
        self._timeslice = timeslice
        self._deadline = deadline
        self.stack_size = stack_size
        self.tls_size = tls_size

    @property
    def prio(self) -> int:
        return self._prio

    @prio.setter
    def prio(self, prio: int) -> None:
        if not PRIO_HIGHEST <= prio <= PRIO_LOWEST:
            raise ValueError(f"priority out of range: {prio}")
        self._prio = prio

    @property
    def timeslice(self) -> float:
        """Time slice in seconds."""
        return self._timeslice

    @timeslice.setter
    def timeslice(self, timeslice: float) -> None:
        if timeslice < TICK:
            raise ValueError(f"time slice shorter than one tick: {timeslice}")
        self._timeslice = timeslice

    @property
    def deadline(self) -> float:
        """Deadline on the monotonic clock, in seconds."""
        return self._deadline

    @deadline.setter
    def deadline(self, deadline: float) -> None:
        if deadline <= time.monotonic():
            raise ValueError("deadline is not in the future")
        self._deadline = deadline

    def __repr__(self) -> str:
        return (
            f"ThreadAttr(detached={self.detached}, pinned={self.pinned}, "
            f"prio={self._prio}, timeslice={self._timeslice}, "
            f"deadline={self._deadline}, stack_size={self.stack_size}, "
            f"tls_size={self.tls_size})"
        )


@dataclass
class ThreadProfile:
    """Time a thread spent waiting and running, in seconds."""

    time_waiting: float = 0.0
    time_running: float = 0.0


@dataclass(frozen=True)
class ThreadLimit:
    """Resource limits of a thread; None means no limit."""

    memory_size: Optional[int] = None
    open_files: Optional[int] = None
    pipe_size: Optional[int] = None
    cpu_time: Optional[float] = None


class ThreadFlag(enum.Flag):
    NONE = 0
    RUNNABLE = 1
    EXITED = 2
    QUEUEABLE = 4


class _ThreadTerminated(BaseException):
    """Unwinds a parked host thread once its kernel thread is finished."""


class _System:
    """Shared state used to stop the running kernel threads."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.halted = threading.Event()
        self.error: Optional[BaseException] = None

    def reset(self) -> None:
        with self.lock:
            self.error = None
            self.halted.clear()

    def fail(self, error: BaseException) -> None:
        with self.lock:
            if self.error is None:
                self.error = error
        self.halted.set()


_system = _System()
_local = threading.local()
_thread_ids = itertools.count()
_hooks: List[Tuple[InitHook, FinishHook]] = []
_hooks_lock = threading.Lock()


class _Context:
    """Execution context of a kernel thread, backed by a host thread."""

    def __init__(self, thread: "Thread") -> None:
        self._thread = thread
        self._resume = threading.Event()
        self._host: Optional[threading.Thread] = None
        self._terminated = False

    def activate(self) -> None:
        if self._terminated:
            raise RuntimeError(f"thread {self._thread.name!r} has finished")
        if self._host is None:
            self._host = threading.Thread(
                target=_bootstrap,
                args=(self._thread,),
                name=f"kthread-{self._thread.name}",
                daemon=True,
            )
            self._host.start()
        else:
            self._resume.set()

    def suspend(self) -> None:
        self._resume.wait()
        self._resume.clear()
        if self._terminated:
            raise _ThreadTerminated

    def terminate(self) -> None:
        self._terminated = True
        self._resume.set()


def _bootstrap(thread: "Thread") -> None:
    _local.thread = thread
    try:
        thread._entry(thread._arg)
    except _ThreadTerminated:
        return
    except BaseException as error:  # reported to whoever started the system
        _system.fail(error)
        return
    _system.fail(RuntimeError(f"entry function of thread {thread.name!r} returned"))


def register_init_hook(init: InitHook, finish: FinishHook) -> Callable[[], None]:
    """Register functions run when every thread is created and finished.

    Returns a function that removes the pair again.
    """
    entry = (init, finish)
    with _hooks_lock:
        _hooks.append(entry)

    def unregister() -> None:
        with _hooks_lock:
            if entry in _hooks:
                _hooks.remove(entry)

    return unregister


def _current_or_none() -> Optional["Thread"]:
    return getattr(_local, "thread", None)


def current_thread() -> "Thread":
    """Return the kernel thread the caller runs on."""
    thread = _current_or_none()
    if thread is None:
        raise RuntimeError("not running on a kernel thread")
    return thread


class Thread:
    """Control block of a kernel thread.

    Life cycle: the thread is created, handed to a scheduler, run, and calls
    :meth:`exit` when done or killed; after the scheduler has switched to
    another thread it calls :meth:`finish`.

    ``function`` is the entry point; it receives ``arg`` and must never
    return.
    """

    def __init__(
        self,
        name: str,
        function: Callable[[Any], Any],
        arg: Any = None,
        attr: Optional[ThreadAttr] = None,
        limit: Optional[ThreadLimit] = None,
    ) -> None:
        self.name = name
        self.id = next(_thread_ids)
        self._entry = function
        self._arg = arg
        self._flags = ThreadFlag.NONE
        self.wakeup_time = 0.0
        self.waiting_threads = WaitQueue()
        self.waiting_for: Optional[WaitQueue] = None
        self.sched: Any = None
        self.attr = copy.copy(attr) if attr is not None else ThreadAttr()
        self.profile = ThreadProfile()
        self.limit = limit if limit is not None else ThreadLimit()
        self._context: Optional[_Context] = _Context(self)

        with _hooks_lock:
            hooks = list(_hooks)
        for done, (init, _) in enumerate(hooks):
            try:
                init(self)
            except BaseException:
                for _, finish in reversed(hooks[:done]):
                    finish(self)
                self._context = None
                raise

    def __repr__(self) -> str:
        return f"Thread(name={self.name!r}, id={self.id}, flags={self._flags})"

    @property
    def _scheduler(self) -> Any:
        if self.sched is None:
            raise RuntimeError(f"thread {self.name!r} is not attached to a scheduler")
        return self.sched

    @property
    def prio(self) -> int:
        return self.attr.prio

    @property
    def timeslice(self) -> float:
        return self.attr.timeslice

    @property
    def is_finished(self) -> bool:
        return self._context is None

    def finish(self) -> None:
        """Release the thread; it must not be the running thread."""
        if _current_or_none() is self:
            raise RuntimeError("a thread cannot finish itself")
        self.waiting_threads.wakeup_final()
        with _hooks_lock:
            hooks = list(_hooks)
        for _, finish in hooks:
            finish(self)
        if self._context is not None:
            self._context.terminate()
            self._context = None

    def block_until(self, until: float) -> None:
        """Block until the monotonic clock reaches ``until`` (0 means indefinitely)."""
        if not self.is_runnable:
            raise RuntimeError(f"thread {self.name!r} is not runnable")
        self.wakeup_time = until
        self.clear_runnable()
        self._scheduler.thread_blocked(self)

    def block_timeout(self, duration: float) -> None:
        """Block for ``duration`` seconds."""
        self.block_until(time.monotonic() + duration)

    def block(self) -> None:
        """Block without a wake-up time."""
        self.block_until(0.0)

    def block_for_event(self, event: WaitQueue) -> None:
        """Block until the event behind ``event`` happens."""
        if self.waiting_for is not None:
            raise RuntimeError(f"thread {self.name!r} is already waiting")
        self.waiting_for = event
        if not event.add(self):
            self.waiting_for = None
            return
        self.block()

    def block_for_thread(self, thread: "Thread") -> None:
        """Block until ``thread`` terminates."""
        self.block_for_event(thread.waiting_threads)

    def wake(self) -> None:
        if not self.is_runnable:
            self._scheduler.thread_woken(self)
            self.wakeup_time = 0.0

    def kill(self) -> None:
        self._scheduler.remove_thread(self)

    def exit(self) -> None:
        # Waiters are woken only in finish(): a woken waiter could destroy
        # this thread before its scheduler has switched away from it.
        self.set_exited()
        if self.waiting_for is not None:
            self.waiting_for.remove(self)
            self.waiting_for = None

    def detach(self) -> None:
        if self.attr.detached:
            raise RuntimeError(f"thread {self.name!r} is already detached")
        self.waiting_threads.wakeup_all()
        self.attr.detached = True

    def set_prio(self, prio: int) -> None:
        self._scheduler.set_thread_prio(self, prio)

    def set_timeslice(self, timeslice: float) -> None:
        self._scheduler.set_thread_timeslice(self, timeslice)

    @property
    def is_runnable(self) -> bool:
        return bool(self._flags & ThreadFlag.RUNNABLE)

    @property
    def is_exited(self) -> bool:
        return bool(self._flags & ThreadFlag.EXITED)

    @property
    def is_queueable(self) -> bool:
        return bool(self._flags & ThreadFlag.QUEUEABLE)

    def set_runnable(self) -> None:
        self._flags |= ThreadFlag.RUNNABLE

    def clear_runnable(self) -> None:
        self._flags &= ~ThreadFlag.RUNNABLE

    def set_exited(self) -> None:
        self._flags |= ThreadFlag.EXITED

    def set_queueable(self) -> None:
        self._flags |= ThreadFlag.QUEUEABLE

    def clear_queueable(self) -> None:
        self._flags &= ~ThreadFlag.QUEUEABLE


def _context_of(thread: Thread) -> _Context:
    if thread._context is None:
        raise RuntimeError(f"thread {thread.name!r} has finished")
    return thread._context


def thread_start(thread: Thread) -> None:
    """Run ``thread`` as the first thread and wait until the system halts.

    An exception that escapes any kernel thread is raised here.
    """
    _system.reset()
    _context_of(thread).activate()
    _system.halted.wait()
    with _system.lock:
        error, _system.error = _system.error, None
    if error is not None:
        raise error


def thread_switch(prev: Thread, next: Thread) -> None:
    """Resume ``next`` and park ``prev`` until something switches back to it."""
    if prev is next:
        return
    prev_context = _context_of(prev)
    _context_of(next).activate()
    prev_context.suspend()


def halt() -> None:
    """Stop the system started by :func:`thread_start`.

    Called from a kernel thread, it parks that thread for good.
    """
    _system.halted.set()
    current = _current_or_none()
    if current is not None and current._context is not None:
        while True:
            current._context.suspend()