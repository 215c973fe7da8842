"""Operations on the kernel thread the caller runs on."""

from __future__ import annotations

from typing import Any, NoReturn

from .thread import Thread, current_thread


def control_block() -> Thread:
    """Return the control block of the running thread."""
    return current_thread()


def _scheduler_of(thread: Thread) -> Any:
    if thread.sched is None:
        raise RuntimeError(f"thread {thread.name!r} has no scheduler")
    return thread.sched


def yield_() -> None:
    """Let the scheduler run another thread."""
    _scheduler_of(control_block()).yield_()


def sleep_for(duration: float) -> None:
    """Block the running thread for ``duration`` seconds."""
    control_block().block_timeout(duration)


def exit() -> NoReturn:
    """Ask the scheduler to remove the running thread."""
    current = control_block()
    _scheduler_of(current).remove_thread(current)
    raise RuntimeError(f"thread {current.name!r} should have exited")