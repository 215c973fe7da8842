"""Wait queues that park threads until an event happens."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Protocol


class Waiter(Protocol):
    """Anything that can be parked on a wait queue and woken again."""

    def wake(self) -> None: ...


class WaitQueue:
    """A queue of threads waiting for an event.

    For a resource, the first waiting thread is woken when the resource
    becomes available. For a thread's termination, every waiting thread is
    woken. A thread waits on at most one queue and removes itself when it
    exits while still waiting.

    An event that happens while nobody waits is remembered as pending; the
    next thread that tries to wait consumes it and does not wait at all.
    After :meth:`wakeup_final` no thread can wait any more.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queue: Deque[Waiter] = deque()
        self._has_occurred = False
        self._last_occurred = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def __contains__(self, thread: object) -> bool:
        with self._lock:
            return any(entry is thread for entry in self._queue)

    @property
    def closed(self) -> bool:
        """Whether the event has happened for the last time."""
        return self._last_occurred

    def add(self, thread: Waiter) -> bool:
        """Queue ``thread`` unless an event is pending.

        Returns True if the thread was queued. Returns False, consuming the
        pending event, if the event has already happened.
        """
        with self._lock:
            if self._last_occurred or self._has_occurred:
                self._has_occurred = False
                return False
            self._queue.append(thread)
            return True

    def remove(self, thread: Waiter) -> None:
        """Take a still waiting ``thread`` out of the queue.

        Raises ValueError if the thread is not in the queue.
        """
        with self._lock:
            for index, entry in enumerate(self._queue):
                if entry is thread:
                    del self._queue[index]
                    return
        raise ValueError("thread is not waiting on this queue")

    def wakeup_all(self) -> None:
        """Wake every waiting thread, or mark the event pending if none waits."""
        with self._lock:
            if not self._queue:
                self._has_occurred = True
                return
            woken = list(self._queue)
            self._queue.clear()
        for thread in woken:
            thread.wake()

    def wakeup_final(self) -> None:
        """Wake every waiting thread and refuse all later waiters."""
        with self._lock:
            self._last_occurred = True
            woken = list(self._queue)
            self._queue.clear()
        for thread in woken:
            thread.wake()

    def wakeup_first(self) -> None:
        """Wake the first waiting thread, or mark the event pending if none waits."""
        with self._lock:
            if not self._queue:
                self._has_occurred = True
                return
            thread = self._queue.popleft()
        thread.wake()