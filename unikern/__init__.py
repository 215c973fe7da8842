"""Unikernel runtime model: kernel threads, wait queues, cooperative and preemptive
schedulers, signal sets, random sources, trap reports and calendar time conversion."""

__version__ = "0.1.0"

__all__ = [
    "coop",
    "preem",
    "rand",
    "sched",
    "signals",
    "this_thread",
    "thread",
    "timeconv",
    "trap",
    "wait",
]