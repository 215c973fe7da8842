# unikern

`unikern` models the core runtime of a small unikernel in plain Python. It covers
kernel threads and their control blocks, wait queues, a cooperative first-come
first-served scheduler and a preemptive round-robin scheduler. It also has a few
supporting pieces: POSIX-style signal sets, random number sources, exception
reports for trapped faults, and conversion of Unix time to calendar fields.

It needs nothing outside the standard library. Install `unikern[test]` to get
pytest for the test suite.

## Modules

| Module | What it provides |
| --- | --- |
| `unikern.timeconv` | `TimePoint`, `is_leap_year`, `day_in_month` |
| `unikern.signals` | `SignalSet` and the signal records `SigInfo`, `SigAction`, `Signal`, `ProcSig`, `SigWaiting`, `ThreadSigWait`, `ThreadSig` |
| `unikern.rand` | `hardware_random`, `standard_random`, `fast_random` |
| `unikern.trap` | `Registers`, `TrapError`, `describe_exception`, `format_exception_report`, `handle_exception` |
| `unikern.wait` | `WaitQueue` |
| `unikern.thread` | `Thread`, `ThreadAttr`, `ThreadLimit`, `ThreadProfile`, `register_init_hook`, `current_thread`, `thread_start`, `thread_switch`, `halt` |
| `unikern.sched` | the abstract `Scheduler` interface, plus `register`, `create_thread`, `create_thread_on_sched`, `destroy_thread`, `empty_thread_function` and `run` |
| `unikern.this_thread` | `control_block`, `yield_`, `sleep_for` and `exit`, which act on the running thread |
| `unikern.coop` | `Schedcoop`, the cooperative scheduler |
| `unikern.preem` | `Schedpreem`, the preemptive round-robin scheduler |

## Calendar time

```python
from unikern.timeconv import TimePoint, is_leap_year

tp = TimePoint.from_unix_time(1656733945, 1000)
tp.year, tp.month, tp.day          # (2022, 6, 2)
tp.hour, tp.min, tp.second         # (3, 52, 25)
tp.day_in_week, tp.day_in_year     # (6, 182)
tp.to_unix_time()                  # (1656733945, 1000)

is_leap_year(2000)                 # True
is_leap_year(1900)                 # False
```

Counting conventions:

* Months and days of the year start at zero.
* Days of the month start at one.
* Days of the week start with Sunday as zero.

Negative times raise `ValueError`. Nanoseconds of a second or more are carried
into the seconds.

`day_in_month(month, year)` takes a zero-based month. In a leap year it adds the
extra day to the month with index 2. A month index outside 0–11 raises
`ValueError`.

## Signal sets

```python
from unikern.signals import SignalSet

pending = SignalSet()
pending.add(2)
pending.add(15)
2 in pending               # True
pending.remove(2)
list(pending)              # [15]

blocked = SignalSet()
blocked.fill()
deliverable = pending & ~blocked
deliverable.is_empty()     # True
```

Signal numbers run from 1 to 64, and signal `n` occupies bit `n - 1` of the
`mask`. Any other number raises `ValueError`.

The record types `SigInfo`, `SigAction`, `Signal`, `ProcSig`, `ThreadSigWait`
and `ThreadSig` hold signal state. No code in the package delivers signals.

## Random numbers

All three functions return a non-negative integer of `bits` random bits (64 by
default):

* `hardware_random(bits)` takes its bits from the operating system's entropy
  source.
* `standard_random(bits)` draws from a shared generator that is seeded from
  that source on first use.
* `fast_random(bits)` works the same way with a separate shared generator.

## Threads and scheduling

Each kernel thread runs on its own host thread. Of the threads handed to the
schedulers, only one runs at a time: switching to another thread resumes it
and parks the caller.

```python
from unikern import this_thread
from unikern.coop import Schedcoop
from unikern.sched import create_thread, destroy_thread, run

def worker(n):
    for _ in range(n):
        this_thread.yield_()

def main(_):
    threads = [create_thread(f"worker {i}", worker, i) for i in range(3)]
    for t in threads:
        this_thread.control_block().block_for_thread(t)
        destroy_thread(t)
    return "done"

run(Schedcoop(), main)     # "done"
```

`run(sched, main, arg)` works as follows:

* It registers the scheduler if it is not registered already.
* It adds `main` and an idle thread (priority `PRIO_EMPTY`, running
  `empty_thread_function`).
* It starts the scheduler and returns what `main` returned.
* An exception that escapes any kernel thread is raised from `run`.

Creating and destroying threads:

* `create_thread(name, function, arg, attr, limit)` hands new threads to the
  registered schedulers in turn.
* `create_thread_on_sched` picks the scheduler by id.
* When `function` returns, the thread exits.
* Detached threads are released by their scheduler. Others are released with
  `destroy_thread` once they have exited.

`ThreadAttr` holds a thread's attributes:

* detach state and pinning;
* priority, which must be 0–255 when assigned;
* time slice in seconds, 0.5 by default and at least 1 ms when assigned;
* deadline on the monotonic clock, which must be in the future when assigned;
* stack and TLS sizes.

Invalid assignments raise `ValueError`. `ThreadLimit` records resource limits,
with `None` meaning no limit. `register_init_hook(init, finish)` runs functions
on every thread's creation and finish, and returns a function that removes them.

Inside a thread, `unikern.this_thread` acts on the running thread:

* `yield_()` gives up the processor.
* `sleep_for(seconds)` blocks for that long.
* `control_block()` returns the running `Thread`.
* `exit()` asks the scheduler to remove the running thread.

The schedulers refuse to remove the thread that is running, so `exit()` raises
`RuntimeError`.

A `Thread` can also wait:

* `block_for_thread` waits until another thread has finished.
* `block_for_event` waits on a `WaitQueue`.
* `block_until` and `block_timeout` wait on the monotonic clock.

Two schedulers are included:

* `Schedcoop` runs ready threads in arrival order. A thread keeps the processor
  until it yields, blocks or exits.
* `Schedpreem` runs ready threads round-robin and takes the processor back once
  a thread's time slice has run out. The timer is a trace hook on the kernel
  threads. A thread is preempted only while it executes code outside this
  package and outside the `threading` module.

Both schedulers:

* run the idle thread only when nothing else is ready;
* keep at most 16 pending wake-up requests from other schedulers;
* raise `OSError` with `errno.ENOTSUP` from `set_thread_prio` and
  `set_thread_timeslice`.

`workload()` returns the number of ready threads. `set_next` links the next
scheduler into a ring and may be called once.

### Wait queues

Threads that wait for an event sit in a `WaitQueue`:

* `wakeup_first` wakes one waiter.
* `wakeup_all` wakes every waiter.
* If nobody is waiting, either of them marks the event as pending, and the next
  `add` consumes it and returns `False` instead of queueing.
* `wakeup_final` wakes everyone and refuses all later waiters. A finished thread
  calls it on the queue of threads waiting for it.
* `remove` takes a still-waiting thread out, and raises `ValueError` if the
  thread is not there.

## Trap reports

`describe_exception(cause)` returns the description of a RISC-V trap cause and
whether it is fatal. Breakpoints and environment calls are not fatal. Unknown
causes are reported as "Unknown error." and are fatal.

`format_exception_report(cause, regs, instruction)` lays out the cause and a
`Registers` dump in hexadecimal. It adds the instruction word unless the cause
is an instruction access fault or no word is given.

`handle_exception` writes the report to standard output, or to the `out`
stream if one is given. It raises `TrapError` for fatal causes.

## What it does not do

The package is a model, not a bootable kernel:

* It has no command-line program.
* It has no platform layer: no interrupt controller, no device drivers, no
  memory allocator.
* Kernel threads run on host threads, and only one runs at a time.
* Several schedulers can be registered and linked with `set_next`, but nothing
  moves threads between them.
* Signal records are kept, but nothing delivers signals.

## Tests

```
pip install -e .[test]
pytest
```