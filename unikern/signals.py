"""Signal sets and the records that describe signal state."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

SIGSET_BITS = 64
_FULL_MASK = (1 << SIGSET_BITS) - 1
_SIGNAL_SLOTS = 32


def _bit(signo: int) -> int:
    if not 1 <= signo <= SIGSET_BITS:
        raise ValueError(f"invalid signal number: {signo}")
    return 1 << (signo - 1)


@dataclass
class SignalSet:
    """A set of signal numbers 1..64 held as a 64-bit mask."""

    mask: int = 0

    def __post_init__(self) -> None:
        self.mask &= _FULL_MASK

    def add(self, signo: int) -> None:
        self.mask |= _bit(signo)

    def remove(self, signo: int) -> None:
        self.mask &= ~_bit(signo) & _FULL_MASK

    def clear(self) -> None:
        self.mask = 0

    def fill(self) -> None:
        self.mask = _FULL_MASK

    def is_empty(self) -> bool:
        return self.mask == 0

    def copy(self) -> "SignalSet":
        return SignalSet(self.mask)

    def __contains__(self, signo: int) -> bool:
        return bool(self.mask & _bit(signo))

    def __iter__(self) -> Iterator[int]:
        return (signo for signo in range(1, SIGSET_BITS + 1) if self.mask & (1 << (signo - 1)))

    def __and__(self, other: object) -> "SignalSet":
        if not isinstance(other, SignalSet):
            return NotImplemented
        return SignalSet(self.mask & other.mask)

    def __or__(self, other: object) -> "SignalSet":
        if not isinstance(other, SignalSet):
            return NotImplemented
        return SignalSet(self.mask | other.mask)

    def __invert__(self) -> "SignalSet":
        return SignalSet(~self.mask & _FULL_MASK)


class SigWaiting(enum.IntEnum):
    NOT_WAITING = 0
    WAITING = 1
    WAITING_SCHED = 2


@dataclass
class SigInfo:
    signo: int = 0
    code: int = 0
    pid: int = 0


@dataclass
class SigAction:
    """A signal disposition; ``handler`` takes either the signal number or
    the number, the info record and a context, depending on ``flags``."""

    handler: Optional[Callable[..., None]] = None
    mask: SignalSet = field(default_factory=SignalSet)
    flags: int = 0
    restorer: Optional[Callable[[], None]] = None


@dataclass
class Signal:
    info: SigInfo = field(default_factory=SigInfo)


@dataclass
class ProcSig:
    pending: SignalSet = field(default_factory=SignalSet)
    pending_signals: list[SigInfo] = field(
        default_factory=lambda: [SigInfo() for _ in range(_SIGNAL_SLOTS)]
    )
    sigaction: list[SigAction] = field(
        default_factory=lambda: [SigAction() for _ in range(_SIGNAL_SLOTS)]
    )


@dataclass
class ThreadSigWait:
    status: SigWaiting = SigWaiting.NOT_WAITING
    awaited: SignalSet = field(default_factory=SignalSet)
    received_signal: SigInfo = field(default_factory=SigInfo)


@dataclass
class ThreadSig:
    mask: SignalSet = field(default_factory=SignalSet)
    pending: SignalSet = field(default_factory=SignalSet)
    pending_signals: list[Signal] = field(default_factory=list)
    wait: ThreadSigWait = field(default_factory=ThreadSigWait)