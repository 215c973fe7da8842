"""Reporting of processor exceptions raised while running a thread."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Optional, TextIO

_WORD_MASK = (1 << 64) - 1

_EXCEPTIONS = {
    0: ("Instruction address misaligned.", True),
    1: ("Instruction access fault.", True),
    2: ("Illegal instruction.", True),
    3: ("Breakpoint.", False),
    4: ("Load address misaligned.", True),
    5: ("Load access fault.", True),
    6: ("Store/AMO address misaligned.", True),
    7: ("Store/AMO access fault.", True),
    8: ("Environment call from U-mode.", False),
    9: ("Environment call from S-mode.", False),
    12: ("Instruction page fault.", True),
    13: ("Load page fault.", True),
    15: ("Store/AMO page fault.", True),
}
_UNKNOWN = ("Unknown error.", True)

_REPORT_ORDER = (
    "a0", "a1", "a2", "a3", "a4", "a5", "a6", "a7",
    "t0", "t1", "t2", "t3", "t4", "t5", "t6",
    "ra", "sp", "pc",
)


@dataclass
class Registers:
    """General registers saved when an exception is taken."""

    t0: int = 0
    t1: int = 0
    t2: int = 0
    t3: int = 0
    t4: int = 0
    t5: int = 0
    t6: int = 0
    a0: int = 0
    a1: int = 0
    a2: int = 0
    a3: int = 0
    a4: int = 0
    a5: int = 0
    a6: int = 0
    a7: int = 0
    ra: int = 0
    pc: int = 0
    sstatus: int = 0
    sp: int = 0


class TrapError(RuntimeError):
    """Raised for an exception that cannot be recovered from."""

    def __init__(self, cause: int, description: str) -> None:
        super().__init__(f"{description} (code=0x{cause:02x})")
        self.cause = cause
        self.description = description


def describe_exception(cause: int) -> tuple[str, bool]:
    """Return the description of ``cause`` and whether it is fatal."""
    return _EXCEPTIONS.get(cause, _UNKNOWN)


def format_exception_report(
    cause: int, regs: Registers, instruction: Optional[int] = None
) -> str:
    """Build the text printed for an exception.

    The faulting instruction is shown unless the cause is an instruction
    access fault or no instruction word is given.
    """
    description, _ = describe_exception(cause)
    lines = [f"{description} (code=0x{cause:02x})", "registers:"]
    lines.extend(
        f"{name} = 0x{getattr(regs, name) & _WORD_MASK:016x}" for name in _REPORT_ORDER
    )
    if cause != 1 and instruction is not None:
        lines.append(f"instruction = 0x{instruction & _WORD_MASK:016x}")
    return "\n".join(lines) + "\n"


def handle_exception(
    cause: int,
    regs: Registers,
    instruction: Optional[int] = None,
    out: Optional[TextIO] = None,
) -> None:
    """Write the exception report and raise :class:`TrapError` if it is fatal."""
    stream = sys.stdout if out is None else out
    stream.write(format_exception_report(cause, regs, instruction))
    description, fatal = describe_exception(cause)
    if fatal:
        raise TrapError(cause, description)