"""Hardware-facing subsystem — the SysTick timer and the interrupt controller.

Re-exports public symbols so callers can write::

    from py_rtos.io import InterruptController, SysTickTimer
"""

from py_rtos.io.interrupts import (
    DEFAULT_INTERRUPT_PROBABILITY,
    InterruptController,
    InterruptSource,
    PeriodicInterruptSource,
    SeededInterruptSource,
)
from py_rtos.io.timer import DEFAULT_CYCLES_PER_TICK, SysTickTimer

__all__ = [
    "DEFAULT_CYCLES_PER_TICK",
    "DEFAULT_INTERRUPT_PROBABILITY",
    "InterruptController",
    "InterruptSource",
    "PeriodicInterruptSource",
    "SeededInterruptSource",
    "SysTickTimer",
]
