"""Scheduler lesson — two tasks, an idle task, and a button interrupt.

The classic first FreeRTOS program:

- **LED task** (priority 2) toggles a pin, burns a little CPU, then
  sleeps for 4 ticks.
- **UART task** (priority 1) prints the tick count inside a critical
  section (``printf`` is not reentrant), then sleeps for 2 ticks.
- **Idle task** (priority 0) sleeps on ``__WFI()`` until the next tick.
- **EXTI0** — a button press.  It preempts any task at once, unless the
  UART task is inside its critical section, in which case it is latched
  and taken the moment the section ends.

The learner can change task priorities while the simulation runs and
press the button at any time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from py_rtos.io.timer import DEFAULT_CYCLES_PER_TICK
from py_rtos.isa import (
    Delay,
    EnterCritical,
    Execute,
    ExitCritical,
    Jump,
    Print,
    Program,
    WaitForInterrupt,
)
from py_rtos.kernel import Kernel, Scenario, StepGranularity, TaskSpec

if TYPE_CHECKING:
    from py_rtos.io.interrupts import InterruptSource
    from py_rtos.snapshot import KernelSnapshot

IDLE_TID = 0
LED_TID = 1
UART_TID = 2

LED_DELAY = 4
UART_DELAY = 2

LED_PROGRAM = Program(
    "vLEDTask",
    (
        Execute("HAL_GPIO_TogglePin(LED_Port, LED_Pin)"),
        Execute("for (i = 0; i < 500; i++) __NOP()"),
        Delay(LED_DELAY),
        Jump(0),
    ),
)

UART_PROGRAM = Program(
    "vUARTTask",
    (
        EnterCritical(),
        Print("Tick: {tick}"),
        ExitCritical(),
        Delay(UART_DELAY),
        Jump(0),
    ),
)

IDLE_PROGRAM = Program("prvIdleTask", (WaitForInterrupt(), Jump(0)))


def scheduler_scenario(*, cycles_per_tick: int = DEFAULT_CYCLES_PER_TICK) -> Scenario:
    """Return the LED / UART / Idle scenario."""
    return Scenario(
        name="scheduler",
        tasks=(
            TaskSpec(tid=IDLE_TID, name="Idle", priority=0, program=IDLE_PROGRAM, idle=True),
            TaskSpec(tid=LED_TID, name="LED Task", priority=2, program=LED_PROGRAM),
            TaskSpec(tid=UART_TID, name="UART Task", priority=1, program=UART_PROGRAM),
        ),
        cycles_per_tick=cycles_per_tick,
    )


class SchedulerLesson:
    """Drive the scheduler scenario."""

    name = "scheduler"
    title = "Scheduler — priorities, delays, critical sections and interrupts"

    def __init__(
        self,
        *,
        cycles_per_tick: int = DEFAULT_CYCLES_PER_TICK,
        interrupt_source: InterruptSource | None = None,
    ) -> None:
        """Create the lesson and boot its kernel."""
        self._kernel = Kernel(
            scheduler_scenario(cycles_per_tick=cycles_per_tick),
            interrupt_source=interrupt_source,
        )

    @property
    def kernel(self) -> Kernel:
        """Return the underlying kernel."""
        return self._kernel

    def reset(self) -> KernelSnapshot:
        """Return to tick 0 with LED running."""
        return self._kernel.reset()

    def step(self, granularity: StepGranularity = StepGranularity.MICRO) -> KernelSnapshot:
        """Advance by one micro-step, task instruction, or tick."""
        return self._kernel.step(granularity)

    def snapshot(self) -> KernelSnapshot:
        """Return the current state."""
        return self._kernel.snapshot()

    def set_priority(self, tid: int, value: int) -> KernelSnapshot:
        """Change a task's base priority (not the idle task's)."""
        return self._kernel.set_priority(tid, value)

    def trigger_interrupt(self) -> KernelSnapshot:
        """Press the button."""
        self._kernel.trigger_interrupt()
        return self._kernel.snapshot()

    def perform(self, action: str, params: dict[str, Any]) -> KernelSnapshot:
        """Run a named driver action.

        Raises:
            KeyError: If the action is unknown or a parameter is missing.

        """
        match action:
            case "set_priority":
                return self.set_priority(int(params["tid"]), int(params["priority"]))
            case "trigger_interrupt":
                return self.trigger_interrupt()
            case _:
                msg = f"Unknown action for {self.name}: {action}"
                raise KeyError(msg)
