"""Tests for the scheduler lesson."""

import pytest

from py_rtos.errors import ContractViolationError
from py_rtos.io.interrupts import PeriodicInterruptSource
from py_rtos.kernel import StepGranularity
from py_rtos.lessons.scheduler import (
    IDLE_TID,
    LED_TID,
    UART_TID,
    SchedulerLesson,
)

HIGHEST = 5
TICKS = 4


class TestSchedulerLesson:
    """Drive the LED / UART / Idle scenario."""

    def test_boot_runs_led(self) -> None:
        """The lesson starts with the LED task running at tick 0."""
        snapshot = SchedulerLesson().snapshot()
        assert snapshot.tick == 0
        assert snapshot.current_task == LED_TID

    def test_tick_steps(self) -> None:
        """Four tick steps reach the LED task's wake-up."""
        lesson = SchedulerLesson()
        for _ in range(TICKS):
            snapshot = lesson.step(StepGranularity.TICK)
        assert snapshot.tick == TICKS
        assert snapshot.current_task == LED_TID
        assert snapshot.uart == ("Tick: 0", "Tick: 2")

    def test_default_step_is_one_micro_step(self) -> None:
        """step() with no argument executes a single instruction."""
        lesson = SchedulerLesson()
        lesson.step()
        assert lesson.snapshot().task(LED_TID).pc == 1

    def test_reset(self) -> None:
        """reset rewinds to tick 0."""
        lesson = SchedulerLesson()
        lesson.step(StepGranularity.TICK)
        assert lesson.reset().tick == 0

    def test_set_priority_action(self) -> None:
        """The set_priority action reprioritises and preempts."""
        lesson = SchedulerLesson()
        snapshot = lesson.perform("set_priority", {"tid": UART_TID, "priority": HIGHEST})
        assert snapshot.current_task == UART_TID
        assert snapshot.task(UART_TID).base_priority == HIGHEST

    def test_idle_priority_action_rejected(self) -> None:
        """The idle task's priority cannot be changed from the driver."""
        with pytest.raises(ContractViolationError):
            SchedulerLesson().perform("set_priority", {"tid": IDLE_TID, "priority": 1})

    def test_trigger_interrupt_action(self) -> None:
        """The trigger_interrupt action enters the handler."""
        snapshot = SchedulerLesson().perform("trigger_interrupt", {})
        assert snapshot.interrupts.executing_isr

    def test_unknown_action(self) -> None:
        """Unknown actions raise KeyError."""
        with pytest.raises(KeyError, match="Unknown action"):
            SchedulerLesson().perform("explode", {})

    def test_missing_parameter(self) -> None:
        """A missing parameter raises KeyError."""
        with pytest.raises(KeyError):
            SchedulerLesson().perform("set_priority", {"tid": UART_TID})

    def test_interrupt_source_is_rewound_on_reset(self) -> None:
        """The same source gives the same run after a reset."""
        lesson = SchedulerLesson(interrupt_source=PeriodicInterruptSource(interval=2))
        first = [lesson.step(StepGranularity.TICK).to_dict() for _ in range(TICKS)]
        lesson.reset()
        second = [lesson.step(StepGranularity.TICK).to_dict() for _ in range(TICKS)]
        assert first == second
