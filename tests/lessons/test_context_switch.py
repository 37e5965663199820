"""Tests for the PendSV context switch lesson."""

import pytest

from py_rtos.lessons.context_switch import (
    MAX_SYSCALL_INTERRUPT_PRIORITY,
    PENDSV_STEPS,
    TCB_A,
    TCB_B,
    ContextSwitchLesson,
)

BASEPRI_STEP = 6
SAVED_STEP = 4
SOFTWARE_WORDS = 8


def _run(lesson: ContextSwitchLesson, steps: int) -> None:
    for _ in range(steps):
        lesson.step()


class TestContextSwitch:
    """Follow the handler from Task A to Task B."""

    def test_initial_state(self) -> None:
        """The lesson starts at the handler entry with Task A loaded."""
        snapshot = ContextSwitchLesson().snapshot()
        assert snapshot.step == 0
        assert snapshot.total_steps == len(PENDSV_STEPS)
        assert snapshot.running == "Task A"
        assert snapshot.current_tcb == TCB_A
        assert snapshot.registers["r4"] == "0xA0000004"
        assert len(snapshot.stack_b) == SOFTWARE_WORDS
        assert snapshot.stack_a == ()

    def test_software_context_saved(self) -> None:
        """R4-R11 land on Task A's stack and the TCB records the new top."""
        lesson = ContextSwitchLesson()
        _run(lesson, SAVED_STEP)
        snapshot = lesson.snapshot()
        assert snapshot.stack_a[0] == "0xA0000004"
        assert len(snapshot.stack_a) == SOFTWARE_WORDS
        assert snapshot.top_of_stack[TCB_A] == "0x20000FD0"

    def test_basepri_masks_during_selection(self) -> None:
        """BASEPRI is raised around vTaskSwitchContext."""
        lesson = ContextSwitchLesson()
        _run(lesson, BASEPRI_STEP)
        assert lesson.snapshot().basepri == MAX_SYSCALL_INTERRUPT_PRIORITY

    def test_runs_to_task_b(self) -> None:
        """At the end Task B's registers are live and interrupts unmasked."""
        lesson = ContextSwitchLesson()
        _run(lesson, len(PENDSV_STEPS) - 1)
        snapshot = lesson.snapshot()
        assert snapshot.finished
        assert snapshot.running == "Task B"
        assert snapshot.current_tcb == TCB_B
        assert snapshot.basepri == 0
        assert snapshot.registers["r4"] == "0xB0000004"
        assert snapshot.registers["pc"] == "0x08005678"
        assert snapshot.stack_b == ()

    def test_step_when_finished_is_noop(self) -> None:
        """Stepping past the end changes nothing."""
        lesson = ContextSwitchLesson()
        _run(lesson, len(PENDSV_STEPS) - 1)
        before = lesson.snapshot()
        assert lesson.step() == before

    def test_step_back_replays(self) -> None:
        """step_back lands exactly where one fewer step would."""
        lesson = ContextSwitchLesson()
        _run(lesson, SAVED_STEP - 1)
        expected = lesson.snapshot()
        lesson.step()
        assert lesson.perform("step_back", {}) == expected

    def test_step_back_at_start(self) -> None:
        """step_back at the entry stays at the entry."""
        assert ContextSwitchLesson().step_back().step == 0

    def test_unknown_action(self) -> None:
        """Unknown actions raise KeyError."""
        with pytest.raises(KeyError, match="Unknown action"):
            ContextSwitchLesson().perform("jump", {})
