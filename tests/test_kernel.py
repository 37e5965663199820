"""Tests for the kernel's fetch-decode-execute loop.

Most tests boot the LED / UART / Idle scenario with eight cycles per
tick, so the exact instruction interleaving is known in advance.
"""

import pytest

from py_rtos.errors import ContractViolationError
from py_rtos.io.interrupts import PeriodicInterruptSource
from py_rtos.isa import Acquire, Execute, Jump, Program, WaitForInterrupt, Yield
from py_rtos.kernel import ExecContext, Kernel, Scenario, StepGranularity, TaskSpec
from py_rtos.lessons.scheduler import (
    IDLE_TID,
    LED_DELAY,
    LED_TID,
    UART_TID,
    scheduler_scenario,
)

MICRO_STEPS = 500
TRACE_LIMIT = 1000
TRACE_OVERFLOW = 3000
UART_IN_CRITICAL = 8
LED_DELAY_DONE = 3
TICKS_TO_LED_WAKE = 4
PEER_A = 1
PEER_B = 2
SLICE_CYCLES = 2
SLICE_TICKS = 6


def _kernel() -> Kernel:
    return Kernel(scheduler_scenario())


def _idle() -> TaskSpec:
    return TaskSpec(
        tid=0,
        name="Idle",
        priority=0,
        program=Program("idle", (WaitForInterrupt(), Jump(0))),
        idle=True,
    )


def _peers(program: Program, *, time_slicing: bool = True, cycles: int = SLICE_CYCLES) -> Kernel:
    """Boot two equal-priority tasks running *program*."""
    return Kernel(
        Scenario(
            name="peers",
            tasks=(
                _idle(),
                TaskSpec(tid=PEER_A, name="A", priority=1, program=program),
                TaskSpec(tid=PEER_B, name="B", priority=1, program=program),
            ),
            cycles_per_tick=cycles,
            time_slicing=time_slicing,
        )
    )


def _ran(kernel: Kernel, name: str) -> bool:
    """Return True if task *name* executed any Execute instruction."""
    return any(m.startswith(f"{name}: ") for m in kernel.logger.messages(source="task"))


class TestScenario:
    """Verify scenario validation."""

    def test_duplicate_ids_rejected(self) -> None:
        """Task ids must be unique."""
        idle = _idle()
        with pytest.raises(ValueError, match="repeats a task id"):
            Scenario(name="bad", tasks=(idle, idle))

    def test_exactly_one_idle_required(self) -> None:
        """A scenario without an idle task is rejected."""
        work = Program("w", (Execute("x"), Jump(0)))
        with pytest.raises(ValueError, match="exactly one idle"):
            Scenario(name="bad", tasks=(TaskSpec(tid=1, name="T", priority=1, program=work),))

    def test_program_must_loop(self) -> None:
        """A task program that would run off its end is rejected."""
        once = Program("once", (Execute("x"), Execute("y")))
        with pytest.raises(ValueError, match="must end in a Jump"):
            Scenario(
                name="bad",
                tasks=(_idle(), TaskSpec(tid=1, name="T", priority=1, program=once)),
            )


class TestBoot:
    """Verify the state right after reset."""

    def test_highest_priority_runs_first(self) -> None:
        """Boot selects the LED task (priority 2)."""
        snapshot = _kernel().snapshot()
        assert snapshot.tick == 0
        assert snapshot.current_task == LED_TID
        assert snapshot.context == ExecContext.TASK
        assert snapshot.next_instruction == "HAL_GPIO_TogglePin(LED_Port, LED_Pin)"

    def test_boot_is_logged(self) -> None:
        """The scheduler start is the first log line."""
        assert _kernel().snapshot().log_line == "Scheduler started, running LED Task"

    def test_reset_restores_boot_state(self) -> None:
        """reset rewinds ticks, output, and the trace."""
        kernel = _kernel()
        for _ in range(TICKS_TO_LED_WAKE):
            kernel.step(StepGranularity.TICK)
        snapshot = kernel.reset()
        assert snapshot.tick == 0
        assert snapshot.uart == ()
        assert kernel.trace == []
        assert snapshot.current_task == LED_TID


class TestSchedulerScenario:
    """Follow the LED / UART / Idle interleaving."""

    def test_led_delay_sets_wake_tick(self) -> None:
        """After its third instruction the LED task sleeps until tick 4."""
        kernel = _kernel()
        for _ in range(LED_DELAY_DONE):
            kernel.step(StepGranularity.INSTRUCTION)
        led = kernel.snapshot().task(LED_TID)
        assert led.state == "blocked"
        assert led.wake_tick == LED_DELAY

    def test_first_tick_runs_idle(self) -> None:
        """By tick 1 both tasks are asleep and the idle task runs."""
        snapshot = _kernel().step(StepGranularity.TICK)
        assert snapshot.tick == 1
        assert snapshot.current_task == IDLE_TID
        assert snapshot.uart == ("Tick: 0",)

    def test_led_wakes_at_tick_four(self) -> None:
        """At tick 4 the LED task is running again, past its first instruction."""
        kernel = _kernel()
        for _ in range(TICKS_TO_LED_WAKE):
            snapshot = kernel.step(StepGranularity.TICK)
        assert snapshot.tick == TICKS_TO_LED_WAKE
        assert snapshot.current_task == LED_TID
        assert snapshot.task(LED_TID).pc == 1
        assert snapshot.uart == ("Tick: 0", "Tick: 2")

    def test_wakes_are_logged_in_id_order(self) -> None:
        """Tasks waking on the same tick are reported by ascending id."""
        kernel = _kernel()
        for _ in range(TICKS_TO_LED_WAKE):
            kernel.step(StepGranularity.TICK)
        woke = [e.message for e in kernel.logger.filter(source="tick", tick=LED_DELAY)]
        unblocked = [m for m in woke if m.endswith("unblocked")]
        assert unblocked == ["LED Task unblocked", "UART Task unblocked"]

    def test_ticks_are_monotonic(self) -> None:
        """The tick never goes back and never skips."""
        kernel = _kernel()
        ticks = [kernel.step().tick for _ in range(MICRO_STEPS)]
        assert all(b - a in {0, 1} for a, b in zip(ticks, ticks[1:], strict=False))
        assert ticks[-1] > 0

    def test_at_most_one_running(self) -> None:
        """At most one task is RUNNING, and exactly one in task context."""
        kernel = _kernel()
        for _ in range(MICRO_STEPS):
            snapshot = kernel.step()
            assert len(snapshot.running) <= 1
            if snapshot.context == ExecContext.TASK:
                assert len(snapshot.running) == 1
                assert snapshot.running[0].tid == snapshot.current_task

    def test_trace_is_bounded(self) -> None:
        """The trace keeps only the most recent entries."""
        kernel = _kernel()
        for _ in range(TRACE_OVERFLOW):
            kernel.step()
        assert len(kernel.trace) == TRACE_LIMIT


class TestInterrupts:
    """Verify interrupt entry, latching, and tail-chaining."""

    def test_unmasked_interrupt_preempts_task(self) -> None:
        """A button press in task context enters the handler next."""
        kernel = _kernel()
        assert kernel.trigger_interrupt()
        snapshot = kernel.snapshot()
        assert snapshot.context == ExecContext.ISR
        assert snapshot.next_instruction == "EXTI0_IRQHandler()"
        assert snapshot.interrupts.executing_isr

    def test_interrupt_in_critical_section_is_latched(self) -> None:
        """A press inside the UART critical section waits for its exit."""
        kernel = _kernel()
        for _ in range(UART_IN_CRITICAL):
            kernel.step()
        snapshot = kernel.snapshot()
        assert snapshot.current_task == UART_TID
        assert snapshot.interrupts.critical_nesting == 1

        assert not kernel.trigger_interrupt()
        assert kernel.snapshot().interrupts.pending

        kernel.step()  # Print
        assert kernel.snapshot().context == ExecContext.TASK
        after_exit = kernel.step()  # ExitCritical
        assert after_exit.interrupts.executing_isr
        assert not after_exit.interrupts.pending
        assert after_exit.context == ExecContext.ISR

    def test_handler_returns_to_task(self) -> None:
        """After the handler the preempted task carries on."""
        kernel = _kernel()
        kernel.trigger_interrupt()
        snapshot = kernel.step(StepGranularity.INSTRUCTION)
        assert snapshot.current_task == LED_TID
        assert not snapshot.interrupts.executing_isr
        assert "EXTI0_IRQHandler finished" in kernel.logger.messages(source="isr")

    def test_tail_chaining(self) -> None:
        """A press during the handler runs right after it."""
        kernel = _kernel()
        kernel.trigger_interrupt()
        assert not kernel.trigger_interrupt()
        for _ in range(len(kernel.scenario.isr)):
            kernel.step()
        snapshot = kernel.snapshot()
        assert snapshot.interrupts.executing_isr
        assert not snapshot.interrupts.pending
        assert "Tail-chaining pending interrupt" in kernel.logger.messages(source="isr")

    def test_interrupt_source_fires_on_tick(self) -> None:
        """A periodic source raises the interrupt from the tick handler."""
        kernel = Kernel(scheduler_scenario(), interrupt_source=PeriodicInterruptSource(interval=1))
        kernel.step(StepGranularity.TICK)
        assert "EXTI0_IRQHandler entered" in kernel.logger.messages(source="isr")


class TestDriverOperations:
    """Verify operations a driver performs between steps."""

    def test_priority_change_preempts_immediately(self) -> None:
        """Raising UART above LED switches to it at once."""
        kernel = _kernel()
        snapshot = kernel.set_priority(UART_TID, 3)
        assert snapshot.current_task == UART_TID
        assert snapshot.task(LED_TID).state == "ready"
        assert snapshot.context_switches == 1

    def test_idle_priority_is_fixed(self) -> None:
        """The idle task cannot be reprioritised."""
        with pytest.raises(ContractViolationError):
            _kernel().set_priority(IDLE_TID, 1)

    def test_unknown_task_raises(self) -> None:
        """Unknown ids raise KeyError."""
        with pytest.raises(KeyError):
            _kernel().set_priority(9, 1)

    def test_mutex_request_without_mutex(self) -> None:
        """A scenario without a mutex rejects mutex requests."""
        with pytest.raises(ContractViolationError, match="has no mutex"):
            _kernel().request_acquire(LED_TID)

    def test_acquire_instruction_without_mutex(self) -> None:
        """A task program that takes a missing mutex is a contract violation."""
        program = Program("grab", (Acquire(), Jump(0)))
        kernel = _peers(program)
        with pytest.raises(ContractViolationError, match="has no mutex"):
            kernel.step()


class TestFairness:
    """Verify round robin among equal priorities."""

    def test_time_slicing_alternates_peers(self) -> None:
        """With time slicing both equal-priority tasks get the CPU."""
        kernel = _peers(Program("spin", (Execute("work"), Jump(0))))
        for _ in range(SLICE_TICKS):
            kernel.step(StepGranularity.TICK)
        assert _ran(kernel, "A")
        assert _ran(kernel, "B")

    def test_without_time_slicing_first_task_keeps_cpu(self) -> None:
        """Without time slicing a spinning task is never rotated out."""
        kernel = _peers(Program("spin", (Execute("work"), Jump(0))), time_slicing=False)
        for _ in range(SLICE_TICKS):
            kernel.step(StepGranularity.TICK)
        assert _ran(kernel, "A")
        assert not _ran(kernel, "B")

    def test_yield_hands_cpu_to_peer(self) -> None:
        """taskYIELD lets the equal-priority peer run next."""
        program = Program("polite", (Execute("work"), Yield(), Jump(0)))
        kernel = _peers(program, time_slicing=False, cycles=100)
        kernel.step(StepGranularity.INSTRUCTION)  # A: work
        kernel.step(StepGranularity.INSTRUCTION)  # A: yield
        snapshot = kernel.step(StepGranularity.INSTRUCTION)
        assert snapshot.current_task == PEER_B
        assert _ran(kernel, "B")
