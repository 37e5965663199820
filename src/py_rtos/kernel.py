"""The kernel — a fetch-decode-execute loop over the whole CPU.

The simulated CPU is always in one of three contexts:

- **task** — running the current task's program;
- **kernel** — running the SysTick handler (or a bare reschedule);
- **isr** — running the external interrupt handler.

Kernel and ISR code run in *frames* on a small stack, so an interrupt
can preempt the tick handler and return to it afterwards.  Task code
has no frame: when the stack is empty the CPU runs the current task.

One micro-step executes exactly one instruction.  Before fetching, the
CPU checks whether a SysTick is due; a due tick is taken only when the
CPU is in task context with interrupts unmasked, so a task inside a
critical section keeps the CPU until it leaves.

Every tick runs the same program, in this exact order::

    0  IncrementTick      tick += 1, time slice expires
    1  UnblockDue         delayed tasks whose wake tick arrived -> READY
    2  ServicePending     sample the interrupt line, take a latched IRQ
    3  SelectTask         re-run the ready-list scheduler
    4  Branch NO_SWITCH   -> 6
    5  SwitchContext      PendSV: save one task, restore another
    6  Return             back to task context

Anything else that changes who should run — a delay, a contended
mutex, a release, a yield, an ISR that finishes — re-enters that
program at ``SelectTask``.  Driver operations (``set_priority``,
``request_acquire``, ``request_release``) are atomic: they change the
state and re-run the scheduler before returning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from py_rtos.errors import ContractViolationError
from py_rtos.io.interrupts import InterruptController
from py_rtos.io.timer import DEFAULT_CYCLES_PER_TICK, SysTickTimer
from py_rtos.isa import (
    EXTI_ISR_PROGRAM,
    KERNEL_SELECT,
    KERNEL_TICK_PROGRAM,
    Acquire,
    Branch,
    BranchCondition,
    Delay,
    EnterCritical,
    Execute,
    ExitCritical,
    IncrementTick,
    Instruction,
    IsrEntry,
    Jump,
    Print,
    Program,
    Release,
    Return,
    SelectTask,
    ServicePending,
    SwitchContext,
    UnblockDue,
    WaitForInterrupt,
    Yield,
    YieldFromIsr,
)
from py_rtos.logging import Logger, LogLevel
from py_rtos.snapshot import InterruptView, KernelSnapshot, MutexView, TaskView
from py_rtos.sync.mutex import DEFAULT_MUTEX_NAME, AcquireResult, InheritanceMutex, ReleaseResult
from py_rtos.task.delays import block_current, unblock_due
from py_rtos.task.scheduler import ReadyListScheduler
from py_rtos.task.tcb import Task, TaskState, TaskTable

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_rtos.io.interrupts import InterruptSource

_MAX_TRACE_ENTRIES = 1000
_MAX_MICRO_STEPS = 10_000


class ExecContext(StrEnum):
    """Which code the CPU is executing."""

    TASK = "task"
    KERNEL = "kernel"
    ISR = "isr"


class StepGranularity(StrEnum):
    """How far one call to ``Kernel.step`` advances.

    - MICRO: exactly one instruction, in any context.
    - INSTRUCTION: until one task instruction has executed.
    - TICK: until the tick count has advanced and a task instruction
      has executed after it.
    """

    MICRO = "micro"
    INSTRUCTION = "instruction"
    TICK = "tick"


@dataclass(frozen=True)
class TaskSpec:
    """How to create one task of a scenario.

    Attributes:
        tid: Stable task id.
        name: Display name.
        priority: Base priority.
        program: The task's code.
        idle: Whether this is the idle task.
        initial_delay: Ticks the task sleeps before its first run.

    """

    tid: int
    name: str
    priority: int
    program: Program
    idle: bool = False
    initial_delay: int = 0


@dataclass(frozen=True)
class Scenario:
    """A fixed simulation setup — the kernel's boot image.

    Raises:
        ValueError: If task ids repeat, there is not exactly one idle
            task, or a task program does not end in a ``Jump``.

    """

    name: str
    tasks: tuple[TaskSpec, ...]
    isr: Program = EXTI_ISR_PROGRAM
    cycles_per_tick: int = DEFAULT_CYCLES_PER_TICK
    time_slicing: bool = True
    mutex: bool = False
    inheritance: bool = True

    def __post_init__(self) -> None:
        """Check the task set is well formed."""
        tids = [spec.tid for spec in self.tasks]
        if len(set(tids)) != len(tids):
            msg = f"Scenario {self.name!r} repeats a task id: {tids}"
            raise ValueError(msg)
        idle_count = sum(1 for spec in self.tasks if spec.idle)
        if idle_count != 1:
            msg = f"Scenario {self.name!r} needs exactly one idle task, got {idle_count}"
            raise ValueError(msg)
        for spec in self.tasks:
            if not isinstance(spec.program.instructions[-1], Jump):
                msg = f"Task {spec.name!r} program must end in a Jump, it would run off the end"
                raise ValueError(msg)


@dataclass
class Frame:
    """One activation of kernel or ISR code."""

    context: ExecContext
    program: Program
    pc: int = 0


@dataclass
class SimulationState:
    """All mutable state of one simulation, owned by a single ``Kernel``."""

    timer: SysTickTimer
    tasks: TaskTable
    scheduler: ReadyListScheduler
    interrupts: InterruptController
    mutex: InheritanceMutex | None = None
    frames: list[Frame] = field(default_factory=list)
    pcs: dict[int, int] = field(default_factory=dict)
    uart: list[str] = field(default_factory=list)
    switch_required: bool = False
    slice_expired: bool = False

    @property
    def tick_due(self) -> bool:
        """Return True if the next micro-step enters the tick handler."""
        return not self.frames and self.timer.due and not self.interrupts.is_masked

    @property
    def context(self) -> ExecContext:
        """Return the context the next micro-step runs in."""
        if self.tick_due:
            return ExecContext.KERNEL
        return self.frames[-1].context if self.frames else ExecContext.TASK


class Kernel:
    """Interpret a ``Scenario`` one micro-instruction at a time."""

    def __init__(
        self,
        scenario: Scenario,
        *,
        interrupt_source: InterruptSource | None = None,
    ) -> None:
        """Create a kernel and boot *scenario*.

        Args:
            scenario: The fixed task set to simulate.
            interrupt_source: Optional deterministic source that may
                assert the external interrupt on each tick.

        """
        self._scenario = scenario
        self._source = interrupt_source
        self._programs = {spec.tid: spec.program for spec in scenario.tasks}
        self._logger = Logger()
        self._trace: list[str] = []
        self._state = self._build()
        self.reset()

    # -- Properties -----------------------------------------------------------

    @property
    def scenario(self) -> Scenario:
        """Return the scenario this kernel simulates."""
        return self._scenario

    @property
    def state(self) -> SimulationState:
        """Return the live simulation state (read it, do not mutate it)."""
        return self._state

    @property
    def logger(self) -> Logger:
        """Return the kernel event log."""
        return self._logger

    @property
    def tick(self) -> int:
        """Return the current tick count."""
        return self._state.timer.tick_count

    @property
    def current_task(self) -> Task:
        """Return the RUNNING task."""
        task = self._state.scheduler.current
        if task is None:
            msg = "Kernel has not booted"
            raise RuntimeError(msg)
        return task

    @property
    def uart_output(self) -> list[str]:
        """Return every line printed to the UART."""
        return list(self._state.uart)

    @property
    def trace(self) -> list[str]:
        """Return the execution trace (oldest entries are evicted)."""
        return list(self._trace)

    @property
    def next_instruction(self) -> Instruction:
        """Return the instruction the next micro-step will execute."""
        frames = self._state.frames
        if self._state.tick_due:
            return KERNEL_TICK_PROGRAM[0]
        if frames:
            return frames[-1].program[frames[-1].pc]
        task = self.current_task
        return self._programs[task.tid][self._state.pcs[task.tid]]

    # -- Lifecycle ------------------------------------------------------------

    def reset(self) -> KernelSnapshot:
        """Rebuild the initial state and boot the scheduler.

        Boot always selects the highest-priority READY task.
        """
        self._state = self._build()
        self._logger.clear()
        self._trace.clear()
        if self._source is not None:
            self._source.reset()
        for spec in self._scenario.tasks:
            if spec.initial_delay > 0:
                block_current(self._state.tasks.get(spec.tid), spec.initial_delay, 0)
        self._state.scheduler.select_next()
        self._log(
            LogLevel.INFO,
            f"Scheduler started, running {self.current_task.name}",
            source="kernel",
        )
        return self.snapshot()

    def _build(self) -> SimulationState:
        tasks = TaskTable()
        for spec in self._scenario.tasks:
            tasks.add(Task(tid=spec.tid, name=spec.name, priority=spec.priority, idle=spec.idle))
        mutex = None
        if self._scenario.mutex:
            mutex = InheritanceMutex(
                name=DEFAULT_MUTEX_NAME, inheritance=self._scenario.inheritance
            )
        return SimulationState(
            timer=SysTickTimer(cycles_per_tick=self._scenario.cycles_per_tick),
            tasks=tasks,
            scheduler=ReadyListScheduler(tasks),
            interrupts=InterruptController(),
            mutex=mutex,
            pcs={spec.tid: 0 for spec in self._scenario.tasks},
        )

    # -- Stepping -------------------------------------------------------------

    def step(self, granularity: StepGranularity = StepGranularity.MICRO) -> KernelSnapshot:
        """Advance the simulation and return the new snapshot.

        Raises:
            RuntimeError: If a coarse step does not finish within the
                micro-step guard (a task spinning with interrupts masked).

        """
        match granularity:
            case StepGranularity.MICRO:
                self._micro_step()
            case StepGranularity.INSTRUCTION:
                self._run_until(lambda ran: ran)
            case StepGranularity.TICK:
                start = self.tick
                self._run_until(lambda ran: ran and self.tick > start)
        return self.snapshot()

    def _run_until(self, done: Callable[[bool], bool]) -> None:
        for _ in range(_MAX_MICRO_STEPS):
            if done(self._micro_step()):
                return
        msg = f"Step did not complete within {_MAX_MICRO_STEPS} micro-steps"
        raise RuntimeError(msg)

    def _micro_step(self) -> bool:
        """Execute one instruction; return True if it was a task instruction."""
        st = self._state
        if st.tick_due:
            st.timer.acknowledge()
            st.frames.append(Frame(ExecContext.KERNEL, KERNEL_TICK_PROGRAM))
            self._log(LogLevel.DEBUG, "SysTick interrupt taken", source="tick")

        if st.frames:
            frame = st.frames[-1]
            instruction = frame.program[frame.pc]
            self._record(frame.context, instruction)
            frame.pc += 1
            if frame.context is ExecContext.KERNEL:
                self._execute_kernel(frame, instruction)
            else:
                self._execute_isr(instruction)
            return False

        task = self.current_task
        instruction = self._programs[task.tid][st.pcs[task.tid]]
        self._record(ExecContext.TASK, instruction)
        st.pcs[task.tid] += 1
        self._execute_task(task, instruction)
        st.timer.count_cycle()
        return True

    # -- Kernel context -------------------------------------------------------

    def _execute_kernel(self, frame: Frame, instruction: Instruction) -> None:
        st = self._state
        match instruction:
            case IncrementTick():
                tick = st.timer.increment()
                st.slice_expired = True
                self._log(LogLevel.DEBUG, f"Tick {tick}", source="tick")
            case UnblockDue():
                for task in unblock_due(st.tasks, self.tick):
                    self._log(LogLevel.INFO, f"{task.name} unblocked", source="tick")
            case ServicePending():
                fired = self._source is not None and self._source.should_fire(self.tick)
                interrupts = st.interrupts
                began = interrupts.raise_interrupt() if fired else interrupts.service_pending()
                if began:
                    self._enter_isr()
            case SelectTask():
                self._select()
            case Branch(condition=BranchCondition.NO_SWITCH, target=target):
                if not st.switch_required:
                    frame.pc = target
            case SwitchContext():
                st.switch_required = False
                self._log(
                    LogLevel.INFO,
                    f"Context switch to {self.current_task.name}",
                    source="scheduler",
                )
            case Return():
                st.frames.pop()
            case _:
                msg = f"{instruction} is not a kernel instruction"
                raise ContractViolationError(msg)

    def _select(self) -> None:
        st = self._state
        current = st.scheduler.current
        if (
            st.slice_expired
            and self._scenario.time_slicing
            and current is not None
            and current.state is TaskState.RUNNING
            and st.scheduler.has_ready_peer(current)
        ):
            st.scheduler.rotate()
            self._log(LogLevel.DEBUG, f"Time slice of {current.name} expired", source="scheduler")
        st.slice_expired = False
        previous = st.scheduler.current_id
        chosen = st.scheduler.select_next()
        st.switch_required = chosen != previous

    def _request_reschedule(self) -> None:
        frames = self._state.frames
        if frames and frames[-1].context is ExecContext.KERNEL:
            frames[-1].pc = min(frames[-1].pc, KERNEL_SELECT)
        else:
            frames.append(Frame(ExecContext.KERNEL, KERNEL_TICK_PROGRAM, KERNEL_SELECT))

    # -- ISR context ----------------------------------------------------------

    def _enter_isr(self) -> None:
        self._state.frames.append(Frame(ExecContext.ISR, self._scenario.isr))

    def _execute_isr(self, instruction: Instruction) -> None:
        st = self._state
        match instruction:
            case IsrEntry():
                self._log(LogLevel.INFO, f"{self._scenario.isr.name} entered", source="isr")
            case Execute(label=label):
                self._log(LogLevel.DEBUG, label, source="isr")
            case YieldFromIsr():
                st.interrupts.complete_isr()
                st.frames.pop()
                self._log(LogLevel.INFO, f"{self._scenario.isr.name} finished", source="isr")
                if st.interrupts.service_pending():
                    self._log(LogLevel.INFO, "Tail-chaining pending interrupt", source="isr")
                    self._enter_isr()
                else:
                    self._request_reschedule()
            case _:
                msg = f"{instruction} is not an ISR instruction"
                raise ContractViolationError(msg)

    # -- Task context ---------------------------------------------------------

    def _execute_task(self, task: Task, instruction: Instruction) -> None:
        st = self._state
        match instruction:
            case Execute(label=label):
                self._log(LogLevel.DEBUG, f"{task.name}: {label}", source="task")
            case EnterCritical():
                depth = st.interrupts.enter_critical()
                self._log(LogLevel.DEBUG, f"{task.name} masked IRQs ({depth})", source="task")
            case ExitCritical():
                depth = st.interrupts.exit_critical()
                self._log(LogLevel.DEBUG, f"{task.name} unmasked IRQs ({depth})", source="task")
                if st.interrupts.service_pending():
                    self._log(LogLevel.INFO, "Servicing latched interrupt", source="isr")
                    self._enter_isr()
            case Print() as line:
                text = line.render(self.tick)
                st.uart.append(text)
                self._log(LogLevel.INFO, text, source="uart")
            case Delay(ticks=ticks):
                wake = block_current(task, ticks, self.tick)
                self._log(LogLevel.INFO, f"{task.name} delayed until tick {wake}", source="task")
                self._request_reschedule()
            case Acquire():
                self._acquire(task)
                if task.state is TaskState.BLOCKED:
                    self._request_reschedule()
            case Release():
                self._release(task)
                self._request_reschedule()
            case Yield():
                st.scheduler.rotate()
                self._log(LogLevel.DEBUG, f"{task.name} yielded", source="task")
                self._request_reschedule()
            case WaitForInterrupt():
                st.timer.force_due()
            case Jump(target=target):
                st.pcs[task.tid] = target
            case _:
                msg = f"{instruction} is not a task instruction"
                raise ContractViolationError(msg)

    def _require_mutex(self) -> InheritanceMutex:
        if self._state.mutex is None:
            msg = f"Scenario {self._scenario.name!r} has no mutex"
            raise ContractViolationError(msg)
        return self._state.mutex

    def _acquire(self, task: Task) -> AcquireResult:
        mutex = self._require_mutex()
        result = mutex.try_acquire(task)
        if result.acquired:
            self._log(LogLevel.INFO, f"{task.name} took {mutex.name}", source="mutex")
            return result
        holder = mutex.holder
        assert holder is not None  # noqa: S101
        self._log(
            LogLevel.INFO,
            f"{task.name} blocked on {mutex.name} held by {holder.name}",
            source="mutex",
        )
        if result.boosted_from is not None:
            self._log(
                LogLevel.WARNING,
                f"{holder.name} inherits priority {holder.effective_priority} "
                f"(was {result.boosted_from})",
                source="mutex",
            )
        return result

    def _release(self, task: Task) -> ReleaseResult:
        mutex = self._require_mutex()
        result = mutex.release(task, self._state.tasks)
        message = f"{task.name} gave {mutex.name}"
        if result.restored_from != task.base_priority:
            message += f", priority restored to {task.base_priority}"
        self._log(LogLevel.INFO, message, source="mutex")
        if result.new_holder is not None:
            self._log(
                LogLevel.INFO,
                f"{mutex.name} handed to {result.new_holder.name}",
                source="mutex",
            )
        return result

    # -- Driver operations ----------------------------------------------------

    def set_priority(self, tid: int, value: int) -> KernelSnapshot:
        """Reassign a task's base priority and reschedule.

        Raises:
            KeyError: If there is no such task.
            ValueError: If the priority is negative.
            ContractViolationError: If *tid* is the idle task.

        """
        task = self._state.tasks.get(tid)
        task.set_base_priority(value)
        self._log(LogLevel.INFO, f"{task.name} priority set to {value}", source="scheduler")
        self._reschedule_now()
        return self.snapshot()

    def trigger_interrupt(self) -> bool:
        """Assert the external interrupt line.

        Returns:
            True if the handler begins at the next micro-step, False if
            the request was latched as pending.

        """
        if self._state.interrupts.raise_interrupt():
            self._enter_isr()
            self._log(LogLevel.INFO, "External interrupt raised", source="isr")
            return True
        self._log(LogLevel.WARNING, "External interrupt latched (masked)", source="isr")
        return False

    def request_acquire(self, tid: int) -> AcquireResult:
        """Make task *tid* take the mutex now, then reschedule.

        Raises:
            KeyError: If there is no such task.
            ContractViolationError: If the scenario has no mutex, the task
                is not runnable, or the acquire is re-entrant.

        """
        task = self._state.tasks.get(tid)
        if task.state not in {TaskState.READY, TaskState.RUNNING}:
            msg = f"Task {task.name!r} is {task.state} and cannot take the mutex"
            raise ContractViolationError(msg)
        result = self._acquire(task)
        self._reschedule_now()
        return result

    def request_release(self, tid: int) -> ReleaseResult:
        """Make task *tid* give the mutex back now, then reschedule.

        Raises:
            KeyError: If there is no such task.
            ContractViolationError: If the task does not hold the mutex.

        """
        result = self._release(self._state.tasks.get(tid))
        self._reschedule_now()
        return result

    def _reschedule_now(self) -> None:
        scheduler = self._state.scheduler
        previous = scheduler.current_id
        if scheduler.select_next() != previous:
            self._log(
                LogLevel.INFO,
                f"Preempted, now running {self.current_task.name}",
                source="scheduler",
            )

    # -- Observation ----------------------------------------------------------

    def snapshot(self) -> KernelSnapshot:
        """Return an immutable view of the whole simulation."""
        st = self._state
        last = self._logger.last
        return KernelSnapshot(
            tick=self.tick,
            current_task=st.scheduler.current_id,
            context=str(st.context),
            next_instruction=str(self.next_instruction),
            tasks=tuple(TaskView.of(t, pc=st.pcs[t.tid]) for t in st.tasks),
            interrupts=InterruptView.of(st.interrupts),
            mutex=None if st.mutex is None else MutexView.of(st.mutex),
            uart=tuple(st.uart),
            context_switches=st.scheduler.context_switches,
            log_line="" if last is None else last.message,
        )

    def _log(self, level: LogLevel, message: str, *, source: str) -> None:
        self._logger.log(level, message, source=source, tick=self.tick)

    def _record(self, context: ExecContext, instruction: Instruction) -> None:
        """Append a trace entry, FIFO-evicting past the limit."""
        owner = self.current_task.name if context is ExecContext.TASK else context.upper()
        self._trace.append(f"[{self.tick:>4}] {owner}: {instruction}")
        if len(self._trace) > _MAX_TRACE_ENTRIES:
            del self._trace[: len(self._trace) - _MAX_TRACE_ENTRIES]
