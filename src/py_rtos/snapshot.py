"""Immutable views of engine state for the presentation layer.

A driver never touches engine internals; after each step it reads a
snapshot.  Every view is a frozen dataclass built from the live object
with an ``of`` constructor, and ``to_dict()`` turns it (and any nested
views) into plain dicts ready for JSON.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from py_rtos.io.interrupts import InterruptController
    from py_rtos.ipc import BoundedQueue
    from py_rtos.sync.mutex import InheritanceMutex
    from py_rtos.task.tcb import Task


class View:
    """Base for snapshot dataclasses: adds ``to_dict``."""

    def to_dict(self) -> dict[str, Any]:
        """Return the view as a nested dict of plain values."""
        return asdict(self)  # type: ignore[call-overload]


@dataclass(frozen=True)
class TaskView(View):
    """One row of the task table."""

    tid: int
    name: str
    base_priority: int
    effective_priority: int
    state: str
    wake_tick: int | None
    is_idle: bool
    pc: int | None = None

    @classmethod
    def of(cls, task: Task, *, pc: int | None = None) -> TaskView:
        """Capture *task* (and optionally its program counter)."""
        return cls(
            tid=task.tid,
            name=task.name,
            base_priority=task.base_priority,
            effective_priority=task.effective_priority,
            state=str(task.state),
            wake_tick=task.wake_tick,
            is_idle=task.is_idle,
            pc=pc,
        )


@dataclass(frozen=True)
class InterruptView(View):
    """The interrupt controller's three state fields."""

    critical_nesting: int
    pending: bool
    executing_isr: bool

    @classmethod
    def of(cls, controller: InterruptController) -> InterruptView:
        """Capture *controller*."""
        return cls(
            critical_nesting=controller.critical_nesting,
            pending=controller.pending,
            executing_isr=controller.executing_isr,
        )


@dataclass(frozen=True)
class MutexView(View):
    """Holder and waiters of the mutex, by task id."""

    name: str
    holder: int | None
    waiters: tuple[int, ...]
    inheritance: bool

    @classmethod
    def of(cls, mutex: InheritanceMutex) -> MutexView:
        """Capture *mutex*."""
        holder = mutex.holder
        return cls(
            name=mutex.name,
            holder=None if holder is None else holder.tid,
            waiters=tuple(t.tid for t in mutex.waiters),
            inheritance=mutex.inheritance,
        )


@dataclass(frozen=True)
class QueueView(View):
    """The ring buffer, its cursors, and its waiter lists."""

    capacity: int
    slots: tuple[object, ...]
    write_cursor: int
    read_cursor: int
    count: int
    send_waiters: tuple[str, ...]
    receive_waiters: tuple[str, ...]

    @classmethod
    def of(cls, queue: BoundedQueue[Any]) -> QueueView:
        """Capture *queue*."""
        return cls(
            capacity=queue.capacity,
            slots=tuple(queue.slots),
            write_cursor=queue.write_cursor,
            read_cursor=queue.read_cursor,
            count=queue.count,
            send_waiters=tuple(queue.send_waiters),
            receive_waiters=tuple(queue.receive_waiters),
        )


@dataclass(frozen=True)
class KernelSnapshot(View):
    """Everything the kernel lessons render after a step.

    Attributes:
        tick: The tick count.
        current_task: Id of the RUNNING task.
        context: Which code the CPU is in (task, kernel, or isr).
        next_instruction: Mnemonic of the instruction the next micro-step
            will execute.
        tasks: All tasks by ascending id.
        interrupts: Interrupt controller state.
        mutex: Mutex state, or None if the scenario has no mutex.
        uart: Lines printed so far.
        context_switches: Number of times the running task changed.
        log_line: The latest log message (display only).

    """

    tick: int
    current_task: int | None
    context: str
    next_instruction: str
    tasks: tuple[TaskView, ...]
    interrupts: InterruptView
    mutex: MutexView | None
    uart: tuple[str, ...]
    context_switches: int
    log_line: str

    def task(self, tid: int) -> TaskView:
        """Return the view of task *tid*.

        Raises:
            KeyError: If no such task is in the snapshot.

        """
        for view in self.tasks:
            if view.tid == tid:
                return view
        msg = f"Task {tid} not found"
        raise KeyError(msg)

    @property
    def running(self) -> tuple[TaskView, ...]:
        """Return every task shown as RUNNING (at most one)."""
        return tuple(v for v in self.tasks if v.state == "running")
