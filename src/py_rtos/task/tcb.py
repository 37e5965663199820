"""Tasks and the Task Control Block (TCB).

A task is one thread of control in the RTOS.  The kernel tracks each one
via a TCB holding its id, name, priorities, state, and the bookkeeping
the scheduler needs to break ties.

Two priorities live in every TCB:

- **base priority** — assigned at creation, changed only by an explicit
  reconfiguration (``set_base_priority``).
- **effective priority** — what the scheduler actually compares.  It
  equals the base priority unless a mutex holder has been boosted by
  priority inheritance.

Tasks follow a strict state machine — each transition method enforces
that the task is in a legal source state before moving it::

                 ┌──────── dispatch ────────┐
                 ▼                          │
    BLOCKED ─► READY ◄──── make_ready ──── RUNNING ─► BLOCKED
                 ▲                          │
                 └─ resume ─ SUSPENDED ◄────┘

The idle task is special: it always exists, has priority 0, and may
never block or be suspended — it is what runs when nothing else can.
"""

from __future__ import annotations

from enum import StrEnum
from itertools import count
from typing import TYPE_CHECKING

from py_rtos.errors import ContractViolationError

if TYPE_CHECKING:
    from collections.abc import Iterator

IDLE_PRIORITY = 0


class TaskState(StrEnum):
    """Lifecycle states of a task.

    - READY: eligible to run, waiting for the scheduler to pick it.
    - RUNNING: currently executing on the (single) CPU.
    - BLOCKED: waiting for a delay to expire or a resource to free up.
    - SUSPENDED: parked until explicitly resumed (lifecycle lesson only).
    """

    READY = "ready"
    RUNNING = "running"
    BLOCKED = "blocked"
    SUSPENDED = "suspended"


class Task:
    """A simulated task (the Task Control Block).

    Tasks are created READY.  Their ``insert_order`` is stamped by the
    owning ``TaskTable`` each time they (re)enter READY — the scheduler
    uses it as the FIFO tie-break among equal priorities.
    """

    def __init__(
        self,
        *,
        tid: int,
        name: str,
        priority: int,
        idle: bool = False,
    ) -> None:
        """Create a task in the READY state.

        Args:
            tid: Stable task identifier.
            name: Human-readable label (e.g. "LED Task").
            priority: Base priority (higher = more important, >= 0).
            idle: Whether this is the idle task.

        Raises:
            ValueError: If the priority is negative, or an idle task is
                given a non-zero priority.

        """
        if priority < 0:
            msg = f"Task priority must be non-negative, got {priority}"
            raise ValueError(msg)
        if idle and priority != IDLE_PRIORITY:
            msg = f"The idle task must have priority {IDLE_PRIORITY}, got {priority}"
            raise ValueError(msg)
        self._tid = tid
        self._name = name
        self._base_priority = priority
        self._effective_priority = priority
        self._idle = idle
        self._state = TaskState.READY
        self._wake_tick: int | None = None
        self._insert_order = 0

    @property
    def tid(self) -> int:
        """Return the stable task identifier."""
        return self._tid

    @property
    def name(self) -> str:
        """Return the task name."""
        return self._name

    @property
    def is_idle(self) -> bool:
        """Return True for the idle task."""
        return self._idle

    @property
    def state(self) -> TaskState:
        """Return the current task state."""
        return self._state

    @property
    def base_priority(self) -> int:
        """Return the configured priority."""
        return self._base_priority

    @property
    def effective_priority(self) -> int:
        """Return the priority the scheduler uses (may be boosted)."""
        return self._effective_priority

    @effective_priority.setter
    def effective_priority(self, value: int) -> None:
        """Set the effective priority (used by priority inheritance).

        Raises:
            ContractViolationError: If the value would drop below the
                base priority.

        """
        if value < self._base_priority:
            msg = (
                f"Effective priority {value} of task {self._name!r} "
                f"would drop below its base priority {self._base_priority}"
            )
            raise ContractViolationError(msg)
        self._effective_priority = value

    @property
    def is_boosted(self) -> bool:
        """Return True while the effective priority exceeds the base."""
        return self._effective_priority > self._base_priority

    @property
    def wake_tick(self) -> int | None:
        """Return the tick at which a delayed task wakes.

        None when the task is not BLOCKED, or is blocked on a resource
        with no timeout.
        """
        return self._wake_tick

    @property
    def insert_order(self) -> int:
        """Return the stamp assigned when the task last entered READY."""
        return self._insert_order

    def set_base_priority(self, value: int) -> None:
        """Reconfigure the base priority.

        A boosted task keeps its boost if it is still higher than the
        new base.

        Raises:
            ValueError: If the value is negative.
            ContractViolationError: If this is the idle task.

        """
        if value < 0:
            msg = f"Task priority must be non-negative, got {value}"
            raise ValueError(msg)
        if self._idle:
            msg = "The idle task's priority cannot be changed"
            raise ContractViolationError(msg)
        boosted = self.is_boosted
        self._base_priority = value
        if boosted:
            self._effective_priority = max(value, self._effective_priority)
        else:
            self._effective_priority = value

    def restore_priority(self) -> None:
        """Drop any inherited boost (effective = base)."""
        self._effective_priority = self._base_priority

    # -- State transitions ----------------------------------------------------

    def make_ready(self, *, order: int) -> None:
        """Move RUNNING / BLOCKED / SUSPENDED → READY with a fresh stamp.

        Args:
            order: The insertion stamp from the owning TaskTable.

        Raises:
            ContractViolationError: If the task is already READY.

        """
        if self._state is TaskState.READY:
            msg = f"Cannot make task {self._name!r} ready: already ready"
            raise ContractViolationError(msg)
        self._state = TaskState.READY
        self._wake_tick = None
        self._insert_order = order

    def dispatch(self) -> None:
        """Move READY → RUNNING.

        Raises:
            ContractViolationError: If the task is not READY.

        """
        if self._state is not TaskState.READY:
            msg = f"Cannot dispatch task {self._name!r}: state is {self._state}, expected ready"
            raise ContractViolationError(msg)
        self._state = TaskState.RUNNING

    def block(self, *, wake_tick: int | None = None) -> None:
        """Move READY / RUNNING → BLOCKED.

        Args:
            wake_tick: Tick at which a delay expires, or None to block
                until an event (mutex hand-off, queue space...).

        Raises:
            ContractViolationError: For the idle task, or if the task is
                not READY or RUNNING.

        """
        if self._idle:
            msg = "The idle task can never block"
            raise ContractViolationError(msg)
        if self._state not in {TaskState.READY, TaskState.RUNNING}:
            msg = f"Cannot block task {self._name!r}: state is {self._state}"
            raise ContractViolationError(msg)
        self._state = TaskState.BLOCKED
        self._wake_tick = wake_tick

    def suspend(self) -> None:
        """Move any non-suspended state → SUSPENDED.

        Raises:
            ContractViolationError: For the idle task, or if the task is
                already suspended.

        """
        if self._idle:
            msg = "The idle task can never be suspended"
            raise ContractViolationError(msg)
        if self._state is TaskState.SUSPENDED:
            msg = f"Task {self._name!r} is already suspended"
            raise ContractViolationError(msg)
        self._state = TaskState.SUSPENDED
        self._wake_tick = None

    def resume(self, *, order: int) -> None:
        """Move SUSPENDED → READY.

        Raises:
            ContractViolationError: If the task is not suspended.

        """
        if self._state is not TaskState.SUSPENDED:
            msg = f"Cannot resume task {self._name!r}: state is {self._state}, expected suspended"
            raise ContractViolationError(msg)
        self.make_ready(order=order)

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        prio = f"{self._effective_priority}"
        if self.is_boosted:
            prio += f" (base {self._base_priority})"
        return f"Task({self._tid}, {self._name!r}, prio={prio}, {self._state})"


class TaskTable:
    """The TCB registry — every task in one simulation.

    The table owns the insertion counter, so every READY transition in
    the simulation draws its stamp from one monotonically increasing
    sequence.  Iteration is always in ascending task id, which makes
    every "for each task" loop in the kernel deterministic.
    """

    def __init__(self) -> None:
        """Create an empty task table."""
        self._tasks: dict[int, Task] = {}
        self._order = count(start=1)
        self._idle_tid: int | None = None

    def add(self, task: Task) -> None:
        """Register a READY task and stamp its insertion order.

        Raises:
            ValueError: If the id is taken, a second idle task is added,
                or the task is not READY.

        """
        if task.tid in self._tasks:
            msg = f"Task id {task.tid} already registered"
            raise ValueError(msg)
        if task.is_idle and self._idle_tid is not None:
            msg = "A task table holds exactly one idle task"
            raise ValueError(msg)
        if task.state is not TaskState.READY:
            msg = f"Cannot add task {task.name!r}: state is {task.state}, expected ready"
            raise ValueError(msg)
        task._insert_order = self.next_order()  # noqa: SLF001
        self._tasks[task.tid] = task
        if task.is_idle:
            self._idle_tid = task.tid

    def next_order(self) -> int:
        """Return the next insertion stamp."""
        return next(self._order)

    def get(self, tid: int) -> Task:
        """Return the task with the given id.

        Raises:
            KeyError: If no such task exists.

        """
        task = self._tasks.get(tid)
        if task is None:
            msg = f"Task {tid} not found"
            raise KeyError(msg)
        return task

    @property
    def idle(self) -> Task:
        """Return the idle task.

        Raises:
            RuntimeError: If no idle task was registered.

        """
        if self._idle_tid is None:
            msg = "No idle task registered"
            raise RuntimeError(msg)
        return self._tasks[self._idle_tid]

    def __iter__(self) -> Iterator[Task]:
        """Iterate tasks in ascending id order."""
        return iter([self._tasks[tid] for tid in sorted(self._tasks)])

    def __len__(self) -> int:
        """Return the number of registered tasks."""
        return len(self._tasks)

    def __contains__(self, tid: object) -> bool:
        """Return True if a task with this id is registered."""
        return tid in self._tasks
