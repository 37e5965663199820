"""Mutex with the priority inheritance protocol.

Priority inversion happens when a high-priority task blocks on a mutex
held by a low-priority task, while a medium-priority task (which
doesn't need the mutex) keeps running instead.  The high-priority task
starves because the low-priority holder never gets enough CPU time to
finish and release the lock.  This is the bug that kept rebooting the
Mars Pathfinder lander in 1997.

The fix is **priority inheritance**: when a task blocks on a mutex whose
holder has a lower effective priority, the holder is temporarily boosted
to the waiter's priority.  The medium task can no longer preempt it, the
holder finishes, releases the lock, and drops back to its base priority.

Two more details mirror FreeRTOS:

- **Direct hand-off** — on release the highest-priority waiter (FIFO
  among equals) becomes the new holder immediately, so no third task can
  steal the mutex between the release and the waiter's wake-up.
- **Single resource** — releasing always restores the base priority; the
  simulation never holds two inheritance obligations at once.

The mutex only changes task state.  The caller must re-run the scheduler
after every acquire and release.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from py_rtos.errors import ContractViolationError
from py_rtos.task.tcb import TaskState

if TYPE_CHECKING:
    from py_rtos.task.tcb import Task, TaskTable

DEFAULT_MUTEX_NAME = "xMutex"


@dataclass(frozen=True)
class AcquireResult:
    """Outcome of one acquire attempt.

    Attributes:
        acquired: True if the caller now holds the mutex.
        boosted_from: The holder's previous effective priority if this
            attempt boosted it, else None.

    """

    acquired: bool
    boosted_from: int | None = None


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of a release.

    Attributes:
        new_holder: The waiter the mutex was handed to, or None.
        restored_from: The releaser's effective priority before it was
            restored (equal to its base priority when it was not boosted).

    """

    new_holder: Task | None
    restored_from: int


class InheritanceMutex:
    """A single-owner lock that boosts its holder on contention.

    Waiters are kept in attempt order; on release the highest effective
    priority wins and ties go to the earliest attempt.
    """

    def __init__(self, *, name: str = DEFAULT_MUTEX_NAME, inheritance: bool = True) -> None:
        """Create an unlocked mutex.

        Args:
            name: Human-readable name.
            inheritance: Whether contention boosts the holder.

        """
        self._name = name
        self._inheritance = inheritance
        self._holder: Task | None = None
        self._waiters: list[Task] = []
        self._boosts = 0

    @property
    def name(self) -> str:
        """Return the mutex name."""
        return self._name

    @property
    def inheritance(self) -> bool:
        """Return whether priority inheritance is active."""
        return self._inheritance

    @inheritance.setter
    def inheritance(self, value: bool) -> None:
        """Enable or disable priority inheritance."""
        self._inheritance = value

    @property
    def holder(self) -> Task | None:
        """Return the owning task, or None when unlocked."""
        return self._holder

    @property
    def waiters(self) -> list[Task]:
        """Return the blocked tasks in attempt order."""
        return list(self._waiters)

    @property
    def boosts(self) -> int:
        """Return how many times a holder has been boosted."""
        return self._boosts

    def try_acquire(self, task: Task) -> AcquireResult:
        """Take the mutex, or block *task* on it.

        Args:
            task: The task attempting to acquire.

        Returns:
            Whether the mutex was acquired and whether the holder was
            boosted.

        Raises:
            ContractViolationError: If *task* already holds the mutex,
                is already waiting, or must block but cannot (the idle
                task).

        """
        if self._holder is None:
            self._holder = task
            return AcquireResult(acquired=True)
        if self._holder is task:
            msg = f"Task {task.name!r} already holds mutex '{self._name}' (not recursive)"
            raise ContractViolationError(msg)
        if task in self._waiters:
            msg = f"Task {task.name!r} is already waiting on mutex '{self._name}'"
            raise ContractViolationError(msg)

        task.block()
        self._waiters.append(task)

        holder = self._holder
        if self._inheritance and task.effective_priority > holder.effective_priority:
            previous = holder.effective_priority
            holder.effective_priority = task.effective_priority
            self._boosts += 1
            return AcquireResult(acquired=False, boosted_from=previous)
        return AcquireResult(acquired=False)

    def release(self, task: Task, tasks: TaskTable) -> ReleaseResult:
        """Release the mutex and hand it to the best waiter.

        Args:
            task: The releasing task (must be the holder).
            tasks: The task table, for the woken waiter's READY stamp.

        Returns:
            The new holder (if any) and the releaser's pre-restore
            priority.

        Raises:
            ContractViolationError: If *task* does not hold the mutex.

        """
        if self._holder is not task:
            owner = "nobody" if self._holder is None else repr(self._holder.name)
            msg = f"Task {task.name!r} cannot release mutex '{self._name}' held by {owner}"
            raise ContractViolationError(msg)

        restored_from = task.effective_priority
        self._holder = None
        task.restore_priority()

        if not self._waiters:
            return ReleaseResult(new_holder=None, restored_from=restored_from)

        best = max(
            range(len(self._waiters)),
            key=lambda i: (self._waiters[i].effective_priority, -i),
        )
        waiter = self._waiters.pop(best)
        if waiter.state is TaskState.BLOCKED:
            waiter.make_ready(order=tasks.next_order())
        self._holder = waiter
        return ReleaseResult(new_holder=waiter, restored_from=restored_from)

    def reset(self) -> None:
        """Unlock and forget all waiters (inheritance setting is kept)."""
        self._holder = None
        self._waiters.clear()
        self._boosts = 0

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        state = f"held by {self._holder.name!r}" if self._holder else "unlocked"
        return f"InheritanceMutex('{self._name}', {state}, waiters={len(self._waiters)})"
