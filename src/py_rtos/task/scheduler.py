"""Ready-list scheduler — decides which task gets the CPU next.

An RTOS scheduler is far simpler than a desktop one: the highest
*effective* priority READY task always runs.  Two details make it
interesting:

- **The running task is still a candidate.**  It competes with the
  READY tasks on equal terms; it is only preempted when somebody beats
  it.
- **Round robin among equals.**  Every time a task enters READY it is
  stamped with a fresh ``insert_order``.  Among tasks tied at the top
  priority, the *oldest* stamp wins.  A task that yields is re-stamped,
  which puts it at the back of its priority's line — so equal-priority
  peers alternate.

The idle task loses every tie and is the fallback when nothing else is
READY, so selection never fails.

The selection itself (``pick_next``) is a pure function; ``select_next``
applies the state changes a context switch implies.  ``ReadyListScheduler``
wraps both and remembers who is running.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from py_rtos.task.tcb import Task, TaskState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from py_rtos.task.tcb import TaskTable

_CANDIDATE_STATES = frozenset({TaskState.READY, TaskState.RUNNING})


def _rank(task: Task) -> tuple[int, bool, int]:
    """Sort key: priority first, non-idle before idle, then oldest stamp."""
    return (task.effective_priority, not task.is_idle, -task.insert_order)


def pick_next(tasks: Iterable[Task]) -> Task:
    """Return the task that should be running, without changing anything.

    Raises:
        RuntimeError: If there is no READY or RUNNING task at all (the
            idle task is missing).

    """
    candidates = [t for t in tasks if t.state in _CANDIDATE_STATES]
    if not candidates:
        msg = "No runnable task (is the idle task registered?)"
        raise RuntimeError(msg)
    return max(candidates, key=_rank)


def select_next(tasks: TaskTable, current_id: int | None) -> int:
    """Select the next task and apply the context-switch side effects.

    If the selection differs from the currently running task, that task
    goes back to READY with a fresh insertion stamp (back of the line)
    and the winner becomes RUNNING.

    Args:
        tasks: The task table.
        current_id: The id of the task the CPU was running, if any.

    Returns:
        The id of the task now running.

    """
    chosen = pick_next(tasks)
    if current_id is not None and current_id != chosen.tid:
        previous = tasks.get(current_id)
        if previous.state is TaskState.RUNNING:
            previous.make_ready(order=tasks.next_order())
    if chosen.state is TaskState.READY:
        chosen.dispatch()
    return chosen.tid


class ReadyListScheduler:
    """Track the running task and re-run selection on demand.

    The kernel must call ``select_next`` after every tick, every block or
    unblock, every priority change, every mutex ownership change, and
    every yield requested by an interrupt.
    """

    def __init__(self, tasks: TaskTable) -> None:
        """Create a scheduler over *tasks* with nothing running yet."""
        self._tasks = tasks
        self._current_id: int | None = None
        self._context_switches = 0

    @property
    def current_id(self) -> int | None:
        """Return the id of the running task, or None before boot."""
        return self._current_id

    @property
    def current(self) -> Task | None:
        """Return the running task, or None before boot."""
        if self._current_id is None:
            return None
        return self._tasks.get(self._current_id)

    @property
    def context_switches(self) -> int:
        """Return the number of times the running task changed."""
        return self._context_switches

    def select_next(self) -> int:
        """Run selection, apply its side effects, and return the new id."""
        previous = self._current_id
        chosen = select_next(self._tasks, previous)
        if previous is not None and chosen != previous:
            self._context_switches += 1
        self._current_id = chosen
        return chosen

    def has_ready_peer(self, task: Task) -> bool:
        """Return True if another READY task shares *task*'s priority."""
        return any(
            t is not task
            and t.state is TaskState.READY
            and t.effective_priority == task.effective_priority
            for t in self._tasks
        )

    def rotate(self) -> bool:
        """Move the running task to the back of its priority's line.

        Returns:
            True if the task was re-stamped, False if nothing is running.

        """
        current = self.current
        if current is None or current.state is not TaskState.RUNNING:
            return False
        current.make_ready(order=self._tasks.next_order())
        return True
