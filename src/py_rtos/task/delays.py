"""Blocking and unblocking on time — ``vTaskDelay`` and the delayed list.

A task that calls ``vTaskDelay(n)`` is taken off the ready list and
parked until the tick counter reaches ``now + n``.  At every tick the
kernel walks the parked tasks and moves the due ones back to READY.

When several tasks wake on the same tick they are processed in
ascending task id, so each gets its READY stamp in a reproducible order.
Tasks blocked on a resource (``wake_tick is None``) are left alone —
only the resource can release them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from py_rtos.errors import ContractViolationError
from py_rtos.task.tcb import TaskState

if TYPE_CHECKING:
    from py_rtos.task.tcb import Task, TaskTable


def block_current(task: Task, delay_ticks: int, now: int) -> int:
    """Block *task* for *delay_ticks* ticks starting at *now*.

    Returns:
        The tick at which the task becomes READY again.

    Raises:
        ContractViolationError: If the delay is not positive.

    """
    if delay_ticks <= 0:
        msg = f"Delay must be at least one tick, got {delay_ticks}"
        raise ContractViolationError(msg)
    wake_tick = now + delay_ticks
    task.block(wake_tick=wake_tick)
    return wake_tick


def unblock_due(tasks: TaskTable, now: int) -> list[Task]:
    """Move every delayed task whose wake tick has arrived back to READY.

    Returns:
        The tasks that woke, in the order they were made READY.

    """
    woke = [
        t
        for t in tasks
        if t.state is TaskState.BLOCKED and t.wake_tick is not None and t.wake_tick <= now
    ]
    for task in woke:
        task.make_ready(order=tasks.next_order())
    return woke
