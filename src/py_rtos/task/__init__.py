"""Task subsystem — TCBs, the ready-list scheduler, and time delays.

Re-exports public symbols so callers can write::

    from py_rtos.task import Task, TaskState, TaskTable
"""

from py_rtos.task.delays import block_current, unblock_due
from py_rtos.task.scheduler import ReadyListScheduler, pick_next, select_next
from py_rtos.task.tcb import IDLE_PRIORITY, Task, TaskState, TaskTable

__all__ = [
    "IDLE_PRIORITY",
    "ReadyListScheduler",
    "Task",
    "TaskState",
    "TaskTable",
    "block_current",
    "pick_next",
    "select_next",
    "unblock_due",
]
