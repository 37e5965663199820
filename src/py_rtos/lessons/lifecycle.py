"""Task lifecycle lesson — one task walked through every state.

``MainTask`` starts READY.  The learner moves it along the FreeRTOS
state diagram by picking one of the actions legal in its current state:

    READY      --dispatch-->  RUNNING      (scheduler selects it)
    RUNNING    --yield----->  READY        (taskYIELD)
    RUNNING    --block----->  BLOCKED      (vTaskDelay)
    RUNNING    --suspend--->  SUSPENDED    (vTaskSuspend)
    BLOCKED    --event----->  READY        (ISR gives what it waited for)
    SUSPENDED  --resume---->  READY        (vTaskResume)

The idle task owns the CPU whenever MainTask does not.  ``step()``
advances one tick; a delay that runs out moves MainTask back to READY
on its own (the timeout path).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from py_rtos.errors import ContractViolationError
from py_rtos.io.timer import SysTickTimer
from py_rtos.logging import Logger, LogLevel
from py_rtos.snapshot import TaskView, View
from py_rtos.task.delays import block_current, unblock_due
from py_rtos.task.tcb import Task, TaskState, TaskTable

IDLE_TID = 0
MAIN_TID = 1
BLOCK_TICKS = 3


class LifecycleAction(StrEnum):
    """Transitions the learner can trigger."""

    DISPATCH = "dispatch"
    YIELD = "yield"
    BLOCK = "block"
    SUSPEND = "suspend"
    EVENT = "event"
    RESUME = "resume"


_LEGAL_ACTIONS: dict[TaskState, tuple[LifecycleAction, ...]] = {
    TaskState.READY: (LifecycleAction.DISPATCH,),
    TaskState.RUNNING: (LifecycleAction.YIELD, LifecycleAction.BLOCK, LifecycleAction.SUSPEND),
    TaskState.BLOCKED: (LifecycleAction.EVENT,),
    TaskState.SUSPENDED: (LifecycleAction.RESUME,),
}


@dataclass(frozen=True)
class LifecycleSnapshot(View):
    """State of the lifecycle lesson after a step."""

    tick: int
    task: TaskView
    idle: TaskView
    running: str
    available_actions: tuple[str, ...]
    log_line: str


class LifecycleLesson:
    """Drive one task through READY, RUNNING, BLOCKED and SUSPENDED."""

    name = "lifecycle"
    title = "Task lifecycle — the four states and how a task moves between them"

    def __init__(self, *, block_ticks: int = BLOCK_TICKS) -> None:
        """Create the lesson with MainTask READY."""
        if block_ticks <= 0:
            msg = f"block_ticks must be positive, got {block_ticks}"
            raise ValueError(msg)
        self._block_ticks = block_ticks
        self._logger = Logger()
        self.reset()

    @property
    def task(self) -> Task:
        """Return MainTask."""
        return self._tasks.get(MAIN_TID)

    @property
    def logger(self) -> Logger:
        """Return the lesson event log."""
        return self._logger

    def reset(self) -> LifecycleSnapshot:
        """Recreate MainTask in READY with the idle task running."""
        self._timer = SysTickTimer()
        self._tasks = TaskTable()
        idle = Task(tid=IDLE_TID, name="Idle", priority=0, idle=True)
        self._tasks.add(idle)
        self._tasks.add(Task(tid=MAIN_TID, name="MainTask", priority=1))
        idle.dispatch()
        self._logger.clear()
        self._log("Task 'MainTask' created in the READY list")
        return self.snapshot()

    def available_actions(self) -> list[LifecycleAction]:
        """Return the actions legal in MainTask's current state."""
        return list(_LEGAL_ACTIONS[self.task.state])

    def perform(
        self,
        action: str,
        params: dict[str, Any] | None = None,  # noqa: ARG002
    ) -> LifecycleSnapshot:
        """Apply one transition.

        Raises:
            KeyError: If the action name is unknown.
            ContractViolationError: If the action is not legal now.

        """
        try:
            chosen = LifecycleAction(action)
        except ValueError:
            msg = f"Unknown action for {self.name}: {action}"
            raise KeyError(msg) from None
        task = self.task
        if chosen not in _LEGAL_ACTIONS[task.state]:
            msg = f"Cannot {chosen} while MainTask is {task.state}"
            raise ContractViolationError(msg)

        idle = self._tasks.idle
        match chosen:
            case LifecycleAction.DISPATCH:
                idle.make_ready(order=self._tasks.next_order())
                task.dispatch()
                self._log("Scheduler picked the highest-priority task")
            case LifecycleAction.YIELD:
                task.make_ready(order=self._tasks.next_order())
                idle.dispatch()
                self._log("Task yielded voluntarily")
            case LifecycleAction.BLOCK:
                wake = block_current(task, self._block_ticks, self._timer.tick_count)
                idle.dispatch()
                self._log(f"Task delayed until tick {wake}")
            case LifecycleAction.SUSPEND:
                task.suspend()
                idle.dispatch()
                self._log("Task suspended explicitly")
            case LifecycleAction.EVENT:
                task.make_ready(order=self._tasks.next_order())
                self._log("Event received, task moved to the READY list")
            case LifecycleAction.RESUME:
                task.resume(order=self._tasks.next_order())
                self._log("Task resumed")
        return self.snapshot()

    def step(self) -> LifecycleSnapshot:
        """Advance one tick; a delay that runs out readies the task."""
        now = self._timer.increment()
        for task in unblock_due(self._tasks, now):
            self._log(f"Timeout: {task.name} moved to the READY list")
        return self.snapshot()

    def snapshot(self) -> LifecycleSnapshot:
        """Return the current state."""
        task = self.task
        idle = self._tasks.idle
        last = self._logger.last
        return LifecycleSnapshot(
            tick=self._timer.tick_count,
            task=TaskView.of(task),
            idle=TaskView.of(idle),
            running=task.name if task.state is TaskState.RUNNING else idle.name,
            available_actions=tuple(str(a) for a in self.available_actions()),
            log_line="" if last is None else last.message,
        )

    def _log(self, message: str) -> None:
        self._logger.log(LogLevel.INFO, message, source="task", tick=self._timer.tick_count)
