"""Lesson catalog — find and build lesson engines by name.

Every lesson is an independent engine with the same small surface:
``reset()``, ``step()``, ``snapshot()`` and ``perform(action, params)``.
The order below is the order a learner meets them, from a single task's
states up to priority inversion.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from py_rtos.lessons.context_switch import ContextSwitchLesson
from py_rtos.lessons.inversion import InversionLesson
from py_rtos.lessons.lifecycle import LifecycleLesson
from py_rtos.lessons.queues import QueueLesson
from py_rtos.lessons.scheduler import SchedulerLesson
from py_rtos.lessons.semaphores import SemaphoreLesson

if TYPE_CHECKING:
    from collections.abc import Callable

    from py_rtos.snapshot import View


class Lesson(Protocol):
    """What every lesson engine offers a driver."""

    name: str
    title: str

    def reset(self) -> View:
        """Return to the initial scenario."""
        ...  # pragma: no cover

    def step(self) -> View:
        """Advance by the lesson's natural unit."""
        ...  # pragma: no cover

    def snapshot(self) -> View:
        """Return the current state."""
        ...  # pragma: no cover

    def perform(self, action: str, params: dict[str, Any]) -> View:
        """Run a named driver action."""
        ...  # pragma: no cover


_LESSON_ORDER: list[str] = [
    "lifecycle",
    "scheduler",
    "context_switch",
    "queues",
    "semaphores",
    "inversion",
]

_FACTORIES: dict[str, Callable[[], Lesson]] = {
    "lifecycle": LifecycleLesson,
    "scheduler": SchedulerLesson,
    "context_switch": ContextSwitchLesson,
    "queues": QueueLesson,
    "semaphores": SemaphoreLesson,
    "inversion": InversionLesson,
}


def list_lessons() -> list[str]:
    """Return lesson names in teaching order."""
    return list(_LESSON_ORDER)


def create_lesson(name: str) -> Lesson:
    """Build a fresh engine for lesson *name*.

    Raises:
        KeyError: If the lesson name is not recognised.

    """
    factory = _FACTORIES.get(name)
    if factory is None:
        msg = f"Unknown lesson: {name}"
        raise KeyError(msg)
    return factory()
