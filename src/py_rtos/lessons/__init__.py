"""Lesson engines — one self-contained simulator per RTOS concept.

Re-exports public symbols so callers can write::

    from py_rtos.lessons import create_lesson, list_lessons
"""

from py_rtos.lessons.catalog import Lesson, create_lesson, list_lessons
from py_rtos.lessons.context_switch import ContextSwitchLesson
from py_rtos.lessons.inversion import InversionLesson
from py_rtos.lessons.lifecycle import LifecycleAction, LifecycleLesson
from py_rtos.lessons.queues import QueueLesson
from py_rtos.lessons.scheduler import SchedulerLesson
from py_rtos.lessons.semaphores import SemaphoreLesson, SemaphoreMode

__all__ = [
    "ContextSwitchLesson",
    "InversionLesson",
    "Lesson",
    "LifecycleAction",
    "LifecycleLesson",
    "QueueLesson",
    "SchedulerLesson",
    "SemaphoreLesson",
    "SemaphoreMode",
    "create_lesson",
    "list_lessons",
]
