"""Synchronization subsystem — the inheritance mutex and semaphores.

Re-exports public symbols so callers can write::

    from py_rtos.sync import InheritanceMutex, Semaphore
"""

from py_rtos.sync.mutex import (
    DEFAULT_MUTEX_NAME,
    AcquireResult,
    InheritanceMutex,
    ReleaseResult,
)
from py_rtos.sync.semaphore import GiveResult, Semaphore, SemaphoreKind

__all__ = [
    "DEFAULT_MUTEX_NAME",
    "AcquireResult",
    "GiveResult",
    "InheritanceMutex",
    "ReleaseResult",
    "Semaphore",
    "SemaphoreKind",
]
