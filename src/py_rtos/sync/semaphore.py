"""Counting and binary semaphores.

A **counting semaphore** holds up to *N* tokens.  Each ``take`` removes
one; when none are left the caller blocks in a FIFO line.  Each ``give``
either hands its token straight to the first blocked taker or puts it
back in the pot.  Think of a car park with N spaces and a barrier.

A **binary semaphore** is the special case N = 1 — the classic way for
an interrupt handler to say "data is ready" to a task.

Unlike a mutex there is no owner, so there is no priority inheritance:
anyone may give.  Giving to a full semaphore is not an error in FreeRTOS
— ``xSemaphoreGive`` simply returns ``pdFALSE`` — so here it is a status,
too.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import StrEnum

from py_rtos.errors import ContractViolationError


class SemaphoreKind(StrEnum):
    """Flavour of semaphore."""

    BINARY = "binary"
    COUNTING = "counting"


@dataclass(frozen=True)
class GiveResult:
    """Outcome of a give.

    Attributes:
        accepted: False if the semaphore was already full.
        woken: The blocked taker that received the token, if any.

    """

    accepted: bool
    woken: str | None = None


class Semaphore:
    """A bounded token pot with a FIFO line of blocked takers."""

    def __init__(self, *, name: str, max_count: int, initial: int | None = None) -> None:
        """Create a semaphore.

        Args:
            name: Human-readable name.
            max_count: Capacity (1 for a binary semaphore).
            initial: Starting tokens; defaults to full.

        Raises:
            ValueError: If max_count is not positive or initial is out
                of range.

        """
        if max_count <= 0:
            msg = f"max_count must be positive, got {max_count}"
            raise ValueError(msg)
        count = max_count if initial is None else initial
        if not 0 <= count <= max_count:
            msg = f"initial ({count}) must be within [0, {max_count}]"
            raise ValueError(msg)
        self._name = name
        self._max_count = max_count
        self._initial = count
        self._count = count
        self._waiters: deque[str] = deque()

    @classmethod
    def binary(cls, *, name: str, given: bool = False) -> Semaphore:
        """Create a binary semaphore, empty unless *given*."""
        return cls(name=name, max_count=1, initial=1 if given else 0)

    @property
    def name(self) -> str:
        """Return the semaphore name."""
        return self._name

    @property
    def kind(self) -> SemaphoreKind:
        """Return BINARY for a one-token semaphore, else COUNTING."""
        return SemaphoreKind.BINARY if self._max_count == 1 else SemaphoreKind.COUNTING

    @property
    def count(self) -> int:
        """Return the tokens currently available."""
        return self._count

    @property
    def max_count(self) -> int:
        """Return the capacity."""
        return self._max_count

    @property
    def waiters(self) -> list[str]:
        """Return the blocked takers in FIFO order."""
        return list(self._waiters)

    def take(self, taker: str) -> bool:
        """Take a token, or queue *taker* if none is left.

        Returns:
            True if a token was taken, False if the taker now waits.

        Raises:
            ContractViolationError: If *taker* is already waiting.

        """
        if self._count > 0:
            self._count -= 1
            return True
        if taker in self._waiters:
            msg = f"{taker!r} is already waiting on semaphore '{self._name}'"
            raise ContractViolationError(msg)
        self._waiters.append(taker)
        return False

    def give(self) -> GiveResult:
        """Return a token, waking the first waiter if there is one."""
        if self._waiters:
            return GiveResult(accepted=True, woken=self._waiters.popleft())
        if self._count >= self._max_count:
            return GiveResult(accepted=False)
        self._count += 1
        return GiveResult(accepted=True)

    def reset(self) -> None:
        """Restore the initial token count and drop all waiters."""
        self._count = self._initial
        self._waiters.clear()

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"Semaphore('{self._name}', count={self._count}/{self._max_count})"
