"""Semaphore lesson — counting versus binary.

Three tasks compete for tokens and an interrupt hands them back:

1. Task A, Task B and Task C each take a token.
2. Task A comes back for another one.
3. The ISR gives twice.

With a **counting** semaphore of three tokens the first three takes
succeed, Task A's second take blocks, and the first give goes straight
to Task A.  With a **binary** semaphore only Task A's first take
succeeds; B, C and A queue up in that order and each give releases the
oldest waiter.

Stepping replays the script; ``take`` and ``give`` actions let the
learner improvise on top of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from py_rtos.logging import Logger, LogLevel
from py_rtos.snapshot import View
from py_rtos.sync.semaphore import Semaphore

COUNTING_TOKENS = 3


class SemaphoreMode(StrEnum):
    """Which semaphore the lesson uses."""

    COUNTING = "counting"
    BINARY = "binary"


class SemaphoreOp(StrEnum):
    """Scripted operations."""

    TAKE = "take"
    GIVE = "give"


@dataclass(frozen=True)
class ScriptedEvent:
    """One line of the scenario."""

    op: SemaphoreOp
    actor: str


SCRIPT: tuple[ScriptedEvent, ...] = (
    ScriptedEvent(SemaphoreOp.TAKE, "Task A"),
    ScriptedEvent(SemaphoreOp.TAKE, "Task B"),
    ScriptedEvent(SemaphoreOp.TAKE, "Task C"),
    ScriptedEvent(SemaphoreOp.TAKE, "Task A"),
    ScriptedEvent(SemaphoreOp.GIVE, "ISR"),
    ScriptedEvent(SemaphoreOp.GIVE, "ISR"),
)


@dataclass(frozen=True)
class SemaphoreSnapshot(View):
    """State of the semaphore lesson after a step."""

    mode: str
    count: int
    max_count: int
    waiters: tuple[str, ...]
    position: int
    total_steps: int
    finished: bool
    log_line: str


class SemaphoreLesson:
    """Drive the take/give scenario on a counting or binary semaphore."""

    name = "semaphores"
    title = "Semaphores — counting tokens and binary signals"

    def __init__(self, *, mode: SemaphoreMode = SemaphoreMode.COUNTING) -> None:
        """Create the lesson with a full semaphore."""
        self._logger = Logger()
        self._mode = mode
        self.reset()

    @property
    def mode(self) -> SemaphoreMode:
        """Return the current mode."""
        return self._mode

    @property
    def semaphore(self) -> Semaphore:
        """Return the underlying semaphore."""
        return self._semaphore

    @property
    def finished(self) -> bool:
        """Return True once the whole script has been replayed."""
        return self._position >= len(SCRIPT)

    def set_mode(self, mode: SemaphoreMode) -> SemaphoreSnapshot:
        """Switch between counting and binary and restart."""
        self._mode = mode
        return self.reset()

    def reset(self) -> SemaphoreSnapshot:
        """Restart the script with every token available."""
        tokens = COUNTING_TOKENS if self._mode is SemaphoreMode.COUNTING else 1
        self._semaphore = Semaphore(name="xSemaphore", max_count=tokens)
        self._position = 0
        self._logger.clear()
        self._log(f"{self._semaphore.kind} semaphore created with {tokens} token(s)")
        return self.snapshot()

    def step(self) -> SemaphoreSnapshot:
        """Replay the next scripted event (no-op when finished)."""
        if self.finished:
            return self.snapshot()
        event = SCRIPT[self._position]
        self._position += 1
        match event.op:
            case SemaphoreOp.TAKE:
                self.take(event.actor)
            case SemaphoreOp.GIVE:
                self.give(event.actor)
        return self.snapshot()

    def take(self, taker: str) -> bool:
        """Let *taker* take a token, blocking it if none is left."""
        if self._semaphore.take(taker):
            self._log(f"{taker} took a token ({self._semaphore.count} left)")
            return True
        self._log(f"{taker} blocked, no tokens left")
        return False

    def give(self, giver: str = "ISR") -> bool:
        """Give a token back on behalf of *giver*.

        Returns:
            False if the semaphore was already full.

        """
        result = self._semaphore.give()
        if result.woken is not None:
            self._log(f"{giver} gave, token handed to {result.woken}")
        elif result.accepted:
            self._log(f"{giver} gave a token ({self._semaphore.count} available)")
        else:
            self._logger.log(
                LogLevel.WARNING,
                f"{giver} gave, but the semaphore is already full",
                source="semaphore",
            )
        return result.accepted

    def snapshot(self) -> SemaphoreSnapshot:
        """Return the current state."""
        last = self._logger.last
        return SemaphoreSnapshot(
            mode=str(self._mode),
            count=self._semaphore.count,
            max_count=self._semaphore.max_count,
            waiters=tuple(self._semaphore.waiters),
            position=self._position,
            total_steps=len(SCRIPT),
            finished=self.finished,
            log_line="" if last is None else last.message,
        )

    def perform(self, action: str, params: dict[str, Any]) -> SemaphoreSnapshot:
        """Run a named driver action.

        Raises:
            KeyError: If the action is unknown or a parameter is missing.
            ValueError: If the mode name is not recognised.

        """
        match action:
            case "take":
                self.take(str(params["taker"]))
            case "give":
                self.give(str(params.get("giver", "ISR")))
            case "set_mode":
                return self.set_mode(SemaphoreMode(params["mode"]))
            case _:
                msg = f"Unknown action for {self.name}: {action}"
                raise KeyError(msg)
        return self.snapshot()

    def _log(self, message: str) -> None:
        self._logger.log(LogLevel.INFO, message, source="semaphore")
