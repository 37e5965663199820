"""Queue lesson — a five-slot ring buffer between producers and consumers.

The learner plays both sides: every *send* is a new producer task
calling ``xQueueSend`` (or ``xQueueSendToFront`` when urgent), every
*receive* is a new consumer calling ``xQueueReceive``.  When the queue
is full a producer blocks; when it is empty a consumer blocks.  Each
blocked caller waits at most ``ticks_to_wait`` ticks (``None`` waits
forever, like ``portMAX_DELAY``); ``step()`` advances one tick and
expires the callers whose time ran out.

A blocked caller that is woken — because a receive made space, or a
send delivered data — retries its operation at once, exactly like a
FreeRTOS task leaving the event list and looping back into
``xQueueGenericSend``.

Values for sends that do not name one are drawn from a seeded
generator, so every run with the same seed is identical.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from itertools import count
from typing import Any

from py_rtos.ipc import DEFAULT_QUEUE_CAPACITY, BoundedQueue, QueueResult, QueueStatus
from py_rtos.logging import Logger, LogLevel
from py_rtos.snapshot import QueueView, View

DEFAULT_TICKS_TO_WAIT = 2
DEFAULT_SEED = 0
_MIN_VALUE = 1
_MAX_VALUE = 99


@dataclass(frozen=True)
class WaiterView(View):
    """A caller blocked on the queue."""

    identity: str
    operation: str
    value: int | None
    urgent: bool
    deadline: int | None


@dataclass(frozen=True)
class QueueSnapshot(View):
    """State of the queue lesson after a step."""

    tick: int
    queue: QueueView
    waiting: tuple[WaiterView, ...]
    received: tuple[int, ...]
    log_line: str


@dataclass(frozen=True)
class _Pending:
    operation: str
    value: int | None
    urgent: bool
    deadline: int | None


class QueueLesson:
    """Drive the queue demonstration."""

    name = "queues"
    title = "Queues — a ring buffer with blocking producers and consumers"

    def __init__(
        self,
        *,
        capacity: int = DEFAULT_QUEUE_CAPACITY,
        seed: int = DEFAULT_SEED,
    ) -> None:
        """Create the lesson with an empty queue."""
        self._queue: BoundedQueue[int] = BoundedQueue(capacity=capacity)
        self._seed = seed
        self._logger = Logger()
        self.reset()

    @property
    def queue(self) -> BoundedQueue[int]:
        """Return the underlying queue."""
        return self._queue

    @property
    def logger(self) -> Logger:
        """Return the lesson event log."""
        return self._logger

    @property
    def tick(self) -> int:
        """Return the lesson's tick count."""
        return self._tick

    @property
    def received(self) -> list[int]:
        """Return every value consumed so far, in order."""
        return list(self._received)

    def reset(self) -> QueueSnapshot:
        """Empty the queue, forget all callers, and reseed."""
        self._queue.reset()
        self._rng = random.Random(self._seed)  # noqa: S311
        self._tick = 0
        self._pending: dict[str, _Pending] = {}
        self._received: list[int] = []
        self._senders = count(1)
        self._receivers = count(1)
        self._logger.clear()
        self._log(LogLevel.INFO, f"Queue created ({self._queue.capacity} slots)")
        return self.snapshot()

    def request_send(
        self,
        value: int | None = None,
        *,
        urgent: bool = False,
        ticks_to_wait: int | None = DEFAULT_TICKS_TO_WAIT,
    ) -> QueueResult[int]:
        """Start a new producer sending *value*.

        Args:
            value: The item; drawn from the seeded generator when None.
            urgent: Send to the front instead of the back.
            ticks_to_wait: Block time if the queue is full (None waits
                forever).

        Raises:
            ValueError: If ticks_to_wait is not positive.

        """
        self._check_wait(ticks_to_wait)
        if value is None:
            value = self._rng.randint(_MIN_VALUE, _MAX_VALUE)
        identity = f"sender-{next(self._senders)}"
        pending = _Pending(
            operation="send",
            value=value,
            urgent=urgent,
            deadline=self._deadline(ticks_to_wait),
        )
        return self._attempt(identity, pending)

    def request_receive(
        self,
        *,
        ticks_to_wait: int | None = DEFAULT_TICKS_TO_WAIT,
    ) -> QueueResult[int]:
        """Start a new consumer receiving from the queue.

        Raises:
            ValueError: If ticks_to_wait is not positive.

        """
        self._check_wait(ticks_to_wait)
        identity = f"receiver-{next(self._receivers)}"
        pending = _Pending(
            operation="receive",
            value=None,
            urgent=False,
            deadline=self._deadline(ticks_to_wait),
        )
        return self._attempt(identity, pending)

    def step(self) -> QueueSnapshot:
        """Advance one tick and time out expired callers."""
        self._tick += 1
        expired = [
            identity
            for identity, pending in self._pending.items()
            if pending.deadline is not None and pending.deadline <= self._tick
        ]
        for identity in expired:
            self._queue.cancel_waiter(identity)
            del self._pending[identity]
            self._log(LogLevel.WARNING, f"{identity} timed out")
        return self.snapshot()

    def snapshot(self) -> QueueSnapshot:
        """Return the current state."""
        last = self._logger.last
        waiting = tuple(
            WaiterView(identity, p.operation, p.value, p.urgent, p.deadline)
            for identity, p in self._pending.items()
        )
        return QueueSnapshot(
            tick=self._tick,
            queue=QueueView.of(self._queue),
            waiting=waiting,
            received=tuple(self._received),
            log_line="" if last is None else last.message,
        )

    def perform(self, action: str, params: dict[str, Any]) -> QueueSnapshot:
        """Run a named driver action.

        Raises:
            KeyError: If the action is unknown.

        """
        match action:
            case "send":
                value = params.get("value")
                self.request_send(
                    None if value is None else int(value),
                    urgent=bool(params.get("urgent", False)),
                )
            case "receive":
                self.request_receive()
            case _:
                msg = f"Unknown action for {self.name}: {action}"
                raise KeyError(msg)
        return self.snapshot()

    # -- Internals ------------------------------------------------------------

    def _attempt(self, identity: str, pending: _Pending) -> QueueResult[int]:
        if pending.operation == "send":
            assert pending.value is not None  # noqa: S101
            send = self._queue.send_to_front if pending.urgent else self._queue.send_to_back
            result = send(pending.value, sender=identity)
        else:
            result = self._queue.receive(receiver=identity)

        match result.status:
            case QueueStatus.BLOCKED:
                self._pending[identity] = pending
                side = "full" if pending.operation == "send" else "empty"
                self._log(LogLevel.INFO, f"Queue {side}: {identity} blocked")
            case QueueStatus.SENT:
                where = "front" if pending.urgent else "back"
                self._log(
                    LogLevel.INFO,
                    f"{identity} sent {pending.value} to the {where} (slot {result.slot})",
                )
            case QueueStatus.RECEIVED:
                assert result.value is not None  # noqa: S101
                self._received.append(result.value)
                self._log(LogLevel.INFO, f"{identity} received {result.value} (slot {result.slot})")

        if result.woken is not None:
            woken = self._pending.pop(result.woken)
            self._log(LogLevel.INFO, f"{result.woken} woken, retrying")
            self._attempt(result.woken, woken)
        return result

    def _deadline(self, ticks_to_wait: int | None) -> int | None:
        return None if ticks_to_wait is None else self._tick + ticks_to_wait

    @staticmethod
    def _check_wait(ticks_to_wait: int | None) -> None:
        if ticks_to_wait is not None and ticks_to_wait <= 0:
            msg = f"ticks_to_wait must be positive or None, got {ticks_to_wait}"
            raise ValueError(msg)

    def _log(self, level: LogLevel, message: str) -> None:
        self._logger.log(level, message, source="queue", tick=self._tick)
