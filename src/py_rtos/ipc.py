"""Inter-task communication — the bounded queue.

A FreeRTOS queue is a fixed-size **ring buffer** of slots.  Producers
copy items in, consumers copy them out, and both block when the queue
is full or empty instead of losing or inventing data.

Two cursors walk around the ring:

- ``write_cursor`` — the slot the next back-of-queue send fills.
- ``read_cursor`` — the slot *last* consumed; the next receive reads
  ``read_cursor + 1``.  It starts at ``capacity - 1`` so the first
  receive reads slot 0, just like ``pcReadFrom`` in FreeRTOS.

An **urgent** send (``xQueueSendToFront``) does not touch the write
cursor at all.  It steps the read cursor *backwards* and writes there,
so the urgent item is the very next one a consumer sees.  The backward
step wraps from 0 to ``capacity - 1``.

Full and empty are not errors — they are normal outcomes that block the
caller.  Blocked producers and consumers are remembered by identity in
strict FIFO order; every successful receive wakes the oldest blocked
sender, and every successful send wakes the oldest blocked receiver.
"""

from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from py_rtos.errors import ContractViolationError

DEFAULT_QUEUE_CAPACITY = 5

T = TypeVar("T")


class QueueStatus(StrEnum):
    """Outcome of a queue operation."""

    SENT = "sent"
    RECEIVED = "received"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class QueueResult(Generic[T]):
    """What happened when a task touched the queue.

    Attributes:
        status: SENT / RECEIVED on success, BLOCKED when the caller must
            wait.
        value: The item received (receive only).
        slot: The slot index written or read, or None when blocked.
        woken: The waiter released by this operation, if any.

    """

    status: QueueStatus
    value: T | None = None
    slot: int | None = None
    woken: str | None = None


class BoundedQueue(Generic[T]):
    """A fixed-capacity ring buffer with FIFO waiter lists."""

    def __init__(self, *, capacity: int = DEFAULT_QUEUE_CAPACITY) -> None:
        """Create an empty queue.

        Args:
            capacity: Number of slots (fixed for the queue's lifetime).

        Raises:
            ValueError: If the capacity is not positive.

        """
        if capacity <= 0:
            msg = f"Queue capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._slots: list[T | None] = [None] * capacity
        self._write_cursor = 0
        self._read_cursor = capacity - 1
        self._count = 0
        self._send_waiters: deque[str] = deque()
        self._receive_waiters: deque[str] = deque()

    @property
    def capacity(self) -> int:
        """Return the number of slots."""
        return self._capacity

    @property
    def slots(self) -> list[T | None]:
        """Return a copy of the slot array (None marks an empty slot)."""
        return list(self._slots)

    @property
    def write_cursor(self) -> int:
        """Return the slot the next back-of-queue send will fill."""
        return self._write_cursor

    @property
    def read_cursor(self) -> int:
        """Return the slot most recently consumed."""
        return self._read_cursor

    @property
    def count(self) -> int:
        """Return the number of occupied slots."""
        return self._count

    @property
    def send_waiters(self) -> list[str]:
        """Return blocked producers, oldest first."""
        return list(self._send_waiters)

    @property
    def receive_waiters(self) -> list[str]:
        """Return blocked consumers, oldest first."""
        return list(self._receive_waiters)

    def is_full(self) -> bool:
        """Return True if every slot is occupied."""
        return self._count == self._capacity

    def is_empty(self) -> bool:
        """Return True if no slot is occupied."""
        return self._count == 0

    def send_to_back(self, value: T, *, sender: str) -> QueueResult[T]:
        """Append *value* at the write cursor (normal FIFO send).

        Args:
            value: The item to enqueue.
            sender: Identity recorded if the sender has to wait.

        Returns:
            SENT with the slot written, or BLOCKED if the queue is full.

        """
        if self.is_full():
            return self._park(self._send_waiters, sender)
        slot = self._write_cursor
        self._slots[slot] = value
        self._write_cursor = (slot + 1) % self._capacity
        self._count += 1
        return QueueResult(QueueStatus.SENT, slot=slot, woken=self._wake(self._receive_waiters))

    def send_to_front(self, value: T, *, sender: str) -> QueueResult[T]:
        """Insert *value* so it is the next item received (urgent send).

        Returns:
            SENT with the slot written, or BLOCKED if the queue is full.

        """
        if self.is_full():
            return self._park(self._send_waiters, sender)
        slot = self._read_cursor
        self._slots[slot] = value
        self._read_cursor = (slot - 1 + self._capacity) % self._capacity
        self._count += 1
        return QueueResult(QueueStatus.SENT, slot=slot, woken=self._wake(self._receive_waiters))

    def receive(self, *, receiver: str) -> QueueResult[T]:
        """Take the oldest item (or the most recent urgent one).

        Args:
            receiver: Identity recorded if the receiver has to wait.

        Returns:
            RECEIVED with the value and slot, or BLOCKED if empty.

        """
        if self.is_empty():
            return self._park(self._receive_waiters, receiver)
        slot = (self._read_cursor + 1) % self._capacity
        value = self._slots[slot]
        self._slots[slot] = None
        self._read_cursor = slot
        self._count -= 1
        return QueueResult(
            QueueStatus.RECEIVED,
            value=value,
            slot=slot,
            woken=self._wake(self._send_waiters),
        )

    def cancel_waiter(self, identity: str) -> bool:
        """Remove a waiter whose block time expired.

        Returns:
            True if the identity was waiting (on either side).

        """
        for waiters in (self._send_waiters, self._receive_waiters):
            if identity in waiters:
                waiters.remove(identity)
                return True
        return False

    def reset(self) -> None:
        """Empty the queue and forget every waiter."""
        self._slots = [None] * self._capacity
        self._write_cursor = 0
        self._read_cursor = self._capacity - 1
        self._count = 0
        self._send_waiters.clear()
        self._receive_waiters.clear()

    def _park(self, waiters: deque[str], identity: str) -> QueueResult[T]:
        if identity in self._send_waiters or identity in self._receive_waiters:
            msg = f"{identity!r} is already blocked on this queue"
            raise ContractViolationError(msg)
        waiters.append(identity)
        return QueueResult(QueueStatus.BLOCKED)

    @staticmethod
    def _wake(waiters: deque[str]) -> str | None:
        return waiters.popleft() if waiters else None

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"BoundedQueue(count={self._count}/{self._capacity})"
