"""Tests for counting and binary semaphores."""

import pytest

from py_rtos.errors import ContractViolationError
from py_rtos.sync.semaphore import Semaphore, SemaphoreKind

TOKENS = 3


class TestSemaphoreCreation:
    """Verify construction."""

    def test_starts_full_by_default(self) -> None:
        """A counting semaphore starts with every token available."""
        sem = Semaphore(name="pool", max_count=TOKENS)
        assert sem.count == TOKENS
        assert sem.kind is SemaphoreKind.COUNTING

    def test_binary_starts_empty(self) -> None:
        """A binary semaphore starts taken unless given."""
        sem = Semaphore.binary(name="signal")
        assert sem.count == 0
        assert sem.max_count == 1
        assert sem.kind is SemaphoreKind.BINARY
        assert Semaphore.binary(name="signal", given=True).count == 1

    def test_invalid_max_rejected(self) -> None:
        """max_count must be positive."""
        with pytest.raises(ValueError, match="must be positive"):
            Semaphore(name="bad", max_count=0)

    def test_initial_out_of_range_rejected(self) -> None:
        """initial must fit between zero and max_count."""
        with pytest.raises(ValueError, match="must be within"):
            Semaphore(name="bad", max_count=1, initial=2)


class TestTakeGive:
    """Verify token flow and the waiter line."""

    def test_take_until_empty_then_wait(self) -> None:
        """Takers succeed while tokens last, then queue up."""
        sem = Semaphore(name="pool", max_count=TOKENS)
        results = [sem.take(f"T{i}") for i in range(TOKENS + 1)]
        assert results == [True, True, True, False]
        assert sem.waiters == [f"T{TOKENS}"]

    def test_give_hands_token_to_first_waiter(self) -> None:
        """A give with waiters wakes the oldest and keeps the count at zero."""
        sem = Semaphore.binary(name="signal")
        sem.take("A")
        sem.take("B")
        result = sem.give()
        assert result.accepted
        assert result.woken == "A"
        assert sem.count == 0
        assert sem.waiters == ["B"]

    def test_give_to_full_is_refused(self) -> None:
        """Giving beyond capacity reports accepted=False."""
        sem = Semaphore.binary(name="signal", given=True)
        assert not sem.give().accepted
        assert sem.count == 1

    def test_give_returns_token(self) -> None:
        """With no waiters a give increments the count."""
        sem = Semaphore(name="pool", max_count=TOKENS, initial=0)
        assert sem.give().woken is None
        assert sem.count == 1

    def test_duplicate_waiter_rejected(self) -> None:
        """A taker cannot wait twice."""
        sem = Semaphore.binary(name="signal")
        sem.take("A")
        with pytest.raises(ContractViolationError, match="already waiting"):
            sem.take("A")

    def test_reset_restores_initial(self) -> None:
        """reset returns to the initial count and clears waiters."""
        sem = Semaphore(name="pool", max_count=TOKENS, initial=1)
        sem.take("A")
        sem.take("B")
        sem.reset()
        assert sem.count == 1
        assert sem.waiters == []
