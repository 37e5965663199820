"""Tests for the interrupt controller and interrupt sources."""

import pytest

from py_rtos.errors import ContractViolationError
from py_rtos.io.interrupts import (
    InterruptController,
    PeriodicInterruptSource,
    SeededInterruptSource,
)

INTERVAL = 3
DRAWS = 50
SEED = 7


class TestCriticalSections:
    """Verify nestable masking."""

    def test_enter_nests(self) -> None:
        """Each enter deepens the nesting."""
        ic = InterruptController()
        ic.enter_critical()
        assert ic.enter_critical() == 2
        assert ic.is_masked

    def test_exit_unmasks_at_zero(self) -> None:
        """Interrupts unmask only once every enter is matched."""
        ic = InterruptController()
        ic.enter_critical()
        ic.enter_critical()
        ic.exit_critical()
        assert ic.is_masked
        ic.exit_critical()
        assert not ic.is_masked

    def test_exit_at_zero_clamps(self) -> None:
        """Exiting an unentered section is a benign no-op."""
        ic = InterruptController()
        assert ic.exit_critical() == 0
        assert ic.critical_nesting == 0


class TestLatching:
    """Verify raising, latching, and servicing."""

    def test_unmasked_raise_begins_handler(self) -> None:
        """An interrupt raised with masking off runs at once."""
        ic = InterruptController()
        assert ic.raise_interrupt()
        assert ic.executing_isr
        assert not ic.pending

    def test_masked_raise_latches(self) -> None:
        """An interrupt raised in a critical section is latched."""
        ic = InterruptController()
        ic.enter_critical()
        assert not ic.raise_interrupt()
        assert ic.pending
        assert not ic.executing_isr

    def test_latch_is_not_counted(self) -> None:
        """Several masked assertions leave exactly one pending interrupt."""
        ic = InterruptController()
        ic.enter_critical()
        ic.raise_interrupt()
        ic.raise_interrupt()
        ic.exit_critical()
        assert ic.service_pending()
        ic.complete_isr()
        assert not ic.service_pending()
        assert ic.total_serviced == 1

    def test_service_pending_waits_for_unmask(self) -> None:
        """A latched interrupt is not taken while still masked."""
        ic = InterruptController()
        ic.enter_critical()
        ic.raise_interrupt()
        assert not ic.service_pending()
        ic.exit_critical()
        assert ic.service_pending()
        assert ic.executing_isr

    def test_raise_during_handler_latches(self) -> None:
        """A second request while the handler runs is taken afterwards."""
        ic = InterruptController()
        ic.raise_interrupt()
        assert not ic.raise_interrupt()
        ic.complete_isr()
        assert ic.service_pending()

    def test_complete_without_handler_rejected(self) -> None:
        """Finishing a handler that never started is a contract violation."""
        with pytest.raises(ContractViolationError, match="No interrupt handler"):
            InterruptController().complete_isr()

    def test_reset_clears_everything(self) -> None:
        """reset unmasks and forgets pending and executing flags."""
        ic = InterruptController()
        ic.enter_critical()
        ic.raise_interrupt()
        ic.reset()
        assert ic.critical_nesting == 0
        assert not ic.pending
        assert ic.total_raised == 0


class TestInterruptSources:
    """Verify deterministic interrupt injection."""

    def test_periodic_fires_on_multiples(self) -> None:
        """The periodic source fires every interval ticks, never at zero."""
        source = PeriodicInterruptSource(interval=INTERVAL)
        fired = [tick for tick in range(10) if source.should_fire(tick)]
        assert fired == [3, 6, 9]

    def test_periodic_rejects_bad_interval(self) -> None:
        """The interval must be positive."""
        with pytest.raises(ValueError, match="must be positive"):
            PeriodicInterruptSource(interval=0)

    def test_seeded_source_repeats_after_reset(self) -> None:
        """The same seed gives the same firings after a reset."""
        source = SeededInterruptSource(probability=0.5, seed=SEED)
        first = [source.should_fire(t) for t in range(DRAWS)]
        source.reset()
        assert [source.should_fire(t) for t in range(DRAWS)] == first

    def test_seeded_sources_agree(self) -> None:
        """Two sources with one seed produce identical runs."""
        a = SeededInterruptSource(probability=0.5, seed=SEED)
        b = SeededInterruptSource(probability=0.5, seed=SEED)
        assert [a.should_fire(t) for t in range(DRAWS)] == [
            b.should_fire(t) for t in range(DRAWS)
        ]

    def test_probability_extremes(self) -> None:
        """Probability 0 never fires and 1 always fires."""
        never = SeededInterruptSource(probability=0.0)
        always = SeededInterruptSource(probability=1.0)
        assert not any(never.should_fire(t) for t in range(DRAWS))
        assert all(always.should_fire(t) for t in range(DRAWS))

    def test_probability_out_of_range_rejected(self) -> None:
        """The probability must lie in [0, 1]."""
        with pytest.raises(ValueError, match="within"):
            SeededInterruptSource(probability=1.5)
