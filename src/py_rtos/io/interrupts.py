"""Interrupt controller — masking, latching, and servicing.

In a real microcontroller an external pin (say, a button on EXTI line 0)
raises an **interrupt request**.  The NVIC (Nested Vectored Interrupt
Controller) decides whether the CPU may take it right now:

- **Critical sections** — ``taskENTER_CRITICAL()`` masks interrupts and
  may be nested; they are unmasked again only when every enter has been
  matched by an exit.  Think of it as a "do not disturb" sign with a
  counter on it.
- **Latching** — an interrupt raised while masked is not lost.  The NVIC
  sets its *pending* bit and takes the interrupt as soon as masking is
  lifted.  Several assertions while masked still leave just one pending
  bit — there is no counting.
- **One at a time** — while a handler runs, a new request on the same
  line is latched too, and taken when the handler finishes
  (tail-chaining).

Our simulation has a single external interrupt source, so the state is
just three fields: the nesting counter, the pending flag, and whether a
handler is executing.  The kernel calls ``service_pending()`` at every
"evaluation opportunity" — each tick, each critical-section exit, and
each handler exit.

Interrupt *injection* is deterministic: a driver either triggers
interrupts explicitly, or plugs in an ``InterruptSource``.  The random
source takes a seed, so every run with the same seed is identical.
"""

import random
from typing import Protocol

from py_rtos.errors import ContractViolationError

DEFAULT_INTERRUPT_PROBABILITY = 0.1


class InterruptController:
    """Track interrupt masking, the pending latch, and handler execution."""

    def __init__(self) -> None:
        """Create a controller with interrupts enabled and nothing pending."""
        self._critical_nesting = 0
        self._pending = False
        self._executing_isr = False
        self._total_raised = 0
        self._total_serviced = 0

    @property
    def critical_nesting(self) -> int:
        """Return the critical-section nesting depth."""
        return self._critical_nesting

    @property
    def pending(self) -> bool:
        """Return True if an interrupt is latched but not yet taken."""
        return self._pending

    @property
    def executing_isr(self) -> bool:
        """Return True while the handler is running."""
        return self._executing_isr

    @property
    def is_masked(self) -> bool:
        """Return True while inside at least one critical section."""
        return self._critical_nesting > 0

    @property
    def can_service(self) -> bool:
        """Return True if a new handler could start right now."""
        return self._critical_nesting == 0 and not self._executing_isr

    @property
    def total_raised(self) -> int:
        """Return the number of interrupt assertions seen."""
        return self._total_raised

    @property
    def total_serviced(self) -> int:
        """Return the number of handler executions begun."""
        return self._total_serviced

    def enter_critical(self) -> int:
        """Mask interrupts (nestable) and return the new depth."""
        self._critical_nesting += 1
        return self._critical_nesting

    def exit_critical(self) -> int:
        """Leave one critical-section level and return the new depth.

        Exiting at depth zero is a benign no-op: the counter clamps at
        zero rather than corrupting later masking decisions.
        """
        self._critical_nesting = max(0, self._critical_nesting - 1)
        return self._critical_nesting

    def raise_interrupt(self) -> bool:
        """Assert the interrupt line.

        Returns:
            True if the handler begins immediately, False if the request
            was latched as pending.

        """
        self._total_raised += 1
        if self.can_service:
            self._begin()
            return True
        self._pending = True
        return False

    def service_pending(self) -> bool:
        """Take a latched interrupt if masking allows it.

        Returns:
            True if a pending interrupt's handler just began.

        """
        if self._pending and self.can_service:
            self._begin()
            return True
        return False

    def complete_isr(self) -> None:
        """Mark the running handler as finished.

        Raises:
            ContractViolationError: If no handler is running.

        """
        if not self._executing_isr:
            msg = "No interrupt handler is executing"
            raise ContractViolationError(msg)
        self._executing_isr = False

    def reset(self) -> None:
        """Unmask, clear the latch, and forget any running handler."""
        self._critical_nesting = 0
        self._pending = False
        self._executing_isr = False
        self._total_raised = 0
        self._total_serviced = 0

    def _begin(self) -> None:
        self._pending = False
        self._executing_isr = True
        self._total_serviced += 1

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return (
            f"InterruptController(nesting={self._critical_nesting}, "
            f"pending={self._pending}, executing_isr={self._executing_isr})"
        )


class InterruptSource(Protocol):
    """Something that may assert the external interrupt on a given tick."""

    def should_fire(self, tick: int) -> bool:
        """Return True if the interrupt line is asserted at *tick*."""
        ...  # pragma: no cover

    def reset(self) -> None:
        """Rewind to the initial state so a reset run repeats exactly."""
        ...  # pragma: no cover


class PeriodicInterruptSource:
    """Assert the interrupt every ``interval`` ticks."""

    def __init__(self, *, interval: int) -> None:
        """Create a periodic source.

        Raises:
            ValueError: If the interval is not positive.

        """
        if interval <= 0:
            msg = f"Interval must be positive, got {interval}"
            raise ValueError(msg)
        self._interval = interval

    @property
    def interval(self) -> int:
        """Return the ticks between assertions."""
        return self._interval

    def should_fire(self, tick: int) -> bool:
        """Fire on every multiple of the interval."""
        return tick > 0 and tick % self._interval == 0

    def reset(self) -> None:
        """Nothing to rewind — the source is a pure function of the tick."""


class SeededInterruptSource:
    """Assert the interrupt at random ticks, reproducibly.

    Uses a private ``random.Random`` seeded at construction (and again on
    reset), so results never depend on global random state.
    """

    def __init__(
        self,
        *,
        probability: float = DEFAULT_INTERRUPT_PROBABILITY,
        seed: int = 0,
    ) -> None:
        """Create a random source.

        Raises:
            ValueError: If the probability is outside [0, 1].

        """
        if not 0.0 <= probability <= 1.0:
            msg = f"Probability must be within [0, 1], got {probability}"
            raise ValueError(msg)
        self._probability = probability
        self._seed = seed
        self._rng = random.Random(seed)  # noqa: S311

    @property
    def probability(self) -> float:
        """Return the per-tick firing probability."""
        return self._probability

    def should_fire(self, tick: int) -> bool:  # noqa: ARG002
        """Draw once per tick from the seeded generator."""
        return self._rng.random() < self._probability

    def reset(self) -> None:
        """Reseed so the same sequence of firings repeats."""
        self._rng = random.Random(self._seed)  # noqa: S311
