"""SysTick — the periodic timer that drives the kernel's clock.

On a Cortex-M part the **SysTick** timer fires at a fixed rate (often
1 kHz).  Each time it fires, the kernel's tick handler increments the
global tick counter and checks whether any delayed task should wake.

Our simulation has no wall clock, so the timer counts *work* instead:
every task instruction the CPU executes is one cycle, and after
``cycles_per_tick`` cycles a tick becomes due.  The idle task's
wait-for-interrupt instruction fast-forwards — it makes the tick due at
once, exactly like ``__WFI()`` sleeping until the next SysTick.

The tick counter only ever moves forward; ``reset()`` is the single way
back to zero.
"""

DEFAULT_CYCLES_PER_TICK = 8


class SysTickTimer:
    """Count ticks and decide when the next one is due."""

    def __init__(self, *, cycles_per_tick: int = DEFAULT_CYCLES_PER_TICK) -> None:
        """Create a timer at tick zero.

        Args:
            cycles_per_tick: Task instructions executed between ticks.

        Raises:
            ValueError: If cycles_per_tick is not positive.

        """
        if cycles_per_tick <= 0:
            msg = f"cycles_per_tick must be positive, got {cycles_per_tick}"
            raise ValueError(msg)
        self._cycles_per_tick = cycles_per_tick
        self._tick_count = 0
        self._cycles = 0
        self._forced = False

    @property
    def tick_count(self) -> int:
        """Return the number of ticks since reset."""
        return self._tick_count

    @property
    def cycles_per_tick(self) -> int:
        """Return the number of task instructions per tick."""
        return self._cycles_per_tick

    @property
    def cycles(self) -> int:
        """Return the cycles counted since the last tick was taken."""
        return self._cycles

    @property
    def due(self) -> bool:
        """Return True when the next tick should be taken."""
        return self._forced or self._cycles >= self._cycles_per_tick

    def increment(self) -> int:
        """Advance the tick counter by exactly one and return it."""
        self._tick_count += 1
        return self._tick_count

    def count_cycle(self) -> bool:
        """Record one executed task instruction.

        Returns:
            True if a tick is now due.

        """
        self._cycles += 1
        return self.due

    def force_due(self) -> None:
        """Make the next tick due immediately (wait-for-interrupt)."""
        self._forced = True

    def acknowledge(self) -> None:
        """Clear the due condition once the tick handler has been entered."""
        self._cycles = 0
        self._forced = False

    def reset(self) -> None:
        """Return to tick zero."""
        self._tick_count = 0
        self.acknowledge()
