"""Kernel event log — a bounded trace buffer.

Every decision the simulated kernel makes (a tick, a wake-up, a context
switch, an interrupt entering its handler) is recorded as a structured
event.  The view layer shows the latest line as a status bar; tests use
the full log to check *why* the state changed, not just *that* it
changed.

Real RTOS ports keep a trace buffer for exactly this purpose
(FreeRTOS+Trace, SEGGER SystemView).  Like theirs, ours is a ring: once
``capacity`` events are stored, the oldest is dropped for each new one,
so a simulation left stepping for hours cannot grow without bound.

- **LogLevel** — severity, ordered for filtering (DEBUG < ERROR).
- **LogEntry** — one immutable record (level, message, source, tick).
- **Logger** — the ring, with filtering by level, source and tick.

The tick is stamped on every entry because it is the only clock the
simulation has.
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum

DEFAULT_LOG_CAPACITY = 5000


class LogLevel(IntEnum):
    """Severity levels for log entries.

    Using IntEnum means levels compare with ``<`` / ``>`` naturally,
    which makes minimum-level filtering trivial.
    """

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single kernel event.

    Attributes:
        level: How noteworthy the event is.
        message: What happened, in words a learner can read.
        source: The subsystem that reported it ("tick", "mutex", ...).
        tick: The tick count when it happened.

    """

    level: LogLevel
    message: str
    source: str
    tick: int = 0

    def __str__(self) -> str:
        """Format as ``[tick] source: message``."""
        return f"[{self.tick:>4}] {self.source}: {self.message}"


class Logger:
    """Fixed-capacity event ring with filtering."""

    def __init__(self, *, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        """Create an empty log.

        Args:
            capacity: Entries kept before the oldest is evicted.

        Raises:
            ValueError: If capacity is not positive.

        """
        if capacity <= 0:
            msg = f"Log capacity must be positive, got {capacity}"
            raise ValueError(msg)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        """Return the maximum number of entries kept."""
        assert self._entries.maxlen is not None  # noqa: S101
        return self._entries.maxlen

    @property
    def entries(self) -> list[LogEntry]:
        """Return the retained entries, oldest first."""
        return list(self._entries)

    @property
    def last(self) -> LogEntry | None:
        """Return the newest entry, or None if the log is empty."""
        return self._entries[-1] if self._entries else None

    def log(self, level: LogLevel, message: str, *, source: str, tick: int = 0) -> None:
        """Record one event, evicting the oldest if the ring is full."""
        self._entries.append(LogEntry(level=level, message=message, source=source, tick=tick))

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
        tick: int | None = None,
    ) -> list[LogEntry]:
        """Return entries matching every given criterion.

        Args:
            min_level: Keep entries at or above this level.
            source: Keep entries from this subsystem only.
            tick: Keep entries recorded at this tick only.

        Returns:
            The matching entries, oldest first.

        """
        return [
            e
            for e in self._entries
            if (min_level is None or e.level >= min_level)
            and (source is None or e.source == source)
            and (tick is None or e.tick == tick)
        ]

    def messages(self, *, source: str | None = None) -> list[str]:
        """Return just the message text, optionally for one source."""
        return [e.message for e in self.filter(source=source)]

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def __len__(self) -> int:
        """Return the number of retained entries."""
        return len(self._entries)
