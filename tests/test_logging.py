"""Tests for the kernel event log.

The logger records structured entries for every kernel decision, each
stamped with the tick at which it happened.
"""

import pytest

from py_rtos.logging import DEFAULT_LOG_CAPACITY, LogEntry, Logger, LogLevel

TICK = 3
SMALL_CAPACITY = 3


class TestLogLevel:
    """Verify log level ordering."""

    def test_levels_are_ordered(self) -> None:
        """DEBUG < INFO < WARNING < ERROR."""
        assert LogLevel.DEBUG < LogLevel.INFO
        assert LogLevel.INFO < LogLevel.WARNING
        assert LogLevel.WARNING < LogLevel.ERROR


class TestLogEntry:
    """Verify log entry structure."""

    def test_entry_has_fields(self) -> None:
        """A log entry stores level, message, source, and tick."""
        entry = LogEntry(level=LogLevel.INFO, message="hello", source="tick", tick=TICK)
        assert entry.level is LogLevel.INFO
        assert entry.message == "hello"
        assert entry.source == "tick"
        assert entry.tick == TICK

    def test_str_format(self) -> None:
        """str() shows the tick, source, and message."""
        entry = LogEntry(level=LogLevel.INFO, message="hello", source="tick", tick=TICK)
        assert str(entry) == "[   3] tick: hello"


class TestLogger:
    """Verify the append-only log."""

    def test_empty_logger(self) -> None:
        """A new logger has no entries."""
        logger = Logger()
        assert logger.entries == []
        assert logger.last is None

    def test_log_appends_in_order(self) -> None:
        """Entries come back in the order they were logged."""
        logger = Logger()
        logger.log(LogLevel.INFO, "first", source="tick")
        logger.log(LogLevel.DEBUG, "second", source="task")
        assert [e.message for e in logger.entries] == ["first", "second"]
        assert logger.last is not None
        assert logger.last.message == "second"

    def test_entries_is_a_copy(self) -> None:
        """Mutating the returned list does not touch the log."""
        logger = Logger()
        logger.log(LogLevel.INFO, "only", source="tick")
        logger.entries.clear()
        assert len(logger.entries) == 1

    def test_filter_by_level(self) -> None:
        """min_level keeps entries at or above the level."""
        logger = Logger()
        logger.log(LogLevel.DEBUG, "noise", source="task")
        logger.log(LogLevel.WARNING, "boost", source="mutex")
        assert [e.message for e in logger.filter(min_level=LogLevel.INFO)] == ["boost"]

    def test_filter_by_source(self) -> None:
        """source keeps entries from one subsystem."""
        logger = Logger()
        logger.log(LogLevel.INFO, "tick 1", source="tick")
        logger.log(LogLevel.INFO, "switch", source="scheduler")
        assert logger.messages(source="scheduler") == ["switch"]

    def test_clear(self) -> None:
        """clear removes every entry."""
        logger = Logger()
        logger.log(LogLevel.INFO, "gone", source="tick")
        logger.clear()
        assert logger.entries == []

    def test_filter_by_tick(self) -> None:
        """tick keeps entries recorded at that tick."""
        logger = Logger()
        logger.log(LogLevel.INFO, "early", source="tick", tick=1)
        logger.log(LogLevel.INFO, "late", source="tick", tick=TICK)
        assert [e.message for e in logger.filter(tick=TICK)] == ["late"]


class TestLoggerCapacity:
    """Verify the ring behaviour."""

    def test_default_capacity(self) -> None:
        """The default capacity is used when none is given."""
        assert Logger().capacity == DEFAULT_LOG_CAPACITY

    def test_oldest_entries_evicted(self) -> None:
        """Past capacity the oldest entries drop out."""
        logger = Logger(capacity=SMALL_CAPACITY)
        for n in range(SMALL_CAPACITY + 2):
            logger.log(LogLevel.DEBUG, f"event {n}", source="tick")
        assert len(logger) == SMALL_CAPACITY
        assert logger.messages() == ["event 2", "event 3", "event 4"]

    def test_invalid_capacity(self) -> None:
        """Capacity must be positive."""
        with pytest.raises(ValueError, match="must be positive"):
            Logger(capacity=0)
