"""Tests for the lesson catalog."""

import json

import pytest

from py_rtos.lessons.catalog import create_lesson, list_lessons

EXPECTED_ORDER = [
    "lifecycle",
    "scheduler",
    "context_switch",
    "queues",
    "semaphores",
    "inversion",
]


class TestCatalog:
    """Verify lesson discovery."""

    def test_teaching_order(self) -> None:
        """Lessons are listed from simplest to most involved."""
        assert list_lessons() == EXPECTED_ORDER

    @pytest.mark.parametrize("name", EXPECTED_ORDER)
    def test_create_each_lesson(self, name: str) -> None:
        """Every listed lesson can be built and observed as JSON."""
        lesson = create_lesson(name)
        assert lesson.name == name
        assert lesson.title
        json.dumps(lesson.step().to_dict())
        json.dumps(lesson.reset().to_dict())

    def test_unknown_lesson(self) -> None:
        """Unknown names raise KeyError."""
        with pytest.raises(KeyError, match="Unknown lesson"):
            create_lesson("networking")

    def test_fresh_engines(self) -> None:
        """Each call returns an independent engine."""
        assert create_lesson("queues") is not create_lesson("queues")
