"""Flask application factory for the py-rtos lesson API.

The ``create_app`` function builds every lesson engine once and returns
a Flask app whose routes read snapshots and invoke operations.  The
engines hold all state; the routes only translate HTTP to method calls
and exceptions to status codes:

- ``ContractViolationError`` — the action is illegal right now (409).
- ``ValueError`` — malformed parameters (400).
- ``KeyError`` — unknown lesson, action, task id, or missing parameter (404).
"""

from __future__ import annotations

from typing import Any

from flask import Flask, Response, jsonify, request

from py_rtos.errors import ContractViolationError
from py_rtos.kernel import StepGranularity
from py_rtos.lessons.catalog import Lesson, create_lesson, list_lessons
from py_rtos.lessons.inversion import InversionLesson
from py_rtos.lessons.scheduler import SchedulerLesson

_HTTP_BAD_REQUEST = 400
_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409


def _error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"error": message}), status


def create_app() -> Flask:
    """Create and configure the Flask application.

    Returns:
        A configured Flask application ready to serve.

    """
    lessons: dict[str, Lesson] = {name: create_lesson(name) for name in list_lessons()}

    app = Flask(__name__)

    def _lesson(name: str) -> Lesson:
        lesson = lessons.get(name)
        if lesson is None:
            msg = f"Unknown lesson: {name}"
            raise KeyError(msg)
        return lesson

    @app.errorhandler(ContractViolationError)
    def conflict(error: ContractViolationError) -> tuple[Response, int]:  # pyright: ignore[reportUnusedFunction]
        """Report an action that is illegal in the current state."""
        return _error(str(error), _HTTP_CONFLICT)

    @app.errorhandler(KeyError)
    def not_found(error: KeyError) -> tuple[Response, int]:  # pyright: ignore[reportUnusedFunction]
        """Report an unknown lesson, action, or id."""
        return _error(str(error.args[0]) if error.args else "Not found", _HTTP_NOT_FOUND)

    @app.errorhandler(ValueError)
    def bad_request(error: ValueError) -> tuple[Response, int]:  # pyright: ignore[reportUnusedFunction]
        """Report malformed parameters."""
        return _error(str(error), _HTTP_BAD_REQUEST)

    @app.route("/api/lessons")
    def index() -> Response:  # pyright: ignore[reportUnusedFunction]
        """List lessons in teaching order."""
        return jsonify([{"name": name, "title": lessons[name].title} for name in lessons])

    @app.route("/api/lessons/<name>")
    def show(name: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the lesson's current snapshot."""
        return jsonify(_lesson(name).snapshot().to_dict())

    @app.route("/api/lessons/<name>/reset", methods=["POST"])
    def reset(name: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Restart the lesson from its initial scenario."""
        return jsonify(_lesson(name).reset().to_dict())

    @app.route("/api/lessons/<name>/step", methods=["POST"])
    def step(name: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Advance the lesson.

        Kernel lessons accept an optional JSON body
        ``{"granularity": "micro" | "instruction" | "tick"}``.
        """
        lesson = _lesson(name)
        data: dict[str, Any] = request.get_json(silent=True) or {}
        if isinstance(lesson, SchedulerLesson | InversionLesson) and "granularity" in data:
            snapshot = lesson.step(StepGranularity(data["granularity"]))
        else:
            snapshot = lesson.step()
        return jsonify(snapshot.to_dict())

    @app.route("/api/lessons/<name>/actions/<action>", methods=["POST"])
    def perform(name: str, action: str) -> Response:  # pyright: ignore[reportUnusedFunction]
        """Run a named lesson action with the JSON body as parameters."""
        lesson = _lesson(name)
        data: dict[str, Any] = request.get_json(silent=True) or {}
        return jsonify(lesson.perform(action, data).to_dict())

    return app


def main() -> None:
    """Run the web API development server.

    This is the ``py-rtos-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
