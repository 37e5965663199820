"""JSON web driver for the py-rtos lessons.

This package provides a Flask application that lets a browser front-end
drive the lesson engines over HTTP.  It is an **optional** extra —
install with::

    pip install py-rtos[web]

The ``create_app`` factory in ``app.py`` builds one engine per lesson
and serves:

- ``GET /api/lessons`` — lesson names and titles.
- ``GET /api/lessons/<name>`` — the lesson's current snapshot.
- ``POST /api/lessons/<name>/reset`` — restart the lesson.
- ``POST /api/lessons/<name>/step`` — advance it.
- ``POST /api/lessons/<name>/actions/<action>`` — run a lesson action.
"""
