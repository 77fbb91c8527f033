# Overview: Fire-and-forget background execution with an app context.

from __future__ import annotations

import threading

from flask import current_app


def run_in_background(func, *args, **kwargs) -> threading.Thread | None:
    """
    Run func(*args, **kwargs) on a daemon thread inside a fresh app context.

    Under TESTING (or TASKS_INLINE) the call runs synchronously so tests can
    assert on its effects. Exceptions are logged; nothing is returned to
    the request that scheduled the work.
    """
    app = current_app._get_current_object()

    def _target():
        with app.app_context():
            try:
                func(*args, **kwargs)
            except Exception:
                app.logger.exception("Background task %s failed", getattr(func, "__name__", func))

    if app.config.get("TESTING") or app.config.get("TASKS_INLINE"):
        _target()
        return None

    thread = threading.Thread(target=_target, daemon=True)
    thread.start()
    return thread
