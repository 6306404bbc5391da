"""Textual integration for pathstate. Opt-in — import only from Textual apps.

Observer callbacks that update widgets need three guards, enforced here
rather than at every callsite:

- skip delivery while the app is not running or is paused (widgets are
  being replaced and queries would fail),
- swallow NoMatches raised by widget queries,
- marshal writes made on a background thread onto the app thread with
  App.call_from_thread.
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

logger = logging.getLogger("pathstate.textual")

# Keyed by id(app) so multiple apps work in tests. An id is present
# exactly while that app is inside a pause() block.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def guard(app, callback):
    """Wrap an observer callback with the pause/NoMatches/thread guards."""
    main = threading.get_ident()

    def _safe(value, previous):
        try:
            callback(value, previous)
        except NoMatches:
            logger.debug("Dropped update for %r: widget not mounted", callback)

    def _guarded(value, previous):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, value, previous)
        else:
            _safe(value, previous)

    return _guarded


def observe(app, state, keypath, callback, init=False):
    """state.observe() with a callback that safely updates Textual widgets.

    Usage:
        def on_mount(self):
            observe(self, self.state, "user.name",
                    lambda name, _: self.query_one("#name").update(name),
                    init=True)
    """
    return state.observe(keypath, guard(app, callback), init)
