"""Textual integration for livecell. Opt-in — requires textual.

bind() is the listening half of a rebuild-on-notify widget: it registers a
listener on an observable and calls back into the app only when the widget
tree can be queried. Deregistering is the caller's job (Binding.dispose(),
typically from on_unmount). Disposing the observable stays with its owner.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Generic, TypeVar

from textual.css.query import NoMatches

from livecell.observable import Observable

ObsT = TypeVar("ObsT", bound=Observable)

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound callbacks during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


class Binding(Generic[ObsT]):
    """Listener registration of one callback on one observable."""

    def __init__(self, app, observable: ObsT, fn: Callable[[ObsT], None]) -> None:
        self.app = app
        self.observable = observable
        self._fn = fn
        self._main = threading.get_ident()
        self._bound = True
        observable.add_listener(self._on_change)

    @property
    def bound(self) -> bool:
        return self._bound

    def _on_change(self) -> None:
        if not is_safe(self.app):
            return
        if threading.get_ident() != self._main:
            self.app.call_from_thread(self._safe)
        else:
            self._safe()

    def _safe(self) -> None:
        try:
            self._fn(self.observable)
        except NoMatches:
            pass

    def dispose(self) -> None:
        """Stop listening. The observable itself is left alone."""
        self.observable.remove_listener(self._on_change)
        self._bound = False


def bind(
    app,
    observable: ObsT,
    fn: Callable[[ObsT], None],
    *,
    fire_immediately: bool = False,
) -> Binding[ObsT]:
    """Call fn(observable) on every change while the app is safe to query.

    Guards against firing during pause/not-running, catches NoMatches
    from widget queries, and marshals cross-thread calls via call_from_thread.
    """
    binding = Binding(app, observable, fn)
    if fire_immediately:
        binding._on_change()
    return binding
