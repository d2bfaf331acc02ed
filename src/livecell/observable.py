"""Observable values — a cell that notifies its listeners when it changes.

An Observable holds one value and an ordered set of zero-argument listeners.
set() replaces the value and calls every listener synchronously, in
registration order, before returning. There is no batching and no equality
check: every set() is one notification pass.

The owner disposes the observable exactly once when its scope ends. After
that it never notifies again.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Listener = Callable[[], None]

logger = logging.getLogger("livecell.observable")


class LivecellError(Exception):
    """Base class for programmer errors raised by livecell."""


class ObservableDisposedError(LivecellError):
    """An operation would bring a disposed observable back to life."""


class Observable(Generic[T]):
    """A single value with a set of change listeners."""

    def __init__(self, value: T) -> None:
        self._value = value
        # dict as an insertion-ordered set
        self._listeners: dict[Listener, None] = {}
        self._disposed = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def has_listeners(self) -> bool:
        return bool(self._listeners)

    def set(self, value: T) -> None:
        """Replace the value and notify every registered listener.

        After dispose() this is a no-op. A warning is logged unless Python
        runs with -O.
        """
        if self._disposed:
            if __debug__:
                logger.warning(
                    "Called set() on %s after it was disposed", type(self).__name__
                )
            return
        self._value = value
        self._notify()

    def add_listener(self, listener: Listener) -> None:
        """Register a listener. Registering the same callable twice is a no-op."""
        if self._disposed:
            raise ObservableDisposedError(
                f"Cannot add a listener to {type(self).__name__} after dispose()"
            )
        self._listeners[listener] = None

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.pop(listener, None)

    def _notify(self) -> None:
        # Snapshot, then skip anything removed while the pass is running.
        for listener in list(self._listeners):
            if listener in self._listeners:
                listener()

    def dispose(self) -> None:
        """Drop all listeners. The observable never notifies again."""
        self._listeners.clear()
        self._disposed = True

    def __enter__(self) -> Observable[T]:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = ", disposed" if self._disposed else ""
        return f"{type(self).__name__}({self._value!r}{state})"
