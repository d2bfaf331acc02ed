"""Computed values — derived state over an explicit list of dependencies.

A ComputedObservable wraps a function and the observables it reads. The
function runs once on creation and again, synchronously, every time any
dependency notifies. There is no caching or diffing: each dependency
notification is one recompute and one notification of our own listeners.

The dependencies are only listened to, never owned. dispose() removes our
listener from each of them and leaves them alone otherwise.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

from livecell.observable import Observable

T = TypeVar("T")


class ComputedObservable(Observable[T]):
    """A derived value that recomputes whenever a dependency changes."""

    def __init__(self, compute: Callable[[], T], deps: Iterable[Observable]) -> None:
        super().__init__(compute())
        self.compute = compute
        self.deps: tuple[Observable, ...] = tuple(deps)
        try:
            for dep in self.deps:
                dep.add_listener(self._recompute)
        except Exception:
            # Undo partial registration; the caller never gets this object.
            for dep in self.deps:
                dep.remove_listener(self._recompute)
            raise

    def _recompute(self) -> None:
        # We may still be in a snapshot taken before our own dispose().
        if self.disposed:
            return
        self.set(self.compute())

    def dispose(self) -> None:
        """Disconnect from all dependencies. They are not disposed."""
        for dep in self.deps:
            dep.remove_listener(self._recompute)
        super().dispose()

    def __repr__(self) -> str:
        name = getattr(self.compute, "__name__", "compute")
        return f"ComputedObservable({name}, {self.value!r})"


def computed(*deps: Observable) -> Callable[[Callable[[], T]], ComputedObservable[T]]:
    """Decorator factory to create a ComputedObservable from a function.

    Usage:
        price = Observable(10)
        quantity = Observable(3)

        @computed(price, quantity)
        def total():
            return price.value * quantity.value

        total.value  # 30
        quantity.set(4)
        total.value  # 40
    """

    def decorator(fn: Callable[[], T]) -> ComputedObservable[T]:
        return ComputedObservable(fn, deps)

    return decorator
