"""Observables driven by asynchronous sources.

FutureObservable wraps a coroutine factory and StreamObservable wraps a push
source. Both hold an AsyncSnapshot and move it forward through the plain
set() primitive, so listeners see every transition the same way they would
see a manual set().

Failures of the underlying source are folded into the snapshot. They are
never raised to whoever started the work.

FutureObservable never cancels work it has started. When refresh(), reload()
or write() overlap, the computation that finishes last wins.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Awaitable, Callable, TypeVar

from livecell.observable import Observable, ObservableDisposedError
from livecell.snapshot import AsyncSnapshot, ConnectionState
from livecell.stream import Source, Subscription, listen

T = TypeVar("T")

Computation = Callable[[], Awaitable[T]]

logger = logging.getLogger("livecell.async_observable")


def _log_task_failure(task: asyncio.Task) -> None:
    # Nobody may await the task, so a raising listener would go unreported.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Listener failed while completing a computation", exc_info=exc)


class AsyncObservable(Observable[AsyncSnapshot[T]]):
    """An Observable of AsyncSnapshot with shortcuts into the snapshot."""

    @property
    def connection_state(self) -> ConnectionState:
        return self.value.connection_state

    @property
    def is_loading(self) -> bool:
        return self.value.connection_state is ConnectionState.WAITING

    @property
    def has_data(self) -> bool:
        return self.value.has_data

    @property
    def data(self) -> T | None:
        return self.value.data

    @property
    def require_data(self) -> T:
        return self.value.require_data

    @property
    def has_error(self) -> bool:
        return self.value.has_error

    @property
    def error(self) -> BaseException | None:
        return self.value.error

    @property
    def traceback(self) -> TracebackType | None:
        return self.value.traceback


class FutureObservable(AsyncObservable[T]):
    """Holds the outcome of a one-shot computation.

    The computation starts as soon as the observable is created, so a running
    event loop is required. refresh() and reload() return the scheduled task
    for callers that want to await the outcome.
    """

    def __init__(self, computation: Computation[T]) -> None:
        super().__init__(AsyncSnapshot.waiting())
        self.computation = computation
        # Strong references so the loop does not drop running tasks.
        self._tasks: set[asyncio.Task] = set()
        self._schedule(computation)

    def refresh(self) -> asyncio.Task:
        """Recompute, keeping the current data visible while pending."""
        self.set(AsyncSnapshot.waiting(self.value.data))
        return self._schedule(self.computation)

    def reload(self) -> asyncio.Task:
        """Drop the current data, go back to waiting and recompute."""
        self.set(AsyncSnapshot.waiting())
        return self._schedule(self.computation)

    async def write(self, computation: Computation[T]) -> None:
        """Run computation and store its result as the new data."""
        await self._resolve(computation)

    async def defer(self, computation: Computation[object], *, refresh: bool = False) -> None:
        """Run a side effect, storing only its failure.

        With refresh=True a successful side effect is followed by refresh(),
        and this coroutine returns once that has settled.
        """
        try:
            await computation()
        except Exception as exc:
            self._complete(AsyncSnapshot.with_error(ConnectionState.DONE, exc))
            return
        if refresh:
            await self.refresh()

    def _schedule(self, computation: Computation[T]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._resolve(computation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_log_task_failure)
        return task

    async def _resolve(self, computation: Computation[T]) -> None:
        try:
            data = await computation()
        except Exception as exc:
            self._complete(AsyncSnapshot.with_error(ConnectionState.DONE, exc))
        else:
            self._complete(AsyncSnapshot.with_data(ConnectionState.DONE, data))

    def _complete(self, snapshot: AsyncSnapshot[T]) -> None:
        if self.disposed:
            logger.debug("Discarding result for disposed %s", type(self).__name__)
            return
        self.set(snapshot)


class StreamObservable(AsyncObservable[T]):
    """Holds the latest event of a push source.

    Subscribes on creation. When the subscription ends, either because the
    source completed or because unsubscribe() was called, the last data (or
    else the last error) is kept and tagged DONE.
    """

    def __init__(self, source: Source[T]) -> None:
        super().__init__(AsyncSnapshot.idle())
        self.source = source
        self._subscription: Subscription[T] | None = None
        self.subscribe()

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def is_paused(self) -> bool:
        return self._subscription is not None and self._subscription.is_paused

    def pause(self) -> None:
        """Stop delivery. Buffering of events is up to the source."""
        if self._subscription is not None:
            self._subscription.pause()

    def resume(self) -> None:
        if self._subscription is not None:
            self._subscription.resume()

    def subscribe(self) -> None:
        """Start listening to the source unless already subscribed."""
        if self.disposed:
            raise ObservableDisposedError(
                f"Cannot subscribe {type(self).__name__} after dispose()"
            )
        if self._subscription is not None:
            return
        subscription = listen(self.source, self._on_data, self._on_error, self._on_done)
        # A source that is already exhausted completes inside listen().
        self._subscription = None if subscription.closed else subscription

    def unsubscribe(self) -> None:
        """Cancel the subscription and keep the last payload as DONE."""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._fold()

    def _on_data(self, data: T) -> None:
        self.set(AsyncSnapshot.with_data(ConnectionState.ACTIVE, data))

    def _on_error(self, error: BaseException) -> None:
        self.set(AsyncSnapshot.with_error(ConnectionState.ACTIVE, error))

    def _on_done(self) -> None:
        self._subscription = None
        self._fold()

    def _fold(self) -> None:
        snapshot = self.value
        if snapshot.has_data:
            self.set(AsyncSnapshot.with_data(ConnectionState.DONE, snapshot.data))
        elif snapshot.has_error:
            self.set(
                AsyncSnapshot.with_error(
                    ConnectionState.DONE, snapshot.error, snapshot.traceback
                )
            )
        else:
            self.set(AsyncSnapshot.idle())

    def dispose(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        super().dispose()
