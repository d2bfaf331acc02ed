"""Push-based event streams and the subscriptions attached to them.

An EventStream pushes data, errors and a single completion to its
subscribers. Delivery is synchronous. Each subscriber gets a Subscription
handle that can pause (events are buffered), resume (the buffer is flushed in
order) and cancel (buffered events are dropped, no completion callback).

listen() attaches the same kind of handle to an async iterable; an asyncio
task pulls items and simply stops pulling while paused.

map() and filter() return a child stream that forwards errors and completion.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterable
from typing import Callable, Generic, TypeVar, Union

logger = logging.getLogger("livecell.stream")

T = TypeVar("T")
U = TypeVar("U")

DataCallback = Callable[[T], None]
ErrorCallback = Callable[[BaseException], None]
DoneCallback = Callable[[], None]

_DATA = "data"
_ERROR = "error"
_DONE = "done"


def _ignore_error(error: BaseException) -> None:
    pass


def _ignore_done() -> None:
    pass


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Callback failed while pumping an async source", exc_info=exc)


class Subscription(Generic[T]):
    """Handle for a single listener attached to a source."""

    def __init__(
        self,
        on_data: DataCallback,
        on_error: ErrorCallback | None = None,
        on_done: DoneCallback | None = None,
    ) -> None:
        self._on_data = on_data
        self._on_error = on_error or _ignore_error
        self._on_done = on_done or _ignore_done
        self._paused = False
        self._cancelled = False
        self._done = False

    @property
    def is_paused(self) -> bool:
        return self._paused and not self.closed

    @property
    def closed(self) -> bool:
        """True once cancelled or once the source completed."""
        return self._cancelled or self._done

    def pause(self) -> None:
        if not self.closed:
            self._paused = True

    def resume(self) -> None:
        self._paused = False

    def cancel(self) -> None:
        self._cancelled = True
        self._paused = False

    def _finish(self) -> None:
        self._done = True
        self._paused = False
        self._on_done()


class _StreamSubscription(Subscription[T]):
    def __init__(self, stream: EventStream[T], on_data, on_error, on_done) -> None:
        super().__init__(on_data, on_error, on_done)
        self._stream = stream
        self._buffer: deque[tuple[str, object]] = deque()

    def resume(self) -> None:
        super().resume()
        while self._buffer and not self._paused and not self.closed:
            self._dispatch(*self._buffer.popleft())

    def cancel(self) -> None:
        super().cancel()
        self._buffer.clear()
        self._stream._detach(self)

    def _deliver(self, kind: str, payload: object = None) -> None:
        if self.closed:
            return
        if self._paused or self._buffer:
            self._buffer.append((kind, payload))
            return
        self._dispatch(kind, payload)

    def _dispatch(self, kind: str, payload: object) -> None:
        if kind == _DATA:
            self._on_data(payload)
        elif kind == _ERROR:
            self._on_error(payload)
        else:
            self._stream._detach(self)
            self._finish()


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._subscriptions: list[_StreamSubscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscriptions)

    def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        if self._closed:
            return
        for subscription in list(self._subscriptions):
            subscription._deliver(_DATA, value)

    def emit_error(self, error: BaseException) -> None:
        """Push an error to all subscribers. The stream stays open."""
        if self._closed:
            return
        for subscription in list(self._subscriptions):
            subscription._deliver(_ERROR, error)

    def close(self) -> None:
        """Complete the stream. Paused subscribers see it after their buffer."""
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscriptions):
            subscription._deliver(_DONE)

    def subscribe(
        self,
        on_data: DataCallback,
        on_error: ErrorCallback | None = None,
        on_done: DoneCallback | None = None,
    ) -> Subscription[T]:
        """Register callbacks. Cancel the returned handle to remove them."""
        subscription = _StreamSubscription(self, on_data, on_error, on_done)
        if self._closed:
            subscription._finish()
        else:
            self._subscriptions.append(subscription)
        return subscription

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = EventStream()

        def _on_data(value: T) -> None:
            try:
                mapped = fn(value)
            except Exception as exc:
                child.emit_error(exc)
            else:
                child.emit(mapped)

        self.subscribe(_on_data, child.emit_error, child.close)
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = EventStream()

        def _on_data(value: T) -> None:
            try:
                keep = fn(value)
            except Exception as exc:
                child.emit_error(exc)
            else:
                if keep:
                    child.emit(value)

        self.subscribe(_on_data, child.emit_error, child.close)
        return child

    def _detach(self, subscription: _StreamSubscription[T]) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass  # already removed


class _IteratorSubscription(Subscription[T]):
    """Pumps an async iterable from an asyncio task.

    Needs a running event loop. An exception raised by the iterator is
    reported through on_error and ends the subscription. An exception raised
    by a callback also ends it, and is logged once the task finishes.
    """

    def __init__(self, source: AsyncIterable[T], on_data, on_error, on_done) -> None:
        super().__init__(on_data, on_error, on_done)
        self._gate = asyncio.Event()
        self._gate.set()
        self._task = asyncio.get_running_loop().create_task(self._pump(source))
        self._task.add_done_callback(_log_task_failure)

    def pause(self) -> None:
        super().pause()
        if self._paused:
            self._gate.clear()

    def resume(self) -> None:
        super().resume()
        self._gate.set()

    def cancel(self) -> None:
        super().cancel()
        self._task.cancel()

    async def _pump(self, source: AsyncIterable[T]) -> None:
        # A raising callback still ends the subscription.
        try:
            await self._drain(aiter(source))
        finally:
            if not self.closed:
                self._finish()

    async def _drain(self, iterator) -> None:
        while True:
            await self._gate.wait()
            if self._cancelled:
                return
            try:
                item = await anext(iterator)
            except StopAsyncIteration:
                return
            except Exception as exc:
                if not self._cancelled:
                    self._on_error(exc)
                return
            await self._gate.wait()
            if self._cancelled:
                return
            self._on_data(item)


Source = Union[EventStream[T], AsyncIterable[T]]


def listen(
    source: Source,
    on_data: DataCallback,
    on_error: ErrorCallback | None = None,
    on_done: DoneCallback | None = None,
) -> Subscription[T]:
    """Subscribe to an EventStream or an async iterable."""
    if isinstance(source, EventStream):
        return source.subscribe(on_data, on_error, on_done)
    if isinstance(source, AsyncIterable):
        return _IteratorSubscription(source, on_data, on_error, on_done)
    raise TypeError(
        f"Expected an EventStream or an async iterable, got {type(source).__name__}"
    )
