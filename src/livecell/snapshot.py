"""Async snapshots — immutable state of an asynchronous source.

A snapshot is replaced wholesale on every transition. Data and error are
never carried together: with_data() clears the error and with_error() clears
the data. The one exception is waiting(data), used by refresh to keep stale
data visible while the new computation is pending.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from types import TracebackType
from typing import Generic, TypeVar

from livecell.observable import LivecellError

T = TypeVar("T")


class MissingDataError(LivecellError):
    """require_data was read from a snapshot that holds no data."""


class ConnectionState(enum.Enum):
    """Where an asynchronous source is in its lifecycle."""

    IDLE = "idle"
    WAITING = "waiting"
    ACTIVE = "active"
    DONE = "done"


@dataclass(frozen=True)
class AsyncSnapshot(Generic[T]):
    connection_state: ConnectionState
    data: T | None = None
    error: BaseException | None = None
    traceback: TracebackType | None = None

    @classmethod
    def idle(cls) -> AsyncSnapshot[T]:
        return cls(ConnectionState.IDLE)

    @classmethod
    def waiting(cls, data: T | None = None) -> AsyncSnapshot[T]:
        """Waiting state. Pass the previous data to keep it visible."""
        return cls(ConnectionState.WAITING, data=data)

    @classmethod
    def with_data(cls, state: ConnectionState, data: T) -> AsyncSnapshot[T]:
        return cls(state, data=data)

    @classmethod
    def with_error(
        cls,
        state: ConnectionState,
        error: BaseException,
        traceback: TracebackType | None = None,
    ) -> AsyncSnapshot[T]:
        if traceback is None:
            traceback = error.__traceback__
        return cls(state, error=error, traceback=traceback)

    def in_state(self, state: ConnectionState) -> AsyncSnapshot[T]:
        """Same data and error, different connection state."""
        return replace(self, connection_state=state)

    @property
    def has_data(self) -> bool:
        return self.data is not None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def require_data(self) -> T:
        if self.data is not None:
            return self.data
        raise MissingDataError(
            f"Snapshot in state {self.connection_state.value!r} has no data"
        ) from self.error
