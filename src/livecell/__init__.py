"""livecell: observable cells and async-state wrappers for UI state."""

from importlib.metadata import version as _version

__version__ = _version("livecell")

from livecell.observable import Observable, LivecellError, ObservableDisposedError
from livecell.snapshot import AsyncSnapshot, ConnectionState, MissingDataError
from livecell.stream import EventStream, Subscription, listen
from livecell.async_observable import AsyncObservable, FutureObservable, StreamObservable
from livecell.computed import ComputedObservable, computed
# textual NOT auto-imported — opt-in only

__all__ = [
    "Observable",
    "LivecellError",
    "ObservableDisposedError",
    "AsyncSnapshot",
    "ConnectionState",
    "MissingDataError",
    "EventStream",
    "Subscription",
    "listen",
    "AsyncObservable",
    "FutureObservable",
    "StreamObservable",
    "ComputedObservable",
    "computed",
]
