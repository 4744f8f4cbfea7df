"""pyreactive - In-memory reactive state store with batched change notifications."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyreactive")
except PackageNotFoundError:
    __version__ = "0+local"
from pyreactive.config import ReactiveConfig
from pyreactive.exceptions import (
    ReactiveAlreadyInitializedError,
    ReactiveConfigError,
    ReactiveDuplicateIdError,
    ReactiveError,
    ReactiveLockedError,
    ReactiveNotFoundError,
    ReactiveUnknownMutationError,
)
from pyreactive.mutations import MutationRegistry, TwoPhaseMutation
from pyreactive.reactive import Reactive, Subscriber
from pyreactive.state.containers import GuardedDict, GuardedList, KeyedCollection, PlainRecord, StateElement, StateTree
from pyreactive.state.events import ChangeEvent, ChangeKind, StateUpdateOp, UpdateAction, WatchPattern
from pyreactive.state.store import StateStore
from pyreactive.state.tracker import ChangeTracker
from pyreactive.state.updates import StateUpdateApplier
from pyreactive.state.watchers import Watcher, WatcherPayload, WatcherRegistry

__all__ = [
    "__version__",
    "ChangeEvent",
    "ChangeKind",
    "ChangeTracker",
    "GuardedDict",
    "GuardedList",
    "KeyedCollection",
    "MutationRegistry",
    "PlainRecord",
    "Reactive",
    "ReactiveAlreadyInitializedError",
    "ReactiveConfig",
    "ReactiveConfigError",
    "ReactiveDuplicateIdError",
    "ReactiveError",
    "ReactiveLockedError",
    "ReactiveNotFoundError",
    "ReactiveUnknownMutationError",
    "StateElement",
    "StateStore",
    "StateTree",
    "StateUpdateApplier",
    "StateUpdateOp",
    "Subscriber",
    "TwoPhaseMutation",
    "UpdateAction",
    "WatchPattern",
    "Watcher",
    "WatcherPayload",
    "WatcherRegistry",
]
