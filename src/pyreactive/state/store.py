"""In-memory reactive state store.

This is the only component that owns the state tree. It is read-only at
rest: every write happens inside a *bracket* opened with
``set_read_only(False)`` and closed with ``set_read_only(True)``. Closing the
outermost bracket flushes the collected change events to the watchers as one
batch.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Hashable, Iterable, Iterator, Mapping
from typing import Any

from pyreactive.config import ReactiveConfig
from pyreactive.exceptions import (
    ReactiveAlreadyInitializedError,
    ReactiveLockedError,
    ReactiveNotFoundError,
)
from pyreactive.state.containers import (
    Container,
    KeyedCollection,
    PlainRecord,
    StateElement,
    StateTree,
    build_tree,
)
from pyreactive.state.events import ChangeEvent, ChangeKind, ElementId, StateUpdateOp
from pyreactive.state.tracker import ChangeTracker
from pyreactive.state.updates import StateUpdateApplier
from pyreactive.state.watchers import ReadyHandler, Watcher, WatcherRegistry

_logger = logging.getLogger(__name__)


class StateStore:
    """Owns the state tree, the write lock and the change tracker.

    Parameters
    ----------
    state
        Optional pre-seeded tree. Passing it performs the initial load, so
        :meth:`set_initial_state` cannot be called again afterwards.
    config
        Instance configuration (debug name, id field, event tracing).
    watchers
        Watcher registry to notify; a private one is created by default.
    """

    def __init__(
        self,
        state: Mapping[str, Any] | None = None,
        *,
        config: ReactiveConfig | None = None,
        watchers: WatcherRegistry | None = None,
    ) -> None:
        self._config = config or ReactiveConfig()
        self._watchers = watchers if watchers is not None else WatcherRegistry()
        self._tracker = ChangeTracker()
        self._tree = StateTree()
        self._depth = 0
        self._initialized = False
        self._removed: dict[tuple[str, ElementId], StateElement] = {}
        self._batches = 0
        if state is not None:
            self.set_initial_state(state)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> ReactiveConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def watchers(self) -> WatcherRegistry:
        return self._watchers

    @property
    def state(self) -> StateTree:
        """The whole tree; writes through it are rejected while locked."""
        return self._tree

    @property
    def read_only(self) -> bool:
        return self._depth == 0

    @property
    def depth(self) -> int:
        """Current bracket nesting depth (0 at rest)."""
        return self._depth

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def batches_delivered(self) -> int:
        """Number of notification batches sent so far."""
        return self._batches

    # ------------------------------------------------------------------
    # Write lock
    # ------------------------------------------------------------------

    def set_read_only(self, read_only: bool) -> None:
        """Close (``True``) or open (``False``) a write bracket.

        Brackets nest; only the outermost close flushes the change batch.
        Closing while already at rest does nothing.
        """
        if not read_only:
            self._depth += 1
            if self._depth == 1:
                _logger.debug("%s: write window opened", self.name)
            return

        if self._depth == 0:
            _logger.debug("%s: set_read_only(True) while already read-only", self.name)
            return
        self._depth -= 1
        if self._depth == 0:
            self._close_window()

    @contextlib.contextmanager
    def mutable(self) -> Iterator[StateTree]:
        """Open one bracket for the duration of the ``with`` block."""
        self.set_read_only(False)
        try:
            yield self._tree
        finally:
            self.set_read_only(True)

    def reset_lock(self) -> None:
        """Force the store back to read-only, delivering any pending batch."""
        if self._depth == 0:
            return
        _logger.debug("%s: forcing read-only from depth %d", self.name, self._depth)
        self._depth = 0
        self._close_window()

    def ensure_writable(self, scope: str, attribute: str | None = None) -> None:
        if self._depth == 0:
            raise ReactiveLockedError(scope=scope, attribute=attribute)

    def record_change(self, event: ChangeEvent, detached: StateElement | None = None) -> None:
        if detached is not None and event.element_id is not None:
            self._removed[(event.scope, event.element_id)] = detached
        self._tracker.record(event)

    def _close_window(self) -> None:
        events = self._tracker.flush()
        removed = self._removed
        self._removed = {}
        _logger.debug("%s: write window closed with %d event(s)", self.name, len(events))
        if not events:
            return
        if self._config.trace_events:
            for event in events:
                _logger.debug(
                    "%s: %s %s[%r].%s", self.name, event.kind, event.scope, event.element_id, event.attribute
                )
        self._batches += 1

        def resolve(event: ChangeEvent) -> StateElement | PlainRecord | None:
            if event.kind == ChangeKind.DELETED and event.element_id is not None:
                return removed.get((event.scope, event.element_id))
            return self._resolve_element(event)

        self._watchers.notify(events, self._tree, resolve)

    def _resolve_element(self, event: ChangeEvent) -> StateElement | PlainRecord | None:
        container = self._tree.get(event.scope)
        if isinstance(container, PlainRecord):
            return container
        if isinstance(container, KeyedCollection) and event.element_id is not None:
            if event.element_id in container:
                return container.get(event.element_id)
        return None

    # ------------------------------------------------------------------
    # Initial state
    # ------------------------------------------------------------------

    def set_initial_state(self, state: Mapping[str, Any]) -> None:
        """Replace the whole tree. Allowed exactly once per store."""
        if self._initialized:
            raise ReactiveAlreadyInitializedError(f"{self.name}: initial state already loaded")
        tree = build_tree(state, self, id_field=self._config.id_field)
        self._tree = tree
        self._initialized = True
        _logger.debug("%s: initial state loaded with keys %s", self.name, list(tree))
        self._watchers.notify_ready(tree)

    def subscribe(
        self,
        subscriber_id: Hashable,
        watchers: Iterable[Watcher] = (),
        *,
        on_ready: ReadyHandler | None = None,
    ) -> None:
        """Register a subscriber; late subscribers get their ready call immediately."""
        self._watchers.subscribe(subscriber_id, watchers, on_ready=on_ready)
        if self._initialized:
            self._watchers.notify_ready(self._tree, subscriber_id)

    def unsubscribe(self, subscriber_id: Hashable) -> bool:
        return self._watchers.unsubscribe(subscriber_id)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get_all(self, scope: str) -> Container:
        """Return the live container for *scope*."""
        container = self._tree.get(scope)
        if container is None:
            raise ReactiveNotFoundError(scope=scope)
        return container

    def get(self, scope: str, element_id: ElementId | None = None) -> Container | StateElement:
        """Return an element, or the whole container when *element_id* is None."""
        container = self.get_all(scope)
        if element_id is None:
            return container
        if not isinstance(container, KeyedCollection):
            raise ReactiveNotFoundError(f"{scope!r} is not a keyed collection", scope=scope, element_id=element_id)
        return container.get(element_id)

    def has(self, scope: str, element_id: ElementId | None = None) -> bool:
        container = self._tree.get(scope)
        if container is None:
            return False
        if element_id is None:
            return True
        return isinstance(container, KeyedCollection) and element_id in container

    # ------------------------------------------------------------------
    # Mutation primitives (require an open bracket)
    # ------------------------------------------------------------------

    def collection(self, scope: str) -> KeyedCollection:
        container = self.get_all(scope)
        if not isinstance(container, KeyedCollection):
            raise ReactiveNotFoundError(f"{scope!r} is not a keyed collection", scope=scope)
        return container

    def add(self, scope: str, fields: Mapping[str, Any]) -> StateElement:
        self.ensure_writable(scope)
        return self.collection(scope).add(fields)

    def update(self, scope: str, fields: Mapping[str, Any]) -> StateElement | PlainRecord:
        """Merge *fields* into an element (by id) or into a plain record."""
        self.ensure_writable(scope)
        container = self.get_all(scope)
        if isinstance(container, PlainRecord):
            container.update(fields)
            return container
        return container.update(fields)

    def put(self, scope: str, fields: Mapping[str, Any]) -> StateElement | PlainRecord:
        """Add-or-replace an element; on a plain record, merge *fields*."""
        self.ensure_writable(scope)
        container = self.get_all(scope)
        if isinstance(container, PlainRecord):
            container.update(fields)
            return container
        return container.put(fields)

    def delete(self, scope: str, element_id: ElementId) -> StateElement | None:
        self.ensure_writable(scope)
        return self.collection(scope).delete(element_id)

    def set_attribute(self, scope: str, element_id: ElementId | None, attribute: str, value: Any) -> None:
        """Set one attribute of an element, or of a plain record when *element_id* is None."""
        self.ensure_writable(scope, attribute)
        if element_id is None:
            container = self.get_all(scope)
            if not isinstance(container, PlainRecord):
                raise ReactiveNotFoundError(f"{scope!r} needs an element id", scope=scope)
            container.set(attribute, value)
            return
        element = self.collection(scope).get(element_id)
        element[attribute] = value

    def process_updates(self, updates: Iterable[StateUpdateOp | Mapping[str, Any]]) -> None:
        """Apply a state update list as a single bracket."""
        StateUpdateApplier().apply(self, updates)
