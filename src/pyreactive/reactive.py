"""Reactive instance: store, watchers and mutations behind one handle.

A :class:`Reactive` is constructed once and passed by reference to every
subscriber; there is no module level singleton. Usage::

    city = Reactive(name="city", mutations={"bite": bite})
    city.register(citizen_list)
    city.set_initial_state({"people": [{"id": 1, "name": "Carlos", "bitten": False}]})
    await city.dispatch("bite", 1)
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from pyreactive.config import ReactiveConfig
from pyreactive.mutations import MutationHandler, MutationRegistry, TwoPhaseMutation
from pyreactive.state.containers import Container, StateElement, StateTree
from pyreactive.state.events import ElementId, StateUpdateOp
from pyreactive.state.store import StateStore
from pyreactive.state.watchers import Watcher, WatcherRegistry

_logger = logging.getLogger(__name__)


@runtime_checkable
class Subscriber(Protocol):
    """Anything observing a reactive instance.

    ``get_watchers`` lists the change patterns to react to; ``state_ready``
    is called once with the initial state, even when the subscriber registers
    after the state was loaded.
    """

    def get_watchers(self) -> Iterable[Watcher]: ...

    def state_ready(self, state: StateTree) -> Any: ...


class Reactive:
    """Facade tying a :class:`StateStore` to its watchers and mutations."""

    def __init__(
        self,
        *,
        name: str | None = None,
        mutations: Mapping[str, MutationHandler | TwoPhaseMutation] | None = None,
        state: Mapping[str, Any] | None = None,
        config: ReactiveConfig | None = None,
    ) -> None:
        config = config or ReactiveConfig()
        if name is not None:
            config = dataclasses.replace(config, name=name)
        self._watchers = WatcherRegistry()
        self._store = StateStore(config=config, watchers=self._watchers)
        self._mutations = MutationRegistry(self._store, mutations)
        if state is not None:
            self._store.set_initial_state(state)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._store.name

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def watchers(self) -> WatcherRegistry:
        return self._watchers

    @property
    def mutations(self) -> MutationRegistry:
        return self._mutations

    @property
    def state(self) -> StateTree:
        return self._store.state

    @property
    def read_only(self) -> bool:
        return self._store.read_only

    @property
    def state_loaded(self) -> bool:
        return self._store.initialized

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def register(self, subscriber: Subscriber, subscriber_id: Hashable | None = None) -> Hashable:
        """Register a subscriber and return the id it is known by."""
        key = subscriber_id if subscriber_id is not None else subscriber
        get_watchers = getattr(subscriber, "get_watchers", None)
        watchers = list(get_watchers()) if get_watchers is not None else []
        on_ready = getattr(subscriber, "state_ready", None)
        self._store.subscribe(key, watchers, on_ready=on_ready)
        _logger.debug("%s: registered subscriber %r", self.name, key)
        return key

    def unregister(self, subscriber_id: Hashable) -> bool:
        return self._store.unsubscribe(subscriber_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_mutations(self, handlers: Mapping[str, MutationHandler | TwoPhaseMutation]) -> None:
        """Replace every registered mutation."""
        self._mutations.clear()
        self._mutations.register(handlers)

    def add_mutations(self, handlers: Mapping[str, MutationHandler | TwoPhaseMutation]) -> None:
        """Add mutations, replacing those with the same name."""
        self._mutations.register(handlers)

    async def dispatch(self, name: str, *args: Any) -> Any:
        return await self._mutations.dispatch(name, *args)

    def process_updates(self, updates: Iterable[StateUpdateOp | Mapping[str, Any]]) -> None:
        self._store.process_updates(updates)

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def set_initial_state(self, state: Mapping[str, Any]) -> None:
        self._store.set_initial_state(state)

    async def load_initial_state(self, fetch: Callable[[], Awaitable[Mapping[str, Any]]]) -> bool:
        """Fetch the initial state from a collaborator and load it.

        A failing fetch is logged and leaves the instance without state, so
        a later attempt is still possible.
        """
        try:
            state = await fetch()
        except Exception:
            _logger.error("%s: initial state fetch failed", self.name, exc_info=True)
            return False
        self._store.set_initial_state(state)
        return True

    def get(self, scope: str, element_id: ElementId | None = None) -> Container | StateElement:
        return self._store.get(scope, element_id)

    def get_all(self, scope: str) -> Container:
        return self._store.get_all(scope)

    def has(self, scope: str, element_id: ElementId | None = None) -> bool:
        return self._store.has(scope, element_id)
