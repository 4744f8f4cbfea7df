"""Mutation registry and dispatcher.

Mutations are the only sanctioned way to change the state. A mutation is a
named handler receiving the store as first argument::

    registry = MutationRegistry(store)

    @registry.mutation()
    def bite(store: StateStore, person_id: int) -> None:
        with store.mutable():
            store.get("people", person_id).bitten = True

    await registry.dispatch("bite", 2)

Handlers may be coroutines (typically awaiting a remote call before they
open their bracket) or :class:`TwoPhaseMutation` values, which split the
asynchronous preparation from the synchronous apply phase explicitly.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from pyreactive.exceptions import ReactiveConfigError, ReactiveUnknownMutationError
from pyreactive.state.store import StateStore
from pyreactive.state.updates import StateUpdateApplier

_logger = logging.getLogger(__name__)

MutationHandler = Callable[..., Any]
F = TypeVar("F", bound=MutationHandler)


@dataclass(frozen=True)
class TwoPhaseMutation:
    """A mutation split into an async prepare phase and a sync apply phase.

    ``prepare(store, *args)`` may await (for instance a web service call) and
    must not write. ``apply(store, prepared)`` runs inside exactly one
    bracket. Without ``apply`` the prepared value is treated as a state update
    list and applied with :class:`StateUpdateApplier`.

    Nothing is locked between the two phases: another dispatch may change the
    state while ``prepare`` is suspended.
    """

    prepare: Callable[..., Awaitable[Any]]
    apply: Callable[[StateStore, Any], Any] | None = None


def _check_arity(func: Callable[..., Any], count: int, label: str) -> None:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        # Some builtins expose no signature; trust them.
        return
    try:
        signature.bind_partial(*([None] * count))
    except TypeError as err:
        raise ReactiveConfigError(f"{label} must accept {count} positional argument(s): {err}") from err


def validate_handler(name: Any, handler: Any) -> None:
    """Reject invalid mutation registrations early."""
    if not isinstance(name, str) or not name.strip():
        raise ReactiveConfigError(f"Mutation names must be non-empty strings, got {name!r}")
    if isinstance(handler, TwoPhaseMutation):
        if not callable(handler.prepare):
            raise ReactiveConfigError(f"Mutation {name!r}: prepare is not callable")
        _check_arity(handler.prepare, 1, f"Mutation {name!r} prepare")
        if handler.apply is not None:
            if not callable(handler.apply):
                raise ReactiveConfigError(f"Mutation {name!r}: apply is not callable")
            _check_arity(handler.apply, 2, f"Mutation {name!r} apply")
        return
    if not callable(handler):
        raise ReactiveConfigError(f"Mutation {name!r} is not callable")
    _check_arity(handler, 1, f"Mutation {name!r}")


class MutationRegistry:
    """Maps mutation names to handlers and dispatches them against a store."""

    def __init__(
        self,
        store: StateStore,
        handlers: Mapping[str, MutationHandler | TwoPhaseMutation] | None = None,
    ) -> None:
        self._store = store
        self._handlers: dict[str, MutationHandler | TwoPhaseMutation] = {}
        self._applier = StateUpdateApplier()
        if handlers:
            self.register(handlers)

    @property
    def store(self) -> StateStore:
        return self._store

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def names(self) -> list[str]:
        return list(self._handlers)

    def get(self, name: str) -> MutationHandler | TwoPhaseMutation:
        handler = self._handlers.get(name)
        if handler is None:
            raise ReactiveUnknownMutationError(name)
        return handler

    def register(self, handlers: Mapping[str, MutationHandler | TwoPhaseMutation]) -> None:
        """Install handlers; a name registered again replaces the earlier handler."""
        if not isinstance(handlers, Mapping):
            raise ReactiveConfigError(f"Mutations must be registered as a mapping, got {type(handlers).__name__}")
        # Validate everything before installing anything.
        for name, handler in handlers.items():
            validate_handler(name, handler)
        for name, handler in handlers.items():
            if name in self._handlers:
                _logger.debug("%s: mutation %r replaced", self._store.name, name)
            self._handlers[name] = handler
        _logger.debug("%s: %d mutation(s) registered", self._store.name, len(self._handlers))

    def clear(self) -> None:
        self._handlers.clear()

    def mutation(self, name: str | None = None) -> Callable[[F], F]:
        """Decorator registering a function under *name* (default: its own name)."""

        def decorator(func: F) -> F:
            self.register({name or func.__name__: func})
            return func

        return decorator

    async def dispatch(self, name: str, *args: Any) -> Any:
        """Run mutation *name* with ``args``.

        The store is back to read-only when this returns or raises, whatever
        the handler did.
        """
        handler = self.get(name)
        store = self._store
        _logger.debug("%s: dispatch %s%r", store.name, name, args)
        try:
            result = await self._run(handler, args)
        except BaseException:
            store.reset_lock()
            raise
        if not store.read_only:
            _logger.warning("%s: mutation %r returned with the state unlocked", store.name, name)
            store.reset_lock()
        return result

    async def _run(self, handler: MutationHandler | TwoPhaseMutation, args: tuple[Any, ...]) -> Any:
        store = self._store
        if isinstance(handler, TwoPhaseMutation):
            prepared = await handler.prepare(store, *args)
            with store.mutable():
                if handler.apply is None:
                    self._applier.apply(store, prepared or [])
                else:
                    handler.apply(store, prepared)
            return prepared

        result = handler(store, *args)
        if inspect.isawaitable(result):
            result = await result
        return result
