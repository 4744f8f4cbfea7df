"""State update application.

A state update is an ordered list of ``{name, action, fields}`` records,
usually returned by a remote call. Applying the list in one bracket lets the
backend describe its effect on the state directly, instead of every mutation
parsing its own bespoke response, and makes the view redraw once per round
trip.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from pyreactive.exceptions import ReactiveConfigError
from pyreactive.state.containers import KeyedCollection, PlainRecord, is_element_id
from pyreactive.state.events import StateUpdateOp, UpdateAction

if TYPE_CHECKING:
    from pyreactive.state.store import StateStore

_logger = logging.getLogger(__name__)

_OPS_ADAPTER: TypeAdapter[list[StateUpdateOp]] = TypeAdapter(list[StateUpdateOp])


def parse_state_updates(updates: Iterable[StateUpdateOp | Mapping[str, Any]]) -> list[StateUpdateOp]:
    """Validate raw update records into :class:`StateUpdateOp` values."""
    try:
        return _OPS_ADAPTER.validate_python(list(updates))
    except ValidationError as err:
        raise ReactiveConfigError(f"Invalid state update list: {err}") from err


def _collection_add(collection: KeyedCollection, op: StateUpdateOp) -> None:
    collection.add(op.fields)


def _collection_update(collection: KeyedCollection, op: StateUpdateOp) -> None:
    collection.update(op.fields)


def _collection_put(collection: KeyedCollection, op: StateUpdateOp) -> None:
    collection.put(op.fields)


def _collection_delete(collection: KeyedCollection, op: StateUpdateOp) -> None:
    element_id = op.fields.get(collection.id_field)
    if not is_element_id(element_id):
        raise ReactiveConfigError(f"delete on {op.name!r} requires an {collection.id_field!r} field")
    # Deleting an absent element is a no-op.
    collection.delete(element_id)


_COLLECTION_ACTIONS: dict[UpdateAction, Callable[[KeyedCollection, StateUpdateOp], None]] = {
    UpdateAction.ADD: _collection_add,
    UpdateAction.UPDATE: _collection_update,
    UpdateAction.PUT: _collection_put,
    UpdateAction.DELETE: _collection_delete,
}


class StateUpdateApplier:
    """Translate an ordered update list into store mutations.

    The whole list runs inside one bracket, so watchers receive a single
    batch no matter how many elements change. Ops apply strictly in order;
    later ops on the same element win.
    """

    def apply(self, store: StateStore, updates: Iterable[StateUpdateOp | Mapping[str, Any]]) -> None:
        ops = parse_state_updates(updates)
        _logger.debug("%s: applying %d state update(s)", store.name, len(ops))
        with store.mutable():
            for op in ops:
                self.apply_one(store, op)

    def apply_one(self, store: StateStore, op: StateUpdateOp) -> None:
        """Apply a single op; the caller must hold an open bracket."""
        container = store.get_all(op.name)
        if isinstance(container, PlainRecord):
            if op.action not in (UpdateAction.UPDATE, UpdateAction.PUT):
                raise ReactiveConfigError(f"{op.action} is not supported on plain record {op.name!r}")
            container.update(op.fields)
            return
        _COLLECTION_ACTIONS[op.action](container, op)
