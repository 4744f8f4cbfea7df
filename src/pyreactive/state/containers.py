"""Root level state containers.

Only two shapes are allowed at the root of a state tree:

* a keyed collection: a sequence of objects carrying an id, stored as an
  insertion ordered ``id -> element`` mapping;
* a plain record: a flat mapping of attributes.

Every write goes through a :class:`WriteGuard` (the store), which rejects it
while the state is read-only and records the resulting change events.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator, Mapping, MutableMapping, MutableSequence, Sequence
from typing import Any, Protocol

from pydantic import BaseModel

from pyreactive.exceptions import ReactiveConfigError, ReactiveDuplicateIdError, ReactiveNotFoundError
from pyreactive.state.events import ChangeEvent, ChangeKind, ElementId


class WriteGuard(Protocol):
    def ensure_writable(self, scope: str, attribute: str | None = None) -> None: ...

    def record_change(self, event: ChangeEvent, detached: StateElement | None = None) -> None: ...


def is_element_id(value: Any) -> bool:
    """Return True if *value* can identify an element (int or str, not bool)."""
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def as_plain_mapping(value: Any) -> Mapping[str, Any] | None:
    """Return *value* as a mapping, dumping Pydantic models; None otherwise."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, (StateElement, PlainRecord)):
        return value.to_dict()
    if isinstance(value, Mapping):
        return value
    return None


def _is_collection_source(value: Any) -> bool:
    if isinstance(value, KeyedCollection):
        return True
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def detach_value(value: Any) -> Any:
    """Return a plain deep copy of *value*, ready to be stored in the tree.

    Pydantic models are dumped; live elements, records and nested views copy
    to plain dicts and lists.
    """
    if isinstance(value, BaseModel):
        return value.model_dump()
    return copy.deepcopy(value)


def _detach_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: detach_value(value) for key, value in fields.items()}


# A field writer runs an in-place change of one field and records it.
FieldWriter = Callable[[Callable[[], Any]], Any]


def _wrap(value: Any, writer: FieldWriter) -> Any:
    if isinstance(value, dict):
        return GuardedDict(value, writer)
    if isinstance(value, list):
        return GuardedList(value, writer)
    if isinstance(value, tuple):
        return tuple(_wrap(item, writer) for item in value)
    if isinstance(value, set):
        return frozenset(value)
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, (GuardedDict, GuardedList)):
        return value._data
    return value


class GuardedDict(MutableMapping[Any, Any]):
    """Nested mapping held by an element or record field.

    Writes go through the owning field, so they fail while the store is
    read-only and emit an updated event for that field otherwise.
    """

    __slots__ = ("_data", "_writer")

    def __init__(self, data: dict[Any, Any], writer: FieldWriter) -> None:
        self._data = data
        self._writer = writer

    def __getitem__(self, key: Any) -> Any:
        return _wrap(self._data[key], self._writer)

    def __setitem__(self, key: Any, value: Any) -> None:
        value = detach_value(value)
        self._writer(lambda: self._data.__setitem__(key, value))

    def __delitem__(self, key: Any) -> None:
        self._writer(lambda: self._data.__delitem__(key))

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        return self._data == _unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return repr(self._data)

    def __copy__(self) -> dict[Any, Any]:
        return copy.deepcopy(self._data)

    def __deepcopy__(self, memo: dict[int, Any]) -> dict[Any, Any]:
        return copy.deepcopy(self._data, memo)


class GuardedList(MutableSequence[Any]):
    """Nested list held by an element or record field; see :class:`GuardedDict`."""

    __slots__ = ("_data", "_writer")

    def __init__(self, data: list[Any], writer: FieldWriter) -> None:
        self._data = data
        self._writer = writer

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return copy.deepcopy(self._data[index])
        return _wrap(self._data[index], self._writer)

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            value = [detach_value(item) for item in value]
        else:
            value = detach_value(value)
        self._writer(lambda: self._data.__setitem__(index, value))

    def __delitem__(self, index: Any) -> None:
        self._writer(lambda: self._data.__delitem__(index))

    def __len__(self) -> int:
        return len(self._data)

    def insert(self, index: int, value: Any) -> None:
        value = detach_value(value)
        self._writer(lambda: self._data.insert(index, value))

    def __eq__(self, other: object) -> bool:
        return self._data == _unwrap(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return repr(self._data)

    def __copy__(self) -> list[Any]:
        return copy.deepcopy(self._data)

    def __deepcopy__(self, memo: dict[int, Any]) -> list[Any]:
        return copy.deepcopy(self._data, memo)


class StateElement:
    """A keyed collection element.

    Fields are readable as attributes or items; fields whose name starts
    with an underscore only as items. Assigning a field is a mutation
    primitive: it fails while the store is read-only. Nested dicts and lists
    are handed out as guarded views, and copying an element yields a plain
    dict snapshot.
    """

    __slots__ = ("_collection", "_fields", "_id_field")

    def __init__(self, collection: KeyedCollection | None, fields: dict[str, Any], *, id_field: str = "id") -> None:
        object.__setattr__(self, "_collection", collection)
        object.__setattr__(self, "_fields", fields)
        object.__setattr__(self, "_id_field", collection.id_field if collection is not None else id_field)

    @property
    def id(self) -> ElementId:
        return self._fields[self._id_field]

    @property
    def is_detached(self) -> bool:
        """True once the element has been deleted from its collection."""
        return self._collection is None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._owner(name).set_field(self, name, value)

    def __delattr__(self, name: str) -> None:
        self._owner(name).remove_field(self, name)

    def __getitem__(self, name: str) -> Any:
        return _wrap(self._fields[name], self._writer(name))

    def __setitem__(self, name: str, value: Any) -> None:
        self._owner(name).set_field(self, name, value)

    def __copy__(self) -> dict[str, Any]:
        return self.to_dict()

    def __deepcopy__(self, memo: dict[int, Any]) -> dict[str, Any]:
        return copy.deepcopy(self._fields, memo)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StateElement):
            return self._fields == other._fields
        if isinstance(other, Mapping):
            return self._fields == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"StateElement({self._fields!r})"

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self._fields:
            return default
        return self[name]

    def keys(self) -> list[str]:
        return list(self._fields)

    def items(self) -> list[tuple[str, Any]]:
        return [(name, self[name]) for name in self._fields]

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._fields)

    def _owner(self, name: str) -> KeyedCollection:
        collection = self._collection
        if collection is None:
            raise ReactiveNotFoundError(f"Cannot change {name!r}: element was deleted")
        return collection

    def _writer(self, name: str) -> FieldWriter:
        return lambda mutate: self._owner(name).touch_field(self, name, mutate)


class KeyedCollection:
    """Insertion ordered mapping of element id to :class:`StateElement`."""

    def __init__(self, name: str, guard: WriteGuard, *, id_field: str = "id") -> None:
        self.name = name
        self.id_field = id_field
        self._guard = guard
        self._items: dict[ElementId, StateElement] = {}

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get(self, element_id: ElementId) -> StateElement:
        self._check_id(element_id)
        element = self._items.get(element_id)
        if element is None:
            raise ReactiveNotFoundError(scope=self.name, element_id=element_id)
        return element

    def ids(self) -> list[ElementId]:
        return list(self._items)

    def values(self) -> list[StateElement]:
        return list(self._items.values())

    def items(self) -> list[tuple[ElementId, StateElement]]:
        return list(self._items.items())

    def __contains__(self, element_id: object) -> bool:
        return is_element_id(element_id) and element_id in self._items

    def __iter__(self) -> Iterator[StateElement]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"KeyedCollection({self.name!r}, ids={self.ids()!r})"

    def to_list(self) -> list[dict[str, Any]]:
        """Plain copies of every element, in insertion order."""
        return [element.to_dict() for element in self._items.values()]

    def __copy__(self) -> list[dict[str, Any]]:
        return self.to_list()

    def __deepcopy__(self, memo: dict[int, Any]) -> list[dict[str, Any]]:
        return self.to_list()

    # ------------------------------------------------------------------
    # Mutation primitives
    # ------------------------------------------------------------------

    def add(self, fields: Mapping[str, Any]) -> StateElement:
        self._guard.ensure_writable(self.name)
        element_id = self._require_id(fields)
        if element_id in self._items:
            raise ReactiveDuplicateIdError(scope=self.name, element_id=element_id)
        element = StateElement(self, _detach_fields(fields))
        self._items[element_id] = element
        self._emit(element_id, None, ChangeKind.CREATED)
        return element

    def update(self, fields: Mapping[str, Any]) -> StateElement:
        """Merge *fields* into an existing element."""
        self._guard.ensure_writable(self.name)
        element = self.get(self._require_id(fields))
        for key, value in fields.items():
            if key == self.id_field:
                continue
            self.set_field(element, key, value)
        return element

    def put(self, fields: Mapping[str, Any]) -> StateElement:
        """Add the element, or replace all of its fields if it exists."""
        self._guard.ensure_writable(self.name)
        element_id = self._require_id(fields)
        element = self._items.get(element_id)
        if element is None:
            return self.add(fields)
        for key in [key for key in element._fields if key not in fields]:
            self.remove_field(element, key)
        for key, value in fields.items():
            if key == self.id_field:
                continue
            self.set_field(element, key, value)
        return element

    def delete(self, element_id: ElementId) -> StateElement | None:
        """Remove an element. Returns the detached element, or None if absent."""
        self._guard.ensure_writable(self.name)
        self._check_id(element_id)
        element = self._items.pop(element_id, None)
        if element is None:
            return None
        object.__setattr__(element, "_collection", None)
        self._emit(element_id, None, ChangeKind.DELETED, detached=element)
        return element

    def set_field(self, element: StateElement, name: str, value: Any) -> None:
        self._guard.ensure_writable(self.name, name)
        element_id = element.id
        if name == self.id_field:
            if value != element_id:
                raise ReactiveConfigError(f"Element ids are immutable ({self.name}[{element_id!r}])")
            return
        element._fields[name] = detach_value(value)
        self._emit(element_id, name, ChangeKind.UPDATED)

    def touch_field(self, element: StateElement, name: str, mutate: Callable[[], Any]) -> Any:
        """Run an in-place change of a nested field value and record it."""
        self._guard.ensure_writable(self.name, name)
        result = mutate()
        self._emit(element.id, name, ChangeKind.UPDATED)
        return result

    def remove_field(self, element: StateElement, name: str) -> None:
        self._guard.ensure_writable(self.name, name)
        if name == self.id_field:
            raise ReactiveConfigError(f"Cannot remove the id field from {self.name}")
        if name not in element._fields:
            raise AttributeError(name)
        del element._fields[name]
        self._emit(element.id, name, ChangeKind.UPDATED)

    def _check_id(self, element_id: Any) -> None:
        if not is_element_id(element_id):
            raise ReactiveConfigError(f"Element ids of {self.name!r} are int or str, got {element_id!r}")

    def _require_id(self, fields: Mapping[str, Any]) -> ElementId:
        element_id = fields.get(self.id_field)
        if not is_element_id(element_id):
            raise ReactiveConfigError(
                f"Elements of {self.name!r} require an int or str {self.id_field!r} field, got {element_id!r}"
            )
        return element_id

    def _emit(
        self,
        element_id: ElementId,
        attribute: str | None,
        kind: ChangeKind,
        *,
        detached: StateElement | None = None,
    ) -> None:
        self._guard.record_change(
            ChangeEvent(scope=self.name, element_id=element_id, attribute=attribute, kind=kind),
            detached,
        )


class PlainRecord:
    """Flat mapping of attributes; every assignment emits an updated event.

    Nested dicts and lists are handed out as guarded views, and copying a
    record yields a plain dict snapshot.
    """

    __slots__ = ("_name", "_guard", "_data")

    def __init__(self, name: str, guard: WriteGuard, data: Mapping[str, Any] | None = None) -> None:
        object.__setattr__(self, "_name", name)
        object.__setattr__(self, "_guard", guard)
        object.__setattr__(self, "_data", _detach_fields(data or {}))

    # Attribute access reads data; names shadowed by methods (get, keys,
    # items, set, update, to_dict) are still reachable as items.
    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __getitem__(self, name: str) -> Any:
        return _wrap(self._data[name], self._writer(name))

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __copy__(self) -> dict[str, Any]:
        return self.to_dict()

    def __deepcopy__(self, memo: dict[int, Any]) -> dict[str, Any]:
        return copy.deepcopy(self._data, memo)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PlainRecord):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"PlainRecord({self._name!r}, {self._data!r})"

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self._data:
            return default
        return self[name]

    def keys(self) -> list[str]:
        return list(self._data)

    def items(self) -> list[tuple[str, Any]]:
        return [(name, self[name]) for name in self._data]

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def set(self, name: str, value: Any) -> None:
        self._guard.ensure_writable(self._name, name)
        self._data[name] = detach_value(value)
        self._record(name)

    def update(self, fields: Mapping[str, Any]) -> None:
        self._guard.ensure_writable(self._name)
        for key, value in fields.items():
            self.set(key, value)

    def _record(self, name: str) -> None:
        self._guard.record_change(ChangeEvent(scope=self._name, attribute=name, kind=ChangeKind.UPDATED))

    def _writer(self, name: str) -> FieldWriter:
        def write(mutate: Callable[[], Any]) -> Any:
            self._guard.ensure_writable(self._name, name)
            result = mutate()
            self._record(name)
            return result

        return write


Container = KeyedCollection | PlainRecord


class StateTree(Mapping[str, Container]):
    """Read view over the root containers.

    The tree itself is structurally fixed once loaded; containers are reached
    as items or attributes (``state.people``).
    """

    def __init__(self, containers: Mapping[str, Container] | None = None) -> None:
        self._containers: dict[str, Container] = dict(containers or {})

    def __getitem__(self, key: str) -> Container:
        return self._containers[key]

    def __getattr__(self, name: str) -> Container:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._containers[name]
        except KeyError:
            raise AttributeError(name) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._containers)

    def __len__(self) -> int:
        return len(self._containers)

    def __repr__(self) -> str:
        return f"StateTree({list(self._containers)!r})"

    def to_dict(self) -> dict[str, Any]:
        """Plain copy of the whole tree (collections become lists)."""
        result: dict[str, Any] = {}
        for key, container in self._containers.items():
            if isinstance(container, KeyedCollection):
                result[key] = container.to_list()
            else:
                result[key] = container.to_dict()
        return result


def build_container(name: str, value: Any, guard: WriteGuard, *, id_field: str = "id") -> Container:
    """Wrap a raw root value into its container, rejecting disallowed shapes."""
    if not isinstance(name, str) or not name.strip():
        raise ReactiveConfigError(f"State keys must be non-empty strings, got {name!r}")

    record = as_plain_mapping(value)
    if record is not None:
        return PlainRecord(name, guard, record)

    if not _is_collection_source(value):
        raise ReactiveConfigError(
            f"State key {name!r} must hold an object or a list of objects with {id_field!r}, "
            f"got {type(value).__name__}"
        )

    collection = KeyedCollection(name, guard, id_field=id_field)
    for index, raw in enumerate(value):
        fields = as_plain_mapping(raw)
        if fields is None:
            raise ReactiveConfigError(f"{name}[{index}] is not an object ({type(raw).__name__})")
        element_id = fields.get(id_field)
        if not is_element_id(element_id):
            raise ReactiveConfigError(f"{name}[{index}] is missing an int or str {id_field!r} field")
        if element_id in collection._items:
            raise ReactiveConfigError(f"{name}[{index}] duplicates id {element_id!r}")
        # Loading bypasses the guard: it is not a tracked mutation.
        collection._items[element_id] = StateElement(collection, _detach_fields(fields))
    return collection


def build_tree(raw: Any, guard: WriteGuard, *, id_field: str = "id") -> StateTree:
    """Validate and wrap a whole initial state value."""
    source = as_plain_mapping(raw)
    if source is None:
        raise ReactiveConfigError(f"Initial state must be a mapping, got {type(raw).__name__}")
    return StateTree({key: build_container(key, value, guard, id_field=id_field) for key, value in source.items()})
