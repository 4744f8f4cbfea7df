"""Change events, watch patterns and state update records.

Every mutation path (direct primitives, element assignment, state updates)
reports its effect as :class:`ChangeEvent` values. Watchers select the events
they care about with a :class:`WatchPattern`.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ElementId = int | str
"""Identifier of an element inside a keyed collection."""


class ChangeKind(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class UpdateAction(StrEnum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    PUT = "put"


def _reject_bool_id(value: Any) -> Any:
    # bool is an int subclass; True must not silently become element 1.
    if isinstance(value, bool):
        raise ValueError("element id must be an int or a str")
    return value


class ChangeEvent(BaseModel):
    """A single structured change recorded during a write window."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    scope: str = Field(..., description="Root key of the state tree")
    element_id: ElementId | None = None
    attribute: str | None = None
    kind: ChangeKind

    @field_validator("element_id", mode="before")
    @classmethod
    def _check_id(cls, value: Any) -> Any:
        return _reject_bool_id(value)

    @property
    def identity(self) -> tuple[str, ElementId | None, str | None]:
        """Collapse key used by the change tracker."""
        return (self.scope, self.element_id, self.attribute)


class WatchPattern(BaseModel):
    """Tagged selector for change events.

    ``scope=None`` is the universal pattern. Any field left as ``None`` is a
    wildcard: ``WatchPattern.of("people", kind=ChangeKind.UPDATED)`` matches
    every updated person, ``WatchPattern.of("people", 2, "bitten")`` only the
    ``bitten`` attribute of person 2.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    scope: str | None = None
    element_id: ElementId | None = None
    attribute: str | None = None
    kind: ChangeKind | None = None

    @field_validator("element_id", mode="before")
    @classmethod
    def _check_id(cls, value: Any) -> Any:
        return _reject_bool_id(value)

    @field_validator("scope", "attribute")
    @classmethod
    def _non_empty(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("pattern names must be non-empty")
        return value

    @model_validator(mode="after")
    def _universal_has_no_target(self) -> WatchPattern:
        if self.scope is None and (self.element_id is not None or self.attribute is not None):
            raise ValueError("universal pattern cannot select an element or attribute")
        return self

    @classmethod
    def universal(cls, kind: ChangeKind | None = None) -> WatchPattern:
        return cls(kind=kind)

    @classmethod
    def of(
        cls,
        scope: str,
        element_id: ElementId | None = None,
        attribute: str | None = None,
        kind: ChangeKind | None = None,
    ) -> WatchPattern:
        return cls(scope=scope, element_id=element_id, attribute=attribute, kind=kind)

    @property
    def is_universal(self) -> bool:
        return self.scope is None

    def matches(self, event: ChangeEvent) -> bool:
        """Return True if *event* satisfies this pattern.

        Deleted elements satisfy attribute patterns on that element, so
        watchers keyed to an attribute still learn about the removal.
        """
        if self.kind is not None and self.kind != event.kind:
            return False
        if self.scope is None:
            return True
        if self.scope != event.scope:
            return False
        if self.element_id is not None and self.element_id != event.element_id:
            return False
        if self.attribute is None:
            return True
        if event.kind == ChangeKind.DELETED and event.attribute is None:
            return True
        return self.attribute == event.attribute


def candidate_patterns(event: ChangeEvent) -> Iterator[WatchPattern]:
    """Yield every exact pattern satisfied by *event*.

    This covers universal, scope, element and attribute selectors, each with
    and without the event kind. Attribute patterns on deleted elements are not
    enumerable from the event alone and are resolved by the watcher registry.
    """
    element_ids: tuple[ElementId | None, ...] = (None,)
    if event.element_id is not None:
        element_ids = (None, event.element_id)
    attributes: tuple[str | None, ...] = (None,)
    if event.attribute is not None:
        attributes = (None, event.attribute)

    for kind in (None, event.kind):
        yield WatchPattern(kind=kind)
        for element_id in element_ids:
            for attribute in attributes:
                yield WatchPattern(
                    scope=event.scope,
                    element_id=element_id,
                    attribute=attribute,
                    kind=kind,
                )


class StateUpdateOp(BaseModel):
    """One record of a server produced state update list."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Root key the operation applies to")
    action: UpdateAction
    fields: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("name must be non-empty")
        return name
