"""Custom exception hierarchy for pyreactive."""

from __future__ import annotations

from typing import Any


class ReactiveError(Exception):
    """Base exception for all pyreactive errors."""


class ReactiveConfigError(ReactiveError):
    """Invalid state shape, registration or state update record."""


class ReactiveLockedError(ReactiveError):
    """A mutation primitive was used while the store is read-only."""

    def __init__(
        self,
        message: str | None = None,
        *,
        scope: str = "",
        attribute: str | None = None,
    ) -> None:
        self.scope = scope
        self.attribute = attribute
        if message is None:
            target = attribute if attribute is not None else "elements"
            message = f"State locked. Use mutations to change {target} value in {scope}."
        super().__init__(message)


class ReactiveUnknownMutationError(ReactiveError):
    """Dispatch of a mutation name that was never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown mutation {name!r}")


class ReactiveAlreadyInitializedError(ReactiveError):
    """The initial state can only be loaded once per store."""


class ReactiveNotFoundError(ReactiveError):
    """Root key or element id is not present in the state."""

    def __init__(
        self,
        message: str | None = None,
        *,
        scope: str = "",
        element_id: Any = None,
    ) -> None:
        self.scope = scope
        self.element_id = element_id
        if message is None:
            if element_id is None:
                message = f"Unknown state key {scope!r}"
            else:
                message = f"Element {element_id!r} not found in {scope!r}"
        super().__init__(message)


class ReactiveDuplicateIdError(ReactiveError):
    """An element with the same id already exists in the collection."""

    def __init__(self, *, scope: str, element_id: Any) -> None:
        self.scope = scope
        self.element_id = element_id
        super().__init__(f"Element {element_id!r} already exists in {scope!r}")
