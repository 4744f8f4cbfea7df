"""Change tracking for a single write window."""

from __future__ import annotations

from pyreactive.state.events import ChangeEvent, ChangeKind, ElementId


class ChangeTracker:
    """Accumulates the change events of one write window.

    Events sharing ``(scope, element_id, attribute)`` collapse into one entry
    that keeps the position of the first emission and the kind of the latest.
    Deleting an element drops the attribute events recorded for it so far.
    """

    def __init__(self) -> None:
        self._events: dict[tuple[str, ElementId | None, str | None], ChangeEvent] = {}

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    def record(self, event: ChangeEvent) -> None:
        if event.kind == ChangeKind.DELETED and event.attribute is None and event.element_id is not None:
            self._drop_attributes(event.scope, event.element_id)
        existing = self._events.get(event.identity)
        if existing is not None and existing.kind == event.kind:
            return
        # Reassigning an existing key keeps its original position.
        self._events[event.identity] = event

    def pending(self) -> list[ChangeEvent]:
        return list(self._events.values())

    def flush(self) -> list[ChangeEvent]:
        """Return the collapsed events in emission order and start a new window."""
        events = list(self._events.values())
        self._events.clear()
        return events

    def discard(self) -> None:
        self._events.clear()

    def _drop_attributes(self, scope: str, element_id: ElementId) -> None:
        stale = [
            key for key in self._events if key[0] == scope and key[1] == element_id and key[2] is not None
        ]
        for key in stale:
            del self._events[key]
