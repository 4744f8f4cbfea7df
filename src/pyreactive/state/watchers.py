"""Watcher registration and change batch delivery."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

from pyreactive.exceptions import ReactiveConfigError
from pyreactive.state.containers import PlainRecord, StateElement, StateTree
from pyreactive.state.events import ChangeEvent, ChangeKind, ElementId, WatchPattern, candidate_patterns

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatcherPayload:
    """Argument passed to every watcher handler.

    ``element`` is the changed element or record; for deleted elements it is
    the detached element as it was before removal. Whole-state notifications
    carry only ``state``.
    """

    state: StateTree
    element: StateElement | PlainRecord | None = None
    event: ChangeEvent | None = None

    @property
    def kind(self) -> ChangeKind | None:
        return self.event.kind if self.event is not None else None

    @property
    def is_deleted(self) -> bool:
        return self.kind == ChangeKind.DELETED

    @property
    def value(self) -> Any:
        """Current value of the changed attribute, None for deletes and element events."""
        event = self.event
        if event is None or event.attribute is None or self.element is None or self.is_deleted:
            return None
        return self.element.get(event.attribute)


WatchHandler = Callable[[WatcherPayload], Any]
ReadyHandler = Callable[[StateTree], Any]


@dataclass(frozen=True)
class Watcher:
    pattern: WatchPattern
    handler: WatchHandler


@dataclass
class _Subscription:
    subscriber_id: Hashable
    watchers: tuple[Watcher, ...]
    on_ready: ReadyHandler | None = None


_FireKey = tuple[Hashable, int, str, ElementId | None, str | None, ChangeKind]


@dataclass
class _Entry:
    subscription: _Subscription
    index: int
    watcher: Watcher = field(repr=False)


def _coerce_watcher(value: Any) -> Watcher:
    if isinstance(value, Watcher):
        watcher = value
    elif isinstance(value, tuple) and len(value) == 2:
        watcher = Watcher(pattern=value[0], handler=value[1])
    else:
        raise ReactiveConfigError(f"Invalid watcher definition: {value!r}")
    if not isinstance(watcher.pattern, WatchPattern):
        raise ReactiveConfigError(f"Watcher pattern must be a WatchPattern, got {watcher.pattern!r}")
    if not callable(watcher.handler):
        raise ReactiveConfigError(f"Watcher handler for {watcher.pattern!r} is not callable")
    return watcher


class WatcherRegistry:
    """Per-subscriber watcher lists and the matching algorithm.

    Subscriber lifecycle is owned by the caller: nothing is removed unless
    :meth:`unsubscribe` is called.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[Hashable, _Subscription] = {}
        self._index: dict[WatchPattern, list[_Entry]] = {}
        # Attribute patterns per scope, needed to route element deletions.
        self._attribute_patterns: dict[str, set[WatchPattern]] = {}
        self._pending_tasks: set[asyncio.Task[Any]] = set()

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribers(self) -> list[Hashable]:
        return list(self._subscriptions)

    def subscribe(
        self,
        subscriber_id: Hashable,
        watchers: Iterable[Watcher | tuple[WatchPattern, WatchHandler]] = (),
        *,
        on_ready: ReadyHandler | None = None,
    ) -> None:
        """Register (or replace) the watcher list of *subscriber_id*."""
        if on_ready is not None and not callable(on_ready):
            raise ReactiveConfigError("on_ready must be callable")
        coerced = tuple(_coerce_watcher(value) for value in watchers)
        if subscriber_id in self._subscriptions:
            self.unsubscribe(subscriber_id)

        subscription = _Subscription(subscriber_id=subscriber_id, watchers=coerced, on_ready=on_ready)
        self._subscriptions[subscriber_id] = subscription
        for index, watcher in enumerate(coerced):
            pattern = watcher.pattern
            self._index.setdefault(pattern, []).append(_Entry(subscription, index, watcher))
            if pattern.scope is not None and pattern.attribute is not None:
                self._attribute_patterns.setdefault(pattern.scope, set()).add(pattern)
        _logger.debug("Subscribed %r with %d watcher(s)", subscriber_id, len(coerced))

    def unsubscribe(self, subscriber_id: Hashable) -> bool:
        subscription = self._subscriptions.pop(subscriber_id, None)
        if subscription is None:
            return False
        for watcher in subscription.watchers:
            pattern = watcher.pattern
            entries = [entry for entry in self._index.get(pattern, []) if entry.subscription is not subscription]
            if entries:
                self._index[pattern] = entries
                continue
            self._index.pop(pattern, None)
            if pattern.scope is not None and pattern.attribute is not None:
                scoped = self._attribute_patterns.get(pattern.scope)
                if scoped is not None:
                    scoped.discard(pattern)
                    if not scoped:
                        del self._attribute_patterns[pattern.scope]
        _logger.debug("Unsubscribed %r", subscriber_id)
        return True

    def matching_patterns(self, event: ChangeEvent) -> list[WatchPattern]:
        """Registered patterns satisfied by *event*, most general first."""
        patterns = [pattern for pattern in dict.fromkeys(candidate_patterns(event)) if pattern in self._index]
        if event.kind == ChangeKind.DELETED and event.attribute is None:
            extra = [
                pattern
                for pattern in self._attribute_patterns.get(event.scope, ())
                if pattern.matches(event) and pattern not in patterns
            ]
            patterns.extend(sorted(extra, key=repr))
        return patterns

    def notify(
        self,
        events: Iterable[ChangeEvent],
        state: StateTree,
        resolve_element: Callable[[ChangeEvent], StateElement | PlainRecord | None] | None = None,
    ) -> int:
        """Deliver one batch of events. Returns the number of handler calls.

        A watcher fires once per distinct target: several attribute changes
        on the same element fire a scope watcher once, changes on two
        elements fire it twice.
        """
        fired: set[_FireKey] = set()
        calls = 0
        for event in events:
            patterns = self.matching_patterns(event)
            if not patterns:
                continue
            element = resolve_element(event) if resolve_element is not None else None
            payload = WatcherPayload(state=state, element=element, event=event)
            for pattern in patterns:
                for entry in tuple(self._index.get(pattern, ())):
                    subscription = entry.subscription
                    if self._subscriptions.get(subscription.subscriber_id) is not subscription:
                        continue
                    key: _FireKey = (
                        subscription.subscriber_id,
                        entry.index,
                        event.scope,
                        event.element_id,
                        pattern.attribute,
                        event.kind,
                    )
                    if key in fired:
                        continue
                    fired.add(key)
                    calls += 1
                    self._invoke(entry.watcher.handler, payload, subscription.subscriber_id)
        return calls

    def notify_ready(self, state: StateTree, subscriber_id: Hashable | None = None) -> None:
        """Call the ready handler of every subscriber (or just *subscriber_id*)."""
        if subscriber_id is not None:
            targets = [self._subscriptions[subscriber_id]] if subscriber_id in self._subscriptions else []
        else:
            targets = list(self._subscriptions.values())
        for subscription in targets:
            if subscription.on_ready is not None:
                self._invoke(subscription.on_ready, state, subscription.subscriber_id)

    def _invoke(self, handler: Callable[[Any], Any], argument: Any, subscriber_id: Hashable) -> None:
        try:
            result = handler(argument)
        except Exception:
            _logger.exception("Watcher handler of %r failed", subscriber_id)
            return
        if not inspect.isawaitable(result):
            return
        # Async handlers run as tasks; the batch itself stays synchronous.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.warning("Async handler of %r returned outside an event loop; ignored", subscriber_id)
            if inspect.iscoroutine(result):
                result.close()
            return
        task = loop.create_task(_await(result))
        self._pending_tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Async watcher handler failed", exc_info=exc)


async def _await(awaitable: Any) -> Any:
    return await awaitable
