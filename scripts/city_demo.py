#!/usr/bin/env python3
"""Console walkthrough of a reactive instance.

Builds the small vampire city used throughout the tutorials: a list of
citizens, a ``bite`` mutation, a ``cure_all`` mutation backed by state
updates, and a ``put_person`` mutation that waits on a fake web service
before applying its result. A console subscriber prints every batch it
receives.

Usage
-----
::

    python scripts/city_demo.py
    python scripts/city_demo.py --bite 2 --bite 4 --add Drácula -v
"""

from __future__ import annotations

import argparse
import asyncio
import itertools
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyreactive import (  # noqa: E402
    ChangeKind,
    Reactive,
    ReactiveConfig,
    StateStore,
    StateTree,
    TwoPhaseMutation,
    Watcher,
    WatcherPayload,
    WatchPattern,
)

INITIAL_STATE: dict[str, Any] = {
    "city": {"name": "Sighișoara", "curfew": False},
    "people": [
        {"id": 1, "name": "Carlos", "bitten": False},
        {"id": 2, "name": "Amaia", "bitten": False},
        {"id": 3, "name": "Sara", "bitten": False},
        {"id": 4, "name": "Ilya", "bitten": True},
        {"id": 5, "name": "Ferran", "bitten": False},
    ],
}


class FakeCityService:
    """Stands in for the backend: returns state updates after a short delay."""

    def __init__(self, latency: float) -> None:
        self._latency = latency
        self._ids = itertools.count(100)

    async def put_person(self, fields: dict[str, Any]) -> list[dict[str, Any]]:
        await asyncio.sleep(self._latency)
        person = {"id": next(self._ids), "bitten": False, **fields}
        return [{"name": "people", "action": "put", "fields": person}]


def bite(store: StateStore, person_id: int) -> None:
    with store.mutable():
        store.get("people", person_id).bitten = True


async def cure_all_updates(store: StateStore) -> list[dict[str, Any]]:
    return [
        {"name": "people", "action": "update", "fields": {"id": person.id, "bitten": False}}
        for person in store.get_all("people")
        if person.bitten
    ]


def remove_person(store: StateStore, person_id: int) -> None:
    with store.mutable():
        store.delete("people", person_id)


class ConsoleCitizenList:
    """Subscriber printing the state it is told about."""

    def get_watchers(self) -> list[Watcher]:
        return [
            Watcher(WatchPattern.of("people", kind=ChangeKind.CREATED), self._on_created),
            Watcher(WatchPattern.of("people", attribute="bitten"), self._on_bitten),
            Watcher(WatchPattern.of("people", kind=ChangeKind.DELETED), self._on_deleted),
        ]

    def state_ready(self, state: StateTree) -> None:
        print(f"City of {state.city.name}:")
        for person in state.people:
            print(f"  #{person.id} {person.name}{' (bitten)' if person.bitten else ''}")

    def _on_created(self, payload: WatcherPayload) -> None:
        print(f"  + {payload.element.name} moved in (#{payload.element.id})")

    def _on_bitten(self, payload: WatcherPayload) -> None:
        if payload.is_deleted:
            return
        status = "was bitten" if payload.element.bitten else "was cured"
        print(f"  * {payload.element.name} {status}")

    def _on_deleted(self, payload: WatcherPayload) -> None:
        print(f"  - {payload.element.name} left the city")


def build_city(service: FakeCityService, *, trace: bool = False) -> Reactive:
    city = Reactive(config=ReactiveConfig(name="city", trace_events=trace))
    city.set_mutations(
        {
            "bite": bite,
            "cure_all": TwoPhaseMutation(prepare=cure_all_updates),
            "put_person": TwoPhaseMutation(prepare=lambda _store, fields: service.put_person(fields)),
            "remove_person": remove_person,
        }
    )
    return city


async def _run(args: argparse.Namespace) -> int:
    service = FakeCityService(latency=args.latency)
    city = build_city(service, trace=args.verbose)
    city.register(ConsoleCitizenList(), subscriber_id="console")
    city.set_initial_state(INITIAL_STATE)

    for person_id in args.bite:
        print(f"> bite {person_id}")
        await city.dispatch("bite", person_id)
    for name in args.add:
        print(f"> put_person {name}")
        await city.dispatch("put_person", {"name": name})
    for person_id in args.remove:
        print(f"> remove_person {person_id}")
        await city.dispatch("remove_person", person_id)
    if not args.no_cure:
        print("> cure_all")
        await city.dispatch("cure_all")

    print(f"{city.store.batches_delivered} notification batch(es) delivered")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Reactive state store walkthrough")
    parser.add_argument("--bite", type=int, action="append", default=[], help="Person id to bite")
    parser.add_argument("--add", action="append", default=[], help="Name of a person to add")
    parser.add_argument("--remove", type=int, action="append", default=[], help="Person id to remove")
    parser.add_argument("--no-cure", action="store_true", help="Skip the final cure_all")
    parser.add_argument("--latency", type=float, default=0.05, help="Fake service latency in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.bite and not args.add and not args.remove:
        args.bite = [2]
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
