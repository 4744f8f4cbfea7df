"""Tests for root container shapes and element access."""

from __future__ import annotations

import copy

import pytest
from pydantic import BaseModel

from pyreactive.exceptions import (
    ReactiveConfigError,
    ReactiveDuplicateIdError,
    ReactiveLockedError,
    ReactiveNotFoundError,
)
from pyreactive.state.containers import GuardedDict, GuardedList, KeyedCollection, PlainRecord, StateElement
from pyreactive.state.events import ChangeKind, WatchPattern
from pyreactive.state.store import StateStore
from pyreactive.state.watchers import Watcher, WatcherPayload


class Person(BaseModel):
    id: int
    name: str
    bitten: bool = False


# ------------------------------------------------------------------
# Shape validation
# ------------------------------------------------------------------


class TestShapes:
    def test_list_of_objects_becomes_keyed_collection(self) -> None:
        store = StateStore({"people": [{"id": 1, "name": "A"}, {"id": "x", "name": "B"}]})
        people = store.get_all("people")
        assert isinstance(people, KeyedCollection)
        assert people.ids() == [1, "x"]

    def test_mapping_becomes_plain_record(self) -> None:
        store = StateStore({"city": {"name": "Brasov", "curfew": False}})
        city = store.get_all("city")
        assert isinstance(city, PlainRecord)
        assert city.name == "Brasov"
        assert city["curfew"] is False

    def test_pydantic_models_are_accepted(self) -> None:
        store = StateStore({"people": [Person(id=1, name="A")]})
        assert store.get("people", 1).to_dict() == {"id": 1, "name": "A", "bitten": False}

    @pytest.mark.parametrize(
        "value",
        [
            "a string",
            42,
            True,
            None,
            [1, 2, 3],
            [{"name": "no id"}],
            [{"id": True}],
            [{"id": 1.5}],
        ],
    )
    def test_disallowed_root_shapes_rejected(self, value: object) -> None:
        with pytest.raises(ReactiveConfigError):
            StateStore({"bad": value})

    def test_duplicate_ids_rejected_at_load(self) -> None:
        with pytest.raises(ReactiveConfigError, match="duplicates id 1"):
            StateStore({"people": [{"id": 1}, {"id": 1}]})

    def test_custom_id_field(self) -> None:
        from pyreactive.config import ReactiveConfig

        store = StateStore({"tasks": [{"uid": "t1", "done": False}]}, config=ReactiveConfig(id_field="uid"))
        assert store.get("tasks", "t1").done is False

    def test_initial_state_must_be_mapping(self) -> None:
        with pytest.raises(ReactiveConfigError):
            StateStore([{"id": 1}])  # type: ignore[arg-type]

    def test_loaded_data_is_copied(self) -> None:
        raw = {"people": [{"id": 1, "tags": ["x"]}]}
        store = StateStore(raw)
        raw["people"][0]["tags"].append("y")
        assert store.get("people", 1).tags == ["x"]


# ------------------------------------------------------------------
# Elements
# ------------------------------------------------------------------


class TestElements:
    def test_attribute_and_item_access(self) -> None:
        store = StateStore({"people": [{"id": 1, "name": "A"}]})
        person = store.get("people", 1)
        assert isinstance(person, StateElement)
        assert person.id == 1
        assert person.name == "A"
        assert person["name"] == "A"
        assert person.get("missing", "dflt") == "dflt"
        assert "name" in person
        with pytest.raises(AttributeError):
            _ = person.missing

    def test_element_compares_to_mapping(self) -> None:
        store = StateStore({"people": [{"id": 1, "name": "A"}]})
        assert store.get("people", 1) == {"id": 1, "name": "A"}

    def test_assignment_while_locked_names_scope_and_attribute(self) -> None:
        store = StateStore({"people": [{"id": 1, "bitten": False}]})
        with pytest.raises(ReactiveLockedError) as excinfo:
            store.get("people", 1).bitten = True
        assert excinfo.value.scope == "people"
        assert excinfo.value.attribute == "bitten"
        assert "bitten" in str(excinfo.value)
        assert store.get("people", 1).bitten is False

    def test_id_cannot_change(self) -> None:
        store = StateStore({"people": [{"id": 1}]})
        with store.mutable(), pytest.raises(ReactiveConfigError):
            store.get("people", 1).id = 2

    def test_deleted_element_is_detached(self) -> None:
        store = StateStore({"people": [{"id": 1, "name": "A"}]})
        person = store.get("people", 1)
        with store.mutable():
            store.delete("people", 1)
        assert person.is_detached
        assert person.name == "A"
        with store.mutable(), pytest.raises(ReactiveNotFoundError):
            person.name = "B"


# ------------------------------------------------------------------
# Collection primitives
# ------------------------------------------------------------------


class TestCollectionPrimitives:
    def test_add_rejects_duplicate(self) -> None:
        store = StateStore({"people": [{"id": 1}]})
        with store.mutable(), pytest.raises(ReactiveDuplicateIdError) as excinfo:
            store.add("people", {"id": 1})
        assert excinfo.value.element_id == 1

    def test_put_replaces_fields(self) -> None:
        store = StateStore({"people": [{"id": 1, "name": "A", "nick": "a"}]})
        with store.mutable():
            store.put("people", {"id": 1, "name": "B"})
        assert store.get("people", 1).to_dict() == {"id": 1, "name": "B"}

    def test_iteration_keeps_insertion_order(self) -> None:
        store = StateStore({"people": [{"id": 3}, {"id": 1}]})
        with store.mutable():
            store.add("people", {"id": 2})
        assert [person.id for person in store.get_all("people")] == [3, 1, 2]
        assert len(store.get_all("people")) == 3

    def test_update_requires_existing_element(self) -> None:
        store = StateStore({"people": []})
        with store.mutable(), pytest.raises(ReactiveNotFoundError):
            store.update("people", {"id": 9, "name": "x"})

    def test_to_list_returns_plain_copies(self) -> None:
        store = StateStore({"people": [{"id": 1, "name": "A"}]})
        exported = store.get_all("people").to_list()
        exported[0]["name"] = "changed"
        assert store.get("people", 1).name == "A"


class TestPlainRecord:
    def test_record_assignment_emits_attribute_event(self) -> None:
        store = StateStore({"city": {"curfew": False}})
        city = store.get_all("city")
        with store.mutable():
            city.curfew = True
            assert store._tracker.pending()[0].attribute == "curfew"  # noqa: SLF001
            assert store._tracker.pending()[0].kind == ChangeKind.UPDATED  # noqa: SLF001
        assert city.curfew is True

    def test_record_locked(self) -> None:
        store = StateStore({"city": {"curfew": False}})
        with pytest.raises(ReactiveLockedError):
            store.get_all("city")["curfew"] = True

    def test_method_names_reachable_as_items(self) -> None:
        store = StateStore({"city": {"items": 3}})
        assert store.get_all("city")["items"] == 3


def test_state_tree_attribute_access_and_export() -> None:
    store = StateStore({"people": [{"id": 1}], "city": {"name": "X"}})
    state = store.state
    assert state.people is store.get_all("people")
    assert state["city"].name == "X"
    assert set(state) == {"people", "city"}
    assert state.to_dict() == {"people": [{"id": 1}], "city": {"name": "X"}}
    with pytest.raises(AttributeError):
        _ = state.nothing


# ------------------------------------------------------------------
# Nested values
# ------------------------------------------------------------------


def _nested_store() -> StateStore:
    return StateStore(
        {
            "people": [{"id": 1, "name": "A", "tags": ["x"]}, {"id": 2, "name": "B", "tags": []}],
            "city": {"name": "X", "meta": {"curfew": False, "zones": [{"open": False}]}},
        }
    )


class TestNestedValues:
    def test_nested_list_is_locked_at_rest(self) -> None:
        store = _nested_store()
        tags = store.get("people", 1).tags
        assert isinstance(tags, GuardedList)
        with pytest.raises(ReactiveLockedError) as excinfo:
            tags.append("y")
        assert excinfo.value.attribute == "tags"
        assert store.get("people", 1).to_dict()["tags"] == ["x"]

    def test_nested_dict_is_locked_at_rest(self) -> None:
        store = _nested_store()
        meta = store.get("city").meta
        assert isinstance(meta, GuardedDict)
        with pytest.raises(ReactiveLockedError):
            meta["curfew"] = True
        with pytest.raises(ReactiveLockedError):
            del meta["curfew"]
        assert store.get("city").to_dict()["meta"]["curfew"] is False

    def test_deeply_nested_values_are_locked(self) -> None:
        store = _nested_store()
        with pytest.raises(ReactiveLockedError):
            store.get("city").meta["zones"][0]["open"] = True
        with pytest.raises(ReactiveLockedError):
            store.get("city").get("meta")["zones"].clear()
        assert store.get("city").meta == {"curfew": False, "zones": [{"open": False}]}

    def test_nested_write_in_bracket_emits_field_event(self) -> None:
        store = _nested_store()
        calls: list[WatcherPayload] = []
        store.subscribe("rec", [Watcher(WatchPattern.of("people", attribute="tags"), calls.append)])
        with store.mutable():
            store.get("people", 1).tags.append("y")
            store.get("people", 1).tags.extend(["z"])
        assert store.get("people", 1).tags == ["x", "y", "z"]
        assert len(calls) == 1
        assert calls[0].event.attribute == "tags"
        assert calls[0].value == ["x", "y", "z"]

    def test_nested_record_write_in_bracket_emits_field_event(self) -> None:
        store = _nested_store()
        with store.mutable():
            store.get("city").meta["zones"][0]["open"] = True
            pending = store._tracker.pending()  # noqa: SLF001
        assert [(event.scope, event.attribute) for event in pending] == [("city", "meta")]
        assert store.get("city").meta["zones"][0]["open"] is True

    def test_slices_are_plain_copies(self) -> None:
        store = _nested_store()
        head = store.get("people", 1).tags[:]
        head.append("y")
        assert store.get("people", 1).tags == ["x"]


class TestCopies:
    def test_deepcopy_of_element_is_plain_snapshot(self) -> None:
        store = _nested_store()
        snapshot = copy.deepcopy(store.get("people", 1))
        assert snapshot == {"id": 1, "name": "A", "tags": ["x"]}
        assert type(snapshot) is dict
        snapshot["tags"].append("y")
        assert store.get("people", 1).tags == ["x"]

    def test_copy_of_record_and_nested_view(self) -> None:
        store = _nested_store()
        assert copy.copy(store.get("city")) == {"name": "X", "meta": {"curfew": False, "zones": [{"open": False}]}}
        assert type(copy.deepcopy(store.get("city").meta)) is dict
        assert copy.deepcopy(store.get_all("people")) == store.get_all("people").to_list()

    def test_element_assigned_to_record_is_copied(self) -> None:
        store = _nested_store()
        with store.mutable():
            store.get("city").mayor = store.get("people", 1)
            store.get("people", 1).name = "changed"
        assert store.get("city").mayor == {"id": 1, "name": "A", "tags": ["x"]}

    def test_nested_view_assigned_to_other_element_is_copied(self) -> None:
        store = _nested_store()
        with store.mutable():
            store.get("people", 2).tags = store.get("people", 1).tags
            store.get("people", 1).tags.append("y")
        assert store.get("people", 2).tags == ["x"]

    def test_pydantic_values_are_stored_as_plain_data(self) -> None:
        store = _nested_store()
        with store.mutable():
            store.get("city").mayor = Person(id=5, name="M")
        assert isinstance(store.get("city").mayor, GuardedDict)
        assert store.get("city").mayor == {"id": 5, "name": "M", "bitten": False}

    def test_private_names_are_not_fields(self) -> None:
        store = StateStore({"people": [{"id": 1, "_secret": 1}], "city": {"_x": 2}})
        with pytest.raises(AttributeError):
            _ = store.get("people", 1)._secret
        assert store.get("people", 1)["_secret"] == 1
        assert store.get("city")["_x"] == 2


class TestElementIds:
    def test_bool_id_delete_is_rejected_before_removal(self) -> None:
        store = _nested_store()
        calls: list[WatcherPayload] = []
        store.subscribe("rec", [Watcher(WatchPattern.universal(), calls.append)])
        with store.mutable(), pytest.raises(ReactiveConfigError):
            store.delete("people", True)
        assert store.has("people", 1)
        assert calls == []

    def test_bool_id_lookup_is_rejected(self) -> None:
        store = _nested_store()
        with pytest.raises(ReactiveConfigError):
            store.get("people", True)
        assert not store.has("people", True)
        assert True not in store.get_all("people")

    def test_detached_element_keeps_custom_id_field(self) -> None:
        from pyreactive.config import ReactiveConfig

        store = StateStore({"tasks": [{"uid": "t1"}]}, config=ReactiveConfig(id_field="uid"))
        with store.mutable():
            task = store.delete("tasks", "t1")
        assert task is not None
        assert task.id == "t1"
