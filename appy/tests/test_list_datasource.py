from __future__ import annotations

import pytest

from appy.datasource import ListDatasource, SingleDatasource, Subscriber
from appy.domain import DuplicateEntityError
from appy.models import Client


def _client(client_id: int, name: str = "Ana", surname: str = "Horvat") -> Client:
    return Client(id=client_id, name=name, surname=surname)


def _list_datasource(filter_predicate=None) -> tuple[ListDatasource[Client], list[list[Client]]]:
    received: list[list[Client]] = []
    ds: ListDatasource[Client] = ListDatasource(Subscriber(received.append), filter_predicate)
    return ds, received


def test_initial_empty_add_notifies_once() -> None:
    ds, received = _list_datasource()

    ds.add([])
    ds.add([])

    assert received == [[]]


def test_add_inserts_new_entities_and_notifies_with_copy() -> None:
    ds, received = _list_datasource()

    ds.add([_client(1), _client(2)])

    assert [c.id for c in received[-1]] == [1, 2]
    assert received[-1] is not ds.data


def test_later_batches_go_first() -> None:
    ds, received = _list_datasource()
    ds.add([_client(1), _client(2)])

    ds.add([_client(3), _client(4)])

    assert [c.id for c in received[-1]] == [3, 4, 1, 2]


def test_repeated_identity_in_one_batch_is_added_once() -> None:
    ds, received = _list_datasource()

    ds.add([_client(1, name="Ana"), _client(1, name="Ivana")])

    assert [c.id for c in ds.data] == [1]
    assert ds.data[0].name == "Ivana"
    assert len(received) == 1


def test_repeated_identity_rejected_by_filter_is_dropped() -> None:
    ds, received = _list_datasource(lambda c: c.name == "Ana")

    ds.add([_client(1, name="Ana"), _client(1, name="Marko"), _client(2)])

    assert [c.id for c in ds.data] == [2]


def test_add_of_known_identity_behaves_like_update() -> None:
    ds, received = _list_datasource()
    original = _client(1, name="Ana")
    ds.add([original])

    ds.add([_client(1, name="Ivana")])

    assert len(ds.data) == 1
    assert ds.data[0] is original
    assert original.name == "Ivana"
    assert len(received) == 2


def test_update_merges_in_place_and_keeps_reference() -> None:
    ds, received = _list_datasource()
    original = _client(1)
    ds.add([original])

    ds.update(_client(1, surname="Novak"))

    assert received[-1][0] is original
    assert original.surname == "Novak"


def test_update_of_unknown_entity_adds_it() -> None:
    ds, received = _list_datasource()
    ds.add([_client(1)])

    ds.update(_client(2))

    assert [c.id for c in ds.data] == [2, 1]


def test_update_removes_entity_rejected_by_filter() -> None:
    ds, received = _list_datasource(lambda c: c.name == "Ana")
    ds.add([_client(1), _client(2)])

    ds.update(_client(2, name="Marko"))

    assert [c.id for c in received[-1]] == [1]


def test_add_skips_entities_rejected_by_filter() -> None:
    ds, received = _list_datasource(lambda c: c.name == "Ana")

    ds.add([_client(1), _client(2, name="Marko")])

    assert [c.id for c in ds.data] == [1]


def test_update_and_delete_are_ignored_before_first_load() -> None:
    ds, received = _list_datasource()

    ds.update(_client(1))
    ds.delete(1)

    assert received == []
    assert ds.data == []


def test_delete_unknown_id_is_noop() -> None:
    ds, received = _list_datasource()
    ds.add([_client(1)])
    count = len(received)

    ds.delete(42)

    assert len(received) == count


def test_delete_removes_and_notifies() -> None:
    ds, received = _list_datasource()
    ds.add([_client(1), _client(2)])

    ds.delete(1)

    assert [c.id for c in received[-1]] == [2]


def test_closed_subscriber_is_reported_unsubscribed() -> None:
    ds, received = _list_datasource()
    ds.add([_client(1)])

    ds.subscriber.unsubscribe()
    ds.add([_client(2)])

    assert ds.is_unsubscribed()
    assert len(received) == 1


def test_single_datasource_emits_match_or_none() -> None:
    received: list[Client | None] = []
    ds: SingleDatasource[Client] = SingleDatasource(Subscriber(received.append), lambda c: c.get_id() == 1)

    ds.add([_client(1)])
    ds.delete(1)

    assert received[0].id == 1
    assert received[1] is None


def test_single_datasource_empty_emits_none() -> None:
    received: list[Client | None] = []
    ds: SingleDatasource[Client] = SingleDatasource(Subscriber(received.append), lambda c: c.get_id() == 1)

    ds.empty()

    assert received == [None]


def test_single_datasource_accepts_repeated_identity_in_one_batch() -> None:
    received: list[Client | None] = []
    ds: SingleDatasource[Client] = SingleDatasource(Subscriber(received.append), lambda c: c.get_id() == 1)

    ds.add([_client(1, name="Ana"), _client(1, name="Ivana")])

    assert [c.name if c else None for c in received] == ["Ivana"]


def test_single_datasource_raises_on_two_matches() -> None:
    received: list[Client | None] = []
    ds: SingleDatasource[Client] = SingleDatasource(Subscriber(received.append), lambda c: True)

    with pytest.raises(DuplicateEntityError):
        ds.add([_client(1), _client(2)])


def test_subscriber_error_is_terminal() -> None:
    values: list[int] = []
    errors: list[BaseException] = []
    subscriber: Subscriber[int] = Subscriber(values.append, errors.append)

    subscriber.error(RuntimeError("boom"))
    subscriber.next(1)
    subscriber.error(RuntimeError("again"))

    assert values == []
    assert len(errors) == 1
    assert subscriber.closed
