#pcinventory/tests/test_collection.py
import asyncio

import pytest

from pcinventory.db.enums import PartStatus
from pcinventory.errors import DocumentNotFoundError, PermissionDeniedError, ValidationError
from pcinventory.services.identity import Identity


def test_bulk_read_is_newest_first(store, identity, make_part):
    first = make_part(name="first")
    second = make_part(name="second")
    third = make_part(name="third")

    ids = [p.id for p in asyncio.run(store.parts(identity).bulk_read())]
    assert ids == [third, second, first]


def test_collections_are_scoped_by_identity(store, identity, make_part):
    make_part()
    other = Identity(uid="someone-else")

    assert asyncio.run(store.parts(other).bulk_read()) == []


def test_missing_identity_is_permission_denied(store):
    with pytest.raises(PermissionDeniedError):
        store.parts(None)
    with pytest.raises(PermissionDeniedError):
        store.builds(Identity(uid=""))


def test_server_fields_are_assigned(store, identity, make_part):
    part_id = make_part()
    part = asyncio.run(store.parts(identity).get(part_id))

    assert part.id == part_id
    assert part.created_at is not None
    assert part.updated_at is not None


def test_caller_cannot_set_server_fields(store, identity):
    with pytest.raises(ValidationError):
        asyncio.run(store.parts(identity).create({"name": "x", "id": "mine"}))


def test_update_missing_document(store, identity):
    with pytest.raises(DocumentNotFoundError):
        asyncio.run(store.parts(identity).update_fields("nope", {"quantity": 1}))


def test_delete_missing_document_is_noop(store, identity):
    asyncio.run(store.parts(identity).delete("nope"))


def test_invariants_are_enforced(store, identity, make_part):
    parts = store.parts(identity)
    with pytest.raises(ValidationError):
        asyncio.run(parts.create({"name": "x", "status": PartStatus.in_build}))

    part_id = make_part(quantity=1)
    with pytest.raises(ValidationError):
        asyncio.run(parts.update_fields(part_id, {"quantity": -1}))
    assert asyncio.run(parts.get(part_id)).quantity == 1


def test_batch_create_is_all_or_nothing(store, identity):
    parts = store.parts(identity)
    with pytest.raises(ValidationError):
        asyncio.run(parts.batch_create([{"name": "ok"}, {"name": ""}]))
    assert asyncio.run(parts.bulk_read()) == []

    ids = asyncio.run(parts.batch_create([{"name": "a"}, {"name": "b"}]))
    assert [p.id for p in asyncio.run(parts.bulk_read())] == list(reversed(ids))


def test_subscribe_delivers_now_and_after_writes(store, identity, make_part):
    deliveries = []
    unsubscribe = store.parts(identity).subscribe(deliveries.append)
    assert deliveries == [[]]

    part_id = make_part()
    assert [p.id for p in deliveries[-1]] == [part_id]

    asyncio.run(store.parts(identity).update_fields(part_id, {"quantity": 7}))
    assert deliveries[-1][0].quantity == 7

    unsubscribe()
    make_part()
    assert len(deliveries) == 3


def test_subscribers_only_see_their_own_kind(store, identity, make_part):
    builds_seen = []
    store.builds(identity).subscribe(builds_seen.append)
    make_part()
    assert builds_seen == [[]]
