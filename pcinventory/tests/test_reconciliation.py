#pcinventory/tests/test_reconciliation.py
import asyncio
from decimal import Decimal

import pytest

from pcinventory.db.enums import CollectionKind, PartStatus
from pcinventory.errors import BuildNotFoundError, StoreError, ValidationError
from pcinventory.schemas.outcomes import Selection
from pcinventory.services.reconciliation_service import ReconciliationService
from pcinventory.store.collection import RemoteStore, SqlCollection


def commit_build(allocation, view, identity, part_id, qty, name="Gaming rig"):
    selection = Selection(name=name)
    allocation.add_selection(selection, view.find_part(part_id))
    allocation.set_line_quantity(selection, part_id, qty)
    return asyncio.run(allocation.commit(identity, selection)).build


def make_build(store, identity, lines, name="Legacy build"):
    total = sum(Decimal(str(l["unit_price"])) * l["quantity"] for l in lines)
    return asyncio.run(store.builds(identity).create({
        "name": name,
        "lines": lines,
        "total": total,
    }))


def inventory_total(parts):
    return sum(p.quantity for p in parts if p.status == PartStatus.in_inventory)


# ======================================================
# 🗑️ Delete scenarios
# ======================================================

def test_scenario_c_return_merges_back(allocation, reconciliation, view, identity, make_part, read_parts, read_builds):
    part_id = make_part(name="Ryzen 5", quantity=3)
    build = commit_build(allocation, view, identity, part_id, 2)

    report = asyncio.run(reconciliation.reconcile_delete(identity, build.id, True))

    parts = read_parts()
    assert len(parts) == 1
    assert parts[0].id == part_id
    assert parts[0].quantity == 3
    assert parts[0].status == PartStatus.in_inventory
    assert read_builds() == []
    assert report.returned_quantity == 2
    assert report.failures == []
    assert view.find_build(build.id) is None


def test_scenario_d_discard_leaves_inventory(allocation, reconciliation, view, identity, make_part, read_parts, read_builds):
    part_id = make_part(name="Ryzen 5", quantity=3)
    build = commit_build(allocation, view, identity, part_id, 2)

    report = asyncio.run(reconciliation.reconcile_delete(identity, build.id, False))

    parts = read_parts()
    assert [(p.id, p.quantity) for p in parts] == [(part_id, 1)]
    assert read_builds() == []
    assert report.discarded_quantity == 2
    assert report.returned_quantity == 0


def test_return_after_full_allocation_recreates_part(allocation, reconciliation, view, identity, make_part, read_parts):
    part_id = make_part(name="Ryzen 5", quantity=3)
    build = commit_build(allocation, view, identity, part_id, 3)

    report = asyncio.run(reconciliation.reconcile_delete(identity, build.id, True))

    parts = read_parts()
    assert len(parts) == 1
    restored = parts[0]
    assert restored.id != part_id
    assert restored.quantity == 3
    assert restored.status == PartStatus.in_inventory
    assert restored.restored_from_build_id == build.id
    assert report.created_part_ids == [restored.id]


def test_return_conserves_quantity_across_lines(allocation, reconciliation, view, identity, make_part, read_parts):
    cpu = make_part(name="Ryzen 5", type="CPU", quantity=2)
    ram = make_part(name="DDR5 16GB", type="RAM", unit_price="60", quantity=4)
    selection = Selection(name="Two lines")
    allocation.add_selection(selection, view.find_part(cpu))
    allocation.add_selection(selection, view.find_part(ram))
    allocation.set_line_quantity(selection, ram, 3)
    build = asyncio.run(allocation.commit(identity, selection)).build

    before = inventory_total(read_parts())
    in_build = sum(p.quantity for p in read_parts() if p.linked_build_id == build.id)

    report = asyncio.run(reconciliation.reconcile_delete(identity, build.id, True))

    assert report.returned_quantity == in_build == 4
    assert inventory_total(read_parts()) == before + in_build == 6
    assert all(p.status == PartStatus.in_inventory for p in read_parts())


def test_delete_unknown_build(reconciliation, identity):
    with pytest.raises(BuildNotFoundError):
        asyncio.run(reconciliation.reconcile_delete(identity, "missing", True))


# ======================================================
# 🔁 Fallback matching chain
# ======================================================

def test_match_by_name_when_source_id_differs(reconciliation, store, identity, make_part, read_parts):
    inventory_id = make_part(name="DDR5 16GB", type="RAM", quantity=1)
    build_id = make_build(store, identity, [
        {"part_id": "gone", "name": "DDR5 16GB", "type": "RAM", "unit_price": "60", "quantity": 2},
    ])
    make_part(name="DDR5 16GB", type="RAM", quantity=2, status=PartStatus.in_build,
              linked_build_id=build_id, source_part_id="other")

    report = asyncio.run(reconciliation.reconcile_delete(identity, build_id, True))

    parts = read_parts()
    assert [(p.id, p.quantity) for p in parts] == [(inventory_id, 3)]
    assert report.returned_quantity == 2


def test_match_by_type_when_name_changed(reconciliation, store, identity, make_part, read_parts):
    build_id = make_build(store, identity, [
        {"part_id": "gone", "name": "Old name", "type": "GPU", "unit_price": "400", "quantity": 1},
    ])
    make_part(name="RTX 4070", type="GPU", quantity=1, status=PartStatus.in_build,
              linked_build_id=build_id, source_part_id="other")

    asyncio.run(reconciliation.reconcile_delete(identity, build_id, True))

    parts = read_parts()
    assert len(parts) == 1
    assert parts[0].name == "RTX 4070"
    assert parts[0].status == PartStatus.in_inventory
    assert parts[0].restored_from_build_id == build_id


def test_no_candidates_credits_original_part(reconciliation, store, identity, make_part, read_parts):
    part_id = make_part(name="Noctua", type="Cooler", quantity=1)
    build_id = make_build(store, identity, [
        {"part_id": part_id, "name": "Noctua", "type": "Cooler", "unit_price": "90", "quantity": 2},
    ])

    report = asyncio.run(reconciliation.reconcile_delete(identity, build_id, True))

    assert [(p.id, p.quantity) for p in read_parts()] == [(part_id, 3)]
    assert report.created_part_ids == []


def test_no_candidates_and_original_gone_creates_fresh(reconciliation, store, identity, read_parts):
    build_id = make_build(store, identity, [
        {"part_id": "gone", "name": "Corsair 750W", "type": "PSU", "unit_price": "110", "quantity": 1},
    ])

    asyncio.run(reconciliation.reconcile_delete(identity, build_id, True))

    parts = read_parts()
    assert len(parts) == 1
    assert parts[0].name == "Corsair 750W"
    assert parts[0].unit_price == Decimal("110")
    assert parts[0].restored_from_build_id == build_id


def test_leftover_need_becomes_fresh_part(reconciliation, store, identity, make_part, read_parts):
    source_id = make_part(name="SSD 1TB", type="Storage", quantity=1)
    build_id = make_build(store, identity, [
        {"part_id": source_id, "name": "SSD 1TB", "type": "Storage", "unit_price": "70", "quantity": 3},
    ])
    make_part(name="SSD 1TB", type="Storage", quantity=1, status=PartStatus.in_build,
              linked_build_id=build_id, source_part_id=source_id)

    report = asyncio.run(reconciliation.reconcile_delete(identity, build_id, True))

    by_id = {p.id: p for p in read_parts()}
    assert by_id[source_id].quantity == 2
    fresh = [p for p in by_id.values() if p.id != source_id]
    assert len(fresh) == 1 and fresh[0].quantity == 2
    assert report.returned_quantity == 3


# ======================================================
# ⚠️ Partial failure
# ======================================================

class NoUpdateCollection(SqlCollection):
    async def update_fields(self, doc_id, fields):
        if self.kind == CollectionKind.parts:
            raise StoreError("network down")
        return await super().update_fields(doc_id, fields)


class NoUpdateStore(RemoteStore):
    collection_cls = NoUpdateCollection


def test_failed_credit_is_logged_and_build_still_deleted(session_factory, store, view, audit, allocation, identity, make_part, read_parts, read_builds):
    part_id = make_part(name="Ryzen 5", quantity=3)
    build = commit_build(allocation, view, identity, part_id, 2)
    reconciliation = ReconciliationService(NoUpdateStore(session_factory, feed=store.feed), view, audit)

    report = asyncio.run(reconciliation.reconcile_delete(identity, build.id, True))

    assert read_builds() == []
    assert len(report.failures) == 1
    assert report.failures[0].step == "credit_inventory"
    # in_build 记录保留，未丢失数量
    assert sorted(p.quantity for p in read_parts()) == [1, 2]


# ======================================================
# ✏️ Edit
# ======================================================

def test_edit_resorts_recomputes_and_leaves_inventory(allocation, reconciliation, view, identity, make_part, read_parts, read_builds):
    part_id = make_part(name="Ryzen 5", quantity=3)
    build = commit_build(allocation, view, identity, part_id, 2)
    before = [(p.id, p.quantity) for p in read_parts()]

    updated = asyncio.run(reconciliation.reconcile_edit(identity, build.id, [
        {"part_id": "psu-1", "name": "650W", "type": "PSU", "unit_price": "80", "quantity": 1},
        {"part_id": part_id, "name": "Ryzen 5", "type": "CPU", "unit_price": "150", "quantity": 3},
    ], name="Renamed"))

    assert [l.type for l in updated.lines] == ["CPU", "PSU"]
    assert updated.total == Decimal("530")
    stored = read_builds()[0]
    assert stored.name == "Renamed"
    assert stored.total == Decimal("530")
    assert [(p.id, p.quantity) for p in read_parts()] == before


def test_edit_defaults_line_fields(reconciliation, store, identity):
    build_id = make_build(store, identity, [
        {"part_id": "a", "name": "Case", "type": "Case", "unit_price": "50", "quantity": 1},
    ])

    updated = asyncio.run(reconciliation.reconcile_edit(identity, build_id, [
        {"part_id": "a", "name": "Case", "type": "case", "unit_price": "", "quantity": ""},
    ]))

    assert updated.lines[0].quantity == 1
    assert updated.lines[0].unit_price == Decimal("0")
    assert updated.lines[0].type == "Case"


def test_edit_rejects_empty_name(reconciliation, store, identity):
    build_id = make_build(store, identity, [])
    with pytest.raises(ValidationError):
        asyncio.run(reconciliation.reconcile_edit(identity, build_id, [], name=" "))


def test_edit_rounds_prices_so_total_matches_lines(reconciliation, store, identity, read_builds):
    build_id = make_build(store, identity, [
        {"part_id": "a", "name": "Thermal paste", "type": "Other", "unit_price": "5", "quantity": 1},
    ])

    updated = asyncio.run(reconciliation.reconcile_edit(identity, build_id, [
        {"part_id": "a", "name": "Thermal paste", "type": "Other", "unit_price": "0.333", "quantity": 3},
    ]))

    assert updated.lines[0].unit_price == Decimal("0.33")
    stored = read_builds()[0]
    assert stored.total == Decimal("0.99")
    assert stored.total == sum(l.unit_price * l.quantity for l in stored.lines)


def test_edit_blank_line_name_keeps_existing_name(reconciliation, store, identity):
    build_id = make_build(store, identity, [
        {"part_id": "a", "name": "Corsair 750W", "type": "PSU", "unit_price": "110", "quantity": 1},
    ])

    updated = asyncio.run(reconciliation.reconcile_edit(identity, build_id, [
        {"part_id": "a", "name": "  ", "type": "PSU", "unit_price": "110", "quantity": 2},
    ]))

    assert updated.lines[0].name == "Corsair 750W"


def test_edit_rejects_blank_name_for_new_line(reconciliation, store, identity, read_builds):
    build_id = make_build(store, identity, [
        {"part_id": "a", "name": "Case", "type": "Case", "unit_price": "50", "quantity": 1},
    ])

    with pytest.raises(ValidationError):
        asyncio.run(reconciliation.reconcile_edit(identity, build_id, [
            {"part_id": "new", "name": "", "type": "Fan", "unit_price": "9", "quantity": 1},
        ]))

    assert [l.name for l in read_builds()[0].lines] == ["Case"]
