#pcinventory/tests/test_part_service.py
import asyncio
from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from pcinventory.db.enums import AuditAction, PartStatus
from pcinventory.errors import PartNotFoundError, ValidationError
from pcinventory.services.part_fields import coerce_price, coerce_quantity, normalize_type, sort_build_lines
from pcinventory.services.part_service import PartService, status_label
from pcinventory.schemas.build_dto import BuildLine


@pytest.fixture
def part_service(store, sync, audit):
    return PartService(store, sync, audit)


def add(part_service, identity, **fields):
    return asyncio.run(part_service.add_part(identity, fields))


# ======================================================
# 🔤 Field coercion
# ======================================================

def test_add_part_coerces_fields(part_service, identity, read_parts):
    add(part_service, identity, name="  RTX 4070 ", type="graphics card", price="abc", qty="", purchaseDate="2024-05-02")

    part = read_parts()[0]
    assert part.name == "RTX 4070"
    assert part.type == "GPU"
    assert part.unit_price == Decimal("0")
    assert part.quantity == 1
    assert part.purchase_date == date(2024, 5, 2)
    assert part.status == PartStatus.in_inventory
    assert part.uuid


def test_unknown_type_falls_back_to_other():
    assert normalize_type("Widget") == "Other"
    assert normalize_type("cpu") == "CPU"
    assert normalize_type(None) == "Other"


def test_quantity_rules():
    assert coerce_quantity("3") == 3
    assert coerce_quantity("0") == 1
    assert coerce_quantity("many") == 1
    with pytest.raises(ValidationError):
        coerce_quantity("-2")
    with pytest.raises(ValidationError):
        coerce_quantity("1.5")


def test_price_rules():
    assert coerce_price("19.999") == Decimal("20.00")
    assert coerce_price("0.333") == Decimal("0.33")
    assert coerce_price("0.005") == Decimal("0.01")
    assert coerce_price("") == Decimal("0")
    with pytest.raises(ValidationError):
        coerce_price("-0.01")


def test_add_part_rejects_bad_input(part_service, identity):
    with pytest.raises(ValidationError):
        add(part_service, identity, name="")
    with pytest.raises(ValidationError):
        add(part_service, identity, name="x", price="-1")
    with pytest.raises(ValidationError):
        add(part_service, identity, name="x", status="in_build")
    with pytest.raises(ValidationError):
        add(part_service, identity, name="x", status="lost")


def test_add_part_without_identity_is_buffered(part_service, local_buffer, read_parts):
    outcome = add(part_service, None, name="Fan", price="12.50")

    assert outcome.buffered
    assert read_parts() == []
    assert part_service.list_local()[0]["unit_price"] == "12.50"


def test_build_lines_sort_unknown_last():
    lines = [
        BuildLine(part_id="1", name="x", type="Other"),
        BuildLine(part_id="2", name="y", type="PSU"),
        BuildLine(part_id="3", name="z", type="Graphics Card"),
        BuildLine(part_id="4", name="w", type="CPU"),
    ]
    assert [l.part_id for l in sort_build_lines(lines)] == ["4", "3", "2", "1"]


# ======================================================
# ✏️ Update
# ======================================================

def test_update_part_changes_and_audits(part_service, identity, audit, make_part):
    part_id = make_part(name="Ryzen 5", quantity=3)

    part = asyncio.run(part_service.update_part(identity, part_id, {"qty": "5", "vendor": "Shop"}))

    assert part.quantity == 5
    assert part.vendor == "Shop"
    logs = audit.list_for_entity(part_id)
    assert {log.changed_attribute for log in logs} == {"quantity", "vendor"}
    assert all(log.action == AuditAction.update for log in logs)


def test_update_unknown_part(part_service, identity):
    with pytest.raises(PartNotFoundError):
        asyncio.run(part_service.update_part(identity, "nope", {"name": "x"}))


# ======================================================
# 🔍 Listing and export
# ======================================================

@pytest.fixture
def stocked(make_part):
    return {
        "cpu": make_part(name="Ryzen", type="CPU", unit_price="150", purchase_date=date(2024, 1, 5)),
        "ram": make_part(name="ddr5", type="RAM", unit_price="60"),
        "gpu": make_part(name="RTX", type="GPU", unit_price="400", purchase_date=date(2024, 6, 1)),
    }


def test_list_filter_by_type(part_service, identity, stocked):
    parts = asyncio.run(part_service.list_parts(identity, type_filter="gpu"))
    assert [p.id for p in parts] == [stocked["gpu"]]


def test_list_sorting(part_service, identity, stocked):
    def ids(sort_by):
        return [p.id for p in asyncio.run(part_service.list_parts(identity, sort_by=sort_by))]

    assert ids("createdAt") == [stocked["gpu"], stocked["ram"], stocked["cpu"]]
    assert ids("name") == [stocked["ram"], stocked["gpu"], stocked["cpu"]]
    assert ids("price") == [stocked["ram"], stocked["cpu"], stocked["gpu"]]
    assert ids("purchaseDate") == [stocked["gpu"], stocked["cpu"], stocked["ram"]]

    with pytest.raises(ValidationError):
        ids("colour")


def test_group_by_type_follows_category_order(part_service, identity, stocked):
    parts = asyncio.run(part_service.list_parts(identity))
    groups = part_service.group_by_type(parts)
    assert list(groups) == ["CPU", "RAM", "GPU"]


def test_status_labels():
    assert status_label(PartStatus.in_build) == "In a build"
    assert status_label("not_in_inventory") == "Not in inventory"


def test_export_parts_is_a_workbook(part_service, identity, stocked):
    output = asyncio.run(part_service.export_parts(identity))

    df = pd.read_excel(output, sheet_name="Inventory", engine="openpyxl")
    assert len(df) == 3
    assert set(df["Type"]) == {"CPU", "RAM", "GPU"}
    assert list(df["Status"].unique()) == ["In inventory"]
