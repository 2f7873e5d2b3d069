# pcinventory/tests/conftest.py
import asyncio
from decimal import Decimal

import pytest

from pcinventory.db.enums import PartStatus
from pcinventory.db.init_db import init_db
from pcinventory.db.session import build_engine, make_session_factory
from pcinventory.services.allocation_service import AllocationService
from pcinventory.services.audit_log_service import AuditLogService
from pcinventory.services.identity import Identity
from pcinventory.services.inventory_view import InventoryView
from pcinventory.services.reconciliation_service import ReconciliationService
from pcinventory.services.sync_service import SyncService
from pcinventory.store.collection import RemoteStore
from pcinventory.store.local_buffer import LocalBufferStore


@pytest.fixture
def engine():
    # 每个测试一个独立的内存数据库
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return RemoteStore(session_factory)


@pytest.fixture
def identity():
    return Identity(uid="user-1", email="builder@example.com")


@pytest.fixture
def audit(session_factory):
    return AuditLogService(session_factory)


@pytest.fixture
def local_buffer(tmp_path):
    return LocalBufferStore(str(tmp_path / "buffer"))


@pytest.fixture
def view(store, identity):
    view = InventoryView()
    view.attach(store.parts(identity), store.builds(identity))
    yield view
    view.detach()


@pytest.fixture
def allocation(store, view, audit):
    return AllocationService(store, view, audit)


@pytest.fixture
def reconciliation(store, view, audit):
    return ReconciliationService(store, view, audit)


@pytest.fixture
def sync(store, local_buffer, audit):
    return SyncService(store, local_buffer, audit)


@pytest.fixture
def make_part(store, identity):
    """Create an inventory part directly in the store and return its id."""
    def _make(name="Ryzen 5", type="CPU", unit_price="150.00", quantity=3, **extra):
        fields = {
            "name": name,
            "type": type,
            "unit_price": Decimal(unit_price),
            "quantity": quantity,
            "status": PartStatus.in_inventory,
        }
        fields.update(extra)
        return asyncio.run(store.parts(identity).create(fields))
    return _make


@pytest.fixture
def read_parts(store, identity):
    def _read():
        return asyncio.run(store.parts(identity).bulk_read())
    return _read


@pytest.fixture
def read_builds(store, identity):
    def _read():
        return asyncio.run(store.builds(identity).bulk_read())
    return _read
