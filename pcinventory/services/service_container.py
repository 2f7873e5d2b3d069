from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import sessionmaker

from pcinventory.services.allocation_service import DEFAULT_WRITE_TIMEOUT, AllocationService
from pcinventory.services.audit_log_service import AuditLogService
from pcinventory.services.identity import Identity
from pcinventory.services.inventory_view import InventoryView
from pcinventory.services.part_service import PartService
from pcinventory.services.reconciliation_service import ReconciliationService
from pcinventory.services.sync_service import SyncService
from pcinventory.store.collection import RemoteStore
from pcinventory.store.local_buffer import LOCAL_KEY, LocalBufferStore


class ServiceContainer:
    """
    Wires the store, buffer and engines once per app.
    Views are per identity and per request; they are built from a live subscription.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        local_buffer_dir: str,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        store: RemoteStore = None,
    ):
        self.session_factory = session_factory
        self.store = store or RemoteStore(session_factory)
        self.local_buffer_dir = local_buffer_dir
        self.local_buffer = LocalBufferStore(local_buffer_dir)
        self.audit_log_service = AuditLogService(session_factory)
        self.write_timeout = write_timeout
        self.sync_service = SyncService(self.store, self.local_buffer, self.audit_log_service)
        self.part_service = PartService(self.store, self.sync_service, self.audit_log_service)

    @contextmanager
    def open_view(self, identity: Identity) -> Iterator[InventoryView]:
        view = InventoryView()
        view.attach(self.store.parts(identity), self.store.builds(identity))
        try:
            yield view
        finally:
            view.detach()

    def local_buffer_for(self, buffer_key: str) -> LocalBufferStore:
        '''One buffer per client session; never shared between sessions.'''
        return LocalBufferStore(self.local_buffer_dir, key=f"{LOCAL_KEY}:{buffer_key}")

    def allocation(self, view: InventoryView) -> AllocationService:
        return AllocationService(self.store, view, self.audit_log_service, write_timeout=self.write_timeout)

    def reconciliation(self, view: InventoryView) -> ReconciliationService:
        return ReconciliationService(self.store, view, self.audit_log_service)
