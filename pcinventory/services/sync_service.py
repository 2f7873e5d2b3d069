from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel

from pcinventory.db.enums import AuditEntityType
from pcinventory.errors import StoreError
from pcinventory.logger import get_logger
from pcinventory.services.audit_log_service import AuditLogService
from pcinventory.services.identity import Identity, IdentityProvider
from pcinventory.services.part_fields import (
    coerce_price,
    coerce_purchase_date,
    coerce_quantity,
    coerce_status,
    normalize_type,
)
from pcinventory.store.collection import RemoteStore
from pcinventory.store.local_buffer import LocalBufferStore

logger = get_logger(__name__)


class SyncReport(BaseModel):
    created_ids: List[str] = []
    skipped_uuids: List[str] = []


class SaveOutcome(BaseModel):
    uuid: str
    remote_id: Optional[str] = None
    buffered: bool = False


class SyncService:
    """
    Identity-scoped sync engine.

    Responsibilities:
    - merge the Local Buffer into the remote parts collection on sign-in
    - de-duplicate by the client uuid
    - save a part remotely, or buffer it locally when that is not possible
    """

    def __init__(
        self,
        store: RemoteStore,
        local_buffer: LocalBufferStore,
        audit_log_service: AuditLogService,
        uuid_factory: Callable[[], str] = lambda: str(uuid4()),
    ):
        self.store = store
        self.local_buffer = local_buffer
        self.audit_log_service = audit_log_service
        self.uuid_factory = uuid_factory

    def bind(self, provider: IdentityProvider) -> Callable[[], None]:
        '''Merge automatically whenever the identity goes from none to present.'''
        return provider.add_listener(self._on_identity_change)

    async def _on_identity_change(self, previous: Optional[Identity], current: Optional[Identity]) -> None:
        if previous is None and current is not None:
            await self.merge_local_into_remote(current)

    def _remote_payload(self, record: Dict[str, Any]) -> Dict[str, Any]:
        '''
        Buffered record -> document fields. Only known fields are carried,
        numeric fields are coerced, the purchase date is normalized.
        '''
        return {
            "uuid": record.get("uuid") or self.uuid_factory(),
            "name": (record.get("name") or "").strip(),
            "type": normalize_type(record.get("type")),
            "unit_price": coerce_price(record.get("unit_price", record.get("price"))),
            "quantity": coerce_quantity(record.get("quantity", record.get("qty"))),
            "vendor": record.get("vendor") or "",
            "purchase_date": coerce_purchase_date(record.get("purchase_date", record.get("purchaseDate"))),
            "status": coerce_status(record.get("status")),
            "linked_build_id": record.get("linked_build_id"),
            "source_part_id": record.get("source_part_id"),
        }

    async def merge_local_into_remote(
        self,
        identity: Identity,
        local_buffer: Optional[LocalBufferStore] = None,
    ) -> SyncReport:
        '''
        Merge every buffered part into the identity's remote collection.

        :param identity: identity that just became active
        :param local_buffer: buffer to drain, defaults to this engine's own
        :return: created ids and the uuids skipped as duplicates
        :raises StoreError: nothing was written, the buffer is kept for the next attempt
        '''
        buffer = local_buffer or self.local_buffer
        local = buffer.load()
        if not local:
            return SyncReport()

        parts = self.store.parts(identity)
        # 1️⃣ 远端已有的 uuid
        remote_uuids = {p.uuid for p in await parts.bulk_read() if p.uuid}

        # 2️⃣ 过滤重复并组装 payload
        staged = []
        skipped = []
        for record in local:
            record_uuid = record.get("uuid")
            if record_uuid and record_uuid in remote_uuids:
                skipped.append(record_uuid)
                continue
            payload = self._remote_payload(record)
            remote_uuids.add(payload["uuid"])
            staged.append(payload)

        # 3️⃣ 单批次原子写入；失败则不清空本地缓冲
        created_ids = await parts.batch_create(staged) if staged else []

        buffer.clear()
        logger.info(
            "Merged local buffer for %s: %d created, %d duplicates skipped",
            identity.uid, len(created_ids), len(skipped),
        )

        for doc_id in created_ids:
            try:
                self.audit_log_service.record_system_update(
                    owner_id=identity.uid,
                    entity_type=AuditEntityType.Part,
                    entity_id=doc_id,
                    changed_attribute="merged_from_local_buffer",
                    before_value=None,
                    after_value=doc_id,
                )
            except StoreError as e:
                logger.error("Audit of merged part %s failed: %s", doc_id, e)

        return SyncReport(created_ids=created_ids, skipped_uuids=skipped)

    async def save_with_fallback(
        self,
        identity: Optional[Identity],
        item: Dict[str, Any],
        local_buffer: Optional[LocalBufferStore] = None,
    ) -> SaveOutcome:
        '''
        Create the part remotely; on store failure, or with no identity,
        buffer it locally instead.

        :param identity: active identity or None
        :param item: part fields, already validated
        :param local_buffer: buffer to fall back to, defaults to this engine's own
        '''
        record = dict(item)
        if not record.get("uuid"):
            record["uuid"] = self.uuid_factory()

        if identity is not None:
            try:
                remote_id = await self.store.parts(identity).create(self._remote_payload(record))
            except StoreError as e:
                logger.warning("Remote save failed for %s, buffering locally: %s", record["uuid"], e)
            else:
                try:
                    self.audit_log_service.record_create(
                        owner_id=identity.uid,
                        entity_type=AuditEntityType.Part,
                        entity_id=remote_id,
                        operator_id=identity.uid,
                        after_value=record.get("quantity"),
                    )
                except StoreError as e:
                    logger.error("Audit of part %s failed: %s", remote_id, e)
                return SaveOutcome(uuid=record["uuid"], remote_id=remote_id)

        (local_buffer or self.local_buffer).prepend(record)
        logger.info("Buffered part %s locally", record["uuid"])
        return SaveOutcome(uuid=record["uuid"], buffered=True)
