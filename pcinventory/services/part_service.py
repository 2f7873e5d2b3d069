import io
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pandas as pd

from pcinventory.db.enums import STATUS_LABELS, AuditEntityType, PartStatus, PartType
from pcinventory.errors import PartNotFoundError, StoreError, ValidationError
from pcinventory.logger import get_logger
from pcinventory.schemas.part_dto import PartDTO
from pcinventory.services.audit_log_service import AuditLogService
from pcinventory.services.identity import Identity
from pcinventory.services.part_fields import (
    coerce_price,
    coerce_purchase_date,
    coerce_quantity,
    coerce_status,
    normalize_type,
)
from pcinventory.services.sync_service import SaveOutcome, SyncService
from pcinventory.store.collection import RemoteStore
from pcinventory.store.local_buffer import LocalBufferStore

logger = get_logger(__name__)

SORT_KEYS = ("createdAt", "name", "price", "purchaseDate")


def status_label(status: Any) -> str:
    try:
        return STATUS_LABELS[coerce_status(status)]
    except ValidationError:
        return str(status)


class PartService:
    """
    Inventory entry, edit, listing and export.
    禁止直接改写 in_build 零件的 linked_build_id / source_part_id（只由分配引擎写入）
    """

    def __init__(
        self,
        store: RemoteStore,
        sync_service: SyncService,
        audit_log_service: AuditLogService,
    ):
        self.store = store
        self.sync_service = sync_service
        self.audit_log_service = audit_log_service

    # ======================================================
    # 🔧 Internal helpers
    # ======================================================

    def _coerce_fields(self, fields: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        '''
        User input -> part fields. With partial=True only the given keys are returned.
        '''
        out: Dict[str, Any] = {}

        if not partial or "name" in fields:
            name = (fields.get("name") or "").strip()
            if not name:
                raise ValidationError("Part name is required.")
            out["name"] = name
        if not partial or "type" in fields:
            out["type"] = normalize_type(fields.get("type"))
        if not partial or "unit_price" in fields or "price" in fields:
            out["unit_price"] = coerce_price(fields.get("unit_price", fields.get("price")))
        if not partial or "quantity" in fields or "qty" in fields:
            out["quantity"] = coerce_quantity(fields.get("quantity", fields.get("qty")))
        if not partial or "vendor" in fields:
            out["vendor"] = (fields.get("vendor") or "").strip()
        if not partial or "purchase_date" in fields or "purchaseDate" in fields:
            out["purchase_date"] = coerce_purchase_date(
                fields.get("purchase_date", fields.get("purchaseDate"))
            )
        if not partial or "status" in fields:
            out["status"] = coerce_status(fields.get("status"))
        return out

    # ======================================================
    # 📦 Part CRUD
    # ======================================================

    async def add_part(
        self,
        identity: Optional[Identity],
        fields: Dict[str, Any],
        local_buffer: Optional[LocalBufferStore] = None,
    ) -> SaveOutcome:
        '''
        Add a part to the inventory; without an identity it goes to the local buffer.

        :param identity: active identity or None
        :param fields: raw form fields (name, type, price, qty, vendor, purchaseDate, status)
        :param local_buffer: the caller's own buffer; defaults to the sync engine's
        '''
        record = self._coerce_fields(fields, partial=False)
        if record["status"] == PartStatus.in_build:
            raise ValidationError("Parts are only marked 'in a build' by saving a build.")
        if fields.get("uuid"):
            record["uuid"] = fields["uuid"]
        return await self.sync_service.save_with_fallback(identity, record, local_buffer)

    async def update_part(self, identity: Identity, part_id: str, fields: Dict[str, Any]) -> PartDTO:
        '''
        Partial update of one part; audits every changed attribute.

        :raises PartNotFoundError: no such part in this identity's collection
        '''
        parts = self.store.parts(identity)
        existing = await parts.get(part_id)
        if existing is None:
            raise PartNotFoundError(f"Part {part_id} not found.")

        changes = self._coerce_fields(fields, partial=True)
        if changes.get("status") == PartStatus.in_build and not existing.linked_build_id:
            raise ValidationError("Parts are only marked 'in a build' by saving a build.")
        changes = {k: v for k, v in changes.items() if getattr(existing, k) != v}
        if not changes:
            return existing

        await parts.update_fields(part_id, changes)
        for attribute, value in changes.items():
            try:
                self.audit_log_service.record_update(
                    owner_id=identity.uid,
                    entity_type=AuditEntityType.Part,
                    entity_id=part_id,
                    changed_attribute=attribute,
                    before_value=getattr(existing, attribute),
                    after_value=value,
                    operator_id=identity.uid,
                )
            except StoreError as e:
                logger.error("Audit of part %s.%s failed: %s", part_id, attribute, e)

        return existing.model_copy(update=changes)

    def list_local(self, local_buffer: Optional[LocalBufferStore] = None) -> List[Dict[str, Any]]:
        return (local_buffer or self.sync_service.local_buffer).load()

    # ======================================================
    # 🔍 Listing
    # ======================================================

    async def list_parts(
        self,
        identity: Identity,
        type_filter: Optional[str] = "all",
        sort_by: str = "createdAt",
    ) -> List[PartDTO]:
        '''
        List parts filtered by category and sorted.

        :param type_filter: category name (case-insensitive) or "all"
        :param sort_by: createdAt (newest first) / name / price (ascending) / purchaseDate (newest first)
        '''
        if sort_by not in SORT_KEYS:
            raise ValidationError(f"Unknown sort key '{sort_by}'. Use one of {', '.join(SORT_KEYS)}.")

        items = await self.store.parts(identity).bulk_read()

        if type_filter and type_filter.strip().lower() != "all":
            wanted = normalize_type(type_filter)
            items = [p for p in items if p.type == wanted]

        if sort_by == "name":
            items = sorted(items, key=lambda p: p.name.lower())
        elif sort_by == "price":
            items = sorted(items, key=lambda p: p.unit_price)
        elif sort_by == "purchaseDate":
            # 无日期的排最后
            items = sorted(items, key=lambda p: p.purchase_date or date.min, reverse=True)
        return items

    @staticmethod
    def group_by_type(parts: List[PartDTO]) -> "OrderedDict[str, List[PartDTO]]":
        '''Category -> parts, in category order; empty categories are left out.'''
        grouped: "OrderedDict[str, List[PartDTO]]" = OrderedDict()
        for member in PartType:
            bucket = [p for p in parts if p.type == member.value]
            if bucket:
                grouped[member.value] = bucket
        return grouped

    # ======================================================
    # 📊 Export
    # ======================================================

    def generate_df_report(self, parts: List[PartDTO]) -> pd.DataFrame:
        """
        Inventory as a DataFrame, one row per part.
        This function does NOT persist data.
        """
        rows = []
        for p in parts:
            rows.append({
                "Name": p.name,
                "Type": p.type,
                "Vendor": p.vendor or "",
                "Unit price": float(p.unit_price),
                "Quantity": p.quantity,
                "Subtotal": float(p.unit_price * p.quantity),
                "Purchase date": p.purchase_date.isoformat() if p.purchase_date else "",
                "Status": status_label(p.status),
                "Build": p.linked_build_id or "",
            })
        columns = ["Name", "Type", "Vendor", "Unit price", "Quantity", "Subtotal", "Purchase date", "Status", "Build"]
        return pd.DataFrame(rows, columns=columns)

    async def export_parts(self, identity: Identity) -> io.BytesIO:
        '''Excel workbook of the identity's inventory.'''
        parts = await self.list_parts(identity)
        df = self.generate_df_report(parts)

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Inventory")
        output.seek(0)

        logger.info("Exported %d parts for %s", len(parts), identity.uid)
        return output

    @staticmethod
    def inventory_value(parts: List[PartDTO]) -> Decimal:
        return sum(
            (p.unit_price * p.quantity for p in parts if p.status == PartStatus.in_inventory),
            Decimal("0"),
        )
