"""
Build Reconciliation Engine.

Deleting a build either returns its allocated quantity to inventory or
discards it. Matching between a build line and the parts it spawned follows a
fixed fallback chain: source_part_id, then name, then type. Names and types
are not unique, so the later steps can pick the wrong part when duplicates
exist.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from pcinventory.db.enums import AuditEntityType, PartStatus
from pcinventory.errors import BuildNotFoundError, InventoryError, StoreError, ValidationError
from pcinventory.logger import get_logger
from pcinventory.schemas.build_dto import BuildDTO, BuildLine
from pcinventory.schemas.outcomes import PartialReconciliationFailure, ReconciliationReport
from pcinventory.schemas.part_dto import PartDTO
from pcinventory.services.audit_log_service import AuditLogService
from pcinventory.services.identity import Identity
from pcinventory.services.inventory_view import InventoryView
from pcinventory.services.part_fields import (
    build_total,
    coerce_price,
    coerce_quantity,
    normalize_type,
    sort_build_lines,
)
from pcinventory.store.collection import RemoteStore

logger = get_logger(__name__)


class ReconciliationService:
    """
    Reverse allocations on build delete / edit.

    Works on one bulk-read snapshot of the parts collection and keeps it up to
    date with its own writes, so later lines see what earlier lines did.
    """

    def __init__(
        self,
        store: RemoteStore,
        view: InventoryView,
        audit_log_service: AuditLogService,
        uuid_factory: Callable[[], str] = lambda: str(uuid4()),
    ):
        self.store = store
        self.view = view
        self.audit_log_service = audit_log_service
        self.uuid_factory = uuid_factory

    # ======================================================
    # 🔧 Internal helpers
    # ======================================================

    def _audit(self, method: str, **kwargs) -> None:
        try:
            getattr(self.audit_log_service, method)(**kwargs)
        except StoreError as e:
            logger.error("Audit %s for %s failed: %s", method, kwargs.get("entity_id"), e)

    def _fail(self, report: ReconciliationReport, part_id: Optional[str], step: str, error: Exception) -> None:
        logger.error("Build %s: %s of part %s failed: %s", report.build_id, step, part_id, error)
        report.failures.append(PartialReconciliationFailure(
            build_id=report.build_id, part_id=part_id, step=step, message=str(error),
        ))

    @staticmethod
    def _linked_in_build(working: Dict[str, PartDTO], build_id: str) -> List[PartDTO]:
        return [
            p for p in working.values()
            if p.status == PartStatus.in_build and p.linked_build_id == build_id
        ]

    @staticmethod
    def _match_candidates(linked: List[PartDTO], line: BuildLine) -> List[PartDTO]:
        '''source_part_id first, then name, then type; first non-empty step wins.'''
        for predicate in (
            lambda p: p.source_part_id == line.part_id,
            lambda p: p.name == line.name,
            lambda p: p.type == line.type,
        ):
            matches = [p for p in linked if predicate(p)]
            if matches:
                return matches
        return []

    @staticmethod
    def _inventory_target(working: Dict[str, PartDTO], in_build: PartDTO) -> Optional[PartDTO]:
        '''Inventory part to credit: the source part, else first (name, type) match not in a build.'''
        if in_build.source_part_id:
            source = working.get(in_build.source_part_id)
            if source is not None and source.status != PartStatus.in_build:
                return source
        for p in working.values():
            if p.status != PartStatus.in_build and p.name == in_build.name and p.type == in_build.type:
                return p
        return None

    async def _credit(self, identity, parts, working, target: PartDTO, qty: int) -> None:
        new_qty = target.quantity + qty
        await parts.update_fields(target.id, {"quantity": new_qty})
        working[target.id] = target.model_copy(update={"quantity": new_qty})
        self._audit(
            "record_update",
            owner_id=identity.uid,
            entity_type=AuditEntityType.Part,
            entity_id=target.id,
            changed_attribute="quantity",
            before_value=target.quantity,
            after_value=new_qty,
            operator_id=identity.uid,
        )

    async def _create_restored(self, identity, parts, working, report, template: Any, qty: int) -> None:
        fields = {
            "uuid": self.uuid_factory(),
            "name": template.name,
            "type": template.type,
            "unit_price": template.unit_price,
            "quantity": qty,
            "vendor": getattr(template, "vendor", None),
            "purchase_date": getattr(template, "purchase_date", None),
            "status": PartStatus.in_inventory,
            "restored_from_build_id": report.build_id,
        }
        part_id = await parts.create(fields)
        report.created_part_ids.append(part_id)
        working[part_id] = PartDTO(id=part_id, **fields)
        self._audit(
            "record_create",
            owner_id=identity.uid,
            entity_type=AuditEntityType.Part,
            entity_id=part_id,
            operator_id=identity.uid,
            after_value=qty,
        )

    async def _release(self, identity, parts, working, in_build: PartDTO, qty: int) -> None:
        left = in_build.quantity - qty
        if left > 0:
            await parts.update_fields(in_build.id, {"quantity": left})
            working[in_build.id] = in_build.model_copy(update={"quantity": left})
            self._audit(
                "record_update",
                owner_id=identity.uid,
                entity_type=AuditEntityType.Part,
                entity_id=in_build.id,
                changed_attribute="quantity",
                before_value=in_build.quantity,
                after_value=left,
                operator_id=identity.uid,
            )
        else:
            await parts.delete(in_build.id)
            working.pop(in_build.id, None)
            self._audit(
                "record_delete",
                owner_id=identity.uid,
                entity_type=AuditEntityType.Part,
                entity_id=in_build.id,
                operator_id=identity.uid,
                before_value=in_build.quantity,
            )

    async def _return_line(self, identity, parts, working, report, line: BuildLine) -> None:
        need = line.quantity
        if need <= 0:
            return

        matches = self._match_candidates(self._linked_in_build(working, report.build_id), line)

        if not matches:
            original = working.get(line.part_id)
            try:
                if original is not None:
                    await self._credit(identity, parts, working, original, need)
                else:
                    await self._create_restored(identity, parts, working, report, line, need)
            except InventoryError as e:
                self._fail(report, line.part_id, "credit_inventory", e)
                return
            report.returned_quantity += need
            return

        for match in matches:
            if need <= 0:
                break
            current = working.get(match.id)
            if current is None or current.quantity <= 0:
                continue
            transfer = min(current.quantity, need)

            target = self._inventory_target(working, current)
            try:
                if target is not None:
                    await self._credit(identity, parts, working, target, transfer)
                else:
                    await self._create_restored(identity, parts, working, report, current, transfer)
            except InventoryError as e:
                # 入库失败：保留 in_build 记录，放弃本行剩余部分
                self._fail(report, current.id, "credit_inventory", e)
                return
            need -= transfer
            report.returned_quantity += transfer

            try:
                await self._release(identity, parts, working, current, transfer)
            except InventoryError as e:
                self._fail(report, current.id, "release_in_build", e)

        if need > 0:
            try:
                await self._create_restored(identity, parts, working, report, line, need)
            except InventoryError as e:
                self._fail(report, line.part_id, "credit_leftover", e)
                return
            report.returned_quantity += need

    # ======================================================
    # 🗑️ Delete
    # ======================================================

    async def reconcile_delete(
        self,
        identity: Identity,
        build_id: str,
        return_to_inventory: bool,
    ) -> ReconciliationReport:
        '''
        Delete a build, returning its parts to inventory or discarding them.

        :param identity: active identity
        :param build_id: build to delete
        :param return_to_inventory: True merges quantity back, False deletes the in_build parts
        :raises BuildNotFoundError: no such build (nothing written)
        :raises StoreError: the snapshot read or the final build delete failed
        '''
        parts = self.store.parts(identity)
        builds = self.store.builds(identity)

        build = await builds.get(build_id)
        if build is None:
            raise BuildNotFoundError(f"Build {build_id} not found.")

        # 1️⃣ 一次性读取全部零件快照
        snapshot = await parts.bulk_read()
        working: Dict[str, PartDTO] = {p.id: p for p in snapshot}
        report = ReconciliationReport(build_id=build_id, return_to_inventory=return_to_inventory)

        if not return_to_inventory:
            # 2️⃣ 不归还：删除所有关联零件
            for part in snapshot:
                if part.linked_build_id != build_id:
                    continue
                try:
                    await parts.delete(part.id)
                except InventoryError as e:
                    self._fail(report, part.id, "discard_in_build", e)
                    continue
                working.pop(part.id, None)
                report.discarded_quantity += part.quantity
                self._audit(
                    "record_delete",
                    owner_id=identity.uid,
                    entity_type=AuditEntityType.Part,
                    entity_id=part.id,
                    operator_id=identity.uid,
                    before_value=part.quantity,
                )
        else:
            # 3️⃣ 归还：按 Build 上记录的行快照逐行处理
            for line in build.lines:
                await self._return_line(identity, parts, working, report, line)

        # 4️⃣ 最后删除 Build，不以前面步骤成功为条件
        await builds.delete(build_id)
        self._audit(
            "record_delete",
            owner_id=identity.uid,
            entity_type=AuditEntityType.Build,
            entity_id=build_id,
            operator_id=identity.uid,
            before_value=build.total,
        )
        self.view.remove_optimistic_build(build_id)

        logger.info(
            "Deleted build %s (return=%s): returned %d, discarded %d, %d failures",
            build_id, return_to_inventory, report.returned_quantity,
            report.discarded_quantity, len(report.failures),
        )
        return report

    # ======================================================
    # ✏️ Edit
    # ======================================================

    @staticmethod
    def _coerce_line(raw: Any, known_names: Dict[str, str]) -> BuildLine:
        '''A blank name falls back to the name the build already has for that part_id.'''
        if isinstance(raw, BuildLine):
            data = raw.model_dump()
        else:
            data = dict(raw)
        part_id = data.get("part_id")
        if not part_id:
            raise ValidationError("Every build line needs a part_id.")
        part_id = str(part_id)
        name = (data.get("name") or "").strip() or known_names.get(part_id, "")
        if not name:
            raise ValidationError(f"Build line for part {part_id} needs a name.")
        return BuildLine(
            part_id=part_id,
            name=name,
            type=normalize_type(data.get("type")),
            unit_price=coerce_price(data.get("unit_price", data.get("price"))),
            quantity=coerce_quantity(data.get("quantity", data.get("qty"))),
        )

    async def reconcile_edit(
        self,
        identity: Identity,
        build_id: str,
        new_lines: Iterable[Any],
        name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BuildDTO:
        '''
        Replace a build's lines, re-sort them and recompute the total.
        Inventory is not re-checked or released here.

        :raises BuildNotFoundError: no such build
        :raises ValidationError: empty name or malformed line
        :raises StoreError: the update failed; the optimistic view change is reverted
        '''
        builds = self.store.builds(identity)
        existing = self.view.find_build(build_id) or await builds.get(build_id)
        if existing is None:
            raise BuildNotFoundError(f"Build {build_id} not found.")

        build_name = (name if name is not None else existing.name or "").strip()
        if not build_name:
            raise ValidationError("Enter a build name.")

        known_names = {line.part_id: line.name for line in existing.lines}
        lines = sort_build_lines([self._coerce_line(raw, known_names) for raw in new_lines])
        total = build_total(lines)
        build_notes = notes if notes is not None else existing.notes
        updated = existing.model_copy(update={
            "name": build_name,
            "notes": build_notes,
            "lines": lines,
            "total": total,
        })

        self.view.apply_optimistic_build(updated)
        try:
            await builds.update_fields(build_id, {
                "name": build_name,
                "notes": build_notes,
                "lines": lines,
                "total": total,
            })
        except InventoryError:
            self.view.apply_optimistic_build(existing)
            raise

        self._audit(
            "record_update",
            owner_id=identity.uid,
            entity_type=AuditEntityType.Build,
            entity_id=build_id,
            changed_attribute="lines",
            before_value=existing.total,
            after_value=total,
            operator_id=identity.uid,
        )
        logger.info("Edited build %s: %d lines, total %s", build_id, len(lines), total)
        return updated
