"""
Part Allocation Engine.

Stages a selection of parts against the inventory view, then commits it as a
Build: the build document is written first, then every line decrements (or
deletes) its source part and spawns an in_build part carrying the lineage.
Steps after the build write are not atomic; their failures are recorded and
logged, never rolled back.
"""
import asyncio
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set
from uuid import uuid4

from pcinventory.db.enums import AuditEntityType, PartStatus
from pcinventory.errors import InventoryError, StoreError, ValidationError, WriteTimeoutError
from pcinventory.logger import get_logger
from pcinventory.schemas.build_dto import BuildDTO, BuildLine
from pcinventory.schemas.error_type import ErrorType
from pcinventory.schemas.operation_result import OperationResult
from pcinventory.schemas.outcomes import CommitResult, PartialReconciliationFailure, Selection
from pcinventory.schemas.part_dto import PartDTO
from pcinventory.services.audit_log_service import AuditLogService
from pcinventory.services.identity import Identity
from pcinventory.services.inventory_view import InventoryView
from pcinventory.services.part_fields import build_total, sort_build_lines
from pcinventory.store.collection import RemoteStore

logger = get_logger(__name__)

DEFAULT_WRITE_TIMEOUT = 10.0


class AllocationService:
    """
    Stage and commit builds.

    :param store: remote collection store
    :param view: subscription-fed inventory view used for staging checks
    :param audit_log_service: audit trail of every write
    :param write_timeout: deadline in seconds for the build create call
    """

    def __init__(
        self,
        store: RemoteStore,
        view: InventoryView,
        audit_log_service: AuditLogService,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
        uuid_factory: Callable[[], str] = lambda: str(uuid4()),
    ):
        self.store = store
        self.view = view
        self.audit_log_service = audit_log_service
        self.write_timeout = write_timeout
        self.uuid_factory = uuid_factory
        # 超时后仍在进行的写入，保持引用直到完成
        self._pending_writes: Set[asyncio.Future] = set()

    # ======================================================
    # 🧮 Staging
    # ======================================================

    def compute_available(self, part_id: str, pending_lines: List[BuildLine]) -> int:
        '''
        Inventory quantity of the part minus what the given lines already reserve.

        :param part_id: part being staged
        :param pending_lines: staged lines to count against it (callers leave out the line being edited)
        :return: >= 0; 0 for an unknown part or a part not in inventory
        '''
        part = self.view.find_part(part_id)
        if part is None or part.status != PartStatus.in_inventory:
            return 0
        reserved = sum(line.quantity for line in pending_lines if line.part_id == part_id)
        return max(part.quantity - reserved, 0)

    def add_selection(self, selection: Selection, part: PartDTO) -> OperationResult:
        '''
        Add a part to the selection with quantity 1, or increment its line by 1.
        Running out of stock is reported, not raised.
        '''
        available = self.compute_available(part.id, selection.lines)
        if available <= 0:
            return OperationResult.failure(
                ErrorType.VALIDATION_ERROR,
                f"No more '{part.name}' available in inventory.",
                data={"part_id": part.id, "available": 0},
            )

        line = selection.line_for(part.id)
        if line is None:
            line = BuildLine(
                part_id=part.id,
                name=part.name,
                type=part.type,
                unit_price=part.unit_price,
                quantity=1,
            )
            selection.lines.append(line)
        else:
            line.quantity += 1

        return OperationResult.success(
            data={"part_id": part.id, "quantity": line.quantity, "available": available - 1},
        )

    def set_line_quantity(self, selection: Selection, part_id: str, requested_qty: Any) -> OperationResult:
        '''
        Clamp the line's quantity into [0, available excluding this line].
        A request above the clamp succeeds with an explanation.
        '''
        line = selection.line_for(part_id)
        if line is None:
            return OperationResult.failure(
                ErrorType.NOT_FOUND,
                f"Part {part_id} is not in the selection.",
                data={"part_id": part_id},
            )

        try:
            raw = int(requested_qty)
        except (TypeError, ValueError):
            raw = 0

        others = [l for l in selection.lines if l is not line]
        cap = self.compute_available(part_id, others)
        clamped = max(0, min(raw, cap))
        line.quantity = clamped

        explanation = None
        if raw > cap:
            explanation = f"Only {cap} of '{line.name}' available; quantity set to {cap}."
        return OperationResult.success(
            data={"part_id": part_id, "quantity": clamped, "requested": raw, "available": cap},
            explanation=explanation,
        )

    def remove_line(self, selection: Selection, part_id: str) -> None:
        selection.lines = [l for l in selection.lines if l.part_id != part_id]

    # ======================================================
    # 💾 Commit
    # ======================================================

    async def _create_with_deadline(self, collection, payload: Dict[str, Any]) -> str:
        task = asyncio.ensure_future(collection.create(payload))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.write_timeout)
        except asyncio.TimeoutError as e:
            # 不取消：写入可能在之后完成
            self._pending_writes.add(task)
            task.add_done_callback(self._on_late_write)
            raise WriteTimeoutError(
                f"Saving the build took longer than {self.write_timeout:g}s; it may still be created."
            ) from e

    def _on_late_write(self, task: asyncio.Future) -> None:
        self._pending_writes.discard(task)
        if task.cancelled():
            logger.warning("Timed-out build write was cancelled")
        elif task.exception() is not None:
            logger.error("Timed-out build write failed: %s", task.exception())
        else:
            logger.warning("Timed-out build write completed later as build %s", task.result())

    async def _revalidate(self, parts, lines: List[BuildLine]) -> Dict[str, PartDTO]:
        '''
        Re-read every source part and check the requested totals against live quantity.

        :raises ValidationError: any line cannot be satisfied; nothing was written
        '''
        requested: "OrderedDict[str, int]" = OrderedDict()
        for line in lines:
            requested[line.part_id] = requested.get(line.part_id, 0) + line.quantity

        live: Dict[str, PartDTO] = {}
        problems = []
        for part_id, qty in requested.items():
            part = await parts.get(part_id)
            if part is None:
                problems.append(f"part {part_id} no longer exists")
                continue
            if part.status != PartStatus.in_inventory:
                problems.append(f"'{part.name}' is no longer in inventory")
                continue
            if qty > part.quantity:
                problems.append(f"'{part.name}': requested {qty}, only {part.quantity} available")
                continue
            live[part_id] = part

        if problems:
            raise ValidationError("Cannot save build: " + "; ".join(problems))
        return live

    def _audit(self, method: str, **kwargs) -> None:
        try:
            getattr(self.audit_log_service, method)(**kwargs)
        except StoreError as e:
            logger.error("Audit %s for %s failed: %s", method, kwargs.get("entity_id"), e)

    async def commit(
        self,
        identity: Identity,
        selection: Selection,
        build_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CommitResult:
        '''
        Persist the selection as a build and move the quantity out of inventory.

        :param identity: active identity; the collections are scoped by it
        :param selection: staged lines
        :param build_name: overrides selection.name when given
        :param notes: overrides selection.notes when given
        :raises ValidationError: missing name, no lines, or live quantity too low (no write happened)
        :raises WriteTimeoutError: build create did not answer in time (it may still land)
        :raises StoreError: the build create failed
        '''
        name = (build_name if build_name is not None else selection.name or "").strip()
        if not name:
            raise ValidationError("Enter a build name.")
        lines = [line for line in selection.lines if line.quantity > 0]
        if not lines:
            raise ValidationError("Add at least one part to the build.")

        parts = self.store.parts(identity)
        builds = self.store.builds(identity)

        # 1️⃣ 写入前最终校验（读取实时数据，不用暂存快照）
        live = await self._revalidate(parts, lines)

        # 2️⃣ 写入 Build
        sorted_lines = sort_build_lines(lines)
        total = build_total(sorted_lines)
        build_uuid = self.uuid_factory()
        build_notes = notes if notes is not None else selection.notes
        build_id = await self._create_with_deadline(builds, {
            "uuid": build_uuid,
            "name": name,
            "notes": build_notes,
            "lines": sorted_lines,
            "total": total,
        })
        self._audit(
            "record_create",
            owner_id=identity.uid,
            entity_type=AuditEntityType.Build,
            entity_id=build_id,
            operator_id=identity.uid,
            after_value=total,
        )

        # 3️⃣ 逐行拆分库存；失败只记录，不回滚
        failures: List[PartialReconciliationFailure] = []
        spawned: List[str] = []
        remaining_by_part = {pid: p.quantity for pid, p in live.items()}
        for line in sorted_lines:
            source = live[line.part_id]
            remaining = remaining_by_part[line.part_id] - line.quantity
            try:
                if remaining > 0:
                    await parts.update_fields(line.part_id, {"quantity": remaining})
                    self._audit(
                        "record_update",
                        owner_id=identity.uid,
                        entity_type=AuditEntityType.Part,
                        entity_id=line.part_id,
                        changed_attribute="quantity",
                        before_value=remaining_by_part[line.part_id],
                        after_value=remaining,
                        operator_id=identity.uid,
                    )
                else:
                    await parts.delete(line.part_id)
                    self._audit(
                        "record_delete",
                        owner_id=identity.uid,
                        entity_type=AuditEntityType.Part,
                        entity_id=line.part_id,
                        operator_id=identity.uid,
                        before_value=remaining_by_part[line.part_id],
                    )
                remaining_by_part[line.part_id] = max(remaining, 0)
            except InventoryError as e:
                logger.error("Build %s: decrement of part %s failed: %s", build_id, line.part_id, e)
                failures.append(PartialReconciliationFailure(
                    build_id=build_id, part_id=line.part_id, step="decrement_source", message=str(e),
                ))

            try:
                spawned_id = await parts.create({
                    "uuid": self.uuid_factory(),
                    "name": source.name,
                    "type": source.type,
                    "unit_price": source.unit_price,
                    "quantity": line.quantity,
                    "vendor": source.vendor,
                    "purchase_date": source.purchase_date,
                    "status": PartStatus.in_build,
                    "linked_build_id": build_id,
                    "source_part_id": line.part_id,
                })
                spawned.append(spawned_id)
                self._audit(
                    "record_create",
                    owner_id=identity.uid,
                    entity_type=AuditEntityType.Part,
                    entity_id=spawned_id,
                    operator_id=identity.uid,
                    after_value=line.quantity,
                )
            except InventoryError as e:
                logger.error("Build %s: in-build part for %s not created: %s", build_id, line.part_id, e)
                failures.append(PartialReconciliationFailure(
                    build_id=build_id, part_id=line.part_id, step="spawn_in_build", message=str(e),
                ))

        build = BuildDTO(
            id=build_id,
            uuid=build_uuid,
            name=name,
            notes=build_notes,
            lines=sorted_lines,
            total=total,
        )
        self.view.apply_optimistic_build(build)
        logger.info(
            "Committed build %s (%d lines, total %s, %d failures)",
            build_id, len(sorted_lines), total, len(failures),
        )
        return CommitResult(build=build, failures=failures, spawned_part_ids=spawned)
