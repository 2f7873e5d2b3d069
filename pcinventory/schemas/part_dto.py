from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, FrozenSet, Optional

from pydantic import Field

from pcinventory.db.enums import PartStatus
from pcinventory.models.part import Part
from pcinventory.schemas.base_dto import BaseDTO


class PartDTO(BaseDTO):
    id: str
    uuid: Optional[str] = None
    name: str
    type: str = "Other"
    unit_price: Decimal = Decimal("0")
    quantity: int = Field(default=1, ge=0)
    vendor: Optional[str] = None
    purchase_date: Optional[date] = None
    status: PartStatus = PartStatus.in_inventory

    linked_build_id: Optional[str] = None
    source_part_id: Optional[str] = None
    restored_from_build_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    WRITABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset({
        "uuid", "name", "type", "unit_price", "quantity", "vendor",
        "purchase_date", "status", "linked_build_id", "source_part_id",
        "restored_from_build_id",
    })

    @classmethod
    def from_orm_model(cls, part: Part) -> "PartDTO":
        return cls(
            id=part.id,
            uuid=part.uuid,
            name=part.name,
            type=part.type,
            unit_price=part.unit_price if part.unit_price is not None else Decimal("0"),
            quantity=part.quantity,
            vendor=part.vendor,
            purchase_date=part.purchase_date,
            status=part.status,
            linked_build_id=part.linked_build_id,
            source_part_id=part.source_part_id,
            restored_from_build_id=part.restored_from_build_id,
            created_at=part.created_at,
            updated_at=part.updated_at,
        )

    @classmethod
    def to_column_values(cls, fields: Dict[str, Any]) -> Dict[str, Any]:
        values = super().to_column_values(fields)
        if "status" in values and not isinstance(values["status"], PartStatus):
            values["status"] = PartStatus(values["status"])
        if "unit_price" in values and not isinstance(values["unit_price"], Decimal):
            values["unit_price"] = Decimal(str(values["unit_price"]))
        return values

    @property
    def is_in_build(self) -> bool:
        return self.status == PartStatus.in_build
