from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from pcinventory.models.build import Build
from pcinventory.schemas.base_dto import BaseDTO


class BuildLine(BaseModel):
    """One allocation line, a snapshot of the part at the time the build was saved."""
    part_id: str
    name: str
    type: str = "Other"
    unit_price: Decimal = Decimal("0")
    quantity: int = Field(default=1, ge=0)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_document(self) -> Dict[str, Any]:
        return {
            "part_id": self.part_id,
            "name": self.name,
            "type": self.type,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }


class BuildDTO(BaseDTO):
    id: str
    uuid: Optional[str] = None
    name: str
    notes: Optional[str] = None
    lines: List[BuildLine] = []
    total: Decimal = Decimal("0")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    WRITABLE_FIELDS: ClassVar[FrozenSet[str]] = frozenset({"uuid", "name", "notes", "lines", "total"})

    @classmethod
    def from_orm_model(cls, build: Build) -> "BuildDTO":
        return cls(
            id=build.id,
            uuid=build.uuid,
            name=build.name,
            notes=build.notes,
            lines=[BuildLine(**line) for line in (build.lines or [])],
            total=build.total if build.total is not None else Decimal("0"),
            created_at=build.created_at,
            updated_at=build.updated_at,
        )

    @classmethod
    def to_column_values(cls, fields: Dict[str, Any]) -> Dict[str, Any]:
        values = super().to_column_values(fields)
        if "lines" in values:
            # JSON 列只存可序列化的值
            values["lines"] = [
                (line if isinstance(line, BuildLine) else BuildLine(**line)).to_document()
                for line in values["lines"]
            ]
        if "total" in values and not isinstance(values["total"], Decimal):
            values["total"] = Decimal(str(values["total"]))
        return values
