# pcinventory/models/build.py
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Numeric, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column

from pcinventory.db.base import Base
from pcinventory.models.mixins.base_document import BaseDocumentMixin


class Build(Base, BaseDocumentMixin):
    """
    A named set of part allocations.
    lines is a denormalized snapshot: it never follows later edits of the source parts.
    """

    __tablename__ = "builds"

    name :Mapped[str] = mapped_column(String(255), nullable=False, comment="Build name")
    notes :Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="Free notes")

    lines :Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="[{part_id, name, type, unit_price, quantity}]",
    )

    total :Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Sum of unit_price * quantity at last save",
    )

    def __repr__(self) -> str:
        return f"<Build id={self.id} name={self.name} total={self.total}>"

    def check_invariants(self) -> list:
        problems = []
        if not (self.name or "").strip():
            problems.append("build name is required")
        return problems
