# pcinventory/models/part.py
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Numeric, Integer, Date, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pcinventory.db.base import Base
from pcinventory.db.enums import PartStatus
from pcinventory.models.mixins.base_document import BaseDocumentMixin


class Part(Base, BaseDocumentMixin):
    """
    A quantity of one component type.
    Either free inventory (in_inventory / not_in_inventory) or quantity
    committed to one build (in_build, linked_build_id set).
    """

    __tablename__ = "parts"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_parts_quantity_non_negative"),
    )

    # =========
    # 🔤 Description
    # =========
    name :Mapped[str] = mapped_column(String(255), nullable=False, comment="Part name")
    type :Mapped[str] = mapped_column(String(50), nullable=False, default="Other", comment="Category")
    vendor :Mapped[Optional[str]] = mapped_column(String(255), nullable=True, comment="Vendor / shop")
    purchase_date :Mapped[Optional[date]] = mapped_column(Date, nullable=True, comment="Purchase date")

    # =========
    # 🔢 Quantity & pricing
    # =========
    unit_price :Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Unit price",
    )

    quantity :Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Quantity on hand, never negative",
    )

    status :Mapped[PartStatus] = mapped_column(
        Enum(PartStatus),
        nullable=False,
        default=PartStatus.in_inventory,
        comment="in_inventory / in_build / not_in_inventory",
    )

    # =========
    # 🔗 Lineage (build-spawned records only)
    # =========
    linked_build_id :Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True, comment="Build that consumed this quantity")
    source_part_id :Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="Inventory part the quantity came from")
    restored_from_build_id :Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="Set when recreated by build deletion")

    def __repr__(self) -> str:
        return (
            f"<Part id={self.id} name={self.name} "
            f"qty={self.quantity} status={self.status.value if self.status else None}>"
        )

    def check_invariants(self) -> list:
        '''返回违反的不变量列表（空列表表示合法）'''
        problems = []
        if self.quantity is None or self.quantity < 0:
            problems.append(f"quantity must be >= 0, got {self.quantity}")
        if self.status == PartStatus.in_build and not self.linked_build_id:
            problems.append("in_build part requires linked_build_id")
        if not (self.name or "").strip():
            problems.append("name is required")
        return problems
