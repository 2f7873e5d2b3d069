# pcinventory/models/mixins/base_document.py
from sqlalchemy import String, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

class BaseDocumentMixin:
    """
    Base mixin for every document kept in a per-identity collection (part / build).

    Invariants:
    - id is issued by the store, never by the caller
    - uuid is generated by the client and survives local -> remote migration
    - Belongs to exactly one owner (identity)
    - created_at / updated_at / seq maintained by the store
    """
    # =========
    # Identity & owner
    # =========
    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="Server-issued document id")

    owner_id :Mapped[str] = mapped_column(String(128), nullable=False, index=True, comment="Identity owning this document")
    uuid :Mapped[str] = mapped_column(String(36), nullable=True, index=True, comment="Client-generated UUID, used for de-duplication")

    # =========
    # ⏱ Server timestamps
    # =========
    created_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Creation timestamp (server assigned)"
    )

    updated_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Last update timestamp (server assigned)"
    )

    seq :Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Monotonic per owner and kind, breaks created_at ties"
    )
