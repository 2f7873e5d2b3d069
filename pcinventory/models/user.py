# pcinventory/models/user.py
from sqlalchemy import String, Boolean, DateTime, func
from pcinventory.db.base import Base
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime

class User(Base):
    """
    Account whose id scopes the part and build collections.
    """

    __tablename__ = "users"

    id :Mapped[str] = mapped_column(String(36), primary_key=True, comment="User UUID")

    email :Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="Login email, stored lower-case",
    )

    display_name :Mapped[str] = mapped_column(
        String(100),
        nullable=True,
        comment="Display name for the user",
    )

    password_hash :Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Hashed password for authentication",
    )

    is_active :Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment="Whether the user account is active")

    created_at :Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Account creation timestamp",
    )
