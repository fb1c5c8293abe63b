"""User model."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_tracker.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """An employee, manager or admin account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manager_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "role IN ('employee', 'manager', 'admin')",
            name="users_role_check",
        ),
        CheckConstraint(
            "status IN ('active', 'inactive')",
            name="users_status_check",
        ),
        Index("idx_users_manager", "manager_id"),
        Index("idx_users_role", "role"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"
