from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import TimestampMixin

ADMIN_ROLES = ("admin", "judge", "moderator")


class AdminUser(db.Model, TimestampMixin):
    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(db.String(20), nullable=False, default="admin")
    added_by: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    @classmethod
    def by_email(cls, email: str) -> Optional["AdminUser"]:
        return cls.query.filter_by(email=(email or "").strip().lower()).first()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "addedBy": self.added_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
