from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import TimestampMixin


class Contact(db.Model, TimestampMixin):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(db.String(40), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(db.String(200), nullable=True)
    message: Mapped[str] = mapped_column(db.Text, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "subject": self.subject,
            "message": self.message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
