from __future__ import annotations

"""
User model: external identity (auth-provider uid) plus contest profile.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship

from writory.extensions import db

from .mixins import TimestampMixin


class User(db.Model, TimestampMixin):
    __tablename__ = "users"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[int] = mapped_column(primary_key=True)
    uid: Mapped[str] = mapped_column(
        db.String(128),
        unique=True,
        nullable=False,
        index=True,
        doc="Auth provider uid (or user_<ts> for guests)",
    )
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)

    # ── Profile ─────────────────────────────────────────────────
    name: Mapped[Optional[str]] = mapped_column(db.String(160), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(db.String(40), nullable=True)
    profile_picture_url: Mapped[Optional[str]] = mapped_column(db.String(512), nullable=True)
    instagram_handle: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True)

    submissions = relationship("Submission", back_populates="user", lazy="select")

    @classmethod
    def by_email(cls, email: str) -> Optional["User"]:
        return cls.query.filter(db.func.lower(cls.email) == (email or "").strip().lower()).first()

    @classmethod
    def by_uid(cls, uid: str) -> Optional["User"]:
        return cls.query.filter_by(uid=uid).first()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "uid": self.uid,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "profilePictureUrl": self.profile_picture_url,
            "instagramHandle": self.instagram_handle,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<User {self.uid} {self.email}>"
