from __future__ import annotations

# -----------------------------------------------------------------------------
# Notification + UserNotification
# An admin message fans out to one delivery row per recipient; read state
# lives on the delivery row.
# -----------------------------------------------------------------------------
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from writory.extensions import db

from .mixins import TimestampMixin, utcnow

NOTIFICATION_TYPES = ("individual", "broadcast")


class Notification(db.Model, TimestampMixin):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(db.String(200), nullable=False)
    message: Mapped[str] = mapped_column(db.Text, nullable=False)
    type: Mapped[str] = mapped_column(db.String(20), nullable=False, index=True)
    target_user_email: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)
    sent_by: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(db.Boolean, default=True, nullable=False)

    deliveries = relationship(
        "UserNotification", back_populates="notification", cascade="all, delete-orphan", lazy="select"
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "targetUserEmail": self.target_user_email,
            "sentBy": self.sent_by,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class UserNotification(db.Model):
    __tablename__ = "user_notifications"
    __table_args__ = (UniqueConstraint("notification_id", "user_id", name="uq_user_notifications_once"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    notification_id: Mapped[int] = mapped_column(
        db.ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_email: Mapped[str] = mapped_column(db.String(255), nullable=False)
    is_read: Mapped[bool] = mapped_column(db.Boolean, default=False, nullable=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(db.DateTime, default=utcnow, nullable=False)

    notification = relationship("Notification", back_populates="deliveries")

    def mark_read(self) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        n = self.notification
        return {
            "id": self.id,
            "notificationId": self.notification_id,
            "title": n.title,
            "message": n.message,
            "type": n.type,
            "isRead": self.is_read,
            "readAt": self.read_at.isoformat() if self.read_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
