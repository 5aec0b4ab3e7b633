from __future__ import annotations

# -----------------------------------------------------------------------------
# SheetOutbox: spreadsheet mirror writes queued in the same transaction as the
# rows they mirror, delivered at-least-once by the flusher.
# -----------------------------------------------------------------------------
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import TimestampMixin

OUTBOX_STATUSES = ("pending", "sent", "failed")


class SheetOutbox(db.Model, TimestampMixin):
    __tablename__ = "sheet_outbox"
    __table_args__ = (Index("ix_sheet_outbox_status_created", "status", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    sheet: Mapped[str] = mapped_column(db.String(40), nullable=False, doc="Poetry | Contacts")
    rows: Mapped[List[List[Any]]] = mapped_column(db.JSON, nullable=False)
    status: Mapped[str] = mapped_column(db.String(10), nullable=False, default="pending", index=True)
    attempts: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    @classmethod
    def pending(cls, limit: int = 100) -> List["SheetOutbox"]:
        return cls.query.filter_by(status="pending").order_by(cls.id.asc()).limit(limit).all()

    def __repr__(self) -> str:
        return f"<SheetOutbox {self.id} {self.sheet} {self.status} x{self.attempts}>"
