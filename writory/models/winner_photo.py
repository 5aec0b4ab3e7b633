from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import TimestampMixin


class WinnerPhoto(db.Model, TimestampMixin):
    __tablename__ = "winner_photos"
    __table_args__ = (
        CheckConstraint("position BETWEEN 1 AND 3", name="ck_winner_photos_position"),
        Index("ix_winner_photos_month_position", "contest_month", "position"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    position: Mapped[int] = mapped_column(db.Integer, nullable=False, doc="1st / 2nd / 3rd")
    contest_month: Mapped[str] = mapped_column(db.String(7), nullable=False, index=True)
    contest_year: Mapped[int] = mapped_column(db.Integer, nullable=False)
    photo_url: Mapped[str] = mapped_column(db.String(512), nullable=False)
    winner_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    poem_title: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)
    poem_text: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)
    instagram_handle: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True)
    score: Mapped[Optional[float]] = mapped_column(db.Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True, index=True)
    uploaded_by: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position": self.position,
            "contestMonth": self.contest_month,
            "contestYear": self.contest_year,
            "photoUrl": self.photo_url,
            "winnerName": self.winner_name,
            "poemTitle": self.poem_title,
            "poemText": self.poem_text,
            "instagramHandle": self.instagram_handle,
            "score": self.score,
            "isActive": self.is_active,
            "uploadedBy": self.uploaded_by,
        }
