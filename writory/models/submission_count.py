from __future__ import annotations

from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import TimestampMixin


class UserSubmissionCount(db.Model, TimestampMixin):
    """Per-user, per-contest-month counters backing the free-tier gate."""

    __tablename__ = "user_submission_counts"
    __table_args__ = (
        UniqueConstraint("user_id", "contest_month", name="uq_submission_counts_user_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contest_month: Mapped[str] = mapped_column(db.String(7), nullable=False, doc="YYYY-MM (UTC)")
    free_submission_used: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    total_submissions: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)

    @classmethod
    def for_month(cls, user_id: int, month: str) -> Optional["UserSubmissionCount"]:
        return cls.query.filter_by(user_id=user_id, contest_month=month).first()

    @property
    def key(self) -> str:
        return f"{self.user_id}-{self.contest_month}"
