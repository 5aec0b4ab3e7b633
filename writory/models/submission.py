from __future__ import annotations

# -----------------------------------------------------------------------------
# Submission: one row per poem.
# Rows sharing submission_uuid were paid for together and carry the same
# tier, price, payment_id and payment_method.
# -----------------------------------------------------------------------------
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from writory.extensions import db

from .mixins import TimestampMixin, utcnow

SUBMISSION_TIERS = ("free", "single", "double", "bulk")
PAYMENT_METHODS = ("free", "coupon", "stripe", "paypal", "qr")
SCORE_FIELDS = ("originality", "emotion", "structure", "language", "theme")


class Submission(db.Model, TimestampMixin):
    __tablename__ = "submissions"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_submissions_price_nonneg"),
        Index("ix_submissions_email_title", "email", "poem_title"),
        Index("ix_submissions_user_month", "user_id", "contest_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        db.ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
    )
    user = relationship("User", back_populates="submissions", lazy="joined")

    # ---- Entrant ----
    first_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(db.String(120), nullable=True)
    email: Mapped[str] = mapped_column(db.String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(db.String(40), nullable=True)
    age: Mapped[Optional[int]] = mapped_column(db.Integer, nullable=True)

    # ---- Entry ----
    poem_title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    tier: Mapped[str] = mapped_column(db.String(16), nullable=False, index=True)
    price: Mapped[float] = mapped_column(
        db.Float,
        nullable=False,
        default=0.0,
        doc="Payable group total (INR) after discount; same on every row of the group",
    )
    coupon_code: Mapped[Optional[str]] = mapped_column(db.String(40), nullable=True)
    discount_amount: Mapped[float] = mapped_column(db.Float, nullable=False, default=0.0)

    # ---- Payment ----
    payment_id: Mapped[Optional[str]] = mapped_column(db.String(160), nullable=True, index=True)
    payment_method: Mapped[str] = mapped_column(db.String(16), nullable=False, default="free")
    payment_verified: Mapped[bool] = mapped_column(
        db.Boolean,
        nullable=False,
        default=False,
        doc="True once the provider confirmed the charge server-side",
    )

    # ---- Files ----
    poem_file_url: Mapped[Optional[str]] = mapped_column(db.String(512), nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(db.String(512), nullable=True)

    # ---- Grouping ----
    submission_uuid: Mapped[str] = mapped_column(db.String(36), nullable=False, index=True)
    poem_index: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    total_poems: Mapped[int] = mapped_column(db.Integer, nullable=False, default=1)
    contest_month: Mapped[str] = mapped_column(db.String(7), nullable=False, index=True)
    submitted_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    # ---- Evaluation (CSV import / admin edit) ----
    score: Mapped[Optional[float]] = mapped_column(db.Float, nullable=True)
    type: Mapped[str] = mapped_column(db.String(20), nullable=False, default="Human")
    status: Mapped[str] = mapped_column(db.String(30), nullable=False, default="Pending", index=True)
    score_breakdown: Mapped[Optional[Dict[str, Any]]] = mapped_column(db.JSON, nullable=True)

    # ---- Winner ----
    is_winner: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, index=True)
    winner_position: Mapped[Optional[int]] = mapped_column(db.Integer, nullable=True)
    winner_category: Mapped[Optional[str]] = mapped_column(db.String(60), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "age": self.age,
            "poemTitle": self.poem_title,
            "tier": self.tier,
            "price": self.price,
            "couponCode": self.coupon_code,
            "discountAmount": self.discount_amount,
            "paymentId": self.payment_id,
            "paymentMethod": self.payment_method,
            "paymentVerified": self.payment_verified,
            "poemFileUrl": self.poem_file_url,
            "photoUrl": self.photo_url,
            "submissionUuid": self.submission_uuid,
            "poemIndex": self.poem_index,
            "totalPoems": self.total_poems,
            "contestMonth": self.contest_month,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "score": self.score,
            "type": self.type,
            "status": self.status,
            "scoreBreakdown": self.score_breakdown,
            "isWinner": self.is_winner,
            "winnerPosition": self.winner_position,
            "winnerCategory": self.winner_category,
        }

    def __repr__(self) -> str:
        return f"<Submission {self.id} {self.email} {self.poem_title!r} [{self.tier}]>"
