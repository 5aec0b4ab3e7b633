from __future__ import annotations

# -----------------------------------------------------------------------------
# Coupon + CouponUsage
# Codes are stored upper-cased. One redemption per user per coupon.
# -----------------------------------------------------------------------------
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from writory.extensions import db

from .mixins import TimestampMixin, utcnow

DISCOUNT_TYPES = ("percentage", "fixed")


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class Coupon(db.Model, TimestampMixin):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_value >= 0", name="ck_coupons_value_nonneg"),
        CheckConstraint("used_count >= 0", name="ck_coupons_used_nonneg"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(db.String(40), unique=True, nullable=False, index=True)
    discount_type: Mapped[str] = mapped_column(
        db.String(12), nullable=False, default="percentage", doc="percentage | fixed"
    )
    discount_value: Mapped[float] = mapped_column(
        db.Float, nullable=False, doc="Percent (0-100) or flat INR amount"
    )
    valid_from: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    max_uses: Mapped[Optional[int]] = mapped_column(db.Integer, nullable=True, doc="None = unlimited")
    used_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    applicable_tiers: Mapped[Optional[str]] = mapped_column(
        db.String(80), nullable=True, doc="Comma list of tiers; empty = all paid tiers"
    )
    description: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    usages = relationship("CouponUsage", back_populates="coupon", lazy="select", cascade="all, delete-orphan")

    @classmethod
    def by_code(cls, code: str) -> Optional["Coupon"]:
        return cls.query.filter_by(code=normalize_code(code)).first()

    @property
    def tiers(self) -> List[str]:
        return [t.strip().lower() for t in (self.applicable_tiers or "").split(",") if t.strip()]

    def applies_to(self, tier: str) -> bool:
        return not self.tiers or tier in self.tiers

    def in_window(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.valid_from and now < self.valid_from:
            return False
        if self.valid_until and now > self.valid_until:
            return False
        return True

    @property
    def exhausted(self) -> bool:
        return self.max_uses is not None and self.used_count >= self.max_uses

    def discount_for(self, amount: float) -> float:
        """Discount on ``amount``, rounded to 2 dp and never more than the amount."""
        base = Decimal(str(amount))
        if self.discount_type == "percentage":
            raw = base * Decimal(str(self.discount_value)) / Decimal("100")
        else:
            raw = Decimal(str(self.discount_value))
        raw = raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return float(min(max(raw, Decimal("0")), base))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "validFrom": self.valid_from.isoformat() if self.valid_from else None,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
            "maxUses": self.max_uses,
            "usedCount": self.used_count,
            "isActive": self.is_active,
            "applicableTiers": self.tiers,
            "description": self.description,
        }

    def __repr__(self) -> str:
        return f"<Coupon {self.code} {self.discount_type}={self.discount_value}>"


class CouponUsage(db.Model):
    __tablename__ = "coupon_usage"
    __table_args__ = (
        UniqueConstraint("coupon_id", "user_uid", name="uq_coupon_usage_coupon_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    coupon_id: Mapped[int] = mapped_column(
        db.ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    coupon = relationship("Coupon", back_populates="usages")
    user_uid: Mapped[str] = mapped_column(db.String(128), nullable=False, index=True)
    submission_uuid: Mapped[Optional[str]] = mapped_column(db.String(36), nullable=True, index=True)
    discount_amount: Mapped[float] = mapped_column(
        db.Float, nullable=False, default=0.0, doc="Discount on the whole group, recorded once"
    )
    used_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    @classmethod
    def exists_for(cls, coupon_id: int, user_uid: str) -> bool:
        return cls.query.filter_by(coupon_id=coupon_id, user_uid=user_uid).first() is not None
