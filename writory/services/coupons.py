# writory/services/coupons.py
"""
Coupon validation and redemption.

Validation is read-only and may be repeated freely. Redemption (usage row +
used_count bump) only happens inside the submission transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy import update as sa_update

from writory.errors import CouponError
from writory.extensions import db
from writory.models import Coupon, CouponUsage, utcnow
from writory.models.coupon import normalize_code

from .pricing import TierInfo, final_amount, resolve_tier

log = logging.getLogger(__name__)

DEFAULT_COUPONS = (
    ("SAVE20", "percentage", 20.0, "20% off any paid tier"),
    ("WELCOME10", "percentage", 10.0, "10% welcome discount"),
    ("POETRY50", "percentage", 50.0, "Half price entry"),
)


@dataclass
class Quote:
    tier: TierInfo
    base_amount: float
    discount: float = 0.0
    coupon: Optional[Coupon] = None

    @property
    def final(self) -> float:
        return final_amount(self.base_amount, self.discount)

    @property
    def coupon_code(self) -> Optional[str]:
        return self.coupon.code if self.coupon is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.name,
            "poemCount": self.tier.poem_count,
            "baseAmount": self.base_amount,
            "discountAmount": self.discount,
            "finalAmount": self.final,
            "couponCode": self.coupon_code,
        }


def validate_coupon(code: Optional[str], tier: TierInfo, user_uid: Optional[str] = None) -> Quote:
    """Check ``code`` for ``tier``; raises CouponError with a user-facing reason."""
    norm = normalize_code(code)
    if not norm:
        raise CouponError("Coupon code is required")
    if tier.is_free:
        raise CouponError("Coupons cannot be applied to the free tier")

    coupon = Coupon.by_code(norm)
    if coupon is None or not coupon.is_active:
        raise CouponError("Invalid coupon code")
    if not coupon.in_window(utcnow()):
        raise CouponError("This coupon has expired or is not yet active")
    if coupon.exhausted:
        raise CouponError("This coupon has reached its usage limit")
    if not coupon.applies_to(tier.name):
        raise CouponError(f"This coupon is not valid for the {tier.name} tier")
    if user_uid and CouponUsage.exists_for(coupon.id, user_uid):
        raise CouponError("You have already used this coupon")

    return Quote(tier=tier, base_amount=float(tier.price), discount=coupon.discount_for(tier.price), coupon=coupon)


def quote(tier_name: Optional[str], coupon_code: Optional[str] = None, user_uid: Optional[str] = None) -> Quote:
    """Server-side payable amount for a tier plus optional coupon."""
    tier = resolve_tier(tier_name)
    if coupon_code and normalize_code(coupon_code):
        return validate_coupon(coupon_code, tier, user_uid)
    return Quote(tier=tier, base_amount=float(tier.price))


def redeem(quote_: Quote, user_uid: str, submission_uuid: str) -> Optional[CouponUsage]:
    """
    Record the redemption in the current session (caller commits). The
    used_count bump is a guarded UPDATE so a cap cannot be overrun.
    """
    coupon = quote_.coupon
    if coupon is None:
        return None

    stmt = (
        sa_update(Coupon)
        .where(Coupon.id == coupon.id)
        .where(or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses))
        .values(used_count=Coupon.used_count + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise CouponError("This coupon has reached its usage limit")

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_uid=user_uid,
        submission_uuid=submission_uuid,
        discount_amount=quote_.discount,
    )
    db.session.add(usage)
    log.info("Coupon %s redeemed by %s (-%s)", coupon.code, user_uid, quote_.discount)
    return usage


def seed_default_coupons() -> int:
    """Insert the stock coupons that are missing; returns how many were added."""
    added = 0
    for code, kind, value, description in DEFAULT_COUPONS:
        if Coupon.by_code(code) is not None:
            continue
        db.session.add(
            Coupon(
                code=code,
                discount_type=kind,
                discount_value=value,
                description=description,
                is_active=True,
                used_count=0,
            )
        )
        added += 1
    db.session.commit()
    return added
