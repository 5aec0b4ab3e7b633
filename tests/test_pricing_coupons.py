from datetime import datetime, timedelta

import pytest

from writory.errors import CouponError, TierError
from writory.extensions import db
from writory.models import Coupon, CouponUsage, User, UserSubmissionCount, utcnow
from writory.services import coupons, pricing
from writory.services.payments import inr_to_usd, to_minor_units


def _user(uid="u1", email="poet@example.com"):
    user = User(uid=uid, email=email)
    db.session.add(user)
    db.session.commit()
    return user


def _coupon(code, kind, value, **kw):
    c = Coupon(code=code, discount_type=kind, discount_value=value, used_count=0, is_active=True, **kw)
    db.session.add(c)
    db.session.commit()
    return c


def test_contest_month_format():
    assert pricing.contest_month(datetime(2026, 2, 28, 23, 59)) == "2026-02"


def test_resolve_tier_case_insensitive(app):
    assert pricing.resolve_tier(" Double ").poem_count == 2
    with pytest.raises(TierError):
        pricing.resolve_tier("gold")
    with pytest.raises(TierError):
        pricing.resolve_tier(None)


def test_free_gate_resets_each_month(app):
    user = _user()
    tier = pricing.resolve_tier("free")
    pricing.record_monthly_count(user, tier, 1, "2026-01")
    db.session.commit()

    with pytest.raises(TierError) as exc:
        pricing.check_free_gate(user, "2026-01")
    assert exc.value.status_code == 403

    # A new month starts clean
    pricing.check_free_gate(user, "2026-02")


def test_paid_entries_do_not_consume_free_slot(app):
    user = _user()
    pricing.record_monthly_count(user, pricing.resolve_tier("bulk"), 5, "2026-03")
    db.session.commit()
    pricing.check_free_gate(user, "2026-03")
    row = UserSubmissionCount.for_month(user.id, "2026-03")
    assert row.total_submissions == 5
    assert row.free_submission_used is False


def test_reset_free_tier_only_touches_month(app):
    user = _user()
    free = pricing.resolve_tier("free")
    pricing.record_monthly_count(user, free, 1, "2026-04")
    pricing.record_monthly_count(user, free, 1, "2026-05")
    db.session.commit()

    assert pricing.reset_free_tier("2026-05") == 1
    db.session.commit()

    assert UserSubmissionCount.for_month(user.id, "2026-05").free_submission_used is False
    assert UserSubmissionCount.for_month(user.id, "2026-04").free_submission_used is True


def test_fixed_coupon_on_double(app):
    _coupon("FLAT20", "fixed", 20)
    q = coupons.quote("double", "flat20", "u1")
    assert q.base_amount == 90
    assert q.discount == 20
    assert q.final == 70


def test_discount_never_exceeds_price(app):
    _coupon("HUGE", "fixed", 500)
    q = coupons.quote("single", "HUGE")
    assert q.discount == 50
    assert q.final == 0


def test_percentage_rounding(app):
    _coupon("THIRD", "percentage", 33.333)
    q = coupons.quote("single", "THIRD")
    assert q.discount == 16.67
    assert q.final == 33.33


def test_coupon_rejections(app):
    now = utcnow()
    _coupon("OLD", "percentage", 10, valid_until=now - timedelta(days=1))
    _coupon("SOON", "percentage", 10, valid_from=now + timedelta(days=1))
    _coupon("DONE", "percentage", 10, max_uses=1)
    _coupon("BULKONLY", "percentage", 10, applicable_tiers="bulk")
    off = _coupon("OFF", "percentage", 10)
    off.is_active = False
    db.session.commit()

    done = Coupon.by_code("DONE")
    done.used_count = 1
    db.session.commit()

    for code, tier in [
        ("OLD", "single"),
        ("SOON", "single"),
        ("DONE", "single"),
        ("BULKONLY", "single"),
        ("OFF", "single"),
        ("NOPE", "single"),
        ("BULKONLY", "free"),
    ]:
        with pytest.raises(CouponError):
            coupons.validate_coupon(code, pricing.resolve_tier(tier), "u1")

    assert coupons.validate_coupon("BULKONLY", pricing.resolve_tier("bulk")).final == 207


def test_coupon_once_per_user(app):
    c = _coupon("ONCE", "percentage", 10)
    q = coupons.quote("single", "ONCE", "u1")
    coupons.redeem(q, "u1", "group-1")
    db.session.commit()

    assert Coupon.by_code("ONCE").used_count == 1
    assert CouponUsage.exists_for(c.id, "u1")
    with pytest.raises(CouponError):
        coupons.quote("single", "ONCE", "u1")
    # Another user is fine
    assert coupons.quote("single", "ONCE", "u2").final == 45


def test_redeem_respects_cap(app):
    _coupon("CAP1", "percentage", 10, max_uses=1)
    q1 = coupons.quote("single", "CAP1", "a")
    q2 = coupons.quote("single", "CAP1", "b")
    coupons.redeem(q1, "a", "g1")
    db.session.commit()
    with pytest.raises(CouponError):
        coupons.redeem(q2, "b", "g2")
    db.session.rollback()
    assert Coupon.by_code("CAP1").used_count == 1


def test_seed_default_coupons_idempotent(app):
    assert coupons.seed_default_coupons() == 3
    assert coupons.seed_default_coupons() == 0
    assert Coupon.by_code("save20").discount_value == 20


def test_validate_coupon_endpoint(client):
    _coupon("SAVE20", "percentage", 20)
    ok = client.post("/api/validate-coupon", json={"code": "save20", "tier": "double", "userId": "u9"})
    assert ok.status_code == 200
    body = ok.get_json()
    assert body["valid"] is True
    assert body["discountAmount"] == 18
    assert body["finalAmount"] == 72

    bad = client.post("/api/validate-coupon", json={"code": "NOPE", "tier": "double"})
    assert bad.status_code == 400
    assert bad.get_json()["valid"] is False


def test_paypal_conversion_table():
    assert str(inr_to_usd(50)) == "0.60"
    assert str(inr_to_usd(90)) == "1.08"
    assert str(inr_to_usd(230)) == "2.76"
    assert str(inr_to_usd(40)) == "0.48"
    assert str(inr_to_usd(0.1)) == "0.01"


def test_stripe_minor_units():
    assert to_minor_units(72.5) == 7250
    assert to_minor_units(50) == 5000
