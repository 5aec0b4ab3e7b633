# writory/services/submissions.py
"""
Submission recorder.

Order of operations for one entry (one or N poems):
  tier -> contest open -> user -> free gate -> coupon quote -> payment verify
  -> uploads (poems, then photo) -> single DB transaction -> post-commit
  outbox flush + confirmation email.

Uploads run before the transaction, so a failed upload writes nothing. The
group shares one submission_uuid, one price (payable total after discount)
and one payment reference.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.datastructures import FileStorage

from writory.errors import CouponError, PaymentError, SubmissionError
from writory.extensions import db, send_email_async, tx_commit
from writory.models import Submission, User, utcnow

from . import coupons, pricing, sheets
from .drive import PHOTOS_FOLDER, POEMS_FOLDER, build_filename, read_photo_file, read_poem_file

log = logging.getLogger(__name__)

PAID_METHODS = ("stripe", "paypal", "qr")


@dataclass
class Entrant:
    first_name: str
    email: str
    last_name: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[int] = None
    uid: Optional[str] = None


@dataclass
class SubmissionRequest:
    entrant: Entrant
    tier: str
    titles: List[str]
    payment_method: Optional[str] = None
    payment_id: Optional[str] = None
    coupon_code: Optional[str] = None
    poem_files: List[FileStorage] = field(default_factory=list)
    photo_file: Optional[FileStorage] = None
    # Legacy JSON path: files already uploaded by the client
    poem_urls: List[str] = field(default_factory=list)
    photo_url: Optional[str] = None


# ─────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────
def resolve_user(email: str, uid: Optional[str] = None, *, name: Optional[str] = None, phone: Optional[str] = None) -> User:
    """By email, else by uid, else create (uid ``user_<ms>`` for guests). Flushes, caller commits."""
    user = User.by_email(email)
    if user is None and uid:
        user = User.by_uid(uid)
    if user is None:
        user = User(
            uid=uid or f"user_{int(time.time() * 1000)}",
            email=email.strip().lower(),
            name=name,
            phone=phone,
        )
        db.session.add(user)
        db.session.flush()
        log.info("Created user %s for %s", user.uid, user.email)
    return user


def get_or_create_user(uid: str, email: str, name: Optional[str] = None, phone: Optional[str] = None) -> User:
    user = User.by_uid(uid)
    if user is None:
        user = User(uid=uid, email=email.strip().lower(), name=name, phone=phone)
        db.session.add(user)
        tx_commit()
        log.info("Registered user %s for %s", user.uid, user.email)
        _send_welcome(user)
    return user


def _send_welcome(user: User) -> None:
    app = current_app._get_current_object()
    if not app.config.get("WELCOME_EMAILS_ENABLED", True):
        return
    brand = app.config.get("BRAND_NAME", "Writory")
    base = (app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    send_email_async(
        app,
        "welcome",
        [user.email],
        f"Welcome to {brand}",
        {
            "name": (user.name or "").split(" ")[0] or "poet",
            "brand": brand,
            "submit_url": f"{base}/submit" if base else "/submit",
        },
    )


# ─────────────────────────────────────────────────────────────
# Recording
# ─────────────────────────────────────────────────────────────
def _check_titles(req: SubmissionRequest, tier: pricing.TierInfo) -> List[str]:
    titles = [(t or "").strip() for t in req.titles]
    if len(titles) != tier.poem_count or not all(titles):
        raise SubmissionError(
            f"The {tier.name} tier requires exactly {tier.poem_count} poem title(s)",
            expected=tier.poem_count,
        )
    return titles


def _resolve_payment(req: SubmissionRequest, quote: coupons.Quote) -> tuple[str, Optional[str], bool]:
    """Returns ``(method, payment_id, verified)``."""
    if quote.tier.is_free:
        return "free", None, True

    if quote.final <= 0:
        return "coupon", f"coupon_{quote.coupon_code}", True

    method = (req.payment_method or "").strip().lower()
    if method not in PAID_METHODS:
        raise PaymentError("A payment method (stripe, paypal or qr) is required")

    if method == "qr":
        # Self-attested; stored unverified for manual reconciliation.
        ref = (req.payment_id or "").strip() or "manual_payment"
        return "qr", ref, False

    ref = (req.payment_id or "").strip()
    # One provider payment pays for exactly one submission group.
    if ref and Submission.query.filter_by(payment_method=method, payment_id=ref).first() is not None:
        log.warning("Rejected reuse of %s payment %s", method, ref)
        raise PaymentError("This payment has already been used for another submission", status_code=409)

    payments = current_app.extensions["writory.payments"]
    payments.verify(method, ref, quote.final)
    return method, ref, True


def _is_coupon_reuse(err: IntegrityError) -> bool:
    """The coupon_usage (coupon_id, user_uid) unique key, by name or by its columns (SQLite)."""
    msg = str(err.orig)
    return "uq_coupon_usage_coupon_user" in msg or ("coupon_usage.coupon_id" in msg and "coupon_usage.user_uid" in msg)


def record_submission(req: SubmissionRequest) -> Dict[str, Any]:
    cfg = current_app.config
    now = utcnow()
    month = pricing.contest_month(now)
    entrant = req.entrant
    email = entrant.email.strip().lower()

    tier = pricing.resolve_tier(req.tier)
    titles = _check_titles(req, tier)
    pricing.check_contest_open(month, now)

    user = resolve_user(email, entrant.uid, name=" ".join(p for p in (entrant.first_name, entrant.last_name) if p), phone=entrant.phone)
    if tier.is_free:
        pricing.check_free_gate(user, month)

    quote = coupons.quote(tier.name, req.coupon_code, user.uid)

    # Validate every file before any money or network is touched.
    max_bytes = int(cfg.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    poem_blobs = []
    if not req.poem_urls:
        if len(req.poem_files) != tier.poem_count:
            raise SubmissionError(f"Expected {tier.poem_count} poem file(s), got {len(req.poem_files)}")
        poem_blobs = [read_poem_file(fs, max_bytes) for fs in req.poem_files]
    elif len(req.poem_urls) != tier.poem_count:
        raise SubmissionError(f"Expected {tier.poem_count} poem URL(s), got {len(req.poem_urls)}")
    photo_blob = None
    if req.photo_file is not None or not req.photo_url:
        photo_blob = read_photo_file(req.photo_file, max_bytes)

    method, payment_id, verified = _resolve_payment(req, quote)

    # Uploads: poems in order, then the photo.
    poem_urls = list(req.poem_urls)
    photo_url = req.photo_url
    if poem_blobs or photo_blob:
        drive = current_app.extensions["writory.drive"]
        for title, (data, mime, ext) in zip(titles, poem_blobs):
            poem_urls.append(drive.upload(data, build_filename(email, title, ext), mime, POEMS_FOLDER))
        if photo_blob:
            data, mime, ext = photo_blob
            photo_url = drive.upload(data, build_filename(email, titles[0], ext, suffix="_photo"), mime, PHOTOS_FOLDER)

    group_uuid = str(uuid.uuid4())
    rows: List[Submission] = []
    for idx, title in enumerate(titles):
        rows.append(
            Submission(
                user_id=user.id,
                first_name=entrant.first_name.strip(),
                last_name=(entrant.last_name or "").strip() or None,
                email=email,
                phone=entrant.phone,
                age=entrant.age,
                poem_title=title,
                tier=tier.name,
                price=quote.final,
                coupon_code=quote.coupon_code,
                discount_amount=quote.discount,
                payment_id=payment_id,
                payment_method=method,
                payment_verified=verified,
                poem_file_url=poem_urls[idx],
                photo_url=photo_url,
                submission_uuid=group_uuid,
                poem_index=idx,
                total_poems=tier.poem_count,
                contest_month=month,
                submitted_at=now,
            )
        )
    db.session.add_all(rows)

    try:
        coupons.redeem(quote, user.uid, group_uuid)
        pricing.record_monthly_count(user, tier, len(rows), month)
        db.session.flush()
        sheets.enqueue(sheets.POETRY_SHEET, sheets.poetry_rows(rows))
        tx_commit()
    except IntegrityError as e:
        db.session.rollback()
        if not _is_coupon_reuse(e):
            log.error("Submission transaction rejected: %s", e)
            raise
        log.warning("Coupon %s already redeemed by %s", quote.coupon_code, email)
        raise CouponError("You have already used this coupon") from e

    log.info(
        "Recorded %d poem(s) for %s tier=%s method=%s uuid=%s",
        len(rows),
        email,
        tier.name,
        method,
        group_uuid,
    )

    sheets.schedule_flush()
    _send_confirmation(entrant, rows, tier)

    return {
        "success": True,
        "submissionUuid": group_uuid,
        "submissions": [r.to_dict() for r in rows],
        "poemUrls": poem_urls,
        "photoUrl": photo_url,
        "paymentVerified": verified,
        "finalAmount": quote.final,
    }


def _send_confirmation(entrant: Entrant, rows: List[Submission], tier: pricing.TierInfo) -> None:
    app = current_app._get_current_object()
    if not app.config.get("SUBMISSION_EMAILS_ENABLED", True):
        return
    brand = app.config.get("BRAND_NAME", "Writory")
    send_email_async(
        app,
        "submission_confirmation",
        [rows[0].email],
        f"{brand}: submission received",
        {
            "name": entrant.first_name,
            "poem_title": rows[0].poem_title,
            "poem_titles": [r.poem_title for r in rows],
            "tier": tier.name,
            "poem_count": len(rows),
            "submission_uuid": rows[0].submission_uuid,
            "brand": brand,
        },
    )


# ─────────────────────────────────────────────────────────────
# Read side
# ─────────────────────────────────────────────────────────────
def user_submissions(uid: str) -> List[Dict[str, Any]]:
    user = User.by_uid(uid)
    if user is None:
        return []
    rows = (
        Submission.query.filter_by(user_id=user.id)
        .order_by(Submission.submitted_at.desc(), Submission.poem_index.asc())
        .all()
    )
    return [r.to_dict() for r in rows]


def winners(month: Optional[str] = None) -> List[Dict[str, Any]]:
    q = Submission.query.filter_by(is_winner=True)
    if month:
        q = q.filter_by(contest_month=month)
    rows = q.order_by(Submission.contest_month.desc(), Submission.winner_position.asc()).all()
    return [r.to_dict() for r in rows]


def stats(month: Optional[str] = None) -> Dict[str, Any]:
    month = month or pricing.contest_month()
    base = Submission.query.filter_by(contest_month=month)
    by_tier = {
        tier: base.filter(Submission.tier == tier).count()
        for tier in pricing.TIERS
    }
    return {
        "contestMonth": month,
        "totalPoems": base.count(),
        "totalEntries": base.with_entities(Submission.submission_uuid).distinct().count(),
        "byTier": by_tier,
    }
