"""
Admin API blueprint (mounted at /api/admin).

Every route requires an admin email in the `x-user-email` header (ADMIN_EMAILS
or an AdminUser row).

Submissions / scoring:
  POST   /upload-csv                    judge scores CSV (multipart csvFile)
  GET    /export-csv                    same columns + submission_id
  GET    /submissions
  POST   /update-winner/<id>
  POST   /submissions/<uuid>/verify-payment   mark a QR group as paid

Settings:
  GET/POST /settings, POST /reset-free-tier
  GET/POST /contest-settings
  GET/POST /winner-photos, PUT/DELETE /winner-photos/<id>
  GET/POST /coupons, PUT/DELETE /coupons/<id>
  GET/POST /admin-users, DELETE /admin-users/<id>
  GET    /contacts
  GET    /outbox, POST /outbox/flush

Notifications:
  POST   /notifications/send            {type: individual|broadcast, title, message, userEmail}
  GET    /notifications, DELETE /notifications/<id>
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, Response, current_app, g, request

from writory.blueprints.common import int_arg, json_ok, request_payload
from writory.errors import WritoryError
from writory.extensions import csrf, db, tx_commit
from writory.models import (
    AdminSetting,
    AdminUser,
    Contact,
    ContestSettings,
    Coupon,
    SheetOutbox,
    Submission,
    WinnerPhoto,
)
from writory.models.admin_user import ADMIN_ROLES
from writory.models.coupon import DISCOUNT_TYPES, normalize_code
from writory.security import USER_EMAIL_HEADER, require_admin
from writory.services import notifications, pricing, reconciler, sheets

bp = Blueprint("admin", __name__)
csrf.exempt(bp)


@bp.before_request
@require_admin(USER_EMAIL_HEADER)
def _guard():
    return None


# ── Parsing helpers ──────────────────────────────────────────────────────────
def _opt_int(v: Any, name: str) -> Optional[int]:
    if v in (None, ""):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        raise WritoryError(f"{name} must be an integer")


def _opt_float(v: Any, name: str) -> Optional[float]:
    if v in (None, ""):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        raise WritoryError(f"{name} must be a number")


def _opt_dt(v: Any, name: str) -> Optional[datetime]:
    if v in (None, ""):
        return None
    try:
        dt = datetime.fromisoformat(str(v).strip().replace("Z", "+00:00"))
    except ValueError:
        raise WritoryError(f"{name} must be an ISO date/time")
    # Stored naive in UTC
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v or "").strip().lower() in {"1", "true", "yes", "on", "y"}


def _month(v: Any) -> str:
    s = str(v or "").strip()
    try:
        datetime.strptime(s, "%Y-%m")
    except ValueError:
        raise WritoryError("contestMonth must look like YYYY-MM")
    return s


# ── Submissions / scoring ────────────────────────────────────────────────────
@bp.post("/upload-csv")
def upload_csv():
    f = request.files.get("csvFile") or request.files.get("file")
    if f is None or not f.filename:
        raise WritoryError("csvFile is required")
    try:
        report = reconciler.import_scores_bytes(f.read())
    except reconciler.RowError as e:
        raise WritoryError(str(e))
    current_app.logger.info(
        "CSV import by %s: processed=%d updated=%d errors=%d",
        g.admin_email,
        report.processed,
        len(report.updated),
        len(report.errors),
    )
    return json_ok(report.to_dict())


@bp.get("/export-csv")
def export_csv():
    month = request.args.get("month")
    body = reconciler.export_scores(month)
    name = f"writory_scores_{month or 'all'}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={name}"},
    )


@bp.get("/submissions")
def list_submissions():
    q = Submission.query
    for arg, col in (("month", Submission.contest_month), ("status", Submission.status), ("tier", Submission.tier)):
        v = (request.args.get(arg) or "").strip()
        if v:
            q = q.filter(col == v)
    if request.args.get("unverified"):
        q = q.filter(Submission.payment_verified.is_(False))
    if request.args.get("winners"):
        q = q.filter(Submission.is_winner.is_(True))

    page = int_arg("page", 1, hi=10_000)
    per_page = int_arg("perPage", 100, hi=500)
    total = q.count()
    rows = (
        q.order_by(Submission.submitted_at.desc(), Submission.poem_index.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return json_ok({"submissions": [r.to_dict() for r in rows], "total": total, "page": page, "perPage": per_page})


@bp.post("/update-winner/<int:submission_id>")
def update_winner(submission_id: int):
    sub = db.session.get(Submission, submission_id)
    if sub is None:
        raise WritoryError("Submission not found", status_code=404)

    data = request_payload()
    if "isWinner" in data:
        sub.is_winner = _bool(data["isWinner"])
    if "winnerPosition" in data:
        pos = _opt_int(data["winnerPosition"], "winnerPosition")
        if pos is not None and pos not in (1, 2, 3):
            raise WritoryError("winnerPosition must be 1, 2 or 3")
        sub.winner_position = pos
        if pos is not None:
            sub.is_winner = True
    if "winnerCategory" in data:
        sub.winner_category = (str(data["winnerCategory"] or "").strip() or None)
    if "score" in data:
        sub.score = _opt_float(data["score"], "score")
    for key, attr in (("status", "status"), ("type", "type")):
        if data.get(key):
            setattr(sub, attr, str(data[key]).strip())
    if not sub.is_winner:
        sub.winner_position = None

    tx_commit()
    current_app.logger.info("Submission %s winner fields updated by %s", submission_id, g.admin_email)
    return json_ok({"success": True, "submission": sub.to_dict()})


@bp.post("/submissions/<submission_uuid>/verify-payment")
def verify_manual_payment(submission_uuid: str):
    rows = Submission.query.filter_by(submission_uuid=submission_uuid).all()
    if not rows:
        raise WritoryError("Submission not found", status_code=404)
    for r in rows:
        r.payment_verified = True
    tx_commit()
    current_app.logger.info("Payment for %s marked verified by %s", submission_uuid, g.admin_email)
    return json_ok({"success": True, "updated": len(rows)})


# ── Settings ─────────────────────────────────────────────────────────────────
@bp.get("/settings")
def get_settings():
    return json_ok({"settings": AdminSetting.all_values()})


@bp.post("/settings")
def update_settings():
    data = request_payload()
    values = data.get("settings") if isinstance(data.get("settings"), dict) else data
    if not values:
        raise WritoryError("No settings supplied")
    for key, value in values.items():
        AdminSetting.set_value(str(key), value, updated_by=g.admin_email)
    tx_commit()
    current_app.logger.info("Settings %s updated by %s", sorted(values), g.admin_email)
    return json_ok({"success": True, "settings": AdminSetting.all_values()})


@bp.post("/reset-free-tier")
def reset_free_tier():
    month = request_payload().get("contestMonth")
    month = _month(month) if month else pricing.contest_month()
    touched = pricing.reset_free_tier(month)
    tx_commit()
    current_app.logger.info("Free tier reset for %s by %s (%d users)", month, g.admin_email, touched)
    return json_ok({"success": True, "contestMonth": month, "usersReset": touched})


@bp.get("/contest-settings")
def list_contest_settings():
    rows = ContestSettings.query.order_by(ContestSettings.contest_month.desc()).all()
    return json_ok({"contestSettings": [r.to_dict() for r in rows]})


@bp.post("/contest-settings")
def upsert_contest_settings():
    data = request_payload()
    month = _month(data.get("contestMonth") or pricing.contest_month())
    row = ContestSettings.for_month(month)
    if row is None:
        row = ContestSettings(contest_month=month, is_open=True)
        db.session.add(row)
    if "theme" in data:
        row.theme = (str(data["theme"] or "").strip() or None)
    if "isOpen" in data:
        row.is_open = _bool(data["isOpen"])
    if "submissionDeadline" in data:
        row.submission_deadline = _opt_dt(data["submissionDeadline"], "submissionDeadline")
    tx_commit()
    return json_ok({"success": True, "contestSettings": row.to_dict()})


# ── Winner photos ────────────────────────────────────────────────────────────
def _apply_winner_photo(photo: WinnerPhoto, data: Dict[str, Any]) -> None:
    if "position" in data:
        pos = _opt_int(data["position"], "position")
        if pos not in (1, 2, 3):
            raise WritoryError("position must be 1, 2 or 3")
        photo.position = pos
    if "contestMonth" in data:
        photo.contest_month = _month(data["contestMonth"])
        photo.contest_year = int(photo.contest_month[:4])
    for key, attr in (
        ("photoUrl", "photo_url"),
        ("winnerName", "winner_name"),
        ("poemTitle", "poem_title"),
        ("poemText", "poem_text"),
        ("instagramHandle", "instagram_handle"),
    ):
        if key in data:
            setattr(photo, attr, (str(data[key] or "").strip() or None))
    if "score" in data:
        photo.score = _opt_float(data["score"], "score")
    if "isActive" in data:
        photo.is_active = _bool(data["isActive"])


@bp.get("/winner-photos")
def list_winner_photos():
    rows = WinnerPhoto.query.order_by(WinnerPhoto.contest_month.desc(), WinnerPhoto.position.asc()).all()
    return json_ok({"winnerPhotos": [r.to_dict() for r in rows]})


@bp.post("/winner-photos")
def create_winner_photo():
    data = request_payload()
    for required in ("position", "contestMonth", "photoUrl", "winnerName"):
        if not data.get(required):
            raise WritoryError(f"{required} is required")
    photo = WinnerPhoto(is_active=True, uploaded_by=g.admin_email)
    _apply_winner_photo(photo, data)
    db.session.add(photo)
    tx_commit()
    return json_ok({"success": True, "winnerPhoto": photo.to_dict()}, 201)


def _winner_photo_or_404(photo_id: int) -> WinnerPhoto:
    photo = db.session.get(WinnerPhoto, photo_id)
    if photo is None:
        raise WritoryError("Winner photo not found", status_code=404)
    return photo


@bp.put("/winner-photos/<int:photo_id>")
def update_winner_photo(photo_id: int):
    photo = _winner_photo_or_404(photo_id)
    _apply_winner_photo(photo, request_payload())
    if not photo.photo_url or not photo.winner_name:
        raise WritoryError("photoUrl and winnerName cannot be empty")
    tx_commit()
    return json_ok({"success": True, "winnerPhoto": photo.to_dict()})


@bp.delete("/winner-photos/<int:photo_id>")
def delete_winner_photo(photo_id: int):
    photo = _winner_photo_or_404(photo_id)
    db.session.delete(photo)
    tx_commit()
    return json_ok({"success": True})


# ── Coupons ──────────────────────────────────────────────────────────────────
def _apply_coupon(coupon: Coupon, data: Dict[str, Any]) -> None:
    if "discountType" in data:
        kind = str(data["discountType"] or "").strip().lower()
        if kind not in DISCOUNT_TYPES:
            raise WritoryError("discountType must be 'percentage' or 'fixed'")
        coupon.discount_type = kind
    if "discountValue" in data:
        value = _opt_float(data["discountValue"], "discountValue")
        if value is None or value < 0:
            raise WritoryError("discountValue must be a non-negative number")
        coupon.discount_value = value
    if coupon.discount_type == "percentage" and (coupon.discount_value or 0) > 100:
        raise WritoryError("percentage discount cannot exceed 100")
    if "validFrom" in data:
        coupon.valid_from = _opt_dt(data["validFrom"], "validFrom")
    if "validUntil" in data:
        coupon.valid_until = _opt_dt(data["validUntil"], "validUntil")
    if "maxUses" in data:
        coupon.max_uses = _opt_int(data["maxUses"], "maxUses")
    if "isActive" in data:
        coupon.is_active = _bool(data["isActive"])
    if "applicableTiers" in data:
        tiers = data["applicableTiers"]
        if isinstance(tiers, str):
            tiers = tiers.split(",")
        names = [str(t).strip().lower() for t in (tiers or []) if str(t).strip()]
        unknown = [t for t in names if t not in pricing.TIERS or t == "free"]
        if unknown:
            raise WritoryError(f"Unknown or free tier(s): {', '.join(unknown)}")
        coupon.applicable_tiers = ",".join(names) or None
    if "description" in data:
        coupon.description = (str(data["description"] or "").strip() or None)


@bp.get("/coupons")
def list_coupons():
    rows = Coupon.query.order_by(Coupon.code.asc()).all()
    return json_ok({"coupons": [c.to_dict() for c in rows]})


@bp.post("/coupons")
def create_coupon():
    data = request_payload()
    code = normalize_code(data.get("code"))
    if not code:
        raise WritoryError("code is required")
    if Coupon.by_code(code) is not None:
        raise WritoryError(f"Coupon {code} already exists", status_code=409)
    if data.get("discountValue") in (None, ""):
        raise WritoryError("discountValue is required")

    coupon = Coupon(code=code, discount_type="percentage", used_count=0, is_active=True)
    _apply_coupon(coupon, data)
    db.session.add(coupon)
    tx_commit()
    current_app.logger.info("Coupon %s created by %s", code, g.admin_email)
    return json_ok({"success": True, "coupon": coupon.to_dict()}, 201)


def _coupon_or_404(coupon_id: int) -> Coupon:
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise WritoryError("Coupon not found", status_code=404)
    return coupon


@bp.put("/coupons/<int:coupon_id>")
def update_coupon(coupon_id: int):
    coupon = _coupon_or_404(coupon_id)
    _apply_coupon(coupon, request_payload())
    tx_commit()
    return json_ok({"success": True, "coupon": coupon.to_dict()})


@bp.delete("/coupons/<int:coupon_id>")
def deactivate_coupon(coupon_id: int):
    # Deactivate rather than delete: usage rows keep pointing at it.
    coupon = _coupon_or_404(coupon_id)
    coupon.is_active = False
    tx_commit()
    return json_ok({"success": True, "coupon": coupon.to_dict()})


# ── Admin users ──────────────────────────────────────────────────────────────
@bp.get("/admin-users")
def list_admin_users():
    rows = AdminUser.query.order_by(AdminUser.email.asc()).all()
    env_admins = sorted(current_app.config.get("ADMIN_EMAILS") or [])
    return json_ok({"adminUsers": [r.to_dict() for r in rows], "configured": env_admins})


@bp.post("/admin-users")
def add_admin_user():
    data = request_payload()
    email = str(data.get("email") or "").strip().lower()
    if "@" not in email:
        raise WritoryError("A valid email is required")
    role = str(data.get("role") or "admin").strip().lower()
    if role not in ADMIN_ROLES:
        raise WritoryError(f"role must be one of {', '.join(ADMIN_ROLES)}")
    if AdminUser.by_email(email) is not None:
        raise WritoryError(f"{email} is already an admin", status_code=409)

    row = AdminUser(email=email, role=role, added_by=g.admin_email)
    db.session.add(row)
    tx_commit()
    current_app.logger.info("Admin %s added by %s", email, g.admin_email)
    return json_ok({"success": True, "adminUser": row.to_dict()}, 201)


@bp.delete("/admin-users/<int:admin_id>")
def remove_admin_user(admin_id: int):
    row = db.session.get(AdminUser, admin_id)
    if row is None:
        raise WritoryError("Admin user not found", status_code=404)
    if row.email == g.admin_email:
        raise WritoryError("You cannot remove yourself", status_code=409)
    db.session.delete(row)
    tx_commit()
    return json_ok({"success": True})


# ── Contacts / outbox ────────────────────────────────────────────────────────
@bp.get("/contacts")
def list_contacts():
    rows = Contact.query.order_by(Contact.created_at.desc()).limit(int_arg("limit", 200, hi=1000)).all()
    return json_ok({"contacts": [c.to_dict() for c in rows]})


@bp.get("/outbox")
def outbox_status():
    counts = {
        status: SheetOutbox.query.filter_by(status=status).count() for status in ("pending", "sent", "failed")
    }
    failed = SheetOutbox.query.filter_by(status="failed").order_by(SheetOutbox.id.desc()).limit(20).all()
    return json_ok(
        {
            "counts": counts,
            "failed": [
                {"id": f.id, "sheet": f.sheet, "attempts": f.attempts, "lastError": f.last_error} for f in failed
            ],
        }
    )


@bp.post("/outbox/flush")
def outbox_flush():
    if _bool(request_payload().get("retryFailed")):
        SheetOutbox.query.filter_by(status="failed").update(
            {SheetOutbox.status: "pending", SheetOutbox.attempts: 0}, synchronize_session=False
        )
        tx_commit()
    result = sheets.flush_outbox(
        sheets.get_sheets_client(),
        max_attempts=int(current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)),
    )
    return json_ok({"success": True, **result})


# ── Notifications ────────────────────────────────────────────────────────────
@bp.post("/notifications/send")
def send_notification():
    data = request_payload()
    kind = str(data.get("type") or "broadcast").strip().lower()
    result = notifications.send(
        kind,
        str(data.get("title") or ""),
        str(data.get("message") or ""),
        sent_by=g.admin_email,
        user_email=data.get("userEmail"),
    )
    return json_ok({"success": True, **result}, 201)


@bp.get("/notifications")
def list_notifications():
    return json_ok({"notifications": notifications.sent_history(int_arg("limit", 100, hi=500))})


@bp.delete("/notifications/<int:notification_id>")
def deactivate_notification(notification_id: int):
    note = notifications.deactivate(notification_id)
    return json_ok({"success": True, "notification": note.to_dict()})
