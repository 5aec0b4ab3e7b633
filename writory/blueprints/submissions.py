"""
Contest entry blueprint (mounted at /api).

  GET  /api/tiers
  GET  /api/users/<uid>/submission-status
  POST /api/validate-coupon
  POST /api/submit-poem             multipart: one poem + photo
  POST /api/submit-multiple-poems   multipart: N poems (tier count) + photo
  POST /api/submissions             legacy JSON, files already uploaded
  GET  /api/users/<uid>/submissions
  GET  /api/submissions/winners
  GET  /api/stats/submissions
"""

from __future__ import annotations

import json
from typing import List, Optional

from flask import Blueprint, current_app, request
from werkzeug.datastructures import FileStorage, MultiDict

from writory.errors import CouponError, SubmissionError, TierError
from writory.extensions import csrf
from writory.forms import LegacySubmissionForm, SubmissionForm, bind, request_data
from writory.models import User
from writory.services import coupons, pricing
from writory.services import submissions as recorder
from writory.services.submissions import Entrant, SubmissionRequest

from .common import json_ok, json_response, request_payload

bp = Blueprint("submissions", __name__)
csrf.exempt(bp)


def _entrant(form: SubmissionForm) -> Entrant:
    return Entrant(
        first_name=form.first_name.data,
        last_name=form.last_name.data,
        email=form.email.data,
        phone=form.phone.data,
        age=form.age.data,
        uid=form.uid,
    )


def _indexed(data: MultiDict, key: str, n: int) -> List[str]:
    return [data.get(f"{key}_{i}", "") for i in range(n)]


def _titles(data: MultiDict, expected: int) -> List[str]:
    """``poemTitles`` (JSON list or repeated), ``poemTitle_<i>``, or a single ``poemTitle``."""
    titles = data.getlist("poem_titles")
    if len(titles) == 1 and titles[0].strip().startswith("["):
        try:
            parsed = json.loads(titles[0])
        except ValueError:
            raise SubmissionError("poemTitles must be a JSON list of strings")
        titles = [str(t) for t in parsed] if isinstance(parsed, list) else []
    if not titles and data.get("poem_title_0") is not None:
        titles = _indexed(data, "poem_title", max(expected, 1))
    if not titles and data.get("poem_title"):
        titles = [data.get("poem_title")]
    return titles


def _poem_files(expected: int) -> List[FileStorage]:
    files = [f for f in request.files.getlist("poemFiles") if f and f.filename]
    if not files:
        files = [f for f in (request.files.get(f"poemFile_{i}") for i in range(max(expected, 1))) if f and f.filename]
    if not files:
        single = request.files.get("poemFile")
        files = [single] if single and single.filename else []
    return files


def _tier_count(raw: Optional[str]) -> int:
    try:
        return pricing.resolve_tier(raw).poem_count
    except TierError:
        return 1


# ----------------------------
# Tiers / status / coupons
# ----------------------------
@bp.get("/tiers")
def list_tiers():
    return json_ok({"tiers": pricing.list_tiers(), "currency": current_app.config.get("CURRENCY", "inr")})


@bp.get("/users/<uid>/submission-status")
def submission_status(uid: str):
    return json_ok(pricing.submission_status(User.by_uid(uid)))


@bp.post("/validate-coupon")
def validate_coupon():
    data = request_payload()
    try:
        tier = pricing.resolve_tier(data.get("tier"))
        q = coupons.validate_coupon(data.get("code"), tier, data.get("userId") or data.get("userUid") or None)
    except (CouponError, TierError) as e:
        return json_response({"ok": False, "valid": False, "error": e.message}, e.status_code)

    return json_ok(
        {
            "valid": True,
            "code": q.coupon_code,
            "discountAmount": q.discount,
            "finalAmount": q.final,
            "discountType": q.coupon.discount_type,
            "discountValue": q.coupon.discount_value,
            "message": f"Coupon applied: you save ₹{q.discount:g}",
        }
    )


# ----------------------------
# Recording
# ----------------------------
def _record(form: SubmissionForm, data: MultiDict, *, multi: bool):
    expected = _tier_count(form.tier.data)
    titles = _titles(data, expected) if multi else [form.poem_title.data or ""]
    req = SubmissionRequest(
        entrant=_entrant(form),
        tier=form.tier.data,
        titles=titles,
        payment_method=form.payment_method.data,
        payment_id=form.payment_id.data,
        coupon_code=form.coupon_code.data,
        poem_files=_poem_files(expected) if multi else [f for f in [request.files.get("poemFile")] if f],
        photo_file=request.files.get("photoFile") or request.files.get("photo"),
    )
    return json_ok(recorder.record_submission(req), 201)


@bp.post("/submit-poem")
def submit_poem():
    data = request_data()
    form = bind(SubmissionForm, data)
    if pricing.resolve_tier(form.tier.data).poem_count != 1:
        raise SubmissionError("Use /api/submit-multiple-poems for multi-poem tiers")
    return _record(form, data, multi=False)


@bp.post("/submit-multiple-poems")
def submit_multiple_poems():
    data = request_data()
    form = bind(SubmissionForm, data)
    return _record(form, data, multi=True)


@bp.post("/submissions")
def create_submission_legacy():
    data = request_data()
    form = bind(LegacySubmissionForm, data)
    expected = _tier_count(form.tier.data)
    urls = data.getlist("poem_file_urls") or ([form.poem_file_url.data] if form.poem_file_url.data else [])
    req = SubmissionRequest(
        entrant=_entrant(form),
        tier=form.tier.data,
        titles=_titles(data, expected),
        payment_method=form.payment_method.data,
        payment_id=form.payment_id.data,
        coupon_code=form.coupon_code.data,
        poem_urls=urls,
        photo_url=form.photo_url.data or None,
    )
    if not req.poem_urls:
        raise SubmissionError("poemFileUrl is required")
    return json_ok(recorder.record_submission(req), 201)


# ----------------------------
# Read side
# ----------------------------
@bp.get("/users/<uid>/submissions")
def user_submissions(uid: str):
    return json_ok({"submissions": recorder.user_submissions(uid)})


@bp.get("/submissions/winners")
def winners():
    return json_ok({"winners": recorder.winners(request.args.get("month"))})


@bp.get("/stats/submissions")
def submission_stats():
    out = recorder.stats(request.args.get("month"))
    if request.args.get("source") == "sheet":
        out["sheetCount"] = current_app.extensions["writory.sheets"].submission_count()
    return json_ok(out)
