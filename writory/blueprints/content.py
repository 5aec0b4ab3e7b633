"""Public contest content (mounted at /api): winner gallery and the current contest window."""

from __future__ import annotations

from flask import Blueprint, request

from writory.extensions import csrf
from writory.models import ContestSettings, WinnerPhoto, utcnow
from writory.services import pricing

from .common import json_ok

bp = Blueprint("content", __name__)
csrf.exempt(bp)


@bp.get("/winner-photos")
def winner_photos():
    q = WinnerPhoto.query.filter_by(is_active=True)
    month = (request.args.get("month") or "").strip()
    if month:
        q = q.filter_by(contest_month=month)
    rows = q.order_by(WinnerPhoto.contest_month.desc(), WinnerPhoto.position.asc()).all()
    return json_ok({"winnerPhotos": [r.to_dict() for r in rows]})


@bp.get("/contest-settings/current")
def current_contest():
    now = utcnow()
    month = pricing.contest_month(now)
    row = ContestSettings.for_month(month)
    if row is None:
        # No row means the month is open with no theme or deadline.
        return json_ok({"contestMonth": month, "isOpen": True, "accepting": True, "theme": None, "submissionDeadline": None})
    return json_ok({**row.to_dict(), "accepting": row.accepting(now)})
