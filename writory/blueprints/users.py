"""User profile endpoints (mounted at /api)."""

from __future__ import annotations

from flask import Blueprint, request

from writory.errors import SubmissionError, WritoryError
from writory.extensions import csrf, tx_commit
from writory.models import User
from writory.services import notifications
from writory.services.submissions import get_or_create_user

from .common import json_ok, request_payload

bp = Blueprint("users", __name__)
csrf.exempt(bp)

_PROFILE_FIELDS = {
    "name": "name",
    "phone": "phone",
    "profilePictureUrl": "profile_picture_url",
    "instagramHandle": "instagram_handle",
}


@bp.post("/users")
def create_user():
    data = request_payload()
    uid = str(data.get("uid") or "").strip()
    email = str(data.get("email") or "").strip()
    if not uid or not email:
        raise SubmissionError("uid and email are required")
    user = get_or_create_user(uid, email, name=data.get("name"), phone=data.get("phone"))
    return json_ok({"user": user.to_dict()})


@bp.get("/users/<uid>")
def get_user(uid: str):
    user = User.by_uid(uid)
    if user is None:
        raise WritoryError("User not found", status_code=404)
    return json_ok({"user": user.to_dict()})


@bp.put("/users/<uid>")
def update_user(uid: str):
    user = User.by_uid(uid)
    if user is None:
        raise WritoryError("User not found", status_code=404)

    data = request_payload()
    for key, attr in _PROFILE_FIELDS.items():
        if key in data:
            value = data[key]
            setattr(user, attr, str(value).strip() or None if value is not None else None)
    tx_commit()
    return json_ok({"user": user.to_dict()})


@bp.get("/users/<uid>/notifications")
def list_notifications(uid: str):
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    return json_ok(notifications.inbox(uid, unread_only=unread_only))


@bp.post("/users/<uid>/notifications/<int:delivery_id>/read")
def read_notification(uid: str, delivery_id: int):
    row = notifications.mark_read(uid, delivery_id)
    return json_ok({"success": True, "notification": row.to_dict()})


@bp.post("/users/<uid>/notifications/read-all")
def read_all_notifications(uid: str):
    return json_ok({"success": True, "marked": notifications.mark_all_read(uid)})
