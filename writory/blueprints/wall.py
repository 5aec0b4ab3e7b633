"""
Community wall (mounted at /api).

Public:      GET  /api/wall-posts                (approved only)
Author:      POST /api/wall-posts                (lands as pending)
             GET  /api/wall-posts/user/<uid>
             DELETE /api/wall-posts/<id>         (owner via x-user-email, or admin)
             POST /api/wall-posts/<id>/like | /unlike
Moderation:  GET  /api/wall-posts/admin
             POST /api/wall-posts/<id>/approve | /reject | /delete | /restore   (admin-email header)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, request

from writory.errors import AuthError, SubmissionError, WritoryError
from writory.extensions import csrf, db, tx_commit
from writory.forms import WallPostForm, bind
from writory.models import User, WallPost
from writory.models.wall_post import WALL_STATUSES
from writory.security import ADMIN_EMAIL_HEADER, USER_EMAIL_HEADER, is_admin_email, request_email, require_admin

from .common import int_arg, json_ok, request_payload

bp = Blueprint("wall", __name__)
csrf.exempt(bp)


def _get_post(post_id: int) -> WallPost:
    post = db.session.get(WallPost, post_id)
    if post is None or post.deleted:
        raise WritoryError("Post not found", status_code=404)
    return post


def _viewer_id() -> str:
    data = request_payload()
    viewer = str(data.get("userId") or data.get("userUid") or request.args.get("userId") or "").strip()
    if not viewer:
        raise SubmissionError("userId is required")
    return viewer


@bp.get("/wall-posts")
def list_posts():
    q = WallPost.active().filter_by(status="approved")
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.filter_by(category=category)
    posts = q.order_by(WallPost.created_at.desc()).limit(int_arg("limit", 50)).all()
    viewer = request.args.get("userId")
    return json_ok({"posts": [p.to_dict(viewer) for p in posts]})


@bp.post("/wall-posts")
def create_post():
    form = bind(WallPostForm)
    uid = (form.user_uid.data or form.user_id.data or "").strip()
    if not uid:
        raise SubmissionError("userUid is required")

    user = User.by_uid(uid)
    post = WallPost(
        user_id=user.id if user else None,
        user_uid=uid,
        title=form.title.data.strip(),
        content=form.content.data.strip(),
        category=(form.category.data or "").strip() or None,
        author_name=form.author_name.data or (user.name if user else None),
        author_instagram=form.author_instagram.data or (user.instagram_handle if user else None),
        author_profile_picture=form.author_profile_picture.data or (user.profile_picture_url if user else None),
        status="pending",
        likes=0,
        liked_by="[]",
    )
    db.session.add(post)
    tx_commit()
    current_app.logger.info("Wall post %s submitted by %s (pending)", post.id, uid)
    return json_ok({"post": post.to_dict(), "message": "Your post was submitted for review."}, 201)


@bp.get("/wall-posts/user/<uid>")
def user_posts(uid: str):
    posts = WallPost.active().filter_by(user_uid=uid).order_by(WallPost.created_at.desc()).all()
    return json_ok({"posts": [p.to_dict(uid) for p in posts]})


@bp.delete("/wall-posts/<int:post_id>")
def delete_own_post(post_id: int):
    post = _get_post(post_id)
    email = request_email(USER_EMAIL_HEADER)
    if not email:
        raise AuthError("x-user-email header is required", status_code=401)

    owner = db.session.get(User, post.user_id) if post.user_id else User.by_uid(post.user_uid)
    if not (owner is not None and (owner.email or "").lower() == email) and not is_admin_email(email):
        raise AuthError("You can only delete your own posts")

    post.soft_delete()
    current_app.logger.info("Wall post %s deleted by %s", post_id, email)
    return json_ok({"success": True})


def _toggle_like(post_id: int, like: bool):
    post = _get_post(post_id)
    if post.status != "approved":
        raise WritoryError("Only approved posts can be liked", status_code=409)

    viewer = _viewer_id()
    changed = post.like(viewer) if like else post.unlike(viewer)
    if changed:
        tx_commit()
    return json_ok({"success": True, "changed": changed, "likes": post.likes, "liked": like})


@bp.post("/wall-posts/<int:post_id>/like")
def like_post(post_id: int):
    return _toggle_like(post_id, True)


@bp.post("/wall-posts/<int:post_id>/unlike")
def unlike_post(post_id: int):
    return _toggle_like(post_id, False)


# ----------------------------
# Moderation
# ----------------------------
@bp.get("/wall-posts/admin")
@require_admin(ADMIN_EMAIL_HEADER, USER_EMAIL_HEADER)
def admin_list():
    q = WallPost.active()
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in WALL_STATUSES:
            raise WritoryError(f"Unknown status '{status}'")
        q = q.filter_by(status=status)
    posts = q.order_by(WallPost.created_at.desc()).limit(int_arg("limit", 200, hi=1000)).all()
    counts = {s: WallPost.active().filter_by(status=s).count() for s in WALL_STATUSES}
    return json_ok({"posts": [p.to_dict() for p in posts], "counts": counts})


def _moderate(post_id: int, status: str):
    post = _get_post(post_id)
    data = request_payload()
    notes = data.get("notes") or data.get("moderationNotes")
    post.moderate(status, g.admin_email, notes)
    tx_commit()
    current_app.logger.info("Wall post %s %s by %s", post_id, status, g.admin_email)
    return json_ok({"success": True, "post": post.to_dict()})


@bp.post("/wall-posts/<int:post_id>/approve")
@require_admin(ADMIN_EMAIL_HEADER, USER_EMAIL_HEADER)
def approve_post(post_id: int):
    return _moderate(post_id, "approved")


@bp.post("/wall-posts/<int:post_id>/reject")
@require_admin(ADMIN_EMAIL_HEADER, USER_EMAIL_HEADER)
def reject_post(post_id: int):
    return _moderate(post_id, "rejected")


@bp.post("/wall-posts/<int:post_id>/delete")
@require_admin(ADMIN_EMAIL_HEADER, USER_EMAIL_HEADER)
def admin_delete_post(post_id: int):
    post = _get_post(post_id)
    post.moderated_by = g.admin_email
    post.soft_delete()
    current_app.logger.info("Wall post %s removed by %s", post_id, g.admin_email)
    return json_ok({"success": True})


@bp.post("/wall-posts/<int:post_id>/restore")
@require_admin(ADMIN_EMAIL_HEADER, USER_EMAIL_HEADER)
def admin_restore_post(post_id: int):
    post = db.session.get(WallPost, post_id)
    if post is None:
        raise WritoryError("Post not found", status_code=404)
    if not post.deleted:
        raise WritoryError("Post is not deleted", status_code=409)
    post.moderated_by = g.admin_email
    post.restore()
    current_app.logger.info("Wall post %s restored by %s", post_id, g.admin_email)
    return json_ok({"success": True, "post": post.to_dict()})
