from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import SoftDeleteMixin, TimestampMixin, utcnow

WALL_STATUSES = ("pending", "approved", "rejected")


class WallPost(db.Model, TimestampMixin, SoftDeleteMixin):
    """
    Community wall entry.

    ``liked_by`` is a JSON-encoded list of user ids. A user id appears in it
    at most once and ``likes`` always equals its length.
    """

    __tablename__ = "wall_posts"
    __table_args__ = (CheckConstraint("likes >= 0", name="ck_wall_posts_likes_nonneg"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_uid: Mapped[str] = mapped_column(db.String(128), nullable=False, index=True)

    title: Mapped[str] = mapped_column(db.String(200), nullable=False)
    content: Mapped[str] = mapped_column(db.Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(db.String(60), nullable=True)

    author_name: Mapped[Optional[str]] = mapped_column(db.String(160), nullable=True)
    author_instagram: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True)
    author_profile_picture: Mapped[Optional[str]] = mapped_column(db.String(512), nullable=True)

    status: Mapped[str] = mapped_column(db.String(12), nullable=False, default="pending", index=True)
    moderated_by: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)
    moderated_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    moderation_notes: Mapped[Optional[str]] = mapped_column(db.Text, nullable=True)

    likes: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    liked_by: Mapped[str] = mapped_column(db.Text, nullable=False, default="[]")

    # ---- Likes ----
    def liked_by_ids(self) -> List[str]:
        try:
            data = json.loads(self.liked_by or "[]")
        except ValueError:
            return []
        return [str(x) for x in data] if isinstance(data, list) else []

    def _store_likes(self, ids: List[str]) -> None:
        self.liked_by = json.dumps(ids)
        self.likes = len(ids)

    def like(self, user_id: str) -> bool:
        """Add a like; returns False when this user already liked the post."""
        ids = self.liked_by_ids()
        uid = str(user_id)
        if uid in ids:
            return False
        ids.append(uid)
        self._store_likes(ids)
        return True

    def unlike(self, user_id: str) -> bool:
        ids = self.liked_by_ids()
        uid = str(user_id)
        if uid not in ids:
            return False
        self._store_likes([i for i in ids if i != uid])
        return True

    # ---- Moderation ----
    def moderate(self, status: str, moderator: str, notes: Optional[str] = None) -> None:
        if status not in WALL_STATUSES:
            raise ValueError(f"invalid wall status: {status}")
        self.status = status
        self.moderated_by = moderator
        self.moderated_at = utcnow()
        if notes is not None:
            self.moderation_notes = notes

    def to_dict(self, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        ids = self.liked_by_ids()
        return {
            "id": self.id,
            "userId": self.user_id,
            "userUid": self.user_uid,
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "authorName": self.author_name,
            "authorInstagram": self.author_instagram,
            "authorProfilePicture": self.author_profile_picture,
            "status": self.status,
            "moderatedBy": self.moderated_by,
            "moderatedAt": self.moderated_at.isoformat() if self.moderated_at else None,
            "moderationNotes": self.moderation_notes,
            "likes": self.likes,
            "likedByViewer": bool(viewer_id) and str(viewer_id) in ids,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
