# writory/services/notifications.py
"""
Admin-to-user notifications.

``send`` writes one Notification plus one UserNotification per recipient in a
single commit. Deactivated notifications drop out of every user's inbox but
keep their delivery rows.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from writory.errors import WritoryError
from writory.extensions import db, tx_commit
from writory.models import Notification, User, UserNotification

log = logging.getLogger(__name__)


def send(kind: str, title: str, message: str, *, sent_by: str, user_email: Optional[str] = None) -> Dict[str, Any]:
    title = (title or "").strip()
    message = (message or "").strip()
    if not title or not message:
        raise WritoryError("title and message are required")

    if kind == "individual":
        email = (user_email or "").strip().lower()
        if not email:
            raise WritoryError("userEmail is required for individual notifications")
        user = User.by_email(email)
        if user is None:
            raise WritoryError(f"No user with email {email}", status_code=404)
        recipients: List[User] = [user]
    else:
        kind, email = "broadcast", None
        recipients = User.query.order_by(User.id.asc()).all()

    note = Notification(title=title, message=message, type=kind, target_user_email=email, sent_by=sent_by)
    db.session.add(note)
    for user in recipients:
        note.deliveries.append(UserNotification(user_id=user.id, user_email=user.email))
    tx_commit()

    log.info("Notification %s (%s) sent by %s to %d user(s)", note.id, kind, sent_by, len(recipients))
    return {"notification": note.to_dict(), "recipients": len(recipients)}


def _inbox(user: User):
    return (
        UserNotification.query.join(Notification)
        .filter(UserNotification.user_id == user.id, Notification.is_active.is_(True))
    )


def inbox(uid: str, *, unread_only: bool = False) -> Dict[str, Any]:
    user = User.by_uid(uid)
    if user is None:
        return {"notifications": [], "unreadCount": 0}
    q = _inbox(user)
    unread = q.filter(UserNotification.is_read.is_(False)).count()
    if unread_only:
        q = q.filter(UserNotification.is_read.is_(False))
    rows = q.order_by(UserNotification.created_at.desc(), UserNotification.id.desc()).all()
    return {"notifications": [r.to_dict() for r in rows], "unreadCount": unread}


def mark_read(uid: str, delivery_id: int) -> UserNotification:
    user = User.by_uid(uid)
    row = db.session.get(UserNotification, delivery_id)
    if user is None or row is None or row.user_id != user.id:
        raise WritoryError("Notification not found", status_code=404)
    row.mark_read()
    tx_commit()
    return row


def mark_all_read(uid: str) -> int:
    user = User.by_uid(uid)
    if user is None:
        return 0
    rows = _inbox(user).filter(UserNotification.is_read.is_(False)).all()
    for row in rows:
        row.mark_read()
    tx_commit()
    return len(rows)


def sent_history(limit: int = 100) -> List[Dict[str, Any]]:
    notes = Notification.query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    out = []
    for n in notes:
        total = len(n.deliveries)
        read = sum(1 for d in n.deliveries if d.is_read)
        out.append({**n.to_dict(), "recipients": total, "readCount": read})
    return out


def deactivate(notification_id: int) -> Notification:
    note = db.session.get(Notification, notification_id)
    if note is None:
        raise WritoryError("Notification not found", status_code=404)
    note.is_active = False
    tx_commit()
    return note
