# writory/security.py
# Header-based identity for the JSON API.
# Callers identify themselves with `x-user-email` (wall moderation also sends
# `admin-email`). An email is an admin when it is listed in ADMIN_EMAILS or
# has an AdminUser row. There is no token/session check behind this.

from __future__ import annotations

from functools import wraps
from typing import Callable, Optional

from flask import current_app, g, request

from writory.errors import AuthError
from writory.models import AdminUser

USER_EMAIL_HEADER = "x-user-email"
ADMIN_EMAIL_HEADER = "admin-email"


def request_email(*headers: str) -> Optional[str]:
    for name in headers or (USER_EMAIL_HEADER, ADMIN_EMAIL_HEADER):
        v = (request.headers.get(name) or "").strip().lower()
        if v:
            return v
    return None


def is_admin_email(email: Optional[str]) -> bool:
    e = (email or "").strip().lower()
    if not e:
        return False
    if e in {a.lower() for a in current_app.config.get("ADMIN_EMAILS") or []}:
        return True
    return AdminUser.by_email(e) is not None


def require_admin(*headers: str) -> Callable:
    """Route decorator: 403 unless the header email is an admin. Sets ``g.admin_email``."""

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args, **kwargs):
            email = request_email(*headers)
            if not email:
                raise AuthError("Admin email header is required", status_code=401)
            if not is_admin_email(email):
                current_app.logger.warning("Admin access denied for %s on %s", email, request.path)
                raise AuthError("Admin access required")
            g.admin_email = email
            return fn(*args, **kwargs)

        return wrapper

    return decorator
