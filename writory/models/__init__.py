from __future__ import annotations

# --- Core model imports ---------------------------------------------------------
from writory.models.admin_user import AdminUser
from writory.models.contact import Contact
from writory.models.coupon import Coupon, CouponUsage
from writory.models.notification import Notification, UserNotification
from writory.models.settings import AdminSetting, ContestSettings
from writory.models.sheet_outbox import SheetOutbox
from writory.models.submission import Submission
from writory.models.submission_count import UserSubmissionCount
from writory.models.user import User
from writory.models.wall_post import WallPost
from writory.models.winner_photo import WinnerPhoto

from .mixins import SoftDeleteMixin, TimestampMixin, utcnow

__all__ = [
    "AdminSetting",
    "AdminUser",
    "Contact",
    "ContestSettings",
    "Coupon",
    "CouponUsage",
    "Notification",
    "SheetOutbox",
    "SoftDeleteMixin",
    "Submission",
    "TimestampMixin",
    "User",
    "UserNotification",
    "UserSubmissionCount",
    "WallPost",
    "WinnerPhoto",
    "utcnow",
]
