from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Mapped, mapped_column

from writory.extensions import db

from .mixins import TimestampMixin

# Key -> default value for AdminSetting rows
ADMIN_SETTING_DEFAULTS: Dict[str, str] = {
    "free_tier_enabled": "true",
}


class AdminSetting(db.Model, TimestampMixin):
    __tablename__ = "admin_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    key: Mapped[str] = mapped_column(db.String(80), unique=True, nullable=False, index=True)
    value: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    updated_by: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    @classmethod
    def get_value(cls, key: str, default: Optional[str] = None) -> Optional[str]:
        row = cls.query.filter_by(key=key).first()
        if row is not None:
            return row.value
        return ADMIN_SETTING_DEFAULTS.get(key, default)

    @classmethod
    def get_bool(cls, key: str) -> bool:
        return str(cls.get_value(key, "false")).strip().lower() in {"1", "true", "yes", "on"}

    @classmethod
    def set_value(cls, key: str, value: Any, updated_by: Optional[str] = None) -> "AdminSetting":
        """Upsert; caller commits."""
        if isinstance(value, bool):
            value = "true" if value else "false"
        row = cls.query.filter_by(key=key).first()
        if row is None:
            row = cls(key=key)
            db.session.add(row)
        row.value = str(value)
        row.updated_by = updated_by
        return row

    @classmethod
    def all_values(cls) -> Dict[str, str]:
        out = dict(ADMIN_SETTING_DEFAULTS)
        out.update({row.key: row.value for row in cls.query.all()})
        return out


class ContestSettings(db.Model, TimestampMixin):
    """Per-month contest switches. A month with no row is open with no deadline."""

    __tablename__ = "contest_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    contest_month: Mapped[str] = mapped_column(db.String(7), unique=True, nullable=False, index=True)
    theme: Mapped[Optional[str]] = mapped_column(db.String(200), nullable=True)
    is_open: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    submission_deadline: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    @classmethod
    def for_month(cls, month: str) -> Optional["ContestSettings"]:
        return cls.query.filter_by(contest_month=month).first()

    def accepting(self, now: datetime) -> bool:
        if not self.is_open:
            return False
        return self.submission_deadline is None or now <= self.submission_deadline

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "contestMonth": self.contest_month,
            "theme": self.theme,
            "isOpen": self.is_open,
            "submissionDeadline": self.submission_deadline.isoformat() if self.submission_deadline else None,
        }
