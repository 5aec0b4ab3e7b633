# writory/services/pricing.py
"""Tier table, contest month and the free-tier gate."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from writory.errors import SubmissionError, TierError
from writory.extensions import db
from writory.models import AdminSetting, ContestSettings, User, UserSubmissionCount, utcnow


@dataclass(frozen=True)
class TierInfo:
    name: str
    poem_count: int
    price: int
    label: str

    @property
    def is_free(self) -> bool:
        return self.price == 0

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.name, "label": self.label, "poemCount": self.poem_count, "price": self.price}


# INR
TIERS: Dict[str, TierInfo] = {
    "free": TierInfo("free", 1, 0, "Free Entry"),
    "single": TierInfo("single", 1, 50, "1 Poem"),
    "double": TierInfo("double", 2, 90, "2 Poems"),
    "bulk": TierInfo("bulk", 5, 230, "5 Poems"),
}


def resolve_tier(tier: Optional[str]) -> TierInfo:
    info = TIERS.get((tier or "").strip().lower())
    if info is None:
        raise TierError(f"Tier '{tier}' is unavailable")
    return info


def list_tiers() -> List[Dict[str, Any]]:
    return [t.to_dict() for t in TIERS.values()]


def contest_month(now: Optional[datetime] = None) -> str:
    """``YYYY-MM`` of ``now`` (UTC)."""
    return (now or utcnow()).strftime("%Y-%m")


def final_amount(price: float, discount: float) -> float:
    return max(0.0, round(float(price) - float(discount), 2))


# ─────────────────────────────────────────────────────────────
# Free-tier gate
# ─────────────────────────────────────────────────────────────
def free_tier_enabled() -> bool:
    return AdminSetting.get_bool("free_tier_enabled")


def free_used(user: Optional[User], month: str) -> bool:
    if user is None or user.id is None:
        return False
    row = UserSubmissionCount.for_month(user.id, month)
    return bool(row and row.free_submission_used)


def check_free_gate(user: Optional[User], month: str) -> None:
    if not free_tier_enabled():
        raise TierError("Free tier is currently disabled", status_code=403)
    if free_used(user, month):
        raise TierError(
            "Free submission already used this month. Please choose a paid tier.",
            status_code=403,
        )


def check_contest_open(month: str, now: Optional[datetime] = None) -> None:
    settings = ContestSettings.for_month(month)
    if settings is not None and not settings.accepting(now or utcnow()):
        raise SubmissionError(f"Submissions for {month} are closed", status_code=403)


def submission_status(user: Optional[User], month: Optional[str] = None) -> Dict[str, Any]:
    month = month or contest_month()
    row = UserSubmissionCount.for_month(user.id, month) if user is not None else None
    return {
        "freeSubmissionUsed": bool(row and row.free_submission_used),
        "totalSubmissions": row.total_submissions if row else 0,
        "contestMonth": month,
        "freeTierEnabled": free_tier_enabled(),
    }


def record_monthly_count(user: User, tier: TierInfo, poems: int, month: str) -> UserSubmissionCount:
    """Bump the monthly counters in the current session (caller commits)."""
    row = UserSubmissionCount.for_month(user.id, month)
    if row is None:
        row = UserSubmissionCount(user_id=user.id, contest_month=month, free_submission_used=False, total_submissions=0)
        db.session.add(row)
    row.free_submission_used = bool(row.free_submission_used) or tier.is_free
    row.total_submissions = int(row.total_submissions or 0) + int(poems)
    return row


def reset_free_tier(month: Optional[str] = None) -> int:
    """Clear free_submission_used for ``month`` (default: current). Returns rows touched; caller commits."""
    month = month or contest_month()
    return (
        UserSubmissionCount.query.filter_by(contest_month=month, free_submission_used=True)
        .update({UserSubmissionCount.free_submission_used: False}, synchronize_session=False)
    )
