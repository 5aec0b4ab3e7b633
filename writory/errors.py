# writory/errors.py
"""Domain exceptions. Each carries the HTTP status the API answers with."""

from __future__ import annotations

from typing import Any, Dict, Optional


class WritoryError(Exception):
    status_code = 400
    code = "writory_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = int(status_code)
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        body.update(self.extra)
        return body


class TierError(WritoryError):
    code = "tier_unavailable"


class CouponError(WritoryError):
    code = "coupon_invalid"


class UploadError(WritoryError):
    status_code = 502
    code = "upload_failed"


class PaymentError(WritoryError):
    status_code = 402
    code = "payment_required"


class SubmissionError(WritoryError):
    code = "submission_invalid"


class AuthError(WritoryError):
    status_code = 403
    code = "forbidden"


class SheetsError(WritoryError):
    status_code = 502
    code = "sheets_failed"


__all__ = [
    "WritoryError",
    "TierError",
    "CouponError",
    "UploadError",
    "PaymentError",
    "SubmissionError",
    "AuthError",
    "SheetsError",
]
