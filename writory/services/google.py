# writory/services/google.py
"""Service-account sessions for the Google REST APIs (Drive v3, Sheets v4)."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Iterable, Optional

from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from writory.errors import WritoryError

log = logging.getLogger(__name__)

DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"


def load_service_account_info(raw: Optional[str]) -> Dict[str, Any]:
    """
    Accepts the service account key as base64-encoded JSON (the deploy
    default) or as the raw JSON document.
    """
    s = (raw or "").strip()
    if not s:
        raise WritoryError("GOOGLE_SERVICE_ACCOUNT_JSON is not configured", status_code=500)

    if not s.startswith("{"):
        try:
            s = base64.b64decode(s).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise WritoryError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid base64: {e}", status_code=500)

    try:
        info = json.loads(s)
    except ValueError as e:
        raise WritoryError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}", status_code=500)

    if not isinstance(info, dict) or "client_email" not in info:
        raise WritoryError("GOOGLE_SERVICE_ACCOUNT_JSON is missing client_email", status_code=500)
    return info


def build_session(raw_key: Optional[str], scopes: Iterable[str]) -> AuthorizedSession:
    info = load_service_account_info(raw_key)
    creds = service_account.Credentials.from_service_account_info(info, scopes=list(scopes))
    log.info("Google session ready for %s", info.get("client_email"))
    return AuthorizedSession(creds)
