# writory/services/sheets.py
"""
Google Sheets mirror + outbox.

The relational store is the source of truth. Every spreadsheet write is first
queued as a SheetOutbox row inside the caller's transaction, then delivered
after commit by ``flush_outbox`` (background post-commit flush, or the
``flask writory flush-outbox`` command). Delivery is at-least-once; a row
that keeps failing is parked as ``failed`` after OUTBOX_MAX_ATTEMPTS.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests
from flask import current_app

from writory.errors import SheetsError
from writory.extensions import db, run_in_app_context
from writory.models import Contact, SheetOutbox, Submission, utcnow

log = logging.getLogger(__name__)

SHEETS_URL = "https://sheets.googleapis.com/v4/spreadsheets"

POETRY_SHEET = "Poetry"
CONTACTS_SHEET = "Contacts"

POETRY_HEADERS = [
    "Timestamp",
    "Name",
    "Email",
    "Phone",
    "Age",
    "Poem Title",
    "Tier",
    "Amount",
    "Poem File",
    "Photo",
    "Submission UUID",
    "Poem Index",
]
CONTACT_HEADERS = ["Timestamp", "Name", "Email", "Phone", "Message"]

SHEET_RANGES: Dict[str, str] = {
    POETRY_SHEET: "Poetry!A:L",
    CONTACTS_SHEET: "Contacts!A:E",
}
SHEET_HEADERS: Dict[str, List[str]] = {
    POETRY_SHEET: POETRY_HEADERS,
    CONTACTS_SHEET: CONTACT_HEADERS,
}


# ─────────────────────────────────────────────────────────────
# Row builders
# ─────────────────────────────────────────────────────────────
def poetry_rows(submissions: Iterable[Submission]) -> List[List[Any]]:
    rows: List[List[Any]] = []
    for s in submissions:
        rows.append(
            [
                (s.submitted_at or utcnow()).isoformat(),
                s.full_name,
                s.email,
                s.phone or "",
                s.age if s.age is not None else "",
                s.poem_title,
                s.tier,
                s.price,
                s.poem_file_url or "",
                s.photo_url or "",
                s.submission_uuid,
                s.poem_index + 1,
            ]
        )
    return rows


def contact_rows(contact: Contact) -> List[List[Any]]:
    message = contact.message
    if contact.subject:
        message = f"[{contact.subject}] {message}"
    return [
        [
            (contact.created_at or utcnow()).isoformat(),
            contact.name,
            contact.email,
            contact.phone or "",
            message,
        ]
    ]


# ─────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────
class SheetsClient:
    """Thin Sheets v4 client; one per app in ``app.extensions["writory.sheets"]``."""

    def __init__(
        self,
        session_factory: Callable[[], requests.Session],
        spreadsheet_id: str,
        *,
        timeout: int = 30,
        demo: bool = False,
    ) -> None:
        self._session_factory = session_factory
        self._session: Optional[requests.Session] = None
        self.spreadsheet_id = spreadsheet_id
        self.timeout = timeout
        self.demo = demo
        self._headers_ready: set[str] = set()
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            try:
                self._session = self._session_factory()
            except Exception as e:
                raise SheetsError(f"Google Sheets authentication failed: {e}") from e
        return self._session

    def _values_url(self, range_: str, suffix: str = "") -> str:
        if not self.spreadsheet_id:
            raise SheetsError("GOOGLE_SHEET_ID is not configured", status_code=500)
        return f"{SHEETS_URL}/{self.spreadsheet_id}/values/{quote(range_, safe='!:')}{suffix}"

    def _call(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise SheetsError(f"Google Sheets request failed: {e}") from e
        return resp.json() if resp.content else {}

    def get_values(self, range_: str) -> List[List[Any]]:
        if self.demo:
            return []
        return self._call("GET", self._values_url(range_)).get("values") or []

    def append(self, range_: str, rows: List[List[Any]]) -> None:
        if self.demo:
            log.info("DEMO sheet append %s (%d rows)", range_, len(rows))
            return
        self._call(
            "POST",
            self._values_url(range_, ":append"),
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": rows},
        )

    def ensure_headers(self, sheet: str) -> None:
        """Write the header row when the sheet is empty."""
        with self._lock:
            if sheet in self._headers_ready:
                return
        if self.demo:
            return

        header_range = f"{sheet}!A1:{chr(ord('A') + len(SHEET_HEADERS[sheet]) - 1)}1"
        existing = self.get_values(header_range)
        if not existing:
            self._call(
                "PUT",
                self._values_url(header_range),
                params={"valueInputOption": "RAW"},
                json={"values": [SHEET_HEADERS[sheet]]},
            )
            log.info("Initialized %s sheet headers", sheet)

        with self._lock:
            self._headers_ready.add(sheet)

    def submission_count(self) -> int:
        rows = self.get_values("Poetry!A:A")
        return max(0, len(rows) - 1)


# ─────────────────────────────────────────────────────────────
# Outbox
# ─────────────────────────────────────────────────────────────
def enqueue(sheet: str, rows: List[List[Any]]) -> SheetOutbox:
    """Queue a mirror write in the current session (caller commits)."""
    if sheet not in SHEET_RANGES:
        raise ValueError(f"unknown sheet: {sheet}")
    entry = SheetOutbox(sheet=sheet, rows=rows, status="pending", attempts=0)
    db.session.add(entry)
    return entry


def flush_outbox(client: SheetsClient, *, max_attempts: int = 5, limit: int = 100) -> Dict[str, int]:
    """
    Deliver pending outbox rows in id order. Each entry commits on its own so
    a failure part-way leaves earlier deliveries recorded.
    """
    sent = failed = retry = 0
    for entry in SheetOutbox.pending(limit=limit):
        entry.attempts += 1
        try:
            client.ensure_headers(entry.sheet)
            client.append(SHEET_RANGES[entry.sheet], entry.rows)
        except SheetsError as e:
            entry.last_error = str(e)[:2000]
            if entry.attempts >= max_attempts:
                entry.status = "failed"
                failed += 1
                log.error("Outbox %s gave up after %d attempts: %s", entry.id, entry.attempts, e)
            else:
                retry += 1
                log.warning("Outbox %s attempt %d failed: %s", entry.id, entry.attempts, e)
        else:
            entry.status = "sent"
            entry.sent_at = utcnow()
            entry.last_error = None
            sent += 1
        db.session.commit()

    return {"sent": sent, "failed": failed, "retry": retry}


def schedule_flush() -> None:
    """Post-commit flush: background when SHEETS_ASYNC_FLUSH, inline otherwise."""
    app = current_app._get_current_object()
    client = get_sheets_client(app)
    max_attempts = int(app.config.get("OUTBOX_MAX_ATTEMPTS", 5))

    if app.config.get("SHEETS_ASYNC_FLUSH", True):
        run_in_app_context(app, flush_outbox, client, max_attempts=max_attempts)
        return

    try:
        flush_outbox(client, max_attempts=max_attempts)
    except Exception:
        db.session.rollback()
        app.logger.exception("Inline outbox flush failed")


def get_sheets_client(app=None) -> SheetsClient:
    app = app or current_app
    return app.extensions["writory.sheets"]
