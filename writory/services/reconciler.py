# writory/services/reconciler.py
"""
Judge-score CSV import/export.

Import rows are matched by ``submission_id`` when the column is present and
filled, else by normalized (email, poem title). A row that matches nothing,
matches more than one submission, or carries an invalid value is reported
and changes nothing. Each applied row commits on its own.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func

from writory.extensions import db
from writory.models import Submission
from writory.models.submission import SCORE_FIELDS

log = logging.getLogger(__name__)

CSV_COLUMNS = [
    "email",
    "poemtitle",
    "score",
    "type",
    "originality",
    "emotion",
    "structure",
    "language",
    "theme",
    "status",
    "winner",
]
EXPORT_COLUMNS = ["submission_id"] + CSV_COLUMNS

_HEADER_ALIASES = {
    "poem_title": "poemtitle",
    "poem title": "poemtitle",
    "title": "poemtitle",
    "submissionid": "submission_id",
    "submission id": "submission_id",
    "id": "submission_id",
}
_TRUE_WORDS = {"true", "yes", "y", "winner", "x"}
_FALSE_WORDS = {"", "false", "no", "n", "0", "none", "-"}


class RowError(ValueError):
    pass


@dataclass
class ImportReport:
    processed: int = 0
    errors: List[str] = field(default_factory=list)
    updated: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "processed": self.processed,
            "errors": self.errors,
            "updated": self.updated,
        }


def _norm(s: Optional[str]) -> str:
    return " ".join((s or "").split()).lower()


def _header(h: Optional[str]) -> str:
    key = _norm(h).lstrip("\ufeff")
    return _HEADER_ALIASES.get(key, key)


def parse_winner(raw: Optional[str]) -> Tuple[bool, Optional[int]]:
    """``1/2/3`` -> winner at that position; boolean-like -> winner without position."""
    s = _norm(raw)
    if s in {"1", "2", "3"}:
        return True, int(s)
    if s in {"1st", "2nd", "3rd"}:
        return True, int(s[0])
    if s in _TRUE_WORDS:
        return True, None
    if s in _FALSE_WORDS:
        return False, None
    raise RowError(f"invalid winner value '{raw}'")


def _parse_number(raw: Optional[str], name: str, *, lo: float = 0, hi: float = 100) -> Optional[float]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        raise RowError(f"invalid {name} '{raw}'")
    if not lo <= v <= hi:
        raise RowError(f"{name} {v:g} out of range {lo:g}-{hi:g}")
    return v


def _parse_row(row: Dict[str, str]) -> Dict[str, Any]:
    score = _parse_number(row.get("score"), "score")
    if score is None:
        raise RowError("score is required")

    breakdown: Dict[str, Any] = {}
    for name in SCORE_FIELDS:
        v = _parse_number(row.get(name), name)
        if v is not None:
            breakdown[name] = int(v) if v.is_integer() else v

    is_winner, position = parse_winner(row.get("winner"))
    return {
        "score": score,
        "type": (row.get("type") or "").strip() or "Human",
        "status": (row.get("status") or "").strip() or "Evaluated",
        "score_breakdown": breakdown or None,
        "is_winner": is_winner,
        "winner_position": position,
    }


def _match(row: Dict[str, str]) -> Submission:
    sid = (row.get("submission_id") or "").strip()
    if sid:
        try:
            sub = db.session.get(Submission, int(sid))
        except ValueError:
            raise RowError(f"invalid submission_id '{sid}'")
        if sub is None:
            raise RowError(f"no submission with id {sid}")
        email, title = _norm(row.get("email")), _norm(row.get("poemtitle"))
        if email and email != _norm(sub.email):
            raise RowError(f"submission {sid} belongs to {sub.email}, not {row.get('email')}")
        if title and title != _norm(sub.poem_title):
            raise RowError(f"submission {sid} is '{sub.poem_title}', not '{row.get('poemtitle')}'")
        return sub

    email, title = _norm(row.get("email")), _norm(row.get("poemtitle"))
    if not email or not title:
        raise RowError("email and poemtitle are required when submission_id is absent")

    candidates = Submission.query.filter(func.lower(Submission.email) == email).all()
    hits = [s for s in candidates if _norm(s.poem_title) == title]
    if not hits:
        raise RowError(f"no submission for {row.get('email')} / '{row.get('poemtitle')}'")
    if len(hits) > 1:
        raise RowError(
            f"{len(hits)} submissions match {row.get('email')} / '{row.get('poemtitle')}'; "
            "add submission_id to disambiguate"
        )
    return hits[0]


def _updated_entry(sub: Submission) -> Dict[str, Any]:
    return {
        "id": sub.id,
        "email": sub.email,
        "poemTitle": sub.poem_title,
        "score": sub.score,
        "status": sub.status,
        "isWinner": sub.is_winner,
        "winnerPosition": sub.winner_position,
        "poemFileUrl": sub.poem_file_url,
        "photoUrl": sub.photo_url,
    }


def import_scores(stream: Iterable[str]) -> ImportReport:
    reader = csv.DictReader(stream)
    if not reader.fieldnames:
        raise RowError("CSV file is empty")
    reader.fieldnames = [_header(h) for h in reader.fieldnames]

    has_id = "submission_id" in reader.fieldnames
    missing = [c for c in ("score",) if c not in reader.fieldnames]
    if not has_id:
        missing += [c for c in ("email", "poemtitle") if c not in reader.fieldnames]
    if missing:
        raise RowError(f"CSV is missing required column(s): {', '.join(missing)}")

    report = ImportReport()
    for line_no, row in enumerate(reader, start=2):
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        report.processed += 1
        try:
            values = _parse_row(row)
            sub = _match(row)
        except RowError as e:
            report.errors.append(f"Row {line_no}: {e}")
            continue

        for k, v in values.items():
            setattr(sub, k, v)
        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            log.error("CSV row %d commit failed: %s", line_no, e, exc_info=True)
            report.errors.append(f"Row {line_no}: database error")
            continue
        report.updated.append(_updated_entry(sub))

    log.info("CSV import: %d processed, %d updated, %d errors", report.processed, len(report.updated), len(report.errors))
    return report


def import_scores_bytes(raw: bytes) -> ImportReport:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = raw.decode("latin-1")
    return import_scores(io.StringIO(text))


def _winner_cell(sub: Submission) -> str:
    if sub.is_winner and sub.winner_position:
        return str(sub.winner_position)
    return "true" if sub.is_winner else ""


def export_scores(month: Optional[str] = None) -> str:
    q = Submission.query
    if month:
        q = q.filter_by(contest_month=month)
    rows = q.order_by(Submission.id.asc()).all()

    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(EXPORT_COLUMNS)
    for s in rows:
        breakdown = s.score_breakdown or {}
        writer.writerow(
            [
                s.id,
                s.email,
                s.poem_title,
                "" if s.score is None else s.score,
                s.type,
                *[breakdown.get(name, "") for name in SCORE_FIELDS],
                s.status,
                _winner_cell(s),
            ]
        )
    return out.getvalue()
