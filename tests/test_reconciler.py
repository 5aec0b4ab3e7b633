import csv
import io

import pytest

from conftest import ADMIN

from writory.extensions import db
from writory.models import Submission, utcnow
from writory.services import reconciler


def _sub(email, title, **kw):
    s = Submission(
        first_name="Poet",
        email=email,
        poem_title=title,
        tier=kw.pop("tier", "single"),
        price=50,
        payment_method="stripe",
        payment_id="pi_x",
        payment_verified=True,
        poem_file_url="https://drive.google.com/file/d/p/view",
        photo_url="https://drive.google.com/file/d/q/view",
        submission_uuid=kw.pop("uuid", "g-" + title),
        poem_index=0,
        total_poems=1,
        contest_month=kw.pop("month", "2026-06"),
        submitted_at=utcnow(),
        **kw,
    )
    db.session.add(s)
    db.session.commit()
    return s


def _csv(*rows, header=("email", "poemtitle", "score", "type", "originality", "emotion", "structure", "language", "theme", "status", "winner")):
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(header)
    for r in rows:
        w.writerow(r)
    return out.getvalue()


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1", (True, 1)),
        ("3rd", (True, 3)),
        ("TRUE", (True, None)),
        ("yes", (True, None)),
        ("", (False, None)),
        ("no", (False, None)),
    ],
)
def test_parse_winner(raw, expected):
    assert reconciler.parse_winner(raw) == expected


def test_parse_winner_rejects_garbage():
    with pytest.raises(reconciler.RowError):
        reconciler.parse_winner("maybe")


def test_import_matches_by_email_and_title(app):
    sub = _sub("ana@example.com", "Blue Hour")
    report = reconciler.import_scores(
        io.StringIO(_csv(["ANA@example.com", "  blue   hour ", "88", "", "18", "17", "16", "19", "18", "", "1"]))
    )
    assert report.errors == []
    assert report.processed == 1
    db.session.refresh(sub)
    assert sub.score == 88
    assert sub.type == "Human"
    assert sub.status == "Evaluated"
    assert sub.score_breakdown == {"originality": 18, "emotion": 17, "structure": 16, "language": 19, "theme": 18}
    assert sub.is_winner is True
    assert sub.winner_position == 1
    assert report.updated[0]["poemFileUrl"] == sub.poem_file_url


def test_unmatched_and_invalid_rows_change_nothing(app):
    sub = _sub("ana@example.com", "Blue Hour")
    report = reconciler.import_scores(
        io.StringIO(
            _csv(
                ["nobody@example.com", "Blue Hour", "70", "", "", "", "", "", "", "", ""],
                ["ana@example.com", "Blue Hour", "140", "", "", "", "", "", "", "", ""],
                ["ana@example.com", "Blue Hour", "", "", "", "", "", "", "", "", ""],
                ["ana@example.com", "Blue Hour", "60", "", "", "", "", "", "", "", "perhaps"],
            )
        )
    )
    assert report.processed == 4
    assert len(report.errors) == 4
    assert report.updated == []
    assert report.errors[0].startswith("Row 2:")
    db.session.refresh(sub)
    assert sub.score is None
    assert sub.is_winner is False


def test_ambiguous_match_needs_submission_id(app):
    a = _sub("ana@example.com", "Same", uuid="g1", month="2026-05")
    b = _sub("ana@example.com", "Same", uuid="g2", month="2026-06")

    report = reconciler.import_scores(io.StringIO(_csv(["ana@example.com", "Same", "50", "", "", "", "", "", "", "", ""])))
    assert len(report.errors) == 1
    assert "submission_id" in report.errors[0]

    header = ("submission_id", "email", "poemtitle", "score", "winner")
    report = reconciler.import_scores(io.StringIO(_csv([b.id, "", "", "91", "2nd"], header=header)))
    assert report.errors == []
    db.session.refresh(a)
    db.session.refresh(b)
    assert a.score is None
    assert b.score == 91 and b.winner_position == 2


def test_missing_required_column_rejects_file(app):
    with pytest.raises(reconciler.RowError):
        reconciler.import_scores(io.StringIO("email,poemtitle\nx@example.com,T\n"))


def test_bom_and_aliases_accepted(app):
    sub = _sub("ana@example.com", "Blue Hour")
    raw = "\ufeffEmail,Poem Title,Score\r\nana@example.com,Blue Hour,77\r\n".encode("utf-8")
    report = reconciler.import_scores_bytes(raw)
    assert report.errors == []
    db.session.refresh(sub)
    assert sub.score == 77


def test_export_then_edit_round_trip(app):
    sub = _sub("ana@example.com", "Blue Hour")
    exported = reconciler.export_scores("2026-06")
    rows = list(csv.DictReader(io.StringIO(exported)))
    assert rows[0]["submission_id"] == str(sub.id)
    assert list(rows[0].keys()) == reconciler.EXPORT_COLUMNS

    rows[0]["score"] = "64"
    rows[0]["winner"] = "3"
    out = io.StringIO()
    w = csv.DictWriter(out, fieldnames=reconciler.EXPORT_COLUMNS)
    w.writeheader()
    w.writerows(rows)
    report = reconciler.import_scores(io.StringIO(out.getvalue()))
    assert report.errors == []
    db.session.refresh(sub)
    assert sub.score == 64 and sub.winner_position == 3


def test_admin_upload_and_export_endpoints(client):
    _sub("ana@example.com", "Blue Hour")
    data = {"csvFile": (io.BytesIO(_csv(["ana@example.com", "Blue Hour", "81", "AI", "", "", "", "", "", "Shortlisted", ""]).encode()), "scores.csv")}
    resp = client.post("/api/admin/upload-csv", data=data, headers=ADMIN, content_type="multipart/form-data")
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body["processed"] == 1 and body["errors"] == []
    assert body["updated"][0]["status"] == "Shortlisted"

    exp = client.get("/api/admin/export-csv?month=2026-06", headers=ADMIN)
    assert exp.status_code == 200
    assert exp.mimetype == "text/csv"
    assert "attachment" in exp.headers["Content-Disposition"]
    assert "Blue Hour" in exp.get_data(as_text=True)


def test_upload_requires_admin(client):
    data = {"csvFile": (io.BytesIO(b"email,poemtitle,score\n"), "scores.csv")}
    resp = client.post("/api/admin/upload-csv", data=data, headers={"x-user-email": "poet@example.com"}, content_type="multipart/form-data")
    assert resp.status_code == 403
    resp = client.post("/api/admin/upload-csv", data={}, content_type="multipart/form-data")
    assert resp.status_code == 401


def test_submission_id_must_agree_with_email_and_title(app):
    alpha = _sub("a@example.com", "Alpha")
    _sub("b@example.com", "Beta")

    header = ("submission_id", "email", "poemtitle", "score")
    report = reconciler.import_scores(
        io.StringIO(
            _csv(
                [alpha.id, "b@example.com", "Beta", "88"],
                [alpha.id, "a@example.com", "Gamma", "88"],
                header=header,
            )
        )
    )
    assert len(report.errors) == 2
    assert "belongs to a@example.com" in report.errors[0]
    assert "'Alpha'" in report.errors[1]
    db.session.refresh(alpha)
    assert alpha.score is None

    report = reconciler.import_scores(io.StringIO(_csv([alpha.id, " A@Example.com ", "alpha", "88"], header=header)))
    assert report.errors == []
    db.session.refresh(alpha)
    assert alpha.score == 88
