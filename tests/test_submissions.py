import io
import json

from conftest import entrant, pdf, photo, submit_single

from writory.models import Coupon, CouponUsage, SheetOutbox, Submission, UserSubmissionCount
from writory.services import pricing


def _multi(client, tier, titles, files, **overrides):
    form = entrant(**overrides)
    form["tier"] = tier
    form["poemTitles"] = json.dumps(titles)
    form["poemFiles"] = files
    form["photoFile"] = photo()
    return client.post("/api/submit-multiple-poems", data=form, content_type="multipart/form-data")


def test_tiers_listed(client):
    resp = client.get("/api/tiers")
    assert resp.status_code == 200
    tiers = {t["id"]: t for t in resp.get_json()["tiers"]}
    assert tiers["free"]["price"] == 0
    assert tiers["single"]["price"] == 50
    assert tiers["double"]["poemCount"] == 2
    assert tiers["bulk"]["price"] == 230 and tiers["bulk"]["poemCount"] == 5


def test_free_entry_recorded(client, drive, sheets_client):
    resp = submit_single(client)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body["success"] is True
    assert body["paymentVerified"] is True
    assert body["finalAmount"] == 0

    sub = Submission.query.one()
    assert sub.tier == "free"
    assert sub.payment_method == "free"
    assert sub.poem_file_url.startswith("https://drive.google.com/file/d/")
    assert sub.photo_url == body["photoUrl"]
    assert sub.contest_month == pricing.contest_month()

    assert [u["folder"] for u in drive.uploads] == ["Poems", "Photos (Participants)"]
    assert drive.uploads[0]["filename"] == "asha_Monsoon.pdf"
    assert drive.uploads[1]["filename"] == "asha_Monsoon_photo.jpg"

    # Mirrored inline in tests
    assert SheetOutbox.query.one().status == "sent"
    assert sheets_client.appended[0][0] == "Poetry!A:L"

    counts = UserSubmissionCount.query.one()
    assert counts.free_submission_used is True
    assert counts.total_submissions == 1


def test_second_free_entry_same_month_rejected(client):
    assert submit_single(client).status_code == 201
    resp = submit_single(client, poemTitle="Second")
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "tier_unavailable"
    assert Submission.query.count() == 1


def test_free_disabled_by_admin_setting(client):
    resp = client.post("/api/admin/settings", json={"free_tier_enabled": False}, headers={"x-user-email": "admin@writory.test"})
    assert resp.status_code == 200
    resp = submit_single(client)
    assert resp.status_code == 403
    assert Submission.query.count() == 0


def test_unknown_tier_rejected(client):
    resp = submit_single(client, tier="platinum")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "tier_unavailable"


def test_terms_must_be_accepted(client):
    resp = submit_single(client, termsAccepted="")
    assert resp.status_code == 400
    assert "terms" in resp.get_json()["error"]["message"].lower()


def test_paid_single_requires_verified_payment(client, payments, drive):
    resp = submit_single(client, tier="single", paymentMethod="stripe", paymentId="pi_unpaid")
    assert resp.status_code == 402
    assert resp.get_json()["error"]["code"] == "payment_required"
    assert Submission.query.count() == 0
    # Nothing uploaded when payment fails
    assert drive.uploads == []


def test_paid_single_with_stripe(client, payments):
    payments.intents["pi_ok"] = {"id": "pi_ok", "status": "succeeded", "amount": 50.0}
    resp = submit_single(client, tier="single", paymentMethod="stripe", paymentId="pi_ok")
    assert resp.status_code == 201, resp.get_json()
    sub = Submission.query.one()
    assert sub.price == 50
    assert sub.payment_id == "pi_ok"
    assert sub.payment_verified is True


def test_stripe_amount_mismatch_rejected(client, payments):
    payments.intents["pi_cheap"] = {"id": "pi_cheap", "status": "succeeded", "amount": 10.0}
    resp = submit_single(client, tier="single", paymentMethod="stripe", paymentId="pi_cheap")
    assert resp.status_code == 402


def test_payment_reference_pays_for_one_entry_only(client, payments, drive):
    payments.intents["pi_paid"] = {"id": "pi_paid", "status": "succeeded", "amount": 50.0}
    first = submit_single(client, tier="single", paymentMethod="stripe", paymentId="pi_paid")
    assert first.status_code == 201, first.get_json()
    uploads = len(drive.uploads)

    replay = submit_single(
        client,
        tier="single",
        paymentMethod="stripe",
        paymentId="pi_paid",
        email="other@example.com",
        userUid="uid-other",
        poemTitle="Borrowed",
    )
    assert replay.status_code == 409
    assert replay.get_json()["error"]["code"] == "payment_required"
    assert Submission.query.count() == 1
    assert len(drive.uploads) == uploads


def test_paypal_order_cannot_be_replayed(client, payments):
    payments.orders["ORDER9"] = {"id": "ORDER9", "status": "COMPLETED", "amountUsd": "0.60"}
    assert submit_single(client, tier="single", paymentMethod="paypal", paymentId="ORDER9").status_code == 201
    again = submit_single(client, tier="single", paymentMethod="paypal", paymentId=" ORDER9 ", poemTitle="Again")
    assert again.status_code == 409
    assert Submission.query.count() == 1


def test_qr_references_may_repeat(client):
    assert submit_single(client, tier="single", paymentMethod="qr").status_code == 201
    resp = submit_single(client, tier="single", paymentMethod="qr", email="b@example.com", userUid="uid-b")
    assert resp.status_code == 201
    assert {s.payment_id for s in Submission.query.all()} == {"manual_payment"}


def test_qr_payment_stored_unverified(client):
    resp = submit_single(client, tier="single", paymentMethod="qr", paymentId="")
    assert resp.status_code == 201
    sub = Submission.query.one()
    assert sub.payment_method == "qr"
    assert sub.payment_id == "manual_payment"
    assert sub.payment_verified is False


def test_multi_poem_group_shares_uuid_price_and_payment(client, payments, drive):
    payments.orders["ORDER1"] = {"id": "ORDER1", "status": "COMPLETED", "amountUsd": "1.08"}
    resp = _multi(
        client,
        "double",
        ["Rain", "River"],
        [pdf("rain.pdf"), pdf("river.pdf")],
        paymentMethod="paypal",
        paymentId="ORDER1",
    )
    assert resp.status_code == 201, resp.get_json()
    rows = Submission.query.order_by(Submission.poem_index).all()
    assert [r.poem_title for r in rows] == ["Rain", "River"]
    assert [r.poem_index for r in rows] == [0, 1]
    assert {r.submission_uuid for r in rows} == {resp.get_json()["submissionUuid"]}
    assert {r.price for r in rows} == {90}
    assert {r.payment_id for r in rows} == {"ORDER1"}
    assert {r.total_poems for r in rows} == {2}
    assert len({r.poem_file_url for r in rows}) == 2
    assert len({r.photo_url for r in rows}) == 1
    assert len(drive.uploads) == 3
    assert UserSubmissionCount.query.one().total_submissions == 2


def test_multi_poem_title_count_must_match_tier(client, payments):
    payments.orders["ORDER2"] = {"id": "ORDER2", "status": "COMPLETED", "amountUsd": "1.08"}
    resp = _multi(client, "double", ["Only one"], [pdf()], paymentMethod="paypal", paymentId="ORDER2")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["expected"] == 2
    assert Submission.query.count() == 0


def test_single_endpoint_rejects_multi_poem_tier(client):
    resp = submit_single(client, tier="bulk", paymentMethod="qr")
    assert resp.status_code == 400


def test_upload_failure_writes_nothing(client, drive):
    drive.fail = True
    resp = submit_single(client)
    assert resp.status_code == 502
    assert resp.get_json()["error"]["code"] == "upload_failed"
    assert Submission.query.count() == 0
    assert UserSubmissionCount.query.count() == 0


def test_poem_file_type_checked(client):
    form = entrant(tier="free", poemTitle="Bad")
    form["poemFile"] = (io.BytesIO(b"MZ not a poem"), "poem.exe", "application/octet-stream")
    form["photoFile"] = photo()
    resp = client.post("/api/submit-poem", data=form, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert Submission.query.count() == 0


def test_photo_required(client):
    form = entrant(tier="free", poemTitle="No photo")
    form["poemFile"] = pdf()
    resp = client.post("/api/submit-poem", data=form, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert "photo" in resp.get_json()["error"]["message"].lower()


def test_full_coupon_skips_payment(client, app):
    from writory.extensions import db

    db.session.add(Coupon(code="FREEPOEM", discount_type="percentage", discount_value=100, used_count=0, is_active=True))
    db.session.commit()

    resp = submit_single(client, tier="single", couponCode="freepoem")
    assert resp.status_code == 201, resp.get_json()
    sub = Submission.query.one()
    assert sub.price == 0
    assert sub.payment_method == "coupon"
    assert sub.payment_id == "coupon_FREEPOEM"
    assert sub.discount_amount == 50
    assert Coupon.by_code("FREEPOEM").used_count == 1
    assert CouponUsage.query.one().submission_uuid == sub.submission_uuid

    # Same user cannot redeem twice
    resp = submit_single(client, tier="single", couponCode="FREEPOEM", poemTitle="Again")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "coupon_invalid"


def test_legacy_json_submission(client, payments):
    payments.intents["pi_legacy"] = {"id": "pi_legacy", "status": "succeeded", "amount": 50.0}
    resp = client.post(
        "/api/submissions",
        json={
            "firstName": "Ravi",
            "email": "ravi@example.com",
            "tier": "single",
            "poemTitle": "Dust",
            "paymentMethod": "stripe",
            "paymentId": "pi_legacy",
            "poemFileUrl": "https://drive.google.com/file/d/x/view",
            "photoUrl": "https://drive.google.com/file/d/y/view",
        },
    )
    assert resp.status_code == 201, resp.get_json()
    sub = Submission.query.one()
    assert sub.poem_file_url.endswith("/x/view")
    assert sub.photo_url.endswith("/y/view")


def test_user_submissions_and_status(client):
    submit_single(client)
    resp = client.get("/api/users/uid-asha/submissions")
    assert resp.status_code == 200
    assert [s["poemTitle"] for s in resp.get_json()["submissions"]] == ["Monsoon"]

    status = client.get("/api/users/uid-asha/submission-status").get_json()
    assert status["freeSubmissionUsed"] is True
    assert status["totalSubmissions"] == 1

    unknown = client.get("/api/users/nobody/submission-status").get_json()
    assert unknown["freeSubmissionUsed"] is False


def test_closed_month_rejects_entries(client, app):
    from writory.extensions import db
    from writory.models import ContestSettings

    db.session.add(ContestSettings(contest_month=pricing.contest_month(), is_open=False))
    db.session.commit()
    resp = submit_single(client)
    assert resp.status_code == 403
    assert Submission.query.count() == 0


def test_stats(client):
    submit_single(client)
    body = client.get("/api/stats/submissions").get_json()
    assert body["totalPoems"] == 1
    assert body["totalEntries"] == 1
    assert body["byTier"]["free"] == 1
    sheet = client.get("/api/stats/submissions?source=sheet").get_json()
    assert sheet["sheetCount"] == 1


def test_only_coupon_usage_conflicts_read_as_coupon_reuse(app):
    import pytest
    from sqlalchemy.exc import IntegrityError

    from writory.extensions import db
    from writory.models import User
    from writory.services.submissions import _is_coupon_reuse

    coupon = Coupon(code="ONCE", discount_type="fixed", discount_value=10, used_count=0, is_active=True)
    user = User(uid="uid-x", email="x@example.com")
    db.session.add_all([coupon, user])
    db.session.commit()

    db.session.add_all([CouponUsage(coupon_id=coupon.id, user_uid="uid-x"), CouponUsage(coupon_id=coupon.id, user_uid="uid-x")])
    with pytest.raises(IntegrityError) as dup_usage:
        db.session.commit()
    db.session.rollback()
    assert _is_coupon_reuse(dup_usage.value) is True

    db.session.add_all(
        [UserSubmissionCount(user_id=user.id, contest_month="2026-06"), UserSubmissionCount(user_id=user.id, contest_month="2026-06")]
    )
    with pytest.raises(IntegrityError) as dup_count:
        db.session.commit()
    db.session.rollback()
    assert _is_coupon_reuse(dup_count.value) is False


def test_other_integrity_errors_are_not_reported_as_coupon_errors(client, monkeypatch):
    from writory.extensions import db

    def _double_count(user, tier, poems, month):
        for _ in range(2):
            db.session.add(UserSubmissionCount(user_id=user.id, contest_month=month, total_submissions=poems))

    monkeypatch.setattr(pricing, "record_monthly_count", _double_count)
    resp = submit_single(client)
    assert resp.status_code == 500
    assert resp.get_json()["error"]["code"] != "coupon_invalid"
    assert Submission.query.count() == 0
