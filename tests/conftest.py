import io
from typing import Any, Dict, List

import pytest

from writory import create_app
from writory.config import TestingConfig
from writory.errors import SheetsError, UploadError
from writory.extensions import db
from writory.services.drive import file_url
from writory.services.payments import PaymentService

ADMIN = {"x-user-email": "admin@writory.test"}


class FakeDrive:
    def __init__(self):
        self.uploads: List[Dict[str, Any]] = []
        self.fail = False

    def upload(self, data, filename, mime_type, folder):
        if self.fail:
            raise UploadError("Google Drive upload failed")
        self.uploads.append({"filename": filename, "mime": mime_type, "folder": folder, "size": len(data)})
        return file_url(f"fake{len(self.uploads)}")


class FakeSheets:
    def __init__(self):
        self.appended: List[Any] = []
        self.fail = False

    def ensure_headers(self, sheet):
        if self.fail:
            raise SheetsError("Google Sheets request failed: 503")

    def append(self, range_, rows):
        if self.fail:
            raise SheetsError("Google Sheets request failed: 503")
        self.appended.append((range_, rows))

    def submission_count(self):
        return sum(len(rows) for range_, rows in self.appended if range_.startswith("Poetry"))


class FakePayments(PaymentService):
    """Real verify() logic over canned provider lookups."""

    def __init__(self):
        super().__init__(stripe_secret_key="sk_test_dummy", paypal_client_id="cid", paypal_secret="sec")
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}

    def get_stripe_intent(self, intent_id):
        return self.intents.get(intent_id, {"id": intent_id, "status": "requires_payment_method", "amount": None})

    def get_checkout_session(self, session_id):
        return self.sessions.get(session_id, {"id": session_id, "payment_status": "unpaid", "amount": None})

    def get_paypal_order(self, order_id):
        return self.orders.get(order_id, {"id": order_id, "status": "CREATED", "amountUsd": None})

    def capture_paypal_order(self, order_id):
        return self.get_paypal_order(order_id)

    def create_stripe_intent(self, amount, *, metadata=None):
        return {"id": "pi_new", "client_secret": "pi_new_secret", "amount": amount, "currency": "inr"}


@pytest.fixture()
def app():
    app = create_app(TestingConfig)
    app.extensions["writory.drive"] = FakeDrive()
    app.extensions["writory.sheets"] = FakeSheets()
    app.extensions["writory.payments"] = FakePayments()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def drive(app):
    return app.extensions["writory.drive"]


@pytest.fixture()
def sheets_client(app):
    return app.extensions["writory.sheets"]


@pytest.fixture()
def payments(app):
    return app.extensions["writory.payments"]


def pdf(name="poem.pdf"):
    return (io.BytesIO(b"%PDF-1.4 a small poem"), name, "application/pdf")


def photo(name="me.jpg"):
    return (io.BytesIO(b"\xff\xd8\xff fake jpeg"), name, "image/jpeg")


def entrant(**overrides):
    form = {
        "firstName": "Asha",
        "lastName": "Rao",
        "email": "asha@example.com",
        "phone": "9999999999",
        "age": "24",
        "userUid": "uid-asha",
        "termsAccepted": "true",
    }
    form.update(overrides)
    return form


def submit_single(client, **overrides):
    form = entrant(**overrides)
    form.setdefault("tier", "free")
    form.setdefault("poemTitle", "Monsoon")
    form["poemFile"] = pdf()
    form["photoFile"] = photo()
    return client.post("/api/submit-poem", data=form, content_type="multipart/form-data")
