import json
from decimal import Decimal

import pytest
import requests

from writory.errors import PaymentError
from writory.services.payments import PaymentService

SANDBOX = "https://api-m.sandbox.paypal.com"


def _response(status=200, body=None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode() if body is not None else b""
    resp.url = SANDBOX
    return resp


class FakePayPal:
    """Stands in for requests.post (token) and requests.request (API calls)."""

    def __init__(self, *api_responses, token_response=None):
        self.token_response = token_response if token_response is not None else _response(body={"access_token": "tok-1", "expires_in": 3600})
        self.api_responses = list(api_responses)
        self.token_calls = []
        self.api_calls = []

    def post(self, url, **kwargs):
        self.token_calls.append((url, kwargs))
        return self.token_response

    def request(self, method, url, **kwargs):
        self.api_calls.append((method, url, kwargs))
        return self.api_responses.pop(0)


@pytest.fixture()
def paypal(monkeypatch):
    def _install(*api_responses, **kw):
        fake = FakePayPal(*api_responses, **kw)
        monkeypatch.setattr(requests, "post", fake.post)
        monkeypatch.setattr(requests, "request", fake.request)
        return fake

    return _install


def _service():
    return PaymentService(paypal_client_id="cid", paypal_secret="secret", paypal_env="sandbox")


def _order(oid, status, value=None):
    unit = {"amount": {"currency_code": "USD", "value": "1.08"}}
    if value is not None:
        unit["payments"] = {"captures": [{"amount": {"currency_code": "USD", "value": value}}]}
    return {"id": oid, "status": status, "purchase_units": [unit]}


def test_order_creation_uses_tier_rate_and_cached_token(paypal):
    created = {"id": "O-1", "links": [{"rel": "self", "href": "x"}, {"rel": "approve", "href": "https://paypal.test/approve/O-1"}]}
    fake = paypal(_response(201, created), _response(201, dict(created, id="O-2")))
    svc = _service()

    first = svc.create_paypal_order(90, tier="double", return_url="https://w.test/ok", cancel_url="https://w.test/no")
    second = svc.create_paypal_order(90, tier="double", return_url="https://w.test/ok", cancel_url="https://w.test/no")

    assert first == {"orderId": "O-1", "approvalUrl": "https://paypal.test/approve/O-1", "amountUsd": "1.08"}
    assert second["orderId"] == "O-2"

    assert len(fake.token_calls) == 1
    token_url, token_kwargs = fake.token_calls[0]
    assert token_url == f"{SANDBOX}/v1/oauth2/token"
    assert token_kwargs["auth"] == ("cid", "secret")
    assert token_kwargs["data"] == {"grant_type": "client_credentials"}

    method, url, kwargs = fake.api_calls[0]
    assert (method, url) == ("POST", f"{SANDBOX}/v2/checkout/orders")
    assert kwargs["headers"]["Authorization"] == "Bearer tok-1"
    unit = kwargs["json"]["purchase_units"][0]
    assert unit["amount"] == {"currency_code": "USD", "value": "1.08"}
    assert kwargs["json"]["application_context"]["return_url"] == "https://w.test/ok"


def test_expired_token_is_refreshed(paypal):
    fake = paypal(
        _response(201, {"id": "O-1", "links": []}),
        _response(201, {"id": "O-2", "links": []}),
        token_response=_response(body={"access_token": "short", "expires_in": 30}),
    )
    svc = _service()
    svc.create_paypal_order(50, tier="single", return_url="r", cancel_url="c")
    svc.create_paypal_order(50, tier="single", return_url="r", cancel_url="c")
    # Tokens within a minute of expiry are not reused
    assert len(fake.token_calls) == 2


def test_capture_approved_order(paypal):
    fake = paypal(
        _response(body=_order("O-1", "APPROVED")),
        _response(201, _order("O-1", "COMPLETED", value="0.60")),
    )
    result = _service().capture_paypal_order("O-1")

    assert result == {"id": "O-1", "status": "COMPLETED", "amountUsd": Decimal("0.60")}
    assert [(m, u) for m, u, _ in fake.api_calls] == [
        ("GET", f"{SANDBOX}/v2/checkout/orders/O-1"),
        ("POST", f"{SANDBOX}/v2/checkout/orders/O-1/capture"),
    ]


def test_capture_skips_already_completed_order(paypal):
    fake = paypal(_response(body=_order("O-1", "COMPLETED", value="1.08")))
    result = _service().capture_paypal_order("O-1")
    assert result["status"] == "COMPLETED"
    assert len(fake.api_calls) == 1


def test_rejected_order_is_a_payment_error(paypal):
    paypal(_response(422, {"name": "UNPROCESSABLE_ENTITY"}))
    with pytest.raises(PaymentError) as exc:
        _service().create_paypal_order(50, tier="single", return_url="r", cancel_url="c")
    assert exc.value.status_code == 402


def test_token_failure_is_a_gateway_error(paypal):
    paypal(token_response=_response(401, {"error": "invalid_client"}))
    with pytest.raises(PaymentError) as exc:
        _service().get_paypal_order("O-1")
    assert exc.value.status_code == 502


def test_verify_checks_captured_amount(paypal):
    paypal(
        _response(body=_order("O-1", "COMPLETED", value="0.60")),
        _response(body=_order("O-1", "COMPLETED", value="0.60")),
    )
    svc = _service()
    assert svc.verify("paypal", "O-1", 50)["amountUsd"] == Decimal("0.60")
    with pytest.raises(PaymentError):
        svc.verify("paypal", "O-1", 90)


def test_unconfigured_paypal_refuses():
    with pytest.raises(PaymentError) as exc:
        PaymentService().get_paypal_order("O-1")
    assert exc.value.status_code == 503
