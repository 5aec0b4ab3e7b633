# writory/services/payments.py
"""
Stripe + PayPal payment service with a demo-mode toggle.

One instance per app lives in ``app.extensions["writory.payments"]`` and owns
the PayPal OAuth token cache. Amounts enter and leave this module in INR
(major units); Stripe is charged in paise, PayPal in USD.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional, Tuple

import requests
import stripe

from writory.errors import PaymentError

log = logging.getLogger(__name__)

# INR tier prices -> USD charged through PayPal. Amounts not in the table
# (coupon-discounted totals) fall back to PAYPAL_FALLBACK_RATE.
PAYPAL_USD_TABLE: Dict[int, Decimal] = {
    50: Decimal("0.60"),
    90: Decimal("1.08"),
    230: Decimal("2.76"),
}
PAYPAL_FALLBACK_RATE = Decimal("0.012")
PAYPAL_MIN_USD = Decimal("0.01")


def inr_to_usd(amount_inr: float) -> Decimal:
    amt = Decimal(str(amount_inr)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if amt == amt.to_integral_value() and int(amt) in PAYPAL_USD_TABLE:
        return PAYPAL_USD_TABLE[int(amt)]
    usd = (amt * PAYPAL_FALLBACK_RATE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return max(usd, PAYPAL_MIN_USD)


def to_minor_units(amount: float) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    """Unified Stripe + PayPal service with demo mode toggle."""

    def __init__(
        self,
        *,
        stripe_secret_key: str = "",
        currency: str = "inr",
        paypal_client_id: str = "",
        paypal_secret: str = "",
        paypal_env: str = "sandbox",
        paypal_timeout: int = 15,
        demo: bool = False,
    ) -> None:
        self.stripe_secret_key = stripe_secret_key or ""
        self.currency = (currency or "inr").lower()
        self.paypal_client_id = paypal_client_id or ""
        self.paypal_secret = paypal_secret or ""
        self.paypal_env = (paypal_env or "sandbox").lower()
        self.paypal_timeout = int(paypal_timeout)
        self.demo = bool(demo)
        self._paypal_token: Optional[Tuple[str, float]] = None
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "PaymentService":
        return cls(
            stripe_secret_key=config.get("STRIPE_SECRET_KEY", ""),
            currency=config.get("CURRENCY", "inr"),
            paypal_client_id=config.get("PAYPAL_CLIENT_ID", ""),
            paypal_secret=config.get("PAYPAL_SECRET", ""),
            paypal_env=config.get("PAYPAL_ENV", "sandbox"),
            paypal_timeout=config.get("PAYPAL_TIMEOUT", 15),
            demo=config.get("DEMO_MODE", False),
        )

    # ---------------- Status ----------------
    @property
    def stripe_enabled(self) -> bool:
        return self.demo or bool(self.stripe_secret_key)

    @property
    def paypal_enabled(self) -> bool:
        return self.demo or bool(self.paypal_client_id and self.paypal_secret)

    # ---------------- STRIPE ----------------
    def _stripe_call(self, what: str, fn, *args, **kwargs):
        if not self.stripe_secret_key:
            raise PaymentError("Stripe is not configured", status_code=503)
        try:
            return fn(*args, api_key=self.stripe_secret_key, **kwargs)
        except stripe.StripeError as e:
            log.error("Stripe %s failed: %s", what, e)
            msg = getattr(e, "user_message", None) or str(e) or "Stripe error"
            raise PaymentError(msg, status_code=502) from e

    def create_stripe_intent(self, amount: float, *, metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        if amount <= 0:
            raise PaymentError("Amount must be greater than zero", status_code=400)

        if self.demo:
            return {
                "id": f"pi_demo_{int(time.time())}",
                "client_secret": f"demo_secret_{random.randint(1000, 9999)}",
                "amount": amount,
                "currency": self.currency,
                "demo": True,
            }

        intent = self._stripe_call(
            "intent create",
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=self.currency,
            automatic_payment_methods={"enabled": True},
            metadata=metadata or {},
        )
        return {
            "id": intent.id,
            "client_secret": intent.client_secret,
            "amount": amount,
            "currency": self.currency,
        }

    def get_stripe_intent(self, intent_id: str) -> Dict[str, Any]:
        if self.demo and intent_id.startswith("pi_demo_"):
            return {"id": intent_id, "status": "succeeded", "amount": None, "currency": self.currency, "demo": True}

        intent = self._stripe_call("intent retrieve", stripe.PaymentIntent.retrieve, intent_id)
        return {
            "id": intent.id,
            "status": intent.status,
            "amount": (intent.amount or 0) / 100.0,
            "currency": str(intent.currency or "").lower(),
        }

    def create_checkout_session(
        self,
        amount: float,
        *,
        tier: str,
        success_url: str,
        cancel_url: str,
        email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if amount <= 0:
            raise PaymentError("Amount must be greater than zero", status_code=400)

        if self.demo:
            sid = f"cs_demo_{int(time.time())}"
            return {"id": sid, "url": f"{success_url}?session_id={sid}", "demo": True}

        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": to_minor_units(amount),
                        "product_data": {"name": f"Writory Contest - {tier} tier submission"},
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }
        if email:
            params["customer_email"] = email
        session = self._stripe_call("checkout create", stripe.checkout.Session.create, **params)
        return {"id": session.id, "url": session.url}

    def get_checkout_session(self, session_id: str) -> Dict[str, Any]:
        if self.demo and session_id.startswith("cs_demo_"):
            return {"id": session_id, "payment_status": "paid", "amount": None, "demo": True}

        session = self._stripe_call("checkout retrieve", stripe.checkout.Session.retrieve, session_id)
        return {
            "id": session.id,
            "payment_status": session.payment_status,
            "amount": (session.amount_total or 0) / 100.0,
            "payment_intent": session.payment_intent,
            "metadata": dict(session.metadata or {}),
        }

    # ---------------- PAYPAL ----------------
    def _paypal_base(self) -> str:
        return "https://api-m.paypal.com" if self.paypal_env == "live" else "https://api-m.sandbox.paypal.com"

    def _paypal_access_token(self) -> str:
        with self._token_lock:
            cached = self._paypal_token
            if cached and cached[1] > time.time() + 60:
                return cached[0]

            if not (self.paypal_client_id and self.paypal_secret):
                raise PaymentError("PayPal is not configured", status_code=503)

            try:
                resp = requests.post(
                    f"{self._paypal_base()}/v1/oauth2/token",
                    auth=(self.paypal_client_id, self.paypal_secret),
                    data={"grant_type": "client_credentials"},
                    headers={"Accept": "application/json"},
                    timeout=self.paypal_timeout,
                )
                resp.raise_for_status()
                data = resp.json()
            except (requests.RequestException, ValueError) as e:
                log.error("PayPal token request failed: %s", e)
                raise PaymentError("PayPal authentication failed", status_code=502) from e

            token = str(data.get("access_token") or "")
            if not token:
                raise PaymentError("PayPal authentication failed", status_code=502)
            self._paypal_token = (token, time.time() + int(data.get("expires_in") or 300))
            return token

    def _paypal_request(self, method: str, path: str, what: str, **kwargs) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._paypal_access_token()}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.request(
                method,
                f"{self._paypal_base()}{path}",
                headers=headers,
                timeout=self.paypal_timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            log.error("PayPal %s failed: %s", what, e)
            raise PaymentError(f"PayPal {what} failed", status_code=502) from e

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            log.warning("PayPal %s rejected (%s): %s", what, resp.status_code, data)
            raise PaymentError(f"PayPal {what} failed", status_code=402 if resp.status_code < 500 else 502)
        return data

    def create_paypal_order(self, amount_inr: float, *, tier: str, return_url: str, cancel_url: str) -> Dict[str, Any]:
        if amount_inr <= 0:
            raise PaymentError("Amount must be greater than zero", status_code=400)
        usd = inr_to_usd(amount_inr)

        if self.demo:
            oid = f"ORDER_DEMO_{int(time.time())}"
            return {"orderId": oid, "approvalUrl": f"{return_url}?token={oid}", "amountUsd": str(usd), "demo": True}

        order = self._paypal_request(
            "POST",
            "/v2/checkout/orders",
            "order create",
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {"currency_code": "USD", "value": str(usd)},
                        "description": f"Writory Contest - {tier} tier submission",
                    }
                ],
                "application_context": {
                    "return_url": return_url,
                    "cancel_url": cancel_url,
                    "shipping_preference": "NO_SHIPPING",
                    "user_action": "PAY_NOW",
                },
            },
        )
        approval = next((l.get("href") for l in order.get("links") or [] if l.get("rel") == "approve"), None)
        return {"orderId": order.get("id") or "", "approvalUrl": approval, "amountUsd": str(usd)}

    @staticmethod
    def _captured_usd(order: Dict[str, Any]) -> Optional[Decimal]:
        units = order.get("purchase_units") or [{}]
        captures = ((units[0].get("payments") or {}).get("captures")) or []
        value = (captures[0].get("amount") or {}).get("value") if captures else None
        if value is None:
            value = (units[0].get("amount") or {}).get("value")
        return Decimal(str(value)) if value is not None else None

    def get_paypal_order(self, order_id: str) -> Dict[str, Any]:
        if self.demo and order_id.startswith("ORDER_DEMO_"):
            return {"id": order_id, "status": "COMPLETED", "amountUsd": None, "demo": True}

        order = self._paypal_request("GET", f"/v2/checkout/orders/{order_id}", "order lookup")
        return {"id": order.get("id"), "status": order.get("status"), "amountUsd": self._captured_usd(order)}

    def capture_paypal_order(self, order_id: str) -> Dict[str, Any]:
        if not order_id:
            raise PaymentError("Missing orderId", status_code=400)

        if self.demo and order_id.startswith("ORDER_DEMO_"):
            return {"id": order_id, "status": "COMPLETED", "amountUsd": None, "demo": True}

        current = self.get_paypal_order(order_id)
        if current.get("status") == "COMPLETED":
            return current

        data = self._paypal_request("POST", f"/v2/checkout/orders/{order_id}/capture", "capture")
        return {"id": data.get("id") or order_id, "status": data.get("status"), "amountUsd": self._captured_usd(data)}

    # ---------------- Verification ----------------
    def verify(self, method: str, payment_id: Optional[str], expected_amount: float) -> Dict[str, Any]:
        """
        Confirm a Stripe/PayPal reference is paid for ``expected_amount`` INR.
        Raises PaymentError (402) otherwise.
        """
        ref = (payment_id or "").strip()
        if not ref:
            raise PaymentError("Payment reference is required")

        if method == "stripe":
            if ref.startswith("cs_"):
                info = self.get_checkout_session(ref)
                ok = info.get("payment_status") == "paid"
            else:
                info = self.get_stripe_intent(ref)
                ok = info.get("status") == "succeeded"
            if not ok:
                raise PaymentError("Stripe payment has not completed")
            paid = info.get("amount")
            if paid is not None and abs(float(paid) - float(expected_amount)) > 0.009:
                raise PaymentError("Stripe payment amount does not match the tier price")
            return info

        if method == "paypal":
            info = self.get_paypal_order(ref)
            if info.get("status") != "COMPLETED":
                raise PaymentError("PayPal payment has not been captured")
            paid_usd = info.get("amountUsd")
            if paid_usd is not None and Decimal(str(paid_usd)) < inr_to_usd(expected_amount):
                raise PaymentError("PayPal payment amount does not match the tier price")
            return info

        raise PaymentError(f"Unsupported payment method: {method}", status_code=400)
