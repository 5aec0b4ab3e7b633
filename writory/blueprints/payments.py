#!/usr/bin/env python3
"""
Writory Payments Blueprint (Stripe + PayPal)

Mount: /api

Endpoints:
  GET  /api/payments/health
  GET  /api/payments/config

  POST /api/create-payment-intent      Stripe PaymentIntent (paise)
  POST /api/verify-payment-intent
  POST /api/create-checkout-session    Stripe hosted Checkout
  POST /api/verify-checkout-session

  POST /api/create-paypal-order        INR -> USD via the tier rate table
  POST /api/verify-paypal-payment      capture + verify COMPLETED

Contracts:
- The payable amount is always recomputed server-side from tier + coupon;
  a client-sent amount is only compared, never trusted.
- API-style JSON: never caches; errors come back as {ok:false, error:{...}}.
"""

from __future__ import annotations

import time
from typing import Any, Dict

from flask import Blueprint, current_app
from sqlalchemy import text

from writory.errors import PaymentError
from writory.extensions import csrf, db
from writory.services import coupons

from .common import base_url, json_ok, json_response, request_payload

bp = Blueprint("payments", __name__)
_PROCESS_START = time.time()

csrf.exempt(bp)


def _payments():
    return current_app.extensions["writory.payments"]


def _quote_from(data: Dict[str, Any]) -> coupons.Quote:
    q = coupons.quote(
        data.get("tier"),
        data.get("couponCode") or data.get("coupon_code"),
        data.get("userId") or data.get("userUid") or None,
    )
    claimed = data.get("amount")
    if claimed not in (None, ""):
        try:
            mismatch = abs(float(claimed) - q.final) > 0.009
        except (TypeError, ValueError):
            mismatch = True
        if mismatch:
            current_app.logger.warning(
                "Client amount %r differs from server amount %s for tier=%s", claimed, q.final, q.tier.name
            )
    if q.final <= 0:
        raise PaymentError("Nothing to pay for this selection", status_code=400)
    return q


def _metadata(q: coupons.Quote, data: Dict[str, Any]) -> Dict[str, str]:
    meta = {"tier": q.tier.name, "poemCount": str(q.tier.poem_count), "finalAmount": str(q.final)}
    if q.coupon_code:
        meta["couponCode"] = q.coupon_code
    for key in ("userId", "email"):
        if data.get(key):
            meta[key] = str(data[key])[:200]
    return meta


# ----------------------------
# Health / config
# ----------------------------
def _db_check() -> Dict[str, Any]:
    t0 = time.perf_counter()
    db.session.execute(text("SELECT 1"))
    return {"ok": True, "latencyMs": int((time.perf_counter() - t0) * 1000)}


@bp.get("/payments/health")
def payments_health():
    svc = _payments()
    components: Dict[str, Any] = {}
    try:
        components["db"] = _db_check()
    except Exception as e:
        current_app.logger.exception("payments.health: db check failed")
        components["db"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}

    components["stripe"] = {"ok": svc.stripe_enabled, "demo": svc.demo}
    # PayPal is optional: visible, but does not affect status.
    components["paypal"] = {"ok": True, "enabled": svc.paypal_enabled, "env": svc.paypal_env}

    status = "ok" if components["db"]["ok"] and components["stripe"]["ok"] else "degraded"
    return json_response(
        {
            "ok": True,
            "status": status,
            "uptimeS": int(time.time() - _PROCESS_START),
            "components": components,
        }
    )


@bp.get("/payments/config")
def payments_config():
    svc = _payments()
    cfg = current_app.config
    return json_ok(
        {
            "currency": svc.currency,
            "demo": svc.demo,
            "stripe": {
                "enabled": svc.stripe_enabled,
                "publishableKey": cfg.get("STRIPE_PUBLISHABLE_KEY") or "",
            },
            "paypal": {
                "enabled": svc.paypal_enabled,
                "clientId": cfg.get("PAYPAL_CLIENT_ID") or "",
                "env": svc.paypal_env,
            },
        }
    )


# ----------------------------
# Stripe
# ----------------------------
@bp.post("/create-payment-intent")
def create_payment_intent():
    data = request_payload()
    q = _quote_from(data)
    intent = _payments().create_stripe_intent(q.final, metadata=_metadata(q, data))
    current_app.logger.info("Stripe intent %s created for tier=%s amount=%s", intent["id"], q.tier.name, q.final)
    return json_ok(
        {
            "clientSecret": intent["client_secret"],
            "paymentIntentId": intent["id"],
            "amount": q.final,
            "currency": intent["currency"],
            "quote": q.to_dict(),
        }
    )


@bp.post("/verify-payment-intent")
def verify_payment_intent():
    data = request_payload()
    intent_id = str(data.get("paymentIntentId") or data.get("payment_intent_id") or "").strip()
    if not intent_id:
        raise PaymentError("paymentIntentId is required", status_code=400)

    info = _payments().get_stripe_intent(intent_id)
    paid = info.get("status") == "succeeded"
    return json_ok(
        {
            "success": paid,
            "verified": paid,
            "status": info.get("status"),
            "paymentIntentId": intent_id,
            "amount": info.get("amount"),
        }
    )


@bp.post("/create-checkout-session")
def create_checkout_session():
    data = request_payload()
    q = _quote_from(data)
    root = base_url()
    session = _payments().create_checkout_session(
        q.final,
        tier=q.tier.name,
        success_url=str(data.get("successUrl") or f"{root}/submit?payment=success"),
        cancel_url=str(data.get("cancelUrl") or f"{root}/submit?payment=cancelled"),
        email=(str(data.get("email") or "").strip() or None),
        metadata=_metadata(q, data),
    )
    current_app.logger.info("Stripe checkout %s created for tier=%s amount=%s", session["id"], q.tier.name, q.final)
    return json_ok({"sessionId": session["id"], "url": session["url"], "amount": q.final, "quote": q.to_dict()})


@bp.post("/verify-checkout-session")
def verify_checkout_session():
    data = request_payload()
    session_id = str(data.get("sessionId") or data.get("session_id") or "").strip()
    if not session_id:
        raise PaymentError("sessionId is required", status_code=400)

    info = _payments().get_checkout_session(session_id)
    paid = info.get("payment_status") == "paid"
    if not paid:
        raise PaymentError("Payment not completed", paymentStatus=info.get("payment_status"))
    return json_ok(
        {
            "success": True,
            "verified": True,
            "sessionId": session_id,
            "paymentStatus": info.get("payment_status"),
            "amount": info.get("amount"),
        }
    )


# ----------------------------
# PayPal
# ----------------------------
@bp.post("/create-paypal-order")
def create_paypal_order():
    data = request_payload()
    q = _quote_from(data)
    root = base_url()
    order = _payments().create_paypal_order(
        q.final,
        tier=q.tier.name,
        return_url=str(data.get("returnUrl") or f"{root}/payment-success"),
        cancel_url=str(data.get("cancelUrl") or f"{root}/payment-cancel"),
    )
    if not order.get("approvalUrl"):
        raise PaymentError("PayPal did not return an approval link", status_code=502)
    current_app.logger.info("PayPal order %s created for tier=%s amount=%s", order["orderId"], q.tier.name, q.final)
    return json_ok(
        {
            "success": True,
            "orderId": order["orderId"],
            "approvalUrl": order["approvalUrl"],
            "amountInr": q.final,
            "amountUsd": order["amountUsd"],
        }
    )


@bp.post("/verify-paypal-payment")
def verify_paypal_payment():
    data = request_payload()
    order_id = str(data.get("orderId") or data.get("order_id") or data.get("token") or "").strip()
    if not order_id:
        raise PaymentError("orderId is required", status_code=400)

    result = _payments().capture_paypal_order(order_id)
    if result.get("status") != "COMPLETED":
        raise PaymentError("PayPal payment not completed", paypalStatus=result.get("status"))

    amount = result.get("amountUsd")
    return json_ok(
        {
            "success": True,
            "verified": True,
            "orderId": order_id,
            "status": result.get("status"),
            "amountUsd": str(amount) if amount is not None else None,
        }
    )
