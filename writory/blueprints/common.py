# writory/blueprints/common.py
"""JSON response helpers shared by the API blueprints."""

from __future__ import annotations

from typing import Any, Dict, Optional, cast

from flask import current_app, g, jsonify, request

_TRUTHY = {"1", "true", "yes", "on", "y"}


def _truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    return str(v).strip().lower() in _TRUTHY


def request_payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data:
        return cast(Dict[str, Any], data)
    if request.form:
        return cast(Dict[str, Any], request.form.to_dict(flat=True))
    return {}


def json_response(payload: Dict[str, Any], status: int = 200):
    resp = jsonify(payload)
    resp.status_code = int(status)
    resp.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
    resp.headers.setdefault("Pragma", "no-cache")
    resp.headers.setdefault("Expires", "0")
    return resp


def json_ok(payload: Optional[Dict[str, Any]] = None, status: int = 200):
    payload = dict(payload or {})
    payload.setdefault("ok", True)
    return json_response(payload, status)


def json_error(message: str, status: int, *, code: Optional[str] = None, **extra: Any):
    err: Dict[str, Any] = {
        "code": code or int(status),
        "message": message,
        "request_id": getattr(g, "request_id", "-"),
    }
    err.update(extra)
    return json_response({"ok": False, "message": message, "error": err}, status)


def base_url() -> str:
    configured = (current_app.config.get("PUBLIC_BASE_URL") or "").strip().rstrip("/")
    if configured:
        return configured
    return (request.host_url or "").rstrip("/")


def int_arg(name: str, default: int, *, lo: int = 1, hi: int = 500) -> int:
    try:
        v = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, v))
