# writory/services/__init__.py
"""Per-app service instances, stored in ``app.extensions``."""

from __future__ import annotations

from functools import partial

from flask import Flask

from .drive import DriveUploader
from .google import DRIVE_SCOPE, SHEETS_SCOPE, build_session
from .payments import PaymentService
from .sheets import SheetsClient


def init_services(app: Flask) -> None:
    cfg = app.config
    demo = bool(cfg.get("DEMO_MODE", False))
    key = cfg.get("GOOGLE_SERVICE_ACCOUNT_JSON", "")
    timeout = int(cfg.get("GOOGLE_TIMEOUT", 30))

    app.extensions["writory.drive"] = DriveUploader(
        partial(build_session, key, [DRIVE_SCOPE]),
        cfg.get("GOOGLE_DRIVE_PARENT_FOLDER_ID", ""),
        timeout=timeout,
        demo=demo,
    )
    app.extensions["writory.sheets"] = SheetsClient(
        partial(build_session, key, [SHEETS_SCOPE]),
        cfg.get("GOOGLE_SHEET_ID", ""),
        timeout=timeout,
        demo=demo,
    )
    app.extensions["writory.payments"] = PaymentService.from_config(cfg)

    if demo:
        app.logger.warning("DEMO_MODE on: Drive, Sheets, Stripe and PayPal calls are simulated")
