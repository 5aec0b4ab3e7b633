"""Contact form endpoint: stored first, then mirrored to the Contacts sheet."""

from __future__ import annotations

from flask import Blueprint, current_app

from writory.extensions import csrf, db, tx_commit
from writory.forms import ContactForm, bind
from writory.models import Contact
from writory.services import sheets

from .common import json_ok

bp = Blueprint("contact", __name__)
csrf.exempt(bp)


@bp.post("/contact")
def submit_contact():
    form = bind(ContactForm)
    contact = Contact(
        name=form.name.data.strip(),
        email=form.email.data.strip().lower(),
        phone=(form.phone.data or "").strip() or None,
        subject=(form.subject.data or "").strip() or None,
        message=form.message.data.strip(),
    )
    db.session.add(contact)
    db.session.flush()
    sheets.enqueue(sheets.CONTACTS_SHEET, sheets.contact_rows(contact))
    tx_commit()
    current_app.logger.info("Contact message %s from %s", contact.id, contact.email)

    sheets.schedule_flush()
    return json_ok({"success": True, "id": contact.id, "message": "Thanks! We'll get back to you soon."}, 201)
