# writory/forms/__init__.py
"""
WTForms for the JSON/multipart API. The wire format is camelCase; forms use
snake_case fields, so ``bind`` maps one onto the other before validation.
"""

from __future__ import annotations

import re
from typing import Optional, Type, TypeVar

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict

from writory.errors import WritoryError

from .contact_form import ContactForm
from .submission_forms import LegacySubmissionForm, SubmissionForm, WallPostForm

F = TypeVar("F", bound=FlaskForm)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def request_data() -> MultiDict:
    """Form fields or JSON body, with keys normalized to snake_case."""
    out: MultiDict = MultiDict()
    payload = request.get_json(silent=True) if request.is_json else None
    if isinstance(payload, dict):
        for k, v in payload.items():
            if isinstance(v, list):
                for item in v:
                    out.add(snake(k), str(item))
            elif v is not None:
                out.add(snake(k), ("y" if v else "") if isinstance(v, bool) else str(v))
    else:
        for k, values in request.form.lists():
            for v in values:
                out.add(snake(k), v)
    return out


def bind(form_cls: Type[F], data: Optional[MultiDict] = None) -> F:
    """Instantiate and validate; raises a 400 WritoryError carrying field errors."""
    form = form_cls(formdata=data if data is not None else request_data(), meta={"csrf": False})
    if not form.validate():
        first = next(iter(form.errors.values()))[0]
        raise WritoryError(first, fields=form.errors)
    return form


__all__ = [
    "ContactForm",
    "LegacySubmissionForm",
    "SubmissionForm",
    "WallPostForm",
    "bind",
    "request_data",
    "snake",
]
