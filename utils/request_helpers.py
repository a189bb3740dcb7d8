"""Request helpers shared by the page blueprints."""

from __future__ import annotations

import math
import re
from datetime import date, datetime

from flask import abort, request

from database import db
from error_handler import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def wants_json() -> bool:
    """AJAX/JSON client: answer with JSON instead of flash + redirect."""
    return (
        request.headers.get("X-Requested-With") == "XMLHttpRequest"
        or request.is_json
        or request.accept_mimetypes.best == "application/json"
    )


def request_data() -> dict:
    """JSON body when present, otherwise the submitted form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict(flat=True)


def text_field(
    data: dict,
    name: str,
    label: str,
    max_length: int,
    required: bool = False,
) -> str | None:
    """Trimmed text value; blank optional fields become ``None``."""
    raw = data.get(name)
    value = str(raw).strip() if raw is not None else ""
    if not value:
        if required:
            raise ValidationError(f"El campo {label} es obligatorio", field=name)
        return None
    if len(value) > max_length:
        raise ValidationError(
            f"El campo {label} es demasiado largo (máximo {max_length} caracteres)",
            field=name,
        )
    # Control characters
    return re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value)


def email_field(data: dict, name: str = "email") -> str | None:
    value = text_field(data, name, "email", 120)
    if value and not EMAIL_RE.match(value):
        raise ValidationError("El email no es válido", field=name)
    return value


def float_field(data: dict, name: str, label: str, default: float = 0.0) -> float:
    """Non-negative float; accepts a decimal comma."""
    raw = str(data.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw.replace(",", "."))
    except ValueError:
        raise ValidationError(f"El campo {label} debe ser un número", field=name)
    if not math.isfinite(value):
        raise ValidationError(f"El campo {label} debe ser un número", field=name)
    if value < 0:
        raise ValidationError(f"El campo {label} no puede ser negativo", field=name)
    return value


def date_field(data: dict, name: str, label: str) -> date:
    """ISO ``YYYY-MM-DD`` date; today when blank."""
    raw = str(data.get(name) or "").strip()
    if not raw:
        return date.today()
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"La fecha {label} no es válida", field=name)


def choice_field(data: dict, name: str, choices, default: str) -> str:
    value = str(data.get(name) or "").strip() or default
    if value not in choices:
        raise ValidationError(f"Valor no permitido: {value}", field=name)
    return value


def get_or_404(model, ident):
    obj = db.session.get(model, ident)
    if obj is None:
        abort(404)
    return obj
