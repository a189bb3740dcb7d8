"""
JSON body validation against JSON Schema (draft 2020-12).

Endpoints listed in ``validation.schemas.ENDPOINT_SCHEMAS`` get their JSON
body checked before the view runs; a mismatch answers HTTP 400 with the
error details.
"""

from __future__ import annotations

from typing import Any, Dict, List

from flask import jsonify, request
from flask_login import current_user
from jsonschema import Draft202012Validator, ValidationError

from .schemas import ENDPOINT_SCHEMAS, SCHEMAS


class JSONSchemasValidator:
    """Compiles named schemas once and validates data against them."""

    def __init__(self, schemas: Dict[str, Dict[str, Any]]):
        self._compiled: Dict[str, Draft202012Validator] = {
            name: Draft202012Validator(schema) for name, schema in schemas.items()
        }

    def validate(self, schema_key: str, data: Any) -> List[ValidationError]:
        validator = self._compiled.get(schema_key)
        if not validator:
            return []
        return sorted(validator.iter_errors(data), key=lambda e: list(e.path))


_validator = JSONSchemasValidator(SCHEMAS)


def format_errors(errors: List[ValidationError]) -> List[Dict[str, Any]]:
    return [
        {
            "path": "/".join(map(str, e.path)) or "$",
            "message": e.message,
            "validator": e.validator,
            "schema_path": "/".join(map(str, e.schema_path)),
        }
        for e in errors
    ]


def validate_payload(schema_key: str, data: Any) -> List[Dict[str, Any]]:
    """Formatted errors of ``data`` against ``schema_key`` (empty when valid)."""
    return format_errors(_validator.validate(schema_key, data))


def init_json_validation(app) -> None:
    """Register the ``before_request`` hook.

    Runs only when the (endpoint, method) pair is mapped, the body is JSON
    and the user is authenticated, so ``login_required`` redirects win.
    """

    @app.before_request
    def _validate_json_before_view():
        schema_key = ENDPOINT_SCHEMAS.get(
            (request.endpoint or "", request.method.upper())
        )
        if not schema_key:
            return None

        if not current_user.is_authenticated:
            return None

        data = request.get_json(silent=True)
        # Form posts are validated by the view itself
        if data is None:
            return None

        details = validate_payload(schema_key, data)
        if details:
            return (
                jsonify({"error": "Error de validación JSON", "details": details}),
                400,
            )
        return None
