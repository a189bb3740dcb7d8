"""
JSON Schema (draft 2020-12) for the JSON request bodies.

- client create / update
- cutting order create
- cutting order update
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from utils.cutting_orders import MAX_QUANTITY
from utils.statuses import OrderStatus

SCHEMA_URI = "https://json-schema.org/draft/2020-12/schema"

_ID = {"type": ["integer", "string"], "pattern": r"^\d+$", "minimum": 1}
_OPTIONAL_TEXT = {"type": ["string", "null"], "maxLength": 2000}
_CSRF = {"type": "string", "description": "CSRF token"}


def _client_schema() -> Dict[str, Any]:
    return {
        "$schema": SCHEMA_URI,
        "type": "object",
        "additionalProperties": False,
        "required": ["name"],
        "properties": {
            "name": {"type": "string", "minLength": 1, "maxLength": 200},
            "email": {"type": ["string", "null"], "maxLength": 120},
            "phone": {"type": ["string", "null"], "maxLength": 40},
            "address": {"type": ["string", "null"], "maxLength": 300},
            "notes": _OPTIONAL_TEXT,
            "csrf_token": _CSRF,
        },
    }


def build_schemas() -> Dict[str, Dict[str, Any]]:
    """Schemas by key."""
    return {
        "client_create": _client_schema(),
        "client_update": _client_schema(),
        "order_create": {
            "$schema": SCHEMA_URI,
            "type": "object",
            "additionalProperties": False,
            "required": ["client_id", "lot_number", "lines"],
            "properties": {
                "client_id": _ID,
                "lot_number": {"type": "string", "minLength": 1, "maxLength": 50},
                "notes": _OPTIONAL_TEXT,
                "lines": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["fabric_id", "meters"],
                        "properties": {
                            "fabric_id": _ID,
                            "meters": {
                                "type": ["number", "string"],
                                "exclusiveMinimum": 0,
                            },
                            "remarks": _OPTIONAL_TEXT,
                        },
                    },
                },
                "garments": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["name"],
                        "properties": {
                            "name": {"type": "string", "minLength": 1, "maxLength": 120},
                            "sizes": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "additionalProperties": False,
                                    "required": ["size", "quantity"],
                                    "properties": {
                                        "size": {
                                            "type": "string",
                                            "minLength": 1,
                                            "maxLength": 20,
                                        },
                                        "quantity": {
                                            "type": "integer",
                                            "minimum": 0,
                                            "maximum": MAX_QUANTITY,
                                        },
                                    },
                                },
                            },
                        },
                    },
                },
                "csrf_token": _CSRF,
            },
        },
        "order_update": {
            "$schema": SCHEMA_URI,
            "type": "object",
            "additionalProperties": False,
            "required": ["lot_number", "client_id", "status"],
            "properties": {
                "lot_number": {"type": "string", "minLength": 1, "maxLength": 50},
                "client_id": _ID,
                "status": {"type": "string", "enum": OrderStatus.all()},
                "notes": _OPTIONAL_TEXT,
                "csrf_token": _CSRF,
            },
        },
    }


SCHEMAS: Dict[str, Dict[str, Any]] = build_schemas()

# (endpoint, method) -> schema key
ENDPOINT_SCHEMAS: Dict[Tuple[str, str], str] = {
    ("clients.create_client", "POST"): "client_create",
    ("clients.edit_client", "POST"): "client_update",
    ("orders.create_order", "POST"): "order_create",
    ("orders.edit_order", "POST"): "order_update",
}
