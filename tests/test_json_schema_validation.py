from jsonschema import ValidationError

from validation import json_schema
from validation.schemas import ENDPOINT_SCHEMAS, SCHEMAS


def test_every_endpoint_schema_exists():
    assert set(ENDPOINT_SCHEMAS.values()) <= set(SCHEMAS)


def test_client_schema_allows_csrf_token(admin_client, db):
    resp = admin_client.post(
        "/clients/new", json={"name": "Modas Ana", "csrf_token": "dummy"}
    )
    assert resp.status_code == 201
    assert resp.get_json()["success"]


def test_client_schema_missing_name(admin_client, db):
    resp = admin_client.post("/clients/new", json={"email": "a@b.com"})
    assert resp.status_code == 400
    details = resp.get_json()["details"]
    assert any(d["validator"] == "required" and d["path"] == "$" for d in details)


def test_order_schema_type_error(admin_client, db):
    resp = admin_client.post(
        "/orders/new",
        json={"client_id": "abc", "lot_number": "L", "lines": [{"fabric_id": 1, "meters": 1}]},
    )
    assert resp.status_code == 400
    details = resp.get_json()["details"]
    assert any(d["path"] == "client_id" for d in details)


def test_order_update_schema_enum_error(admin_client, db, make_client, make_fabric, make_order):
    client = make_client()
    order = make_order(client, [(make_fabric(client=client), 1)])

    resp = admin_client.post(
        f"/orders/{order.id}/edit",
        json={"lot_number": "L", "client_id": client.id, "status": "archived"},
    )
    assert resp.status_code == 400
    details = resp.get_json()["details"]
    assert any(d["validator"] == "enum" for d in details)


def test_form_posts_are_not_schema_checked(admin_client, db):
    resp = admin_client.post("/clients/new", data={"name": "Form", "extra": "x"})
    assert resp.status_code == 302


def test_anonymous_requests_reach_login_redirect(client):
    resp = client.post("/clients/new", json={"bad": True})
    assert resp.status_code == 401


def test_json_schemas_validator_reports_errors():
    validator = json_schema.JSONSchemasValidator(
        {
            "demo": {
                "type": "object",
                "properties": {"count": {"type": "integer"}},
                "required": ["count"],
            }
        }
    )

    errors = validator.validate("demo", {"count": "cinco"})

    assert errors
    assert errors[0].validator == "type"


def test_json_schemas_validator_returns_empty_for_unknown_schema():
    validator = json_schema.JSONSchemasValidator({})

    assert validator.validate("missing", {}) == []


def test_format_errors_provides_paths():
    error = ValidationError(
        "Tipo inválido",
        validator="type",
        path=("lines", 0, "meters"),
        schema_path=("properties", "lines", "items", "properties", "meters", "type"),
    )

    assert json_schema.format_errors([error]) == [
        {
            "path": "lines/0/meters",
            "message": "Tipo inválido",
            "validator": "type",
            "schema_path": "properties/lines/items/properties/meters/type",
        }
    ]


def test_validate_payload_accepts_valid_order():
    payload = {
        "client_id": 1,
        "lot_number": "OC240315042",
        "lines": [{"fabric_id": "7", "meters": "2,5", "remarks": None}],
        "garments": [{"name": "Camisa", "sizes": [{"size": "M", "quantity": 3}]}],
    }
    assert json_schema.validate_payload("order_create", payload) == []


def test_order_schema_caps_quantity():
    payload = {
        "client_id": 1,
        "lot_number": "OC240315042",
        "lines": [{"fabric_id": 7, "meters": 1}],
        "garments": [
            {"name": "Camisa", "sizes": [{"size": "S", "quantity": 10**23}]}
        ],
    }
    errors = json_schema.validate_payload("order_create", payload)
    assert [e["validator"] for e in errors] == ["maximum"]
