from datetime import date

import pytest
from werkzeug.exceptions import NotFound

from error_handler import ValidationError
from models import Client
from utils import request_helpers


def test_text_field_trims_and_strips_control_chars():
    data = {"name": "  Modas\x07 Ana  ", "empty": "   "}
    assert request_helpers.text_field(data, "name", "nombre", 50) == "Modas Ana"
    assert request_helpers.text_field(data, "empty", "vacío", 50) is None
    assert request_helpers.text_field(data, "missing", "nada", 50) is None


def test_text_field_limits():
    with pytest.raises(ValidationError) as exc:
        request_helpers.text_field({}, "name", "nombre", 10, required=True)
    assert exc.value.message == "El campo nombre es obligatorio"

    with pytest.raises(ValidationError) as exc:
        request_helpers.text_field({"name": "x" * 11}, "name", "nombre", 10)
    assert exc.value.field == "name"


def test_float_field():
    assert request_helpers.float_field({"m": "3,75"}, "m", "metros") == 3.75
    assert request_helpers.float_field({"m": ""}, "m", "metros") == 0.0
    with pytest.raises(ValidationError):
        request_helpers.float_field({"m": "tres"}, "m", "metros")


def test_date_field():
    assert request_helpers.date_field({"d": "2024-02-29"}, "d", "x") == date(2024, 2, 29)
    assert request_helpers.date_field({}, "d", "x") == date.today()
    with pytest.raises(ValidationError):
        request_helpers.date_field({"d": "29/02/2024"}, "d", "x")


def test_choice_field():
    assert request_helpers.choice_field({}, "c", ("a", "b"), "a") == "a"
    with pytest.raises(ValidationError):
        request_helpers.choice_field({"c": "z"}, "c", ("a", "b"), "a")


def test_wants_json_variants(app):
    with app.test_request_context("/", headers={"X-Requested-With": "XMLHttpRequest"}):
        assert request_helpers.wants_json()
    with app.test_request_context("/", json={"a": 1}):
        assert request_helpers.wants_json()
    with app.test_request_context("/", headers={"Accept": "application/json"}):
        assert request_helpers.wants_json()
    with app.test_request_context("/"):
        assert not request_helpers.wants_json()


def test_request_data_prefers_json(app):
    with app.test_request_context("/", method="POST", json={"name": "json"}):
        assert request_helpers.request_data() == {"name": "json"}
    with app.test_request_context("/", method="POST", data={"name": "form"}):
        assert request_helpers.request_data() == {"name": "form"}


def test_get_or_404(app, make_client):
    client = make_client()
    assert request_helpers.get_or_404(Client, client.id) is client
    with pytest.raises(NotFound):
        request_helpers.get_or_404(Client, 999)
