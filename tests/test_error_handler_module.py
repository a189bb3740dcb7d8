import pytest

from error_handler import (
    BusinessLogicError,
    ErrorHandler,
    ValidationError,
    _safe_redirect,
    _scrub_dict,
    handle_business_logic_error,
    handle_generic_error,
    handle_validation_error,
)


@pytest.fixture(autouse=True)
def _reset_debug(app):
    """Detailed output off by default so each test controls it."""
    original_debug = app.debug
    original_setting = app.config.get("SHOW_DETAILED_ERRORS")
    app.debug = False
    app.config["SHOW_DETAILED_ERRORS"] = False
    yield
    app.debug = original_debug
    if original_setting is None:
        app.config.pop("SHOW_DETAILED_ERRORS", None)
    else:
        app.config["SHOW_DETAILED_ERRORS"] = original_setting


def test_problem_response_rfc7807_payload(app):
    with app.test_request_context("/problem", headers={"Accept": "application/json"}):
        response = ErrorHandler.problem_response(
            422,
            "Operación no permitida",
            detail="La tela se usa en una orden",
            extra={"error_id": "abc123"},
        )

    assert response.status_code == 422
    assert response.headers["Content-Type"] == "application/problem+json"
    assert response.get_json() == {
        "type": "about:blank",
        "title": "Operación no permitida",
        "status": 422,
        "instance": "/problem",
        "detail": "La tela se usa en una orden",
        "error_id": "abc123",
    }


def test_problem_response_omits_optional_detail(app):
    with app.test_request_context("/problem-no-detail"):
        response = ErrorHandler.problem_response(404, "Página no encontrada")

    data = response.get_json()
    assert data["status"] == 404
    assert data["instance"] == "/problem-no-detail"
    assert "detail" not in data


def test_wants_json_for_api_paths(app):
    with app.test_request_context("/api/v1/fabrics"):
        assert ErrorHandler.wants_json() is True
    with app.test_request_context("/fabrics/"):
        assert ErrorHandler.wants_json() is False


def test_safe_redirect_follows_referrer(app):
    with app.test_request_context(
        "/clients/", headers={"Referer": "http://localhost/fabrics/"}
    ):
        response = _safe_redirect()

    assert response.status_code == 302
    assert response.headers["Location"] == "http://localhost/fabrics/"


def test_safe_redirect_on_cyclic_referrer_goes_to_login(app):
    with app.test_request_context(
        "/dashboard",
        headers={"Referer": "http://localhost/dashboard"},
    ):
        response = _safe_redirect()

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/auth/login")


def test_validation_error_problem_includes_field(app):
    with app.test_request_context("/orders/new", headers={"Accept": "application/json"}):
        response = handle_validation_error(
            ValidationError("Ingrese el número de lote", field="lot_number")
        )

    assert response.status_code == 400
    data = response.get_json()
    assert data["title"] == "Error de validación"
    assert data["detail"] == "Ingrese el número de lote"
    assert data["field"] == "lot_number"


def test_business_logic_error_redirects_browser(app):
    with app.test_request_context(
        "/clients/1/delete", method="POST", headers={"Referer": "http://localhost/clients/"}
    ):
        response = handle_business_logic_error(BusinessLogicError("No"))

    assert response.status_code == 302
    assert response.headers["Location"] == "http://localhost/clients/"


def test_handle_generic_error_returns_problem_detail_json(app):
    with app.test_request_context(
        "/api/fail",
        headers={"Accept": "application/json"},
    ):
        response = handle_generic_error(RuntimeError("boom"))

    assert response.status_code == 500
    assert response.headers["Content-Type"] == "application/problem+json"
    payload = response.get_json()
    assert payload["title"] == "Ocurrió un error"
    assert "detail" not in payload
    assert payload["status"] == 500
    assert payload["instance"] == "/api/fail"


def test_handle_generic_error_returns_html_page_without_details(app):
    with app.test_request_context("/ui/fail"):
        rendered, status = handle_generic_error(RuntimeError("secreto"))

    assert status == 500
    assert "Ocurrió un error" in rendered
    assert "secreto" not in rendered


def test_handle_generic_error_shows_details_when_enabled(app):
    app.config["SHOW_DETAILED_ERRORS"] = True
    with app.test_request_context("/api/fail", headers={"Accept": "application/json"}):
        response = handle_generic_error(RuntimeError("boom"))

    assert response.get_json()["detail"] == "boom"


def test_scrub_dict_masks_passwords():
    assert _scrub_dict({"username": "ana", "password": "x"}) == {
        "username": "ana",
        "password": "***",
    }
    assert _scrub_dict("plain") == "plain"
