"""Session hardening checks."""

import hashlib
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from flask import session
from werkzeug.exceptions import Unauthorized

import session_security
from session_security import SessionSecurity, validate_session_on_request


def _expected_fingerprint(user_agent: str, accept_language: str) -> str:
    raw = f"{user_agent}:{accept_language}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


def test_get_client_fingerprint_uses_stable_headers(app):
    headers = {"User-Agent": "TestBrowser/1.0", "Accept-Language": "es-AR,es"}

    with app.test_request_context("/", headers=headers):
        fingerprint = SessionSecurity.get_client_fingerprint()

    assert fingerprint == _expected_fingerprint("TestBrowser/1.0", "es-AR,es")


def test_get_client_ip_prefers_forwarded_for(app):
    headers = {
        "X-Forwarded-For": "198.51.100.10, 203.0.113.5",
        "X-Real-IP": "203.0.113.100",
    }

    with app.test_request_context(
        "/", headers=headers, environ_base={"REMOTE_ADDR": "192.0.2.1"}
    ):
        assert SessionSecurity.get_client_ip() == "198.51.100.10"


def test_is_ip_subnet_match():
    assert SessionSecurity.is_ip_subnet_match("10.0.0.1", "10.0.0.200")
    assert not SessionSecurity.is_ip_subnet_match("10.0.0.1", "10.0.1.1")
    assert SessionSecurity.is_ip_subnet_match("bogus", "bogus")


def test_validate_session_without_id_is_accepted(app):
    with app.test_request_context("/dashboard"):
        assert SessionSecurity.validate_session() is True


def test_validate_session_updates_ip_and_fingerprint_on_change(app):
    headers = {"User-Agent": "NewAgent/5.0", "Accept-Language": "es"}

    with app.test_request_context(
        "/dashboard",
        headers=headers,
        environ_base={"REMOTE_ADDR": "203.0.113.55"},
    ):
        session["session_id"] = "abc123"
        session["client_ip"] = "10.0.0.1"
        session["client_fingerprint"] = _expected_fingerprint("OldAgent", "es")
        session["created_at"] = datetime.utcnow().isoformat()
        session["last_activity"] = datetime.utcnow().isoformat()

        assert SessionSecurity.validate_session() is True
        assert session["client_ip"] == "203.0.113.55"
        assert session["client_fingerprint"] == _expected_fingerprint(
            "NewAgent/5.0", "es"
        )


def test_validate_session_detects_inactivity_timeout(app):
    with app.test_request_context(
        "/clients/", environ_base={"REMOTE_ADDR": "192.0.2.15"}
    ):
        session["session_id"] = "inactive"
        session["client_ip"] = "192.0.2.15"
        session["created_at"] = datetime.utcnow().isoformat()
        session["last_activity"] = (datetime.utcnow() - timedelta(days=2)).isoformat()

        assert SessionSecurity.validate_session() is False


def test_validate_session_detects_max_age(app):
    with app.test_request_context("/clients/"):
        session["session_id"] = "old"
        session["created_at"] = "2000-01-01T00:00:00"
        session["last_activity"] = datetime.utcnow().isoformat()

        assert SessionSecurity.validate_session() is False


def test_sensitive_endpoint_aborts_when_validation_fails(app, monkeypatch):
    monkeypatch.setattr(
        SessionSecurity, "validate_session", staticmethod(lambda: False)
    )
    invalidate_mock = MagicMock()
    monkeypatch.setattr(
        SessionSecurity, "invalidate_session", staticmethod(invalidate_mock)
    )
    monkeypatch.setattr(
        session_security, "current_user", MagicMock(is_authenticated=True)
    )

    with app.test_request_context("/fabrics/1/delete", method="POST"):
        with pytest.raises(Unauthorized):
            validate_session_on_request()

    invalidate_mock.assert_called_once()


def test_sensitive_endpoint_updates_activity(app, monkeypatch):
    monkeypatch.setattr(SessionSecurity, "validate_session", staticmethod(lambda: True))
    monkeypatch.setattr(
        session_security, "current_user", MagicMock(is_authenticated=True)
    )

    with app.test_request_context("/orders/1/delete", method="POST"):
        session["last_activity"] = "2000-01-01T00:00:00"
        assert validate_session_on_request() is None
        assert session["last_activity"] != "2000-01-01T00:00:00"


def test_regular_endpoints_skip_validation(app, monkeypatch):
    validate = MagicMock(return_value=False)
    monkeypatch.setattr(SessionSecurity, "validate_session", staticmethod(validate))
    monkeypatch.setattr(
        session_security, "current_user", MagicMock(is_authenticated=True)
    )

    with app.test_request_context("/clients/new", method="POST"):
        assert validate_session_on_request() is None
    with app.test_request_context("/fabrics/1/delete", method="GET"):
        assert validate_session_on_request() is None

    validate.assert_not_called()


def test_login_initialises_secure_session(admin_client):
    with admin_client.session_transaction() as sess:
        assert sess.get("session_id")
        assert sess.get("client_fingerprint")
        assert sess.get("created_at")
