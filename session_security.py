"""
Session hardening: fingerprinting, expiry and strict checks on the
endpoints that destroy data.
"""

import hashlib
import ipaddress
import logging
import secrets
from datetime import datetime, timedelta

from flask import abort, current_app, request, session
from flask_login import current_user, logout_user

from security_utils import safe_log

# Permanent deletions and removals get a strict session check
SENSITIVE_ENDPOINTS = {
    "clients.delete_client",
    "fabrics.delete_fabric",
    "recycle.purge_fabric",
    "orders.delete_order",
    "orders.delete_line",
}

MAX_SESSION_AGE = timedelta(days=7)
INACTIVITY_TIMEOUT = timedelta(hours=24)


class SessionSecurity:
    @staticmethod
    def get_client_fingerprint():
        """Hash of the stable request headers."""
        user_agent = request.headers.get("User-Agent", "")
        accept_language = request.headers.get("Accept-Language", "")
        fingerprint_data = f"{user_agent}:{accept_language}"
        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @staticmethod
    def get_client_ip():
        """Real client IP, honouring proxy headers."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.remote_addr

    @staticmethod
    def is_ip_subnet_match(ip1, ip2, subnet_mask=24):
        try:
            network1 = ipaddress.ip_network(f"{ip1}/{subnet_mask}", strict=False)
            network2 = ipaddress.ip_network(f"{ip2}/{subnet_mask}", strict=False)
            return network1 == network2
        except ValueError:
            return ip1 == ip2

    @staticmethod
    def init_secure_session():
        now = datetime.utcnow().isoformat()
        session["session_id"] = secrets.token_hex(16)
        session["created_at"] = now
        session["last_activity"] = now
        session["client_ip"] = SessionSecurity.get_client_ip()
        session["client_fingerprint"] = SessionSecurity.get_client_fingerprint()

        safe_log(
            current_app.logger,
            logging.DEBUG,
            f"Secure session initialized: {session['session_id']}",
        )

    @staticmethod
    def _expired(key, max_age):
        value = session.get(key)
        if not value:
            return False
        try:
            stamp = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            current_app.logger.warning(f"Invalid session timestamp: {key}")
            return True
        return datetime.utcnow() - stamp > max_age

    @staticmethod
    def validate_session():
        """
        Validate the session of the current request.

        Sessions without ``session_id`` have not been initialised yet and are
        accepted. IP drift inside a /20 and fingerprint changes are only logged.
        """
        if not session.get("session_id"):
            return True

        stored_ip = session.get("client_ip")
        current_ip = SessionSecurity.get_client_ip()
        if stored_ip and current_ip:
            if not SessionSecurity.is_ip_subnet_match(
                stored_ip, current_ip, subnet_mask=20
            ):
                current_app.logger.warning(
                    f"IP mismatch (soft): stored={stored_ip}, current={current_ip}"
                )
                session["client_ip"] = current_ip

        stored_fingerprint = session.get("client_fingerprint")
        current_fingerprint = SessionSecurity.get_client_fingerprint()
        if stored_fingerprint and stored_fingerprint != current_fingerprint:
            current_app.logger.warning("Client fingerprint mismatch, updating")
            session["client_fingerprint"] = current_fingerprint

        if SessionSecurity._expired("created_at", MAX_SESSION_AGE):
            safe_log(current_app.logger, logging.WARNING, "Session expired due to age")
            return False

        if SessionSecurity._expired("last_activity", INACTIVITY_TIMEOUT):
            safe_log(
                current_app.logger,
                logging.WARNING,
                "Session expired due to inactivity",
            )
            return False

        return True

    @staticmethod
    def update_session_activity():
        session["last_activity"] = datetime.utcnow().isoformat()

    @staticmethod
    def invalidate_session():
        session_id = session.get("session_id", "unknown")
        safe_log(
            current_app.logger, logging.INFO, f"Invalidating session: {session_id}"
        )
        session.clear()
        if current_user.is_authenticated:
            logout_user()


def init_session_on_login():
    """Start a fresh secure session after a successful login."""
    SessionSecurity.init_secure_session()


def validate_session_on_request():
    """Strict session check, only for destructive endpoints."""
    if not current_user.is_authenticated:
        return None

    if request.method == "GET" or request.endpoint not in SENSITIVE_ENDPOINTS:
        return None

    if not SessionSecurity.validate_session():
        current_app.logger.warning("Session validation failed on sensitive endpoint")
        SessionSecurity.invalidate_session()
        return abort(401)

    SessionSecurity.update_session_activity()
    return None


def setup_session_security(app):
    app.config.setdefault("SESSION_COOKIE_HTTPONLY", True)
    app.config.setdefault("SESSION_COOKIE_SAMESITE", "Lax")

    @app.before_request
    def validate_session():
        return validate_session_on_request()

    app.logger.info("Session security configured")
