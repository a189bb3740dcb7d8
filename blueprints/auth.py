"""
Login / logout blueprint
"""

import logging
import time
from urllib.parse import urlparse

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask_limiter.util import get_remote_address
from flask_login import current_user, login_required, login_user
from werkzeug.security import check_password_hash

from extensions import limiter
from models import User
from security_utils import safe_log, validate_user_input
from session_security import SessionSecurity, init_session_on_login

auth_bp = Blueprint("auth", __name__)
logger = logging.getLogger(__name__)

# username/IP -> {"count": int, "time": float}
failed_login_attempts = {}
ATTEMPT_WINDOW = 900  # 15 minutes
MAX_FAILED_ATTEMPTS = 5


def login_limit_key():
    """Rate limit key: submitted username, else client IP."""
    return request.form.get("username") or get_remote_address()


def _login_rate_limit():
    return current_app.config.get("LOGIN_RATE_LIMIT", "5 per 15 minutes")


def _is_safe_next(target):
    if not target:
        return False
    parsed = urlparse(target)
    return parsed.netloc == "" and parsed.scheme == "" and target.startswith("/")


@auth_bp.route("/login", methods=["GET", "POST"])
@limiter.limit(_login_rate_limit, key_func=login_limit_key, methods=["POST"])
def login():
    if current_user.is_authenticated:
        return redirect(url_for("main.dashboard"))

    if request.method == "GET":
        return render_template("login.html")

    identifier = login_limit_key()
    now = time.time()
    record = failed_login_attempts.get(identifier)
    if record and now - record["time"] > ATTEMPT_WINDOW:
        failed_login_attempts.pop(identifier, None)
        record = None

    if record and record["count"] >= MAX_FAILED_ATTEMPTS:
        flash("Demasiados intentos fallidos. Intente más tarde.", "danger")
        safe_log(logger, logging.WARNING, f"Login locked for {identifier}")
        return render_template("login.html"), 429

    field_rules = {
        "username": {
            "required": True,
            "max_length": 50,
            "pattern": r"^[a-zA-Z0-9_.-]+$",
        },
        "password": {"required": True, "max_length": 255, "allow_html": True},
    }
    form_data = {
        "username": request.form.get("username", ""),
        "password": request.form.get("password", ""),
    }
    cleaned_data, valid, errors = validate_user_input(form_data, field_rules)
    if not valid:
        for error in errors:
            flash(error, "danger")
        safe_log(logger, logging.WARNING, f"Login validation failed: {errors}")
        return render_template("login.html"), 400

    username = cleaned_data["username"]
    user = User.query.filter_by(username=username).first()
    if not user or not check_password_hash(user.password, form_data["password"]):
        count = (record["count"] if record else 0) + 1
        failed_login_attempts[identifier] = {"count": count, "time": now}
        flash("Usuario o contraseña incorrectos", "danger")
        safe_log(logger, logging.WARNING, f"Login failed for user {username}")
        return render_template("login.html"), 401

    failed_login_attempts.pop(identifier, None)
    login_user(user, remember=True)
    init_session_on_login()

    safe_log(
        logger,
        logging.INFO,
        f"User {username} logged in, session {session.get('session_id')} issued",
    )

    next_page = request.args.get("next")
    if _is_safe_next(next_page):
        return redirect(next_page)
    return redirect(url_for("main.dashboard"))


@auth_bp.route("/logout")
@login_required
def logout():
    username = current_user.username
    session_id = session.get("session_id", "unknown")
    SessionSecurity.invalidate_session()
    safe_log(
        logger,
        logging.INFO,
        f"User {username} logged out, session {session_id} closed",
    )
    flash("Sesión cerrada", "info")
    return redirect(url_for("auth.login"))
