import json
import logging
import logging.config
import os
import time
import uuid
from datetime import datetime, timedelta

from flask import Flask, flash, g, jsonify, redirect, request, url_for
from flask_login import LoginManager, current_user
from flask_wtf.csrf import CSRFError, CSRFProtect, generate_csrf
from werkzeug.security import generate_password_hash

from flask_session import Session

from config import get_config
from database import db
from extensions import limiter
from scripts.cleanup import register_cleanup_commands
from security_utils import safe_log

SENSITIVE_KEYS = {"password", "passwd", "pwd", "token", "csrf_token", "new_password"}


def _scrub(d):
    if not isinstance(d, dict):
        return d
    return {k: "***" if k.lower() in SENSITIVE_KEYS else v for k, v in d.items()}


# ------------------ Application ------------------
app = Flask(__name__)

config_class = get_config()
app.config.from_object(config_class)

if not app.config.get("SQLALCHEMY_DATABASE_URI"):
    instance_dir = os.path.join(app.root_path, "instance")
    os.makedirs(instance_dir, exist_ok=True)
    app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///" + os.path.join(
        instance_dir, "telas.db"
    )

if not app.config.get("UPLOAD_FOLDER"):
    app.config["UPLOAD_FOLDER"] = os.path.join(app.root_path, "static", "uploads")

config_class.init_app(app)


# ------------------ Logging ------------------
os.makedirs("logs", exist_ok=True)
log_level = str(app.config.get("LOGGING_LEVEL", "INFO")).upper()

# passenger_wsgi may import the module twice
if not getattr(app, "_logging_configured", False):
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": (
                        "%(asctime)s %(levelname)s %(name)s: %(message)s "
                        "[in %(pathname)s:%(lineno)d]"
                    )
                },
                "audit_json": {"format": "%(message)s"},
            },
            "handlers": {
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": "logs/app.log",
                    "maxBytes": 10 * 1024 * 1024,
                    "backupCount": 10,
                    "formatter": "default",
                    "level": log_level,
                },
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.__stdout__",
                    "formatter": "default",
                    "level": log_level,
                },
                "audit_file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": "logs/audit.log",
                    "maxBytes": 10 * 1024 * 1024,
                    "backupCount": 20,
                    "formatter": "audit_json",
                    "level": "INFO",
                },
            },
            "loggers": {
                "audit": {
                    "level": "INFO",
                    "handlers": ["audit_file"],
                    "propagate": False,
                }
            },
            "root": {"level": log_level, "handlers": ["file", "console"]},
        }
    )

    app.logger.handlers = logging.getLogger().handlers
    app.logger.setLevel(log_level)
    app.logger.propagate = False
    app._logging_configured = True

audit_logger = logging.getLogger("audit")
app.logger.info("Telas startup")


# ------------------ Extensions ------------------
db.init_app(app)
from models import User  # noqa: E402

Session(app)
csrf = CSRFProtect(app)

app.config["RATELIMIT_DEFAULT"] = app.config.get("RATE_LIMIT_DEFAULT", "300/hour")
if not app.config.get("RATELIMIT_STORAGE_URL"):
    app.logger.warning(
        "RATELIMIT_STORAGE_URL not set, rate limits are kept in memory"
    )
    app.config["RATELIMIT_STORAGE_URL"] = "memory://"
# Flask-Limiter 3 reads the *_URI spelling
app.config["RATELIMIT_STORAGE_URI"] = app.config["RATELIMIT_STORAGE_URL"]
try:
    limiter.init_app(app)
except Exception as _limiter_err:  # noqa: BLE001
    app.logger.warning(
        f"Limiter init failed: {_limiter_err}. Falling back to in-memory backend."
    )
    app.config["RATELIMIT_STORAGE_URL"] = "memory://"
    app.config["RATELIMIT_STORAGE_URI"] = "memory://"
    limiter.init_app(app)

login_manager = LoginManager(app)
login_manager.login_view = "auth.login"
login_manager.login_message = "Inicie sesión para continuar"
login_manager.remember_cookie_duration = timedelta(days=30)

register_cleanup_commands(app)

app.logger.info(f"Session type: {app.config.get('SESSION_TYPE')}")
app.logger.info(f"Limiter backend: {app.config.get('RATELIMIT_STORAGE_URL')}")


# ------------------ Template helpers ------------------
from utils.statuses import (  # noqa: E402
    FabricCategory,
    FabricPattern,
    OrderStatus,
    get_category_label,
    get_pattern_label,
    get_status_class,
    get_status_label,
)
from utils.storage import public_url  # noqa: E402

with open(os.path.join(os.path.dirname(__file__), "VERSION"), encoding="utf-8") as f:
    APP_VERSION = f.read().strip()


@app.context_processor
def inject_helpers():
    return {
        "status_label": get_status_label,
        "status_class": get_status_class,
        "category_label": get_category_label,
        "pattern_label": get_pattern_label,
        "image_url": public_url,
        "order_statuses": OrderStatus.all(),
        "fabric_categories": FabricCategory.all(),
        "fabric_patterns": FabricPattern.all(),
        "APP_VERSION": APP_VERSION,
    }


@app.template_filter("date_es")
def date_es(value):
    return value.strftime("%d/%m/%Y") if value else ""


@app.template_global()
def csrf_token():
    return generate_csrf()


@app.get("/healthz")
def healthz():
    return "OK", 200


# ------------------ Request / response logging ------------------
@app.before_request
def log_request_info():
    g.request_start = time.time()
    g.request_id = str(uuid.uuid4())
    user = current_user.username if current_user.is_authenticated else "anonymous"
    params = request.values.to_dict(flat=True)
    json_body = request.get_json(silent=True) if request.is_json else None

    safe_log(
        app.logger,
        logging.INFO,
        (
            f"Request {request.method} {request.path} from {request.remote_addr} ",
            f"user={user} params={_scrub(params)}",
        ),
    )

    audit_event = {
        "type": "request",
        "ts": time.time(),
        "ts_iso": datetime.utcnow().isoformat() + "Z",
        "request_id": g.request_id,
        "user": user,
        "ip": request.remote_addr,
        "method": request.method,
        "path": request.path,
        "query": _scrub(params),
        "json": _scrub(json_body) if isinstance(json_body, dict) else None,
        "user_agent": request.headers.get("User-Agent"),
    }
    audit_logger.info(json.dumps(audit_event, ensure_ascii=False, default=str))


@app.after_request
def log_response_info(response):
    duration = time.time() - g.get("request_start", time.time())
    user = current_user.username if current_user.is_authenticated else "anonymous"
    safe_log(
        app.logger,
        logging.INFO,
        (
            f"Response {response.status_code} for {request.method} {request.path} ",
            f"user={user} time={duration:.3f}s",
        ),
    )

    audit_event = {
        "type": "response",
        "ts": time.time(),
        "ts_iso": datetime.utcnow().isoformat() + "Z",
        "request_id": g.get("request_id"),
        "user": user,
        "status": response.status_code,
        "path": request.path,
        "method": request.method,
        "duration_ms": int(duration * 1000),
    }
    audit_logger.info(json.dumps(audit_event, ensure_ascii=False))
    return response


@app.errorhandler(CSRFError)
def handle_csrf_error(e):
    app.logger.warning(f"CSRF error from {request.remote_addr}: {e.description}")
    if request.headers.get("X-Requested-With") == "XMLHttpRequest" or request.is_json:
        return (
            jsonify(
                {
                    "error": "El token CSRF no es válido. Recargue la página.",
                    "csrf_error": True,
                }
            ),
            400,
        )
    flash("El token CSRF no es válido. Recargue la página.", "danger")
    if request.referrer and request.referrer != request.url:
        return redirect(request.referrer)
    return redirect(url_for("main.dashboard"))


@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    app.logger.warning(f"Unauthorized access attempt to {request.path}")
    if request.path.startswith("/api/") or request.is_json:
        return jsonify({"error": "Se requiere iniciar sesión"}), 401
    return redirect(url_for("auth.login", next=request.full_path.rstrip("?")))


# ------------------ Database / bootstrap ------------------
def ensure_admin_user():
    """Create the bootstrap account from ADMIN_USERNAME / ADMIN_PASSWORD."""
    username = app.config.get("ADMIN_USERNAME")
    password = app.config.get("ADMIN_PASSWORD")
    if not username or not password:
        return None
    user = User.query.filter_by(username=username).first()
    if user is None:
        user = User(
            username=username,
            password=generate_password_hash(password),
            role="admin",
        )
        db.session.add(user)
        db.session.commit()
        app.logger.info(f"Bootstrap admin {username} created")
    return user


with app.app_context():
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
    db.create_all()
    ensure_admin_user()


# ------------------ Blueprints ------------------
blueprints = [
    ("blueprints.auth", "auth_bp", "/auth"),
    ("routes.main_routes", "main_bp", ""),
    ("routes.client_routes", "client_bp", "/clients"),
    ("routes.fabric_routes", "fabric_bp", "/fabrics"),
    ("routes.recycle_routes", "recycle_bp", "/recycle-bin"),
    ("routes.order_routes", "order_bp", "/orders"),
    ("routes.api.v1", "api_v1_bp", "/api/v1"),
]

for module, bp_name, prefix in blueprints:
    mod = __import__(module, fromlist=[bp_name])
    app.register_blueprint(getattr(mod, bp_name), url_prefix=prefix)
    safe_log(
        app.logger,
        logging.INFO,
        f"Registered blueprint {bp_name} at {prefix or '/'}",
    )

from error_handler import register_error_handlers  # noqa: E402
from session_security import setup_session_security  # noqa: E402
from validation.json_schema import init_json_validation  # noqa: E402

register_error_handlers(app)
setup_session_security(app)
init_json_validation(app)


if __name__ == "__main__":
    app.logger.info("Starting Flask development server...")
    app.run(
        host=app.config.get("APP_HOST", "127.0.0.1"),
        port=app.config.get("APP_PORT", 5000),
        debug=app.config.get("DEBUG", True),
    )
