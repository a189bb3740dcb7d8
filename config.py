# -*- coding: utf-8 -*-
"""Flask application configuration: .env loading, DB pool, optional Redis."""

from __future__ import annotations

import logging
import os
import secrets
from datetime import timedelta
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import find_dotenv, load_dotenv
from flask import redirect, request

# ------------------------------ .env loading ---------------------------------

_THIS_FILE = Path(__file__).resolve()
_DEFAULT_DOTENV_DIR = _THIS_FILE.parent
_ENV_EXPLICIT = os.environ.get("ENV_FILE")
_loaded = False

if _ENV_EXPLICIT:
    _loaded = load_dotenv(dotenv_path=_ENV_EXPLICIT)

if not _loaded:
    _loaded = load_dotenv(dotenv_path=_DEFAULT_DOTENV_DIR / ".env")

if not _loaded:
    load_dotenv(find_dotenv(usecwd=True))


# ------------------------------ .env helpers ---------------------------------


def env(name: str, default: str | None = None) -> str | None:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


# ------------------------------ Feature flags --------------------------------

# Tracebacks in error responses
SHOW_DETAILED_ERRORS = os.getenv("SHOW_DETAILED_ERRORS", "false").lower() == "true"
# When False, tokens, e-mails and phones are masked in the logs
LOG_SENSITIVE = os.getenv("LOG_SENSITIVE", "false").lower() == "true"


# ------------------------------ Redis helper ---------------------------------


def _connect_redis(
    app, url: str, session_dir: str | None = None, raise_on_fail: bool = False
) -> bool:
    """Connect to Redis when a URL is configured, otherwise return False."""
    if not url:
        app.config["REDIS_AVAILABLE"] = False
        return False
    try:
        import redis

        client = redis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
        client.ping()
        app.config["SESSION_TYPE"] = env("SESSION_TYPE", "redis")
        app.config["SESSION_REDIS"] = client
        app.config["REDIS_AVAILABLE"] = True
        app.logger.info(f"Redis connected: {url}")
        return True
    except Exception as e:  # noqa: BLE001
        app.logger.warning(f"Redis unavailable: {e} ({url})")
        app.config["REDIS_AVAILABLE"] = False
        app.config["SESSION_TYPE"] = env("SESSION_TYPE", "filesystem")
        if session_dir:
            os.makedirs(session_dir, exist_ok=True)
        if raise_on_fail:
            raise
        return False


# ------------------------------ Base config ----------------------------------


class Config:
    """Settings shared by every environment."""

    _default_secret_key = secrets.token_hex(32)
    SECRET_KEY = env("SECRET_KEY", _default_secret_key)

    SHOW_DETAILED_ERRORS = SHOW_DETAILED_ERRORS
    LOG_SENSITIVE = LOG_SENSITIVE

    # Flask / SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = _bool(env("SQLALCHEMY_ECHO"), False)
    MAX_CONTENT_LENGTH = 20 * 1024 * 1024  # 20MB
    PROPAGATE_EXCEPTIONS = True

    SQLALCHEMY_ENGINE_OPTIONS: dict = {}

    # Sessions
    SESSION_TYPE = env("SESSION_TYPE", "filesystem")  # 'redis' / 'filesystem'
    SESSION_COOKIE_NAME = env("SESSION_COOKIE_NAME", "session")
    SESSION_COOKIE_HTTPONLY = _bool(env("SESSION_COOKIE_HTTPONLY"), True)
    SESSION_COOKIE_SAMESITE = env("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_USE_SIGNER = _bool(env("SESSION_USE_SIGNER"), True)
    SESSION_COOKIE_SECURE = _bool(env("SESSION_COOKIE_SECURE"), False)
    PERMANENT_SESSION_LIFETIME = timedelta(days=1)

    LOGGING_LEVEL = env("LOG_LEVEL", "INFO")

    APP_HOST = env("APP_HOST", "127.0.0.1")
    APP_PORT = int(env("APP_PORT", 5000))

    # CSRF
    WTF_CSRF_ENABLED = _bool(env("WTF_CSRF_ENABLED"), True)
    WTF_CSRF_FIELD_NAME = "csrf_token"
    WTF_CSRF_TIME_LIMIT = int(env("CSRF_TIMEOUT", "86400"))
    WTF_CSRF_SSL_STRICT = True

    # HTTPS / headers
    SECURITY_HEADERS = False
    FORCE_HTTPS = False
    PREFERRED_URL_SCHEME = env("PREFERRED_URL_SCHEME", "http")
    HSTS_ENABLED = _bool(env("HSTS_ENABLED"), False)
    HSTS_MAX_AGE = int(env("HSTS_MAX_AGE", "31536000"))

    # Flask-Limiter
    RATELIMIT_STORAGE_URL = env("RATELIMIT_STORAGE_URL")
    RATELIMIT_HEADERS_ENABLED = _bool(env("RATELIMIT_HEADERS_ENABLED"), True)
    RATE_LIMIT_DEFAULT = env("RATE_LIMIT_DEFAULT", "300/hour")
    LOGIN_RATE_LIMIT = env("LOGIN_RATE_LIMIT", "5 per 15 minutes")

    # Fabric images
    UPLOAD_FOLDER = env("UPLOAD_FOLDER")
    MAX_IMAGE_SIZE = int(env("MAX_IMAGE_SIZE", str(5 * 1024 * 1024)))

    # Recycle bin retention for `flask cleanup:recycle-bin`
    RECYCLE_BIN_DAYS = int(env("RECYCLE_BIN_DAYS", "30"))

    # Prefix added to local phone numbers in WhatsApp links (e.g. "54")
    PHONE_COUNTRY_CODE = env("PHONE_COUNTRY_CODE", "")

    # Bootstrap account created on startup when both are set
    ADMIN_USERNAME = env("ADMIN_USERNAME")
    ADMIN_PASSWORD = env("ADMIN_PASSWORD")

    # ----------------------------- DB URI ------------------------------------

    @staticmethod
    def _build_database_uri(default_sqlite: bool = False) -> str | None:
        """Build SQLALCHEMY_DATABASE_URI from the environment."""
        db_type = env("DB_TYPE")
        if not db_type:
            if default_sqlite:
                base = env(
                    "SQLITE_DIR", str((_THIS_FILE.parent / "instance").resolve())
                )
                path = Path(base) / "telas.db"
                path.parent.mkdir(parents=True, exist_ok=True)
                return f"sqlite:///{path}"
            return None

        t = db_type.lower().strip()

        if t == "mysql":
            user = quote_plus(env("DB_USER", ""))
            password = quote_plus(env("DB_PASSWORD", ""))
            host = env("DB_HOST", "")
            port = env("DB_PORT", "3306")
            name = env("DB_NAME", "")
            if not all([user, password, host, name]):
                raise RuntimeError(
                    "MySQL connection settings missing "
                    "(DB_USER/DB_PASSWORD/DB_HOST/DB_NAME)"
                )
            return f"mysql+pymysql://{user}:{password}@{host}:{port}/{name}?charset=utf8mb4"

        if t in ("postgres", "postgresql"):
            user = quote_plus(env("DB_USER", ""))
            password = quote_plus(env("DB_PASSWORD", ""))
            host = env("DB_HOST", "")
            port = env("DB_PORT", "5432")
            name = env("DB_NAME", "")
            if not all([user, password, host, name]):
                raise RuntimeError(
                    "Postgres connection settings missing "
                    "(DB_USER/DB_PASSWORD/DB_HOST/DB_NAME)"
                )
            return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"

        if t == "sqlite":
            name = env("DB_NAME")
            if not name:
                base = env(
                    "SQLITE_DIR", str((_THIS_FILE.parent / "instance").resolve())
                )
                name = str(Path(base) / "telas.db")
            Path(name).parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{name}"

        raise RuntimeError(f"Unknown DB_TYPE: {db_type}")

    # ----------------------------- init_app ----------------------------------

    @staticmethod
    def init_app(app) -> None:
        level = getattr(
            logging, str(app.config.get("LOGGING_LEVEL", "INFO")).upper(), logging.INFO
        )
        logging.getLogger().setLevel(level)

        scheme = app.config.get("PREFERRED_URL_SCHEME", "http")
        if scheme == "https":
            app.config["SESSION_COOKIE_SECURE"] = True
        else:
            app.config.setdefault("SESSION_COOKIE_SECURE", False)


# ------------------------------ Environments ---------------------------------


class DevelopmentConfig(Config):
    DEBUG = True
    LOGGING_LEVEL = env("LOG_LEVEL", "DEBUG")
    WTF_CSRF_SSL_STRICT = False
    SESSION_TYPE = env("SESSION_TYPE", "filesystem")
    SESSION_FILE_DIR = str((_THIS_FILE.parent / "flask_session").resolve())
    SESSION_PERMANENT = False

    @staticmethod
    def init_app(app) -> None:
        Config.init_app(app)
        need_redis = (env("SESSION_TYPE") == "redis") or bool(
            env("RATELIMIT_STORAGE_URL")
        )
        if need_redis:
            _connect_redis(
                app, env("REDIS_URL"), session_dir=app.config.get("SESSION_FILE_DIR")
            )


class ProductionConfig(Config):
    DEBUG = False
    LOGGING_LEVEL = env("LOG_LEVEL", "INFO")
    SESSION_TYPE = env("SESSION_TYPE", "redis")
    SESSION_FILE_DIR = str((_THIS_FILE.parent / "flask_session").resolve())

    WTF_CSRF_SSL_STRICT = True
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Strict"
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)

    SECURITY_HEADERS = True
    FORCE_HTTPS = _bool(env("FORCE_HTTPS"), True)
    PREFERRED_URL_SCHEME = "https"
    HSTS_ENABLED = True

    @staticmethod
    def init_app(app) -> None:
        Config.init_app(app)

        if app.config.get(
            "SECRET_KEY"
        ) == Config._default_secret_key and not os.environ.get("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY must be set in production")

        if env("SESSION_TYPE", "redis") == "redis" or env("RATELIMIT_STORAGE_URL"):
            _connect_redis(
                app,
                env("REDIS_URL"),
                session_dir=app.config.get("SESSION_FILE_DIR"),
            )
        else:
            app.config["REDIS_AVAILABLE"] = False

        if not app.config.get("REDIS_AVAILABLE"):
            app.config["SESSION_TYPE"] = "filesystem"
            app.logger.warning(
                "Redis unavailable: falling back to filesystem sessions"
            )

        https_redirect_middleware(app)
        setup_security_headers(app)
        app.logger.info("HTTPS redirect and security headers enabled (production)")


class TestingConfig(Config):
    TESTING = True
    DEBUG = True
    LOGGING_LEVEL = env("LOG_LEVEL", "DEBUG")
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SESSION_TYPE = "filesystem"
    SESSION_FILE_DIR = str((_THIS_FILE.parent / "test_sessions").resolve())
    RATELIMIT_STORAGE_URL = "memory://"
    # Tests create their own accounts
    ADMIN_USERNAME = None
    ADMIN_PASSWORD = None

    @staticmethod
    def init_app(app) -> None:
        Config.init_app(app)


# ------------------------------ Selection ------------------------------------

config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


def get_config():
    """Return the config CLASS for FLASK_ENV with the DB URI/pool filled in."""
    env_name = os.environ.get("FLASK_ENV", "development").lower()
    cfg_class = config.get(env_name, DevelopmentConfig)

    if cfg_class is not TestingConfig:
        uri = Config._build_database_uri(default_sqlite=(env_name != "production"))
        if env_name == "production" and not uri:
            raise RuntimeError("Database connection settings are missing")
        if uri:
            cfg_class.SQLALCHEMY_DATABASE_URI = uri
            if not uri.startswith("sqlite"):
                cfg_class.SQLALCHEMY_ENGINE_OPTIONS = {
                    "pool_size": int(env("DB_POOL_SIZE", "5")),
                    "max_overflow": int(env("DB_MAX_OVERFLOW", "10")),
                    "pool_recycle": int(env("DB_POOL_RECYCLE", "280")),
                }

    return cfg_class


# ------------------------------ Middleware -----------------------------------


def https_redirect_middleware(app):
    """Redirect HTTP to HTTPS in production."""

    @app.before_request
    def _before_request():
        if not app.config.get("FORCE_HTTPS", False):
            return None
        if request.is_secure or app.debug or app.testing:
            return None
        url = request.url.replace("http://", "https://", 1)
        return redirect(url, code=301)


def setup_security_headers(app):
    """Security headers (production)."""
    if not app.config.get("SECURITY_HEADERS", False):
        return

    @app.after_request
    def _after_request(response):
        if app.config.get("HSTS_ENABLED", False):
            response.headers["Strict-Transport-Security"] = (
                f"max-age={app.config.get('HSTS_MAX_AGE', 31536000)}"
            )

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "frame-ancestors 'none'; "
            "form-action 'self'; "
            "base-uri 'self';"
        )
        return response
