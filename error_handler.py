"""
Unified error handling for the fabric administration app.

JSON / AJAX clients get RFC 7807 ``application/problem+json`` bodies,
browsers get a flash message and a redirect, or ``error.html``.
"""

import traceback
from datetime import datetime

from flask import (
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)


def _safe_redirect():
    """Redirect back without looping on the dashboard."""
    target = request.referrer or url_for("main.dashboard")
    if request.endpoint == "main.dashboard" or target == request.url:
        return redirect(url_for("auth.login"))
    return redirect(target)


class ErrorHandler:
    @staticmethod
    def is_ajax_request():
        return request.headers.get("X-Requested-With") == "XMLHttpRequest"

    @staticmethod
    def is_json_request():
        """True when the client sent or expects JSON."""
        return request.headers.get("Content-Type", "").startswith(
            "application/json"
        ) or request.headers.get("Accept", "").startswith("application/json")

    @staticmethod
    def wants_json():
        return (
            ErrorHandler.is_ajax_request()
            or ErrorHandler.is_json_request()
            or request.path.startswith("/api/")
        )

    @staticmethod
    def log_error(error, context=None):
        """Log the error with request context and return the logged record."""
        error_info = {
            "timestamp": datetime.utcnow().isoformat(),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "url": request.url,
            "method": request.method,
            "user_agent": request.headers.get("User-Agent", "N/A"),
            "ip_address": request.remote_addr,
            "context": context or {},
        }

        if current_app.debug:
            error_info["traceback"] = traceback.format_exc()

        current_app.logger.error(f"Application Error: {error_info}")
        return error_info

    @staticmethod
    def problem_response(
        status_code, title, detail=None, type_uri="about:blank", extra=None
    ):
        """Build an RFC 7807 (application/problem+json) response."""
        problem = {
            "type": type_uri,
            "title": title,
            "status": status_code,
            "instance": request.path,
        }
        if detail:
            problem["detail"] = detail
        if extra:
            problem.update(extra)

        response = jsonify(problem)
        response.status_code = status_code
        response.headers["Content-Type"] = "application/problem+json"
        return response


SENSITIVE_KEYS = {"password", "passwd", "pwd", "token", "csrf_token", "new_password"}


def _scrub_dict(d):
    if not isinstance(d, dict):
        return d
    return {
        k: "***" if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else v
        for k, v in d.items()
    }


def _build_error_details(error):
    """Traceback plus a scrubbed summary of the request."""
    tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))

    return {
        "type": type(error).__name__,
        "message": str(error),
        "traceback": tb,
        "request": {
            "method": request.method,
            "path": request.path,
            "query": _scrub_dict(request.values.to_dict(flat=True)),
            "user_agent": request.headers.get("User-Agent"),
            "ip": request.remote_addr,
            "request_id": getattr(g, "request_id", None),
        },
    }


def _show_details():
    return current_app.config.get("SHOW_DETAILED_ERRORS", False) or current_app.debug


class ValidationError(Exception):
    """Invalid user input (HTTP 400)."""

    def __init__(self, message, field=None, code=400):
        self.message = message
        self.field = field
        self.code = code
        super().__init__(self.message)


class BusinessLogicError(Exception):
    """Operation refused by a business rule (HTTP 422)."""

    def __init__(self, message, code=422):
        self.message = message
        self.code = code
        super().__init__(self.message)


class SecurityError(Exception):
    def __init__(self, message, code=403):
        self.message = message
        self.code = code
        super().__init__(self.message)


def handle_validation_error(error):
    error_info = ErrorHandler.log_error(error, {"type": "validation"})
    extra = {"error_id": error_info.get("timestamp")}
    if error.field:
        extra["field"] = error.field

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            error.code, "Error de validación", detail=error.message, extra=extra
        )
    flash(error.message, "danger")
    return _safe_redirect()


def handle_business_logic_error(error):
    error_info = ErrorHandler.log_error(error, {"type": "business_logic"})
    extra = {"error_id": error_info.get("timestamp")}

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            error.code, "Operación no permitida", detail=error.message, extra=extra
        )
    flash(error.message, "warning")
    return _safe_redirect()


def handle_security_error(error):
    error_info = ErrorHandler.log_error(error, {"type": "security", "severity": "high"})
    extra = {"error_id": error_info.get("timestamp")}

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            error.code,
            "Acceso denegado",
            detail="No tiene permisos para realizar esta operación",
            extra=extra,
        )
    flash("Acceso denegado", "danger")
    return redirect(url_for("auth.login"))


ERROR_MESSAGES = {
    400: "Solicitud incorrecta: los datos enviados no son válidos",
    401: "Se requiere iniciar sesión",
    403: "Acceso denegado",
    404: "Página no encontrada",
    405: "Método no permitido",
    413: "El archivo es demasiado grande",
    429: "Demasiadas solicitudes",
    500: "Error interno del servidor",
    502: "Puerta de enlace incorrecta",
    503: "Servicio no disponible temporalmente",
}


def handle_http_error(error):
    """Handle HTTP errors (404, 500, etc.)"""
    error_info = ErrorHandler.log_error(error, {"type": "http"})

    status_code = getattr(error, "code", 500) or 500
    message = ERROR_MESSAGES.get(status_code, "Ocurrió un error")
    extra = {"error_id": error_info.get("timestamp")}
    show_details = _show_details()

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            status_code,
            message,
            detail=str(error) if show_details else None,
            extra=extra,
        )

    details = _build_error_details(error)
    return (
        render_template(
            "error.html",
            error_code=status_code,
            error_message=message,
            error_id=error_info.get("timestamp"),
            error_trace=details.get("traceback") if show_details else None,
            request_info=details.get("request") if show_details else None,
        ),
        status_code,
    )


def handle_database_error(error):
    """Database failures never expose driver details to the user."""
    from database import db

    db.session.rollback()
    error_info = ErrorHandler.log_error(error, {"type": "database"})

    user_message = "Error al acceder a la base de datos. Intente nuevamente."
    extra = {"error_id": error_info.get("timestamp")}

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            500, "Error de base de datos", detail=user_message, extra=extra
        )
    flash(user_message, "danger")
    return _safe_redirect()


def handle_operational_error(error):
    from database import db

    db.session.rollback()
    error_info = ErrorHandler.log_error(
        error, {"type": "database", "kind": "operational"}
    )

    user_message = "La base de datos no está disponible. Intente más tarde."
    extra = {"error_id": error_info.get("timestamp")}

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            503, "Sin conexión con la base de datos", detail=user_message, extra=extra
        )
    flash(user_message, "danger")
    return _safe_redirect()


def handle_generic_error(error):
    """Catch-all for unexpected exceptions."""
    from werkzeug.exceptions import HTTPException

    if isinstance(error, HTTPException):
        return handle_http_error(error)

    error_info = ErrorHandler.log_error(error, {"type": "generic"})
    show_details = _show_details()
    user_message = (
        f"Ocurrió un error: {error}" if show_details else "Ocurrió un error"
    )
    extra = {"error_id": error_info.get("timestamp")}

    if ErrorHandler.wants_json():
        return ErrorHandler.problem_response(
            500,
            user_message,
            detail=str(error) if show_details else None,
            extra=extra,
        )

    details = _build_error_details(error)
    return (
        render_template(
            "error.html",
            error_code=500,
            error_message=user_message,
            error_id=error_info.get("timestamp"),
            error_trace=details.get("traceback") if show_details else None,
            request_info=details.get("request") if show_details else None,
        ),
        500,
    )


def register_error_handlers(app):
    """Register all error handlers with the Flask app"""

    app.errorhandler(ValidationError)(handle_validation_error)
    app.errorhandler(BusinessLogicError)(handle_business_logic_error)
    app.errorhandler(SecurityError)(handle_security_error)

    for code in ERROR_MESSAGES:
        app.errorhandler(code)(handle_http_error)

    from sqlalchemy.exc import OperationalError, SQLAlchemyError

    app.errorhandler(SQLAlchemyError)(handle_database_error)
    app.errorhandler(OperationalError)(handle_operational_error)

    app.errorhandler(Exception)(handle_generic_error)
