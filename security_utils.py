"""
Security helpers: upload validation, input sanitising and log scrubbing
"""

import json
import logging
import os
import re

from werkzeug.utils import secure_filename

import config

# Fabric photos are the only uploads the application accepts
ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}

DANGEROUS_EXTENSIONS = {
    "exe",
    "scr",
    "bat",
    "cmd",
    "com",
    "pif",
    "vbs",
    "js",
    "jar",
    "msi",
    "php",
    "asp",
    "aspx",
    "jsp",
    "py",
    "pl",
    "sh",
    "ps1",
    "svg",
    "html",
    "htm",
}

SENSITIVE_RE = re.compile(
    r"(session(_?id)?|token|authorization)=([^&\s]+)", re.IGNORECASE
)


def validate_file_size(file, max_size):
    """
    Check the size of an uploaded file.

    Returns:
        tuple: (bool, str) - (valid, error message)
    """
    if not file:
        return False, "No se recibió ningún archivo"

    file.seek(0, os.SEEK_END)
    size = file.tell()
    file.seek(0)

    if size > max_size:
        size_mb = size / (1024 * 1024)
        max_mb = max_size / (1024 * 1024)
        return (
            False,
            f"El archivo ({size_mb:.1f}MB) supera el máximo permitido ({max_mb:.0f}MB)",
        )

    if size == 0:
        return False, "El archivo está vacío"

    return True, ""


def validate_file_extension(filename):
    """
    Check the file extension against the allowed image types.

    Returns:
        tuple: (bool, str) - (valid, error message)
    """
    if not filename:
        return False, "Falta el nombre del archivo"

    ext = os.path.splitext(filename)[1].lower().lstrip(".")

    if ext in DANGEROUS_EXTENSIONS:
        return False, f"Extensión de archivo peligrosa: .{ext}"

    if ext not in ALLOWED_EXTENSIONS:
        return (
            False,
            (
                f"Extensión no permitida: .{ext}. Permitidas: "
                f"{', '.join(sorted(ALLOWED_EXTENSIONS))}"
            ),
        )

    return True, ""


def validate_filename(filename):
    """
    Reject names with path components or reserved characters.

    Returns:
        tuple: (bool, str) - (valid, error message)
    """
    if not filename:
        return False, "Falta el nombre del archivo"

    if len(filename) > 255:
        return False, "El nombre del archivo es demasiado largo (máximo 255)"

    dangerous_chars = ["<", ">", ":", '"', "|", "?", "*", "\x00"]
    for char in dangerous_chars:
        if char in filename:
            return False, f"Carácter no permitido en el nombre del archivo: {char}"

    if ".." in filename or filename.startswith("/") or "\\" in filename:
        return False, "Ruta no permitida en el nombre del archivo"

    return True, ""


def safe_filename_with_validation(filename):
    """
    Validated ``secure_filename``.

    Returns:
        tuple: (str, bool, str) - (safe name, valid, error)
    """
    valid, error = validate_filename(filename)
    if not valid:
        return None, False, error

    safe_name = secure_filename(filename)
    if not safe_name:
        return None, False, "No se pudo generar un nombre de archivo seguro"

    return safe_name, True, ""


def validate_image_upload(file, max_size):
    """
    Full validation of an uploaded image: name, extension and size.

    Returns:
        tuple: (bool, str) - (valid, error message)
    """
    if not file or not file.filename:
        return False, "No se recibió ningún archivo"

    valid, error = validate_filename(file.filename)
    if not valid:
        return False, error

    valid, error = validate_file_extension(file.filename)
    if not valid:
        return False, error

    valid, error = validate_file_size(file, max_size)
    if not valid:
        return False, error

    return True, ""


def sanitize_input(text, max_length=None, allow_html=False):
    """
    Sanitise user input.

    Returns:
        tuple: (str, bool, str) - (clean text, valid, error)
    """
    if not text:
        return "", True, ""

    if not isinstance(text, str):
        text = str(text)

    if max_length and len(text) > max_length:
        return None, False, f"Texto demasiado largo (máximo {max_length} caracteres)"

    # Control characters
    text = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", text)

    if not allow_html:
        text = (
            text.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&#x27;")
        )

    suspicious_patterns = [
        r"<script.*?</script>",
        r"javascript:",
        r"vbscript:",
        r"on\w+\s*=",
        r"expression\s*\(",
    ]

    for pattern in suspicious_patterns:
        if re.search(pattern, text, re.IGNORECASE):
            return None, False, "Contenido sospechoso detectado"

    return text.strip(), True, ""


def validate_user_input(data, field_rules):
    """
    Validate a dict of user input against per-field rules.

    Returns:
        tuple: (dict, bool, list) - (clean data, valid, errors)
    """
    cleaned_data = {}
    errors = []

    for field, rules in field_rules.items():
        value = data.get(field, "")

        if rules.get("required", False) and not value:
            errors.append(f"El campo '{field}' es obligatorio")
            continue

        if value:
            cleaned_value, valid, error = sanitize_input(
                value,
                max_length=rules.get("max_length"),
                allow_html=rules.get("allow_html", False),
            )

            if not valid:
                errors.append(f"Campo '{field}': {error}")
                continue

            if "pattern" in rules:
                if not re.match(rules["pattern"], cleaned_value):
                    errors.append(f"Campo '{field}': formato inválido")
                    continue

            cleaned_data[field] = cleaned_value
        else:
            cleaned_data[field] = value

    return cleaned_data, len(errors) == 0, errors


def validate_password_strength(password):
    """
    At least 8 characters with letters and digits.

    Returns:
        tuple: (bool, str) - (valid, error message)
    """
    if len(password) < 8:
        return False, "La contraseña debe tener al menos 8 caracteres"
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        return False, "La contraseña debe contener letras y números"
    return True, ""


def sanitize_log_data(data):
    """
    Mask sensitive values before they reach the logs.

    Returns:
        str: string safe to log
    """
    if data is None:
        return "None"

    if config.LOG_SENSITIVE:
        return str(data)

    sensitive_fields = {
        "password",
        "pass",
        "pwd",
        "secret",
        "token",
        "csrf_token",
        "session_token",
        "access_token",
        "api_key",
        "secret_key",
        "authorization",
    }

    sensitive_patterns = [
        (r'password["\']?\s*[:=]\s*["\']([^"\']+)["\']', "password=***FILTERED***"),
        (r'token["\']?\s*[:=]\s*["\']([^"\']+)["\']', "token=***FILTERED***"),
        (r'secret["\']?\s*[:=]\s*["\']([^"\']+)["\']', "secret=***FILTERED***"),
        (r"Bearer\s+([a-zA-Z0-9\-._~+/]+=*)", "Bearer ***FILTERED***"),
    ]

    try:
        if isinstance(data, dict):
            filtered_data = {
                key: "***FILTERED***" if str(key).lower() in sensitive_fields else value
                for key, value in data.items()
            }
            data_str = json.dumps(filtered_data, default=str, ensure_ascii=False)
        elif isinstance(data, (list, tuple)):
            data_str = json.dumps(list(data), default=str, ensure_ascii=False)
        else:
            data_str = str(data)

        for pattern, replacement in sensitive_patterns:
            data_str = re.sub(pattern, replacement, data_str, flags=re.IGNORECASE)

        # Client contact data
        data_str = re.sub(
            r"([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})",
            r"***EMAIL***@\2",
            data_str,
        )
        data_str = re.sub(
            r"(?<![\w=:])\+?\d(?:[\s().-]?\d){7,14}(?!\d)",
            "***PHONE***",
            data_str,
        )

        return SENSITIVE_RE.sub(r"\1=***", data_str)

    except Exception as e:
        return f"[Data sanitization error: {type(e).__name__}]"


def safe_log(logger, level, message, *args, **kwargs):
    """
    Log through ``logger`` with sensitive data masked.

    ``message`` may be a plain string or a tuple; tuples are joined so call
    sites can split long messages over several literals.
    """
    try:
        if isinstance(message, tuple):
            message = "".join(str(part) for part in message)

        if config.LOG_SENSITIVE:
            logger.log(level, message, *args, **kwargs)
            return

        sanitized_message = sanitize_log_data(message)
        sanitized_args = [sanitize_log_data(arg) for arg in args]
        logger.log(level, sanitized_message, *sanitized_args, **kwargs)

    except Exception as e:
        logger.log(level, f"[Log sanitization failed] {type(e).__name__}")
