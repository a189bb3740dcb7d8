"""Fabric image store below ``UPLOAD_FOLDER``.

Stored references are relative paths such as ``fabrics/3f2a...c1.jpg``.
"""

from __future__ import annotations

import logging
import os
import uuid

from flask import current_app, url_for
from werkzeug.utils import safe_join

from error_handler import ValidationError
from security_utils import safe_filename_with_validation, safe_log, validate_image_upload

FABRIC_IMAGE_DIR = "fabrics"


def upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def image_abspath(image_path: str | None) -> str | None:
    """Absolute path of a stored reference, ``None`` if it escapes the store."""
    if not image_path:
        return None
    return safe_join(upload_root(), image_path)


def save_fabric_image(file) -> str:
    """Validate and store an uploaded image under a random name.

    Returns the stored reference. Raises ``ValidationError`` for rejected files.
    """
    max_size = current_app.config.get("MAX_IMAGE_SIZE", 5 * 1024 * 1024)
    valid, error = validate_image_upload(file, max_size)
    if not valid:
        raise ValidationError(error, field="image")

    safe_name, valid, error = safe_filename_with_validation(file.filename)
    if not valid:
        raise ValidationError(error, field="image")

    ext = os.path.splitext(safe_name)[1].lower()
    relative = f"{FABRIC_IMAGE_DIR}/{uuid.uuid4().hex}{ext}"
    target_dir = os.path.join(upload_root(), FABRIC_IMAGE_DIR)
    os.makedirs(target_dir, exist_ok=True)
    file.save(os.path.join(upload_root(), relative))

    safe_log(current_app.logger, logging.INFO, f"Fabric image stored: {relative}")
    return relative


def delete_fabric_image(image_path: str | None) -> bool:
    """Remove a stored image. Missing files are not an error."""
    path = image_abspath(image_path)
    if not path or not os.path.isfile(path):
        return False
    try:
        os.remove(path)
    except OSError as e:
        current_app.logger.warning(f"Could not delete image {image_path}: {e}")
        return False
    safe_log(current_app.logger, logging.INFO, f"Fabric image deleted: {image_path}")
    return True


def public_url(image_path: str | None) -> str | None:
    if not image_path:
        return None
    return url_for("fabrics.uploaded_image", filename=image_path)


def stored_images() -> list[str]:
    """References of every file currently in the fabric image directory."""
    directory = os.path.join(upload_root(), FABRIC_IMAGE_DIR)
    if not os.path.isdir(directory):
        return []
    return sorted(
        f"{FABRIC_IMAGE_DIR}/{name}"
        for name in os.listdir(directory)
        if os.path.isfile(os.path.join(directory, name))
    )
