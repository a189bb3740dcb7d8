"""
Recycle bin ("Eliminados"): soft-deleted fabrics, restore and purge
"""

import logging

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from error_handler import BusinessLogicError
from models import Fabric, db
from security_utils import safe_log
from utils.request_helpers import get_or_404, wants_json
from utils.search import filter_fabrics, normalize_search
from utils.storage import delete_fabric_image

recycle_bp = Blueprint("recycle", __name__)
logger = logging.getLogger(__name__)


def deleted_fabrics(search: str = ""):
    """Soft-deleted fabrics, most recently deleted first."""
    query = filter_fabrics(
        Fabric.query.filter(Fabric.deleted_at.isnot(None)), search=search
    )
    return query.order_by(Fabric.deleted_at.desc(), Fabric.id.desc()).all()


def _get_deleted_fabric(fabric_id) -> Fabric:
    fabric = get_or_404(Fabric, fabric_id)
    if not fabric.is_deleted:
        abort(404)
    return fabric


def purge(fabric: Fabric) -> None:
    """Permanently delete ``fabric`` and its image file.

    Raises ``BusinessLogicError`` while a cutting order line still uses it.
    """
    used = fabric.order_lines.count()
    if used:
        raise BusinessLogicError(
            f"La tela {fabric.label} se usa en {used} órdenes de corte "
            "y no puede eliminarse definitivamente"
        )
    image_path = fabric.image_path
    db.session.delete(fabric)
    db.session.commit()
    delete_fabric_image(image_path)


@recycle_bp.route("/")
@login_required
def list_deleted():
    search = normalize_search(request.args.get("search"))
    return render_template(
        "recycle_bin.html", fabrics=deleted_fabrics(search), search=search
    )


@recycle_bp.route("/<int:fabric_id>/restore", methods=["POST"])
@login_required
def restore_fabric(fabric_id):
    fabric = _get_deleted_fabric(fabric_id)
    try:
        fabric.deleted_at = None
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error restoring fabric {fabric_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo restaurar la tela"}), 500
        flash("No se pudo restaurar la tela", "danger")
        return redirect(url_for("recycle.list_deleted"))

    current_app.logger.info(
        f"Fabric {fabric_id} restored by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True})
    flash("Tela restaurada", "success")
    return redirect(url_for("recycle.list_deleted"))


@recycle_bp.route("/<int:fabric_id>/purge", methods=["POST"])
@login_required
def purge_fabric(fabric_id):
    fabric = _get_deleted_fabric(fabric_id)
    try:
        purge(fabric)
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error purging fabric {fabric_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo eliminar la tela"}), 500
        flash("No se pudo eliminar la tela", "danger")
        return redirect(url_for("recycle.list_deleted"))

    current_app.logger.info(
        f"Fabric {fabric_id} purged by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True})
    flash("Tela eliminada permanentemente", "success")
    return redirect(url_for("recycle.list_deleted"))
