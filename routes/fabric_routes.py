"""
Fabric inventory: list, create, edit, soft delete, images and export
"""

import logging
from datetime import datetime

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    send_from_directory,
    url_for,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from error_handler import ValidationError
from models import Client, Fabric, db
from security_utils import safe_log
from utils.exports import XLSX_MIMETYPE, build_fabrics_workbook
from utils.request_helpers import (
    choice_field,
    date_field,
    float_field,
    get_or_404,
    text_field,
    wants_json,
)
from utils.search import (
    CATEGORY_FILTERS,
    FABRIC_SORTS,
    active_fabrics,
    filter_fabrics,
    normalize_search,
    pick,
)
from utils.statuses import FabricCategory, FabricPattern
from utils.storage import delete_fabric_image, public_url, save_fabric_image

fabric_bp = Blueprint("fabrics", __name__)
logger = logging.getLogger(__name__)


def _list_args():
    search = normalize_search(request.args.get("search"))
    category = pick(request.args.get("category"), CATEGORY_FILTERS, "all")
    sort = pick(request.args.get("sort"), FABRIC_SORTS, "recent")
    return search, category, sort


def query_fabrics(search="", category="all", sort="recent"):
    """Active fabrics filtered and sorted as on the inventory page."""
    query = filter_fabrics(active_fabrics(), search=search, category=category)
    return query.order_by(*FABRIC_SORTS[sort]).all()


def _get_active_fabric(fabric_id) -> Fabric:
    fabric = get_or_404(Fabric, fabric_id)
    if fabric.is_deleted:
        abort(404)
    return fabric


def _resolve_client(data) -> Client | None:
    """Chosen client, or a new one created from ``new_client_name``."""
    raw_id = str(data.get("client_id") or "").strip()
    if raw_id:
        try:
            client = db.session.get(Client, int(raw_id))
        except ValueError:
            client = None
        if client is None:
            raise ValidationError("Cliente no encontrado", field="client_id")
        return client

    new_name = text_field(data, "new_client_name", "nuevo cliente", 200)
    if not new_name:
        return None
    client = Client(name=new_name)
    db.session.add(client)
    db.session.flush()
    current_app.logger.info(f"Client {client.id} created from fabric form")
    return client


def _apply_fabric_form(fabric: Fabric, data) -> None:
    fabric.article = text_field(data, "article", "artículo", 100, required=True)
    fabric.color = text_field(data, "color", "color", 100) or ""
    fabric.description = text_field(data, "description", "descripción", 2000) or ""
    fabric.meters = float_field(data, "meters", "metros")
    fabric.shipping_date = date_field(data, "shipping_date", "de envío")
    fabric.category = choice_field(
        data, "category", FabricCategory.all(), FabricCategory.FABRIC.value
    )
    fabric.pattern = choice_field(
        data, "pattern", FabricPattern.all(), FabricPattern.PLAIN.value
    )
    client = _resolve_client(data)
    fabric.client_id = client.id if client else None


def _store_uploaded_image(fabric: Fabric) -> str | None:
    """Attach an uploaded image; a failed upload keeps the current one.

    Returns the replaced reference, to be removed once the change is committed.
    """
    file = request.files.get("image")
    if not file or not file.filename:
        return None
    try:
        new_path = save_fabric_image(file)
    except (ValidationError, OSError) as e:
        message = getattr(e, "message", str(e))
        safe_log(logger, logging.WARNING, f"Fabric image not stored: {message}")
        flash(f"No se pudo subir la imagen: {message}", "warning")
        return None
    old_path = fabric.image_path
    fabric.image_path = new_path
    return old_path


def _form_context():
    return {
        "clients": Client.query.order_by(Client.name.asc()).all(),
    }


def _form_error(error, fabric):
    db.session.rollback()
    if wants_json():
        return jsonify({"error": error.message, "field": error.field}), 400
    flash(error.message, "danger")
    return (
        render_template(
            "fabric_form.html", fabric=fabric, form=request.form, **_form_context()
        ),
        400,
    )


@fabric_bp.route("/")
@login_required
def list_fabrics():
    search, category, sort = _list_args()
    fabrics = query_fabrics(search, category, sort)
    return render_template(
        "fabrics.html",
        fabrics=fabrics,
        search=search,
        category=category,
        sort=sort,
    )


@fabric_bp.route("/export")
@login_required
def export_fabrics():
    """Filtered inventory as an .xlsx download."""
    search, category, sort = _list_args()
    fabrics = query_fabrics(search, category, sort)
    output = build_fabrics_workbook(fabrics)
    current_app.logger.info(
        f"Fabric export ({len(fabrics)} rows) by user {current_user.username}"
    )
    return send_file(
        output,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"telas_{datetime.now():%Y%m%d}.xlsx",
    )


@fabric_bp.route("/new", methods=["GET", "POST"])
@login_required
def create_fabric():
    if request.method == "GET":
        return render_template(
            "fabric_form.html", fabric=None, form={}, **_form_context()
        )

    fabric = Fabric()
    try:
        _apply_fabric_form(fabric, request.form)
        _store_uploaded_image(fabric)
        db.session.add(fabric)
        db.session.commit()
    except ValidationError as e:
        return _form_error(e, None)
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error creating fabric: {e}")
        flash("No se pudo guardar la tela", "danger")
        return redirect(url_for("fabrics.list_fabrics"))

    current_app.logger.info(
        f"Fabric {fabric.id} created by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True, "fabric": fabric.to_dict()}), 201
    flash("Tela guardada correctamente", "success")
    return redirect(url_for("fabrics.list_fabrics"))


@fabric_bp.route("/<int:fabric_id>/edit", methods=["GET", "POST"])
@login_required
def edit_fabric(fabric_id):
    fabric = _get_active_fabric(fabric_id)
    if request.method == "GET":
        return render_template(
            "fabric_form.html", fabric=fabric, form={}, **_form_context()
        )

    try:
        _apply_fabric_form(fabric, request.form)
        replaced = _store_uploaded_image(fabric)
        db.session.commit()
    except ValidationError as e:
        return _form_error(e, fabric)
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error updating fabric {fabric_id}: {e}")
        flash("No se pudo actualizar la tela", "danger")
        return redirect(url_for("fabrics.list_fabrics"))

    if replaced:
        delete_fabric_image(replaced)
    current_app.logger.info(
        f"Fabric {fabric.id} updated by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True, "fabric": fabric.to_dict()})
    flash("Tela actualizada correctamente", "success")
    return redirect(url_for("fabrics.list_fabrics"))


@fabric_bp.route("/<int:fabric_id>/delete", methods=["POST"])
@login_required
def delete_fabric(fabric_id):
    """Soft delete: the fabric moves to the recycle bin."""
    fabric = _get_active_fabric(fabric_id)
    try:
        fabric.deleted_at = datetime.utcnow()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error deleting fabric {fabric_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo eliminar la tela"}), 500
        flash("No se pudo eliminar la tela", "danger")
        return redirect(url_for("fabrics.list_fabrics"))

    current_app.logger.info(
        f"Fabric {fabric.id} moved to recycle bin by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True})
    flash("Tela enviada a la papelera", "success")
    return redirect(url_for("fabrics.list_fabrics"))


@fabric_bp.route("/<int:fabric_id>/image")
@login_required
def fabric_image(fabric_id):
    fabric = get_or_404(Fabric, fabric_id)
    url = public_url(fabric.image_path)
    if not url:
        abort(404)
    return redirect(url)


@fabric_bp.route("/uploads/<path:filename>")
@login_required
def uploaded_image(filename):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
