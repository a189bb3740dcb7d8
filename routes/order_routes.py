"""
Cutting orders ("órdenes de corte")
"""

import logging
from itertools import zip_longest

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
    url_for,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from error_handler import ValidationError
from models import Client, CuttingOrder, CuttingOrderLine, db
from security_utils import safe_log
from utils.cutting_orders import (
    create_cutting_order,
    foreign_lines,
    payload_from_form,
    update_cutting_order,
)
from utils.exports import (
    XLSX_MIMETYPE,
    build_order_workbook,
    order_filename,
    whatsapp_link,
)
from utils.lot_numbers import generate_lot_number
from utils.request_helpers import get_or_404, wants_json
from utils.search import active_client_fabrics, contains_any, normalize_search

order_bp = Blueprint("orders", __name__)
logger = logging.getLogger(__name__)


def list_cutting_orders(search: str = ""):
    """Orders, newest first; case-insensitive lot number search."""
    query = CuttingOrder.query
    if search:
        query = query.filter(contains_any(search, CuttingOrder.lot_number))
    return query.order_by(
        CuttingOrder.created_at.desc(), CuttingOrder.id.desc()
    ).all()


def _clients():
    return Client.query.order_by(Client.name.asc()).all()


def _selected_client_id(form):
    raw = (form.get("client_id") if form else None) or request.args.get("client_id")
    try:
        return int(raw) if raw else None
    except (TypeError, ValueError):
        return None


def _posted_rows(form, *names) -> list[dict]:
    """Rows of the parallel lists ``names`` as posted, blank rows dropped."""
    columns = [form.getlist(name) if form else [] for name in names]
    rows = [
        dict(zip(names, values))
        for values in zip_longest(*columns, fillvalue="")
        if any(str(v).strip() for v in values)
    ]
    return rows or [{}]


def _render_order_form(form=None, status=200):
    client_id = _selected_client_id(form)
    return (
        render_template(
            "order_form.html",
            clients=_clients(),
            client_id=client_id,
            client_fabrics=active_client_fabrics(client_id) if client_id else [],
            lot_number=(form or {}).get("lot_number") or generate_lot_number(),
            form=form or {},
            line_rows=_posted_rows(form, "fabric_id", "meters", "remarks"),
            garment_rows=_posted_rows(form, "garment_name", "garment_sizes"),
        ),
        status,
    )


@order_bp.route("/")
@login_required
def list_orders():
    search = normalize_search(request.args.get("search"))
    return render_template(
        "orders.html", orders=list_cutting_orders(search), search=search
    )


@order_bp.route("/new", methods=["GET", "POST"])
@login_required
def create_order():
    if request.method == "GET":
        return _render_order_form()

    json_body = request.get_json(silent=True)
    try:
        payload = json_body if isinstance(json_body, dict) else payload_from_form(
            request.form
        )
        order = create_cutting_order(payload)
    except ValidationError as e:
        safe_log(logger, logging.INFO, f"Cutting order rejected: {e.message}")
        if wants_json():
            return jsonify({"error": e.message, "field": e.field}), 400
        flash(e.message, "danger")
        return _render_order_form(request.form, status=400)
    except SQLAlchemyError as e:
        safe_log(logger, logging.ERROR, f"Error creating cutting order: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo crear la orden de corte"}), 500
        flash("No se pudo crear la orden de corte", "danger")
        return _render_order_form(request.form, status=500)

    current_app.logger.info(
        f"Cutting order {order.id} created by user {current_user.username}"
    )
    if wants_json():
        return (
            jsonify(
                {
                    "success": True,
                    "order": order.to_dict(with_children=True),
                    "url": url_for("orders.order_detail", order_id=order.id),
                }
            ),
            201,
        )
    flash(f"Orden de corte {order.lot_number} creada", "success")
    return redirect(url_for("orders.order_detail", order_id=order.id))


@order_bp.route("/<int:order_id>")
@login_required
def order_detail(order_id):
    order = get_or_404(CuttingOrder, order_id)
    return render_template(
        "order_detail.html",
        order=order,
        whatsapp_url=whatsapp_link(
            order, current_app.config.get("PHONE_COUNTRY_CODE", "")
        ),
    )


@order_bp.route("/<int:order_id>/edit", methods=["GET", "POST"])
@login_required
def edit_order(order_id):
    order = get_or_404(CuttingOrder, order_id)
    if request.method == "GET":
        return render_template(
            "order_edit.html", order=order, clients=_clients(), form={}
        )

    json_body = request.get_json(silent=True)
    data = json_body if isinstance(json_body, dict) else request.form
    try:
        update_cutting_order(order, data)
    except ValidationError as e:
        db.session.rollback()
        if wants_json():
            return jsonify({"error": e.message, "field": e.field}), 400
        flash(e.message, "danger")
        return (
            render_template(
                "order_edit.html", order=order, clients=_clients(), form=request.form
            ),
            400,
        )
    except SQLAlchemyError as e:
        safe_log(logger, logging.ERROR, f"Error updating order {order_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo actualizar la orden"}), 500
        flash("No se pudo actualizar la orden", "danger")
        return redirect(url_for("orders.order_detail", order_id=order_id))

    current_app.logger.info(
        f"Cutting order {order_id} updated by user {current_user.username}"
    )
    warning = None
    if foreign_lines(order):
        warning = "La orden tiene telas que no pertenecen al cliente seleccionado"
    if wants_json():
        body = {"success": True, "order": order.to_dict()}
        if warning:
            body["warning"] = warning
        return jsonify(body)
    flash("Orden actualizada", "success")
    if warning:
        flash(warning, "warning")
    return redirect(url_for("orders.order_detail", order_id=order_id))


@order_bp.route("/<int:order_id>/delete", methods=["POST"])
@login_required
def delete_order(order_id):
    """Delete the order with its lines, garments and sizes."""
    order = get_or_404(CuttingOrder, order_id)
    lot_number = order.lot_number
    try:
        db.session.delete(order)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error deleting order {order_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo eliminar la orden"}), 500
        flash("No se pudo eliminar la orden", "danger")
        return redirect(url_for("orders.list_orders"))

    current_app.logger.info(
        f"Cutting order {lot_number} deleted by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True})
    flash(f"Orden {lot_number} eliminada", "success")
    return redirect(url_for("orders.list_orders"))


@order_bp.route("/<int:order_id>/lines/<int:line_id>/delete", methods=["POST"])
@login_required
def delete_line(order_id, line_id):
    line = get_or_404(CuttingOrderLine, line_id)
    if line.order_id != order_id:
        abort(404)
    try:
        db.session.delete(line)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error deleting line {line_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo eliminar la línea"}), 500
        flash("No se pudo eliminar la línea", "danger")
        return redirect(url_for("orders.order_detail", order_id=order_id))

    current_app.logger.info(
        f"Line {line_id} of order {order_id} deleted by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True})
    flash("Línea eliminada", "success")
    return redirect(url_for("orders.order_detail", order_id=order_id))


@order_bp.route("/<int:order_id>/export")
@login_required
def export_order(order_id):
    order = get_or_404(CuttingOrder, order_id)
    return send_file(
        build_order_workbook(order),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=order_filename(order),
    )


@order_bp.route("/<int:order_id>/whatsapp")
@login_required
def whatsapp(order_id):
    """Redirect to the prefilled chat for the order's client."""
    order = get_or_404(CuttingOrder, order_id)
    url = whatsapp_link(order, current_app.config.get("PHONE_COUNTRY_CODE", ""))
    if wants_json():
        return jsonify({"url": url})
    return redirect(url)
