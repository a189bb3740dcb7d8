"""
Client registry
"""

import logging

from flask import (
    Blueprint,
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

from error_handler import BusinessLogicError, ValidationError
from models import Client, Fabric, db
from security_utils import safe_log
from utils.request_helpers import (
    email_field,
    get_or_404,
    request_data,
    text_field,
    wants_json,
)
from utils.search import (
    CATEGORY_FILTERS,
    CLIENT_FABRIC_SORTS,
    active_fabrics,
    contains_any,
    fabric_summary,
    filter_fabrics,
    normalize_search,
    pick,
)

client_bp = Blueprint("clients", __name__)
logger = logging.getLogger(__name__)


def clean_client_data(data: dict) -> dict:
    return {
        "name": text_field(data, "name", "nombre", 200, required=True),
        "email": email_field(data),
        "phone": text_field(data, "phone", "teléfono", 40),
        "address": text_field(data, "address", "dirección", 300),
        "notes": text_field(data, "notes", "notas", 2000),
    }


def _form_error(error, template, **context):
    """400 answer for an invalid client form."""
    if wants_json():
        return jsonify({"error": error.message, "field": error.field}), 400
    flash(error.message, "danger")
    return render_template(template, form=request.form, **context), 400


@client_bp.route("/")
@login_required
def list_clients():
    search = normalize_search(request.args.get("search"))
    query = Client.query
    if search:
        query = query.filter(contains_any(search, Client.name, Client.email))
    clients = query.order_by(Client.name.asc()).all()
    return render_template("clients.html", clients=clients, search=search)


@client_bp.route("/new", methods=["GET", "POST"])
@login_required
def create_client():
    if request.method == "GET":
        return render_template("client_form.html", client=None, form={})

    try:
        client = Client(**clean_client_data(request_data()))
        db.session.add(client)
        db.session.commit()
    except ValidationError as e:
        return _form_error(e, "client_form.html", client=None)
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error creating client: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo crear el cliente"}), 500
        flash("No se pudo crear el cliente", "danger")
        return redirect(url_for("clients.list_clients"))

    current_app.logger.info(
        f"Client {client.id} created by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True, "client": client.to_dict()}), 201
    flash("Cliente creado correctamente", "success")
    return redirect(url_for("clients.list_clients"))


@client_bp.route("/<int:client_id>/edit", methods=["GET", "POST"])
@login_required
def edit_client(client_id):
    client = get_or_404(Client, client_id)
    if request.method == "GET":
        return render_template("client_form.html", client=client, form={})

    try:
        for field, value in clean_client_data(request_data()).items():
            setattr(client, field, value)
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        return _form_error(e, "client_form.html", client=client)
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error updating client {client_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo actualizar el cliente"}), 500
        flash("No se pudo actualizar el cliente", "danger")
        return redirect(url_for("clients.list_clients"))

    current_app.logger.info(
        f"Client {client.id} updated by user {current_user.username}"
    )
    if wants_json():
        return jsonify({"success": True, "client": client.to_dict()})
    flash("Cliente actualizado correctamente", "success")
    return redirect(url_for("clients.list_clients"))


@client_bp.route("/<int:client_id>/delete", methods=["POST"])
@login_required
def delete_client(client_id):
    """Hard delete. Refused while orders exist; owned fabrics are detached."""
    client = get_or_404(Client, client_id)

    order_count = client.orders.count()
    if order_count:
        raise BusinessLogicError(
            f"El cliente tiene {order_count} órdenes de corte y no puede eliminarse"
        )

    try:
        detached = Fabric.query.filter(Fabric.client_id == client.id).update(
            {Fabric.client_id: None}, synchronize_session=False
        )
        db.session.delete(client)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        safe_log(logger, logging.ERROR, f"Error deleting client {client_id}: {e}")
        if wants_json():
            return jsonify({"error": "No se pudo eliminar el cliente"}), 500
        flash("No se pudo eliminar el cliente", "danger")
        return redirect(url_for("clients.list_clients"))

    current_app.logger.info(
        (
            f"Client {client_id} deleted by user {current_user.username}, "
            f"{detached} fabrics detached"
        )
    )
    if wants_json():
        return jsonify({"success": True})
    flash("Cliente eliminado", "success")
    return redirect(url_for("clients.list_clients"))


@client_bp.route("/<int:client_id>/fabrics")
@login_required
def client_fabrics(client_id):
    """Active fabrics of a client with search, category filter, sort and summary."""
    client = get_or_404(Client, client_id)
    search = normalize_search(request.args.get("search"))
    category = pick(request.args.get("category"), CATEGORY_FILTERS, "all")
    sort = pick(request.args.get("sort"), CLIENT_FABRIC_SORTS, "date_desc")

    query = filter_fabrics(
        active_fabrics().filter(Fabric.client_id == client.id),
        search=search,
        category=category,
        with_client=False,
    )
    fabrics = query.order_by(*CLIENT_FABRIC_SORTS[sort]).all()

    if wants_json():
        return jsonify(
            {
                "client": client.to_dict(),
                "fabrics": [f.to_dict() for f in fabrics],
                "summary": fabric_summary(fabrics),
            }
        )
    return render_template(
        "client_fabrics.html",
        client=client,
        fabrics=fabrics,
        summary=fabric_summary(fabrics),
        search=search,
        category=category,
        sort=sort,
    )
