"""JSON API v1 (read-only)"""

from flask import Blueprint, jsonify, request
from flask_login import login_required

from models import Client, CuttingOrder, Fabric
from routes.fabric_routes import query_fabrics
from routes.order_routes import list_cutting_orders
from utils.cache import cached_json, latest_timestamp
from utils.lot_numbers import generate_lot_number, lot_number_taken
from utils.request_helpers import get_or_404
from utils.search import (
    CATEGORY_FILTERS,
    FABRIC_SORTS,
    active_client_fabrics,
    contains_any,
    normalize_search,
    pick,
)
from utils.storage import public_url

api_v1_bp = Blueprint("api_v1", __name__)

# Lot number suggestions retried before giving up on a free one
LOT_NUMBER_ATTEMPTS = 10


def _fabric_json(fabric: Fabric) -> dict:
    data = fabric.to_dict()
    data["image_url"] = public_url(fabric.image_path)
    return data


@api_v1_bp.route("/clients")
@login_required
def clients():
    search = normalize_search(request.args.get("search"))
    query = Client.query
    if search:
        query = query.filter(contains_any(search, Client.name, Client.email))
    items = query.order_by(Client.name.asc()).all()
    return cached_json(
        [c.to_dict() for c in items],
        latest_timestamp(c.updated_at or c.created_at for c in items),
    )


@api_v1_bp.route("/clients/<int:client_id>/fabrics")
@login_required
def client_fabrics(client_id):
    """Fabric picker of the order builder."""
    client = get_or_404(Client, client_id)
    items = active_client_fabrics(client.id)
    return cached_json(
        [_fabric_json(f) for f in items],
        latest_timestamp(f.updated_at or f.created_at for f in items),
    )


@api_v1_bp.route("/fabrics")
@login_required
def fabrics():
    items = query_fabrics(
        normalize_search(request.args.get("search")),
        pick(request.args.get("category"), CATEGORY_FILTERS, "all"),
        pick(request.args.get("sort"), FABRIC_SORTS, "recent"),
    )
    return cached_json(
        [_fabric_json(f) for f in items],
        latest_timestamp(f.updated_at or f.created_at for f in items),
    )


@api_v1_bp.route("/orders")
@login_required
def orders():
    items = list_cutting_orders(normalize_search(request.args.get("search")))
    data = []
    for order in items:
        row = order.to_dict()
        row["total_meters"] = order.total_meters
        row["line_count"] = len(order.lines)
        data.append(row)
    return cached_json(
        data, latest_timestamp(o.updated_at or o.created_at for o in items)
    )


@api_v1_bp.route("/orders/<int:order_id>")
@login_required
def order(order_id):
    order = get_or_404(CuttingOrder, order_id)
    data = order.to_dict(with_children=True)
    data["line_count"] = len(order.lines)
    data["lines_with_remarks"] = order.lines_with_remarks
    return jsonify(data)


@api_v1_bp.route("/lot-number")
@login_required
def lot_number():
    """Suggest a lot number not used by any order yet."""
    for _ in range(LOT_NUMBER_ATTEMPTS):
        candidate = generate_lot_number()
        if not lot_number_taken(candidate):
            return jsonify({"lot_number": candidate})
    return jsonify({"lot_number": candidate, "warning": "Lote posiblemente en uso"})
