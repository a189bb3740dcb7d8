"""
Dashboard
"""

import logging

from flask import Blueprint, current_app, make_response, redirect, render_template, url_for
from flask_login import current_user, login_required
from sqlalchemy import func

from models import Client, CuttingOrder, Fabric, db
from security_utils import safe_log
from utils.search import active_fabrics
from utils.statuses import OrderStatus

main_bp = Blueprint("main", __name__)

RECENT_SHIPMENTS = 5


def dashboard_stats() -> dict:
    """Client count, active fabric count, recent shipments and orders by status."""
    status_counts = dict(
        db.session.query(CuttingOrder.status, func.count(CuttingOrder.id))
        .group_by(CuttingOrder.status)
        .all()
    )
    return {
        "client_count": Client.query.count(),
        "fabric_count": active_fabrics().count(),
        "recent_fabrics": active_fabrics()
        .order_by(Fabric.shipping_date.desc(), Fabric.id.desc())
        .limit(RECENT_SHIPMENTS)
        .all(),
        "order_counts": {s: status_counts.get(s, 0) for s in OrderStatus.all()},
    }


@main_bp.route("/")
@login_required
def index():
    return redirect(url_for("main.dashboard"))


@main_bp.route("/dashboard")
@login_required
def dashboard():
    safe_log(
        current_app.logger,
        logging.INFO,
        f"User {current_user.username} opened the dashboard",
    )
    response = make_response(render_template("dashboard.html", **dashboard_stats()))
    response.headers["Cache-Control"] = "no-cache"
    return response
