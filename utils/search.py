"""Query helpers shared by the list pages: search, category filter, sorting."""

from __future__ import annotations

from sqlalchemy import func, or_

from models import Client, Fabric
from utils.statuses import FabricCategory

CATEGORY_FILTERS = ("all", FabricCategory.FABRIC.value, FabricCategory.LINING.value)

# Inventory page: newest or oldest shipment first
FABRIC_SORTS = {
    "recent": (Fabric.shipping_date.desc(), Fabric.id.desc()),
    "oldest": (Fabric.shipping_date.asc(), Fabric.id.asc()),
}

# Client fabric view
CLIENT_FABRIC_SORTS = {
    "date_desc": (Fabric.shipping_date.desc(), Fabric.id.desc()),
    "date_asc": (Fabric.shipping_date.asc(), Fabric.id.asc()),
    "article": (Fabric.article.asc(), Fabric.id.asc()),
    "meters": (Fabric.meters.desc(), Fabric.id.asc()),
}


def normalize_search(raw: str | None) -> str:
    return (raw or "").strip()


def contains_any(term: str, *columns):
    """Case-insensitive substring match of ``term`` on any of ``columns``."""
    needle = term.lower()
    return or_(
        *(
            func.lower(func.coalesce(column, "")).contains(needle, autoescape=True)
            for column in columns
        )
    )


def pick(value: str | None, allowed, default: str) -> str:
    """``value`` when it is one of ``allowed``, else ``default``."""
    return value if value in allowed else default


def filter_fabrics(query, search: str = "", category: str = "all", with_client=True):
    """Apply the text search and category filter to a ``Fabric`` query.

    With ``with_client`` the search also covers the owning client's name.
    """
    if search:
        columns = [Fabric.article, Fabric.color, Fabric.description]
        if with_client:
            query = query.outerjoin(Client, Fabric.client_id == Client.id)
            columns.append(Client.name)
        query = query.filter(contains_any(search, *columns))
    if category and category != "all":
        query = query.filter(Fabric.category == category)
    return query


def active_fabrics():
    return Fabric.query.filter(Fabric.deleted_at.is_(None))


def active_client_fabrics(client_id: int) -> list:
    """Active fabrics of a client, newest shipment first (order fabric picker)."""
    return (
        active_fabrics()
        .filter(Fabric.client_id == client_id)
        .order_by(*FABRIC_SORTS["recent"])
        .all()
    )


def fabric_summary(fabrics) -> dict:
    """Count, total metres (one decimal) and count per category."""
    return {
        "count": len(fabrics),
        "total_meters": round(sum(f.meters or 0 for f in fabrics), 1),
        "fabric_count": len(
            [f for f in fabrics if f.category == FabricCategory.FABRIC.value]
        ),
        "lining_count": len(
            [f for f in fabrics if f.category == FabricCategory.LINING.value]
        ),
    }
