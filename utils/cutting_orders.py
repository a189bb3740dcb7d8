"""Cutting order composition: payload parsing, validation and persistence.

The order form may arrive as a JSON body::

    {"client_id": 1, "lot_number": "OC240315042", "notes": "...",
     "lines": [{"fabric_id": 7, "meters": 12.5, "remarks": "..."}],
     "garments": [{"name": "Camisa", "sizes": [{"size": "M", "quantity": 10}]}]}

or as a classic form post with the parallel lists ``fabric_id``, ``meters``,
``remarks``, ``garment_name`` and ``garment_sizes`` (``"S=10, M=5"``).
"""

from __future__ import annotations

import logging
import math
import re

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from database import db
from error_handler import ValidationError
from models import Client, CuttingOrder, CuttingOrderLine, Fabric, Garment, GarmentSize
from security_utils import safe_log
from utils.lot_numbers import lot_number_taken
from utils.statuses import OrderStatus

_SIZE_SEPARATORS = re.compile(r"[,;\n]+")
_SIZE_PAIR = re.compile(r"^\s*([^=:]+?)\s*[=:]\s*(-?\d+)\s*$")
# Largest quantity an INTEGER column holds on every supported backend
MAX_QUANTITY = 2**31 - 1


def _blank_to_none(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _to_int(value, message, field=None) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(message, field=field)


def _check_quantity(size: str, quantity: int) -> None:
    if quantity < 0:
        raise ValidationError(
            f"Cantidad inválida para el talle {size}", field="garment_sizes"
        )
    if quantity > MAX_QUANTITY:
        raise ValidationError(
            f"Cantidad demasiado grande para el talle {size}", field="garment_sizes"
        )


def parse_meters(value, field="meters") -> float:
    """Positive float; accepts a decimal comma (``"2,5"``)."""
    try:
        meters = float(str(value).strip().replace(",", "."))
    except (TypeError, ValueError):
        raise ValidationError("Ingrese una cantidad de metros válida", field=field)
    if not math.isfinite(meters):
        raise ValidationError("Ingrese una cantidad de metros válida", field=field)
    if meters <= 0:
        raise ValidationError("Los metros deben ser mayores a cero", field=field)
    return meters


def parse_size_breakdown(raw: str | None) -> list[tuple[str, int]]:
    """Parse ``"S=10, M=5"`` (or ``S:10; M:5``) into ``[("S", 10), ("M", 5)]``.

    Zero quantities are dropped. Negative, oversized or malformed entries
    raise ``ValidationError``.
    """
    sizes: list[tuple[str, int]] = []
    for chunk in _SIZE_SEPARATORS.split(raw or ""):
        if not chunk.strip():
            continue
        match = _SIZE_PAIR.match(chunk)
        if not match:
            raise ValidationError(
                f"Formato de talles inválido: '{chunk.strip()}' (use TALLE=CANTIDAD)",
                field="garment_sizes",
            )
        size = match.group(1)
        quantity = _to_int(
            match.group(2), f"Cantidad inválida para el talle {size}", "garment_sizes"
        )
        _check_quantity(size, quantity)
        if quantity:
            sizes.append((size, quantity))
    return sizes


def payload_from_form(form) -> dict:
    """Turn the order form's parallel lists into the JSON payload shape."""
    fabric_ids = form.getlist("fabric_id")
    meters = form.getlist("meters")
    remarks = form.getlist("remarks")

    lines = []
    for idx, fabric_id in enumerate(fabric_ids):
        line_meters = meters[idx] if idx < len(meters) else ""
        line_remarks = remarks[idx] if idx < len(remarks) else ""
        # Empty rows left in the form
        if not str(fabric_id).strip() and not str(line_meters).strip():
            continue
        lines.append(
            {"fabric_id": fabric_id, "meters": line_meters, "remarks": line_remarks}
        )

    garment_names = form.getlist("garment_name")
    garment_sizes = form.getlist("garment_sizes")
    garments = []
    for idx, name in enumerate(garment_names):
        raw_sizes = garment_sizes[idx] if idx < len(garment_sizes) else ""
        if not str(name).strip() and not str(raw_sizes).strip():
            continue
        garments.append(
            {
                "name": name,
                "sizes": [
                    {"size": size, "quantity": qty}
                    for size, qty in parse_size_breakdown(raw_sizes)
                ],
            }
        )

    return {
        "client_id": form.get("client_id", ""),
        "lot_number": form.get("lot_number", ""),
        "notes": form.get("notes", ""),
        "lines": lines,
        "garments": garments,
    }


def normalize_order_payload(data: dict) -> dict:
    """Validate field formats and return a cleaned copy of ``data``."""
    if not str(data.get("client_id") or "").strip():
        raise ValidationError("Seleccione un cliente", field="client_id")
    client_id = _to_int(data["client_id"], "Cliente inválido", field="client_id")

    lot_number = (data.get("lot_number") or "").strip()
    if not lot_number:
        raise ValidationError("Ingrese el número de lote", field="lot_number")

    raw_lines = data.get("lines") or []
    if not raw_lines:
        raise ValidationError("Agregue al menos una tela a la orden", field="lines")

    lines = []
    seen = set()
    for raw in raw_lines:
        fabric_id = _to_int(raw.get("fabric_id"), "Seleccione una tela", "fabric_id")
        if fabric_id in seen:
            raise ValidationError(
                "Esta tela ya está agregada a la orden", field="fabric_id"
            )
        seen.add(fabric_id)
        lines.append(
            {
                "fabric_id": fabric_id,
                "meters": parse_meters(raw.get("meters")),
                "remarks": _blank_to_none(raw.get("remarks")),
            }
        )

    garments = []
    for raw in data.get("garments") or []:
        name = (raw.get("name") or "").strip()
        if not name:
            raise ValidationError("Ingrese el nombre de la prenda", field="garment_name")
        sizes = []
        for size in raw.get("sizes") or []:
            label = (str(size.get("size") or "")).strip()
            if not label:
                raise ValidationError("Ingrese el talle", field="garment_sizes")
            quantity = _to_int(
                size.get("quantity"),
                f"Cantidad inválida para el talle {label}",
                "garment_sizes",
            )
            _check_quantity(label, quantity)
            if quantity:
                sizes.append((label, quantity))
        garments.append({"name": name, "sizes": sizes})

    return {
        "client_id": client_id,
        "lot_number": lot_number,
        "notes": _blank_to_none(data.get("notes")),
        "lines": lines,
        "garments": garments,
    }


def _check_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        raise ValidationError("Cliente no encontrado", field="client_id")
    return client


def _check_lot_number(lot_number: str, exclude_order_id: int | None = None):
    if lot_number_taken(lot_number, exclude_order_id=exclude_order_id):
        raise ValidationError(
            f"El número de lote {lot_number} ya existe", field="lot_number"
        )


def _check_fabric(fabric_id: int, client_id: int) -> Fabric:
    fabric = db.session.get(Fabric, fabric_id)
    if fabric is None or fabric.is_deleted:
        raise ValidationError("Tela no encontrada o eliminada", field="fabric_id")
    if fabric.client_id != client_id:
        raise ValidationError(
            f"La tela {fabric.label} no pertenece al cliente seleccionado",
            field="fabric_id",
        )
    return fabric


def create_cutting_order(payload: dict) -> CuttingOrder:
    """Validate ``payload`` and persist the order with all its children.

    Everything is written in one transaction; any failure rolls back the
    order as well.
    """
    data = normalize_order_payload(payload)
    client = _check_client(data["client_id"])
    _check_lot_number(data["lot_number"])
    for line in data["lines"]:
        _check_fabric(line["fabric_id"], client.id)

    order = CuttingOrder(
        lot_number=data["lot_number"],
        client_id=client.id,
        status=OrderStatus.PENDING.value,
        notes=data["notes"],
    )
    try:
        db.session.add(order)
        db.session.flush()

        for line in data["lines"]:
            db.session.add(CuttingOrderLine(order_id=order.id, **line))
        db.session.flush()

        for garment_data in data["garments"]:
            garment = Garment(order_id=order.id, name=garment_data["name"])
            db.session.add(garment)
            db.session.flush()
            for size, quantity in garment_data["sizes"]:
                db.session.add(
                    GarmentSize(garment_id=garment.id, size=size, quantity=quantity)
                )

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    safe_log(
        current_app.logger,
        logging.INFO,
        (
            f"Cutting order {order.lot_number} created for client {client.id} ",
            f"with {len(data['lines'])} lines and {len(data['garments'])} garments",
        ),
    )
    return order


def update_cutting_order(order: CuttingOrder, data: dict) -> CuttingOrder:
    """Overwrite lot number, client, status and notes of ``order``."""
    lot_number = (data.get("lot_number") or "").strip()
    if not lot_number:
        raise ValidationError("Ingrese el número de lote", field="lot_number")

    if not str(data.get("client_id") or "").strip():
        raise ValidationError("Seleccione un cliente", field="client_id")
    client = _check_client(
        _to_int(data["client_id"], "Cliente inválido", field="client_id")
    )

    status = (data.get("status") or "").strip()
    if status not in OrderStatus.all():
        raise ValidationError("Estado inválido", field="status")

    _check_lot_number(lot_number, exclude_order_id=order.id)

    order.lot_number = lot_number
    order.client_id = client.id
    order.status = status
    order.notes = _blank_to_none(data.get("notes"))
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return order


def foreign_lines(order: CuttingOrder) -> list[CuttingOrderLine]:
    """Lines cutting a fabric that is not owned by the order's client."""
    return [
        line
        for line in order.lines
        if line.fabric is not None and line.fabric.client_id != order.client_id
    ]
