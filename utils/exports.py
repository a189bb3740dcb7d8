"""Spreadsheet and messaging exports for fabrics and cutting orders."""

from __future__ import annotations

import io
import re
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from utils.statuses import get_category_label, get_pattern_label, get_status_label

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
WHATSAPP_URL = "https://wa.me/"

HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF")
TITLE_FONT = Font(bold=True, size=14)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)


def _fmt_date(value) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def _fmt_meters(value) -> str:
    return f"{value or 0:g}"


def _header_row(ws, row: int, headers, widths=None):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center")
    for col, width in enumerate(widths or [], 1):
        ws.column_dimensions[ws.cell(row=row, column=col).column_letter].width = width


def _data_row(ws, row: int, values):
    for col, value in enumerate(values, 1):
        ws.cell(row=row, column=col, value=value).border = THIN_BORDER


def _to_stream(wb: Workbook) -> io.BytesIO:
    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output


def build_fabrics_workbook(fabrics) -> io.BytesIO:
    """Inventory sheet, one row per fabric, with a metres total."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Telas"

    _header_row(
        ws,
        1,
        [
            "Artículo",
            "Color",
            "Descripción",
            "Metros",
            "Fecha de envío",
            "Categoría",
            "Tipo",
            "Cliente",
        ],
        widths=[16, 16, 40, 10, 16, 12, 12, 28],
    )

    row = 2
    for fabric in fabrics:
        _data_row(
            ws,
            row,
            [
                fabric.article,
                fabric.color,
                fabric.description,
                fabric.meters,
                _fmt_date(fabric.shipping_date),
                get_category_label(fabric.category),
                get_pattern_label(fabric.pattern),
                fabric.client_name or "",
            ],
        )
        row += 1

    ws.cell(row=row, column=3, value="Total metros").font = Font(bold=True)
    total = ws.cell(row=row, column=4, value=f"=SUM(D2:D{row - 1})" if row > 2 else 0)
    total.font = Font(bold=True)
    ws.freeze_panes = "A2"
    return _to_stream(wb)


def build_order_workbook(order) -> io.BytesIO:
    """Order header, lines sheet and garments/sizes sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Orden"

    ws["A1"] = f"Orden de Corte {order.lot_number}"
    ws["A1"].font = TITLE_FONT
    ws.merge_cells("A1:D1")

    header = [
        ("Número de lote", order.lot_number),
        ("Cliente", order.client_name),
        ("Fecha", _fmt_date(order.created_on)),
        ("Estado", get_status_label(order.status)),
        ("Notas", order.notes or ""),
        ("Total metros", order.total_meters),
        ("Telas", len(order.lines)),
        ("Total prendas", order.total_pieces),
    ]
    for offset, (label, value) in enumerate(header, 3):
        ws.cell(row=offset, column=1, value=label).font = Font(bold=True)
        ws.cell(row=offset, column=2, value=value)
    ws.column_dimensions["A"].width = 18
    ws.column_dimensions["B"].width = 40

    lines_ws = wb.create_sheet("Telas")
    _header_row(
        lines_ws,
        1,
        ["Artículo", "Color", "Categoría", "Descripción", "Metros", "Observaciones"],
        widths=[16, 16, 12, 36, 10, 36],
    )
    row = 2
    for line in order.lines:
        fabric = line.fabric
        _data_row(
            lines_ws,
            row,
            [
                fabric.article if fabric else "",
                fabric.color if fabric else "",
                get_category_label(fabric.category) if fabric else "",
                fabric.description if fabric else "",
                line.meters,
                line.remarks or "",
            ],
        )
        row += 1
    lines_ws.cell(row=row, column=4, value="Total").font = Font(bold=True)
    lines_ws.cell(row=row, column=5, value=order.total_meters).font = Font(bold=True)

    garments_ws = wb.create_sheet("Prendas")
    sizes = _size_columns(order)
    _header_row(
        garments_ws,
        1,
        ["Prenda", *sizes, "Total"],
        widths=[24, *([8] * len(sizes)), 10],
    )
    row = 2
    for garment in order.garments:
        quantities = {s.size: s.quantity for s in garment.sizes}
        _data_row(
            garments_ws,
            row,
            [
                garment.name,
                *(quantities.get(size, 0) for size in sizes),
                garment.total_quantity,
            ],
        )
        row += 1
    total_cell = garments_ws.cell(row=row, column=len(sizes) + 2, value=order.total_pieces)
    total_cell.font = Font(bold=True)

    return _to_stream(wb)


def _size_columns(order) -> list[str]:
    """Distinct size labels of the order in first-seen order."""
    seen: list[str] = []
    for garment in order.garments:
        for size in garment.sizes:
            if size.size not in seen:
                seen.append(size.size)
    return seen


def order_filename(order) -> str:
    safe_lot = re.sub(r"[^A-Za-z0-9_-]+", "_", order.lot_number).strip("_") or "orden"
    return f"orden_corte_{safe_lot}.xlsx"


def normalize_phone(phone: str | None, country_code: str = "") -> str:
    """Digits of ``phone``, prefixed with ``country_code`` when missing."""
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    code = re.sub(r"\D", "", country_code or "")
    if code and not digits.startswith(code):
        digits = code + digits.lstrip("0")
    return digits


def order_message(order) -> str:
    """Plain-text order summary used to prefill the chat."""
    parts = [
        f"*Orden de Corte {order.lot_number}*",
        f"Cliente: {order.client_name}",
        f"Fecha: {_fmt_date(order.created_on)}",
        f"Estado: {get_status_label(order.status)}",
        "",
        "*Telas:*",
    ]
    for line in order.lines:
        fabric = line.fabric
        label = f"{fabric.article} {fabric.color}".strip() if fabric else "?"
        text = f"- {label}: {_fmt_meters(line.meters)} m"
        if line.remarks:
            text += f" ({line.remarks})"
        parts.append(text)
    parts.append(f"Total: {_fmt_meters(order.total_meters)} m")

    if order.garments:
        parts += ["", "*Prendas:*"]
        for garment in order.garments:
            sizes = ", ".join(f"{s.size}={s.quantity}" for s in garment.sizes)
            parts.append(f"- {garment.name}: {sizes} (total {garment.total_quantity})")
        parts.append(f"Total prendas: {order.total_pieces}")

    if order.notes:
        parts += ["", f"Notas: {order.notes}"]
    return "\n".join(parts)


def whatsapp_link(order, country_code: str = "") -> str:
    """``https://wa.me/<digits>?text=...`` addressed to the order's client.

    Without a client phone the link opens the contact picker.
    """
    phone = order.client.phone if order.client else None
    digits = normalize_phone(phone, country_code)
    return f"{WHATSAPP_URL}{digits}?text={quote(order_message(order))}"
