from __future__ import annotations

import random
from datetime import date

from sqlalchemy import func

from models import CuttingOrder

LOT_PREFIX = "OC"


def generate_lot_number(today: date | None = None, rng=None) -> str:
    """Suggested lot number: ``OC`` + ``YYMMDD`` + three random digits.

    >>> generate_lot_number(date(2024, 3, 15), random.Random(1))[:8]
    'OC240315'
    """
    today = today or date.today()
    rng = rng or random
    return f"{LOT_PREFIX}{today:%y%m%d}{rng.randint(0, 999):03d}"


def lot_number_taken(lot_number: str, exclude_order_id: int | None = None) -> bool:
    """Case-insensitive uniqueness check against existing orders."""
    query = CuttingOrder.query.filter(
        func.lower(CuttingOrder.lot_number) == lot_number.strip().lower()
    )
    if exclude_order_id is not None:
        query = query.filter(CuttingOrder.id != exclude_order_id)
    return query.first() is not None
