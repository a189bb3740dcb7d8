from enum import Enum


class OrderStatus(str, Enum):
    """Cutting order statuses."""

    PENDING = "pending"
    IN_PROCESS = "in_process"
    COMPLETED = "completed"

    @classmethod
    def all(cls):
        """Return the status codes in workflow order."""
        return [status.value for status in cls]


class FabricCategory(str, Enum):
    FABRIC = "fabric"
    LINING = "lining"

    @classmethod
    def all(cls):
        return [c.value for c in cls]


class FabricPattern(str, Enum):
    PLAIN = "plain"
    FANCY = "fancy"

    @classmethod
    def all(cls):
        return [p.value for p in cls]


_STATUS_LABELS_ES = {
    "pending": "Pendiente",
    "in_process": "En Proceso",
    "completed": "Completado",
}

_CATEGORY_LABELS_ES = {
    "fabric": "Tela",
    "lining": "Forrería",
}

_PATTERN_LABELS_ES = {
    "plain": "Lisa",
    "fancy": "Fantasía",
}


def get_status_label(value: str) -> str:
    """Spanish label for an order status code; unknown codes pass through."""
    return _STATUS_LABELS_ES.get(value, value)


def get_status_class(value: str) -> str:
    """CSS class suffix for the status badge.

    - Pendiente -> secondary
    - En Proceso -> primary
    - Completado -> success
    """
    if value == OrderStatus.PENDING.value:
        return "secondary"
    if value == OrderStatus.IN_PROCESS.value:
        return "primary"
    if value == OrderStatus.COMPLETED.value:
        return "success"
    return "outline"


def get_category_label(value: str) -> str:
    return _CATEGORY_LABELS_ES.get(value, value)


def get_pattern_label(value: str) -> str:
    return _PATTERN_LABELS_ES.get(value, value)
