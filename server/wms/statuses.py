"""Document statuses, their transition tables and the pure status recompute rules.

Statuses are closed ``str`` enums stored by value. Any status change goes through
``ensure_transition`` so a pair that is not in the table is rejected with a
``StateConflictError`` instead of being written.
"""

from decimal import Decimal
from enum import Enum
from typing import Iterable

from .errors import StateConflictError


class LocationCategory(str, Enum):
    STORAGE = "STORAGE"
    HOLDING = "HOLDING"


class InventoryStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    DAMAGED = "DAMAGED"
    QUARANTINE = "QUARANTINE"
    BLOCKED = "BLOCKED"
    EMPTY = "EMPTY"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    RECEIVED = "RECEIVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class ASNStatus(str, Enum):
    PENDING = "PENDING"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED = "ARRIVED"
    PROCESSED = "PROCESSED"
    PUT_AWAY = "PUT_AWAY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SalesOrderStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PICKED = "PICKED"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"


class PickingStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PickingLineStatus(str, Enum):
    PENDING = "PENDING"
    PICKED = "PICKED"
    SHORT = "SHORT"


def enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


TRANSITIONS: dict[type[Enum], dict[str, set[str]]] = {
    PurchaseOrderStatus: {
        "DRAFT": {"SENT", "CANCELLED"},
        "SENT": {"RECEIVED", "CANCELLED"},
        "RECEIVED": {"CLOSED"},
    },
    ASNStatus: {
        "PENDING": {"IN_TRANSIT", "CANCELLED"},
        "IN_TRANSIT": {"ARRIVED", "CANCELLED"},
        "ARRIVED": {"PROCESSED", "CANCELLED"},
        "PROCESSED": {"PUT_AWAY", "COMPLETED"},
        "PUT_AWAY": {"PUT_AWAY", "COMPLETED"},
    },
    SalesOrderStatus: {
        "PENDING": {"IN_PROGRESS", "CANCELLED"},
        "IN_PROGRESS": {"PICKED", "PENDING", "CANCELLED"},
        "PICKED": {"SHIPPED"},
    },
    PickingStatus: {
        "PENDING": {"IN_PROGRESS", "COMPLETED", "CANCELLED"},
        "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
    },
}

TERMINAL_PICKING_STATUSES = {PickingStatus.COMPLETED.value, PickingStatus.CANCELLED.value}


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def can_transition(status_cls: type[Enum], current, target) -> bool:
    return _value(target) in TRANSITIONS[status_cls].get(_value(current), set())


def ensure_transition(status_cls: type[Enum], current, target, *, document: str) -> str:
    """Return the target value if ``current -> target`` is in the table, else raise."""
    if not can_transition(status_cls, current, target):
        raise StateConflictError(
            f"{document} cannot move from {_value(current)} to {_value(target)}.",
            document=document,
            current_status=_value(current),
            target_status=_value(target),
        )
    return _value(target)


def ensure_status_in(current, allowed: Iterable, *, document: str, action: str) -> None:
    allowed_values = sorted(_value(status) for status in allowed)
    if _value(current) not in allowed_values:
        raise StateConflictError(
            f"{document} is {_value(current)}; {action} requires status {' or '.join(allowed_values)}.",
            document=document,
            current_status=_value(current),
            allowed_statuses=allowed_values,
        )


def picking_line_status(qty_picked, qty_required) -> PickingLineStatus:
    picked = Decimal(qty_picked or 0)
    remaining = Decimal(qty_required or 0) - picked
    if remaining <= 0:
        return PickingLineStatus.PICKED
    if picked > 0:
        return PickingLineStatus.SHORT
    return PickingLineStatus.PENDING


def picking_status(current, lines: Iterable[tuple]) -> PickingStatus:
    """Derive a picking's status from ``(qty_picked, qty_required)`` pairs of its lines."""
    current_status = PickingStatus(_value(current))
    if current_status.value in TERMINAL_PICKING_STATUSES:
        return current_status
    pairs = list(lines)
    line_statuses = [picking_line_status(picked, required) for picked, required in pairs]
    if line_statuses and all(status == PickingLineStatus.PICKED for status in line_statuses):
        return PickingStatus.COMPLETED
    if any(Decimal(picked or 0) > 0 for picked, _ in pairs):
        return PickingStatus.IN_PROGRESS
    return current_status


def asn_putaway_status(current, lines: Iterable[tuple]) -> ASNStatus:
    """Derive an ASN's status from ``(put_away_qty, remaining_qty)`` pairs of its lines."""
    current_status = ASNStatus(_value(current))
    if current_status not in (ASNStatus.PROCESSED, ASNStatus.PUT_AWAY):
        return current_status
    pairs = list(lines)
    if pairs and all(Decimal(remaining or 0) <= 0 for _, remaining in pairs):
        return ASNStatus.COMPLETED
    if any(Decimal(put_away or 0) > 0 for put_away, _ in pairs):
        return ASNStatus.PUT_AWAY
    return current_status
