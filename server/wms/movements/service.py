"""Movement executor: the only code path that moves stock between two locations.

A move locks both locations (ascending id), then the source and destination inventory
rows, re-checks quantity and capacity under those locks and only then writes. Callers run
it inside ``wms.db.atomic`` so a failure anywhere in their unit of work leaves no partial
movement behind.
"""

from dataclasses import dataclass
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from wms.db import atomic
from wms.errors import InsufficientCapacityError, InsufficientStockError, ValidationError
from wms.inventory.service import (
    MOVEMENT_TRANSFER,
    available_capacity,
    can_accommodate,
    create_inventory_movement,
    get_inventory_record,
    get_item,
    lock_locations,
    reduce_stock,
    upsert_add,
)
from wms.statuses import InventoryStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveResult:
    item_id: int
    from_location_id: int
    to_location_id: int
    qty: Decimal
    unit_cost: Decimal
    source_qty_before: Decimal
    source_qty_after: Decimal
    dest_qty_before: Decimal
    dest_qty_after: Decimal


def move_stock(
    db: Session,
    company_id: int,
    *,
    item_id: int,
    from_location_id: int,
    to_location_id: int,
    qty: Decimal,
    source_reference: str | None = None,
    reason: str = MOVEMENT_TRANSFER,
    enforce_capacity: bool = True,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> MoveResult:
    qty = Decimal(qty)
    if qty <= 0:
        raise ValidationError("Quantity to move must be greater than zero.", item_id=item_id, qty=qty)
    if from_location_id == to_location_id:
        raise ValidationError(
            "Source and destination location must differ.",
            item_id=item_id,
            location_id=from_location_id,
        )

    item = get_item(db, company_id, item_id)
    locations = lock_locations(db, company_id, [from_location_id, to_location_id])
    source_location = locations[from_location_id]
    dest_location = locations[to_location_id]

    source = get_inventory_record(db, company_id, item_id, from_location_id, lock=True)
    on_hand = Decimal(source.quantity or 0) if source and source.status == InventoryStatus.AVAILABLE.value else Decimal("0")
    if source is None or on_hand < qty:
        raise InsufficientStockError(
            f"Insufficient stock for {item.label} at {source_location.code}: requested {qty}, available {on_hand}.",
            item_id=item_id,
            location_id=from_location_id,
            location_code=source_location.code,
            requested=qty,
            available=on_hand,
        )

    if enforce_capacity and not can_accommodate(dest_location, qty):
        free = available_capacity(dest_location)
        raise InsufficientCapacityError(
            f"Location {dest_location.code} cannot take {qty} of {item.label}: available capacity {free}.",
            location_id=to_location_id,
            location_code=dest_location.code,
            item_id=item_id,
            requested=qty,
            available=free,
        )

    destination = get_inventory_record(db, company_id, item_id, to_location_id, lock=True)
    dest_qty_before = Decimal(destination.quantity or 0) if destination else Decimal("0")
    source_qty_before = Decimal(source.quantity)
    cost_basis = Decimal(source.unit_cost or 0)

    reduce_stock(db, inventory=source, location=source_location, qty=qty)
    destination = upsert_add(
        db,
        company_id,
        item_id=item_id,
        location=dest_location,
        qty=qty,
        unit_cost=cost_basis,
        source_reference=source_reference,
    )
    create_inventory_movement(
        db,
        company_id,
        item_id=item_id,
        qty=qty,
        reason=reason,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        unit_cost=cost_basis,
        source_reference=source_reference,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    logger.info(
        "Moved %s of %s from %s to %s (%s, ref=%s)",
        qty,
        item.sku,
        source_location.code,
        dest_location.code,
        reason,
        source_reference,
    )
    return MoveResult(
        item_id=item_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        qty=qty,
        unit_cost=cost_basis,
        source_qty_before=source_qty_before,
        source_qty_after=Decimal(source.quantity),
        dest_qty_before=dest_qty_before,
        dest_qty_after=Decimal(destination.quantity),
    )


def transfer_stock(
    db: Session,
    company_id: int,
    *,
    item_id: int,
    from_location_id: int,
    to_location_id: int,
    qty: Decimal,
    notes: str | None = None,
) -> MoveResult:
    """Standalone location-to-location transfer as its own unit of work."""
    with atomic(db):
        return move_stock(
            db,
            company_id,
            item_id=item_id,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            qty=qty,
            source_reference=notes,
            reason=MOVEMENT_TRANSFER,
        )
