from datetime import datetime
from decimal import Decimal
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from wms.errors import InsufficientStockError, NotFoundError, StateConflictError, ValidationError
from wms.models import Inventory, InventoryMovement, Item, Location
from wms.statuses import InventoryStatus, LocationCategory
from wms.utils import quantize_money, weighted_average_cost


logger = logging.getLogger(__name__)

MOVEMENT_RECEIPT = "RECEIPT"
MOVEMENT_PUTAWAY = "PUTAWAY"
MOVEMENT_PICK = "PICK"
MOVEMENT_PICK_RETURN = "PICK_RETURN"
MOVEMENT_SHIPMENT = "SHIPMENT"
MOVEMENT_TRANSFER = "TRANSFER"


def get_item(db: Session, company_id: int, item_id: int) -> Item:
    item = db.query(Item).filter(Item.company_id == company_id, Item.id == item_id).first()
    if not item:
        raise NotFoundError(f"Item {item_id} not found.", item_id=item_id)
    return item


def get_location(db: Session, company_id: int, location_id: int, *, lock: bool = False) -> Location:
    query = db.query(Location).filter(Location.company_id == company_id, Location.id == location_id)
    if lock:
        query = query.with_for_update()
    location = query.first()
    if not location:
        raise NotFoundError(f"Location {location_id} not found.", location_id=location_id)
    return location


def lock_locations(db: Session, company_id: int, location_ids) -> dict[int, Location]:
    """Lock locations in ascending id order so concurrent movers never deadlock on them."""
    locked: dict[int, Location] = {}
    for location_id in sorted(set(location_ids)):
        locked[location_id] = get_location(db, company_id, location_id, lock=True)
    return locked


def get_inventory_record(
    db: Session,
    company_id: int,
    item_id: int,
    location_id: int,
    *,
    lock: bool = False,
) -> Inventory | None:
    query = db.query(Inventory).filter(
        Inventory.company_id == company_id,
        Inventory.item_id == item_id,
        Inventory.location_id == location_id,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def available_capacity(location: Location) -> Decimal:
    return Decimal(location.max_capacity or 0) - Decimal(location.current_capacity or 0)


def can_accommodate(location: Location, qty: Decimal) -> bool:
    return available_capacity(location) >= Decimal(qty)


def apply_capacity_delta(location: Location, delta: Decimal) -> Location:
    max_capacity = Decimal(location.max_capacity or 0)
    new_capacity = Decimal(location.current_capacity or 0) + Decimal(delta)
    if new_capacity < 0 or new_capacity > max_capacity:
        logger.warning(
            "Capacity of location %s out of range after delta %s (value=%s, max=%s); clamping",
            location.code,
            delta,
            new_capacity,
            max_capacity,
        )
        new_capacity = min(max(new_capacity, Decimal("0")), max_capacity)
    location.current_capacity = new_capacity
    location.is_full = new_capacity >= max_capacity
    return location


def upsert_add(
    db: Session,
    company_id: int,
    *,
    item_id: int,
    location: Location,
    qty: Decimal,
    unit_cost: Decimal,
    source_reference: str | None = None,
) -> Inventory:
    """Add stock to an (item, location) row, merging cost as a weighted average."""
    incoming_qty = Decimal(qty)
    if incoming_qty <= 0:
        raise ValidationError("Quantity to add must be greater than zero.", item_id=item_id, qty=incoming_qty)
    incoming_cost = quantize_money(unit_cost or 0)
    now = datetime.utcnow()

    inventory = get_inventory_record(db, company_id, item_id, location.id, lock=True)
    if inventory is None:
        inventory = Inventory(
            company_id=company_id,
            item_id=item_id,
            location_id=location.id,
            quantity=incoming_qty,
            unit_cost=incoming_cost,
            status=InventoryStatus.AVAILABLE.value,
            source_reference=source_reference,
            created_at=now,
            last_updated_at=now,
        )
        db.add(inventory)
    else:
        existing_qty = Decimal(inventory.quantity or 0)
        inventory.unit_cost = weighted_average_cost(existing_qty, inventory.unit_cost, incoming_qty, incoming_cost)
        inventory.quantity = existing_qty + incoming_qty
        if inventory.status == InventoryStatus.EMPTY.value:
            inventory.status = InventoryStatus.AVAILABLE.value
        if source_reference:
            inventory.source_reference = source_reference
        inventory.last_updated_at = now

    apply_capacity_delta(location, incoming_qty)
    db.flush()
    return inventory


def reduce_stock(db: Session, *, inventory: Inventory, location: Location, qty: Decimal) -> Inventory:
    outgoing_qty = Decimal(qty)
    if outgoing_qty <= 0:
        raise ValidationError("Quantity to reduce must be greater than zero.", item_id=inventory.item_id, qty=outgoing_qty)
    on_hand = Decimal(inventory.quantity or 0)
    if outgoing_qty > on_hand:
        item_label = inventory.item.label if inventory.item else f"Item #{inventory.item_id}"
        raise InsufficientStockError(
            f"Insufficient stock for {item_label} at {location.code}: requested {outgoing_qty}, available {on_hand}.",
            item_id=inventory.item_id,
            location_id=location.id,
            location_code=location.code,
            requested=outgoing_qty,
            available=on_hand,
        )

    inventory.quantity = on_hand - outgoing_qty
    if inventory.quantity == 0:
        inventory.status = InventoryStatus.EMPTY.value
    inventory.last_updated_at = datetime.utcnow()
    apply_capacity_delta(location, -outgoing_qty)
    return inventory


def create_inventory_movement(
    db: Session,
    company_id: int,
    *,
    item_id: int,
    qty: Decimal,
    reason: str,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    unit_cost: Decimal | None = None,
    source_reference: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        company_id=company_id,
        item_id=item_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        qty=qty,
        unit_cost=unit_cost or Decimal("0"),
        reason=reason,
        source_reference=source_reference,
        reference_type=reference_type,
        reference_id=reference_id,
        created_at=datetime.utcnow(),
    )
    db.add(movement)
    return movement


def set_inventory_status(
    db: Session,
    company_id: int,
    inventory_id: int,
    status: InventoryStatus,
    notes: str | None = None,
) -> Inventory:
    inventory = (
        db.query(Inventory)
        .filter(Inventory.company_id == company_id, Inventory.id == inventory_id)
        .with_for_update()
        .first()
    )
    if not inventory:
        raise NotFoundError(f"Inventory record {inventory_id} not found.", inventory_id=inventory_id)
    status = InventoryStatus(status)
    if status == InventoryStatus.EMPTY:
        raise ValidationError("EMPTY is derived from quantity and cannot be set directly.")
    if Decimal(inventory.quantity or 0) == 0:
        raise StateConflictError(
            f"Inventory record {inventory_id} is empty; its status cannot change.",
            inventory_id=inventory_id,
        )
    inventory.status = status.value
    if notes is not None:
        inventory.notes = notes
    inventory.last_updated_at = datetime.utcnow()
    return inventory


def recompute_location_capacity(db: Session, company_id: int, location_id: int | None = None) -> list[dict]:
    """Rebuild ``current_capacity`` from the ledger; returns the locations that had drifted."""
    totals = dict(
        db.query(Inventory.location_id, func.coalesce(func.sum(Inventory.quantity), 0))
        .filter(Inventory.company_id == company_id)
        .group_by(Inventory.location_id)
        .all()
    )
    query = db.query(Location).filter(Location.company_id == company_id)
    if location_id is not None:
        query = query.filter(Location.id == location_id)

    drifted: list[dict] = []
    for location in query.order_by(Location.id.asc()).with_for_update().all():
        actual = quantize_money(totals.get(location.id) or 0)
        stored = Decimal(location.current_capacity or 0)
        if actual != stored:
            drifted.append({"location_id": location.id, "code": location.code, "stored": stored, "actual": actual})
            logger.warning("Location %s capacity drift: stored=%s actual=%s", location.code, stored, actual)
        location.current_capacity = actual
        location.is_full = actual >= Decimal(location.max_capacity or 0)
    return drifted


def get_available_locations(
    db: Session,
    company_id: int,
    item_id: int,
    min_quantity: Decimal | None = None,
) -> list[dict]:
    query = (
        db.query(Inventory, Location)
        .join(Location, Location.id == Inventory.location_id)
        .filter(
            Inventory.company_id == company_id,
            Inventory.item_id == item_id,
            Inventory.status == InventoryStatus.AVAILABLE.value,
            Inventory.quantity > 0,
            Location.category == LocationCategory.STORAGE.value,
            Location.is_active.is_(True),
        )
    )
    if min_quantity is not None:
        query = query.filter(Inventory.quantity >= min_quantity)
    rows = query.order_by(Inventory.created_at.asc(), Location.code.asc()).all()
    logger.debug("Available locations lookup: item_id=%s company_id=%s rows=%s", item_id, company_id, len(rows))
    return [
        {
            "location_id": location.id,
            "location_code": location.code,
            "location_name": location.name,
            "inventory_id": inventory.id,
            "available_stock": Decimal(inventory.quantity or 0),
            "unit_cost": Decimal(inventory.unit_cost or 0),
            "max_capacity": Decimal(location.max_capacity or 0),
            "current_capacity": Decimal(location.current_capacity or 0),
            "available_capacity": available_capacity(location),
            "is_full": location.is_full,
            "stocked_at": inventory.created_at,
        }
        for inventory, location in rows
    ]
