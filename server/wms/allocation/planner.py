"""Stock allocation: FIFO pick planning and putaway destination choice.

Both planners only read. Turning a plan into stock movement is the job of the
movement executor, which re-checks every quantity under row locks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
import logging
from typing import Iterable, Mapping

from sqlalchemy import and_
from sqlalchemy.orm import Session

from wms.errors import ValidationError
from wms.inventory.service import available_capacity
from wms.models import Inventory, Location
from wms.statuses import InventoryStatus, LocationCategory


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    location_id: int
    location_code: str
    inventory_id: int
    qty: Decimal


@dataclass
class AllocationPlan:
    item_id: int
    required_qty: Decimal
    available_qty: Decimal = Decimal("0")
    allocations: list[Allocation] = field(default_factory=list)

    @property
    def allocated_qty(self) -> Decimal:
        return sum((allocation.qty for allocation in self.allocations), Decimal("0"))

    @property
    def shortfall(self) -> Decimal:
        return max(self.required_qty - self.allocated_qty, Decimal("0"))

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0


def _fifo_candidates(db: Session, company_id: int, item_id: int, *, lock: bool = False) -> list[tuple[Inventory, Location]]:
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
        .order_by(Inventory.created_at.asc(), Location.code.asc())
    )
    if lock:
        query = query.with_for_update(of=Inventory)
    return query.all()


def plan_fifo_allocation(
    db: Session,
    company_id: int,
    item_id: int,
    required_qty: Decimal,
    *,
    lock: bool = False,
    claimed: Mapping[int, Decimal] | None = None,
) -> AllocationPlan:
    """Take stock oldest-first across storage locations until ``required_qty`` is covered.

    The plan never allocates more than is on hand; a short plan reports its shortfall and the
    caller decides whether that is an error. ``claimed`` maps inventory ids to quantity
    already promised to earlier plans in the same request.
    """
    required = Decimal(required_qty)
    if required <= 0:
        raise ValidationError("Required quantity must be greater than zero.", item_id=item_id, required=required)

    claimed = claimed or {}
    candidates = [
        (inventory, location, Decimal(inventory.quantity) - Decimal(claimed.get(inventory.id, 0)))
        for inventory, location in _fifo_candidates(db, company_id, item_id, lock=lock)
    ]
    candidates = [candidate for candidate in candidates if candidate[2] > 0]
    plan = AllocationPlan(
        item_id=item_id,
        required_qty=required,
        available_qty=sum((free for _, _, free in candidates), Decimal("0")),
    )
    remaining = required
    for inventory, location, free in candidates:
        if remaining <= 0:
            break
        take = min(remaining, free)
        plan.allocations.append(
            Allocation(location_id=location.id, location_code=location.code, inventory_id=inventory.id, qty=take)
        )
        remaining -= take

    logger.debug(
        "FIFO plan: item_id=%s required=%s available=%s allocations=%s shortfall=%s",
        item_id,
        required,
        plan.available_qty,
        [(allocation.location_code, allocation.qty) for allocation in plan.allocations],
        plan.shortfall,
    )
    return plan


def suggest_putaway_location(
    db: Session,
    company_id: int,
    item_id: int,
    qty: Decimal,
    *,
    exclude_location_ids: Iterable[int] = (),
    reserved: Mapping[int, Decimal] | None = None,
) -> Location | None:
    """Pick one storage location that can take ``qty``.

    A location already holding the item wins so stock stays consolidated; otherwise the
    location with the most free space. Ties go to the lower location code. ``reserved``
    holds capacity already promised to earlier suggestions.
    """
    qty = Decimal(qty)
    excluded = set(exclude_location_ids)
    reserved = reserved or {}

    def free_space(location: Location) -> Decimal:
        return available_capacity(location) - Decimal(reserved.get(location.id, 0))

    holding_item = (
        db.query(Location.id)
        .join(
            Inventory,
            and_(
                Inventory.location_id == Location.id,
                Inventory.item_id == item_id,
                Inventory.quantity > 0,
            ),
        )
        .filter(Inventory.company_id == company_id)
        .all()
    )
    holding_item_ids = {location_id for (location_id,) in holding_item}

    candidates = [
        location
        for location in db.query(Location)
        .filter(
            Location.company_id == company_id,
            Location.category == LocationCategory.STORAGE.value,
            Location.is_active.is_(True),
        )
        .all()
        if location.id not in excluded and free_space(location) >= qty
    ]
    if not candidates:
        logger.info("No storage location can take %s of item_id=%s", qty, item_id)
        return None

    candidates.sort(key=lambda location: (location.id not in holding_item_ids, -free_space(location), location.code))
    return candidates[0]
