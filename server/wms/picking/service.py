from collections import defaultdict
from datetime import datetime
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from wms.allocation.planner import plan_fifo_allocation
from wms.db import atomic
from wms.errors import InsufficientStockError, NotFoundError, StateConflictError, ValidationError
from wms.inventory.service import MOVEMENT_PICK, MOVEMENT_PICK_RETURN, get_item, get_location, lock_locations
from wms.models import InventoryMovement, Picking, PickingLine, SalesOrder
from wms.movements.service import move_stock
from wms.numbering import PREFIX_PICKING, next_document_number
from wms.statuses import (
    LocationCategory,
    PickingLineStatus,
    PickingStatus,
    SalesOrderStatus,
    TERMINAL_PICKING_STATUSES,
    ensure_status_in,
    ensure_transition,
    picking_line_status,
    picking_status,
)


logger = logging.getLogger(__name__)

REFERENCE_TYPE = "PICKING"


def lock_sales_order(db: Session, company_id: int, sales_order_id: int) -> SalesOrder:
    sales_order = (
        db.query(SalesOrder)
        .filter(SalesOrder.company_id == company_id, SalesOrder.id == sales_order_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not sales_order:
        raise NotFoundError(f"Sales order {sales_order_id} not found.", sales_order_id=sales_order_id)
    return sales_order


def lock_picking(db: Session, company_id: int, picking_id: int) -> Picking:
    picking = (
        db.query(Picking)
        .filter(Picking.company_id == company_id, Picking.id == picking_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not picking:
        raise NotFoundError(f"Picking {picking_id} not found.", picking_id=picking_id)
    return picking


def get_picking(db: Session, company_id: int, picking_id: int) -> Picking:
    picking = db.query(Picking).filter(Picking.company_id == company_id, Picking.id == picking_id).first()
    if not picking:
        raise NotFoundError(f"Picking {picking_id} not found.", picking_id=picking_id)
    return picking


def active_picking_for(db: Session, company_id: int, sales_order_id: int) -> Picking | None:
    return (
        db.query(Picking)
        .filter(
            Picking.company_id == company_id,
            Picking.sales_order_id == sales_order_id,
            Picking.status != PickingStatus.CANCELLED.value,
        )
        .order_by(Picking.id.desc())
        .first()
    )


def get_picking_by_sales_order(db: Session, company_id: int, sales_order_id: int) -> Picking | None:
    """Latest non-cancelled picking of the order, else its latest picking, else ``None``."""
    picking = active_picking_for(db, company_id, sales_order_id)
    if picking:
        return picking
    return (
        db.query(Picking)
        .filter(Picking.company_id == company_id, Picking.sales_order_id == sales_order_id)
        .order_by(Picking.id.desc())
        .first()
    )


def _refresh_line(line: PickingLine) -> None:
    line.remaining_qty = Decimal(line.qty_required) - Decimal(line.qty_picked or 0)
    line.status = picking_line_status(line.qty_picked, line.qty_required).value


def create_picking(db: Session, company_id: int, sales_order_id: int, notes: str | None = None) -> Picking:
    with atomic(db):
        sales_order = lock_sales_order(db, company_id, sales_order_id)
        document = f"Sales order {sales_order.so_number}"
        ensure_status_in(
            sales_order.status,
            {SalesOrderStatus.PENDING, SalesOrderStatus.IN_PROGRESS},
            document=document,
            action="creating a picking",
        )
        existing = active_picking_for(db, company_id, sales_order.id)
        if existing:
            raise StateConflictError(
                f"{document} already has picking {existing.picking_number} ({existing.status}).",
                sales_order_id=sales_order.id,
                picking_id=existing.id,
            )
        if not sales_order.holding_location_id:
            raise ValidationError(
                f"{document} has no holding location; assign one before picking.",
                sales_order_id=sales_order.id,
            )
        if not sales_order.lines:
            raise ValidationError(f"{document} has no lines to pick.", sales_order_id=sales_order.id)

        claimed: dict[int, Decimal] = defaultdict(Decimal)
        planned = []
        for so_line in sales_order.lines:
            plan = plan_fifo_allocation(
                db,
                company_id,
                so_line.item_id,
                so_line.quantity,
                lock=True,
                claimed=claimed,
            )
            if not plan.is_complete:
                item = get_item(db, company_id, so_line.item_id)
                logger.warning(
                    "Picking rejected for %s: %s short by %s",
                    sales_order.so_number,
                    item.sku,
                    plan.shortfall,
                )
                raise InsufficientStockError(
                    f"Insufficient stock for {item.label}: required {plan.required_qty}, "
                    f"available {plan.available_qty}.",
                    item_id=item.id,
                    requested=plan.required_qty,
                    available=plan.available_qty,
                    sales_order_line_id=so_line.id,
                )
            for allocation in plan.allocations:
                claimed[allocation.inventory_id] += allocation.qty
            planned.append((so_line, plan))

        picking = Picking(
            company_id=company_id,
            picking_number=next_document_number(db, company_id, PREFIX_PICKING),
            sales_order_id=sales_order.id,
            status=PickingStatus.PENDING.value,
            notes=notes,
            created_at=datetime.utcnow(),
        )
        picking.lines = [
            PickingLine(
                sales_order_line_id=so_line.id,
                item_id=so_line.item_id,
                location_id=allocation.location_id,
                qty_required=allocation.qty,
                qty_picked=Decimal("0"),
                remaining_qty=allocation.qty,
                status=PickingLineStatus.PENDING.value,
            )
            for so_line, plan in planned
            for allocation in plan.allocations
        ]
        db.add(picking)
        if sales_order.status == SalesOrderStatus.PENDING.value:
            sales_order.status = ensure_transition(
                SalesOrderStatus, sales_order.status, SalesOrderStatus.IN_PROGRESS, document=document
            )

    logger.info(
        "Created picking %s for %s with %s line(s)",
        picking.picking_number,
        sales_order.so_number,
        len(picking.lines),
    )
    return picking


def _collect_pick_entries(
    db: Session, company_id: int, picking: Picking, holding_location_id: int, entries: list[dict]
) -> list[tuple]:
    lines_by_id = {line.id: line for line in picking.lines}
    totals: dict[int, Decimal] = defaultdict(Decimal)
    grouped: dict[tuple[int, int], Decimal] = defaultdict(Decimal)

    for entry in entries:
        line = lines_by_id.get(entry["picking_line_id"])
        if line is None:
            raise ValidationError(
                f"Line {entry['picking_line_id']} does not belong to picking {picking.picking_number}.",
                picking_id=picking.id,
                picking_line_id=entry["picking_line_id"],
            )
        qty = Decimal(entry["qty"])
        if qty <= 0:
            raise ValidationError(
                "Picked quantity must be greater than zero.",
                picking_line_id=line.id,
                qty=qty,
            )
        source_location_id = entry.get("source_location_id") or line.location_id
        if source_location_id == holding_location_id:
            raise ValidationError(
                "Stock cannot be picked from the order's own holding location.",
                picking_line_id=line.id,
                location_id=source_location_id,
            )
        source = get_location(db, company_id, source_location_id)
        if source.category != LocationCategory.STORAGE.value or not source.is_active:
            raise ValidationError(
                f"Location {source.code} is not an active storage location; stock can only be picked from storage.",
                picking_line_id=line.id,
                location_id=source.id,
                category=source.category,
            )
        totals[line.id] += qty
        grouped[(line.id, source_location_id)] += qty

    for line_id, total in totals.items():
        line = lines_by_id[line_id]
        remaining = Decimal(line.qty_required) - Decimal(line.qty_picked or 0)
        if total > remaining:
            item_label = line.item.label if line.item else f"Item #{line.item_id}"
            raise ValidationError(
                f"Cannot pick {total} of {item_label} on line {line.id}: only {remaining} remaining.",
                picking_line_id=line.id,
                requested=total,
                remaining=remaining,
            )

    return sorted(
        ((lines_by_id[line_id], source_location_id, qty) for (line_id, source_location_id), qty in grouped.items()),
        key=lambda row: (row[1], row[0].id),
    )


def process_picking(db: Session, company_id: int, picking_id: int, entries: list[dict]) -> Picking:
    """Move picked quantities into the order's holding location and advance the picking."""
    if not entries:
        raise ValidationError("At least one picked line is required.", picking_id=picking_id)

    with atomic(db):
        picking = lock_picking(db, company_id, picking_id)
        sales_order = lock_sales_order(db, company_id, picking.sales_order_id)
        if picking.status in TERMINAL_PICKING_STATUSES:
            raise StateConflictError(
                f"Picking {picking.picking_number} is {picking.status} and cannot be processed.",
                picking_id=picking.id,
                current_status=picking.status,
            )
        if sales_order.status == SalesOrderStatus.CANCELLED.value:
            raise StateConflictError(
                f"Sales order {sales_order.so_number} is cancelled; picking {picking.picking_number} cannot be processed.",
                picking_id=picking.id,
                sales_order_id=sales_order.id,
            )
        if not sales_order.holding_location_id:
            raise ValidationError(
                f"Sales order {sales_order.so_number} has no holding location.",
                sales_order_id=sales_order.id,
            )

        picks = _collect_pick_entries(db, company_id, picking, sales_order.holding_location_id, entries)
        lock_locations(
            db,
            company_id,
            [sales_order.holding_location_id] + [source_location_id for _, source_location_id, _ in picks],
        )
        for line, source_location_id, qty in picks:
            move_stock(
                db,
                company_id,
                item_id=line.item_id,
                from_location_id=source_location_id,
                to_location_id=sales_order.holding_location_id,
                qty=qty,
                source_reference=picking.picking_number,
                reason=MOVEMENT_PICK,
                reference_type=REFERENCE_TYPE,
                reference_id=picking.id,
            )
            line.qty_picked = Decimal(line.qty_picked or 0) + qty

        for line in picking.lines:
            _refresh_line(line)

        previous_status = picking.status
        new_status = picking_status(picking.status, [(line.qty_picked, line.qty_required) for line in picking.lines])
        if new_status.value != previous_status:
            picking.status = ensure_transition(
                PickingStatus, previous_status, new_status, document=f"Picking {picking.picking_number}"
            )
        if new_status == PickingStatus.COMPLETED:
            picking.completed_at = datetime.utcnow()
            sales_order.status = ensure_transition(
                SalesOrderStatus,
                sales_order.status,
                SalesOrderStatus.PICKED,
                document=f"Sales order {sales_order.so_number}",
            )

    logger.info(
        "Processed picking %s: %s/%s picked, status %s -> %s",
        picking.picking_number,
        picking.total_qty_picked,
        picking.total_qty_required,
        previous_status,
        picking.status,
    )
    return picking


def _pick_movements(db: Session, company_id: int, picking_id: int) -> list[InventoryMovement]:
    return (
        db.query(InventoryMovement)
        .filter(
            InventoryMovement.company_id == company_id,
            InventoryMovement.reason == MOVEMENT_PICK,
            InventoryMovement.reference_type == REFERENCE_TYPE,
            InventoryMovement.reference_id == picking_id,
        )
        .order_by(InventoryMovement.id)
        .all()
    )


def cancel_picking(db: Session, company_id: int, picking_id: int) -> Picking:
    """Cancel a picking, returning anything already picked to the locations it came from."""
    with atomic(db):
        picking = lock_picking(db, company_id, picking_id)
        sales_order = lock_sales_order(db, company_id, picking.sales_order_id)
        picking.status = ensure_transition(
            PickingStatus, picking.status, PickingStatus.CANCELLED, document=f"Picking {picking.picking_number}"
        )

        # keyed by the location each unit was actually picked from
        returns: dict[tuple[int, int], Decimal] = defaultdict(Decimal)
        for movement in _pick_movements(db, company_id, picking.id):
            returns[(movement.from_location_id, movement.item_id)] += Decimal(movement.qty)

        if returns:
            if not sales_order.holding_location_id:
                raise ValidationError(
                    f"Sales order {sales_order.so_number} has no holding location to return picked stock from.",
                    sales_order_id=sales_order.id,
                )
            lock_locations(
                db,
                company_id,
                [sales_order.holding_location_id] + [location_id for location_id, _ in returns],
            )
        for (location_id, item_id), qty in sorted(returns.items()):
            move_stock(
                db,
                company_id,
                item_id=item_id,
                from_location_id=sales_order.holding_location_id,
                to_location_id=location_id,
                qty=qty,
                source_reference=picking.picking_number,
                reason=MOVEMENT_PICK_RETURN,
                enforce_capacity=False,
                reference_type=REFERENCE_TYPE,
                reference_id=picking.id,
            )

        picking.cancelled_at = datetime.utcnow()
        if sales_order.status == SalesOrderStatus.IN_PROGRESS.value:
            sales_order.status = ensure_transition(
                SalesOrderStatus,
                sales_order.status,
                SalesOrderStatus.PENDING,
                document=f"Sales order {sales_order.so_number}",
            )

    logger.info("Cancelled picking %s; returned %s line(s) of stock", picking.picking_number, len(returns))
    return picking
