from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from wms.db import atomic
from wms.errors import ConcurrencyConflictError, InsufficientStockError, NotFoundError, StateConflictError, ValidationError
from wms.inventory.service import (
    MOVEMENT_SHIPMENT,
    create_inventory_movement,
    get_inventory_record,
    get_item,
    get_location,
    reduce_stock,
)
from wms.models import Customer, Location, SalesOrder, SalesOrderLine
from wms.numbering import PREFIX_SALES_ORDER, next_document_number
from wms.picking.service import active_picking_for, cancel_picking, lock_picking, lock_sales_order
from wms.statuses import LocationCategory, PickingStatus, SalesOrderStatus, ensure_status_in, ensure_transition


logger = logging.getLogger(__name__)


def get_sales_order(db: Session, company_id: int, sales_order_id: int) -> SalesOrder:
    sales_order = (
        db.query(SalesOrder)
        .filter(SalesOrder.company_id == company_id, SalesOrder.id == sales_order_id)
        .first()
    )
    if not sales_order:
        raise NotFoundError(f"Sales order {sales_order_id} not found.", sales_order_id=sales_order_id)
    return sales_order


def _holding_location(db: Session, company_id: int, location_id: int) -> Location:
    location = get_location(db, company_id, location_id)
    if location.category != LocationCategory.HOLDING.value:
        raise ValidationError(
            f"Location {location.code} is not a holding location.",
            location_id=location.id,
            category=location.category,
        )
    return location


def _build_so_line(db: Session, company_id: int, payload: dict) -> SalesOrderLine:
    item = get_item(db, company_id, payload["item_id"])
    quantity = Decimal(payload["quantity"])
    if quantity <= 0:
        raise ValidationError(f"Quantity for {item.label} must be greater than zero.", item_id=item.id)
    return SalesOrderLine(
        item_id=item.id,
        quantity=quantity,
        unit_price=Decimal(payload.get("unit_price") or 0),
    )


def create_sales_order(db: Session, company_id: int, payload: dict) -> SalesOrder:
    lines_payload = payload.pop("lines", None) or []
    if not lines_payload:
        raise ValidationError("Sales order must include at least one line item.")
    customer = (
        db.query(Customer)
        .filter(Customer.company_id == company_id, Customer.id == payload["customer_id"])
        .first()
    )
    if not customer:
        raise NotFoundError(f"Customer {payload['customer_id']} not found.", customer_id=payload["customer_id"])
    if payload.get("holding_location_id"):
        _holding_location(db, company_id, payload["holding_location_id"])

    payload["order_date"] = payload.get("order_date") or date.today()
    with atomic(db):
        sales_order = SalesOrder(
            company_id=company_id,
            so_number=next_document_number(db, company_id, PREFIX_SALES_ORDER, payload["order_date"]),
            status=SalesOrderStatus.PENDING.value,
            **payload,
        )
        sales_order.lines = [_build_so_line(db, company_id, line) for line in lines_payload]
        db.add(sales_order)
    logger.info("Created sales order %s with %s line(s)", sales_order.so_number, len(sales_order.lines))
    return sales_order


def assign_holding_location(db: Session, company_id: int, sales_order_id: int, location_id: int) -> SalesOrder:
    with atomic(db):
        sales_order = lock_sales_order(db, company_id, sales_order_id)
        if sales_order.status != SalesOrderStatus.PENDING.value:
            raise StateConflictError(
                f"Sales order {sales_order.so_number} is {sales_order.status}; "
                "the holding location can only change while it is PENDING.",
                sales_order_id=sales_order.id,
                current_status=sales_order.status,
            )
        sales_order.holding_location_id = _holding_location(db, company_id, location_id).id
    return sales_order


def ship_sales_order(db: Session, company_id: int, sales_order_id: int) -> SalesOrder:
    """Ship a picked order: its picked stock leaves the holding location."""
    with atomic(db):
        sales_order = lock_sales_order(db, company_id, sales_order_id)
        document = f"Sales order {sales_order.so_number}"
        target = ensure_transition(SalesOrderStatus, sales_order.status, SalesOrderStatus.SHIPPED, document=document)
        picking = active_picking_for(db, company_id, sales_order.id)
        if picking is None or picking.status != PickingStatus.COMPLETED.value:
            raise StateConflictError(f"{document} has no completed picking to ship.", sales_order_id=sales_order.id)

        outgoing: dict[int, Decimal] = defaultdict(Decimal)
        for line in picking.lines:
            outgoing[line.item_id] += Decimal(line.qty_picked or 0)

        holding = get_location(db, company_id, sales_order.holding_location_id, lock=True)
        for item_id, qty in sorted(outgoing.items()):
            if qty <= 0:
                continue
            inventory = get_inventory_record(db, company_id, item_id, holding.id, lock=True)
            if inventory is None:
                item = get_item(db, company_id, item_id)
                raise InsufficientStockError(
                    f"Insufficient stock for {item.label} at {holding.code}: requested {qty}, available 0.",
                    item_id=item_id,
                    location_id=holding.id,
                    location_code=holding.code,
                    requested=qty,
                    available=Decimal("0"),
                )
            unit_cost = inventory.unit_cost
            reduce_stock(db, inventory=inventory, location=holding, qty=qty)
            create_inventory_movement(
                db,
                company_id,
                item_id=item_id,
                qty=qty,
                reason=MOVEMENT_SHIPMENT,
                from_location_id=holding.id,
                unit_cost=unit_cost,
                source_reference=sales_order.so_number,
                reference_type="SALES_ORDER",
                reference_id=sales_order.id,
            )

        sales_order.status = target
        sales_order.shipped_at = datetime.utcnow()
    logger.info("Sales order %s shipped from %s", sales_order.so_number, holding.code)
    return sales_order


def cancel_sales_order(db: Session, company_id: int, sales_order_id: int) -> SalesOrder:
    with atomic(db):
        # picking before order, the order process_picking and cancel_picking lock in
        picking = active_picking_for(db, company_id, sales_order_id)
        if picking is not None:
            picking = lock_picking(db, company_id, picking.id)
        sales_order = lock_sales_order(db, company_id, sales_order_id)
        ensure_status_in(
            sales_order.status,
            {SalesOrderStatus.PENDING, SalesOrderStatus.IN_PROGRESS},
            document=f"Sales order {sales_order.so_number}",
            action="cancelling",
        )
        current = active_picking_for(db, company_id, sales_order.id)
        if current is not None and (picking is None or current.id != picking.id):
            raise ConcurrencyConflictError(
                f"Sales order {sales_order.so_number} got a new picking while being cancelled.",
                sales_order_id=sales_order.id,
                picking_id=current.id,
            )
        if current is not None:
            cancel_picking(db, company_id, current.id)
        sales_order.status = ensure_transition(
            SalesOrderStatus,
            sales_order.status,
            SalesOrderStatus.CANCELLED,
            document=f"Sales order {sales_order.so_number}",
        )
    logger.info("Sales order %s cancelled", sales_order.so_number)
    return sales_order
