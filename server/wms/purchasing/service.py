from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from wms.db import atomic
from wms.errors import InsufficientCapacityError, NotFoundError, StateConflictError, ValidationError
from wms.inventory.service import (
    MOVEMENT_RECEIPT,
    available_capacity,
    create_inventory_movement,
    get_item,
    get_location,
    upsert_add,
)
from wms.models import AdvancedShippingNotice, ASNLine, PurchaseOrder, PurchaseOrderLine, Supplier
from wms.numbering import PREFIX_ASN, PREFIX_PURCHASE_ORDER, next_document_number
from wms.purchasing.fees import apply_fee
from wms.statuses import ASNStatus, LocationCategory, PurchaseOrderStatus, ensure_transition


logger = logging.getLogger(__name__)

EDITABLE_ASN_STATUSES = {ASNStatus.PENDING.value, ASNStatus.IN_TRANSIT.value}


def asn_line_reference(asn_id: int, line_id: int) -> str:
    return f"ASN-{asn_id}-{line_id}"


def get_purchase_order(db: Session, company_id: int, purchase_order_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.query(PurchaseOrder).filter(
        PurchaseOrder.company_id == company_id,
        PurchaseOrder.id == purchase_order_id,
    )
    if lock:
        query = query.with_for_update().populate_existing()
    po = query.first()
    if not po:
        raise NotFoundError(f"Purchase order {purchase_order_id} not found.", purchase_order_id=purchase_order_id)
    return po


def get_asn(db: Session, company_id: int, asn_id: int, *, lock: bool = False) -> AdvancedShippingNotice:
    query = db.query(AdvancedShippingNotice).filter(
        AdvancedShippingNotice.company_id == company_id,
        AdvancedShippingNotice.id == asn_id,
    )
    if lock:
        query = query.with_for_update().populate_existing()
    asn = query.first()
    if not asn:
        raise NotFoundError(f"ASN {asn_id} not found.", asn_id=asn_id)
    return asn


def _build_po_line(db: Session, company_id: int, payload: dict) -> PurchaseOrderLine:
    item = get_item(db, company_id, payload["item_id"])
    quantity = Decimal(payload["quantity"])
    if quantity <= 0:
        raise ValidationError(f"Ordered quantity for {item.label} must be greater than zero.", item_id=item.id)
    return PurchaseOrderLine(
        item_id=item.id,
        qty_ordered=quantity,
        unit_price=Decimal(payload.get("unit_price") or 0),
    )


def create_purchase_order(db: Session, company_id: int, payload: dict) -> PurchaseOrder:
    lines_payload = payload.pop("lines", None) or []
    if not lines_payload:
        raise ValidationError("Purchase order must include at least one line item.")
    supplier = (
        db.query(Supplier)
        .filter(Supplier.company_id == company_id, Supplier.id == payload["supplier_id"])
        .first()
    )
    if not supplier:
        raise NotFoundError(f"Supplier {payload['supplier_id']} not found.", supplier_id=payload["supplier_id"])

    payload["order_date"] = payload.get("order_date") or date.today()
    with atomic(db):
        po = PurchaseOrder(
            company_id=company_id,
            po_number=next_document_number(db, company_id, PREFIX_PURCHASE_ORDER, payload["order_date"]),
            status=PurchaseOrderStatus.DRAFT.value,
            **payload,
        )
        po.lines = [_build_po_line(db, company_id, line) for line in lines_payload]
        db.add(po)
    logger.info("Created purchase order %s with %s line(s)", po.po_number, len(po.lines))
    return po


def send_purchase_order(db: Session, company_id: int, purchase_order_id: int) -> PurchaseOrder:
    with atomic(db):
        po = get_purchase_order(db, company_id, purchase_order_id, lock=True)
        document = f"Purchase order {po.po_number}"
        target = ensure_transition(PurchaseOrderStatus, po.status, PurchaseOrderStatus.SENT, document=document)
        if not po.lines:
            raise ValidationError(f"{document} must include at least one line item.", purchase_order_id=po.id)
        if any(Decimal(line.qty_ordered or 0) <= 0 for line in po.lines):
            raise ValidationError("All line item quantities must be greater than zero.", purchase_order_id=po.id)
        supplier = po.supplier
        if not (supplier.email or supplier.phone):
            raise ValidationError(
                f"Supplier {supplier.name} must have contact info before sending.",
                supplier_id=supplier.id,
            )
        po.status = target
        po.sent_at = datetime.utcnow()
    logger.info("Purchase order %s sent to %s", po.po_number, supplier.name)
    return po


def cancel_purchase_order(db: Session, company_id: int, purchase_order_id: int) -> PurchaseOrder:
    with atomic(db):
        po = get_purchase_order(db, company_id, purchase_order_id, lock=True)
        document = f"Purchase order {po.po_number}"
        target = ensure_transition(PurchaseOrderStatus, po.status, PurchaseOrderStatus.CANCELLED, document=document)
        open_asns = [asn.asn_number for asn in po.asns if asn.status != ASNStatus.CANCELLED.value]
        if open_asns:
            raise StateConflictError(
                f"{document} has shipping notices {', '.join(open_asns)}; cancel them first.",
                purchase_order_id=po.id,
                asn_numbers=open_asns,
            )
        po.status = target
    logger.info("Purchase order %s cancelled", po.po_number)
    return po


def close_purchase_order(db: Session, company_id: int, purchase_order_id: int) -> PurchaseOrder:
    with atomic(db):
        po = get_purchase_order(db, company_id, purchase_order_id, lock=True)
        po.status = ensure_transition(
            PurchaseOrderStatus, po.status, PurchaseOrderStatus.CLOSED, document=f"Purchase order {po.po_number}"
        )
    logger.info("Purchase order %s closed", po.po_number)
    return po


def outstanding_by_item(po: PurchaseOrder) -> dict[int, Decimal]:
    """Ordered quantity per item not yet put away across the order's live shipping notices."""
    outstanding: dict[int, Decimal] = defaultdict(Decimal)
    for line in po.lines:
        outstanding[line.item_id] += Decimal(line.qty_ordered or 0)
    for asn in po.asns:
        if asn.status == ASNStatus.CANCELLED.value:
            continue
        for asn_line in asn.lines:
            outstanding[asn_line.item_id] -= Decimal(asn_line.put_away_qty or 0)
    return dict(outstanding)


def receive_purchase_order_if_fulfilled(po: PurchaseOrder) -> bool:
    if po.status != PurchaseOrderStatus.SENT.value:
        return False
    if any(qty > 0 for qty in outstanding_by_item(po).values()):
        return False
    po.status = ensure_transition(
        PurchaseOrderStatus, po.status, PurchaseOrderStatus.RECEIVED, document=f"Purchase order {po.po_number}"
    )
    logger.info("Purchase order %s fully put away; marked RECEIVED", po.po_number)
    return True


def _build_asn_lines(db: Session, company_id: int, po: PurchaseOrder, lines_payload: list[dict]) -> list[ASNLine]:
    if not lines_payload:
        raise ValidationError("Shipping notice must include at least one line item.")
    po_prices = {line.item_id: line.unit_price for line in po.lines}
    lines = []
    for payload in lines_payload:
        item = get_item(db, company_id, payload["item_id"])
        if item.id not in po_prices:
            raise ValidationError(
                f"{item.label} is not on purchase order {po.po_number}.",
                item_id=item.id,
                purchase_order_id=po.id,
            )
        shipped = Decimal(payload["shipped_qty"])
        if shipped <= 0:
            raise ValidationError(f"Shipped quantity for {item.label} must be greater than zero.", item_id=item.id)
        unit_price = payload.get("unit_price")
        line = ASNLine(
            item_id=item.id,
            shipped_qty=shipped,
            remaining_qty=shipped,
            put_away_qty=Decimal("0"),
            unit_price=Decimal(po_prices[item.id] if unit_price is None else unit_price),
        )
        apply_fee(line)
        lines.append(line)
    return lines


def create_asn(db: Session, company_id: int, payload: dict) -> AdvancedShippingNotice:
    lines_payload = payload.pop("lines", None) or []
    with atomic(db):
        po = get_purchase_order(db, company_id, payload["purchase_order_id"], lock=True)
        if po.status != PurchaseOrderStatus.SENT.value:
            raise StateConflictError(
                f"Purchase order {po.po_number} is {po.status}; shipping notices require status SENT.",
                purchase_order_id=po.id,
                current_status=po.status,
            )
        holding = get_location(db, company_id, payload["holding_location_id"])
        if holding.category != LocationCategory.HOLDING.value:
            raise ValidationError(
                f"Location {holding.code} is not a holding location.",
                location_id=holding.id,
                category=holding.category,
            )
        status = ASNStatus.IN_TRANSIT if payload.get("shipment_date") else ASNStatus.PENDING
        asn = AdvancedShippingNotice(
            company_id=company_id,
            asn_number=next_document_number(db, company_id, PREFIX_ASN),
            status=status.value,
            **payload,
        )
        asn.lines = _build_asn_lines(db, company_id, po, lines_payload)
        db.add(asn)
    logger.info("Created ASN %s for %s (%s)", asn.asn_number, po.po_number, asn.status)
    return asn


def update_asn_lines(db: Session, company_id: int, asn_id: int, lines_payload: list[dict]) -> AdvancedShippingNotice:
    with atomic(db):
        asn = get_asn(db, company_id, asn_id, lock=True)
        if asn.status not in EDITABLE_ASN_STATUSES:
            raise StateConflictError(
                f"ASN {asn.asn_number} is {asn.status}; only PENDING or IN_TRANSIT notices can be edited.",
                asn_id=asn.id,
                current_status=asn.status,
            )
        new_lines = _build_asn_lines(db, company_id, asn.purchase_order, lines_payload)
        asn.lines.clear()
        db.flush()
        asn.lines = new_lines
    return asn


def mark_asn_in_transit(db: Session, company_id: int, asn_id: int, shipment_date: date | None = None) -> AdvancedShippingNotice:
    with atomic(db):
        asn = get_asn(db, company_id, asn_id, lock=True)
        asn.status = ensure_transition(ASNStatus, asn.status, ASNStatus.IN_TRANSIT, document=f"ASN {asn.asn_number}")
        asn.shipment_date = shipment_date or asn.shipment_date or date.today()
    return asn


def mark_asn_arrived(
    db: Session,
    company_id: int,
    asn_id: int,
    actual_arrival_date: datetime | None = None,
) -> AdvancedShippingNotice:
    with atomic(db):
        asn = get_asn(db, company_id, asn_id, lock=True)
        asn.status = ensure_transition(ASNStatus, asn.status, ASNStatus.ARRIVED, document=f"ASN {asn.asn_number}")
        asn.actual_arrival_date = actual_arrival_date or datetime.utcnow()
    logger.info("ASN %s arrived", asn.asn_number)
    return asn


def process_asn(db: Session, company_id: int, asn_id: int) -> AdvancedShippingNotice:
    """Receive every line of an arrived notice into its holding location."""
    with atomic(db):
        asn = get_asn(db, company_id, asn_id, lock=True)
        document = f"ASN {asn.asn_number}"
        target = ensure_transition(ASNStatus, asn.status, ASNStatus.PROCESSED, document=document)
        holding = get_location(db, company_id, asn.holding_location_id, lock=True)
        incoming = sum((Decimal(line.shipped_qty) for line in asn.lines), Decimal("0"))
        free = available_capacity(holding)
        if incoming > free:
            raise InsufficientCapacityError(
                f"Holding location {holding.code} cannot receive {incoming} units of {document}: "
                f"available capacity {free}.",
                location_id=holding.id,
                location_code=holding.code,
                requested=incoming,
                available=free,
            )
        for line in asn.lines:
            reference = asn_line_reference(asn.id, line.id)
            upsert_add(
                db,
                company_id,
                item_id=line.item_id,
                location=holding,
                qty=line.shipped_qty,
                unit_cost=line.unit_price,
                source_reference=reference,
            )
            create_inventory_movement(
                db,
                company_id,
                item_id=line.item_id,
                qty=line.shipped_qty,
                reason=MOVEMENT_RECEIPT,
                to_location_id=holding.id,
                unit_cost=line.unit_price,
                source_reference=reference,
                reference_type="ASN",
                reference_id=asn.id,
            )
        asn.status = target
    logger.info("ASN %s processed: %s units received into %s", asn.asn_number, incoming, holding.code)
    return asn


def cancel_asn(db: Session, company_id: int, asn_id: int) -> AdvancedShippingNotice:
    with atomic(db):
        asn = get_asn(db, company_id, asn_id, lock=True)
        asn.status = ensure_transition(ASNStatus, asn.status, ASNStatus.CANCELLED, document=f"ASN {asn.asn_number}")
    logger.info("ASN %s cancelled", asn.asn_number)
    return asn
