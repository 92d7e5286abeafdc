from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from wms.allocation.planner import suggest_putaway_location
from wms.db import atomic
from wms.errors import ValidationError
from wms.inventory.service import MOVEMENT_PUTAWAY, available_capacity, get_location, lock_locations
from wms.models import AdvancedShippingNotice, ASNLine
from wms.movements.service import move_stock
from wms.purchasing.service import (
    asn_line_reference,
    get_asn,
    get_purchase_order,
    receive_purchase_order_if_fulfilled,
)
from wms.statuses import ASNStatus, LocationCategory, asn_putaway_status, ensure_status_in, ensure_transition


logger = logging.getLogger(__name__)

PUTAWAY_STATUSES = {ASNStatus.PROCESSED, ASNStatus.PUT_AWAY}


@dataclass(frozen=True)
class PutawaySuggestion:
    asn_line_id: int
    item_id: int
    item_label: str
    qty: Decimal
    location_id: int | None
    location_code: str | None
    available_capacity: Decimal | None


def add_putaway_qty(line: ASNLine, qty: Decimal) -> ASNLine:
    """Advance a notice line by ``qty`` put away; the only way its remaining quantity changes."""
    qty = Decimal(qty)
    if qty <= 0:
        raise ValidationError("Putaway quantity must be greater than zero.", asn_line_id=line.id, qty=qty)
    remaining = Decimal(line.remaining_qty or 0)
    if qty > remaining:
        item_label = line.item.label if line.item else f"Item #{line.item_id}"
        raise ValidationError(
            f"Cannot put away {qty} of {item_label} on ASN line {line.id}: only {remaining} remaining.",
            asn_line_id=line.id,
            requested=qty,
            remaining=remaining,
        )
    line.put_away_qty = Decimal(line.put_away_qty or 0) + qty
    line.remaining_qty = remaining - qty
    return line


def create_putaway(db: Session, company_id: int, asn_id: int) -> list[PutawaySuggestion]:
    asn = get_asn(db, company_id, asn_id)
    ensure_status_in(asn.status, PUTAWAY_STATUSES, document=f"ASN {asn.asn_number}", action="putaway planning")

    reserved: dict[int, Decimal] = defaultdict(Decimal)
    suggestions = []
    for line in asn.lines:
        remaining = Decimal(line.remaining_qty or 0)
        if remaining <= 0:
            continue
        location = suggest_putaway_location(db, company_id, line.item_id, remaining, reserved=reserved)
        if location is not None:
            reserved[location.id] += remaining
        suggestions.append(
            PutawaySuggestion(
                asn_line_id=line.id,
                item_id=line.item_id,
                item_label=line.item.label if line.item else f"Item #{line.item_id}",
                qty=remaining,
                location_id=location.id if location else None,
                location_code=location.code if location else None,
                available_capacity=available_capacity(location) if location else None,
            )
        )
    return suggestions


def _collect_putaway_entries(db: Session, company_id: int, asn: AdvancedShippingNotice, entries: list[dict]) -> list[tuple]:
    lines_by_id = {line.id: line for line in asn.lines}
    totals: dict[int, Decimal] = defaultdict(Decimal)
    grouped: dict[tuple[int, int], Decimal] = defaultdict(Decimal)

    for entry in entries:
        line = lines_by_id.get(entry["asn_line_id"])
        if line is None:
            raise ValidationError(
                f"Line {entry['asn_line_id']} does not belong to ASN {asn.asn_number}.",
                asn_id=asn.id,
                asn_line_id=entry["asn_line_id"],
            )
        qty = Decimal(entry["qty"])
        if qty <= 0:
            raise ValidationError("Putaway quantity must be greater than zero.", asn_line_id=line.id, qty=qty)
        location = get_location(db, company_id, entry["location_id"])
        if location.category != LocationCategory.STORAGE.value or not location.is_active:
            raise ValidationError(
                f"Location {location.code} is not an active storage location.",
                location_id=location.id,
                category=location.category,
            )
        totals[line.id] += qty
        grouped[(line.id, location.id)] += qty

    for line_id, total in totals.items():
        line = lines_by_id[line_id]
        remaining = Decimal(line.remaining_qty or 0)
        if total > remaining:
            item_label = line.item.label if line.item else f"Item #{line.item_id}"
            raise ValidationError(
                f"Cannot put away {total} of {item_label} on ASN line {line.id}: only {remaining} remaining.",
                asn_line_id=line.id,
                requested=total,
                remaining=remaining,
            )

    return sorted(
        ((lines_by_id[line_id], location_id, qty) for (line_id, location_id), qty in grouped.items()),
        key=lambda row: (row[1], row[0].id),
    )


def process_putaway(db: Session, company_id: int, asn_id: int, entries: list[dict]) -> AdvancedShippingNotice:
    """Move received stock from the notice's holding location into storage."""
    if not entries:
        raise ValidationError("At least one putaway line is required.", asn_id=asn_id)

    with atomic(db):
        asn = get_asn(db, company_id, asn_id, lock=True)
        po = get_purchase_order(db, company_id, asn.purchase_order_id, lock=True)
        document = f"ASN {asn.asn_number}"
        ensure_status_in(asn.status, PUTAWAY_STATUSES, document=document, action="putaway")

        putaways = _collect_putaway_entries(db, company_id, asn, entries)
        lock_locations(db, company_id, [asn.holding_location_id] + [location_id for _, location_id, _ in putaways])
        for line, location_id, qty in putaways:
            move_stock(
                db,
                company_id,
                item_id=line.item_id,
                from_location_id=asn.holding_location_id,
                to_location_id=location_id,
                qty=qty,
                source_reference=asn_line_reference(asn.id, line.id),
                reason=MOVEMENT_PUTAWAY,
                reference_type="ASN",
                reference_id=asn.id,
            )
            add_putaway_qty(line, qty)

        previous_status = asn.status
        new_status = asn_putaway_status(asn.status, [(line.put_away_qty, line.remaining_qty) for line in asn.lines])
        if new_status.value != previous_status or new_status == ASNStatus.PUT_AWAY:
            asn.status = ensure_transition(ASNStatus, previous_status, new_status, document=document)
        if new_status == ASNStatus.COMPLETED:
            receive_purchase_order_if_fulfilled(po)

    logger.info("Putaway on %s: status %s -> %s", asn.asn_number, previous_status, asn.status)
    return asn
