from datetime import date
from decimal import Decimal

import pytest

from wms.errors import InsufficientCapacityError, StateConflictError, ValidationError
from wms.inventory.service import get_inventory_record
from wms.models import InventoryMovement
from wms.purchasing.service import (
    asn_line_reference,
    cancel_asn,
    cancel_purchase_order,
    close_purchase_order,
    create_asn,
    create_purchase_order,
    mark_asn_arrived,
    process_asn,
    send_purchase_order,
    update_asn_lines,
)
from wms.putaway import service as putaway_service
from wms.putaway.service import create_putaway, process_putaway
from wms.statuses import LocationCategory
from wms.tests.helpers import COMPANY_ID, create_item, create_location, create_session, create_supplier


def ordered(db, item, qty="100", unit_price="5.00", supplier=None):
    supplier = supplier or create_supplier(db)
    po = create_purchase_order(
        db,
        COMPANY_ID,
        {
            "supplier_id": supplier.id,
            "order_date": date(2025, 1, 10),
            "lines": [{"item_id": item.id, "quantity": Decimal(qty), "unit_price": Decimal(unit_price)}],
        },
    )
    db.commit()
    return po


def shipped(db, po, item, holding, qty="100", shipment_date=date(2025, 1, 12)):
    asn = create_asn(
        db,
        COMPANY_ID,
        {
            "purchase_order_id": po.id,
            "holding_location_id": holding.id,
            "shipment_date": shipment_date,
            "lines": [{"item_id": item.id, "shipped_qty": Decimal(qty)}],
        },
    )
    db.commit()
    return asn


def received(db, holding_capacity="1000"):
    """A sent order for 100 widgets whose notice has arrived and been processed into holding."""
    item = create_item(db)
    holding = create_location(db, "IN-1", category=LocationCategory.HOLDING, max_capacity=holding_capacity)
    po = ordered(db, item)
    send_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    asn = shipped(db, po, item, holding)
    mark_asn_arrived(db, COMPANY_ID, asn.id)
    db.commit()
    process_asn(db, COMPANY_ID, asn.id)
    db.commit()
    return item, holding, po, asn


def test_process_asn_receives_stock_into_holding():
    db = create_session()
    item, holding, po, asn = received(db)
    line = asn.lines[0]

    assert asn.status == "PROCESSED"
    assert asn.asn_number.startswith("ASN-")
    assert line.fee_rate == Decimal("0.03")
    assert line.fee_amount == Decimal("0.15")
    assert line.remaining_qty == Decimal("100")

    inventory = get_inventory_record(db, COMPANY_ID, item.id, holding.id)
    assert inventory.quantity == Decimal("100")
    assert inventory.unit_cost == Decimal("5.00")
    assert inventory.source_reference == asn_line_reference(asn.id, line.id)
    assert holding.current_capacity == Decimal("100")
    receipt = db.query(InventoryMovement).one()
    assert receipt.reason == "RECEIPT"
    assert receipt.to_location_id == holding.id


def test_putaway_in_two_passes_completes_notice_and_receives_order():
    db = create_session()
    item, holding, po, asn = received(db)
    small = create_location(db, "S-01", max_capacity="60")
    large = create_location(db, "S-02", max_capacity="1000")
    db.commit()
    line = asn.lines[0]

    suggestions = create_putaway(db, COMPANY_ID, asn.id)
    assert [(s.asn_line_id, s.qty, s.location_code) for s in suggestions] == [(line.id, Decimal("100"), "S-02")]

    process_putaway(db, COMPANY_ID, asn.id, [{"asn_line_id": line.id, "location_id": small.id, "qty": Decimal("40")}])
    db.commit()

    assert asn.status == "PUT_AWAY"
    assert line.put_away_qty == Decimal("40")
    assert line.remaining_qty == Decimal("60")
    assert po.status == "SENT"

    process_putaway(db, COMPANY_ID, asn.id, [{"asn_line_id": line.id, "location_id": large.id, "qty": Decimal("60")}])
    db.commit()

    assert asn.status == "COMPLETED"
    assert line.remaining_qty == Decimal("0")
    assert po.status == "RECEIVED"
    assert get_inventory_record(db, COMPANY_ID, item.id, holding.id).quantity == Decimal("0")
    assert get_inventory_record(db, COMPANY_ID, item.id, small.id).quantity == Decimal("40")
    assert get_inventory_record(db, COMPANY_ID, item.id, large.id).unit_cost == Decimal("5.00")
    assert holding.current_capacity == Decimal("0")
    assert db.query(InventoryMovement).filter(InventoryMovement.reason == "PUTAWAY").count() == 2

    with pytest.raises(StateConflictError):
        create_putaway(db, COMPANY_ID, asn.id)
    close_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    assert po.status == "CLOSED"


def test_putaway_rejected_when_destination_lacks_capacity():
    db = create_session()
    item, holding, po, asn = received(db)
    small = create_location(db, "S-01", max_capacity="60")
    db.commit()
    line = asn.lines[0]

    with pytest.raises(InsufficientCapacityError):
        process_putaway(db, COMPANY_ID, asn.id, [{"asn_line_id": line.id, "location_id": small.id, "qty": Decimal("70")}])

    assert asn.status == "PROCESSED"
    assert line.remaining_qty == Decimal("100")
    assert get_inventory_record(db, COMPANY_ID, item.id, small.id) is None


def test_putaway_rejects_holding_destination_and_over_quantity():
    db = create_session()
    item, holding, po, asn = received(db)
    other_holding = create_location(db, "IN-2", category=LocationCategory.HOLDING)
    storage = create_location(db, "S-01")
    db.commit()
    line = asn.lines[0]

    with pytest.raises(ValidationError):
        process_putaway(
            db, COMPANY_ID, asn.id, [{"asn_line_id": line.id, "location_id": other_holding.id, "qty": Decimal("10")}]
        )
    with pytest.raises(ValidationError):
        process_putaway(
            db,
            COMPANY_ID,
            asn.id,
            [
                {"asn_line_id": line.id, "location_id": storage.id, "qty": Decimal("60")},
                {"asn_line_id": line.id, "location_id": storage.id, "qty": Decimal("41")},
            ],
        )

    assert line.put_away_qty == Decimal("0")


def test_putaway_requires_processed_notice():
    db = create_session()
    item = create_item(db)
    holding = create_location(db, "IN-1", category=LocationCategory.HOLDING)
    po = ordered(db, item)
    send_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    asn = shipped(db, po, item, holding)

    with pytest.raises(StateConflictError):
        create_putaway(db, COMPANY_ID, asn.id)


def test_process_asn_rejected_when_holding_is_too_small():
    db = create_session()
    item = create_item(db)
    holding = create_location(db, "IN-1", category=LocationCategory.HOLDING, max_capacity="50")
    po = ordered(db, item)
    send_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    asn = shipped(db, po, item, holding)
    mark_asn_arrived(db, COMPANY_ID, asn.id)
    db.commit()

    with pytest.raises(InsufficientCapacityError):
        process_asn(db, COMPANY_ID, asn.id)

    assert asn.status == "ARRIVED"
    assert get_inventory_record(db, COMPANY_ID, item.id, holding.id) is None


def test_asn_requires_sent_order_and_items_on_the_order():
    db = create_session()
    item = create_item(db)
    stranger = create_item(db, sku="GAD-1", name="Gadget")
    holding = create_location(db, "IN-1", category=LocationCategory.HOLDING)
    po = ordered(db, item)

    with pytest.raises(StateConflictError):
        shipped(db, po, item, holding)

    send_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    with pytest.raises(ValidationError):
        shipped(db, po, stranger, holding)


def test_asn_without_shipment_date_starts_pending_and_lines_are_editable():
    db = create_session()
    item = create_item(db)
    holding = create_location(db, "IN-1", category=LocationCategory.HOLDING)
    po = ordered(db, item, unit_price="2000000")
    send_purchase_order(db, COMPANY_ID, po.id)
    db.commit()

    asn = shipped(db, po, item, holding, shipment_date=None)
    assert asn.status == "PENDING"

    update_asn_lines(db, COMPANY_ID, asn.id, [{"item_id": item.id, "shipped_qty": Decimal("30")}])
    db.commit()
    assert [(line.shipped_qty, line.remaining_qty) for line in asn.lines] == [(Decimal("30"), Decimal("30"))]
    assert asn.lines[0].fee_rate == Decimal("0.02")

    with pytest.raises(StateConflictError):
        mark_asn_arrived(db, COMPANY_ID, asn.id)


def test_purchase_order_cancel_blocked_by_open_notice():
    db = create_session()
    item = create_item(db)
    holding = create_location(db, "IN-1", category=LocationCategory.HOLDING)
    po = ordered(db, item)
    send_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    asn = shipped(db, po, item, holding)

    with pytest.raises(StateConflictError):
        cancel_purchase_order(db, COMPANY_ID, po.id)

    cancel_asn(db, COMPANY_ID, asn.id)
    db.commit()
    cancel_purchase_order(db, COMPANY_ID, po.id)
    db.commit()
    assert po.status == "CANCELLED"


def test_send_requires_supplier_contact():
    db = create_session()
    item = create_item(db)
    supplier = create_supplier(db, name="Quiet Co", email=None)
    po = ordered(db, item, supplier=supplier)

    with pytest.raises(ValidationError):
        send_purchase_order(db, COMPANY_ID, po.id)

    assert po.status == "DRAFT"


def test_putaway_locks_holding_and_destinations_before_moving(monkeypatch):
    db = create_session()
    item, holding, po, asn = received(db)
    first = create_location(db, "S-01")
    second = create_location(db, "S-02")
    db.commit()
    line = asn.lines[0]
    events = []
    real_lock_locations = putaway_service.lock_locations
    real_move_stock = putaway_service.move_stock

    def recording_lock_locations(db, company_id, location_ids):
        events.append(("lock", sorted(set(location_ids))))
        return real_lock_locations(db, company_id, location_ids)

    def recording_move_stock(*args, **kwargs):
        events.append(("move", kwargs["to_location_id"]))
        return real_move_stock(*args, **kwargs)

    monkeypatch.setattr(putaway_service, "lock_locations", recording_lock_locations)
    monkeypatch.setattr(putaway_service, "move_stock", recording_move_stock)

    process_putaway(
        db,
        COMPANY_ID,
        asn.id,
        [
            {"asn_line_id": line.id, "location_id": second.id, "qty": Decimal("30")},
            {"asn_line_id": line.id, "location_id": first.id, "qty": Decimal("70")},
        ],
    )
    db.commit()

    assert events == [
        ("lock", sorted([holding.id, first.id, second.id])),
        ("move", first.id),
        ("move", second.id),
    ]
    assert asn.status == "COMPLETED"
