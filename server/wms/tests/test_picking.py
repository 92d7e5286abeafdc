from datetime import datetime
from decimal import Decimal

import pytest

from wms.errors import InsufficientCapacityError, InsufficientStockError, StateConflictError, ValidationError
from wms.inventory.service import get_inventory_record
from wms.models import InventoryMovement, Picking
from wms.picking import service as picking_service
from wms.picking.service import cancel_picking, create_picking, get_picking_by_sales_order, process_picking
from wms.sales import service as sales_service
from wms.sales.service import cancel_sales_order, ship_sales_order
from wms.statuses import InventoryStatus, LocationCategory
from wms.tests.helpers import (
    COMPANY_ID,
    create_customer,
    create_item,
    create_location,
    create_session,
    sales_order_for,
    stock,
)


def setup_warehouse(order_qty="150"):
    db = create_session()
    item = create_item(db)
    loc_a = create_location(db, "A-01")
    loc_b = create_location(db, "B-01")
    holding = create_location(db, "OUT-1", category=LocationCategory.HOLDING)
    stock(db, item, loc_a, "100", created_at=datetime(2025, 1, 1))
    stock(db, item, loc_b, "80", created_at=datetime(2025, 1, 2))
    customer = create_customer(db)
    sales_order = sales_order_for(db, customer, holding, [(item, order_qty)])
    db.commit()
    return db, item, loc_a, loc_b, holding, sales_order


def pick_all(picking):
    return [{"picking_line_id": line.id, "qty": line.qty_required} for line in picking.lines]


def on_hand(db, item, location):
    record = get_inventory_record(db, COMPANY_ID, item.id, location.id)
    return record.quantity if record else Decimal("0")


def test_create_picking_allocates_fifo_across_locations():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()

    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()

    assert [(line.location_id, line.qty_required) for line in picking.lines] == [
        (loc_a.id, Decimal("100")),
        (loc_b.id, Decimal("50")),
    ]
    assert all(line.status == "PENDING" for line in picking.lines)
    assert picking.status == "PENDING"
    assert picking.picking_number.startswith("PICK-")
    assert sales_order.status == "IN_PROGRESS"
    # planning moves nothing
    assert on_hand(db, item, loc_a) == Decimal("100")
    assert holding.current_capacity == Decimal("0")


def test_processing_full_picking_moves_stock_into_holding():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()

    process_picking(db, COMPANY_ID, picking.id, pick_all(picking))
    db.commit()

    source_a = get_inventory_record(db, COMPANY_ID, item.id, loc_a.id)
    assert source_a.quantity == Decimal("0")
    assert source_a.status == InventoryStatus.EMPTY.value
    assert on_hand(db, item, loc_b) == Decimal("30")
    assert on_hand(db, item, holding) == Decimal("150")
    assert loc_a.current_capacity == Decimal("0")
    assert loc_b.current_capacity == Decimal("30")
    assert holding.current_capacity == Decimal("150")
    assert picking.status == "COMPLETED"
    assert picking.completed_at is not None
    assert all(line.status == "PICKED" and line.remaining_qty == 0 for line in picking.lines)
    assert sales_order.status == "PICKED"

    reasons = {movement.reason for movement in db.query(InventoryMovement).all()}
    assert reasons == {"PICK"}


def test_picking_rejected_when_stock_is_short_changes_nothing():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse(order_qty="200")

    with pytest.raises(InsufficientStockError) as excinfo:
        create_picking(db, COMPANY_ID, sales_order.id)

    assert "WID-1 (Widget)" in str(excinfo.value)
    assert excinfo.value.requested == Decimal("200")
    assert excinfo.value.available == Decimal("180")
    assert excinfo.value.shortfall == Decimal("20")
    assert db.query(Picking).count() == 0
    assert sales_order.status == "PENDING"
    assert on_hand(db, item, loc_a) == Decimal("100")


def test_lines_for_the_same_item_do_not_double_allocate():
    db = create_session()
    item = create_item(db)
    loc_a = create_location(db, "A-01")
    loc_b = create_location(db, "B-01")
    holding = create_location(db, "OUT-1", category=LocationCategory.HOLDING)
    stock(db, item, loc_a, "100", created_at=datetime(2025, 1, 1))
    stock(db, item, loc_b, "80", created_at=datetime(2025, 1, 2))
    sales_order = sales_order_for(db, create_customer(db), holding, [(item, "60"), (item, "60")])
    db.commit()

    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()

    assert [(line.location_id, line.qty_required) for line in picking.lines] == [
        (loc_a.id, Decimal("60")),
        (loc_a.id, Decimal("40")),
        (loc_b.id, Decimal("20")),
    ]


def test_only_one_active_picking_per_sales_order():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    first = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()

    with pytest.raises(StateConflictError):
        create_picking(db, COMPANY_ID, sales_order.id)

    assert get_picking_by_sales_order(db, COMPANY_ID, sales_order.id).id == first.id


def test_picking_requires_holding_location():
    db = create_session()
    item = create_item(db)
    location = create_location(db, "A-01")
    stock(db, item, location, "10")
    sales_order = sales_order_for(db, create_customer(db), None, [(item, "5")])
    db.commit()

    with pytest.raises(ValidationError):
        create_picking(db, COMPANY_ID, sales_order.id)


def test_partial_pick_marks_line_short_and_picking_in_progress():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line_a = picking.lines[0]

    process_picking(db, COMPANY_ID, picking.id, [{"picking_line_id": line_a.id, "qty": Decimal("40")}])
    db.commit()

    assert line_a.status == "SHORT"
    assert line_a.remaining_qty == Decimal("60")
    assert picking.lines[1].status == "PENDING"
    assert picking.status == "IN_PROGRESS"
    assert sales_order.status == "IN_PROGRESS"
    assert on_hand(db, item, loc_a) == Decimal("60")
    assert on_hand(db, item, holding) == Decimal("40")


def test_over_pick_is_rejected_including_split_entries():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line_b = picking.lines[1]

    with pytest.raises(ValidationError):
        process_picking(db, COMPANY_ID, picking.id, [{"picking_line_id": line_b.id, "qty": Decimal("51")}])
    with pytest.raises(ValidationError):
        process_picking(
            db,
            COMPANY_ID,
            picking.id,
            [
                {"picking_line_id": line_b.id, "qty": Decimal("30")},
                {"picking_line_id": line_b.id, "qty": Decimal("30")},
            ],
        )

    assert on_hand(db, item, loc_b) == Decimal("80")
    assert db.query(InventoryMovement).count() == 0


def test_split_entries_within_remaining_are_summed():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line_b = picking.lines[1]

    process_picking(
        db,
        COMPANY_ID,
        picking.id,
        [
            {"picking_line_id": line_b.id, "qty": Decimal("20")},
            {"picking_line_id": line_b.id, "qty": Decimal("30")},
        ],
    )
    db.commit()

    assert line_b.qty_picked == Decimal("50")
    assert line_b.status == "PICKED"
    assert db.query(InventoryMovement).count() == 1


def test_picking_from_holding_location_or_foreign_line_is_rejected():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line_a = picking.lines[0]

    with pytest.raises(ValidationError):
        process_picking(
            db,
            COMPANY_ID,
            picking.id,
            [{"picking_line_id": line_a.id, "qty": Decimal("1"), "source_location_id": holding.id}],
        )
    with pytest.raises(ValidationError):
        process_picking(db, COMPANY_ID, picking.id, [{"picking_line_id": 9999, "qty": Decimal("1")}])
    with pytest.raises(ValidationError):
        process_picking(db, COMPANY_ID, picking.id, [])


def test_pick_fails_when_holding_location_is_full():
    db = create_session()
    item = create_item(db)
    location = create_location(db, "A-01")
    holding = create_location(db, "OUT-1", category=LocationCategory.HOLDING, max_capacity="10")
    stock(db, item, location, "30")
    sales_order = sales_order_for(db, create_customer(db), holding, [(item, "25")])
    db.commit()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()

    with pytest.raises(InsufficientCapacityError):
        process_picking(db, COMPANY_ID, picking.id, pick_all(picking))

    assert on_hand(db, item, location) == Decimal("30")
    assert picking.status == "PENDING"


def test_cancel_picking_returns_picked_stock():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line_a = picking.lines[0]
    process_picking(db, COMPANY_ID, picking.id, [{"picking_line_id": line_a.id, "qty": Decimal("40")}])
    db.commit()

    cancel_picking(db, COMPANY_ID, picking.id)
    db.commit()

    assert picking.status == "CANCELLED"
    assert picking.cancelled_at is not None
    assert on_hand(db, item, loc_a) == Decimal("100")
    assert on_hand(db, item, holding) == Decimal("0")
    assert holding.current_capacity == Decimal("0")
    assert sales_order.status == "PENDING"

    with pytest.raises(StateConflictError):
        process_picking(db, COMPANY_ID, picking.id, [{"picking_line_id": line_a.id, "qty": Decimal("1")}])

    replacement = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    assert get_picking_by_sales_order(db, COMPANY_ID, sales_order.id).id == replacement.id


def test_get_picking_by_sales_order_without_pickings_is_none():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()

    assert get_picking_by_sales_order(db, COMPANY_ID, sales_order.id) is None


def test_ship_picked_order_removes_stock_from_holding():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()

    with pytest.raises(StateConflictError):
        ship_sales_order(db, COMPANY_ID, sales_order.id)

    process_picking(db, COMPANY_ID, picking.id, pick_all(picking))
    db.commit()
    ship_sales_order(db, COMPANY_ID, sales_order.id)
    db.commit()

    assert sales_order.status == "SHIPPED"
    assert sales_order.shipped_at is not None
    assert on_hand(db, item, holding) == Decimal("0")
    assert holding.current_capacity == Decimal("0")
    shipment = db.query(InventoryMovement).filter(InventoryMovement.reason == "SHIPMENT").one()
    assert shipment.qty == Decimal("150")
    assert shipment.to_location_id is None


def test_cancel_sales_order_cancels_active_picking():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    process_picking(db, COMPANY_ID, picking.id, [{"picking_line_id": picking.lines[1].id, "qty": Decimal("50")}])
    db.commit()

    cancel_sales_order(db, COMPANY_ID, sales_order.id)
    db.commit()

    assert sales_order.status == "CANCELLED"
    assert picking.status == "CANCELLED"
    assert on_hand(db, item, loc_b) == Decimal("80")
    assert on_hand(db, item, holding) == Decimal("0")


def test_cancel_returns_stock_to_the_location_it_was_picked_from():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse(order_qty="50")
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line = picking.lines[0]
    assert line.location_id == loc_a.id

    process_picking(
        db,
        COMPANY_ID,
        picking.id,
        [{"picking_line_id": line.id, "qty": Decimal("30"), "source_location_id": loc_b.id}],
    )
    db.commit()
    assert on_hand(db, item, loc_b) == Decimal("50")

    cancel_picking(db, COMPANY_ID, picking.id)
    db.commit()

    assert on_hand(db, item, loc_a) == Decimal("100")
    assert on_hand(db, item, loc_b) == Decimal("80")
    assert loc_a.current_capacity == Decimal("100")
    assert loc_b.current_capacity == Decimal("80")
    assert on_hand(db, item, holding) == Decimal("0")
    returned = db.query(InventoryMovement).filter(InventoryMovement.reason == "PICK_RETURN").one()
    assert returned.to_location_id == loc_b.id
    assert returned.qty == Decimal("30")


def test_picking_only_draws_from_active_storage_locations():
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    inbound = create_location(db, "IN-1", category=LocationCategory.HOLDING)
    stock(db, item, inbound, "100")
    retired = create_location(db, "C-01")
    stock(db, item, retired, "20")
    retired.is_active = False
    db.commit()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    line_a = picking.lines[0]

    for source in (inbound, retired):
        with pytest.raises(ValidationError) as excinfo:
            process_picking(
                db,
                COMPANY_ID,
                picking.id,
                [{"picking_line_id": line_a.id, "qty": Decimal("10"), "source_location_id": source.id}],
            )
        assert excinfo.value.details["location_id"] == source.id

    assert on_hand(db, item, inbound) == Decimal("100")
    assert on_hand(db, item, retired) == Decimal("20")
    assert picking.status == "PENDING"
    assert line_a.qty_picked == Decimal("0")


def test_process_picking_locks_every_location_before_moving(monkeypatch):
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    events = []
    real_lock_locations = picking_service.lock_locations
    real_move_stock = picking_service.move_stock

    def recording_lock_locations(db, company_id, location_ids):
        events.append(("lock", sorted(set(location_ids))))
        return real_lock_locations(db, company_id, location_ids)

    def recording_move_stock(*args, **kwargs):
        events.append(("move", kwargs["from_location_id"]))
        return real_move_stock(*args, **kwargs)

    monkeypatch.setattr(picking_service, "lock_locations", recording_lock_locations)
    monkeypatch.setattr(picking_service, "move_stock", recording_move_stock)

    process_picking(db, COMPANY_ID, picking.id, pick_all(picking))
    db.commit()

    assert events == [
        ("lock", sorted([loc_a.id, loc_b.id, holding.id])),
        ("move", loc_a.id),
        ("move", loc_b.id),
    ]


def test_cancel_sales_order_locks_picking_before_order(monkeypatch):
    db, item, loc_a, loc_b, holding, sales_order = setup_warehouse()
    picking = create_picking(db, COMPANY_ID, sales_order.id)
    db.commit()
    calls = []
    real_lock_picking = sales_service.lock_picking
    real_lock_sales_order = sales_service.lock_sales_order

    def recording_lock_picking(*args):
        calls.append("picking")
        return real_lock_picking(*args)

    def recording_lock_sales_order(*args):
        calls.append("sales_order")
        return real_lock_sales_order(*args)

    monkeypatch.setattr(sales_service, "lock_picking", recording_lock_picking)
    monkeypatch.setattr(sales_service, "lock_sales_order", recording_lock_sales_order)

    cancel_sales_order(db, COMPANY_ID, sales_order.id)
    db.commit()

    assert calls == ["picking", "sales_order"]
    assert picking.status == "CANCELLED"
    assert sales_order.status == "CANCELLED"
