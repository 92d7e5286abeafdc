from decimal import Decimal
from types import SimpleNamespace

import pytest

from wms.allocation.planner import plan_fifo_allocation
from wms.errors import NotFoundError
from wms.inventory.service import get_available_locations, get_inventory_record
from wms.models import Company, InventoryMovement, Picking
from wms.movements.service import move_stock
from wms.picking.service import cancel_picking, create_picking, get_picking_by_sales_order, process_picking
from wms.statuses import LocationCategory
from wms.tests.helpers import (
    COMPANY_ID,
    create_customer,
    create_item,
    create_location,
    create_session,
    sales_order_for,
    stock,
)

OTHER_COMPANY_ID = 2


def _warehouse(db, company_id, prefix):
    item = create_item(db, company_id=company_id)
    storage = create_location(db, f"{prefix}-A", company_id=company_id)
    spare = create_location(db, f"{prefix}-B", company_id=company_id)
    holding = create_location(db, f"{prefix}-OUT", category=LocationCategory.HOLDING, company_id=company_id)
    stock(db, item, storage, "100", company_id=company_id)
    customer = create_customer(db, company_id=company_id)
    sales_order = sales_order_for(db, customer, holding, [(item, "10")], company_id=company_id)
    return SimpleNamespace(item=item, storage=storage, spare=spare, holding=holding, sales_order=sales_order)


def two_tenants():
    """Two companies with the same SKU, each with stock and an open sales order."""
    db = create_session()
    db.add(Company(id=OTHER_COMPANY_ID, code="GLOBEX", name="Globex"))
    db.flush()
    ours = _warehouse(db, COMPANY_ID, "ACME")
    theirs = _warehouse(db, OTHER_COMPANY_ID, "GLX")
    db.commit()
    return db, ours, theirs


def on_hand(db, company_id, item, location):
    record = get_inventory_record(db, company_id, item.id, location.id)
    return record.quantity if record else Decimal("0")


def test_create_picking_does_not_see_another_company_order():
    db, ours, theirs = two_tenants()

    with pytest.raises(NotFoundError):
        create_picking(db, COMPANY_ID, theirs.sales_order.id)

    assert db.query(Picking).count() == 0
    assert theirs.sales_order.status == "PENDING"


def test_another_company_picking_cannot_be_processed_or_cancelled():
    db, ours, theirs = two_tenants()
    their_picking = create_picking(db, OTHER_COMPANY_ID, theirs.sales_order.id)
    db.commit()
    entries = [{"picking_line_id": their_picking.lines[0].id, "qty": Decimal("10")}]

    with pytest.raises(NotFoundError):
        process_picking(db, COMPANY_ID, their_picking.id, entries)
    with pytest.raises(NotFoundError):
        cancel_picking(db, COMPANY_ID, their_picking.id)

    assert get_picking_by_sales_order(db, COMPANY_ID, theirs.sales_order.id) is None
    assert their_picking.status == "PENDING"
    assert on_hand(db, OTHER_COMPANY_ID, theirs.item, theirs.storage) == Decimal("100")


def test_picking_source_from_another_company_is_not_found():
    db, ours, theirs = two_tenants()
    picking = create_picking(db, COMPANY_ID, ours.sales_order.id)
    db.commit()

    with pytest.raises(NotFoundError):
        process_picking(
            db,
            COMPANY_ID,
            picking.id,
            [{"picking_line_id": picking.lines[0].id, "qty": Decimal("5"), "source_location_id": theirs.storage.id}],
        )

    assert on_hand(db, OTHER_COMPANY_ID, theirs.item, theirs.storage) == Decimal("100")
    assert db.query(InventoryMovement).count() == 0


def test_move_stock_rejects_items_and_locations_of_another_company():
    db, ours, theirs = two_tenants()

    with pytest.raises(NotFoundError):
        move_stock(
            db,
            COMPANY_ID,
            item_id=theirs.item.id,
            from_location_id=theirs.storage.id,
            to_location_id=theirs.spare.id,
            qty=Decimal("5"),
        )
    with pytest.raises(NotFoundError):
        move_stock(
            db,
            COMPANY_ID,
            item_id=ours.item.id,
            from_location_id=ours.storage.id,
            to_location_id=theirs.spare.id,
            qty=Decimal("5"),
        )

    assert on_hand(db, COMPANY_ID, ours.item, ours.storage) == Decimal("100")
    assert on_hand(db, OTHER_COMPANY_ID, theirs.item, theirs.storage) == Decimal("100")
    assert db.query(InventoryMovement).count() == 0


def test_stock_lookups_only_return_own_company_rows():
    db, ours, theirs = two_tenants()

    assert get_available_locations(db, COMPANY_ID, theirs.item.id) == []
    own = get_available_locations(db, COMPANY_ID, ours.item.id)
    assert [row["location_id"] for row in own] == [ours.storage.id]

    plan = plan_fifo_allocation(db, COMPANY_ID, theirs.item.id, Decimal("5"))
    assert plan.allocations == []
    assert plan.available_qty == Decimal("0")
    assert plan.shortfall == Decimal("5")
