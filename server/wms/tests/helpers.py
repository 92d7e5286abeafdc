from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from wms.db import Base
from wms.inventory.service import upsert_add
from wms.models import Company, Customer, Item, Location, Supplier
from wms.sales.service import create_sales_order
from wms.statuses import LocationCategory

COMPANY_ID = 1


def create_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    db = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    db.add(Company(id=COMPANY_ID, code="ACME", name="Acme Warehousing"))
    db.commit()
    return db


def create_item(db, sku="WID-1", name="Widget", company_id=COMPANY_ID):
    item = Item(company_id=company_id, sku=sku, name=name, unit="PCS", is_active=True)
    db.add(item)
    db.flush()
    return item


def create_location(db, code, category=LocationCategory.STORAGE, max_capacity="1000", company_id=COMPANY_ID):
    location = Location(
        company_id=company_id,
        code=code,
        name=f"Rack {code}",
        category=LocationCategory(category).value,
        max_capacity=Decimal(max_capacity),
        current_capacity=Decimal("0"),
        is_full=False,
        is_active=True,
    )
    db.add(location)
    db.flush()
    return location


def create_supplier(db, name="Supply Co", email="orders@supply.test", company_id=COMPANY_ID):
    supplier = Supplier(company_id=company_id, name=name, email=email)
    db.add(supplier)
    db.flush()
    return supplier


def create_customer(db, name="Acme Retail", company_id=COMPANY_ID):
    customer = Customer(company_id=company_id, name=name)
    db.add(customer)
    db.flush()
    return customer


def stock(db, item, location, qty, unit_cost="10.00", created_at: datetime | None = None, company_id=COMPANY_ID):
    inventory = upsert_add(
        db,
        company_id,
        item_id=item.id,
        location=location,
        qty=Decimal(qty),
        unit_cost=Decimal(unit_cost),
    )
    if created_at is not None:
        inventory.created_at = created_at
    db.flush()
    return inventory


def sales_order_for(db, customer, holding, lines, company_id=COMPANY_ID):
    return create_sales_order(
        db,
        company_id,
        {
            "customer_id": customer.id,
            "holding_location_id": holding.id if holding else None,
            "order_date": date(2025, 1, 15),
            "lines": [{"item_id": item.id, "quantity": Decimal(qty)} for item, qty in lines],
        },
    )
