from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base
from .utils import quantize_money
from .statuses import (
    ASNStatus,
    InventoryStatus,
    LocationCategory,
    PickingLineStatus,
    PickingStatus,
    PurchaseOrderStatus,
    SalesOrderStatus,
    enum_values,
)


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    code = Column(String(20), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="company")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="operator")
    is_admin = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    company = relationship("Company", back_populates="users")


class Module(Base):
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True)
    key = Column(String(50), nullable=False, unique=True)
    name = Column(String(100), nullable=False)


class UserModuleAccess(Base):
    __tablename__ = "user_module_access"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    module_id = Column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_module_access"),
    )


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    sku = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=False, default="PCS")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "sku", name="uq_item_company_sku"),
    )

    @property
    def label(self) -> str:
        return f"{self.sku} ({self.name})"


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    category = Column(
        Enum(*enum_values(LocationCategory), name="location_category"),
        nullable=False,
        default=LocationCategory.STORAGE.value,
    )
    max_capacity = Column(Numeric(14, 2), nullable=False, default=0)
    current_capacity = Column(Numeric(14, 2), nullable=False, default=0)
    is_full = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    inventories = relationship("Inventory", back_populates="location")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_location_company_code"),
        CheckConstraint(
            "current_capacity >= 0 AND current_capacity <= max_capacity",
            name="ck_location_capacity_in_range",
        ),
    )

    @property
    def available_capacity(self):
        return Decimal(self.max_capacity or 0) - Decimal(self.current_capacity or 0)


class Inventory(Base):
    __tablename__ = "inventories"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    quantity = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(
        Enum(*enum_values(InventoryStatus), name="inventory_status"),
        nullable=False,
        default=InventoryStatus.AVAILABLE.value,
    )
    unit_cost = Column(Numeric(14, 2), nullable=False, default=0)
    source_reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    item = relationship("Item")
    location = relationship("Location", back_populates="inventories")

    __table_args__ = (
        UniqueConstraint("company_id", "item_id", "location_id", name="uq_inventory_item_location"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        Index("ix_inventories_fifo", "company_id", "item_id", "created_at"),
    )

    @property
    def total_value(self):
        return quantize_money(Decimal(self.quantity or 0) * Decimal(self.unit_cost or 0))


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    from_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    to_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    qty = Column(Numeric(14, 2), nullable=False)
    unit_cost = Column(Numeric(14, 2), nullable=False, default=0)
    reason = Column(
        Enum("RECEIPT", "PUTAWAY", "PICK", "PICK_RETURN", "SHIPMENT", "TRANSFER", name="inventory_movement_reason"),
        nullable=False,
    )
    source_reference = Column(String(100), nullable=True)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    po_number = Column(String(30), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    status = Column(
        Enum(*enum_values(PurchaseOrderStatus), name="purchase_order_status"),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT.value,
    )
    order_date = Column(Date, nullable=False)
    expected_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    supplier = relationship("Supplier")
    lines = relationship("PurchaseOrderLine", back_populates="purchase_order", cascade="all, delete-orphan")
    asns = relationship("AdvancedShippingNotice", back_populates="purchase_order")

    __table_args__ = (
        UniqueConstraint("company_id", "po_number", name="uq_purchase_order_number"),
    )

    @property
    def total_amount(self):
        total = sum((Decimal(line.qty_ordered or 0) * Decimal(line.unit_price or 0) for line in self.lines), Decimal("0"))
        return quantize_money(total)


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"

    id = Column(Integer, primary_key=True)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    qty_ordered = Column(Numeric(14, 2), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False, default=0)

    purchase_order = relationship("PurchaseOrder", back_populates="lines")
    item = relationship("Item")


class AdvancedShippingNotice(Base):
    __tablename__ = "asns"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    asn_number = Column(String(30), nullable=False)
    purchase_order_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False)
    holding_location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    status = Column(
        Enum(*enum_values(ASNStatus), name="asn_status"),
        nullable=False,
        default=ASNStatus.PENDING.value,
    )
    shipment_date = Column(Date, nullable=True)
    expected_arrival_date = Column(Date, nullable=True)
    actual_arrival_date = Column(DateTime, nullable=True)
    carrier_name = Column(String(100), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    purchase_order = relationship("PurchaseOrder", back_populates="asns")
    holding_location = relationship("Location")
    lines = relationship("ASNLine", back_populates="asn", cascade="all, delete-orphan", order_by="ASNLine.id")

    __table_args__ = (
        UniqueConstraint("company_id", "asn_number", name="uq_asn_number"),
    )

    @property
    def total_fee_amount(self):
        total = sum(
            (Decimal(line.fee_amount or 0) * Decimal(line.shipped_qty or 0) for line in self.lines),
            Decimal("0"),
        )
        return quantize_money(total)


class ASNLine(Base):
    __tablename__ = "asn_lines"

    id = Column(Integer, primary_key=True)
    asn_id = Column(Integer, ForeignKey("asns.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    shipped_qty = Column(Numeric(14, 2), nullable=False)
    remaining_qty = Column(Numeric(14, 2), nullable=False, default=0)
    put_away_qty = Column(Numeric(14, 2), nullable=False, default=0)
    unit_price = Column(Numeric(14, 2), nullable=False, default=0)
    fee_rate = Column(Numeric(5, 4), nullable=False, default=0)
    fee_amount = Column(Numeric(14, 2), nullable=False, default=0)

    asn = relationship("AdvancedShippingNotice", back_populates="lines")
    item = relationship("Item")


class SalesOrder(Base):
    __tablename__ = "sales_orders"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    so_number = Column(String(30), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    holding_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    status = Column(
        Enum(*enum_values(SalesOrderStatus), name="sales_order_status"),
        nullable=False,
        default=SalesOrderStatus.PENDING.value,
    )
    order_date = Column(Date, nullable=False)
    required_date = Column(Date, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = relationship("Customer")
    holding_location = relationship("Location")
    lines = relationship("SalesOrderLine", back_populates="sales_order", cascade="all, delete-orphan", order_by="SalesOrderLine.id")
    pickings = relationship("Picking", back_populates="sales_order", order_by="Picking.id")

    __table_args__ = (
        UniqueConstraint("company_id", "so_number", name="uq_sales_order_number"),
    )

    @property
    def total_amount(self):
        total = sum((Decimal(line.quantity or 0) * Decimal(line.unit_price or 0) for line in self.lines), Decimal("0"))
        return quantize_money(total)


class SalesOrderLine(Base):
    __tablename__ = "sales_order_lines"

    id = Column(Integer, primary_key=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    quantity = Column(Numeric(14, 2), nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False, default=0)

    sales_order = relationship("SalesOrder", back_populates="lines")
    item = relationship("Item")


class Picking(Base):
    __tablename__ = "pickings"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    picking_number = Column(String(30), nullable=False)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id"), nullable=False)
    status = Column(
        Enum(*enum_values(PickingStatus), name="picking_status"),
        nullable=False,
        default=PickingStatus.PENDING.value,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    sales_order = relationship("SalesOrder", back_populates="pickings")
    lines = relationship("PickingLine", back_populates="picking", cascade="all, delete-orphan", order_by="PickingLine.id")

    __table_args__ = (
        UniqueConstraint("company_id", "picking_number", name="uq_picking_number"),
    )

    @property
    def total_qty_required(self):
        return sum((Decimal(line.qty_required or 0) for line in self.lines), Decimal("0"))

    @property
    def total_qty_picked(self):
        return sum((Decimal(line.qty_picked or 0) for line in self.lines), Decimal("0"))


class PickingLine(Base):
    __tablename__ = "picking_lines"

    id = Column(Integer, primary_key=True)
    picking_id = Column(Integer, ForeignKey("pickings.id"), nullable=False)
    sales_order_line_id = Column(Integer, ForeignKey("sales_order_lines.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    qty_required = Column(Numeric(14, 2), nullable=False)
    qty_picked = Column(Numeric(14, 2), nullable=False, default=0)
    remaining_qty = Column(Numeric(14, 2), nullable=False)
    status = Column(
        Enum(*enum_values(PickingLineStatus), name="picking_line_status"),
        nullable=False,
        default=PickingLineStatus.PENDING.value,
    )

    picking = relationship("Picking", back_populates="lines")
    sales_order_line = relationship("SalesOrderLine")
    item = relationship("Item")
    location = relationship("Location")

    __table_args__ = (
        CheckConstraint("qty_picked >= 0 AND qty_picked <= qty_required", name="ck_picking_line_picked_in_range"),
    )


class DocumentSequence(Base):
    __tablename__ = "document_sequences"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    prefix = Column(String(10), nullable=False)
    sequence_date = Column(Date, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("company_id", "prefix", "sequence_date", name="uq_document_sequence"),
    )
