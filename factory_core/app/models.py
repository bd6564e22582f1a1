"""
Interlock Block Factory - Data Models
=====================================
Raw materials, finished block inventory, customers and invoicing, the
cashbook ledger, production batches, transport and the member roster.

Quantities that the ledger operations guard (block and material stock,
customer dues) carry CHECK constraints so the database itself rejects a
negative value even if a caller bypasses the services.
"""

from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Numeric, Enum as SQLEnum, Index, CheckConstraint
)
from sqlalchemy.orm import relationship, validates
from .db import Base


# =============================================================================
# ENUMS
# =============================================================================

class MaterialCategory(str, Enum):
    CEMENT = "cement"
    SAND = "sand"
    AGGREGATE = "aggregate"
    COLOR = "color"
    OTHER = "other"


class MaterialUnit(str, Enum):
    BAGS = "bags"
    KG = "kg"
    TONS = "tons"


class BlockCategory(str, Enum):
    PAVERS = "pavers"
    BRICKS = "bricks"
    DESIGNER = "designer"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    PENDING = "pending"


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    BANK = "bank"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


class EntryType(str, Enum):
    """Cashbook direction: money in (receipt) or money out (payment)"""
    RECEIPT = "receipt"
    PAYMENT = "payment"


class BatchStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    PAUSED = "paused"


class VehicleStatus(str, Enum):
    AVAILABLE = "available"
    ON_DELIVERY = "on_delivery"
    MAINTENANCE = "maintenance"


class MemberRole(str, Enum):
    OPERATOR = "operator"
    HELPER = "helper"
    DRIVER = "driver"
    SUPERVISOR = "supervisor"
    OTHER = "other"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def derive_payment_status(total_amount: Decimal, amount_paid: Decimal) -> PaymentStatus:
    """paid if fully covered, partial if something was paid, else pending"""
    if amount_paid >= total_amount:
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


# =============================================================================
# INVENTORY
# =============================================================================

class RawMaterial(Base):
    """Cement, sand, aggregate and pigment stock consumed by production."""
    __tablename__ = "raw_materials"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    category = Column(SQLEnum(MaterialCategory), nullable=False, default=MaterialCategory.OTHER)
    unit = Column(SQLEnum(MaterialUnit), nullable=False, default=MaterialUnit.BAGS)
    current_stock = Column(Numeric(15, 3), nullable=False, default=0)
    min_stock_level = Column(Numeric(15, 3), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('current_stock >= 0', name='ck_material_stock_non_negative'),
        CheckConstraint('min_stock_level >= 0', name='ck_material_min_level_non_negative'),
    )

    @validates('current_stock', 'min_stock_level')
    def validate_stock(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative")
        return value

    @property
    def is_low_stock(self) -> bool:
        return (self.current_stock or 0) <= (self.min_stock_level or 0)


class Block(Base):
    """Finished interlock blocks available for sale."""
    __tablename__ = "blocks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    category = Column(SQLEnum(BlockCategory), nullable=False, default=BlockCategory.PAVERS)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    available_qty = Column(Integer, nullable=False, default=0)
    reserved_qty = Column(Integer, nullable=False, default=0)
    price_per_unit = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('available_qty >= 0', name='ck_block_available_non_negative'),
        CheckConstraint('reserved_qty >= 0', name='ck_block_reserved_non_negative'),
        CheckConstraint('price_per_unit >= 0', name='ck_block_price_non_negative'),
    )

    @validates('available_qty', 'reserved_qty', 'price_per_unit')
    def validate_non_negative(self, key, value):
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative")
        return value


# =============================================================================
# CUSTOMERS & INVOICING
# =============================================================================

class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    gst_number = Column(String(20), nullable=True)
    # Running totals, changed only by sales and dues collection
    total_business = Column(Numeric(14, 2), nullable=False, default=0)
    pending_dues = Column(Numeric(14, 2), nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    invoices = relationship("Invoice", back_populates="customer", passive_deletes=True)

    __table_args__ = (
        CheckConstraint('pending_dues >= 0', name='ck_customer_dues_non_negative'),
        CheckConstraint('total_business >= 0', name='ck_customer_business_non_negative'),
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(20), unique=True, nullable=False, index=True)  # INV-2026-0001
    # NULL means a walk-in sale
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)

    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    transport_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    payment_status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_mode = Column(SQLEnum(PaymentMode), nullable=True)
    due_date = Column(Date, nullable=True)

    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True)
    delivery_address = Column(Text, nullable=True)
    delivery_status = Column(SQLEnum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING)
    notes = Column(Text, nullable=True)

    # Client-supplied idempotency key; a retried sale returns the same invoice
    request_id = Column(String(64), unique=True, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="invoices")
    vehicle = relationship("Vehicle")
    items = relationship(
        "InvoiceItem", back_populates="invoice",
        order_by="InvoiceItem.id", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint('amount_paid >= 0', name='ck_invoice_paid_non_negative'),
        CheckConstraint('transport_cost >= 0', name='ck_invoice_transport_non_negative'),
        Index('ix_invoice_delivery_status', 'delivery_status'),
    )

    @property
    def balance_due(self) -> Decimal:
        return max(Decimal('0'), (self.total_amount or 0) - (self.amount_paid or 0))


class InvoiceItem(Base):
    """
    Line item snapshot. block_name and rate are captured at sale time and
    never change afterwards, even when the block is renamed or deleted.
    """
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    block_id = Column(Integer, ForeignKey("blocks.id", ondelete="SET NULL"), nullable=True)
    block_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    rate = Column(Numeric(12, 2), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_item_quantity_positive'),
    )


# =============================================================================
# CASHBOOK
# =============================================================================

class CashbookEntry(Base):
    """Append-only money ledger."""
    __tablename__ = "cashbook_entries"

    id = Column(Integer, primary_key=True, index=True)
    entry_date = Column(Date, nullable=False, default=date.today)
    type = Column(SQLEnum(EntryType), nullable=False)
    category = Column(String(50), nullable=False)
    description = Column(Text, nullable=False, default="")
    amount = Column(Numeric(14, 2), nullable=False)
    payment_mode = Column(SQLEnum(PaymentMode), nullable=True)

    # What produced this entry, e.g. ("invoice", "12")
    reference_type = Column(String(30), nullable=True)
    reference_id = Column(String(50), nullable=True)
    request_id = Column(String(64), unique=True, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_cashbook_amount_positive'),
        Index('ix_cashbook_date_type', 'entry_date', 'type'),
    )


# =============================================================================
# PRODUCTION
# =============================================================================

class ProductionBatch(Base):
    __tablename__ = "production_batches"

    id = Column(Integer, primary_key=True, index=True)
    batch_number = Column(String(20), unique=True, nullable=False, index=True)  # BATCH-0001
    block_id = Column(Integer, ForeignKey("blocks.id", ondelete="SET NULL"), nullable=True)
    block_name = Column(String(200), nullable=False)
    target_qty = Column(Integer, nullable=False)
    produced_qty = Column(Integer, nullable=False, default=0)
    defects = Column(Integer, nullable=False, default=0)
    status = Column(SQLEnum(BatchStatus), nullable=False, default=BatchStatus.IN_PROGRESS)
    notes = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    block = relationship("Block")

    __table_args__ = (
        CheckConstraint('target_qty > 0', name='ck_batch_target_positive'),
        CheckConstraint('produced_qty >= 0', name='ck_batch_produced_non_negative'),
        CheckConstraint('defects >= 0', name='ck_batch_defects_non_negative'),
        Index('ix_batch_status', 'status'),
    )


# =============================================================================
# TRANSPORT & MEMBERS
# =============================================================================

class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    registration = Column(String(30), unique=True, nullable=False)
    status = Column(SQLEnum(VehicleStatus), nullable=False, default=VehicleStatus.AVAILABLE)
    current_invoice_id = Column(Integer, nullable=True)  # invoice being delivered

    created_at = Column(DateTime, default=datetime.utcnow)


class Member(Base):
    """Factory staff on the payroll."""
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(SQLEnum(MemberRole), nullable=False, default=MemberRole.OPERATOR)
    salary = Column(Numeric(12, 2), nullable=False, default=0)
    joining_date = Column(Date, nullable=False, default=date.today)
    address = Column(Text, nullable=True)
    aadhar_number = Column(String(20), nullable=True)
    status = Column(SQLEnum(MemberStatus), nullable=False, default=MemberStatus.ACTIVE)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('salary >= 0', name='ck_member_salary_non_negative'),
    )


# =============================================================================
# SYSTEM TABLES
# =============================================================================

class NumberSequence(Base):
    """
    Counters for document numbers.
    `year` scopes the counter; a new year restarts it at 1.
    """
    __tablename__ = "number_sequences"

    id = Column(Integer, primary_key=True, index=True)
    sequence_name = Column(String(50), unique=True, nullable=False)  # INVOICE, BATCH
    prefix = Column(String(20), default="")
    current_number = Column(Integer, nullable=False, default=0)
    year = Column(Integer, nullable=True)
    padding = Column(Integer, default=4)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
