from typing import Optional, List, Literal
from datetime import datetime, date
from pydantic import BaseModel, Field

from .models import (
    MaterialCategory, MaterialUnit, BlockCategory, PaymentStatus, PaymentMode,
    DeliveryStatus, EntryType, BatchStatus, VehicleStatus, MemberRole, MemberStatus
)


# =============================================================================
# BLOCKS
# =============================================================================

class BlockCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: BlockCategory = BlockCategory.PAVERS
    size: Optional[str] = None
    color: Optional[str] = None
    available_qty: int = Field(0, ge=0)
    reserved_qty: int = Field(0, ge=0)
    price_per_unit: float = Field(0, ge=0)


class BlockUpdate(BaseModel):
    """Stock is changed through /stock, not here"""
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[BlockCategory] = None
    size: Optional[str] = None
    color: Optional[str] = None
    reserved_qty: Optional[int] = Field(None, ge=0)
    price_per_unit: Optional[float] = Field(None, ge=0)


class BlockOut(BaseModel):
    id: int
    name: str
    category: BlockCategory
    size: Optional[str]
    color: Optional[str]
    available_qty: int
    reserved_qty: int
    price_per_unit: float
    created_at: datetime

    class Config:
        from_attributes = True


class StockAdjustRequest(BaseModel):
    """Manual stock in/out for a block"""
    type: Literal["in", "out"]
    quantity: int = Field(..., gt=0)


# =============================================================================
# RAW MATERIALS
# =============================================================================

class MaterialCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: MaterialCategory = MaterialCategory.OTHER
    unit: MaterialUnit = MaterialUnit.BAGS
    current_stock: float = Field(0, ge=0)
    min_stock_level: float = Field(0, ge=0)
    notes: Optional[str] = None


class MaterialUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[MaterialCategory] = None
    unit: Optional[MaterialUnit] = None
    min_stock_level: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class MaterialOut(BaseModel):
    id: int
    name: str
    category: MaterialCategory
    unit: MaterialUnit
    current_stock: float
    min_stock_level: float
    is_low_stock: bool
    notes: Optional[str]

    class Config:
        from_attributes = True


class PurchaseRequest(BaseModel):
    quantity: float = Field(..., gt=0)
    total_cost: float = Field(..., gt=0)
    supplier: Optional[str] = None
    payment_mode: PaymentMode = PaymentMode.CASH


# =============================================================================
# CUSTOMERS
# =============================================================================

class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


class CustomerOut(BaseModel):
    id: int
    name: str
    phone: Optional[str]
    address: Optional[str]
    gst_number: Optional[str]
    total_business: float
    pending_dues: float
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentIn(BaseModel):
    amount: float = Field(..., gt=0)
    payment_mode: PaymentMode = PaymentMode.CASH
    notes: Optional[str] = None
    request_id: Optional[str] = Field(None, max_length=64)


# =============================================================================
# SALES
# =============================================================================

class SaleItemIn(BaseModel):
    block_id: int
    quantity: int = Field(..., gt=0)
    rate: Optional[float] = Field(None, ge=0)


class NewCustomerIn(BaseModel):
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


class SaleCreate(BaseModel):
    customer_id: Optional[int] = None
    new_customer: Optional[NewCustomerIn] = None
    items: List[SaleItemIn] = []
    transport_cost: float = Field(0, ge=0)
    amount_paid: float = Field(0, ge=0)
    payment_mode: PaymentMode = PaymentMode.CASH
    delivery_address: Optional[str] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    request_id: Optional[str] = Field(None, max_length=64)


class InvoiceItemOut(BaseModel):
    id: int
    block_id: Optional[int]
    block_name: str
    quantity: int
    rate: float
    amount: float

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: int
    invoice_number: str
    customer_id: Optional[int]
    subtotal: float
    transport_cost: float
    total_amount: float
    amount_paid: float
    balance_due: float
    payment_status: PaymentStatus
    payment_mode: Optional[PaymentMode]
    due_date: Optional[date]
    vehicle_id: Optional[int]
    delivery_address: Optional[str]
    delivery_status: DeliveryStatus
    notes: Optional[str]
    created_at: datetime
    items: List[InvoiceItemOut] = []

    class Config:
        from_attributes = True


# =============================================================================
# PRODUCTION
# =============================================================================

class BatchCreate(BaseModel):
    block_id: int
    target_qty: int = Field(..., gt=0)
    notes: Optional[str] = None


class ProductionRecordIn(BaseModel):
    added_qty: int = Field(..., gt=0)
    defects: int = Field(0, ge=0)


class BatchOut(BaseModel):
    id: int
    batch_number: str
    block_id: Optional[int]
    block_name: str
    target_qty: int
    produced_qty: int
    defects: int
    status: BatchStatus
    progress: int
    notes: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]


# =============================================================================
# CASHBOOK
# =============================================================================

class CashbookCreate(BaseModel):
    entry_date: Optional[date] = None
    type: EntryType
    category: str = Field(..., min_length=1)
    description: str = ""
    amount: float = Field(..., gt=0)
    payment_mode: Optional[PaymentMode] = None


class CashbookOut(BaseModel):
    id: int
    entry_date: date
    type: EntryType
    category: str
    description: str
    amount: float
    payment_mode: Optional[PaymentMode]
    reference_type: Optional[str]
    reference_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class CashbookSummaryOut(BaseModel):
    date_from: Optional[date]
    date_to: Optional[date]
    total_receipts: float
    total_payments: float
    balance: float


# =============================================================================
# TRANSPORT
# =============================================================================

class VehicleCreate(BaseModel):
    name: str = Field(..., min_length=1)
    registration: str = Field(..., min_length=1)


class VehicleOut(BaseModel):
    id: int
    name: str
    registration: str
    status: VehicleStatus
    current_invoice_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class DispatchIn(BaseModel):
    invoice_id: int


class VehicleStatusIn(BaseModel):
    status: VehicleStatus


# =============================================================================
# MEMBERS
# =============================================================================

class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    role: MemberRole = MemberRole.OPERATOR
    salary: float = Field(0, ge=0)
    joining_date: Optional[date] = None
    address: Optional[str] = None
    aadhar_number: Optional[str] = None
    status: MemberStatus = MemberStatus.ACTIVE


class MemberUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    role: Optional[MemberRole] = None
    salary: Optional[float] = Field(None, ge=0)
    joining_date: Optional[date] = None
    address: Optional[str] = None
    aadhar_number: Optional[str] = None
    status: Optional[MemberStatus] = None


class MemberOut(BaseModel):
    id: int
    name: str
    phone: Optional[str]
    role: MemberRole
    salary: float
    joining_date: date
    address: Optional[str]
    aadhar_number: Optional[str]
    status: MemberStatus

    class Config:
        from_attributes = True


# =============================================================================
# DASHBOARD
# =============================================================================

class LowStockAlert(BaseModel):
    name: str
    stock: float
    min_stock_level: float
    unit: str


class ActivityOut(BaseModel):
    type: Literal["sale", "payment"]
    description: str
    amount: float
    entry_date: date


class DashboardOut(BaseModel):
    today_revenue: float
    today_expenses: float
    in_hand_amount: float
    total_stock: int
    active_batches: int
    pending_dues: float
    pending_deliveries: int
    low_stock_alerts: List[LowStockAlert] = []
    recent_activity: List[ActivityOut] = []
