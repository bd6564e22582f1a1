"""
Sales & Dues Service
====================
create_sale turns a cart into an invoice:

1. validate input, the customer, every block and stock for every line
   (nothing is written until all of this passes)
2. create the customer when a new one is given
3. allocate INV-<year>-<NNNN>
4. compute subtotal / total / payment status
5. persist the invoice and its line-item snapshot
6. add to the customer's total_business and pending_dues
7. book a cashbook receipt for the amount paid
8. deduct block stock for every line

Steps 2-8 run in one transaction. A failure at any step rolls back all of
them; the caller gets the typed error (or PartialFailure naming the step
for store errors) and nothing is left half-applied.

receive_payment records the cashbook receipt first, then lowers the
customer's dues with a guarded update, also in one transaction.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from ..models import (
    Block, Customer, Invoice, InvoiceItem, CashbookEntry,
    EntryType, PaymentMode, PaymentStatus, DeliveryStatus, derive_payment_status
)
from .cashbook_service import record_entry, to_money, SALES_CATEGORY, DUES_CATEGORY
from .errors import ValidationError, NotFoundError, InsufficientStockError
from .sequence_service import next_invoice_number
from .stock_service import adjust_block_stock
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass
class SaleLine:
    block_id: int
    quantity: int
    # Defaults to the block's current price_per_unit
    rate: Optional[Decimal] = None


@dataclass
class NewCustomer:
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    gst_number: Optional[str] = None


@dataclass
class SaleRequest:
    items: List[SaleLine] = field(default_factory=list)
    customer_id: Optional[int] = None
    new_customer: Optional[NewCustomer] = None
    transport_cost: Decimal = Decimal('0')
    amount_paid: Decimal = Decimal('0')
    payment_mode: PaymentMode = PaymentMode.CASH
    delivery_address: Optional[str] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    # Idempotency key: retrying with the same key returns the first invoice
    request_id: Optional[str] = None


# =============================================================================
# HELPERS
# =============================================================================

def _validate_request(sale: SaleRequest):
    if not sale.items:
        raise ValidationError("Add at least one item to the sale")

    for line in sale.items:
        if line.block_id is None:
            raise ValidationError("Every item must reference a block")
        if isinstance(line.quantity, bool) or int(line.quantity) != line.quantity or line.quantity <= 0:
            raise ValidationError("Item quantity must be a positive whole number")
        if line.rate is not None and to_money(line.rate) < 0:
            raise ValidationError("Item rate cannot be negative")

    if sale.customer_id is None and not (sale.new_customer and sale.new_customer.name.strip()):
        raise ValidationError("Select an existing customer or enter a new customer name")

    if to_money(sale.transport_cost) < 0:
        raise ValidationError("Transport cost cannot be negative")
    if to_money(sale.amount_paid) < 0:
        raise ValidationError("Amount paid cannot be negative")


def _load_blocks(db: Session, sale: SaleRequest) -> dict:
    """Fetch every referenced block and check stock for the whole cart."""
    requested = Counter()
    for line in sale.items:
        requested[line.block_id] += int(line.quantity)

    blocks = {
        block.id: block
        for block in db.query(Block).populate_existing().filter(Block.id.in_(list(requested))).all()
    }
    for block_id, quantity in requested.items():
        block = blocks.get(block_id)
        if block is None:
            raise NotFoundError("Block", block_id)
        if block.available_qty < quantity:
            raise InsufficientStockError("Block", block_id, block.available_qty, quantity, name=block.name)
    return blocks


def _get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).populate_existing().filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


def _apply_customer_totals(db: Session, customer_id: int, business_delta: Decimal, dues_delta: Decimal):
    """Atomic increment of the running totals; dues may not go below zero."""
    row = db.execute(
        update(Customer)
        .where(Customer.id == customer_id, Customer.pending_dues + dues_delta >= 0)
        .values(
            total_business=Customer.total_business + business_delta,
            pending_dues=Customer.pending_dues + dues_delta,
            updated_at=datetime.utcnow(),
        )
        .returning(Customer.id)
    ).first()
    if row is None:
        customer = _get_customer(db, customer_id)
        raise ValidationError(
            f"Payment exceeds the amount owed by {customer.name} "
            f"(pending dues {customer.pending_dues})"
        )


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.query(Invoice).options(selectinload(Invoice.items)).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def list_invoices(
    db: Session,
    customer_id: Optional[int] = None,
    payment_status: Optional[PaymentStatus] = None,
    delivery_status: Optional[DeliveryStatus] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Invoice]:
    query = db.query(Invoice).options(selectinload(Invoice.items))
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)
    if payment_status:
        query = query.filter(Invoice.payment_status == PaymentStatus(payment_status))
    if delivery_status:
        query = query.filter(Invoice.delivery_status == DeliveryStatus(delivery_status))
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()


# =============================================================================
# OPERATIONS
# =============================================================================

def create_sale(db: Session, sale: SaleRequest) -> Invoice:
    """
    Create an invoice for `sale` and apply all of its side effects.

    Raises:
        ValidationError: bad input, or payment larger than total plus dues
        NotFoundError: unknown customer or block
        InsufficientStockError: a line asks for more than is available
        PartialFailure / PersistenceFailure: the store failed; nothing applied
    """
    _validate_request(sale)

    if sale.request_id:
        existing = db.query(Invoice).filter(Invoice.request_id == sale.request_id).first()
        if existing:
            logger.info(f"Sale {sale.request_id} already recorded as {existing.invoice_number}")
            return get_invoice(db, existing.id)

    transport_cost = to_money(sale.transport_cost)
    amount_paid = to_money(sale.amount_paid)

    with UnitOfWork(db, "create sale") as uow:
        customer = _get_customer(db, sale.customer_id) if sale.customer_id is not None else None
        blocks = _load_blocks(db, sale)

        lines = []
        for line in sale.items:
            block = blocks[line.block_id]
            rate = to_money(line.rate if line.rate is not None else block.price_per_unit)
            quantity = int(line.quantity)
            lines.append((block, quantity, rate, to_money(rate * quantity)))

        subtotal = sum((amount for _, _, _, amount in lines), Decimal('0.00'))
        total_amount = subtotal + transport_cost
        dues_delta = total_amount - amount_paid

        current_dues = customer.pending_dues if customer is not None else Decimal('0')
        if current_dues + dues_delta < 0:
            raise ValidationError(
                f"Amount paid {amount_paid} exceeds invoice total {total_amount} plus pending dues {current_dues}"
            )

        with uow.step("resolve customer"):
            if customer is None:
                customer = Customer(
                    name=sale.new_customer.name.strip(),
                    phone=sale.new_customer.phone,
                    address=sale.new_customer.address,
                    gst_number=sale.new_customer.gst_number,
                    total_business=Decimal('0'),
                    pending_dues=Decimal('0'),
                )
                db.add(customer)
                db.flush()
                logger.info(f"New customer {customer.name} (#{customer.id}) created during sale")
            customer_id, customer_name = customer.id, customer.name

        with uow.step("allocate invoice number"):
            invoice_number = next_invoice_number(db)

        with uow.step("persist invoice"):
            invoice = Invoice(
                invoice_number=invoice_number,
                customer_id=customer_id,
                subtotal=subtotal,
                transport_cost=transport_cost,
                total_amount=total_amount,
                amount_paid=amount_paid,
                payment_status=derive_payment_status(total_amount, amount_paid),
                payment_mode=PaymentMode(sale.payment_mode) if amount_paid > 0 else None,
                due_date=sale.due_date,
                delivery_address=sale.delivery_address,
                delivery_status=DeliveryStatus.PENDING,
                notes=sale.notes,
                request_id=sale.request_id,
            )
            for block, quantity, rate, amount in lines:
                invoice.items.append(InvoiceItem(
                    block_id=block.id,
                    block_name=block.name,
                    quantity=quantity,
                    rate=rate,
                    amount=amount,
                ))
            db.add(invoice)
            db.flush()

        with uow.step("update customer totals"):
            _apply_customer_totals(db, customer_id, total_amount, dues_delta)

        with uow.step("record cashbook receipt"):
            if amount_paid > 0:
                record_entry(
                    db,
                    EntryType.RECEIPT,
                    SALES_CATEGORY,
                    amount_paid,
                    description=f"{invoice_number} - {customer_name}",
                    payment_mode=sale.payment_mode,
                    reference_type="invoice",
                    reference_id=invoice.id,
                )

        with uow.step("deduct block stock"):
            for block, quantity, _, _ in lines:
                adjust_block_stock(db, block.id, -quantity)

        invoice_id = invoice.id
        logger.info(
            f"Invoice {invoice_number} created for {customer_name}: "
            f"total {total_amount}, paid {amount_paid}"
        )

    return get_invoice(db, invoice_id)


def receive_payment(
    db: Session,
    customer_id: int,
    amount,
    payment_mode: PaymentMode = PaymentMode.CASH,
    notes: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Customer:
    """
    Collect `amount` against a customer's pending dues.

    Raises:
        ValidationError: amount not positive or larger than pending dues
        NotFoundError: unknown customer
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")

    if request_id:
        existing = db.query(CashbookEntry).filter(CashbookEntry.request_id == request_id).first()
        if existing:
            if existing.reference_type != "customer" or existing.reference_id != str(customer_id):
                raise ValidationError(
                    f"Request {request_id} was already used for another transaction"
                )
            logger.info(f"Payment {request_id} already recorded")
            return _get_customer(db, customer_id)

    with UnitOfWork(db, "receive payment") as uow:
        customer = _get_customer(db, customer_id)
        if amount > customer.pending_dues:
            raise ValidationError(
                f"Amount {amount} exceeds pending dues {customer.pending_dues} of {customer.name}"
            )
        name = customer.name

        with uow.step("record cashbook receipt"):
            record_entry(
                db,
                EntryType.RECEIPT,
                DUES_CATEGORY,
                amount,
                description=f"Due payment from {name}" + (f" - {notes}" if notes else ""),
                payment_mode=payment_mode,
                reference_type="customer",
                reference_id=customer_id,
                request_id=request_id,
            )

        with uow.step("reduce pending dues"):
            _apply_customer_totals(db, customer_id, Decimal('0'), -amount)

        customer = _get_customer(db, customer_id)
        logger.info(f"Received {amount} from {name}; pending dues now {customer.pending_dues}")

    return customer
