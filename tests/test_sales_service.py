from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from factory_core.app.models import (
    Block, CashbookEntry, Customer, EntryType, Invoice, PaymentStatus, DeliveryStatus
)
from factory_core.app.services import (
    InsufficientStockError, NotFoundError, PartialFailure, ValidationError,
    SaleLine, NewCustomer, SaleRequest, create_sale, receive_payment, next_invoice_number
)
from factory_core.app.services import sales_service


def _sale(customer_id, block_id, quantity, paid, **kwargs):
    return SaleRequest(
        items=[SaleLine(block_id=block_id, quantity=quantity)],
        customer_id=customer_id,
        amount_paid=Decimal(str(paid)),
        **kwargs
    )


def test_fully_paid_sale(db, paver, customer):
    invoice = create_sale(db, _sale(customer.id, paver.id, 10, 500))

    year = date.today().year
    assert invoice.invoice_number == f"INV-{year}-0001"
    assert invoice.total_amount == Decimal("500.00")
    assert invoice.payment_status == PaymentStatus.PAID
    assert invoice.delivery_status == DeliveryStatus.PENDING
    assert invoice.balance_due == 0

    assert len(invoice.items) == 1
    item = invoice.items[0]
    assert (item.block_name, item.quantity, item.rate, item.amount) == (
        "Paver-A", 10, Decimal("50.00"), Decimal("500.00")
    )

    assert db.get(Block, paver.id).available_qty == 90
    cust = db.get(Customer, customer.id)
    assert cust.total_business == Decimal("500.00")
    assert cust.pending_dues == 0

    receipt = db.query(CashbookEntry).one()
    assert receipt.type == EntryType.RECEIPT
    assert receipt.category == "Sales"
    assert receipt.amount == Decimal("500.00")
    assert receipt.description == f"{invoice.invoice_number} - Ravi Constructions"
    assert receipt.reference_id == str(invoice.id)


def test_partial_payment_adds_dues(db, paver, customer):
    invoice = create_sale(db, _sale(customer.id, paver.id, 10, 200))

    assert invoice.payment_status == PaymentStatus.PARTIAL
    assert invoice.balance_due == Decimal("300.00")
    assert db.get(Customer, customer.id).pending_dues == Decimal("300.00")
    assert db.query(CashbookEntry).one().amount == Decimal("200.00")


def test_unpaid_sale_books_no_receipt(db, paver, customer):
    invoice = create_sale(db, _sale(customer.id, paver.id, 4, 0, transport_cost=Decimal("150")))

    assert invoice.payment_status == PaymentStatus.PENDING
    assert invoice.payment_mode is None
    assert invoice.subtotal == Decimal("200.00")
    assert invoice.total_amount == Decimal("350.00")
    assert db.query(CashbookEntry).count() == 0
    assert db.get(Customer, customer.id).pending_dues == Decimal("350.00")


def test_rate_override_and_merged_lines(db, paver, customer):
    sale = SaleRequest(
        items=[
            SaleLine(block_id=paver.id, quantity=60, rate=Decimal("45")),
            SaleLine(block_id=paver.id, quantity=40),
        ],
        customer_id=customer.id,
    )
    invoice = create_sale(db, sale)

    assert [i.amount for i in invoice.items] == [Decimal("2700.00"), Decimal("2000.00")]
    assert invoice.total_amount == Decimal("4700.00")
    assert db.get(Block, paver.id).available_qty == 0


def test_cart_exceeding_stock_in_total_is_rejected(db, paver, customer):
    sale = SaleRequest(
        items=[SaleLine(block_id=paver.id, quantity=60), SaleLine(block_id=paver.id, quantity=41)],
        customer_id=customer.id,
    )
    with pytest.raises(InsufficientStockError):
        create_sale(db, sale)
    assert db.query(Invoice).count() == 0


def test_new_customer_created_with_sale(db, paver):
    sale = SaleRequest(
        items=[SaleLine(block_id=paver.id, quantity=2)],
        new_customer=NewCustomer(name="  Lakshmi Builders ", phone="9000000000"),
    )
    invoice = create_sale(db, sale)

    cust = db.get(Customer, invoice.customer_id)
    assert cust.name == "Lakshmi Builders"
    assert cust.total_business == Decimal("100.00")
    assert cust.pending_dues == Decimal("100.00")


def test_empty_cart_is_rejected(db, customer):
    with pytest.raises(ValidationError):
        create_sale(db, SaleRequest(items=[], customer_id=customer.id))
    assert db.query(Invoice).count() == 0


def test_missing_customer_is_rejected(db, paver):
    with pytest.raises(ValidationError):
        create_sale(db, SaleRequest(items=[SaleLine(block_id=paver.id, quantity=1)]))
    with pytest.raises(NotFoundError):
        create_sale(db, _sale(999, paver.id, 1, 0))


def test_insufficient_stock_applies_nothing(db, paver, customer):
    with pytest.raises(InsufficientStockError):
        create_sale(db, _sale(customer.id, paver.id, 101, 1000))

    assert db.query(Invoice).count() == 0
    assert db.query(CashbookEntry).count() == 0
    assert db.get(Block, paver.id).available_qty == 100
    assert db.get(Customer, customer.id).total_business == 0
    # the number was not consumed
    assert next_invoice_number(db).endswith("-0001")


def test_overpayment_limited_to_total_plus_dues(db, paver, customer):
    create_sale(db, _sale(customer.id, paver.id, 2, 0))  # dues 100

    with pytest.raises(ValidationError):
        create_sale(db, _sale(customer.id, paver.id, 2, Decimal("200.01")))

    invoice = create_sale(db, _sale(customer.id, paver.id, 2, 200))
    assert invoice.payment_status == PaymentStatus.PAID
    assert db.get(Customer, customer.id).pending_dues == 0


def test_retried_sale_returns_first_invoice(db, paver, customer):
    first = create_sale(db, _sale(customer.id, paver.id, 10, 500, request_id="req-1"))
    second = create_sale(db, _sale(customer.id, paver.id, 10, 500, request_id="req-1"))

    assert second.id == first.id
    assert db.query(Invoice).count() == 1
    assert db.get(Block, paver.id).available_qty == 90


def test_store_failure_rolls_back_every_step(db, paver, customer, monkeypatch):
    def broken_record_entry(*args, **kwargs):
        raise OperationalError("INSERT INTO cashbook_entries", {}, Exception("disk I/O error"))

    monkeypatch.setattr(sales_service, "record_entry", broken_record_entry)

    with pytest.raises(PartialFailure) as exc_info:
        create_sale(db, _sale(customer.id, paver.id, 10, 500))

    failure = exc_info.value
    assert failure.retryable
    assert failure.failed_step == "record cashbook receipt"
    assert failure.completed_steps == [
        "resolve customer", "allocate invoice number", "persist invoice", "update customer totals"
    ]

    assert db.query(Invoice).count() == 0
    assert db.get(Block, paver.id).available_qty == 100
    assert db.get(Customer, customer.id).total_business == 0
    assert next_invoice_number(db).endswith("-0001")


# =============================================================================
# DUES COLLECTION
# =============================================================================

def test_receive_payment_reduces_dues(db, paver, customer):
    create_sale(db, _sale(customer.id, paver.id, 10, 200))  # dues 300

    cust = receive_payment(db, customer.id, 120, notes="cheque 1123")
    assert cust.pending_dues == Decimal("180.00")

    entry = db.query(CashbookEntry).filter(CashbookEntry.category == "Payment Received").one()
    assert entry.amount == Decimal("120.00")
    assert entry.description == "Due payment from Ravi Constructions - cheque 1123"
    assert entry.reference_type == "customer"


def test_payment_larger_than_dues_is_rejected(db, paver, customer):
    create_sale(db, _sale(customer.id, paver.id, 10, 200))

    with pytest.raises(ValidationError):
        receive_payment(db, customer.id, Decimal("300.01"))
    with pytest.raises(ValidationError):
        receive_payment(db, customer.id, 0)

    assert db.get(Customer, customer.id).pending_dues == Decimal("300.00")
    assert db.query(CashbookEntry).count() == 1


def test_payment_clears_dues_exactly(db, paver, customer):
    create_sale(db, _sale(customer.id, paver.id, 10, 200))
    assert receive_payment(db, customer.id, 300).pending_dues == 0


def test_payment_for_unknown_customer(db):
    with pytest.raises(NotFoundError):
        receive_payment(db, 42, 10)


def test_retried_payment_is_recorded_once(db, paver, customer):
    create_sale(db, _sale(customer.id, paver.id, 10, 0))

    receive_payment(db, customer.id, 100, request_id="pay-1")
    cust = receive_payment(db, customer.id, 100, request_id="pay-1")

    assert cust.pending_dues == Decimal("400.00")
    assert db.query(CashbookEntry).count() == 1


def test_failed_dues_update_removes_the_receipt(db, paver, customer, monkeypatch):
    create_sale(db, _sale(customer.id, paver.id, 10, 0))  # dues 500

    def broken_totals(*args, **kwargs):
        raise OperationalError("UPDATE customers", {}, Exception("database is locked"))

    monkeypatch.setattr(sales_service, "_apply_customer_totals", broken_totals)

    with pytest.raises(PartialFailure) as exc_info:
        receive_payment(db, customer.id, 200)

    assert exc_info.value.failed_step == "reduce pending dues"
    assert exc_info.value.completed_steps == ["record cashbook receipt"]
    assert db.query(CashbookEntry).count() == 0
    assert db.get(Customer, customer.id).pending_dues == Decimal("500.00")


def test_payment_key_reused_for_other_customer(db, paver, customer):
    other = Customer(name="Lakshmi Builders", total_business=0, pending_dues=0)
    db.add(other)
    db.commit()
    create_sale(db, _sale(customer.id, paver.id, 2, 0))
    create_sale(db, _sale(other.id, paver.id, 2, 0))

    receive_payment(db, customer.id, 50, request_id="pay-7")
    with pytest.raises(ValidationError):
        receive_payment(db, other.id, 50, request_id="pay-7")

    assert db.get(Customer, other.id).pending_dues == Decimal("100.00")
    assert db.query(CashbookEntry).count() == 1
