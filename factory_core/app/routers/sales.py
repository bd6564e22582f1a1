"""
Sales API Router
================
Invoice creation runs the whole sale workflow (customer, numbering,
invoice + items, customer totals, cashbook receipt, stock deduction) as one
transaction. Rendering the invoice (PDF, print) is left to the client.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import PaymentStatus, DeliveryStatus
from ..services import SaleLine, NewCustomer, SaleRequest, create_sale
from ..services.sales_service import get_invoice, list_invoices
from ..services.sequence_service import next_invoice_number

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.get("/", response_model=List[schemas.InvoiceOut])
def list_sales(
    customer_id: Optional[int] = None,
    payment_status: Optional[PaymentStatus] = None,
    delivery_status: Optional[DeliveryStatus] = None,
    limit: int = Query(50, le=200),
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return list_invoices(
        db,
        customer_id=customer_id,
        payment_status=payment_status,
        delivery_status=delivery_status,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=schemas.InvoiceOut, status_code=201)
def create_invoice(data: schemas.SaleCreate, db: Session = Depends(get_db)):
    """
    Create an invoice.

    Validates:
    - at least one item, each with a known block and positive quantity
    - an existing customer or a new customer name
    - enough stock for every line, before anything is written
    """
    sale = SaleRequest(
        items=[SaleLine(block_id=i.block_id, quantity=i.quantity, rate=i.rate) for i in data.items],
        customer_id=data.customer_id,
        new_customer=NewCustomer(**data.new_customer.model_dump()) if data.new_customer else None,
        transport_cost=data.transport_cost,
        amount_paid=data.amount_paid,
        payment_mode=data.payment_mode,
        delivery_address=data.delivery_address,
        due_date=data.due_date,
        notes=data.notes,
        request_id=data.request_id,
    )
    return create_sale(db, sale)


@router.post("/invoice-number")
def reserve_invoice_number(db: Session = Depends(get_db)):
    """Allocate the next invoice number without creating an invoice."""
    return {"invoice_number": next_invoice_number(db)}


@router.get("/{invoice_id}", response_model=schemas.InvoiceOut)
def get_sale(invoice_id: int, db: Session = Depends(get_db)):
    return get_invoice(db, invoice_id)
