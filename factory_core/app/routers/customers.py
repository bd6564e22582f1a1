from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import Customer
from ..repository import Repository
from ..services import receive_payment
from ..services.report_service import pending_dues_report
from ..services.sales_service import list_invoices

router = APIRouter(prefix="/customers", tags=["Customers"])

# Running totals only move through sales and dues collection
PROTECTED = ("total_business", "pending_dues", "id", "created_at")


@router.get("", response_model=List[schemas.CustomerOut])
def list_customers(db: Session = Depends(get_db)):
    return Repository(db, Customer, PROTECTED).list()


@router.get("/with-dues", response_model=List[schemas.CustomerOut])
def customers_with_dues(db: Session = Depends(get_db)):
    return pending_dues_report(db)


@router.post("", response_model=schemas.CustomerOut, status_code=201)
def create_customer(customer_in: schemas.CustomerCreate, db: Session = Depends(get_db)):
    return Repository(db, Customer, PROTECTED).create(
        **customer_in.model_dump(), total_business=0, pending_dues=0
    )


@router.get("/{customer_id}", response_model=schemas.CustomerOut)
def get_customer(customer_id: int, db: Session = Depends(get_db)):
    return Repository(db, Customer, PROTECTED).get(customer_id)


@router.patch("/{customer_id}", response_model=schemas.CustomerOut)
def update_customer(customer_id: int, customer_in: schemas.CustomerUpdate, db: Session = Depends(get_db)):
    return Repository(db, Customer, PROTECTED).update(customer_id, **customer_in.model_dump(exclude_unset=True))


@router.delete("/{customer_id}")
def delete_customer(customer_id: int, db: Session = Depends(get_db)):
    Repository(db, Customer, PROTECTED).delete(customer_id)
    return {"success": True, "message": "Customer deleted"}


@router.get("/{customer_id}/invoices", response_model=List[schemas.InvoiceOut])
def customer_invoices(customer_id: int, db: Session = Depends(get_db)):
    Repository(db, Customer).get(customer_id)
    return list_invoices(db, customer_id=customer_id)


@router.post("/{customer_id}/payments", response_model=schemas.CustomerOut)
def collect_payment(customer_id: int, data: schemas.PaymentIn, db: Session = Depends(get_db)):
    """
    Collect a dues payment.
    Rejected (400) when the amount exceeds the customer's pending dues.
    """
    return receive_payment(
        db,
        customer_id,
        amount=data.amount,
        payment_mode=data.payment_mode,
        notes=data.notes,
        request_id=data.request_id,
    )
