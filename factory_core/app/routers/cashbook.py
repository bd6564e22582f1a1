from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import EntryType
from ..services.cashbook_service import record_entry, list_entries, cashbook_summary

router = APIRouter(prefix="/cashbook", tags=["Cashbook"])


@router.get("/", response_model=List[schemas.CashbookOut])
def list_cashbook(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    type: Optional[EntryType] = None,
    limit: int = Query(100, le=500),
    db: Session = Depends(get_db),
):
    return list_entries(db, date_from, date_to, type, limit)


@router.post("/", response_model=schemas.CashbookOut, status_code=201)
def add_entry(data: schemas.CashbookCreate, db: Session = Depends(get_db)):
    """Manual ledger entry (expenses, other income)."""
    return record_entry(
        db,
        data.type,
        data.category,
        data.amount,
        description=data.description,
        payment_mode=data.payment_mode,
        entry_date=data.entry_date,
        reference_type="manual",
    )


@router.get("/summary", response_model=schemas.CashbookSummaryOut)
def summary(date_from: Optional[date] = None, date_to: Optional[date] = None, db: Session = Depends(get_db)):
    return cashbook_summary(db, date_from, date_to)
