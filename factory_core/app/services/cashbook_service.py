"""Append-only cashbook ledger: receipts in, payments out."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import CashbookEntry, EntryType, PaymentMode
from .errors import ValidationError
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SALES_CATEGORY = "Sales"
DUES_CATEGORY = "Payment Received"
MATERIAL_CATEGORY = "Material"


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal('0.01'))


def record_entry(
    db: Session,
    entry_type: EntryType,
    category: str,
    amount,
    description: str = "",
    payment_mode: Optional[PaymentMode] = None,
    entry_date: Optional[date] = None,
    reference_type: Optional[str] = None,
    reference_id=None,
    request_id: Optional[str] = None,
) -> CashbookEntry:
    """Append one ledger line. Entries are never edited afterwards."""
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Cashbook amount must be positive")
    if not category:
        raise ValidationError("Cashbook category is required")

    with UnitOfWork(db, "record cashbook entry"):
        entry = CashbookEntry(
            entry_date=entry_date or date.today(),
            type=EntryType(entry_type),
            category=category,
            description=description or "",
            amount=amount,
            payment_mode=PaymentMode(payment_mode) if payment_mode else None,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            request_id=request_id,
        )
        db.add(entry)
        db.flush()
        logger.info(f"Cashbook {entry.type.value} {amount} ({category}): {entry.description}")
    return entry


def list_entries(
    db: Session,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    entry_type: Optional[EntryType] = None,
    limit: Optional[int] = None,
) -> List[CashbookEntry]:
    query = db.query(CashbookEntry)
    if date_from:
        query = query.filter(CashbookEntry.entry_date >= date_from)
    if date_to:
        query = query.filter(CashbookEntry.entry_date <= date_to)
    if entry_type:
        query = query.filter(CashbookEntry.type == EntryType(entry_type))
    query = query.order_by(CashbookEntry.entry_date.desc(), CashbookEntry.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def cashbook_summary(db: Session, date_from: Optional[date] = None, date_to: Optional[date] = None) -> dict:
    """Totals of receipts and payments over a date range."""
    query = db.query(CashbookEntry.type, func.sum(CashbookEntry.amount))
    if date_from:
        query = query.filter(CashbookEntry.entry_date >= date_from)
    if date_to:
        query = query.filter(CashbookEntry.entry_date <= date_to)
    totals = {entry_type: to_money(total or 0) for entry_type, total in query.group_by(CashbookEntry.type).all()}

    receipts = totals.get(EntryType.RECEIPT, Decimal('0.00'))
    payments = totals.get(EntryType.PAYMENT, Decimal('0.00'))
    return {
        'date_from': date_from,
        'date_to': date_to,
        'total_receipts': receipts,
        'total_payments': payments,
        'balance': receipts - payments,
    }
