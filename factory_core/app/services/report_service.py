"""
Dashboard figures and downloadable reports.
Read-only: nothing here mutates the store.
"""

from datetime import date
from decimal import Decimal
from io import BytesIO
from typing import Optional, List

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import (
    Block, Customer, RawMaterial, ProductionBatch, Invoice,
    BatchStatus, DeliveryStatus, EntryType
)
from .cashbook_service import list_entries, cashbook_summary


def dashboard_stats(db: Session, today: Optional[date] = None) -> dict:
    today = today or date.today()
    summary = cashbook_summary(db, today, today)

    total_stock = db.query(func.coalesce(func.sum(Block.available_qty), 0)).scalar()
    active_batches = db.query(func.count(ProductionBatch.id)).filter(
        ProductionBatch.status == BatchStatus.IN_PROGRESS
    ).scalar()
    pending_dues = db.query(func.coalesce(func.sum(Customer.pending_dues), 0)).scalar()
    pending_deliveries = db.query(func.count(Invoice.id)).filter(
        Invoice.delivery_status == DeliveryStatus.PENDING
    ).scalar()

    low_stock = [
        {'name': m.name, 'stock': m.current_stock, 'min_stock_level': m.min_stock_level, 'unit': m.unit.value}
        for m in db.query(RawMaterial).filter(RawMaterial.current_stock <= RawMaterial.min_stock_level)
        .order_by(RawMaterial.name).all()
    ]

    recent = [
        {
            'type': 'sale' if entry.type == EntryType.RECEIPT else 'payment',
            'description': entry.description,
            'amount': entry.amount,
            'entry_date': entry.entry_date,
        }
        for entry in list_entries(db, limit=5)
    ]

    return {
        'today_revenue': summary['total_receipts'],
        'today_expenses': summary['total_payments'],
        'in_hand_amount': summary['balance'],
        'total_stock': int(total_stock or 0),
        'active_batches': active_batches,
        'pending_dues': Decimal(str(pending_dues or 0)).quantize(Decimal('0.01')),
        'pending_deliveries': pending_deliveries,
        'low_stock_alerts': low_stock,
        'recent_activity': recent,
    }


def pending_dues_report(db: Session) -> List[Customer]:
    return db.query(Customer).filter(Customer.pending_dues > 0).order_by(
        Customer.pending_dues.desc()
    ).all()


def export_cashbook_xlsx(db: Session, date_from: Optional[date] = None, date_to: Optional[date] = None) -> bytes:
    """Cashbook entries plus a totals sheet as an .xlsx workbook."""
    entries = list_entries(db, date_from, date_to)
    df = pd.DataFrame(
        [
            {
                'Date': e.entry_date,
                'Type': e.type.value,
                'Category': e.category,
                'Description': e.description,
                'Mode': e.payment_mode.value if e.payment_mode else '',
                'Amount': float(e.amount),
            }
            for e in entries
        ],
        columns=['Date', 'Type', 'Category', 'Description', 'Mode', 'Amount'],
    )

    summary = cashbook_summary(db, date_from, date_to)
    totals = pd.DataFrame([
        {'Metric': 'Total receipts', 'Amount': float(summary['total_receipts'])},
        {'Metric': 'Total payments', 'Amount': float(summary['total_payments'])},
        {'Metric': 'Balance', 'Amount': float(summary['balance'])},
    ])

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name='Cashbook', index=False)
        totals.to_excel(writer, sheet_name='Summary', index=False)
    return buffer.getvalue()
