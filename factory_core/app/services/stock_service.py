"""
Stock Ledger Operations
=======================
Quantity adjustments for finished blocks and raw materials.

Each adjustment is one guarded UPDATE:

    SET qty = qty + :delta WHERE id = :id AND qty + :delta >= 0

so the check and the write cannot be separated by a concurrent caller and
a quantity can never go below zero. When no row matches, the row is read
once to tell a missing entity apart from a shortage.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models import Block, RawMaterial, EntryType, PaymentMode
from .cashbook_service import record_entry, to_money, MATERIAL_CATEGORY
from .errors import ValidationError, NotFoundError, InsufficientStockError
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def to_quantity(value) -> Decimal:
    """Material quantities are stored with 3 decimals (kg/tons/bags)."""
    return Decimal(str(value)).quantize(Decimal('0.001'))


def _guarded_adjust(db: Session, model, column_name: str, entity_id: int, delta, entity: str):
    column = getattr(model, column_name)

    row = db.execute(
        update(model)
        .where(model.id == entity_id, column + delta >= 0)
        .values({column_name: column + delta, "updated_at": datetime.utcnow()})
        .returning(model.id)
    ).first()

    record = db.query(model).populate_existing().filter(model.id == entity_id).first()
    if record is None:
        raise NotFoundError(entity, entity_id)
    if row is None:
        raise InsufficientStockError(
            entity, entity_id,
            available=getattr(record, column_name),
            requested=-delta,
            name=record.name,
        )
    return record


def adjust_block_stock(db: Session, block_id: int, delta: int) -> Block:
    """
    Add (delta > 0) or remove (delta < 0) finished blocks.

    Raises:
        ValidationError: delta is zero or not a whole number
        NotFoundError: block does not exist
        InsufficientStockError: available_qty would go negative
    """
    if isinstance(delta, bool) or int(delta) != delta:
        raise ValidationError("Block quantities must be whole numbers")
    delta = int(delta)
    if delta == 0:
        raise ValidationError("No quantity change specified")

    with UnitOfWork(db, "adjust block stock"):
        block = _guarded_adjust(db, Block, "available_qty", block_id, delta, "Block")
        logger.info(f"Block {block.name} stock {delta:+d} -> {block.available_qty}")
    return block


def adjust_material_stock(db: Session, material_id: int, delta) -> RawMaterial:
    """
    Add or remove raw material stock.

    Raises:
        ValidationError: delta is zero
        NotFoundError: material does not exist
        InsufficientStockError: current_stock would go negative
    """
    delta = to_quantity(delta)
    if delta == 0:
        raise ValidationError("No quantity change specified")

    with UnitOfWork(db, "adjust material stock"):
        material = _guarded_adjust(db, RawMaterial, "current_stock", material_id, delta, "RawMaterial")
        logger.info(f"Material {material.name} stock {delta:+} -> {material.current_stock}")
    return material


def stock_in(db: Session, block_id: int, quantity: int) -> Block:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    return adjust_block_stock(db, block_id, quantity)


def stock_out(db: Session, block_id: int, quantity: int) -> Block:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    return adjust_block_stock(db, block_id, -quantity)


def purchase_material(
    db: Session,
    material_id: int,
    quantity,
    total_cost,
    supplier: Optional[str] = None,
    payment_mode: PaymentMode = PaymentMode.CASH,
) -> RawMaterial:
    """
    Record a raw material purchase: stock goes up and the cost is booked
    as a cashbook payment, in one transaction.
    """
    quantity = to_quantity(quantity)
    total_cost = to_money(total_cost)
    if quantity <= 0 or total_cost <= 0:
        raise ValidationError("Purchase quantity and total cost must be positive")

    with UnitOfWork(db, "purchase material") as uow:
        with uow.step("credit material stock"):
            material = adjust_material_stock(db, material_id, quantity)

        with uow.step("record cashbook payment"):
            description = f"{material.name} purchase - {quantity.normalize():f} {material.unit.value}"
            if supplier:
                description += f" from {supplier}"
            record_entry(
                db,
                EntryType.PAYMENT,
                MATERIAL_CATEGORY,
                total_cost,
                description=description,
                payment_mode=payment_mode,
                reference_type="raw_material",
                reference_id=material.id,
            )

    return material
