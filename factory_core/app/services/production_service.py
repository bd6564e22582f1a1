"""
Production Batch Service
========================
A batch is one production run of a block type:

    in_progress --record_production--> in_progress
    in_progress --complete_batch-----> complete   (terminal, credits stock)
    in_progress --pause_batch--------> paused

Leaving `paused` (resume or finalize) has no agreed behaviour yet and is
rejected with TransitionNotImplementedError.

Status changes are compare-and-swap updates on the current status, so two
terminals completing the same batch credit the stock exactly once.
"""

import logging
from datetime import datetime
from typing import Optional, List

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models import ProductionBatch, BatchStatus, Block
from .errors import (
    ValidationError, InvalidOperationError, TransitionNotImplementedError, NotFoundError
)
from .sequence_service import next_batch_number
from .stock_service import adjust_block_stock
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    BatchStatus.IN_PROGRESS: {BatchStatus.COMPLETE, BatchStatus.PAUSED},
    BatchStatus.PAUSED: set(),
    BatchStatus.COMPLETE: set(),
}

# Declared in the workflow but not defined by the business yet
UNIMPLEMENTED_TRANSITIONS = {
    (BatchStatus.PAUSED, BatchStatus.IN_PROGRESS),
    (BatchStatus.PAUSED, BatchStatus.COMPLETE),
}


def _check_transition(batch: ProductionBatch, to_status: BatchStatus):
    if (batch.status, to_status) in UNIMPLEMENTED_TRANSITIONS:
        raise TransitionNotImplementedError("ProductionBatch", batch.status.value, to_status.value)
    if to_status not in ALLOWED_TRANSITIONS[batch.status]:
        raise InvalidOperationError(
            f"Batch {batch.batch_number} cannot move from {batch.status.value} to {to_status.value}"
        )


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or int(value) != value or value <= 0:
        raise ValidationError(f"{field} must be a positive whole number")
    return int(value)


def get_batch(db: Session, batch_id: int) -> ProductionBatch:
    batch = db.query(ProductionBatch).populate_existing().filter(
        ProductionBatch.id == batch_id
    ).first()
    if not batch:
        raise NotFoundError("ProductionBatch", batch_id)
    return batch


def _swap_status(db: Session, batch: ProductionBatch, to_status: BatchStatus, **values) -> bool:
    row = db.execute(
        update(ProductionBatch)
        .where(ProductionBatch.id == batch.id, ProductionBatch.status == batch.status)
        .values(status=to_status, **values)
        .returning(ProductionBatch.id)
    ).first()
    return row is not None


def start_batch(db: Session, block_id: int, target_qty: int, notes: Optional[str] = None) -> ProductionBatch:
    """Open a new batch for `block_id` with a fresh BATCH-NNNN number."""
    target_qty = _positive_int(target_qty, "target_qty")

    with UnitOfWork(db, "start batch") as uow:
        block = db.query(Block).filter(Block.id == block_id).first()
        if not block:
            raise NotFoundError("Block", block_id)

        with uow.step("allocate batch number"):
            batch_number = next_batch_number(db)

        with uow.step("create batch"):
            batch = ProductionBatch(
                batch_number=batch_number,
                block_id=block.id,
                block_name=block.name,
                target_qty=target_qty,
                produced_qty=0,
                defects=0,
                status=BatchStatus.IN_PROGRESS,
                notes=notes,
                started_at=datetime.utcnow(),
            )
            db.add(batch)
            db.flush()
        logger.info(f"Batch {batch_number} started: {target_qty} x {block.name}")

    return batch


def record_production(db: Session, batch_id: int, added_qty: int, defects: int = 0) -> ProductionBatch:
    """
    Add produced units to an in-progress batch. Over-production beyond the
    target is allowed and stored as-is.
    """
    added_qty = _positive_int(added_qty, "added_qty")
    if isinstance(defects, bool) or int(defects) != defects or defects < 0:
        raise ValidationError("defects must be a non-negative whole number")

    with UnitOfWork(db, "record production"):
        batch = get_batch(db, batch_id)
        if batch.status != BatchStatus.IN_PROGRESS:
            raise InvalidOperationError(
                f"Batch {batch.batch_number} is {batch.status.value}; production can only be recorded while in progress"
            )

        row = db.execute(
            update(ProductionBatch)
            .where(ProductionBatch.id == batch.id, ProductionBatch.status == BatchStatus.IN_PROGRESS)
            .values(
                produced_qty=ProductionBatch.produced_qty + added_qty,
                defects=ProductionBatch.defects + int(defects),
            )
            .returning(ProductionBatch.id)
        ).first()
        if row is None:
            raise InvalidOperationError(f"Batch {batch.batch_number} is no longer in progress")

        batch = get_batch(db, batch_id)
        logger.info(f"Batch {batch.batch_number} +{added_qty} -> {batch.produced_qty}/{batch.target_qty}")

    return batch


def complete_batch(db: Session, batch_id: int) -> ProductionBatch:
    """
    Close a batch and credit the produced quantity to the block's stock.

    The status change and the stock credit share one transaction; if the
    credit fails the batch stays in progress.
    """
    with UnitOfWork(db, "complete batch") as uow:
        batch = get_batch(db, batch_id)
        _check_transition(batch, BatchStatus.COMPLETE)

        with uow.step("mark batch complete"):
            if not _swap_status(db, batch, BatchStatus.COMPLETE, completed_at=datetime.utcnow()):
                raise InvalidOperationError(f"Batch {batch.batch_number} was already completed")
            batch = get_batch(db, batch_id)

        with uow.step("credit block stock"):
            if batch.block_id is None:
                logger.warning(f"Batch {batch.batch_number} has no block (deleted); no stock credited")
            elif batch.produced_qty > 0:
                adjust_block_stock(db, batch.block_id, batch.produced_qty)

        logger.info(f"Batch {batch.batch_number} complete: {batch.produced_qty} units")

    return batch


def pause_batch(db: Session, batch_id: int) -> ProductionBatch:
    with UnitOfWork(db, "pause batch"):
        batch = get_batch(db, batch_id)
        _check_transition(batch, BatchStatus.PAUSED)
        if not _swap_status(db, batch, BatchStatus.PAUSED):
            raise InvalidOperationError(f"Batch {batch.batch_number} changed status concurrently")
        batch = get_batch(db, batch_id)
        logger.info(f"Batch {batch.batch_number} paused")
    return batch


def resume_batch(db: Session, batch_id: int) -> ProductionBatch:
    batch = get_batch(db, batch_id)
    # raises TransitionNotImplementedError for paused batches
    _check_transition(batch, BatchStatus.IN_PROGRESS)
    return batch


def batch_progress(produced_qty: int, target_qty: int) -> int:
    """Display percentage, capped at 100. A zero target reads as 0%."""
    if not target_qty or target_qty <= 0:
        return 0
    return min(100, round(produced_qty / target_qty * 100))


def list_batches(db: Session, status: Optional[BatchStatus] = None) -> List[ProductionBatch]:
    query = db.query(ProductionBatch)
    if status:
        query = query.filter(ProductionBatch.status == BatchStatus(status))
    return query.order_by(ProductionBatch.started_at.desc(), ProductionBatch.id.desc()).all()
