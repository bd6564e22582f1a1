from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import BatchStatus, ProductionBatch
from ..services import (
    start_batch, record_production, complete_batch, pause_batch, resume_batch, batch_progress
)
from ..services.production_service import get_batch, list_batches

router = APIRouter(prefix="/production", tags=["Production"])


def _batch_out(batch: ProductionBatch) -> schemas.BatchOut:
    return schemas.BatchOut(
        id=batch.id,
        batch_number=batch.batch_number,
        block_id=batch.block_id,
        block_name=batch.block_name,
        target_qty=batch.target_qty,
        produced_qty=batch.produced_qty,
        defects=batch.defects,
        status=batch.status,
        progress=batch_progress(batch.produced_qty, batch.target_qty),
        notes=batch.notes,
        started_at=batch.started_at,
        completed_at=batch.completed_at,
    )


@router.get("/batches", response_model=List[schemas.BatchOut])
def list_production_batches(status: Optional[BatchStatus] = None, db: Session = Depends(get_db)):
    return [_batch_out(b) for b in list_batches(db, status)]


@router.post("/batches", response_model=schemas.BatchOut, status_code=201)
def create_batch(data: schemas.BatchCreate, db: Session = Depends(get_db)):
    return _batch_out(start_batch(db, data.block_id, data.target_qty, data.notes))


@router.get("/batches/{batch_id}", response_model=schemas.BatchOut)
def get_production_batch(batch_id: int, db: Session = Depends(get_db)):
    return _batch_out(get_batch(db, batch_id))


@router.post("/batches/{batch_id}/production", response_model=schemas.BatchOut)
def add_production(batch_id: int, data: schemas.ProductionRecordIn, db: Session = Depends(get_db)):
    return _batch_out(record_production(db, batch_id, data.added_qty, data.defects))


@router.post("/batches/{batch_id}/complete", response_model=schemas.BatchOut)
def finish_batch(batch_id: int, db: Session = Depends(get_db)):
    """Complete the batch and add its produced quantity to block stock."""
    return _batch_out(complete_batch(db, batch_id))


@router.post("/batches/{batch_id}/pause", response_model=schemas.BatchOut)
def hold_batch(batch_id: int, db: Session = Depends(get_db)):
    return _batch_out(pause_batch(db, batch_id))


@router.post("/batches/{batch_id}/resume", response_model=schemas.BatchOut)
def continue_batch(batch_id: int, db: Session = Depends(get_db)):
    return _batch_out(resume_batch(db, batch_id))
