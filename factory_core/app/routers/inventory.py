"""
Inventory API Router
====================
Finished blocks and raw materials:
- master data CRUD
- manual block stock in/out
- raw material purchases (stock + cashbook payment)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import Block, RawMaterial, BlockCategory, MaterialCategory
from ..repository import Repository
from ..services import stock_in, stock_out, purchase_material

router = APIRouter(tags=["Inventory"])


def _blocks(db: Session) -> Repository:
    return Repository(db, Block, protected=("available_qty", "id", "created_at"))


def _materials(db: Session) -> Repository:
    return Repository(db, RawMaterial, protected=("current_stock", "id", "created_at"))


# =============================================================================
# BLOCKS
# =============================================================================

@router.get("/blocks", response_model=List[schemas.BlockOut])
def list_blocks(category: Optional[BlockCategory] = None, db: Session = Depends(get_db)):
    return _blocks(db).list(category=category)


@router.post("/blocks", response_model=schemas.BlockOut, status_code=201)
def create_block(block_in: schemas.BlockCreate, db: Session = Depends(get_db)):
    return _blocks(db).create(**block_in.model_dump())


@router.get("/blocks/{block_id}", response_model=schemas.BlockOut)
def get_block(block_id: int, db: Session = Depends(get_db)):
    return _blocks(db).get(block_id)


@router.patch("/blocks/{block_id}", response_model=schemas.BlockOut)
def update_block(block_id: int, block_in: schemas.BlockUpdate, db: Session = Depends(get_db)):
    return _blocks(db).update(block_id, **block_in.model_dump(exclude_unset=True))


@router.delete("/blocks/{block_id}")
def delete_block(block_id: int, db: Session = Depends(get_db)):
    _blocks(db).delete(block_id)
    return {"success": True, "message": "Block deleted"}


@router.post("/blocks/{block_id}/stock", response_model=schemas.BlockOut)
def adjust_block(block_id: int, data: schemas.StockAdjustRequest, db: Session = Depends(get_db)):
    """
    Manual stock in / stock out.
    Stock out is rejected (409) if it would take available_qty below zero.
    """
    if data.type == "in":
        return stock_in(db, block_id, data.quantity)
    return stock_out(db, block_id, data.quantity)


# =============================================================================
# RAW MATERIALS
# =============================================================================

@router.get("/materials", response_model=List[schemas.MaterialOut])
def list_materials(
    category: Optional[MaterialCategory] = None,
    low_stock: bool = False,
    db: Session = Depends(get_db),
):
    materials = _materials(db).list(category=category)
    if low_stock:
        materials = [m for m in materials if m.is_low_stock]
    return materials


@router.post("/materials", response_model=schemas.MaterialOut, status_code=201)
def create_material(material_in: schemas.MaterialCreate, db: Session = Depends(get_db)):
    return _materials(db).create(**material_in.model_dump())


@router.get("/materials/{material_id}", response_model=schemas.MaterialOut)
def get_material(material_id: int, db: Session = Depends(get_db)):
    return _materials(db).get(material_id)


@router.patch("/materials/{material_id}", response_model=schemas.MaterialOut)
def update_material(material_id: int, material_in: schemas.MaterialUpdate, db: Session = Depends(get_db)):
    return _materials(db).update(material_id, **material_in.model_dump(exclude_unset=True))


@router.delete("/materials/{material_id}")
def delete_material(material_id: int, db: Session = Depends(get_db)):
    _materials(db).delete(material_id)
    return {"success": True, "message": "Material deleted"}


@router.post("/materials/{material_id}/purchase", response_model=schemas.MaterialOut)
def purchase(material_id: int, data: schemas.PurchaseRequest, db: Session = Depends(get_db)):
    """Record a purchase: stock goes up, cost is booked in the cashbook."""
    return purchase_material(
        db,
        material_id,
        quantity=data.quantity,
        total_cost=data.total_cost,
        supplier=data.supplier,
        payment_mode=data.payment_mode,
    )
