from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import Vehicle, VehicleStatus
from ..repository import Repository
from ..services.transport_service import dispatch_vehicle, mark_delivered, set_vehicle_status

router = APIRouter(prefix="/transport", tags=["Transport"])


@router.get("/vehicles", response_model=List[schemas.VehicleOut])
def list_vehicles(status: Optional[VehicleStatus] = None, db: Session = Depends(get_db)):
    return Repository(db, Vehicle).list(status=status)


@router.post("/vehicles", response_model=schemas.VehicleOut, status_code=201)
def add_vehicle(data: schemas.VehicleCreate, db: Session = Depends(get_db)):
    return Repository(db, Vehicle).create(**data.model_dump(), status=VehicleStatus.AVAILABLE)


@router.get("/vehicles/{vehicle_id}", response_model=schemas.VehicleOut)
def get_vehicle(vehicle_id: int, db: Session = Depends(get_db)):
    return Repository(db, Vehicle).get(vehicle_id)


@router.delete("/vehicles/{vehicle_id}")
def delete_vehicle(vehicle_id: int, db: Session = Depends(get_db)):
    Repository(db, Vehicle).delete(vehicle_id)
    return {"success": True, "message": "Vehicle deleted"}


@router.post("/vehicles/{vehicle_id}/status", response_model=schemas.VehicleOut)
def change_status(vehicle_id: int, data: schemas.VehicleStatusIn, db: Session = Depends(get_db)):
    return set_vehicle_status(db, vehicle_id, data.status)


@router.post("/vehicles/{vehicle_id}/dispatch", response_model=schemas.VehicleOut)
def dispatch(vehicle_id: int, data: schemas.DispatchIn, db: Session = Depends(get_db)):
    """Send the vehicle out with a pending invoice."""
    return dispatch_vehicle(db, vehicle_id, data.invoice_id)


@router.post("/deliveries/{invoice_id}/delivered", response_model=schemas.InvoiceOut)
def delivered(invoice_id: int, db: Session = Depends(get_db)):
    return mark_delivered(db, invoice_id)
