"""Vehicle dispatch and delivery tracking for invoices."""

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models import Vehicle, VehicleStatus, Invoice, DeliveryStatus
from .errors import NotFoundError, InvalidOperationError
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def _get_vehicle(db: Session, vehicle_id: int) -> Vehicle:
    vehicle = db.query(Vehicle).populate_existing().filter(Vehicle.id == vehicle_id).first()
    if not vehicle:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


def _get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.query(Invoice).populate_existing().filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def dispatch_vehicle(db: Session, vehicle_id: int, invoice_id: int) -> Vehicle:
    """
    Send an available vehicle out with a pending invoice.
    Vehicle becomes on_delivery, invoice becomes in_transit.
    """
    with UnitOfWork(db, "dispatch vehicle") as uow:
        vehicle = _get_vehicle(db, vehicle_id)
        invoice = _get_invoice(db, invoice_id)

        if vehicle.status != VehicleStatus.AVAILABLE:
            raise InvalidOperationError(f"Vehicle {vehicle.registration} is {vehicle.status.value}")
        if invoice.delivery_status != DeliveryStatus.PENDING:
            raise InvalidOperationError(
                f"Invoice {invoice.invoice_number} is already {invoice.delivery_status.value}"
            )

        with uow.step("assign vehicle"):
            row = db.execute(
                update(Vehicle)
                .where(Vehicle.id == vehicle_id, Vehicle.status == VehicleStatus.AVAILABLE)
                .values(status=VehicleStatus.ON_DELIVERY, current_invoice_id=invoice_id)
                .returning(Vehicle.id)
            ).first()
            if row is None:
                raise InvalidOperationError(f"Vehicle {vehicle.registration} was dispatched concurrently")

        with uow.step("mark invoice in transit"):
            row = db.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id, Invoice.delivery_status == DeliveryStatus.PENDING)
                .values(delivery_status=DeliveryStatus.IN_TRANSIT, vehicle_id=vehicle_id)
                .returning(Invoice.id)
            ).first()
            if row is None:
                raise InvalidOperationError(f"Invoice {invoice.invoice_number} was dispatched concurrently")

        vehicle = _get_vehicle(db, vehicle_id)
        logger.info(f"Vehicle {vehicle.registration} dispatched with {invoice.invoice_number}")

    return vehicle


def mark_delivered(db: Session, invoice_id: int) -> Invoice:
    """Close an in-transit delivery and free its vehicle."""
    with UnitOfWork(db, "mark delivered") as uow:
        invoice = _get_invoice(db, invoice_id)
        if invoice.delivery_status != DeliveryStatus.IN_TRANSIT:
            raise InvalidOperationError(
                f"Invoice {invoice.invoice_number} is {invoice.delivery_status.value}, not in transit"
            )

        with uow.step("mark invoice delivered"):
            db.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id)
                .values(delivery_status=DeliveryStatus.DELIVERED)
            )

        with uow.step("release vehicle"):
            if invoice.vehicle_id is not None:
                db.execute(
                    update(Vehicle)
                    .where(Vehicle.id == invoice.vehicle_id, Vehicle.current_invoice_id == invoice_id)
                    .values(status=VehicleStatus.AVAILABLE, current_invoice_id=None)
                )

        invoice = _get_invoice(db, invoice_id)
        logger.info(f"Invoice {invoice.invoice_number} delivered")

    return invoice


def set_vehicle_status(db: Session, vehicle_id: int, status: VehicleStatus) -> Vehicle:
    """Manual status toggle (e.g. into or out of maintenance)."""
    status = VehicleStatus(status)
    with UnitOfWork(db, "set vehicle status"):
        vehicle = _get_vehicle(db, vehicle_id)
        if vehicle.current_invoice_id is not None:
            raise InvalidOperationError(
                f"Vehicle {vehicle.registration} is delivering invoice {vehicle.current_invoice_id}; mark it delivered first"
            )
        if status == VehicleStatus.ON_DELIVERY:
            raise InvalidOperationError("Use dispatch to send a vehicle on delivery")
        row = db.execute(
            update(Vehicle)
            .where(
                Vehicle.id == vehicle_id,
                Vehicle.current_invoice_id.is_(None),
                Vehicle.status != VehicleStatus.ON_DELIVERY,
            )
            .values(status=status)
            .returning(Vehicle.id)
        ).first()
        if row is None:
            raise InvalidOperationError(f"Vehicle {vehicle.registration} was dispatched concurrently")
        vehicle = _get_vehicle(db, vehicle_id)
        logger.info(f"Vehicle {vehicle.registration} marked {status.value}")
    return vehicle
