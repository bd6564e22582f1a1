"""
Document number sequences
=========================
INV-<year>-<NNNN> for invoices (reset every local calendar year) and
BATCH-<NNNN> for production batches (global).

Allocation never reads a counter and writes it back. The counter row is
advanced with a single conditional UPDATE ... RETURNING, so concurrent
callers (threads or separate processes) each receive a distinct number.
The first allocation of a sequence inserts the row inside a savepoint;
losing that insert race simply retries the UPDATE path.

Numbers are allocated inside the caller's transaction: if the sale or batch
that requested a number rolls back, the counter rolls back with it and the
number is reused, keeping the run gap-free.
"""

import logging
import os
from datetime import date, datetime
from typing import Optional, Tuple

from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import NumberSequence
from .errors import PersistenceFailure, ValidationError
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SEQUENCE_MAX_RETRIES = int(os.getenv("SEQUENCE_MAX_RETRIES", "5"))

INVOICE_SEQUENCE = "INVOICE"
BATCH_SEQUENCE = "BATCH"


def _scope_matches(year: Optional[int]):
    if year is None:
        return NumberSequence.year.is_(None)
    return NumberSequence.year == year


def _scope_older(year: Optional[int]):
    """Stored scope the counter may move forward from. Scopes never go back."""
    if year is None:
        return NumberSequence.year.is_not(None)
    return or_(NumberSequence.year.is_(None), NumberSequence.year < year)


def _allocate(db: Session, sequence_name: str, prefix: str, year: Optional[int], padding: int) -> Tuple[int, str, int]:
    returning = (NumberSequence.current_number, NumberSequence.prefix, NumberSequence.padding)

    for attempt in range(1, SEQUENCE_MAX_RETRIES + 1):
        # Same scope: increment
        row = db.execute(
            update(NumberSequence)
            .where(NumberSequence.sequence_name == sequence_name, _scope_matches(year))
            .values(current_number=NumberSequence.current_number + 1, updated_at=datetime.utcnow())
            .returning(*returning)
        ).first()
        if row:
            return row.current_number, row.prefix, row.padding

        # Scope moved forward (new year): restart at 1
        row = db.execute(
            update(NumberSequence)
            .where(NumberSequence.sequence_name == sequence_name, _scope_older(year))
            .values(current_number=1, year=year, updated_at=datetime.utcnow())
            .returning(*returning)
        ).first()
        if row:
            logger.info(f"Sequence {sequence_name} reset for scope {year}")
            return row.current_number, row.prefix, row.padding

        current = db.query(NumberSequence.year).filter(NumberSequence.sequence_name == sequence_name).first()
        if current is not None and current.year is not None and year is not None and current.year > year:
            raise ValidationError(
                f"Sequence {sequence_name} is already at scope {current.year}; cannot allocate for {year}"
            )

        # No counter yet
        try:
            with db.begin_nested():
                db.add(NumberSequence(
                    sequence_name=sequence_name,
                    prefix=prefix,
                    current_number=1,
                    year=year,
                    padding=padding,
                ))
                db.flush()
            return 1, prefix, padding
        except IntegrityError:
            logger.info(
                f"Sequence {sequence_name} created concurrently, retrying "
                f"(attempt {attempt}/{SEQUENCE_MAX_RETRIES})"
            )

    raise PersistenceFailure(
        f"Could not allocate a number from sequence {sequence_name} "
        f"after {SEQUENCE_MAX_RETRIES} attempts"
    )


def format_number(prefix: str, number: int, padding: int = 4, year: Optional[int] = None) -> str:
    """INV-2026-0001 when year scoped, BATCH-0001 otherwise"""
    number_str = str(number).zfill(padding)
    if year is not None:
        return f"{prefix}-{year}-{number_str}"
    return f"{prefix}-{number_str}"


def get_next_sequence(
    db: Session,
    sequence_name: str,
    prefix: str = "",
    year_wise: bool = True,
    year: Optional[int] = None,
    padding: int = 4,
) -> str:
    """
    Allocate the next number of `sequence_name` and return it formatted.

    With year_wise the counter is scoped to `year` (default: the local
    calendar year) and restarts at 1 when the scope moves forward. Asking
    for a year older than the stored one raises ValidationError.
    """
    scope = (year or date.today().year) if year_wise else None

    with UnitOfWork(db, f"allocate {sequence_name} number"):
        number, stored_prefix, stored_padding = _allocate(db, sequence_name, prefix, scope, padding)

    return format_number(stored_prefix or prefix, number, stored_padding or padding, scope)


def next_invoice_number(db: Session, year: Optional[int] = None) -> str:
    return get_next_sequence(db, INVOICE_SEQUENCE, "INV", year_wise=True, year=year)


def next_batch_number(db: Session) -> str:
    return get_next_sequence(db, BATCH_SEQUENCE, "BATCH", year_wise=False)
