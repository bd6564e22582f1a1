"""
Transaction boundary for service operations.

Every public service operation runs inside a UnitOfWork. The outermost unit
on a session owns the transaction: it commits on success and rolls back on
any failure. Units opened while another one is active on the same session
join it, so `complete_batch` can call `adjust_block_stock` and both land in
one commit.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceFailure, PartialFailure

logger = logging.getLogger(__name__)

_ACTIVE_KEY = "factory_core.unit_of_work"


class UnitOfWork:
    def __init__(self, db: Session, operation: str):
        self.db = db
        self.operation = operation
        self.completed_steps = []
        self._current_step = None
        self._owner = False

    def __enter__(self):
        self._owner = self.db.info.get(_ACTIVE_KEY) is None
        if self._owner:
            self.db.info[_ACTIVE_KEY] = self
        return self

    @contextmanager
    def step(self, name: str):
        """Mark a named step so failures report how far the operation got."""
        self._current_step = name
        yield
        self.completed_steps.append(name)
        self._current_step = None

    def __exit__(self, exc_type, exc, tb):
        if not self._owner:
            return False
        try:
            if exc_type is None:
                self._commit()
                return False
            self.db.rollback()
            if isinstance(exc, SQLAlchemyError):
                raise self._persistence_failure(self._current_step or "prepare", exc) from exc
            logger.warning(f"{self.operation} rejected: {exc}")
            return False
        finally:
            self.db.info.pop(_ACTIVE_KEY, None)

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise self._persistence_failure("commit", e) from e

    def _persistence_failure(self, step: str, cause: Exception) -> PersistenceFailure:
        logger.error(f"{self.operation} failed at {step}: {cause}")
        if self.completed_steps:
            return PartialFailure(self.operation, step, self.completed_steps, cause)
        return PersistenceFailure(f"{self.operation} failed: {cause}")
