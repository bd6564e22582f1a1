"""
Generic CRUD over one model: list / get / create / update / delete.

Ledger-controlled columns (stock quantities, customer running totals) are
declared `protected` per model and cannot be written through update();
they only change through the stock and sales services.
"""

from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .services.errors import NotFoundError, ValidationError
from .services.unit_of_work import UnitOfWork


class Repository:
    def __init__(self, db: Session, model, protected: Iterable[str] = ()):
        self.db = db
        self.model = model
        self.entity = model.__name__
        self.protected = set(protected)

    def list(self, order_by=None, limit: Optional[int] = None, offset: int = 0, **filters) -> List:
        query = self.db.query(self.model)
        for name, value in filters.items():
            if value is not None:
                query = query.filter(getattr(self.model, name) == value)
        query = query.order_by(order_by if order_by is not None else self.model.id.desc())
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def get(self, record_id: int):
        record = self.db.query(self.model).filter(self.model.id == record_id).first()
        if not record:
            raise NotFoundError(self.entity, record_id)
        return record

    def create(self, **fields):
        with UnitOfWork(self.db, f"create {self.entity}"):
            try:
                record = self.model(**fields)
                self.db.add(record)
                self.db.flush()
            except (IntegrityError, ValueError) as e:
                raise ValidationError(f"Invalid {self.entity}: {getattr(e, 'orig', e)}") from e
        return record

    def update(self, record_id: int, **fields):
        blocked = self.protected.intersection(fields)
        if blocked:
            raise ValidationError(
                f"{', '.join(sorted(blocked))} cannot be edited directly on {self.entity}"
            )
        with UnitOfWork(self.db, f"update {self.entity}"):
            record = self.get(record_id)
            try:
                for name, value in fields.items():
                    setattr(record, name, value)
                self.db.flush()
            except (IntegrityError, ValueError) as e:
                raise ValidationError(f"Invalid {self.entity}: {getattr(e, 'orig', e)}") from e
        return record

    def delete(self, record_id: int) -> bool:
        with UnitOfWork(self.db, f"delete {self.entity}"):
            record = self.get(record_id)
            self.db.delete(record)
            self.db.flush()
        return True
