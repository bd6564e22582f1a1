import os
from collections.abc import Generator
from decimal import Decimal

# The app module builds its default engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from factory_core.app.db import build_engine, create_db_and_tables, get_db
from factory_core.app.main import app
from factory_core.app.models import Block, Customer, RawMaterial, Vehicle, MaterialUnit, MaterialCategory


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    create_db_and_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory) -> Generator[TestClient, None, None]:
    """API client whose requests run against the per-test database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def paver(db) -> Block:
    """Paver-A: 100 in stock at 50 per unit."""
    block = Block(name="Paver-A", available_qty=100, price_per_unit=Decimal("50"))
    db.add(block)
    db.commit()
    return block


@pytest.fixture
def customer(db) -> Customer:
    customer = Customer(name="Ravi Constructions", phone="9876543210", total_business=0, pending_dues=0)
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def cement(db) -> RawMaterial:
    material = RawMaterial(
        name="Cement",
        category=MaterialCategory.CEMENT,
        unit=MaterialUnit.BAGS,
        current_stock=Decimal("10"),
        min_stock_level=Decimal("20"),
    )
    db.add(material)
    db.commit()
    return material


@pytest.fixture
def truck(db) -> Vehicle:
    vehicle = Vehicle(name="Tata 407", registration="KA-01-AB-1234")
    db.add(vehicle)
    db.commit()
    return vehicle
