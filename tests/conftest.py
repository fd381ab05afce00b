"""Pytest configuration and fixtures."""

import os

# Point the app at a throwaway database before any storeops module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storeops.db.base import Base
from storeops.db.session import get_db
from storeops.main import app
# Import all models to ensure they're registered with Base.metadata
from storeops.models import *
from storeops.models.product import Product
from storeops.models.user import User
from storeops.services.inventory_check_service import InventoryCheckService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from storeops.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def catalog(db_session: Session) -> dict:
    """Products A=10, B=5, C=0."""
    products = {
        "A": Product(name="Product A", quantity=10),
        "B": Product(name="Product B", quantity=5),
        "C": Product(name="Product C", quantity=0),
    }
    db_session.add_all(products.values())
    db_session.commit()
    for product in products.values():
        db_session.refresh(product)
    return products


@pytest.fixture
def staff_user(db_session: Session) -> User:
    user = User(id="staff-1", name="Lan Nguyen", role="staff")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def service(db_session: Session) -> InventoryCheckService:
    return InventoryCheckService(db_session)


@pytest.fixture
def stock_levels(db_session: Session, catalog: dict):
    """Callable returning current catalog stock keyed like the catalog fixture."""
    def read() -> dict:
        db_session.expire_all()
        return {key: db_session.get(Product, p.id).quantity for key, p in catalog.items()}
    return read
