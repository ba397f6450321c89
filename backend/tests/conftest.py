"""Pytest configuration and fixtures."""

import os

# Keep the app engine off the on-disk database during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cafe_ops.db.base import Base
from cafe_ops.db.session import get_db
from cafe_ops.main import app
# Import all models to ensure they're registered with Base.metadata
from cafe_ops.models import *
from cafe_ops.models.ingredient import Ingredient
from cafe_ops.models.menu import MenuItem, RecipeIngredient
from cafe_ops.models.stock import MovementType, StockMovement
from cafe_ops.models.supplier import Supplier
from cafe_ops.services.stock_prediction_service import utc_today

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
    from cafe_ops.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== Device identity headers ==============

@pytest.fixture
def owner_headers() -> dict:
    return {"X-Device-ID": "owner-dashboard", "X-Device-Role": "owner"}


@pytest.fixture
def kasir_headers() -> dict:
    return {"X-Device-ID": "kasir-tablet-1", "X-Device-Role": "kasir"}


@pytest.fixture
def stok_headers() -> dict:
    return {"X-Device-ID": "stok-phone-1", "X-Device-Role": "device_stok"}


# ============== Data fixtures ==============

@pytest.fixture
def test_supplier(db_session: Session) -> Supplier:
    """Create a test supplier."""
    supplier = Supplier(
        name="CV Susu Segar Kendari",
        contact_phone="+6281234567890",
        delivery_days=2,
        minimum_order_amount=Decimal("50000"),
        is_active=True,
        is_preferred=True,
    )
    db_session.add(supplier)
    db_session.commit()
    db_session.refresh(supplier)
    return supplier


@pytest.fixture
def make_ingredient(db_session: Session) -> Callable[..., Ingredient]:
    """Factory for ingredients; category defaults to one with no seasonal multiplier."""
    def _make(
        name: str = "Fresh Milk",
        unit: str = "ml",
        current_stock: float = 100,
        minimum_stock: float = 50,
        maximum_stock=500,
        cost_per_unit: float = 20,
        category: str = "dairy",
        supplier: Supplier = None,
        is_active: bool = True,
    ) -> Ingredient:
        ingredient = Ingredient(
            name=name,
            unit=unit,
            category=category,
            current_stock=Decimal(str(current_stock)),
            minimum_stock=Decimal(str(minimum_stock)),
            maximum_stock=Decimal(str(maximum_stock)) if maximum_stock is not None else None,
            cost_per_unit=Decimal(str(cost_per_unit)),
            supplier_id=supplier.id if supplier else None,
            is_active=is_active,
        )
        db_session.add(ingredient)
        db_session.commit()
        db_session.refresh(ingredient)
        return ingredient

    return _make


@pytest.fixture
def add_usage(db_session: Session) -> Callable[..., None]:
    """Record usage movements: ``add_usage(ingredient, {days_ago: quantity})``."""
    def _add(ingredient: Ingredient, usage_by_days_ago: dict) -> None:
        today = utc_today()
        for days_ago, quantity in usage_by_days_ago.items():
            db_session.add(StockMovement(
                ingredient_id=ingredient.id,
                movement_type=MovementType.USAGE.value,
                quantity=Decimal(str(-quantity)),
                reference_type="order",
                created_at=datetime.combine(today - timedelta(days=days_ago), time(12, 0)),
            ))
        db_session.commit()

    return _add


@pytest.fixture
def coffee_recipe(db_session: Session, make_ingredient) -> dict:
    """Espresso beans + milk, and a Kopi Susu menu item using both."""
    beans = make_ingredient(
        name="Espresso Beans", unit="gram", current_stock=1000, minimum_stock=200,
        cost_per_unit=200, category="coffee",
    )
    milk = make_ingredient(name="Fresh Milk", unit="ml", current_stock=5000, cost_per_unit=20)

    kopi_susu = MenuItem(name="Kopi Susu", category="coffee", base_price=Decimal("15000"), is_available=True)
    db_session.add(kopi_susu)
    db_session.flush()
    db_session.add_all([
        RecipeIngredient(menu_item_id=kopi_susu.id, ingredient_id=beans.id, quantity=Decimal("18"), unit="gram"),
        RecipeIngredient(menu_item_id=kopi_susu.id, ingredient_id=milk.id, quantity=Decimal("150"), unit="ml"),
    ])
    db_session.commit()
    db_session.refresh(kopi_susu)

    return {"beans": beans, "milk": milk, "menu_item": kopi_susu, "db": db_session}
