"""Pytest configuration and fixtures"""
import os
from contextlib import contextmanager

# Set test environment variables before app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("PRODUCT_SERVICE_URL", "http://product-service.test")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.data import models  # noqa: F401
from app.data.database import Base
from app.data.models import CartItemModel, CartModel
from app.domain.errors import ProductNotFound
from app.domain.schemas import Product
from app.services.cart_service import CartService
from app.services.lock_service import LockService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeCatalog:
    """In-memory product catalog with the ProductClient interface."""

    def __init__(self, products):
        self.products = {p.id: p for p in products}
        self.fetched = []

    def fetch_product(self, product_id):
        self.fetched.append(product_id)
        if product_id not in self.products:
            raise ProductNotFound(product_id)
        return self.products[product_id]

    def fetch_products(self, product_ids):
        return {pid: self.products[pid] for pid in product_ids if pid in self.products}

    def set_price(self, product_id, price):
        self.products[product_id] = self.products[product_id].model_copy(
            update={"price": Decimal(price)}
        )

    def discontinue(self, product_id):
        del self.products[product_id]


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'carts.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def catalog():
    return FakeCatalog(
        [
            Product(id=1, name="Test Product", price="10.0"),
            Product(id=2, name="Another Product", price="5.0"),
            Product(id=3, name="Cable", price=1.99),
        ]
    )


@pytest.fixture
def redis_client():
    """Mock Redis client: every lock is free and every release succeeds"""
    client = Mock()
    client.set.return_value = True
    client.eval.return_value = 1
    return client


@pytest.fixture
def lock_service(redis_client):
    return LockService(client=redis_client, ttl=30, wait=0)


@pytest.fixture
def cart_service(db, catalog, lock_service, clock):
    return CartService(db=db, product_client=catalog, lock_service=lock_service, clock=clock)


@pytest.fixture
def make_cart(db):
    """Insert a cart with explicit lifecycle timestamps"""

    def _make(last_interaction_at, abandoned=False, updated_at=None, product_ids=(1,)):
        cart = CartModel(
            total_price=Decimal("0.00"),
            last_interaction_at=last_interaction_at,
            abandoned=abandoned,
            created_at=last_interaction_at,
            updated_at=updated_at or last_interaction_at,
        )
        for product_id in product_ids:
            cart.items.append(CartItemModel(product_id=product_id, quantity=1))
        db.add(cart)
        db.commit()
        return cart.id

    return _make


@pytest.fixture
def sweep_before_lock(lock_service, session_factory, monkeypatch):
    """Let the sweeper abandon or remove the cart right before a request takes its lock"""

    def _arm(action):
        take_lock = lock_service.cart_lock

        @contextmanager
        def cart_lock(cart_id):
            other = session_factory()
            try:
                cart = other.get(CartModel, cart_id)
                if action == "abandon":
                    cart.mark_abandoned(NOW + timedelta(hours=4), after=timedelta(0))
                else:
                    other.delete(cart)
                other.commit()
            finally:
                other.close()
            with take_lock(cart_id):
                yield

        monkeypatch.setattr(lock_service, "cart_lock", cart_lock)

    return _arm
