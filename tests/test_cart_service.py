"""
Tests for CartService use cases
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.data.models import CartModel
from app.domain.errors import (
    CartItemNotFound,
    CartLocked,
    CartNotFound,
    ConcurrencyConflict,
    InvalidQuantity,
    ProductNotFound,
)
from tests.conftest import NOW


def cart_count(db):
    return db.execute(select(func.count()).select_from(CartModel)).scalar_one()


class TestShowCart:
    def test_new_cart_is_empty(self, cart_service):
        cart = cart_service.show_cart(None)

        assert cart["id"] is not None
        assert cart["products"] == []
        assert cart["total_price"] == Decimal("0.00")

    def test_same_id_returns_same_cart(self, cart_service):
        first = cart_service.show_cart(None)
        assert cart_service.show_cart(first["id"])["id"] == first["id"]

    def test_get_cart_unknown_id(self, cart_service):
        with pytest.raises(CartNotFound):
            cart_service.get_cart(12345)


class TestAddProduct:
    def test_add_remove_scenario(self, cart_service):
        cart = cart_service.add_product(None, 1, 2)
        cart_id = cart["id"]
        assert cart["total_price"] == Decimal("20.00")
        assert cart["products"] == [
            {
                "id": 1,
                "name": "Test Product",
                "quantity": 2,
                "unit_price": Decimal("10.00"),
                "total_price": Decimal("20.00"),
            }
        ]

        cart = cart_service.add_product(cart_id, 1, 3)
        assert cart["total_price"] == Decimal("50.00")
        assert len(cart["products"]) == 1
        assert cart["products"][0]["quantity"] == 5

        cart = cart_service.remove_product(cart_id, 1)
        assert cart["total_price"] == Decimal("0.00")
        assert cart["products"] == []

    def test_quantities_merge_over_many_adds(self, cart_service):
        quantities = [1, 4, 2, 7]
        cart_id = cart_service.show_cart(None)["id"]

        for quantity in quantities:
            cart = cart_service.add_product(cart_id, 3, quantity)

        assert cart["products"][0]["quantity"] == sum(quantities)
        assert cart["total_price"] == Decimal("1.99") * sum(quantities)

    def test_stored_total_matches_lines(self, cart_service, db):
        cart_id = cart_service.add_product(None, 1, 1)["id"]
        cart = cart_service.add_product(cart_id, 2, 3)

        assert cart["total_price"] == Decimal("25.00")
        assert cart["total_price"] == sum(p["total_price"] for p in cart["products"])
        db.expire_all()
        assert db.get(CartModel, cart_id).total_price == Decimal("25.00")

    def test_add_touches_interaction_time(self, cart_service, clock, db):
        cart_id = cart_service.show_cart(None)["id"]
        clock.advance(hours=2)

        cart_service.add_product(cart_id, 1, 1)

        db.expire_all()
        assert db.get(CartModel, cart_id).last_interaction_at == NOW + timedelta(hours=2)

    def test_invalid_quantity_before_any_io(self, cart_service, catalog, db):
        with pytest.raises(InvalidQuantity):
            cart_service.add_product(None, 1, 0)

        assert catalog.fetched == []
        assert cart_count(db) == 0

    def test_unknown_product_creates_nothing(self, cart_service, db):
        with pytest.raises(ProductNotFound):
            cart_service.add_product(None, 99999, 1)
        assert cart_count(db) == 0

    def test_abandoned_session_cart_is_replaced(self, cart_service, make_cart):
        abandoned_id = make_cart(NOW - timedelta(hours=5), abandoned=True, updated_at=NOW)

        cart = cart_service.add_product(abandoned_id, 1, 1)

        assert cart["id"] != abandoned_id
        assert cart["total_price"] == Decimal("10.00")

    def test_mutation_holds_cart_lock(self, cart_service, redis_client):
        cart_id = cart_service.show_cart(None)["id"]
        cart_service.add_product(cart_id, 1, 1)

        kwargs = redis_client.set.call_args.kwargs
        assert kwargs["name"] == f"cart:{cart_id}:lock"
        assert kwargs["nx"] is True
        redis_client.eval.assert_called_once()

    def test_busy_cart_is_not_mutated(self, cart_service, redis_client, db):
        cart_id = cart_service.add_product(None, 1, 1)["id"]
        redis_client.set.return_value = False

        with pytest.raises(CartLocked):
            cart_service.add_product(cart_id, 1, 5)

        db.expire_all()
        cart = db.get(CartModel, cart_id)
        assert cart.items[0].quantity == 1
        assert cart.total_price == Decimal("10.00")

    def test_failed_commit_reraises_and_session_stays_usable(self, cart_service, monkeypatch, db):
        cart_id = cart_service.add_product(None, 1, 1)["id"]

        def broken_total(cart):
            cart.total_price = Decimal("-1.00")

        # total < 0 lamie check constraint przy flush
        monkeypatch.setattr(cart_service, "_recompute", broken_total)

        with pytest.raises(IntegrityError):
            cart_service.add_product(cart_id, 1, 2)

        monkeypatch.undo()
        cart = cart_service.show_cart(cart_id)
        assert cart["products"][0]["quantity"] == 1
        assert cart["total_price"] == Decimal("10.00")

    def test_cart_abandoned_while_waiting_for_lock(self, cart_service, sweep_before_lock, db):
        cart_id = cart_service.add_product(None, 1, 1)["id"]
        sweep_before_lock("abandon")

        with pytest.raises(ConcurrencyConflict):
            cart_service.add_product(cart_id, 1, 5)

        db.expire_all()
        cart = db.get(CartModel, cart_id)
        assert cart.abandoned is True
        assert cart.items[0].quantity == 1
        assert cart.total_price == Decimal("10.00")

    def test_cart_removed_while_waiting_for_lock(self, cart_service, sweep_before_lock, db):
        cart_id = cart_service.add_product(None, 1, 1)["id"]
        sweep_before_lock("remove")

        with pytest.raises(ConcurrencyConflict):
            cart_service.add_product(cart_id, 2, 1)

        db.expire_all()
        assert db.get(CartModel, cart_id) is None
        assert cart_count(db) == 0

    def test_updated_at_follows_injected_clock(self, cart_service, make_cart, db):
        cart_id = make_cart(NOW, product_ids=())

        cart_service.add_product(cart_id, 1, 1)

        db.expire_all()
        cart = db.get(CartModel, cart_id)
        assert cart.updated_at == NOW
        assert cart.last_interaction_at == NOW


class TestRemoveProduct:
    def test_remove_absent_product_leaves_cart_unchanged(self, cart_service, clock, db):
        cart_id = cart_service.add_product(None, 1, 2)["id"]
        clock.advance(minutes=30)

        with pytest.raises(CartItemNotFound):
            cart_service.remove_product(cart_id, 2)

        db.expire_all()
        cart = db.get(CartModel, cart_id)
        assert cart.total_price == Decimal("20.00")
        assert cart.last_interaction_at == NOW
        assert [(i.product_id, i.quantity) for i in cart.items] == [(1, 2)]

    def test_remove_unknown_product(self, cart_service):
        cart_id = cart_service.add_product(None, 1, 2)["id"]
        with pytest.raises(ProductNotFound):
            cart_service.remove_product(cart_id, 99999)

    def test_cart_abandoned_before_remove(self, cart_service, sweep_before_lock, db):
        cart_id = cart_service.add_product(None, 1, 2)["id"]
        sweep_before_lock("abandon")

        with pytest.raises(ConcurrencyConflict):
            cart_service.remove_product(cart_id, 1)

        db.expire_all()
        assert [(i.product_id, i.quantity) for i in db.get(CartModel, cart_id).items] == [(1, 2)]

    def test_remove_keeps_other_lines(self, cart_service):
        cart_id = cart_service.add_product(None, 1, 2)["id"]
        cart_service.add_product(cart_id, 2, 1)

        cart = cart_service.remove_product(cart_id, 1)

        assert [p["id"] for p in cart["products"]] == [2]
        assert cart["total_price"] == Decimal("5.00")


class TestLivePricing:
    def test_price_change_shows_on_next_read(self, cart_service, catalog):
        cart_id = cart_service.add_product(None, 1, 3)["id"]
        catalog.set_price(1, "20.00")

        cart = cart_service.show_cart(cart_id)

        assert cart["products"][0]["unit_price"] == Decimal("20.00")
        assert cart["total_price"] == Decimal("60.00")

    def test_discontinued_product_is_left_out(self, cart_service, catalog):
        cart_id = cart_service.add_product(None, 1, 1)["id"]
        cart_service.add_product(cart_id, 2, 2)
        catalog.discontinue(2)

        cart = cart_service.show_cart(cart_id)

        assert [p["id"] for p in cart["products"]] == [1]
        assert cart["total_price"] == Decimal("10.00")
