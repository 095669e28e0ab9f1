# app/repos/cart_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.data.models.cart import CartModel
from app.domain.errors import CartNotFound, ConcurrencyConflict
from app.domain.pricing import ZERO
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int, refresh: bool = False) -> CartModel | None:
        if not refresh:
            return self.db.get(CartModel, cart_id)

        # pod lockiem czytamy swiezy stan z bazy (koszyk + pozycje), nie z identity map
        stmt = (
            select(CartModel)
            .where(CartModel.id == cart_id)
            .options(selectinload(CartModel.items))
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def find_by_id(self, cart_id: int) -> CartModel:
        cart = self.get_cart(cart_id)
        if cart is None:
            raise CartNotFound(cart_id)
        return cart

    def create_cart(self, now: datetime) -> CartModel:
        cart = CartModel(
            total_price=ZERO,
            last_interaction_at=now,
            abandoned=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart

    def find_or_create_for_session(self, session_cart_id: int | None, now: datetime) -> CartModel:
        """
        Jedyne miejsce laczace id koszyka klienta ze stanem na serwerze.
        Porzucony koszyk nigdy nie wraca do klienta, wtedy tworzymy nowy.
        """
        if session_cart_id is not None:
            cart = self.get_cart(session_cart_id)
            if cart is not None and not cart.abandoned:
                return cart
            if cart is not None:
                logger.info(f"Koszyk {session_cart_id} jest porzucony, tworze nowy")

        cart = self.create_cart(now)
        logger.info(f"Utworzono nowy koszyk {cart.id}")
        return cart

    def destroy(self, cart: CartModel) -> None:
        # pozycje leca kaskadowo (ORM delete-orphan + ON DELETE CASCADE) w jednym commicie
        self.db.delete(cart)
        self.commit()

    def inactive_cart_ids(self, cutoff: datetime) -> List[int]:
        stmt = (
            select(CartModel.id)
            .where(
                CartModel.abandoned.is_(False),
                CartModel.last_interaction_at <= cutoff,
            )
            .order_by(CartModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def stale_abandoned_cart_ids(self, cutoff: datetime) -> List[int]:
        stmt = (
            select(CartModel.id)
            .where(
                CartModel.abandoned.is_(True),
                CartModel.updated_at <= cutoff,
            )
            .order_by(CartModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            # UPDATE ... WHERE version = stara -> 0 wierszy
            self.db.rollback()
            raise ConcurrencyConflict() from e

    def rollback(self) -> None:
        self.db.rollback()
