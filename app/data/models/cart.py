#app/data/models/cart.py
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Mapping

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, Numeric
from sqlalchemy.orm import relationship
from sqlalchemy.orm.attributes import flag_modified

from app.data.database import Base
from app.data.models.cart_item import CartItemModel
from app.data.types import UTCDateTime
from app.domain.pricing import ZERO, cart_total, validate_quantity
from app.domain.schemas import Product
from app.utils.clock import utcnow
from app.utils.settings import ABANDON_AFTER, RETENTION


class CartModel(Base):
    """
    Agregat koszyka. Pozycje (CartItemModel) naleza wylacznie do koszyka
    i sa usuwane razem z nim.

    Cykl zycia: aktywny -> porzucony -> usuniety (tylko w jedna strone).
    """

    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)

    total_price = Column(Numeric(12, 2), nullable=False, default=ZERO)
    last_interaction_at = Column(UTCDateTime, nullable=False, default=utcnow)
    abandoned = Column(Boolean, nullable=False, default=False)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    # ustawiane jawnie z zegara operacji (touch_interaction, mark_abandoned)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="ck_carts_total_price_non_negative"),
        Index("ix_carts_abandoned_last_interaction", "abandoned", "last_interaction_at"),
        Index("ix_carts_abandoned_updated", "abandoned", "updated_at"),
    )

    # kazdy UPDATE/DELETE koszyka sprawdza wersje (optimistic locking)
    __mapper_args__ = {"version_id_col": version}

    def item_for(self, product_id: int) -> CartItemModel | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def add_product(self, product: Product, quantity: int, now: datetime) -> CartItemModel:
        """
        Dodaje produkt albo zwieksza ilosc istniejacej pozycji (nigdy jej nie nadpisuje).
        Total przelicza wolajacy przez recompute_total, bo ceny sa pobierane na zywo.
        """
        validate_quantity(quantity)

        item = self.item_for(product.id)
        if item:
            item.quantity += quantity
        else:
            item = CartItemModel(product_id=product.id, quantity=quantity)
            self.items.append(item)

        self.touch_interaction(now)
        return item

    def remove_product(self, product_id: int, now: datetime) -> bool:
        item = self.item_for(product_id)
        if item is None:
            return False

        # delete-orphan: usuniecie z kolekcji kasuje wiersz przy flush
        self.items.remove(item)
        self.touch_interaction(now)
        return True

    def recompute_total(self, prices: Mapping[int, Decimal]) -> Decimal:
        self.total_price = cart_total(
            item.total_price(prices[item.product_id])
            for item in self.items
            if item.product_id in prices
        )
        return self.total_price

    def touch_interaction(self, now: datetime) -> None:
        self.last_interaction_at = now
        self.updated_at = now
        # UPDATE koszyka (i podbicie wersji) nawet gdy kolumny sie nie zmienily
        flag_modified(self, "last_interaction_at")

    def inactive_for(self, duration: timedelta, now: datetime) -> bool:
        return now - self.last_interaction_at >= duration

    def abandoned_for(self, duration: timedelta, now: datetime) -> bool:
        return bool(self.abandoned) and now - self.updated_at >= duration

    def mark_abandoned(self, now: datetime, after: timedelta = ABANDON_AFTER) -> bool:
        if self.abandoned:
            return False
        if not self.inactive_for(after, now):
            return False

        self.abandoned = True
        # od tej chwili updated_at liczy czas porzucenia
        self.updated_at = now
        return True

    def removable(self, now: datetime, retention: timedelta = RETENTION) -> bool:
        return self.abandoned_for(retention, now)
