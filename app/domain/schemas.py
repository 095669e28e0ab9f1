# app/domain/schemas.py
from pydantic import BaseModel, Field, field_validator
from typing import List
from decimal import Decimal

from app.domain.pricing import to_money


class Product(BaseModel):
    """Produkt z product-service (tylko odczyt)."""

    id: int
    name: str
    price: Decimal

    @field_validator("price", mode="before")
    @classmethod
    def _price_to_money(cls, value):
        # JSON daje float (np. 199.99), idziemy przez str zeby nie zgubic groszy
        return to_money(value)

    @field_validator("price")
    @classmethod
    def _price_not_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("price must not be negative")
        return value


class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    # ilosc walidowana w serwisie (InvalidQuantity -> 422 z komunikatem domenowym)
    quantity: int = Field(..., description="Ilość produktu (musi być > 0)")


class CartProductOut(BaseModel):
    """Pozycja koszyka z aktualna cena produktu."""

    id: int
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    id: int
    products: List[CartProductOut]
    total_price: Decimal
