#app/api/routers/carts.py
from functools import cache

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from requests import RequestException
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.errors import (
    CartItemNotFound,
    CartLocked,
    CartNotFound,
    ConcurrencyConflict,
    InvalidProductData,
    InvalidQuantity,
    ProductNotFound,
)
from app.domain.schemas import CartOut, ItemIn
from app.services.cart_service import CartService
from app.services.lock_service import LockService
from app.services.product_client import ProductClient

router = APIRouter(prefix="/cart", tags=["cart"])

CART_ID_HEADER = "X-Cart-Id"


@cache
def shared_product_client() -> ProductClient:
    return ProductClient()


@cache
def shared_lock_service() -> LockService:
    # jedna pula polaczen redis na proces
    return LockService()


def get_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(
        db=db,
        product_client=shared_product_client(),
        lock_service=shared_lock_service(),
    )


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, InvalidQuantity):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, (ProductNotFound, CartItemNotFound, CartNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (CartLocked, ConcurrencyConflict)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidProductData):
        return HTTPException(status_code=502, detail=str(e))
    # RequestException: product-service nie odpowiada
    return HTTPException(status_code=503, detail="Product catalog unavailable")


_HANDLED = (
    InvalidQuantity,
    ProductNotFound,
    CartItemNotFound,
    CartNotFound,
    CartLocked,
    ConcurrencyConflict,
    InvalidProductData,
    RequestException,
)


def _with_cart_header(response: Response, cart: dict) -> dict:
    # klient odsyla to id w kolejnych requestach zamiast sesji na serwerze
    response.headers[CART_ID_HEADER] = str(cart["id"])
    return cart


@router.get("", response_model=CartOut)
def show_cart(
    response: Response,
    cart_id: int | None = Header(default=None, alias=CART_ID_HEADER),
    svc: CartService = Depends(get_service),
):
    try:
        return _with_cart_header(response, svc.show_cart(cart_id))
    except _HANDLED as e:
        raise _to_http(e) from e


@router.post("", response_model=CartOut, status_code=201)
def create_cart(
    payload: ItemIn,
    response: Response,
    cart_id: int | None = Header(default=None, alias=CART_ID_HEADER),
    svc: CartService = Depends(get_service),
):
    try:
        cart = svc.add_product(cart_id, payload.product_id, payload.quantity)
        return _with_cart_header(response, cart)
    except _HANDLED as e:
        raise _to_http(e) from e


@router.post("/add_item", response_model=CartOut)
@router.post("/add_items", response_model=CartOut, include_in_schema=False)
def add_item(
    payload: ItemIn,
    response: Response,
    cart_id: int | None = Header(default=None, alias=CART_ID_HEADER),
    svc: CartService = Depends(get_service),
):
    try:
        cart = svc.add_product(cart_id, payload.product_id, payload.quantity)
        return _with_cart_header(response, cart)
    except _HANDLED as e:
        raise _to_http(e) from e


@router.get("/{requested_cart_id}", response_model=CartOut)
def get_cart(
    requested_cart_id: int,
    response: Response,
    svc: CartService = Depends(get_service),
):
    try:
        return _with_cart_header(response, svc.get_cart(requested_cart_id))
    except _HANDLED as e:
        raise _to_http(e) from e


@router.delete("/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    response: Response,
    cart_id: int | None = Header(default=None, alias=CART_ID_HEADER),
    svc: CartService = Depends(get_service),
):
    try:
        return _with_cart_header(response, svc.remove_product(cart_id, product_id))
    except _HANDLED as e:
        raise _to_http(e) from e
