from datetime import datetime
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.domain.errors import CartItemNotFound, ConcurrencyConflict
from app.domain.pricing import cart_total, validate_quantity
from app.repos.cart_repo import CartRepo
from app.services.lock_service import LockService
from app.services.product_client import ProductClient
from app.utils.clock import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Use case'y koszyka po stronie requestow.
    commands (add, remove) modyfikuja stan pod lockiem koszyka
    query (show, get) tylko odczyt, ceny zawsze aktualne z product-service
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        lock_service: LockService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = CartRepo(db)
        self.product_client = product_client
        self.lock_service = lock_service
        self.clock = clock

    #query - odczyt
    def show_cart(self, session_cart_id: int | None) -> Dict[str, Any]:
        cart = self.repo.find_or_create_for_session(session_cart_id, self.clock())
        return self.render(cart)

    def get_cart(self, cart_id: int) -> Dict[str, Any]:
        return self.render(self.repo.find_by_id(cart_id))

    def render(self, cart: CartModel) -> Dict[str, Any]:
        products = self.product_client.fetch_products(i.product_id for i in cart.items)

        lines = []
        for item in cart.items:
            product = products.get(item.product_id)
            if product is None:
                continue
            lines.append(
                {
                    "id": product.id,
                    "name": product.name,
                    "quantity": item.quantity,
                    "unit_price": product.price,
                    "total_price": item.total_price(product.price),
                }
            )

        #dict przeksztalcany w jsona, total liczony z tych samych linii
        return {
            "id": cart.id,
            "products": lines,
            "total_price": cart_total(line["total_price"] for line in lines),
        }

    #commands
    def add_product(
        self,
        session_cart_id: int | None,
        product_id: int,
        quantity: int,
    ) -> Dict[str, Any]:
        # walidacja przed jakimkolwiek I/O i mutacja
        validate_quantity(quantity)

        logger.info(f"Pobieranie danych produktu {product_id} z product-service")
        product = self.product_client.fetch_product(product_id)

        cart = self.repo.find_or_create_for_session(session_cart_id, self.clock())

        cart_id = cart.id

        with self.lock_service.cart_lock(cart_id):
            cart = self._reload_active(cart_id)
            try:
                item = cart.add_product(product, quantity, self.clock())
                self._recompute(cart)
                self.repo.commit()
            except Exception as e:
                # najpierw rollback, po nieudanym flush sesja nie pozwala czytac atrybutow
                self.repo.rollback()
                logger.error(f"Blad podczas dodawania produktu {product_id} do koszyka {cart_id}: {e}")
                raise

            logger.info(
                f"Produkt {product_id} w koszyku {cart_id}: ilosc {item.quantity}, "
                f"total {cart.total_price}"
            )

        return self.render(cart)

    def remove_product(self, session_cart_id: int | None, product_id: int) -> Dict[str, Any]:
        # nieznany produkt to inny blad niz produkt spoza koszyka
        self.product_client.fetch_product(product_id)

        cart = self.repo.find_or_create_for_session(session_cart_id, self.clock())

        cart_id = cart.id

        with self.lock_service.cart_lock(cart_id):
            cart = self._reload_active(cart_id)
            try:
                if not cart.remove_product(product_id, self.clock()):
                    raise CartItemNotFound(cart_id, product_id)
                self._recompute(cart)
                self.repo.commit()
            except Exception:
                self.repo.rollback()
                raise

            logger.info(f"Produkt {product_id} usuniety z koszyka {cart_id}, total {cart.total_price}")

        return self.render(cart)

    def _reload_active(self, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id, refresh=True)
        # sweeper mogl oznaczyc/usunac koszyk zanim dostalismy lock
        if cart is None or cart.abandoned:
            raise ConcurrencyConflict(f"Koszyk {cart_id} zmienil stan, ponow zadanie")
        return cart

    def _recompute(self, cart: CartModel) -> None:
        products = self.product_client.fetch_products(i.product_id for i in cart.items)
        cart.recompute_total({pid: p.price for pid, p in products.items()})
