# app/services/product_client.py
from typing import Dict, Iterable

import requests
from pydantic import ValidationError

from app.domain.errors import InvalidProductData, ProductNotFound
from app.domain.schemas import Product
from app.utils.retry import http_retry
from app.utils.settings import PRODUCT_SERVICE_URL, PRODUCT_CLIENT_TIMEOUT
from app.utils.logging import get_logger

logger = get_logger(__name__)


class ProductClient:
    """
    Klient product-service (katalog tylko do odczytu).
    404 -> ProductNotFound (bez retry), bledy sieci/5xx -> retry, potem wyjatek requests.
    Niepoprawne dane (np. ujemna cena) -> InvalidProductData, bez retry.
    """

    def __init__(self, base_url: str | None = None, timeout: float = PRODUCT_CLIENT_TIMEOUT, session=None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        # bez wlasnej sesji: requests.get, nic do zamykania po requescie
        self.http = session or requests

    @http_retry()
    def fetch_product(self, product_id: int) -> Product:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = self.http.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            raise ProductNotFound(product_id)
        resp.raise_for_status()
        try:
            return Product.model_validate(resp.json())
        except ValidationError as e:
            logger.error(f"Niepoprawne dane produktu {product_id} z product-service: {e}")
            raise InvalidProductData(product_id) from e

    def fetch_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """Produkty ktorych juz nie ma w katalogu sa pomijane."""
        products = {}
        for product_id in product_ids:
            try:
                products[product_id] = self.fetch_product(product_id)
            except ProductNotFound:
                logger.warning(f"Produkt {product_id} nie istnieje juz w katalogu")
        return products
