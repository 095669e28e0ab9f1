# app/domain/errors.py


class CartError(Exception):
    """Bazowy wyjatek domeny koszyka."""


class InvalidQuantity(CartError, ValueError):
    def __init__(self, quantity=None):
        self.quantity = quantity
        super().__init__("Quantity must be greater than 0")


class ProductNotFound(CartError, LookupError):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product not found")


class CartItemNotFound(CartError, LookupError):
    def __init__(self, cart_id: int, product_id: int):
        self.cart_id = cart_id
        self.product_id = product_id
        super().__init__("Product not found in cart")


class CartNotFound(CartError, LookupError):
    def __init__(self, cart_id):
        self.cart_id = cart_id
        super().__init__("Cart not found")


class CartLocked(CartError, RuntimeError):
    def __init__(self, cart_id: int):
        self.cart_id = cart_id
        super().__init__("Cart is being modified by another request")


class ConcurrencyConflict(CartError, RuntimeError):
    def __init__(self, message: str = "Cart was modified by another operation"):
        super().__init__(message)


class InvalidProductData(CartError, ValueError):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product catalog returned invalid data")
