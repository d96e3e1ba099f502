"""Async repositories over the request-scoped database session."""

from electronic_api.repositories.cart_repo import CartRepository
from electronic_api.repositories.category_repo import CategoryRepository
from electronic_api.repositories.order_items_repo import OrderItemsRepository
from electronic_api.repositories.order_repo import OrderRepository
from electronic_api.repositories.payment_repo import PaymentRepository
from electronic_api.repositories.product_repo import ProductRepository
from electronic_api.repositories.user_repo import UserRepository

__all__ = [
    "CartRepository",
    "CategoryRepository",
    "OrderItemsRepository",
    "OrderRepository",
    "PaymentRepository",
    "ProductRepository",
    "UserRepository",
]
