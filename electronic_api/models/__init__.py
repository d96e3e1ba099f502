"""Data models for the store API.

SQLAlchemy tables and the Pydantic request/response schemas that sit next
to them. Importing this package registers every table on Base.metadata.
"""

from electronic_api.models.identity import Base, RoleModel, User, user_roles
from electronic_api.models.catalog import Category, Product
from electronic_api.models.orders import Order, OrderItem, Payment
from electronic_api.models.cart import CartItem

__all__ = [
    "Base",
    "CartItem",
    "Category",
    "Order",
    "OrderItem",
    "Payment",
    "Product",
    "RoleModel",
    "User",
    "user_roles",
]
