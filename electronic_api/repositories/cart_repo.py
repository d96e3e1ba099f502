"""
Shopping cart repository.
"""

from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.exceptions import DomainError
from electronic_api.models.cart import CartItem
from electronic_api.models.catalog import Product

logger = structlog.get_logger(__name__)


class CartRepository:
    """Repository for cart database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_user(self, user_id: UUID) -> List[CartItem]:
        result = await self.session.execute(
            select(CartItem)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.added_at, CartItem.id)
        )
        return list(result.scalars().all())

    async def get_item(self, user_id: UUID, product_id: int) -> Optional[CartItem]:
        result = await self.session.execute(
            select(CartItem).where(
                CartItem.user_id == user_id,
                CartItem.product_id == product_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _check_stock(product: Product, quantity: int) -> None:
        if quantity > product.stock:
            raise DomainError(
                f"Insufficient stock for product '{product.name}' "
                f"(requested {quantity}, available {product.stock})"
            )

    async def add(self, user_id: UUID, product_id: int, quantity: int) -> CartItem:
        """
        Add a product to the cart; an existing line gets the quantity added.

        A line inserted by a concurrent request between the lookup and the
        commit trips the (user, product) unique constraint; the add is then
        retried once as a merge.

        Raises:
            DomainError: Unknown product or more units than in stock
        """
        try:
            return await self._add(user_id, product_id, quantity)
        except IntegrityError:
            await self.session.rollback()
            logger.info("cart_item_add_retried", user_id=str(user_id), product_id=product_id)
            return await self._add(user_id, product_id, quantity)

    async def _add(self, user_id: UUID, product_id: int, quantity: int) -> CartItem:
        product = await self.session.get(Product, product_id)
        if product is None:
            raise DomainError(f"Product {product_id} does not exist")

        item = await self.get_item(user_id, product_id)
        if item is None:
            self._check_stock(product, quantity)
            item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
            item.product = product
            self.session.add(item)
        else:
            self._check_stock(product, item.quantity + quantity)
            item.quantity += quantity
        await self.session.commit()

        logger.info("cart_item_added", user_id=str(user_id), product_id=product_id, quantity=item.quantity)
        return item

    async def update_quantity(self, user_id: UUID, product_id: int, quantity: int) -> Optional[CartItem]:
        item = await self.get_item(user_id, product_id)
        if item is None:
            return None
        self._check_stock(item.product, quantity)
        item.quantity = quantity
        await self.session.commit()
        return item

    async def remove(self, user_id: UUID, product_id: int) -> bool:
        item = await self.get_item(user_id, product_id)
        if item is None:
            return False
        await self.session.delete(item)
        await self.session.commit()
        logger.info("cart_item_removed", user_id=str(user_id), product_id=product_id)
        return True

    async def clear(self, user_id: UUID) -> int:
        result = await self.session.execute(
            delete(CartItem).where(CartItem.user_id == user_id)
        )
        await self.session.commit()
        logger.info("cart_cleared", user_id=str(user_id), removed=result.rowcount)
        return result.rowcount

    @staticmethod
    def total(items: Iterable[CartItem]) -> Decimal:
        return sum((item.product.price * item.quantity for item in items), Decimal("0"))
