"""
Order item repository.

Items can only change while their order is Pending; every change moves
stock and recalculates the order total in one commit.
"""

from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.exceptions import DomainError
from electronic_api.models.orders import Order, OrderItem, OrderStatus
from electronic_api.repositories.product_repo import ProductRepository

logger = structlog.get_logger(__name__)


class OrderItemsRepository:
    """Repository for order item database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.products = ProductRepository(session)

    async def list_for_order(self, order_id: int) -> List[OrderItem]:
        result = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    async def get(self, item_id: int) -> Optional[OrderItem]:
        return await self.session.get(OrderItem, item_id)

    async def get_order(self, item: OrderItem) -> Order:
        return await self.session.get(Order, item.order_id)

    @staticmethod
    def _ensure_editable(order: Order) -> None:
        if order.status != OrderStatus.PENDING.value:
            raise DomainError(
                f"Order {order.id} is {order.status}; items can only change while it is Pending",
                status_code=409
            )

    async def add(self, order: Order, product_id: int, quantity: int) -> OrderItem:
        """
        Add a product to a pending order, merging with an existing line.

        Args:
            order: Pending order
            product_id: Product to add
            quantity: Units to add

        Returns:
            The new or updated line

        Raises:
            DomainError: Order not pending, unknown product or insufficient stock
        """
        self._ensure_editable(order)
        product = await self.products.get(product_id)
        if product is None:
            raise DomainError(f"Product {product_id} does not exist")

        await self.products.adjust_stock(product, -quantity)
        item = next((i for i in order.items if i.product_id == product_id), None)
        if item is None:
            item = OrderItem(product_id=product_id, quantity=quantity, unit_price=product.price)
            order.items.append(item)
        else:
            item.quantity += quantity
        order.recalculate_total()
        await self.session.commit()

        logger.info("order_item_added", order_id=order.id, product_id=product_id, quantity=quantity)
        return item

    async def update_quantity(self, item: OrderItem, quantity: int) -> OrderItem:
        order = await self.get_order(item)
        self._ensure_editable(order)

        product = await self.products.get(item.product_id)
        await self.products.adjust_stock(product, item.quantity - quantity)
        item.quantity = quantity
        order.recalculate_total()
        await self.session.commit()

        logger.info("order_item_updated", order_id=order.id, item_id=item.id, quantity=quantity)
        return item

    async def delete(self, item: OrderItem) -> None:
        order = await self.get_order(item)
        self._ensure_editable(order)

        product = await self.products.get(item.product_id)
        await self.products.adjust_stock(product, item.quantity)
        order.items.remove(item)
        order.recalculate_total()
        await self.session.commit()

        logger.info("order_item_removed", order_id=order.id, item_id=item.id)
