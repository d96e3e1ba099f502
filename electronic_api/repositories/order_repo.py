"""
Order repository for database operations.

Checkout reserves stock for every line in the same transaction that
creates the order; cancelling an order releases it again and refunds
its completed payments.
"""

from collections import OrderedDict
from typing import Dict, Iterable, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.exceptions import DomainError
from electronic_api.models.cart import CartItem
from electronic_api.models.catalog import Product
from electronic_api.models.orders import (
    ORDER_TRANSITIONS,
    Order,
    OrderItem,
    OrderItemRequest,
    OrderStatus,
    Payment,
    PaymentStatus,
)
from electronic_api.repositories.product_repo import ProductRepository

logger = structlog.get_logger(__name__)


class OrderRepository:
    """Repository for order database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Request-scoped database session
        """
        self.session = session
        self.products = ProductRepository(session)

    async def list_for_user(self, user_id: UUID, limit: int = 50, offset: int = 0) -> List[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_all(self, limit: int = 50, offset: int = 0) -> List[Order]:
        result = await self.session.execute(
            select(Order)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get(self, order_id: int) -> Optional[Order]:
        return await self.session.get(Order, order_id)

    async def _load_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = list(product_ids)
        products = {p.id: p for p in await self.products.get_many(ids)}
        missing = [pid for pid in ids if pid not in products]
        if missing:
            raise DomainError(f"Product {missing[0]} does not exist")
        return products

    async def create(
        self,
        user_id: UUID,
        items: List[OrderItemRequest],
        shipping_address: Optional[str] = None,
        consumed_cart_items: Iterable[CartItem] = ()
    ) -> Order:
        """
        Create an order and reserve stock for its lines.

        Lines for the same product are merged. Unit prices are taken from
        the current product prices, not from the caller.

        Args:
            user_id: Ordering user
            items: Requested lines
            shipping_address: Delivery address
            consumed_cart_items: Cart rows removed in the same transaction

        Returns:
            Created order with its items

        Raises:
            DomainError: Unknown product, insufficient stock or no lines
        """
        quantities: "OrderedDict[int, int]" = OrderedDict()
        for line in items:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
        if not quantities:
            raise DomainError("An order needs at least one item")

        products = await self._load_products(quantities)

        order = Order(
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            shipping_address=shipping_address,
        )
        order.items = []
        for product_id, quantity in quantities.items():
            product = products[product_id]
            await self.products.adjust_stock(product, -quantity)
            order.items.append(
                OrderItem(product_id=product_id, quantity=quantity, unit_price=product.price)
            )
        order.recalculate_total()

        self.session.add(order)
        for cart_item in consumed_cart_items:
            await self.session.delete(cart_item)
        await self.session.commit()

        logger.info(
            "order_created",
            order_id=order.id,
            user_id=str(user_id),
            item_count=len(order.items),
            total_amount=str(order.total_amount)
        )
        return order

    async def restore_stock(self, order: Order) -> None:
        products = await self._load_products({item.product_id for item in order.items})
        for item in order.items:
            await self.products.adjust_stock(products[item.product_id], item.quantity)

    async def refund_payments(self, order: Order) -> int:
        """Mark the order's Completed payments as Refunded without committing."""
        result = await self.session.execute(
            select(Payment).where(
                Payment.order_id == order.id,
                Payment.status == PaymentStatus.COMPLETED.value
            )
        )
        payments = list(result.scalars().all())
        for payment in payments:
            payment.status = PaymentStatus.REFUNDED.value
        return len(payments)

    async def update_status(self, order: Order, status: OrderStatus) -> Order:
        """
        Move an order to a new status.

        Cancelling returns stock and refunds Completed payments.

        Raises:
            DomainError: If the transition is not allowed
        """
        current = OrderStatus(order.status)
        if status == current:
            return order
        if status not in ORDER_TRANSITIONS[current]:
            raise DomainError(
                f"Cannot change order status from {current.value} to {status.value}",
                status_code=409
            )

        refunded = 0
        if status == OrderStatus.CANCELLED:
            await self.restore_stock(order)
            refunded = await self.refund_payments(order)
        order.status = status.value
        await self.session.commit()

        logger.info(
            "order_status_changed",
            order_id=order.id,
            from_status=current.value,
            to_status=status.value,
            refunded_payments=refunded
        )
        return order

    async def cancel(self, order: Order) -> Order:
        return await self.update_status(order, OrderStatus.CANCELLED)
