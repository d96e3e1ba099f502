"""
Payment repository.

Payments are records of money received for an order; a Completed payment
moves its order from Pending to Paid.
"""

from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.exceptions import DomainError
from electronic_api.models.identity import utcnow
from electronic_api.models.orders import Order, OrderStatus, Payment, PaymentRequest, PaymentStatus

logger = structlog.get_logger(__name__)

# Allowed payment status transitions.
PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


class PaymentRepository:
    """Repository for payment database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_order(self, order_id: int) -> List[Payment]:
        result = await self.session.execute(
            select(Payment).where(Payment.order_id == order_id).order_by(Payment.id)
        )
        return list(result.scalars().all())

    async def get(self, payment_id: int) -> Optional[Payment]:
        return await self.session.get(Payment, payment_id)

    async def get_order(self, payment: Payment) -> Order:
        return await self.session.get(Order, payment.order_id)

    @staticmethod
    def _mark_completed(payment: Payment, order: Order) -> None:
        payment.status = PaymentStatus.COMPLETED.value
        payment.paid_at = utcnow()
        if order.status == OrderStatus.PENDING.value:
            order.status = OrderStatus.PAID.value

    async def create(self, order: Order, request: PaymentRequest) -> Payment:
        """
        Record a payment for an order.

        A payment that carries a transaction id has been confirmed by the
        payment provider and is stored as Completed; otherwise it stays
        Pending (cash on delivery, bank transfer awaiting receipt).

        Args:
            order: Order being paid
            request: Payment details; amount defaults to the order total

        Returns:
            Created payment

        Raises:
            DomainError: Order not payable or amount differs from the total
        """
        if order.status != OrderStatus.PENDING.value:
            raise DomainError(
                f"Order {order.id} is {order.status} and cannot take a payment",
                status_code=409
            )

        amount = request.amount if request.amount is not None else order.total_amount
        if amount != order.total_amount:
            raise DomainError(
                f"Payment amount {amount} does not match the order total {order.total_amount}"
            )

        payment = Payment(
            order_id=order.id,
            amount=amount,
            method=request.method.value,
            status=PaymentStatus.PENDING.value,
            transaction_id=request.transaction_id,
            created_at=utcnow(),
        )
        if request.transaction_id:
            self._mark_completed(payment, order)

        self.session.add(payment)
        await self.session.commit()

        logger.info(
            "payment_recorded",
            payment_id=payment.id,
            order_id=order.id,
            method=payment.method,
            status=payment.status,
            amount=str(amount)
        )
        return payment

    async def update_status(
        self,
        payment: Payment,
        status: PaymentStatus,
        transaction_id: Optional[str] = None
    ) -> Payment:
        """
        Move a payment to a new status.

        Raises:
            DomainError: If the transition is not allowed
        """
        current = PaymentStatus(payment.status)
        if status == current:
            return payment
        if status not in PAYMENT_TRANSITIONS[current]:
            raise DomainError(
                f"Cannot change payment status from {current.value} to {status.value}",
                status_code=409
            )

        if transaction_id:
            payment.transaction_id = transaction_id
        if status == PaymentStatus.COMPLETED:
            self._mark_completed(payment, await self.get_order(payment))
        else:
            payment.status = status.value
        await self.session.commit()

        logger.info(
            "payment_status_changed",
            payment_id=payment.id,
            from_status=current.value,
            to_status=status.value
        )
        return payment
