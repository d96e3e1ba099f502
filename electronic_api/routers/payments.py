"""
Payment endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from electronic_api.dependencies import RequestServices, get_request_services, require_admin, require_user
from electronic_api.models.identity import ErrorResponse, TokenPrincipal
from electronic_api.models.orders import PaymentRequest, PaymentResponse, PaymentStatusRequest
from electronic_api.routers.orders import get_accessible_order

router = APIRouter(
    tags=["Payments"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not Found"}
    }
)


@router.get("/orders/{order_id}/payments", response_model=List[PaymentResponse])
async def list_payments(
    order_id: int,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> List[PaymentResponse]:
    await get_accessible_order(order_id, request, principal, services)
    payments = await services.payments.list_for_order(order_id)
    return [PaymentResponse.model_validate(p) for p in payments]


@router.post(
    "/orders/{order_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Amount does not match the order total"},
        409: {"model": ErrorResponse, "description": "Order is not awaiting payment"}
    }
)
async def create_payment(
    order_id: int,
    body: PaymentRequest,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> PaymentResponse:
    """
    Record a payment for an order.

    A payment carrying a provider transaction id is recorded as Completed
    and marks the order Paid; otherwise it stays Pending.
    """
    order = await get_accessible_order(order_id, request, principal, services)
    payment = await services.payments.create(order, body)
    return PaymentResponse.model_validate(payment)


@router.put(
    "/payments/{payment_id}/status",
    response_model=PaymentResponse,
    dependencies=[Depends(require_admin)],
    responses={409: {"model": ErrorResponse, "description": "Transition not allowed"}}
)
async def update_payment_status(
    payment_id: int,
    body: PaymentStatusRequest,
    services: RequestServices = Depends(get_request_services)
) -> PaymentResponse:
    payment = await services.payments.get(payment_id)
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Payment {payment_id} not found")
    payment = await services.payments.update_status(payment, body.status, body.transaction_id)
    return PaymentResponse.model_validate(payment)
