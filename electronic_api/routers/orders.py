"""
Order endpoints.

Provides REST API endpoints for:
- Checkout from the cart or from explicit lines (reserves stock)
- Listing and reading orders (own orders; admins see all)
- Cancellation (restores stock) and admin status changes
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from electronic_api.dependencies import (
    PaginationParams,
    RequestServices,
    ensure_owner_or_admin,
    get_pagination_params,
    get_request_services,
    is_admin,
    require_admin,
    require_user,
)
from electronic_api.exceptions import DomainError
from electronic_api.models.identity import ErrorResponse, TokenPrincipal
from electronic_api.models.orders import (
    CreateOrderRequest,
    Order,
    OrderItemRequest,
    OrderResponse,
    OrderStatus,
    OrderStatusRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/orders",
    tags=["Orders"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not Found"}
    }
)


async def get_accessible_order(
    order_id: int,
    request: Request,
    principal: TokenPrincipal,
    services: RequestServices
) -> Order:
    """
    Load an order the principal may see.

    Raises:
        HTTPException: 404 if missing, 403 if owned by someone else
    """
    order = await services.orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order {order_id} not found")
    ensure_owner_or_admin(request, principal, order.user_id)
    return order


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    request: Request,
    pagination: PaginationParams = Depends(get_pagination_params),
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> List[OrderResponse]:
    if is_admin(request, principal):
        orders = await services.orders.list_all(pagination.limit, pagination.offset)
    else:
        orders = await services.orders.list_for_user(principal.id, pagination.limit, pagination.offset)
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> OrderResponse:
    order = await get_accessible_order(order_id, request, principal, services)
    return OrderResponse.model_validate(order)


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Empty cart, unknown product or insufficient stock"}}
)
async def create_order(
    body: CreateOrderRequest,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> OrderResponse:
    """
    Place an order.

    Without `items` the caller's cart is checked out and emptied. Prices
    are the current product prices; stock is reserved for every line.
    """
    consumed = []
    if body.items is None:
        consumed = await services.cart.list_for_user(principal.id)
        if not consumed:
            raise DomainError("Cart is empty")
        lines = [OrderItemRequest(product_id=c.product_id, quantity=c.quantity) for c in consumed]
    else:
        lines = body.items

    order = await services.orders.create(
        user_id=principal.id,
        items=lines,
        shipping_address=body.shipping_address,
        consumed_cart_items=consumed,
    )
    return OrderResponse.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses={409: {"model": ErrorResponse, "description": "Order can no longer be cancelled"}}
)
async def cancel_order(
    order_id: int,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> OrderResponse:
    """Cancel an order and return its items to stock. Customers can only cancel Pending orders."""
    order = await get_accessible_order(order_id, request, principal, services)
    if order.status != OrderStatus.PENDING.value and not is_admin(request, principal):
        raise DomainError(f"Order {order_id} is {order.status} and can no longer be cancelled", status_code=409)
    order = await services.orders.cancel(order)
    logger.info("order_cancelled", order_id=order_id, user_id=str(principal.id))
    return OrderResponse.model_validate(order)


@router.put(
    "/{order_id}/status",
    response_model=OrderResponse,
    dependencies=[Depends(require_admin)],
    responses={409: {"model": ErrorResponse, "description": "Transition not allowed"}}
)
async def update_order_status(
    order_id: int,
    body: OrderStatusRequest,
    services: RequestServices = Depends(get_request_services)
) -> OrderResponse:
    order = await services.orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order {order_id} not found")
    order = await services.orders.update_status(order, body.status)
    return OrderResponse.model_validate(order)
