"""
Order item endpoints.

Lines can be added, resized or removed while the order is Pending, by
its owner or an administrator.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from electronic_api.dependencies import RequestServices, get_request_services, require_user
from electronic_api.models.identity import ErrorResponse, TokenPrincipal
from electronic_api.models.orders import OrderItem, OrderItemQuantityRequest, OrderItemRequest, OrderItemResponse
from electronic_api.routers.orders import get_accessible_order

router = APIRouter(
    tags=["Order Items"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        404: {"model": ErrorResponse, "description": "Not Found"},
        409: {"model": ErrorResponse, "description": "Order is no longer Pending"}
    }
)


async def _accessible_item(
    item_id: int,
    request: Request,
    principal: TokenPrincipal,
    services: RequestServices
) -> OrderItem:
    item = await services.order_items.get(item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order item {item_id} not found")
    await get_accessible_order(item.order_id, request, principal, services)
    return item


@router.get("/orders/{order_id}/items", response_model=List[OrderItemResponse])
async def list_order_items(
    order_id: int,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> List[OrderItemResponse]:
    await get_accessible_order(order_id, request, principal, services)
    items = await services.order_items.list_for_order(order_id)
    return [OrderItemResponse.model_validate(i) for i in items]


@router.post(
    "/orders/{order_id}/items",
    response_model=OrderItemResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_order_item(
    order_id: int,
    body: OrderItemRequest,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> OrderItemResponse:
    order = await get_accessible_order(order_id, request, principal, services)
    item = await services.order_items.add(order, body.product_id, body.quantity)
    return OrderItemResponse.model_validate(item)


@router.put("/order-items/{item_id}", response_model=OrderItemResponse)
async def update_order_item(
    item_id: int,
    body: OrderItemQuantityRequest,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> OrderItemResponse:
    item = await _accessible_item(item_id, request, principal, services)
    item = await services.order_items.update_quantity(item, body.quantity)
    return OrderItemResponse.model_validate(item)


@router.delete("/order-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order_item(
    item_id: int,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> Response:
    item = await _accessible_item(item_id, request, principal, services)
    await services.order_items.delete(item)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
