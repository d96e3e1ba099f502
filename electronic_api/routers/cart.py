"""
Shopping cart endpoints for the signed-in user.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from electronic_api.dependencies import RequestServices, get_request_services, require_user
from electronic_api.models.cart import CartItemRequest, CartLineResponse, CartQuantityRequest, CartResponse
from electronic_api.models.identity import ErrorResponse, TokenPrincipal

router = APIRouter(
    prefix="/cart",
    tags=["Cart"],
    responses={401: {"model": ErrorResponse, "description": "Unauthorized"}}
)


async def _cart_response(services: RequestServices, principal: TokenPrincipal) -> CartResponse:
    items = await services.cart.list_for_user(principal.id)
    return CartResponse(
        items=[CartLineResponse.from_item(item) for item in items],
        total=services.cart.total(items),
    )


@router.get("", response_model=CartResponse)
async def get_cart(
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> CartResponse:
    return await _cart_response(services, principal)


@router.post(
    "",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Unknown product or insufficient stock"}}
)
async def add_to_cart(
    body: CartItemRequest,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> CartResponse:
    await services.cart.add(principal.id, body.product_id, body.quantity)
    return await _cart_response(services, principal)


@router.put("/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: int,
    body: CartQuantityRequest,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> CartResponse:
    if await services.cart.update_quantity(principal.id, product_id, body.quantity) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {product_id} is not in the cart"
        )
    return await _cart_response(services, principal)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_cart_item(
    product_id: int,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> Response:
    if not await services.cart.remove(principal.id, product_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {product_id} is not in the cart"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> Response:
    await services.cart.clear(principal.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
