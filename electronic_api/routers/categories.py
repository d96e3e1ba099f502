"""
Category endpoints. Reads are public; writes require the admin role.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from electronic_api.dependencies import RequestServices, get_request_services, require_admin
from electronic_api.models.catalog import CategoryRequest, CategoryResponse
from electronic_api.models.identity import ErrorResponse

router = APIRouter(
    prefix="/categories",
    tags=["Categories"],
    responses={404: {"model": ErrorResponse, "description": "Not Found"}}
)


def _not_found(category_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Category {category_id} not found"
    )


@router.get("", response_model=List[CategoryResponse])
async def list_categories(
    services: RequestServices = Depends(get_request_services)
) -> List[CategoryResponse]:
    categories = await services.categories.list_categories()
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: int,
    services: RequestServices = Depends(get_request_services)
) -> CategoryResponse:
    category = await services.categories.get(category_id)
    if category is None:
        raise _not_found(category_id)
    return CategoryResponse.model_validate(category)


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
    responses={409: {"model": ErrorResponse, "description": "Name already in use"}}
)
async def create_category(
    body: CategoryRequest,
    services: RequestServices = Depends(get_request_services)
) -> CategoryResponse:
    category = await services.categories.create(body)
    return CategoryResponse.model_validate(category)


@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    dependencies=[Depends(require_admin)]
)
async def update_category(
    category_id: int,
    body: CategoryRequest,
    services: RequestServices = Depends(get_request_services)
) -> CategoryResponse:
    category = await services.categories.update(category_id, body)
    if category is None:
        raise _not_found(category_id)
    return CategoryResponse.model_validate(category)


@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
    responses={409: {"model": ErrorResponse, "description": "Category still has products"}}
)
async def delete_category(
    category_id: int,
    services: RequestServices = Depends(get_request_services)
) -> Response:
    if not await services.categories.delete(category_id):
        raise _not_found(category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
