"""
Product endpoints.

Provides REST API endpoints for:
- Catalog browsing with category filter, name search and paging (public)
- Product create, update and delete (admin)
- Product image upload (admin); images are served from the static image path
"""

import uuid
from pathlib import Path
from typing import Optional

import anyio
import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status

from electronic_api.dependencies import (
    PaginationParams,
    RequestServices,
    get_pagination_params,
    get_request_services,
    require_admin,
)
from electronic_api.models.catalog import ProductCreateRequest, ProductPage, ProductResponse, ProductUpdateRequest
from electronic_api.models.identity import ErrorResponse

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/products",
    tags=["Products"],
    responses={404: {"model": ErrorResponse, "description": "Not Found"}}
)

# Accepted upload content types and the extension they are stored under.
IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def _not_found(product_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Product {product_id} not found"
    )


def _stored_image(images_path: Path, request_path: str, image_url: Optional[str]) -> Optional[Path]:
    """File behind an uploaded image URL; None for external or nested URLs."""
    prefix = f"{request_path}/"
    if not image_url or not image_url.startswith(prefix):
        return None
    name = image_url[len(prefix):]
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        return None
    return images_path / name


@router.get("", response_model=ProductPage)
async def list_products(
    category_id: Optional[int] = Query(None, gt=0, description="Filter by category"),
    search: Optional[str] = Query(None, max_length=200, description="Name contains"),
    pagination: PaginationParams = Depends(get_pagination_params),
    services: RequestServices = Depends(get_request_services)
) -> ProductPage:
    products, total = await services.products.list_products(
        category_id=category_id,
        search=search,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return ProductPage(
        items=[ProductResponse.from_product(p) for p in products],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    services: RequestServices = Depends(get_request_services)
) -> ProductResponse:
    product = await services.products.get(product_id)
    if product is None:
        raise _not_found(product_id)
    return ProductResponse.from_product(product)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
    responses={400: {"model": ErrorResponse, "description": "Unknown category"}}
)
async def create_product(
    body: ProductCreateRequest,
    services: RequestServices = Depends(get_request_services)
) -> ProductResponse:
    product = await services.products.create(body)
    return ProductResponse.from_product(product)


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    dependencies=[Depends(require_admin)]
)
async def update_product(
    product_id: int,
    body: ProductUpdateRequest,
    services: RequestServices = Depends(get_request_services)
) -> ProductResponse:
    product = await services.products.update(product_id, body)
    if product is None:
        raise _not_found(product_id)
    return ProductResponse.from_product(product)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
    responses={409: {"model": ErrorResponse, "description": "Product is on an order"}}
)
async def delete_product(
    product_id: int,
    services: RequestServices = Depends(get_request_services)
) -> Response:
    if not await services.products.delete(product_id):
        raise _not_found(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{product_id}/image",
    response_model=ProductResponse,
    dependencies=[Depends(require_admin)],
    responses={
        413: {"model": ErrorResponse, "description": "Image too large"},
        415: {"model": ErrorResponse, "description": "Unsupported image type"}
    }
)
async def upload_product_image(
    product_id: int,
    file: UploadFile = File(..., description="JPEG, PNG, GIF or WebP image"),
    services: RequestServices = Depends(get_request_services)
) -> ProductResponse:
    """
    Store an image for a product and point the product at it.

    The file is saved under a generated name in the image directory and
    the product's image_url becomes `<images_request_path>/<name>`.
    """
    settings = services.settings
    existing = await services.products.get(product_id)
    if existing is None:
        raise _not_found(product_id)
    previous_url = existing.image_url

    extension = IMAGE_TYPES.get((file.content_type or "").lower())
    if extension is None:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported image type '{file.content_type}'"
        )

    content = await file.read(settings.image_max_bytes + 1)
    if len(content) > settings.image_max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image exceeds {settings.image_max_bytes} bytes"
        )
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image file is empty")

    file_name = f"{uuid.uuid4().hex}{extension}"
    target: Path = settings.images_path / file_name
    await anyio.Path(target).write_bytes(content)

    try:
        product = await services.products.set_image(
            product_id, f"{settings.images_request_path}/{file_name}"
        )
    except Exception:
        await anyio.Path(target).unlink(missing_ok=True)
        raise
    if product is None:
        await anyio.Path(target).unlink(missing_ok=True)
        raise _not_found(product_id)

    previous_file = _stored_image(settings.images_path, settings.images_request_path, previous_url)
    if previous_file is not None:
        await anyio.Path(previous_file).unlink(missing_ok=True)
        logger.info("product_image_replaced", product_id=product_id, removed=previous_file.name)
    logger.info("product_image_uploaded", product_id=product_id, file_name=file_name, size=len(content))
    return ProductResponse.from_product(product)
