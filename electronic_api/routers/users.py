"""
User administration endpoints.

Listing, deletion and role membership are admin-only; a user may read
and edit their own profile.
"""

from typing import List
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from electronic_api.dependencies import (
    PaginationParams,
    RequestServices,
    ensure_owner_or_admin,
    get_pagination_params,
    get_request_services,
    require_admin,
    require_user,
)
from electronic_api.exceptions import IdentityError
from electronic_api.models.identity import ErrorResponse, TokenPrincipal, UpdateUserRequest, UserResponse

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["User Management"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        404: {"model": ErrorResponse, "description": "Not Found"}
    }
)


def _not_found(user_id: UUID) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")


@router.get("", response_model=List[UserResponse], dependencies=[Depends(require_admin)])
async def list_users(
    response: Response,
    pagination: PaginationParams = Depends(get_pagination_params),
    services: RequestServices = Depends(get_request_services)
) -> List[UserResponse]:
    """List users; the total count is returned in X-Total-Count."""
    users = await services.users.list_users(limit=pagination.limit, offset=pagination.offset)
    response.headers["X-Total-Count"] = str(await services.users.count_users())
    return [UserResponse.from_user(u) for u in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> UserResponse:
    ensure_owner_or_admin(request, principal, user_id)
    user = await services.users.get(user_id)
    if user is None:
        raise _not_found(user_id)
    return UserResponse.from_user(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    body: UpdateUserRequest,
    request: Request,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> UserResponse:
    ensure_owner_or_admin(request, principal, user_id)
    if "email" in body.model_fields_set:
        errors = await services.identity.validate_email(body.email, owner_id=user_id)
        if errors:
            logger.info("user_update_rejected", user_id=str(user_id), errors=errors)
            raise IdentityError(errors)
    user = await services.users.update_profile(user_id, body)
    if user is None:
        raise _not_found(user_id)
    return UserResponse.from_user(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)]
)
async def delete_user(
    user_id: UUID,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> Response:
    if user_id == principal.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Administrators cannot delete their own account"
        )
    if not await services.users.delete(user_id):
        raise _not_found(user_id)
    logger.info("user_deleted_by_admin", user_id=str(user_id), admin_id=str(principal.id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{user_id}/roles/{role}",
    response_model=UserResponse,
    dependencies=[Depends(require_admin)],
    responses={400: {"model": ErrorResponse, "description": "Unknown role or already a member"}}
)
async def add_role(
    user_id: UUID,
    role: str,
    services: RequestServices = Depends(get_request_services)
) -> UserResponse:
    user = await services.users.get(user_id)
    if user is None:
        raise _not_found(user_id)
    await services.identity.add_to_role(user, role)
    return UserResponse.from_user(user)


@router.delete(
    "/{user_id}/roles/{role}",
    response_model=UserResponse,
    dependencies=[Depends(require_admin)],
    responses={400: {"model": ErrorResponse, "description": "Not a member of the role"}}
)
async def remove_role(
    user_id: UUID,
    role: str,
    services: RequestServices = Depends(get_request_services)
) -> UserResponse:
    user = await services.users.get(user_id)
    if user is None:
        raise _not_found(user_id)
    await services.identity.remove_from_role(user, role)
    return UserResponse.from_user(user)
