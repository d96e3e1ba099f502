"""
FastAPI dependency injection for request-scoped services and authorization.

Provides injectable dependencies for:
- The per-request service container (one database session per request)
- Repository and identity service instances bound to that session
- The authenticated principal set by the authentication middleware
- Role requirements
- Pagination and request metadata

Process-wide objects (settings, database, token service, password hasher)
live on app.state and are created once by create_app.
"""

from datetime import timedelta
from typing import AsyncGenerator, Callable, Optional

import structlog
from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.config import Settings
from electronic_api.models.identity import TokenPrincipal
from electronic_api.repositories import (
    CartRepository,
    CategoryRepository,
    OrderItemsRepository,
    OrderRepository,
    PaymentRepository,
    ProductRepository,
    UserRepository,
)
from electronic_api.services.identity_service import IdentityService
from electronic_api.services.jwt_service import JwtService
from electronic_api.services.password_policy import PasswordHasher

logger = structlog.get_logger(__name__)

BEARER_SCHEME_NAME = "Bearer"
BEARER_DESCRIPTION = "Please enter JWT with 'Bearer ' prefix"

# HTTP Bearer token scheme; the middleware does the validation
bearer_scheme = HTTPBearer(
    auto_error=False,
    scheme_name=BEARER_SCHEME_NAME,
    description=BEARER_DESCRIPTION,
    bearerFormat="JWT",
)


# ============================================================================
# REQUEST-SCOPED SERVICES
# ============================================================================


class RequestServices:
    """
    Services available to one request.

    Every repository shares the single session opened for the request;
    instances are created on first use.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        jwt_service: JwtService,
        hasher: PasswordHasher
    ):
        self.session = session
        self.settings = settings
        self.jwt = jwt_service
        self.hasher = hasher
        self._instances = {}

    def _get(self, key: str, factory: Callable[[], object]):
        if key not in self._instances:
            self._instances[key] = factory()
        return self._instances[key]

    @property
    def products(self) -> ProductRepository:
        return self._get("products", lambda: ProductRepository(self.session))

    @property
    def categories(self) -> CategoryRepository:
        return self._get("categories", lambda: CategoryRepository(self.session))

    @property
    def users(self) -> UserRepository:
        return self._get("users", lambda: UserRepository(self.session))

    @property
    def orders(self) -> OrderRepository:
        return self._get("orders", lambda: OrderRepository(self.session))

    @property
    def order_items(self) -> OrderItemsRepository:
        return self._get("order_items", lambda: OrderItemsRepository(self.session))

    @property
    def payments(self) -> PaymentRepository:
        return self._get("payments", lambda: PaymentRepository(self.session))

    @property
    def cart(self) -> CartRepository:
        return self._get("cart", lambda: CartRepository(self.session))

    @property
    def identity(self) -> IdentityService:
        return self._get(
            "identity",
            lambda: IdentityService(
                self.session,
                self.settings.identity,
                self.hasher,
                self.jwt,
                reset_token_lifetime=timedelta(minutes=self.settings.jwt_settings.reset_token_minutes),
            )
        )


async def get_request_services(request: Request) -> AsyncGenerator[RequestServices, None]:
    """
    Open the request's database session and wrap it in a service container.

    The session is closed when the response has been produced; uncommitted
    work is rolled back if the endpoint raised.

    Yields:
        RequestServices bound to a fresh session
    """
    state = request.app.state
    async with state.database.session() as session:
        yield RequestServices(session, state.settings, state.jwt_service, state.password_hasher)


# ============================================================================
# AUTHENTICATION DEPENDENCIES
# ============================================================================


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Optional[TokenPrincipal]:
    """
    Principal established by the authentication middleware, or None.

    The bearer scheme is declared here so the endpoint is documented as
    accepting a bearer token.
    """
    return getattr(request.state, "user", None)


async def require_user(
    request: Request,
    principal: Optional[TokenPrincipal] = Depends(get_current_principal)
) -> TokenPrincipal:
    """
    Require an authenticated user.

    Raises:
        HTTPException: 401 with a Bearer challenge; error="invalid_token"
            when a token was presented but rejected
    """
    if principal is not None:
        return principal

    if getattr(request.state, "token", None):
        description = getattr(request.state, "auth_error", None) or "The token is invalid"
        challenge = f'Bearer error="invalid_token", error_description="{description}"'
        detail = "Invalid authentication token"
    else:
        challenge = "Bearer"
        detail = "Not authenticated"

    logger.warning("user_not_authenticated", path=request.url.path, reason=detail)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": challenge}
    )


def require_roles(*roles: str) -> Callable:
    """
    Build a dependency that requires any of the given roles.

    Args:
        *roles: Accepted role names (case-insensitive)

    Returns:
        Dependency returning the principal

    Example:
        @router.delete("/{id}", dependencies=[Depends(require_roles("Admin"))])
    """
    async def dependency(
        request: Request,
        principal: TokenPrincipal = Depends(require_user)
    ) -> TokenPrincipal:
        if not principal.has_any_role(list(roles)):
            logger.warning(
                "access_denied_role_required",
                user_id=str(principal.id),
                user_name=principal.user_name,
                roles=principal.roles,
                required=list(roles),
                path=request.url.path
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {' or '.join(roles)}"
            )
        return principal

    return dependency


async def require_admin(
    request: Request,
    principal: TokenPrincipal = Depends(require_user)
) -> TokenPrincipal:
    """Require the configured administrator role."""
    admin_role = request.app.state.settings.identity.admin_role
    return await require_roles(admin_role)(request, principal)


def is_admin(request: Request, principal: TokenPrincipal) -> bool:
    return principal.has_role(request.app.state.settings.identity.admin_role)


def ensure_owner_or_admin(request: Request, principal: TokenPrincipal, owner_id) -> None:
    """
    Raise 403 unless the principal owns the resource or is an administrator.
    """
    if principal.id != owner_id and not is_admin(request, principal):
        logger.warning(
            "access_denied_not_owner",
            user_id=str(principal.id),
            owner_id=str(owner_id),
            path=request.url.path
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access this resource"
        )


# ============================================================================
# UTILITY DEPENDENCIES
# ============================================================================


async def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Checks X-Forwarded-For header first (for proxies),
    then falls back to client host.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


# ============================================================================
# PAGINATION DEPENDENCIES
# ============================================================================


class PaginationParams:
    """Pagination parameters for list endpoints."""

    def __init__(self, limit: int, offset: int, max_limit: int):
        """
        Initialize pagination parameters.

        Args:
            limit: Requested page size, clamped to [1, max_limit]
            offset: Number of items to skip (negative becomes 0)
            max_limit: Upper bound from settings
        """
        self.limit = max(1, min(limit, max_limit))
        self.offset = max(0, offset)


async def get_pagination_params(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, description="Page size"),
    offset: int = Query(0, ge=0, description="Items to skip")
) -> PaginationParams:
    """
    Get pagination parameters from query string.

    The default and maximum page sizes come from settings.
    """
    settings: Settings = request.app.state.settings
    return PaginationParams(
        limit=limit if limit is not None else settings.pagination_default_limit,
        offset=offset,
        max_limit=settings.pagination_max_limit
    )
