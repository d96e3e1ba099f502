"""
JWT bearer authentication middleware.

Provides:
- Token extraction from the Authorization header
- Token validation (signature, issuer, audience, lifetime)
- Request state enrichment with the authenticated principal

The middleware never rejects a request. Endpoints that need a user depend
on require_user / require_roles, which turn a missing or rejected token
into 401 and a missing role into 403.
"""

from typing import Callable, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from electronic_api.exceptions import TokenValidationError
from electronic_api.logging import bind_context
from electronic_api.services.jwt_service import JwtService

logger = structlog.get_logger(__name__)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to authenticate requests using JWT bearer tokens.

    Sets on request.state:
        user: TokenPrincipal or None
        token: The raw bearer token as presented, or None
        auth_error: Why a presented token was rejected, or None
    """

    def __init__(self, app, jwt_service: JwtService):
        """
        Initialize auth middleware.

        Args:
            app: ASGI application
            jwt_service: Token validator
        """
        super().__init__(app)
        self.jwt_service = jwt_service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.user = None
        request.state.token = None
        request.state.auth_error = None

        token = self._extract_token(request)
        if token:
            request.state.token = token
            try:
                principal = self.jwt_service.validate_token(token)
            except TokenValidationError as e:
                request.state.auth_error = e.description
                logger.warning(
                    "auth_invalid_token",
                    path=request.url.path,
                    method=request.method,
                    reason=e.description
                )
            else:
                request.state.user = principal
                bind_context(user_id=str(principal.id))
                logger.debug(
                    "request_authenticated",
                    path=request.url.path,
                    user_id=str(principal.id),
                    user_name=principal.user_name,
                    roles=principal.roles
                )

        return await call_next(request)

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract JWT token from Authorization header.

        Returns:
            JWT token or None if the header is absent or not a Bearer header
        """
        authorization = request.headers.get("Authorization")
        if not authorization:
            return None

        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            logger.warning("auth_malformed_header", path=request.url.path)
            return None

        return parts[1]
