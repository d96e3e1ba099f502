"""
Authentication router.

Provides REST API endpoints for:
- Self-registration
- Login (JWT issuance, rate limited per client address)
- Current user profile
- Password change and token-based password reset
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from electronic_api.dependencies import RequestServices, get_client_ip, get_request_services, require_user
from electronic_api.exceptions import IdentityError
from electronic_api.models.identity import (
    ChangePasswordRequest,
    ErrorResponse,
    ForgotPasswordRequest,
    LoginRequest,
    PasswordResetTokenResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPrincipal,
    TokenResponse,
    UserResponse,
)
from electronic_api.rate_limit import limiter, login_limit

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        422: {"description": "Validation Error"}
    }
)

RESET_REQUESTED_MESSAGE = "If the account exists, a password reset has been issued."


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    responses={400: {"model": ErrorResponse, "description": "Identity rules violated"}}
)
async def register(
    body: RegisterRequest,
    services: RequestServices = Depends(get_request_services)
) -> UserResponse:
    """
    Create a customer account.

    The account receives the configured default role. Every violated
    user name, email and password rule is reported in `errors`.
    """
    default_role = services.settings.identity.default_role
    user = await services.identity.create_user(
        user_name=body.user_name,
        email=body.email,
        password=body.password,
        roles=[default_role],
        first_name=body.first_name,
        last_name=body.last_name,
    )
    logger.info("user_registered", user_id=str(user.id), user_name=user.user_name)
    return UserResponse.from_user(user)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="User Login",
    responses={429: {"description": "Too many login attempts"}}
)
@limiter.limit(login_limit)
async def login(
    request: Request,
    body: LoginRequest,
    services: RequestServices = Depends(get_request_services),
    client_ip: str = Depends(get_client_ip)
) -> TokenResponse:
    """
    Authenticate with user name and password and return a JWT access token.

    Repeated failures lock the account for the configured lockout window.

    Raises:
        HTTPException: 401 on invalid credentials or a locked account
    """
    logger.info("login_attempt", user_name=body.user_name, ip_address=client_ip)

    result = await services.identity.check_password_sign_in(body.user_name, body.password)
    if result.is_locked_out:
        logger.warning("login_locked_out", user_name=body.user_name, ip_address=client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is locked out",
            headers={"WWW-Authenticate": "Bearer"}
        )
    if not result.succeeded:
        logger.warning("login_failed", user_name=body.user_name, ip_address=client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = result.user
    token = services.jwt.create_token(user, services.identity.get_roles(user))
    logger.info("login_success", user_id=str(user.id), ip_address=client_ip)
    return token


@router.get("/me", response_model=UserResponse, summary="Current user")
async def me(
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> UserResponse:
    user = await services.identity.find_by_id(principal.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.from_user(user)


@router.post(
    "/change-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change password",
    responses={400: {"model": ErrorResponse}}
)
async def change_password(
    body: ChangePasswordRequest,
    principal: TokenPrincipal = Depends(require_user),
    services: RequestServices = Depends(get_request_services)
) -> Response:
    user = await services.identity.find_by_id(principal.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    await services.identity.change_password(user, body.current_password, body.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/forgot-password",
    response_model=PasswordResetTokenResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a password reset token"
)
async def forgot_password(
    body: ForgotPasswordRequest,
    services: RequestServices = Depends(get_request_services)
) -> PasswordResetTokenResponse:
    """
    Issue a password reset token.

    The response is the same whether or not the account exists. Without an
    email sender the token is only returned to the caller in development.
    """
    user = await services.identity.find_by_name(body.user_name)
    if user is None:
        logger.info("password_reset_unknown_user", user_name=body.user_name)
        return PasswordResetTokenResponse(message=RESET_REQUESTED_MESSAGE)

    token = services.identity.generate_password_reset_token(user)
    if services.settings.is_development:
        return PasswordResetTokenResponse(message=RESET_REQUESTED_MESSAGE, reset_token=token)
    return PasswordResetTokenResponse(message=RESET_REQUESTED_MESSAGE)


@router.post(
    "/reset-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset password with a token",
    responses={400: {"model": ErrorResponse}}
)
async def reset_password(
    body: ResetPasswordRequest,
    services: RequestServices = Depends(get_request_services)
) -> Response:
    user = await services.identity.find_by_name(body.user_name)
    if user is None:
        raise IdentityError(["Invalid token."])
    await services.identity.reset_password(user, body.token, body.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
