"""
Rate limiting for sign-in endpoints (slowapi).

The limiter is shared by the decorated endpoints; create_app applies the
settings to it and registers it on app.state for slowapi's exception
handler.
"""

import structlog
from slowapi import Limiter
from slowapi.util import get_remote_address

from electronic_api.config import Settings

logger = structlog.get_logger(__name__)

DEFAULT_LOGIN_LIMIT = "10/minute"

limiter = Limiter(key_func=get_remote_address)

_login_limit = DEFAULT_LOGIN_LIMIT


def login_limit() -> str:
    """Limit string applied to login attempts per client address."""
    return _login_limit


def configure_rate_limiting(settings: Settings) -> Limiter:
    """
    Apply rate limit settings and clear recorded hits.

    Args:
        settings: Application settings

    Returns:
        The configured limiter
    """
    global _login_limit
    _login_limit = settings.rate_limit_login
    limiter.enabled = settings.rate_limit_enabled
    limiter.reset()
    logger.info(
        "rate_limiting_configured",
        enabled=settings.rate_limit_enabled,
        login_limit=settings.rate_limit_login
    )
    return limiter
