"""HTTP middleware: request logging, security headers, static images, authentication."""

from electronic_api.middleware.auth import AuthenticationMiddleware
from electronic_api.middleware.request_logging import RequestLoggingMiddleware
from electronic_api.middleware.security_headers import SecurityHeadersMiddleware
from electronic_api.middleware.static_files import StaticFilesMiddleware

__all__ = [
    "AuthenticationMiddleware",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "StaticFilesMiddleware",
]
