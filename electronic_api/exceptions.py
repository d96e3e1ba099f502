"""
Exception types raised by the store API.

Startup problems surface as ConfigurationError and abort the process before
the server binds. The remaining types are translated into HTTP responses by
the handlers registered in main.py.
"""

from typing import List, Optional


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid."""


class IdentityError(Exception):
    """
    One or more identity rules were violated.

    Carries every failure so callers can report them together, e.g. all the
    password rules a candidate password breaks.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DomainError(Exception):
    """A store operation cannot be performed in the current state."""

    def __init__(self, detail: str, status_code: int = 400):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class ConflictError(DomainError):
    """The operation would violate a uniqueness rule."""

    def __init__(self, detail: str):
        super().__init__(detail, status_code=409)


class TokenValidationError(Exception):
    """A bearer token failed signature, issuer, audience or lifetime checks."""

    def __init__(self, reason: str, description: Optional[str] = None):
        self.reason = reason
        self.description = description or reason
        super().__init__(self.description)
