"""Business services: identity management, password rules and JWT handling."""

from electronic_api.services.identity_service import IdentityService, SignInResult
from electronic_api.services.jwt_service import JwtService
from electronic_api.services.password_policy import PasswordHasher, PasswordPolicy

__all__ = [
    "IdentityService",
    "JwtService",
    "PasswordHasher",
    "PasswordPolicy",
    "SignInResult",
]
