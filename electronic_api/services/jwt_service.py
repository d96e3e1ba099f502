"""
JWT issuance and validation.

Provides:
- Access token creation for signed-in users
- Bearer token validation (signature, issuer, audience, lifetime with clock skew)
- Single-purpose tokens (password reset) bound to a user's security stamp
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from electronic_api.config import JwtSettings
from electronic_api.exceptions import TokenValidationError
from electronic_api.models.identity import TokenPrincipal, TokenResponse, User

logger = structlog.get_logger(__name__)

PURPOSE_CLAIM = "purpose"
RESET_PASSWORD_PURPOSE = "ResetPassword"


class JwtService:
    """Mints and validates HMAC-signed JWTs with the configured key, issuer and audience."""

    def __init__(self, jwt_settings: JwtSettings):
        """
        Initialize the token service.

        Args:
            jwt_settings: Validated JwtSettings section
        """
        self.settings = jwt_settings

    def _encode(self, claims: Dict[str, Any]) -> str:
        return jwt.encode(claims, self.settings.key, algorithm=self.settings.algorithm)

    def _decode(self, token: str) -> Dict[str, Any]:
        return jwt.decode(
            token,
            self.settings.key,
            algorithms=[self.settings.algorithm],
            audience=self.settings.audience,
            issuer=self.settings.issuer,
            options={
                "leeway": self.settings.clock_skew_seconds,
                "require_aud": True,
                "require_iss": True,
                "require_exp": True,
                "require_iat": True,
                "require_sub": True,
            },
        )

    def create_token(
        self,
        user: User,
        roles: List[str],
        now: Optional[datetime] = None,
        expires_delta: Optional[timedelta] = None
    ) -> TokenResponse:
        """
        Create an access token for a signed-in user.

        Args:
            user: Authenticated user
            roles: Role names to embed as the "roles" claim
            now: Issue time (defaults to the current UTC time)
            expires_delta: Custom lifetime (defaults to ExpiryMinutes)

        Returns:
            Token response with the encoded JWT and its expiry
        """
        if now is None:
            now = datetime.now(timezone.utc)
        if expires_delta is None:
            expires_delta = timedelta(minutes=self.settings.expiry_minutes)
        expires_at = now + expires_delta

        claims = {
            "sub": str(user.id),
            "jti": uuid4().hex,
            "name": user.user_name,
            "email": user.email,
            "roles": list(roles),
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
        }
        token = self._encode(claims)

        logger.info(
            "access_token_created",
            user_id=str(user.id),
            user_name=user.user_name,
            expires_in=int(expires_delta.total_seconds())
        )

        return TokenResponse(
            access_token=token,
            token_type="Bearer",
            expires_in=int(expires_delta.total_seconds()),
            expires_at=expires_at,
        )

    def validate_token(self, token: str) -> TokenPrincipal:
        """
        Validate a bearer token and build the principal it describes.

        Args:
            token: Encoded JWT

        Returns:
            Principal built from the token claims

        Raises:
            TokenValidationError: If signature, issuer, audience or lifetime checks fail
        """
        try:
            claims = self._decode(token)
        except ExpiredSignatureError:
            logger.info("token_validation_failed", reason="token_expired")
            raise TokenValidationError("invalid_token", "The token has expired")
        except JWTClaimsError as e:
            logger.info("token_validation_failed", reason="invalid_claims", error=str(e))
            raise TokenValidationError("invalid_token", str(e))
        except JWTError as e:
            logger.info("token_validation_failed", reason="invalid_signature", error=str(e))
            raise TokenValidationError("invalid_token", "The signature is invalid")

        if PURPOSE_CLAIM in claims:
            logger.warning("token_validation_failed", reason="purpose_token_used_as_bearer")
            raise TokenValidationError("invalid_token", "Token is not an access token")

        try:
            user_id = UUID(claims["sub"])
        except (ValueError, TypeError):
            logger.warning("token_validation_failed", reason="invalid_subject")
            raise TokenValidationError("invalid_token", "Invalid subject claim")

        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]

        return TokenPrincipal(
            id=user_id,
            user_name=claims.get("name") or "",
            email=claims.get("email"),
            roles=roles,
            token_id=claims.get("jti"),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )

    def create_purpose_token(self, user: User, purpose: str, lifetime: timedelta) -> str:
        """Token usable only for `purpose` and only while the user's security stamp is unchanged."""
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user.id),
            PURPOSE_CLAIM: purpose,
            "stamp": user.security_stamp,
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
        }
        return self._encode(claims)

    def verify_purpose_token(self, token: str, user: User, purpose: str) -> bool:
        try:
            claims = self._decode(token)
        except JWTError as e:
            logger.info("purpose_token_rejected", purpose=purpose, error=str(e))
            return False

        valid = (
            claims.get(PURPOSE_CLAIM) == purpose
            and claims.get("sub") == str(user.id)
            and claims.get("stamp") == user.security_stamp
        )
        if not valid:
            logger.info("purpose_token_rejected", purpose=purpose, user_id=str(user.id))
        return valid
