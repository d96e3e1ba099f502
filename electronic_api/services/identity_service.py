"""
Identity service: user and role management over the identity tables.

Provides:
- User creation with user name, email and password policy checks
- Password sign-in with account lockout
- Password change and token-based password reset
- Role creation, membership and startup seeding
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.config import IdentityOptions
from electronic_api.exceptions import IdentityError
from electronic_api.models.identity import RoleModel, User, utcnow
from electronic_api.services.jwt_service import RESET_PASSWORD_PURPOSE, JwtService
from electronic_api.services.password_policy import PasswordHasher, PasswordPolicy

logger = structlog.get_logger(__name__)


def normalize(value: Optional[str]) -> Optional[str]:
    """Lookup key used for user names, emails and role names."""
    if value is None:
        return None
    return value.strip().upper()


def new_stamp() -> str:
    return uuid.uuid4().hex


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class SignInResult:
    """Outcome of a password sign-in attempt."""
    succeeded: bool
    is_locked_out: bool = False
    user: Optional[User] = None

    @classmethod
    def success(cls, user: User) -> "SignInResult":
        return cls(succeeded=True, user=user)

    @classmethod
    def failed(cls) -> "SignInResult":
        return cls(succeeded=False)

    @classmethod
    def locked_out(cls) -> "SignInResult":
        return cls(succeeded=False, is_locked_out=True)


class IdentityService:
    """User manager and role manager bound to one database session."""

    def __init__(
        self,
        session: AsyncSession,
        options: IdentityOptions,
        hasher: PasswordHasher,
        jwt_service: JwtService,
        reset_token_lifetime: timedelta = timedelta(minutes=30)
    ):
        """
        Initialize identity service.

        Args:
            session: Request-scoped database session
            options: Identity options (password, lockout, user rules)
            hasher: Password hasher
            jwt_service: Token service used for password reset tokens
            reset_token_lifetime: Lifetime of password reset tokens
        """
        self.session = session
        self.options = options
        self.hasher = hasher
        self.policy = PasswordPolicy(options.password)
        self.jwt_service = jwt_service
        self.reset_token_lifetime = reset_token_lifetime

    # =========================================================================
    # Lookup
    # =========================================================================

    async def find_by_id(self, user_id: UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def find_by_name(self, user_name: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.normalized_user_name == normalize(user_name))
        )
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.normalized_email == normalize(email)).limit(1)
        )
        return result.scalars().first()

    # =========================================================================
    # Users
    # =========================================================================

    def _validate_user_name(self, user_name: str) -> List[str]:
        allowed = self.options.user.allowed_user_name_characters
        if not user_name or (allowed and any(c not in allowed for c in user_name)):
            return [f"Username '{user_name}' is invalid, can only contain letters or digits."]
        return []

    async def validate_email(self, email: Optional[str], owner_id: Optional[UUID] = None) -> List[str]:
        """
        Check an email against RequireUniqueEmail.

        Args:
            email: Address to check
            owner_id: User the address may already belong to (profile edits)

        Returns:
            Error messages; empty when the address is acceptable
        """
        if not self.options.user.require_unique_email:
            return []
        if not email:
            return ["Email '' is invalid."]
        existing = await self.find_by_email(email)
        if existing is not None and existing.id != owner_id:
            return [f"Email '{email}' is already taken."]
        return []

    async def create_user(
        self,
        user_name: str,
        email: Optional[str],
        password: str,
        roles: Optional[Iterable[str]] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None
    ) -> User:
        """
        Create a user with a hashed password and optional roles.

        Args:
            user_name: Login name
            email: Email address
            password: Plain text password, checked against the password policy
            roles: Role names to grant (each must exist)
            first_name: Optional first name
            last_name: Optional last name

        Returns:
            Created user

        Raises:
            IdentityError: Listing every rule the input violates
        """
        errors = self._validate_user_name(user_name)
        if not errors and await self.find_by_name(user_name) is not None:
            errors.append(f"Username '{user_name}' is already taken.")

        errors.extend(await self.validate_email(email))

        errors.extend(self.policy.validate(password))

        role_models = []
        for role_name in roles or ():
            role = await self.get_role(role_name)
            if role is None:
                errors.append(f"Role {role_name} does not exist.")
            else:
                role_models.append(role)

        if errors:
            logger.info("user_create_rejected", user_name=user_name, errors=errors)
            raise IdentityError(errors)

        user = User(
            id=uuid.uuid4(),
            user_name=user_name,
            normalized_user_name=normalize(user_name),
            email=email,
            normalized_email=normalize(email),
            password_hash=self.hasher.hash_password(password),
            security_stamp=new_stamp(),
            concurrency_stamp=new_stamp(),
            first_name=first_name,
            last_name=last_name,
            lockout_enabled=self.options.lockout.allowed_for_new_users,
            access_failed_count=0,
            created_at=utcnow(),
        )
        user.roles = role_models
        self.session.add(user)

        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("username_already_exists", user_name=user_name)
            raise IdentityError([f"Username '{user_name}' is already taken."])

        logger.info(
            "user_created",
            user_id=str(user.id),
            user_name=user_name,
            roles=[r.name for r in role_models]
        )
        return user

    # =========================================================================
    # Sign-in and lockout
    # =========================================================================

    def is_locked_out(self, user: User, now: Optional[datetime] = None) -> bool:
        if not user.lockout_enabled or user.lockout_end is None:
            return False
        return _as_utc(user.lockout_end) > (now or utcnow())

    async def check_password_sign_in(self, user_name: str, password: str) -> SignInResult:
        """
        Verify a password and apply the lockout rules.

        A failed attempt increments the user's failure count; reaching
        MaxFailedAccessAttempts locks the account for DefaultLockoutMinutes
        and resets the count. A successful attempt resets the count.

        Args:
            user_name: Login name
            password: Plain text password

        Returns:
            SignInResult describing the outcome
        """
        user = await self.find_by_name(user_name)
        if user is None or not user.password_hash:
            logger.warning("sign_in_failed", user_name=user_name, reason="user_not_found")
            return SignInResult.failed()

        if self.is_locked_out(user):
            logger.warning("sign_in_rejected_locked_out", user_id=str(user.id))
            return SignInResult.locked_out()

        if self.hasher.verify_password(password, user.password_hash):
            if self.hasher.needs_rehash(user.password_hash):
                user.password_hash = self.hasher.hash_password(password)
            user.access_failed_count = 0
            user.lockout_end = None
            await self.session.commit()
            logger.info("sign_in_succeeded", user_id=str(user.id))
            return SignInResult.success(user)

        if not user.lockout_enabled:
            logger.warning("sign_in_failed", user_id=str(user.id), reason="invalid_password")
            return SignInResult.failed()

        lockout = self.options.lockout
        user.access_failed_count += 1
        if user.access_failed_count >= lockout.max_failed_access_attempts:
            user.lockout_end = utcnow() + timedelta(minutes=lockout.default_lockout_minutes)
            user.access_failed_count = 0
            await self.session.commit()
            logger.warning(
                "user_locked_out",
                user_id=str(user.id),
                lockout_minutes=lockout.default_lockout_minutes
            )
            return SignInResult.locked_out()

        await self.session.commit()
        logger.warning(
            "sign_in_failed",
            user_id=str(user.id),
            reason="invalid_password",
            failed_count=user.access_failed_count
        )
        return SignInResult.failed()

    # =========================================================================
    # Passwords
    # =========================================================================

    async def _set_password(self, user: User, new_password: str) -> None:
        errors = self.policy.validate(new_password)
        if errors:
            raise IdentityError(errors)
        user.password_hash = self.hasher.hash_password(new_password)
        user.security_stamp = new_stamp()
        user.concurrency_stamp = new_stamp()
        await self.session.commit()

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """
        Replace a password after verifying the current one.

        Raises:
            IdentityError: Current password is wrong or the new one breaks the policy
        """
        if not user.password_hash or not self.hasher.verify_password(current_password, user.password_hash):
            logger.warning("password_change_rejected", user_id=str(user.id))
            raise IdentityError(["Incorrect password."])
        await self._set_password(user, new_password)
        logger.info("password_changed", user_id=str(user.id))

    def generate_password_reset_token(self, user: User) -> str:
        token = self.jwt_service.create_purpose_token(
            user, RESET_PASSWORD_PURPOSE, self.reset_token_lifetime
        )
        logger.info("password_reset_token_issued", user_id=str(user.id))
        return token

    async def reset_password(self, user: User, token: str, new_password: str) -> None:
        """
        Set a new password using a reset token.

        The token is bound to the security stamp, so it stops working once
        the password has changed.

        Raises:
            IdentityError: Token invalid or the new password breaks the policy
        """
        if not self.jwt_service.verify_purpose_token(token, user, RESET_PASSWORD_PURPOSE):
            raise IdentityError(["Invalid token."])
        await self._set_password(user, new_password)
        user.access_failed_count = 0
        user.lockout_end = None
        await self.session.commit()
        logger.info("password_reset", user_id=str(user.id))

    # =========================================================================
    # Roles
    # =========================================================================

    async def get_role(self, name: str) -> Optional[RoleModel]:
        result = await self.session.execute(
            select(RoleModel).where(RoleModel.normalized_name == normalize(name))
        )
        return result.scalar_one_or_none()

    async def role_exists(self, name: str) -> bool:
        return await self.get_role(name) is not None

    async def create_role(self, name: str) -> RoleModel:
        if await self.role_exists(name):
            raise IdentityError([f"Role name '{name}' is already taken."])
        role = RoleModel(
            id=uuid.uuid4(),
            name=name,
            normalized_name=normalize(name),
            concurrency_stamp=new_stamp(),
        )
        self.session.add(role)
        await self.session.commit()
        logger.info("role_created", role=name)
        return role

    async def ensure_roles(self, names: Iterable[str]) -> List[str]:
        """
        Create any of the given roles that do not exist yet.

        Returns:
            Names of the roles that were created
        """
        created = []
        for name in names:
            if not await self.role_exists(name):
                await self.create_role(name)
                created.append(name)
        return created

    def get_roles(self, user: User) -> List[str]:
        return user.role_names

    def is_in_role(self, user: User, role_name: str) -> bool:
        wanted = normalize(role_name)
        return any(role.normalized_name == wanted for role in user.roles)

    async def add_to_role(self, user: User, role_name: str) -> None:
        role = await self.get_role(role_name)
        if role is None:
            raise IdentityError([f"Role {role_name} does not exist."])
        if self.is_in_role(user, role_name):
            raise IdentityError([f"User already in role '{role.name}'."])
        user.roles.append(role)
        user.concurrency_stamp = new_stamp()
        await self.session.commit()
        logger.info("user_role_added", user_id=str(user.id), role=role.name)

    async def remove_from_role(self, user: User, role_name: str) -> None:
        wanted = normalize(role_name)
        remaining = [role for role in user.roles if role.normalized_name != wanted]
        if len(remaining) == len(user.roles):
            raise IdentityError([f"User is not in role '{role_name}'."])
        user.roles = remaining
        user.concurrency_stamp = new_stamp()
        await self.session.commit()
        logger.info("user_role_removed", user_id=str(user.id), role=role_name)
