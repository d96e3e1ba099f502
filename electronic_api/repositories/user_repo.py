"""
User repository for profile administration.

Credentials, lockout and roles are owned by IdentityService; this
repository covers listing, profile edits and deletion.
"""

from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.models.identity import UpdateUserRequest, User
from electronic_api.services.identity_service import new_stamp, normalize

logger = structlog.get_logger(__name__)


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize user repository.

        Args:
            session: Request-scoped database session
        """
        self.session = session

    async def list_users(self, limit: int = 50, offset: int = 0) -> List[User]:
        """
        List users ordered by user name.

        Args:
            limit: Maximum results
            offset: Offset for pagination

        Returns:
            List of users
        """
        result = await self.session.execute(
            select(User)
            .order_by(User.normalized_user_name)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_users(self) -> int:
        return await self.session.scalar(select(func.count()).select_from(User)) or 0

    async def get(self, user_id: UUID) -> Optional[User]:
        user = await self.session.get(User, user_id)
        if user is None:
            logger.debug("user_not_found", user_id=str(user_id))
        return user

    async def update_profile(self, user_id: UUID, request: UpdateUserRequest) -> Optional[User]:
        """
        Apply a partial profile update.

        Args:
            user_id: User ID
            request: Fields to change; unset fields are left alone

        Returns:
            Updated user or None if not found
        """
        user = await self.get(user_id)
        if user is None:
            return None

        changes = request.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(user, field, value)
        if "email" in changes:
            user.normalized_email = normalize(user.email)
        user.concurrency_stamp = new_stamp()

        await self.session.commit()
        logger.info("user_profile_updated", user_id=str(user_id), fields=sorted(changes))
        return user

    async def delete(self, user_id: UUID) -> bool:
        user = await self.get(user_id)
        if user is None:
            return False
        await self.session.delete(user)
        await self.session.commit()
        logger.info("user_deleted", user_id=str(user_id))
        return True
