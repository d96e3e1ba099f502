"""
Category repository for database operations.

Provides async CRUD operations for product categories.
"""

from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.exceptions import ConflictError, DomainError
from electronic_api.models.catalog import Category, CategoryRequest, Product

logger = structlog.get_logger(__name__)


class CategoryRepository:
    """Repository for category database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize category repository.

        Args:
            session: Request-scoped database session
        """
        self.session = session

    async def list_categories(self) -> List[Category]:
        result = await self.session.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())

    async def get(self, category_id: int) -> Optional[Category]:
        return await self.session.get(Category, category_id)

    async def get_by_name(self, name: str) -> Optional[Category]:
        result = await self.session.execute(
            select(Category).where(func.lower(Category.name) == name.strip().lower())
        )
        return result.scalar_one_or_none()

    async def create(self, request: CategoryRequest) -> Category:
        """
        Create a category.

        Args:
            request: Validated category payload

        Returns:
            Created category

        Raises:
            ConflictError: If a category with the same name exists
        """
        if await self.get_by_name(request.name) is not None:
            logger.warning("category_name_conflict", name=request.name)
            raise ConflictError(f"Category '{request.name}' already exists")

        category = Category(name=request.name, description=request.description)
        self.session.add(category)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(f"Category '{request.name}' already exists")

        logger.info("category_created", category_id=category.id, name=category.name)
        return category

    async def update(self, category_id: int, request: CategoryRequest) -> Optional[Category]:
        category = await self.get(category_id)
        if category is None:
            return None

        existing = await self.get_by_name(request.name)
        if existing is not None and existing.id != category_id:
            raise ConflictError(f"Category '{request.name}' already exists")

        category.name = request.name
        category.description = request.description
        await self.session.commit()

        logger.info("category_updated", category_id=category_id)
        return category

    async def delete(self, category_id: int) -> bool:
        """
        Delete a category.

        Returns:
            True if deleted, False if not found

        Raises:
            ConflictError: If products still reference the category
        """
        category = await self.get(category_id)
        if category is None:
            return False

        in_use = await self.session.scalar(
            select(func.count()).select_from(Product).where(Product.category_id == category_id)
        )
        if in_use:
            raise ConflictError(f"Category {category_id} still has {in_use} product(s)")

        await self.session.delete(category)
        await self.session.commit()
        logger.info("category_deleted", category_id=category_id)
        return True

    async def require(self, category_id: int) -> Category:
        category = await self.get(category_id)
        if category is None:
            raise DomainError(f"Category {category_id} does not exist")
        return category
