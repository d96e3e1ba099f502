"""
Product repository for database operations.

Provides async CRUD operations for products, including catalog search,
image assignment and stock bookkeeping used by checkout.
"""

from typing import List, Optional, Tuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from electronic_api.exceptions import ConflictError, DomainError
from electronic_api.models.catalog import Category, Product, ProductCreateRequest, ProductUpdateRequest
from electronic_api.models.orders import OrderItem

logger = structlog.get_logger(__name__)


class ProductRepository:
    """Repository for product database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize product repository.

        Args:
            session: Request-scoped database session
        """
        self.session = session

    async def _category(self, category_id: int) -> Category:
        category = await self.session.get(Category, category_id)
        if category is None:
            raise DomainError(f"Category {category_id} does not exist")
        return category

    async def list_products(
        self,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[Product], int]:
        """
        List products with optional filters.

        Args:
            category_id: Only products in this category
            search: Case-insensitive substring of the product name
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (page of products ordered by name, total matching count)
        """
        filters = []
        if category_id is not None:
            filters.append(Product.category_id == category_id)
        if search:
            filters.append(func.lower(Product.name).contains(search.strip().lower(), autoescape=True))

        total = await self.session.scalar(
            select(func.count()).select_from(Product).where(*filters)
        )
        result = await self.session.execute(
            select(Product)
            .where(*filters)
            .order_by(Product.name, Product.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def get(self, product_id: int) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def get_many(self, product_ids: List[int]) -> List[Product]:
        if not product_ids:
            return []
        result = await self.session.execute(
            select(Product).where(Product.id.in_(product_ids))
        )
        return list(result.scalars().all())

    async def create(self, request: ProductCreateRequest) -> Product:
        """
        Create a product.

        Raises:
            DomainError: If the category does not exist
        """
        category = await self._category(request.category_id)
        product = Product(
            name=request.name,
            description=request.description,
            price=request.price,
            stock=request.stock,
            category_id=category.id,
        )
        product.category = category
        self.session.add(product)
        await self.session.commit()

        logger.info("product_created", product_id=product.id, name=product.name, category_id=category.id)
        return product

    async def update(self, product_id: int, request: ProductUpdateRequest) -> Optional[Product]:
        product = await self.get(product_id)
        if product is None:
            return None

        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if "category_id" in changes:
            product.category = await self._category(changes.pop("category_id"))
        for field, value in changes.items():
            setattr(product, field, value)

        await self.session.commit()
        logger.info("product_updated", product_id=product_id, fields=sorted(request.model_fields_set))
        return product

    async def delete(self, product_id: int) -> bool:
        """
        Delete a product.

        Returns:
            True if deleted, False if not found

        Raises:
            ConflictError: If the product appears on an order
        """
        product = await self.get(product_id)
        if product is None:
            return False

        ordered = await self.session.scalar(
            select(func.count()).select_from(OrderItem).where(OrderItem.product_id == product_id)
        )
        if ordered:
            raise ConflictError(f"Product {product_id} is referenced by existing orders")

        await self.session.delete(product)
        await self.session.commit()
        logger.info("product_deleted", product_id=product_id)
        return True

    async def set_image(self, product_id: int, image_url: str) -> Optional[Product]:
        """Point the product at a new image; None if the product is gone."""
        product = await self.session.get(Product, product_id, populate_existing=True)
        if product is None:
            return None
        previous = product.image_url
        product.image_url = image_url
        await self.session.commit()
        logger.info("product_image_set", product_id=product_id, image_url=image_url, previous=previous)
        return product

    async def adjust_stock(self, product: Product, delta: int) -> None:
        """
        Change stock by delta in the database without committing.

        The change is a single conditional UPDATE so that concurrent
        reservations cannot take more units than the row holds, whatever
        stock value this session loaded earlier. Callers commit as part of
        a larger unit of work (checkout, cancel).

        Raises:
            DomainError: If stock would become negative
        """
        statement = (
            update(Product)
            .where(Product.id == product.id)
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )
        if delta < 0:
            statement = statement.where(Product.stock >= -delta)

        result = await self.session.execute(statement)
        await self.session.refresh(product, ["stock"])
        if result.rowcount == 0:
            logger.info("stock_reservation_rejected", product_id=product.id, requested=-delta, available=product.stock)
            raise DomainError(
                f"Insufficient stock for product '{product.name}' "
                f"(requested {-delta}, available {product.stock})"
            )
