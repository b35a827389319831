"""
Product Service

Catalog CRUD with slug/SKU uniqueness and soft delete.
"""
import math
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from slugify import slugify

from app.core.exceptions import ConflictError, NotFoundError
from app.core.utils import utcnow
from app.models.product import Product, ProductStatus

logger = logging.getLogger(__name__)


class ProductService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _ensure_unique(
        self,
        slug: Optional[str],
        sku: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> None:
        if slug:
            query = select(Product.id).where(Product.slug == slug)
            if exclude_id:
                query = query.where(Product.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise ConflictError(f"Product with slug '{slug}' already exists")

        if sku:
            query = select(Product.id).where(Product.sku == sku)
            if exclude_id:
                query = query.where(Product.id != exclude_id)
            if (await self.db.execute(query)).first():
                raise ConflictError(f"Product with SKU '{sku}' already exists")

    async def create(self, data: Dict[str, Any]) -> Product:
        data = dict(data)
        data["slug"] = data.get("slug") or slugify(data["name"])
        await self._ensure_unique(data["slug"], data.get("sku"))

        product = Product(**data)
        self.db.add(product)
        await self.db.flush()
        logger.info(f"Product created: {product.slug}")
        return product

    async def find_all(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        include_unpublished: bool = False,
    ) -> Dict[str, Any]:
        criteria = [Product.deleted_at.is_(None)]
        if not include_unpublished:
            criteria.append(Product.status == ProductStatus.PUBLISHED.value)
        if search:
            pattern = f"%{search.lower()}%"
            criteria.append(or_(
                func.lower(Product.name).like(pattern),
                func.lower(Product.sku).like(pattern),
            ))

        total = (await self.db.execute(
            select(func.count(Product.id)).where(*criteria)
        )).scalar_one()

        result = await self.db.execute(
            select(Product)
            .where(*criteria)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "data": list(result.scalars().all()),
            "meta": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def find_one(self, id_or_slug: str, include_unpublished: bool = False) -> Product:
        """Look up by numeric id or by slug."""
        if str(id_or_slug).isdigit():
            criteria = Product.id == int(id_or_slug)
        else:
            criteria = Product.slug == id_or_slug

        result = await self.db.execute(
            select(Product).where(criteria, Product.deleted_at.is_(None))
        )
        product = result.scalar_one_or_none()

        if not product:
            raise NotFoundError("Product not found")
        if not include_unpublished and product.status != ProductStatus.PUBLISHED.value:
            raise NotFoundError("Product not found")
        return product

    async def update(self, product_id: int, data: Dict[str, Any]) -> Product:
        product = await self.find_one(str(product_id), include_unpublished=True)
        await self._ensure_unique(data.get("slug"), data.get("sku"), exclude_id=product.id)

        for field, value in data.items():
            setattr(product, field, value)
        await self.db.flush()
        return product

    async def remove(self, product_id: int) -> None:
        """Soft delete; order history keeps its references."""
        product = await self.find_one(str(product_id), include_unpublished=True)
        product.deleted_at = utcnow()
        await self.db.flush()
        logger.info(f"Product {product.slug} soft-deleted")
