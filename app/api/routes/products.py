"""
Product catalog routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_optional_user
from app.core.capabilities import require_capability
from app.core.database import get_db
from app.models.user import User
from app.schemas.product import ProductCreate, ProductList, ProductResponse, ProductUpdate
from app.services.capability_service import CapabilityService
from app.services.product_service import ProductService

router = APIRouter()


@router.get("", response_model=ProductList)
async def list_products(
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Published products only."""
    return await ProductService(db).find_all(page=page, limit=limit, search=search)


@router.get("/{id_or_slug}", response_model=ProductResponse)
async def get_product(
    id_or_slug: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    can_edit = current_user is not None and await CapabilityService(db).user_has_capability(
        current_user.id, "product.edit"
    )
    return await ProductService(db).find_one(id_or_slug, include_unpublished=can_edit)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    current_user: User = Depends(require_capability("product.create")),
    db: AsyncSession = Depends(get_db)
):
    return await ProductService(db).create(product_data.model_dump())


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    current_user: User = Depends(require_capability("product.edit")),
    db: AsyncSession = Depends(get_db)
):
    return await ProductService(db).update(product_id, product_data.model_dump(exclude_unset=True))


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    current_user: User = Depends(require_capability("product.delete")),
    db: AsyncSession = Depends(get_db)
):
    await ProductService(db).remove(product_id)
