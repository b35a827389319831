"""
Article routes

Edit and delete accept either the ".own" or ".any" capability; the service
restricts ".own" holders to their own articles. Comments on an article are
read and posted here; editing and moderation live under /api/comments.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_optional_user
from app.core.capabilities import require_capability
from app.core.database import get_db
from app.models.user import User
from app.schemas.article import ArticleCreate, ArticleList, ArticleResponse, ArticleUpdate
from app.schemas.comment import CommentCreate, CommentList, CommentResponse
from app.services.article_service import ArticleService
from app.services.comment_service import CommentService

router = APIRouter()


@router.get("", response_model=ArticleList)
async def list_articles(
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    return await ArticleService(db).find_all(current_user, page=page, limit=limit, search=search)


@router.get("/{slug}", response_model=ArticleResponse)
async def get_article(
    slug: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    return await ArticleService(db).find_by_slug(slug, current_user)


@router.post("", response_model=ArticleResponse, status_code=status.HTTP_201_CREATED)
async def create_article(
    article_data: ArticleCreate,
    current_user: User = Depends(require_capability("article.create")),
    db: AsyncSession = Depends(get_db)
):
    return await ArticleService(db).create(article_data.model_dump(), current_user)


@router.patch("/{article_id}", response_model=ArticleResponse)
async def update_article(
    article_id: int,
    article_data: ArticleUpdate,
    current_user: User = Depends(require_capability("article.edit.own", "article.edit.any")),
    db: AsyncSession = Depends(get_db)
):
    return await ArticleService(db).update(
        article_id, article_data.model_dump(exclude_unset=True), current_user
    )


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_article(
    article_id: int,
    current_user: User = Depends(require_capability("article.delete.own", "article.delete.any")),
    db: AsyncSession = Depends(get_db)
):
    await ArticleService(db).remove(article_id, current_user)


@router.post("/{article_id}/publish", response_model=ArticleResponse)
async def publish_article(
    article_id: int,
    current_user: User = Depends(require_capability("article.publish")),
    db: AsyncSession = Depends(get_db)
):
    return await ArticleService(db).publish(article_id)


@router.get("/{article_id}/comments", response_model=CommentList)
async def list_article_comments(
    article_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).find_by_article(article_id, current_user, page=page, limit=limit)


@router.post("/{article_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_article_comment(
    article_id: int,
    comment_data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).create(
        article_id, comment_data.content, current_user, parent_id=comment_data.parent_id
    )
