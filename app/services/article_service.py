"""
Article Service

Routes gate edit/delete on "own OR any" capabilities; this service then
checks authorship for callers who only hold the ".own" variant.
"""
import math
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from slugify import slugify

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.core.utils import utcnow
from app.models.article import Article, ArticleStatus, ArticleVisibility
from app.models.user import User
from app.services.capability_service import CapabilityService

logger = logging.getLogger(__name__)


class ArticleService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.capabilities = CapabilityService(db)

    async def _slug_taken(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = select(Article.id).where(Article.slug == slug)
        if exclude_id:
            query = query.where(Article.id != exclude_id)
        return (await self.db.execute(query)).first() is not None

    async def _can_see_everything(self, user: Optional[User]) -> bool:
        if user is None:
            return False
        return await self.capabilities.user_has_capability(user.id, "article.edit.any")

    async def _visibility_criteria(self, user: Optional[User]) -> list:
        if await self._can_see_everything(user):
            return []
        criteria = [Article.status == ArticleStatus.PUBLISHED.value]
        if user is None:
            criteria.append(Article.visibility == ArticleVisibility.PUBLIC.value)
        return criteria

    async def get_article(self, article_id: int) -> Article:
        result = await self.db.execute(select(Article).where(Article.id == article_id))
        article = result.scalar_one_or_none()
        if not article:
            raise NotFoundError("Article not found")
        return article

    async def get_visible_article(self, article_id: int, user: Optional[User] = None) -> Article:
        """Article by id, or 404 when the caller may not read it."""
        criteria = await self._visibility_criteria(user)
        result = await self.db.execute(
            select(Article).where(Article.id == article_id, *criteria)
        )
        article = result.scalar_one_or_none()
        if not article:
            raise NotFoundError("Article not found")
        return article

    async def create(self, data: Dict[str, Any], author: User) -> Article:
        data = dict(data)
        data["slug"] = data.get("slug") or slugify(data["title"])
        if await self._slug_taken(data["slug"]):
            raise ConflictError(f"Article with slug '{data['slug']}' already exists")

        article = Article(**data, author_id=author.id)
        if article.status == ArticleStatus.PUBLISHED.value:
            article.published_at = utcnow()

        self.db.add(article)
        await self.db.flush()
        logger.info(f"Article created: {article.slug} by user {author.id}")
        return article

    async def find_all(
        self,
        user: Optional[User] = None,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        criteria = await self._visibility_criteria(user)
        if search:
            pattern = f"%{search.lower()}%"
            criteria.append(or_(
                func.lower(Article.title).like(pattern),
                func.lower(Article.excerpt).like(pattern),
            ))

        total = (await self.db.execute(
            select(func.count(Article.id)).where(*criteria)
        )).scalar_one()

        result = await self.db.execute(
            select(Article)
            .where(*criteria)
            .order_by(Article.published_at.desc(), Article.id.desc())
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

    async def find_by_slug(self, slug: str, user: Optional[User] = None) -> Article:
        criteria = await self._visibility_criteria(user)
        result = await self.db.execute(
            select(Article).where(Article.slug == slug, *criteria)
        )
        article = result.scalar_one_or_none()
        if not article:
            raise NotFoundError("Article not found")
        return article

    async def _check_ownership(self, article: Article, user: User, any_capability: str) -> None:
        if article.author_id == user.id:
            return
        if not await self.capabilities.user_has_capability(user.id, any_capability):
            raise ForbiddenError("You can only modify your own articles")

    async def update(self, article_id: int, data: Dict[str, Any], user: User) -> Article:
        article = await self.get_article(article_id)
        await self._check_ownership(article, user, "article.edit.any")

        slug = data.get("slug")
        if slug and await self._slug_taken(slug, exclude_id=article.id):
            raise ConflictError(f"Article with slug '{slug}' already exists")

        for field, value in data.items():
            setattr(article, field, value)
        if article.status == ArticleStatus.PUBLISHED.value and article.published_at is None:
            article.published_at = utcnow()

        await self.db.flush()
        return article

    async def remove(self, article_id: int, user: User) -> None:
        article = await self.get_article(article_id)
        await self._check_ownership(article, user, "article.delete.any")
        await self.db.delete(article)
        await self.db.flush()
        logger.info(f"Article {article.slug} deleted by user {user.id}")

    async def publish(self, article_id: int) -> Article:
        article = await self.get_article(article_id)
        article.status = ArticleStatus.PUBLISHED.value
        article.published_at = utcnow()
        await self.db.flush()
        logger.info(f"Article {article.slug} published")
        return article
