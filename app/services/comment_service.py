"""
Comment Service

Comments go live when posted and are moderated right after: the moderation
result only moves moderation_status (approved or flagged) and leaves the
visible status alone. Moderators then approve, reject or mark spam from the
review queue. Deletes are soft.
"""
import math
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.utils import utcnow
from app.models.article import ArticleStatus
from app.models.comment import Comment, CommentStatus, ModerationStatus
from app.models.user import User
from app.services.article_service import ArticleService
from app.services.capability_service import CapabilityService
from app.services.moderation_service import ModerationService

logger = logging.getLogger(__name__)

MODERATE_CAPABILITY = "comment.moderate"

REVIEW_QUEUE_STATUSES = (ModerationStatus.PENDING.value, ModerationStatus.FLAGGED.value)


class CommentService:

    def __init__(self, db: AsyncSession, moderation: Optional[ModerationService] = None):
        self.db = db
        self.articles = ArticleService(db)
        self.capabilities = CapabilityService(db)
        self.moderation = moderation or ModerationService()

    async def _is_moderator(self, user: Optional[User]) -> bool:
        if user is None:
            return False
        return await self.capabilities.user_has_capability(user.id, MODERATE_CAPABILITY)

    async def _get_comment(self, comment_id: int) -> Comment:
        result = await self.db.execute(
            select(Comment).where(Comment.id == comment_id, Comment.deleted_at.is_(None))
        )
        comment = result.scalar_one_or_none()
        if not comment:
            raise NotFoundError("Comment not found")
        return comment

    async def _paginate(self, criteria: list, order_by: tuple, page: int, limit: int) -> Dict[str, Any]:
        total = (await self.db.execute(
            select(func.count(Comment.id)).where(*criteria)
        )).scalar_one()

        result = await self.db.execute(
            select(Comment)
            .where(*criteria)
            .order_by(*order_by)
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

    async def _attach_replies(self, comments: List[Comment]) -> None:
        """Set .replies on each comment: approved, live replies, oldest first."""
        by_id = {comment.id: comment for comment in comments}
        for comment in comments:
            comment.replies = []
        if not by_id:
            return

        result = await self.db.execute(
            select(Comment)
            .where(
                Comment.parent_id.in_(list(by_id)),
                Comment.status == CommentStatus.APPROVED.value,
                Comment.deleted_at.is_(None),
            )
            .order_by(Comment.created_at.asc(), Comment.id.asc())
        )
        for reply in result.scalars().all():
            by_id[reply.parent_id].replies.append(reply)

    async def _apply_moderation(self, comment: Comment) -> None:
        result = await self.moderation.moderate(comment.content)
        comment.moderation_flags = result.flags
        comment.profanity_detected = result.profanity_detected
        comment.moderation_status = (
            ModerationStatus.FLAGGED.value if result.flagged else ModerationStatus.APPROVED.value
        )
        await self.db.flush()

        if result.flagged:
            logger.info(f"Comment {comment.id} flagged for review: {', '.join(result.flags)}")

    # ----- Public -----

    async def create(
        self,
        article_id: int,
        content: str,
        user: User,
        parent_id: Optional[int] = None,
    ) -> Comment:
        """
        Post a comment or a reply on a published article.

        Raises:
            NotFoundError: Article (or parent comment) missing or not visible
            BadRequestError: Article not published, parent on another article,
                or a reply to a reply
        """
        article = await self.articles.get_visible_article(article_id, user)
        if article.status != ArticleStatus.PUBLISHED.value:
            raise BadRequestError("Cannot comment on unpublished articles")

        if parent_id is not None:
            parent = await self._get_comment(parent_id)
            if parent.article_id != article.id:
                raise BadRequestError("Parent comment belongs to a different article")
            if parent.parent_id is not None:
                raise BadRequestError("Replies cannot be nested")

        comment = Comment(
            article_id=article.id,
            user_id=user.id,
            parent_id=parent_id,
            content=content,
            status=CommentStatus.APPROVED.value,
            moderation_status=ModerationStatus.PENDING.value,
            moderation_flags=[],
            profanity_detected=False,
        )
        self.db.add(comment)
        await self.db.flush()

        await self._apply_moderation(comment)
        comment.replies = []
        return comment

    async def find_by_article(
        self,
        article_id: int,
        user: Optional[User] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Approved top-level comments, newest first, each with its replies."""
        article = await self.articles.get_visible_article(article_id, user)
        page_data = await self._paginate(
            [
                Comment.article_id == article.id,
                Comment.parent_id.is_(None),
                Comment.status == CommentStatus.APPROVED.value,
                Comment.deleted_at.is_(None),
            ],
            (Comment.created_at.desc(), Comment.id.desc()),
            page,
            limit,
        )
        await self._attach_replies(page_data["data"])
        return page_data

    async def find_by_id(self, comment_id: int, user: Optional[User] = None) -> Comment:
        comment = await self._get_comment(comment_id)
        await self.articles.get_visible_article(comment.article_id, user)

        hidden = comment.status != CommentStatus.APPROVED.value
        if hidden and (user is None or user.id != comment.user_id) and not await self._is_moderator(user):
            raise NotFoundError("Comment not found")

        await self._attach_replies([comment])
        return comment

    async def update(self, comment_id: int, content: str, user: User) -> Comment:
        """Edit your own comment. The new text goes back through moderation."""
        comment = await self._get_comment(comment_id)
        if comment.user_id != user.id:
            raise ForbiddenError("You can only edit your own comments")

        comment.content = content
        comment.moderation_status = ModerationStatus.PENDING.value
        await self.db.flush()

        await self._apply_moderation(comment)
        await self._attach_replies([comment])
        return comment

    async def remove(self, comment_id: int, user: User) -> None:
        comment = await self._get_comment(comment_id)
        if comment.user_id != user.id and not await self._is_moderator(user):
            raise ForbiddenError("You can only delete your own comments")

        comment.deleted_at = utcnow()
        await self.db.flush()
        logger.info(f"Comment {comment.id} deleted by user {user.id}")

    # ----- Moderation -----

    async def find_all(
        self,
        page: int = 1,
        limit: int = 20,
        article_id: Optional[int] = None,
        status: Optional[str] = None,
        moderation_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        criteria = [Comment.deleted_at.is_(None)]
        if article_id is not None:
            criteria.append(Comment.article_id == article_id)
        if status:
            criteria.append(Comment.status == status)
        if moderation_status:
            criteria.append(Comment.moderation_status == moderation_status)

        return await self._paginate(criteria, (Comment.created_at.desc(), Comment.id.desc()), page, limit)

    async def find_flagged(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Review queue: comments not yet cleared by moderation, oldest first."""
        return await self._paginate(
            [
                Comment.deleted_at.is_(None),
                Comment.moderation_status.in_(REVIEW_QUEUE_STATUSES),
            ],
            (Comment.created_at.asc(), Comment.id.asc()),
            page,
            limit,
        )

    async def _set_review(self, comment_id: int, status: CommentStatus, moderation: ModerationStatus, moderator: User) -> Comment:
        comment = await self._get_comment(comment_id)
        comment.status = status.value
        comment.moderation_status = moderation.value
        await self.db.flush()
        logger.info(f"Comment {comment.id} set to {status.value} by user {moderator.id}")
        return comment

    async def approve(self, comment_id: int, moderator: User) -> Comment:
        return await self._set_review(comment_id, CommentStatus.APPROVED, ModerationStatus.APPROVED, moderator)

    async def reject(self, comment_id: int, moderator: User) -> Comment:
        return await self._set_review(comment_id, CommentStatus.REJECTED, ModerationStatus.REJECTED, moderator)

    async def mark_as_spam(self, comment_id: int, moderator: User) -> Comment:
        return await self._set_review(comment_id, CommentStatus.SPAM, ModerationStatus.REJECTED, moderator)
