"""
Comment routes

Authors edit and delete their own comments. Everything else here is the
moderation surface and needs comment.moderate.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_optional_user
from app.core.capabilities import require_capability
from app.core.database import get_db
from app.models.user import User
from app.schemas.comment import (
    CommentModerationList,
    CommentModerationResponse,
    CommentResponse,
    CommentStatusFilter,
    CommentUpdate,
    ModerationStatusFilter,
)
from app.services.comment_service import CommentService

router = APIRouter()


@router.get("", response_model=CommentModerationList)
async def list_comments(
    article_id: Optional[int] = None,
    comment_status: Optional[CommentStatusFilter] = Query(None, alias="status"),
    moderation_status: Optional[ModerationStatusFilter] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_capability("comment.moderate")),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).find_all(
        page=page,
        limit=limit,
        article_id=article_id,
        status=comment_status,
        moderation_status=moderation_status,
    )


@router.get("/moderation/queue", response_model=CommentModerationList)
async def moderation_queue(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_capability("comment.moderate")),
    db: AsyncSession = Depends(get_db)
):
    """Comments still pending review or flagged by moderation."""
    return await CommentService(db).find_flagged(page=page, limit=limit)


@router.get("/{comment_id}", response_model=CommentResponse)
async def get_comment(
    comment_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).find_by_id(comment_id, current_user)


@router.patch("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    comment_data: CommentUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).update(comment_id, comment_data.content, current_user)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Authors delete their own comments; moderators delete any."""
    await CommentService(db).remove(comment_id, current_user)


@router.post("/{comment_id}/approve", response_model=CommentModerationResponse)
async def approve_comment(
    comment_id: int,
    current_user: User = Depends(require_capability("comment.moderate")),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).approve(comment_id, current_user)


@router.post("/{comment_id}/reject", response_model=CommentModerationResponse)
async def reject_comment(
    comment_id: int,
    current_user: User = Depends(require_capability("comment.moderate")),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).reject(comment_id, current_user)


@router.post("/{comment_id}/spam", response_model=CommentModerationResponse)
async def mark_comment_spam(
    comment_id: int,
    current_user: User = Depends(require_capability("comment.moderate")),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).mark_as_spam(comment_id, current_user)
