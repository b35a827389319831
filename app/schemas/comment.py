"""
Comment schemas
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from app.schemas.order import PaginationMeta


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    parent_id: Optional[int] = None


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class ReplyResponse(BaseModel):
    id: int
    article_id: int
    user_id: int
    parent_id: Optional[int] = None
    content: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CommentResponse(ReplyResponse):
    replies: List[ReplyResponse] = []


class CommentModerationResponse(ReplyResponse):
    """Comment as seen by moderators."""
    moderation_status: str
    moderation_flags: List[str] = []
    profanity_detected: bool = False
    deleted_at: Optional[datetime] = None


class CommentList(BaseModel):
    data: List[CommentResponse]
    meta: PaginationMeta


class CommentModerationList(BaseModel):
    data: List[CommentModerationResponse]
    meta: PaginationMeta


CommentStatusFilter = Literal["pending", "approved", "rejected", "spam"]
ModerationStatusFilter = Literal["pending", "approved", "flagged", "rejected"]
