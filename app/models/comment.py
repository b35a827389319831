"""
Comment model

Comments are shown as soon as they are posted (status approved) and checked
afterwards; moderation_status tracks that review separately.
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


class CommentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SPAM = "spam"


class ModerationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    FLAGGED = "flagged"
    REJECTED = "rejected"


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # Replies are one level deep
    parent_id = Column(Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True)

    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=CommentStatus.APPROVED.value)
    moderation_status = Column(String(20), nullable=False, default=ModerationStatus.PENDING.value)
    moderation_flags = Column(JSON, nullable=False, default=list)
    profanity_detected = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    article = relationship("Article")
    user = relationship("User")

    __table_args__ = (
        Index('ix_comments_article_status', 'article_id', 'status'),
        Index('ix_comments_moderation_status', 'moderation_status'),
    )

    def __repr__(self):
        return f"<Comment(id={self.id}, article_id={self.article_id}, status='{self.status}')>"
