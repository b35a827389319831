"""
Article model
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from app.core.database import Base


class ArticleStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ArticleVisibility(str, enum.Enum):
    """Who may read a published article."""
    PUBLIC = "public"
    LOGGED_IN_ONLY = "logged_in_only"


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    content = Column(Text, nullable=False, default="")
    excerpt = Column(Text)
    status = Column(String(20), nullable=False, default=ArticleStatus.DRAFT.value)
    visibility = Column(String(20), nullable=False, default=ArticleVisibility.PUBLIC.value)

    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    author = relationship("User")

    __table_args__ = (
        Index('ix_articles_status_visibility', 'status', 'visibility'),
    )

    def __repr__(self):
        return f"<Article(id={self.id}, slug='{self.slug}', status='{self.status}')>"
