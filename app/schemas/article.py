"""
Article schemas
"""
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field

from app.schemas.order import PaginationMeta


class ArticleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    content: str = ""
    excerpt: Optional[str] = None
    status: Literal["draft", "published", "archived"] = "draft"
    visibility: Literal["public", "logged_in_only"] = "public"


class ArticleUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = None
    excerpt: Optional[str] = None
    status: Optional[Literal["draft", "published", "archived"]] = None
    visibility: Optional[Literal["public", "logged_in_only"]] = None


class ArticleResponse(BaseModel):
    id: int
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    status: str
    visibility: str
    author_id: Optional[int] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ArticleList(BaseModel):
    data: List[ArticleResponse]
    meta: PaginationMeta
