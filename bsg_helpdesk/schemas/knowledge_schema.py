from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict


class ArticleCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    content: str = Field(..., min_length=1)
    excerpt: Optional[str] = None
    category_id: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    search_keywords: Optional[str] = None


class ArticleUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    content: Optional[str] = Field(default=None, min_length=1)
    excerpt: Optional[str] = None
    category_id: Optional[int] = None
    tags: Optional[List[str]] = None
    search_keywords: Optional[str] = None


class ArticleResponse(BaseModel):
    id: int
    title: str
    content: str
    excerpt: Optional[str] = None
    category_id: Optional[int] = None
    tags: List[str] = []
    search_keywords: Optional[str] = None
    status: str
    author_id: int
    editor_id: Optional[int] = None
    view_count: int
    helpful_count: int
    not_helpful_count: int
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ArticleSearchResponse(BaseModel):
    articles: List[ArticleResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class FeedbackRequest(BaseModel):
    is_helpful: bool
    comment: Optional[str] = Field(default=None, max_length=2000)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=128)
    description: Optional[str] = None
    parent_id: Optional[int] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    sort_order: int = 0


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class CategoryNode(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[int] = None
    article_count: int
    children: List["CategoryNode"] = []


class CategoryWithArticles(BaseModel):
    category: CategoryResponse
    articles: List[ArticleResponse]


class LinkRequest(BaseModel):
    article_id: int
    ticket_id: int
    link_type: Literal["solution", "reference", "related"] = "related"


class LinkResponse(BaseModel):
    id: int
    article_id: int
    ticket_id: int
    link_type: str
    linked_by_user_id: int
    created_at: Optional[datetime] = None
    article: Optional[ArticleResponse] = None

    model_config = ConfigDict(from_attributes=True)


class SuggestRequest(BaseModel):
    title: str = ""
    description: str = ""
