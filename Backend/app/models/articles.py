from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArticleItem(_CamelModel):
    """Public article payload; the raw upstream record is only on the detail view."""

    id: int
    article_id: str
    source_id: str
    source_name: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    url: Optional[str] = None
    url_to_image: Optional[str] = None
    published_at_utc: Optional[datetime] = None
    collected_at_utc: datetime
    description: Optional[str] = None
    content: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None
    content_hash: str
    score: Optional[float] = Field(default=None, description="Full-text rank (search only).")


class ArticleDetail(ArticleItem):
    raw: Optional[Any] = None
    ingest_date: Optional[datetime] = None


class ArticlePage(_CamelModel):
    """Paginated response for /api/v1/articles/latest and /search."""

    page: int
    page_size: int
    total: int
    items: List[ArticleItem]


class SourceItem(_CamelModel):
    id: str
    name: str
    api_endpoint: str
    description: Optional[str] = None
    active: bool = True
    rate_limit_per_min: int = 60
    timeout_ms: int = 10_000
    tags: List[str] = Field(default_factory=list)
    last_fetched_at: Optional[datetime] = None


class UpsertCounts(BaseModel):
    matched: int = 0
    upserted: int = 0
    modified: int = 0


class SourcesUpsertResponse(BaseModel):
    ok: bool
    result: UpsertCounts
    rejected: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
