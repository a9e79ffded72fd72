from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Path, Query, status

from app.core.logging import get_logger
from app.models.articles import ArticleDetail, ArticleItem, ArticlePage
from services.article_store import get_article, list_latest, search_articles

router = APIRouter(
    prefix="/articles",
    tags=["articles"],
)

logger = get_logger()

MIN_ARTICLE_ID_LENGTH = 8


@router.get("/latest", response_model=ArticlePage, response_model_by_alias=True)
async def latest_articles(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    source_id: Optional[str] = Query(None, alias="sourceId"),
    language: Optional[str] = Query(None),
    published_from: Optional[datetime] = Query(None, alias="from"),
    published_to: Optional[datetime] = Query(None, alias="to"),
) -> ArticlePage:
    if published_from and published_to and published_from > published_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'from' must not be after 'to'",
        )

    rows, total = await list_latest(
        page=page,
        page_size=page_size,
        source_id=source_id,
        language=language,
        published_from=published_from,
        published_to=published_to,
    )
    return ArticlePage(
        page=page,
        page_size=page_size,
        total=total,
        items=[ArticleItem.model_validate(row) for row in rows],
    )


@router.get("/search", response_model=ArticlePage, response_model_by_alias=True)
async def search(
    q: str = Query(..., min_length=1, max_length=200),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50, alias="pageSize"),
    source_id: Optional[str] = Query(None, alias="sourceId"),
    language: Optional[str] = Query(None),
) -> ArticlePage:
    rows, total = await search_articles(
        query=q,
        page=page,
        page_size=page_size,
        source_id=source_id,
        language=language,
    )
    return ArticlePage(
        page=page,
        page_size=page_size,
        total=total,
        items=[ArticleItem.model_validate(row) for row in rows],
    )


@router.get("/{article_ref}", response_model=ArticleDetail, response_model_by_alias=True)
async def article_detail(
    article_ref: str = Path(..., min_length=1),
) -> ArticleDetail:
    ref = article_ref.strip()
    if not ref.isdigit() and len(ref) < MIN_ARTICLE_ID_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid article id")

    row = await get_article(ref)
    if row is None:
        logger.info("article_not_found", article_ref=ref)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="article not found")
    return ArticleDetail.model_validate(row)
