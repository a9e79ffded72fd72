from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.models.seed import ItemOutcome
from services.db_service import fetch, fetchrow

_ARTICLE_COLUMNS = """
    id, article_id, source_id, source_name, title, author, url, url_to_image,
    published_at_utc, collected_at_utc, description, content, language, country,
    content_hash
"""

# Hash inputs (source, url, published, title) are equal by construction on
# conflict, so only the remaining fields decide between "updated" and "skipped".
UPSERT_ARTICLE_SQL = """
    INSERT INTO articles (
        article_id, content_hash, source_id, source_name,
        title, author, url, url_to_image,
        published_at_utc, collected_at_utc,
        description, content, language, country,
        raw, ingest_date
    ) VALUES (
        $1, $2, $3, $4,
        $5, $6, $7, $8,
        $9, $10,
        $11, $12, $13, $14,
        CAST($15 AS JSONB), $16
    )
    ON CONFLICT (content_hash) DO UPDATE
    SET source_name = EXCLUDED.source_name,
        author = EXCLUDED.author,
        url_to_image = EXCLUDED.url_to_image,
        description = EXCLUDED.description,
        content = EXCLUDED.content,
        language = EXCLUDED.language,
        country = EXCLUDED.country,
        raw = EXCLUDED.raw,
        collected_at_utc = EXCLUDED.collected_at_utc,
        ingest_date = EXCLUDED.ingest_date
    WHERE (
        articles.source_name, articles.author, articles.url_to_image,
        articles.description, articles.content, articles.language,
        articles.country, articles.raw
    ) IS DISTINCT FROM (
        EXCLUDED.source_name, EXCLUDED.author, EXCLUDED.url_to_image,
        EXCLUDED.description, EXCLUDED.content, EXCLUDED.language,
        EXCLUDED.country, EXCLUDED.raw
    )
    RETURNING (xmax = 0) AS inserted
"""


async def upsert_article(doc: Dict[str, Any]) -> ItemOutcome:
    """Upsert by content hash; returns inserted, updated or skipped."""
    row = await fetchrow(
        UPSERT_ARTICLE_SQL,
        doc["article_id"],
        doc["content_hash"],
        doc["source_id"],
        doc["source_name"],
        doc["title"],
        doc["author"],
        doc["url"],
        doc["url_to_image"],
        doc["published_at_utc"],
        doc["collected_at_utc"],
        doc["description"],
        doc["content"],
        doc["language"],
        doc["country"],
        json.dumps(doc["raw"], ensure_ascii=False),
        doc["ingest_date"],
    )
    if row is None:
        return "skipped"
    return "inserted" if row["inserted"] else "updated"


def _filters(
    *,
    source_id: Optional[str],
    language: Optional[str],
    params: List[Any],
) -> List[str]:
    clauses: List[str] = []
    if source_id:
        params.append(source_id)
        clauses.append(f"source_id = ${len(params)}")
    if language:
        params.append(language)
        clauses.append(f"language = ${len(params)}")
    return clauses


def _where(clauses: List[str]) -> str:
    return f"WHERE {' AND '.join(clauses)}" if clauses else ""


async def list_latest(
    *,
    page: int,
    page_size: int,
    source_id: Optional[str] = None,
    language: Optional[str] = None,
    published_from: Optional[datetime] = None,
    published_to: Optional[datetime] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    params: List[Any] = []
    clauses = _filters(source_id=source_id, language=language, params=params)
    if published_from:
        params.append(published_from)
        clauses.append(f"published_at_utc >= ${len(params)}")
    if published_to:
        params.append(published_to)
        clauses.append(f"published_at_utc <= ${len(params)}")
    where = _where(clauses)

    count_row = await fetchrow(f"SELECT COUNT(*) AS total FROM articles {where}", *params)
    total = int(dict(count_row or {"total": 0}).get("total", 0))

    offset = (page - 1) * page_size
    rows = await fetch(
        f"""
        SELECT {_ARTICLE_COLUMNS}
        FROM articles
        {where}
        ORDER BY published_at_utc DESC NULLS LAST, collected_at_utc DESC
        LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
        """,
        *params,
        page_size,
        offset,
    )
    return [dict(row) for row in rows], total


async def search_articles(
    *,
    query: str,
    page: int,
    page_size: int,
    source_id: Optional[str] = None,
    language: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    normalized = (query or "").strip()
    if not normalized:
        return [], 0

    params: List[Any] = [normalized]
    clauses = ["search_tsv @@ q.tsq"]
    clauses.extend(_filters(source_id=source_id, language=language, params=params))
    where = _where(clauses)

    count_row = await fetchrow(
        f"""
        WITH q AS (SELECT websearch_to_tsquery('english', $1) AS tsq)
        SELECT COUNT(*) AS total
        FROM articles, q
        {where}
        """,
        *params,
    )
    total = int(dict(count_row or {"total": 0}).get("total", 0))

    offset = (page - 1) * page_size
    rows = await fetch(
        f"""
        WITH q AS (SELECT websearch_to_tsquery('english', $1) AS tsq)
        SELECT {_ARTICLE_COLUMNS}, ts_rank(search_tsv, q.tsq) AS score
        FROM articles, q
        {where}
        ORDER BY score DESC, published_at_utc DESC NULLS LAST
        LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
        """,
        *params,
        page_size,
        offset,
    )
    return [dict(row) for row in rows], total


async def get_article(article_ref: str) -> Optional[Dict[str, Any]]:
    """Look up by numeric row id or by article id (content hash)."""
    if article_ref.isdigit():
        row = await fetchrow(
            f"SELECT {_ARTICLE_COLUMNS}, raw, ingest_date FROM articles WHERE id = $1",
            int(article_ref),
        )
    else:
        row = await fetchrow(
            f"SELECT {_ARTICLE_COLUMNS}, raw, ingest_date FROM articles WHERE article_id = $1",
            article_ref,
        )
    if row is None:
        return None
    record = dict(row)
    if isinstance(record.get("raw"), str):
        record["raw"] = json.loads(record["raw"])
    return record
