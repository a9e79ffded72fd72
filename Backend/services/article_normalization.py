from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from app.utils.coerce import first_present, to_string_value, to_utc_datetime
from services.seed_errors import ItemProcessingFailure

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class NormalizedArticle:
    title: Optional[str]
    url: Optional[str]
    published_at_utc: Optional[datetime]
    author: Optional[str]
    url_to_image: Optional[str]
    description: Optional[str]
    content: Optional[str]
    language: str
    country: Optional[str]


def _jsonify_entry(entry: Any) -> Any:
    try:
        return json.loads(json.dumps(entry, default=str))
    except (TypeError, ValueError):
        return str(entry)


def normalize_article(raw: Any) -> NormalizedArticle:
    """
    Map a remote article record onto the canonical fields.

    Each field walks an ordered fallback chain (``title`` then ``headline``,
    ``url`` then ``link`` ...). String-or-list values collapse to the first
    non-blank string. Unparsable dates become ``None``.
    """
    if not isinstance(raw, Mapping):
        raise ItemProcessingFailure(
            f"article record must be an object, got {type(raw).__name__}"
        )

    published_raw = first_present(raw, "publishedAt", "pubDate", "published_at")
    language = to_string_value(first_present(raw, "language", "lang"))

    return NormalizedArticle(
        title=to_string_value(raw.get("title")) or to_string_value(raw.get("headline")),
        url=to_string_value(first_present(raw, "url", "link")),
        published_at_utc=to_utc_datetime(published_raw),
        author=to_string_value(raw.get("author")) or to_string_value(raw.get("creator")),
        url_to_image=to_string_value(first_present(raw, "urlToImage", "image")),
        description=(
            to_string_value(raw.get("description")) or to_string_value(raw.get("summary"))
        ),
        content=to_string_value(raw.get("content")) or to_string_value(raw.get("body")),
        language=language or DEFAULT_LANGUAGE,
        country=to_string_value(raw.get("country")),
    )


def to_iso_millis(value: Optional[datetime]) -> str:
    """``2024-01-01T00:00:00.000Z`` form, or ``""`` when there is no date."""
    if value is None:
        return ""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def content_hash(
    source_id: Optional[str],
    url: Optional[str],
    published_iso: Optional[str],
    title: Optional[str],
) -> str:
    payload = "|".join(part or "" for part in (source_id, url, published_iso, title))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def article_hash(source_id: str, article: NormalizedArticle) -> str:
    return content_hash(
        source_id,
        article.url,
        to_iso_millis(article.published_at_utc),
        article.title,
    )


def ingest_date(now: datetime) -> datetime:
    """UTC midnight of the collection day."""
    utc = now.astimezone(timezone.utc)
    return utc.replace(hour=0, minute=0, second=0, microsecond=0)


def build_article_document(
    *,
    source_id: str,
    source_name: str,
    raw: Any,
    article: NormalizedArticle,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    collected_at = now or datetime.now(timezone.utc)
    digest = article_hash(source_id, article)
    return {
        "article_id": digest,
        "content_hash": digest,
        "source_id": source_id,
        "source_name": source_name,
        "title": article.title,
        "author": article.author,
        "url": article.url,
        "url_to_image": article.url_to_image,
        "published_at_utc": article.published_at_utc,
        "collected_at_utc": collected_at,
        "description": article.description,
        "content": article.content,
        "language": article.language,
        "country": article.country,
        "raw": _jsonify_entry(raw),
        "ingest_date": ingest_date(collected_at),
    }
