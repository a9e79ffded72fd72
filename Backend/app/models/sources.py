"""
Feed source model and record normalization.

Sources arrive from three places (the store, the ``sources.json`` bootstrap
file, and nested ``{"sources": [...]}`` payloads) in either camelCase or
snake_case. Everything is funnelled through ``normalize_source_record`` into
one frozen ``Source``.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.core.logging import get_logger
from app.utils.coerce import (
    first_present,
    to_bool,
    to_number,
    to_string_list,
    to_string_mapping,
    to_string_value,
    to_utc_datetime,
)
from services.seed_errors import ConfigurationError, InvalidSourceEntry

logger = get_logger()

DEFAULT_RATE_LIMIT_PER_MIN = 60
DEFAULT_TIMEOUT_MS = 10_000


@dataclass(frozen=True)
class Source:
    """
    Single feed endpoint.

    Optional attributes stay ``None`` when the incoming record did not carry
    them, so an upsert can keep the stored value instead of overwriting it.
    """

    id: str
    name: str
    api_endpoint: str
    active: Optional[bool] = None
    rate_limit_per_min: Optional[int] = None
    timeout_ms: Optional[int] = None
    tags: Optional[Tuple[str, ...]] = None
    headers: Optional[Dict[str, str]] = None
    last_fetched_at: Optional[datetime] = None
    description: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.active is not False

    @property
    def effective_rate_limit(self) -> int:
        rate = self.rate_limit_per_min
        if rate is None or rate <= 0:
            return DEFAULT_RATE_LIMIT_PER_MIN
        return rate

    @property
    def pacing_delay_ms(self) -> int:
        return math.ceil(60_000 / max(1, self.effective_rate_limit))

    def request_timeout_ms(self, default_ms: int) -> int:
        if self.timeout_ms is not None and self.timeout_ms > 0:
            return self.timeout_ms
        return default_ms

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "apiEndpoint": self.api_endpoint,
            "description": self.description,
            "active": self.is_active,
            "rateLimitPerMin": self.effective_rate_limit,
            "timeoutMs": self.timeout_ms if self.timeout_ms is not None else DEFAULT_TIMEOUT_MS,
            "tags": list(self.tags or ()),
            "lastFetchedAt": self.last_fetched_at,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Source":
        headers = row.get("headers")
        if isinstance(headers, str):
            headers = json.loads(headers)
        tags = row.get("tags")
        return cls(
            id=row["id"],
            name=row["name"],
            api_endpoint=row["api_endpoint"],
            active=row.get("active"),
            rate_limit_per_min=row.get("rate_limit_per_min"),
            timeout_ms=row.get("timeout_ms"),
            tags=tuple(tags) if tags is not None else None,
            headers=to_string_mapping(headers),
            last_fetched_at=row.get("last_fetched_at"),
            description=row.get("description"),
        )


def _first_number(entry: Mapping[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        number = to_number(entry.get(key))
        if number is not None:
            return number
    return None


def validate_source_record(entry: Any) -> Source:
    """Strict variant of ``normalize_source_record``; raises ``InvalidSourceEntry``."""
    if not isinstance(entry, Mapping):
        raise InvalidSourceEntry(
            f"source entry must be an object, got {type(entry).__name__}", entry
        )

    source_id = to_string_value(entry.get("id"))
    name = to_string_value(entry.get("name"))
    endpoint = to_string_value(entry.get("apiEndpoint")) or to_string_value(
        entry.get("api_endpoint")
    )
    missing = [
        field
        for field, value in (("id", source_id), ("name", name), ("api_endpoint", endpoint))
        if value is None
    ]
    if missing:
        raise InvalidSourceEntry(f"missing required fields: {', '.join(missing)}", entry)

    tags_raw = entry.get("tags")
    return Source(
        id=source_id,
        name=name,
        api_endpoint=endpoint,
        active=to_bool(entry.get("active")),
        rate_limit_per_min=_first_number(entry, "rateLimitPerMin", "rate_limit_per_min"),
        timeout_ms=_first_number(entry, "timeoutMs", "timeout_ms"),
        tags=tuple(to_string_list(tags_raw)) if tags_raw is not None else None,
        headers=to_string_mapping(entry.get("headers")),
        last_fetched_at=to_utc_datetime(first_present(entry, "lastFetchedAt", "last_fetched_at")),
        description=to_string_value(entry.get("description")),
    )


def normalize_source_record(entry: Any) -> Optional[Source]:
    """Canonical ``Source`` or ``None`` when id, name or endpoint cannot be resolved."""
    try:
        return validate_source_record(entry)
    except InvalidSourceEntry:
        return None


def normalize_source_records(entries: Iterable[Any], *, origin: str) -> List[Source]:
    """Normalize a batch, logging and dropping invalid entries."""
    result: List[Source] = []
    for idx, entry in enumerate(entries):
        try:
            result.append(validate_source_record(entry))
        except InvalidSourceEntry as exc:
            logger.warning(
                "source_entry_invalid",
                origin=origin,
                index=idx,
                reason=str(exc),
                source_id=entry.get("id") if isinstance(entry, Mapping) else None,
            )
    return result


def load_bootstrap_sources(path: Path) -> List[Source]:
    """
    Read the bootstrap file (a JSON array of source records).

    A missing file is not an error and yields an empty list; a file whose
    root is not an array is a configuration error.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("sources_file_not_found", path=str(path))
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must contain an array of sources")

    sources = normalize_source_records(data, origin="bootstrap_file")
    logger.info(
        "sources_file_loaded",
        path=str(path),
        total=len(data),
        valid=len(sources),
    )
    return sources
