"""
Source registry: resolves the working set of feed sources.

Resolution order: active sources in the store → ``sources.json`` bootstrap
file → (optionally) bulk-upsert of the file into the store followed by a
re-read, so a run always works on the canonical merged records.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from app.core.logging import get_logger
from app.models.sources import Source, load_bootstrap_sources
from services.db_service import execute, fetch, fetchrow_with_conn, run_in_transaction
from services.seed_errors import NoSourcesAvailable, UpsertFailure

logger = get_logger()

LIST_ACTIVE_SOURCES_SQL = """
    SELECT id, name, api_endpoint, description, active,
           rate_limit_per_min, timeout_ms, tags, headers, last_fetched_at
    FROM sources
    WHERE active = TRUE
    ORDER BY name ASC
"""

# Absent fields arrive as NULL: inserts take the column default, updates keep
# the stored value. The WHERE clause turns an identical re-upsert into a no-op
# so RETURNING yields no row for "matched but unchanged".
UPSERT_SOURCE_SQL = """
    INSERT INTO sources (
        id, name, api_endpoint, description, active,
        rate_limit_per_min, timeout_ms, tags, headers, last_fetched_at,
        created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4, COALESCE($5::boolean, TRUE),
        COALESCE($6::integer, 60), COALESCE($7::integer, 10000),
        COALESCE($8::text[], ARRAY[]::text[]), CAST($9 AS JSONB), $10::timestamptz,
        NOW(), NOW()
    )
    ON CONFLICT (id) DO UPDATE
    SET name = EXCLUDED.name,
        api_endpoint = EXCLUDED.api_endpoint,
        description = COALESCE(EXCLUDED.description, sources.description),
        active = COALESCE($5::boolean, sources.active),
        rate_limit_per_min = COALESCE($6::integer, sources.rate_limit_per_min),
        timeout_ms = COALESCE($7::integer, sources.timeout_ms),
        tags = COALESCE($8::text[], sources.tags),
        headers = COALESCE(EXCLUDED.headers, sources.headers),
        last_fetched_at = COALESCE(EXCLUDED.last_fetched_at, sources.last_fetched_at),
        updated_at = NOW()
    WHERE (
        sources.name, sources.api_endpoint, sources.description, sources.active,
        sources.rate_limit_per_min, sources.timeout_ms, sources.tags,
        sources.headers, sources.last_fetched_at
    ) IS DISTINCT FROM (
        EXCLUDED.name, EXCLUDED.api_endpoint,
        COALESCE(EXCLUDED.description, sources.description),
        COALESCE($5::boolean, sources.active),
        COALESCE($6::integer, sources.rate_limit_per_min),
        COALESCE($7::integer, sources.timeout_ms),
        COALESCE($8::text[], sources.tags),
        COALESCE(EXCLUDED.headers, sources.headers),
        COALESCE(EXCLUDED.last_fetched_at, sources.last_fetched_at)
    )
    RETURNING (xmax = 0) AS inserted
"""

MARK_SOURCE_FETCHED_SQL = """
    UPDATE sources
    SET last_fetched_at = $2, updated_at = NOW()
    WHERE id = $1
"""


@dataclass(frozen=True)
class SourceResolution:
    sources: List[Source]
    bootstrapped: bool = False
    bootstrap_counts: Optional[Dict[str, int]] = None


async def list_active_sources() -> List[Source]:
    rows = await fetch(LIST_ACTIVE_SOURCES_SQL)
    return [Source.from_row(dict(row)) for row in rows]


def _upsert_params(source: Source) -> tuple:
    return (
        source.id,
        source.name,
        source.api_endpoint,
        source.description,
        source.active,
        source.rate_limit_per_min,
        source.timeout_ms,
        list(source.tags) if source.tags is not None else None,
        json.dumps(source.headers, ensure_ascii=False) if source.headers is not None else None,
        source.last_fetched_at,
    )


async def upsert_sources(sources: Sequence[Source]) -> Dict[str, int]:
    """
    Merge sources into the store by id, in one transaction.

    Returns ``matched`` (existing rows hit), ``upserted`` (new rows) and
    ``modified`` (existing rows that actually changed).
    """
    # Duplicate ids in one batch collapse to the last record.
    by_id: Dict[str, Source] = {}
    for source in sources:
        by_id[source.id] = source

    counts = {"matched": 0, "upserted": 0, "modified": 0}
    if not by_id:
        return counts

    try:
        async with run_in_transaction() as conn:
            for source in by_id.values():
                row = await fetchrow_with_conn(conn, UPSERT_SOURCE_SQL, *_upsert_params(source))
                if row is None:
                    counts["matched"] += 1
                elif row["inserted"]:
                    counts["upserted"] += 1
                else:
                    counts["matched"] += 1
                    counts["modified"] += 1
    except Exception as exc:
        raise UpsertFailure(f"failed to upsert {len(by_id)} source(s): {exc}") from exc

    logger.info("sources_upserted", total=len(by_id), **counts)
    return counts


async def mark_source_fetched(source_id: str, fetched_at: datetime) -> None:
    await execute(MARK_SOURCE_FETCHED_SQL, source_id, fetched_at)


async def resolve_sources(
    *,
    sources_file: Path,
    bootstrap: bool,
    dry_run: bool,
    store_available: bool = True,
) -> SourceResolution:
    sources: List[Source] = await list_active_sources() if store_available else []
    if sources:
        logger.info("sources_resolved", origin="store", total=len(sources))
        return SourceResolution(sources=sources)

    from_file = load_bootstrap_sources(sources_file)
    active_from_file = [s for s in from_file if s.is_active]
    if not (bootstrap and from_file):
        logger.info("sources_resolved", origin="bootstrap_file", total=len(active_from_file))
        return SourceResolution(sources=active_from_file)

    if not store_available:
        logger.warning("sources_bootstrap_skipped_no_store", total=len(from_file))
        return SourceResolution(sources=active_from_file)

    try:
        counts = await upsert_sources(from_file)
    except UpsertFailure as exc:
        logger.error("sources_bootstrap_failed", error=str(exc), total=len(from_file))
        return SourceResolution(sources=active_from_file)

    logger.info("sources_bootstrapped", total=len(from_file), **counts)
    if dry_run:
        return SourceResolution(sources=active_from_file, bootstrapped=True, bootstrap_counts=counts)

    sources = await list_active_sources()
    logger.info("sources_resolved", origin="store_after_bootstrap", total=len(sources))
    return SourceResolution(sources=sources, bootstrapped=True, bootstrap_counts=counts)


def filter_sources(sources: Sequence[Source], source_id: Optional[str]) -> List[Source]:
    selected = [s for s in sources if s.id == source_id] if source_id else list(sources)
    if not selected:
        if source_id:
            raise NoSourcesAvailable(f"No sources available for seeding (filter: {source_id})")
        raise NoSourcesAvailable("No sources available for seeding")
    return selected
