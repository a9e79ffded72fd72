"""
Seed pipeline: fetch every resolved source and upsert what it returns.

Sources are processed by a small worker pool sharing one queue and one HTTP
client. Each worker paces itself by the source's rate limit, fetches with
retries, then either ingests articles or, when the endpoint answers with a
``{"sources": [...]}`` document, merges the discovered sources into the
registry. Only configuration and registry resolution errors escape
``run_seed``; everything else is folded into per-source metrics.
"""

from __future__ import annotations

import asyncio
from asyncio import sleep
from datetime import datetime, timezone
from time import monotonic
from typing import Any, List, Optional

import httpx

from app.config import Settings, get_settings, require_database_url
from app.core.logging import get_logger
from app.models.seed import SeedMetrics, SeedOptions, SeedSummary, SourceResult
from app.models.sources import Source, normalize_source_records
from services.article_normalization import build_article_document, normalize_article
from services.article_store import upsert_article
from services.fetch_client import ArticlesPayload, SourcesPayload, fetch_with_retry
from services.seed_errors import FetchFailure
from services.source_registry import (
    filter_sources,
    mark_source_fetched,
    resolve_sources,
    upsert_sources,
)

logger = get_logger()


async def _ingest_articles(
    source: Source,
    items: List[Any],
    metrics: SeedMetrics,
    *,
    dry_run: bool,
    max_items: int,
) -> None:
    capped = items[:max_items]
    metrics.fetched = len(capped)
    for idx, raw in enumerate(capped):
        if dry_run:
            metrics.record("simulated")
            continue
        try:
            article = normalize_article(raw)
            doc = build_article_document(
                source_id=source.id,
                source_name=source.name,
                raw=raw,
                article=article,
            )
            metrics.record(await upsert_article(doc))
        except Exception as exc:
            metrics.failed += 1
            logger.warning(
                "seed_item_failed",
                source_id=source.id,
                index=idx,
                kind="article",
                error=str(exc),
            )


async def _ingest_discovered_sources(
    source: Source,
    entries: List[Any],
    metrics: SeedMetrics,
    *,
    dry_run: bool,
) -> None:
    discovered = normalize_source_records(entries, origin=f"payload:{source.id}")
    metrics.fetched = len(discovered)
    for entry in discovered:
        if dry_run:
            metrics.record("simulated")
            continue
        try:
            counts = await upsert_sources([entry])
        except Exception as exc:
            metrics.failed += 1
            logger.warning(
                "seed_item_failed",
                source_id=source.id,
                discovered_source_id=entry.id,
                kind="source",
                error=str(exc),
            )
            continue
        metrics.inserted += counts.get("upserted", 0)
        metrics.updated += counts.get("modified", 0)


async def process_source(
    client: httpx.AsyncClient,
    source: Source,
    *,
    options: SeedOptions,
    cfg: Settings,
) -> SourceResult:
    started = monotonic()
    metrics = SeedMetrics()
    http_status: Optional[int] = None
    error: Optional[str] = None

    await sleep(source.pacing_delay_ms / 1000)

    try:
        response = await fetch_with_retry(
            client,
            source.api_endpoint,
            timeout_ms=source.request_timeout_ms(cfg.REQUEST_TIMEOUT_MS),
            headers=source.headers,
        )
    except FetchFailure as exc:
        metrics.failed += 1
        http_status = exc.status_code
        error = str(exc)
        logger.error(
            "seed_fetch_failed",
            source_id=source.id,
            url=exc.url,
            status=exc.status_code,
            attempts=exc.attempts,
            error=error,
        )
    else:
        http_status = response.status_code
        payload = response.payload
        if isinstance(payload, SourcesPayload):
            await _ingest_discovered_sources(
                source, payload.entries, metrics, dry_run=options.dry_run
            )
        elif isinstance(payload, ArticlesPayload):
            await _ingest_articles(
                source,
                payload.items,
                metrics,
                dry_run=options.dry_run,
                max_items=cfg.SEED_MAX_PER_SOURCE,
            )

        if not options.dry_run:
            try:
                await mark_source_fetched(source.id, datetime.now(timezone.utc))
            except Exception as exc:
                logger.warning("seed_mark_fetched_failed", source_id=source.id, error=str(exc))

    result = SourceResult(
        source_id=source.id,
        source_name=source.name,
        duration_ms=int((monotonic() - started) * 1000),
        metrics=metrics,
        http_status=http_status,
        error=error,
    )
    logger.info(
        "seed_source_result",
        source_id=result.source_id,
        source_name=result.source_name,
        http_status=result.http_status,
        duration_ms=result.duration_ms,
        error=result.error,
        dry_run=options.dry_run,
        **metrics.as_dict(),
    )
    return result


async def _run_pool(
    client: httpx.AsyncClient,
    sources: List[Source],
    *,
    options: SeedOptions,
    cfg: Settings,
) -> List[SourceResult]:
    queue: "asyncio.Queue[int]" = asyncio.Queue()
    for idx in range(len(sources)):
        queue.put_nowait(idx)
    results: List[Optional[SourceResult]] = [None] * len(sources)

    async def worker() -> None:
        while True:
            try:
                idx = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            source = sources[idx]
            try:
                results[idx] = await process_source(client, source, options=options, cfg=cfg)
            except Exception as exc:
                logger.error("seed_source_crashed", source_id=source.id, error=str(exc))
                metrics = SeedMetrics(failed=1)
                results[idx] = SourceResult(
                    source_id=source.id,
                    source_name=source.name,
                    duration_ms=0,
                    metrics=metrics,
                    error=str(exc),
                )

    workers = max(1, min(options.concurrency, len(sources)))
    await asyncio.gather(*(worker() for _ in range(workers)))
    return [r for r in results if r is not None]


async def run_seed(
    options: Optional[SeedOptions] = None,
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    **overrides: Any,
) -> SeedSummary:
    """
    Run one seed pass and return per-source results plus totals.

    Raises ``ConfigurationError`` when the store is not configured outside
    dry-run or for a bootstrap, and ``NoSourcesAvailable`` when nothing is
    left to fetch.
    """
    cfg = settings or get_settings()
    opts = (options or SeedOptions(concurrency=cfg.SEED_CONCURRENCY)).merged(**overrides)

    store_available = bool(cfg.DATABASE_URL)
    if not opts.dry_run or opts.bootstrap_sources:
        require_database_url(cfg)
    elif not store_available:
        logger.warning("seed_store_unavailable", dry_run=True)

    logger.info(
        "seed_started",
        dry_run=opts.dry_run,
        source_id=opts.source_id,
        concurrency=opts.concurrency,
        bootstrap_sources=opts.bootstrap_sources,
    )

    resolution = await resolve_sources(
        sources_file=cfg.sources_file_path,
        bootstrap=opts.bootstrap_sources,
        dry_run=opts.dry_run,
        store_available=store_available,
    )
    if opts.dry_run and opts.bootstrap_sources and resolution.bootstrapped:
        logger.info("seed_bootstrap_only", **(resolution.bootstrap_counts or {}))
        return SeedSummary()

    sources = filter_sources(resolution.sources, opts.source_id)

    if client is not None:
        results = await _run_pool(client, sources, options=opts, cfg=cfg)
    else:
        async with httpx.AsyncClient(follow_redirects=True) as owned_client:
            results = await _run_pool(owned_client, sources, options=opts, cfg=cfg)

    summary = SeedSummary.from_results(results)
    logger.info(
        "seed_summary",
        sources=len(results),
        dry_run=opts.dry_run,
        **summary.totals.as_dict(),
    )
    return summary
