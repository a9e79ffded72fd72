from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from app.config import get_settings
from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from app.models.seed import SeedOptions
from services.db_service import close_pool
from services.seed_service import run_seed

configure_logging(service_name="worker")
logger = get_logger().bind(worker="seed_bot")


def _positive_int(value: str) -> Optional[int]:
    """Invalid values fall back to the configured default."""
    try:
        number = int(value)
    except ValueError:
        number = 0
    if number < 1:
        logger.warning("seed_bot_invalid_concurrency", value=value)
        return None
    return number


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SeedBot: fetch news sources and upsert articles.")
    parser.add_argument("--source", dest="source_id", default=None, help="Only seed this source id.")
    parser.add_argument(
        "--dry",
        dest="dry_run",
        action="store_true",
        help="Fetch sources without writing to the database.",
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=None,
        help="Max sources processed at the same time (default: SEED_CONCURRENCY).",
    )
    parser.add_argument(
        "--bootstrap-sources",
        dest="bootstrap_sources",
        action="store_true",
        help="Upsert sources.json into the database when no active sources exist.",
    )
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> SeedOptions:
    return SeedOptions(concurrency=get_settings().SEED_CONCURRENCY).merged(
        dry_run=args.dry_run,
        source_id=args.source_id,
        concurrency=args.concurrency,
        bootstrap_sources=args.bootstrap_sources,
    )


async def run(options: SeedOptions) -> int:
    try:
        summary = await run_seed(options)
    except Exception as exc:
        logger.error("seed_bot_failed", error=str(exc), error_type=type(exc).__name__)
        return 1
    finally:
        await close_pool()

    totals = summary.totals
    logger.info(
        "seed_bot_finished",
        sources=len(summary.results),
        dry_run=options.dry_run,
        **totals.as_dict(),
    )
    return 1 if totals.failed > 0 else 0


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    with with_run_id():
        return await run(build_options(args))


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
