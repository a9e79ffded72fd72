#!/usr/bin/env python3
"""
Upsert sources.json into the sources table without fetching anything.
"""

import asyncio
import sys
from pathlib import Path

# Path setup
THIS_FILE = Path(__file__).resolve()
SCRIPTS_DIR = THIS_FILE.parent
BACKEND_DIR = SCRIPTS_DIR.parent

if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from services.db_service import close_pool
from services.seed_service import run_seed

configure_logging(service_name="script")
logger = get_logger()


async def bootstrap() -> int:
    with with_run_id():
        try:
            await run_seed(dry_run=True, bootstrap_sources=True)
        except Exception as e:
            logger.error("bootstrap_sources_failed", error=str(e))
            return 1
        finally:
            await close_pool()
    logger.info("bootstrap_sources_done")
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(bootstrap()))


if __name__ == "__main__":
    main()
