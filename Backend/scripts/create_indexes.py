#!/usr/bin/env python3
"""
Create the sources/articles tables and their indexes.

Runs Infra/sql/001_news_seed_schema.sql; every statement is IF NOT EXISTS so
the script can be re-run.
"""

import asyncio
import sys
from pathlib import Path

# Path setup
THIS_FILE = Path(__file__).resolve()
SCRIPTS_DIR = THIS_FILE.parent
BACKEND_DIR = SCRIPTS_DIR.parent
REPO_ROOT = BACKEND_DIR.parent

if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from services.db_service import close_pool, execute, init_db_pool
from app.core.logging import configure_logging, get_logger

configure_logging(service_name="script")
logger = get_logger()

SCHEMA_FILE = REPO_ROOT / "Infra" / "sql" / "001_news_seed_schema.sql"


async def apply_schema() -> int:
    if not SCHEMA_FILE.exists():
        logger.error("schema_file_not_found", path=str(SCHEMA_FILE))
        return 1

    sql_content = SCHEMA_FILE.read_text(encoding="utf-8")
    await init_db_pool()
    try:
        await execute(sql_content)
    except Exception as e:
        logger.exception("schema_apply_failed", error=str(e))
        return 1
    finally:
        await close_pool()

    logger.info("schema_applied", path=SCHEMA_FILE.name, size=len(sql_content))
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(apply_schema()))


if __name__ == "__main__":
    main()
