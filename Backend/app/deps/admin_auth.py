from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException

from app.config import get_settings
from app.core.logging import logger

__all__ = ["verify_seed_api_key"]


async def verify_seed_api_key(
    x_api_key: Optional[str] = Header(None, alias="x-api-key"),
) -> None:
    """
    Shared-secret check for administrative writes.
    """
    expected = get_settings().SEED_API_KEY
    if not x_api_key:
        logger.info("auth_api_key_missing")
        raise HTTPException(status_code=401, detail="missing api key")

    if not secrets.compare_digest(x_api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.info("auth_api_key_invalid", key_len=len(x_api_key))
        raise HTTPException(status_code=401, detail="invalid api key")
