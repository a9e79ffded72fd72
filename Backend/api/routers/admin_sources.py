from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.core.logging import get_logger
from app.deps.admin_auth import verify_seed_api_key
from app.models.articles import SourcesUpsertResponse, UpsertCounts
from app.models.sources import Source, validate_source_record
from services.seed_errors import InvalidSourceEntry, UpsertFailure
from services.source_registry import upsert_sources

router = APIRouter(
    prefix="/admin/sources",
    tags=["admin-sources"],
    dependencies=[Depends(verify_seed_api_key)],
)

logger = get_logger()


@router.post("/upsert-many", response_model=SourcesUpsertResponse)
async def upsert_many_sources(
    payload: List[Any] = Body(...),
) -> SourcesUpsertResponse:
    valid: List[Source] = []
    errors: List[Dict[str, Any]] = []
    for idx, entry in enumerate(payload):
        try:
            valid.append(validate_source_record(entry))
        except InvalidSourceEntry as exc:
            errors.append({"index": idx, "reason": str(exc)})

    if errors:
        logger.info("admin_sources_rejected", rejected=len(errors), accepted=len(valid))

    try:
        counts = await upsert_sources(valid)
    except UpsertFailure as exc:
        logger.error("admin_sources_upsert_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upsert sources",
        ) from exc

    return SourcesUpsertResponse(
        ok=True,
        result=UpsertCounts(**counts),
        rejected=len(errors),
        errors=errors,
    )
