from __future__ import annotations

from typing import List

from fastapi import APIRouter
from pydantic import BaseModel

from app.models.articles import SourceItem
from services.source_registry import list_active_sources

router = APIRouter(
    prefix="/sources",
    tags=["sources"],
)


class SourcesResponse(BaseModel):
    items: List[SourceItem]


@router.get("", response_model=SourcesResponse, response_model_by_alias=True)
async def list_sources() -> SourcesResponse:
    sources = await list_active_sources()
    return SourcesResponse(items=[SourceItem.model_validate(s.to_public_dict()) for s in sources])
