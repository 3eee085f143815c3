"""
Log search API routes
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from rain.db.database import get_db
from rain.api.schemas import ErrorResponse, LogSearchResponse
from rain.services.query import search_logs


router = APIRouter(tags=["Logs"])


@router.get(
    "/{bundle_hash}/search",
    response_model=LogSearchResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def search_bundle_logs(
    bundle_hash: str,
    q: str = Query("", description="Case-insensitive substring to look for"),
    timeline: Optional[str] = Query(None, description="Restrict hits to one timeline"),
    db: AsyncSession = Depends(get_db),
):
    """Search the indexed log lines of a bundle"""
    # An empty q is rejected by the service with a 400, not by validation
    return await search_logs(db, bundle_hash, q, timeline=timeline)
