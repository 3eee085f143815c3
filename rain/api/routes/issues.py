"""
Issue API routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rain.db.database import get_db
from rain.api.schemas import ErrorResponse, IssueBundlesResponse
from rain.services.query import get_issue_bundles


router = APIRouter(tags=["Issues"])


@router.get(
    "/{issue_code}",
    response_model=IssueBundlesResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_issue(
    issue_code: str,
    db: AsyncSession = Depends(get_db),
):
    """List the bundles uploaded for an issue, newest first"""
    return await get_issue_bundles(db, issue_code)
