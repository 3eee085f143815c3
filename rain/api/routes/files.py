"""
File tree API routes

Nodes are addressed by their numeric id, or by "root" for the bundle itself.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rain.db.database import get_db
from rain.api.schemas import ErrorResponse, FileNodeResponse
from rain.services.query import get_node, parse_node_ref


router = APIRouter(tags=["Files"])


@router.get(
    "/{bundle_hash}/files/{file_id}",
    response_model=FileNodeResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_file_node(
    bundle_hash: str,
    file_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a node of a bundle's tree together with its direct children"""
    ref = parse_node_ref(file_id)
    return await get_node(db, bundle_hash, ref)
