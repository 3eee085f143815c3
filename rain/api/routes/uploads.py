"""
Upload API routes

Accepts a multipart form with an `issue_code`, an optional `bundle_name` and
one or more `files` parts. Each request creates a new bundle.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile
from typing import List, Optional
import logging

from rain.db.database import get_db
from rain.api.schemas import ErrorResponse, UploadResponse
from rain.core.config import settings
from rain.services.ingest import UploadedFile, upload_bundle
from rain.services.sanitizer import DEFAULT_UPLOAD_NAME


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


def _form_text(value) -> Optional[str]:
    return value if isinstance(value, str) else None


async def read_file_parts(parts: list) -> List[UploadedFile]:
    """
    Turn the `files` form parts into UploadedFile objects.

    Parts sent without a filename arrive as plain strings; they are kept and
    named after the default upload name.
    """
    uploaded = []
    for part in parts:
        if isinstance(part, UploadFile):
            data = await part.read()
            await part.close()
            uploaded.append(UploadedFile(
                original_name=part.filename or DEFAULT_UPLOAD_NAME,
                data=data,
                content_type=part.content_type,
            ))
        else:
            uploaded.append(UploadedFile(
                original_name=DEFAULT_UPLOAD_NAME,
                data=str(part).encode("utf-8"),
            ))
    return uploaded


@router.post(
    "",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_upload(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Upload log files (and zip archives of them) as a new bundle of an issue"""
    form = await request.form()
    files = await read_file_parts(form.getlist("files"))

    summary = await upload_bundle(
        db,
        settings.data_root,
        _form_text(form.get("issue_code")),
        _form_text(form.get("bundle_name")),
        files,
    )

    logger.info(
        f"Bundle {summary.bundle_hash} uploaded for issue {summary.issue_code}: "
        f"{summary.file_count} files, {summary.total_bytes} bytes"
    )

    return UploadResponse(
        issue_code=summary.issue_code,
        bundle_hash=summary.bundle_hash,
        bundle_name=summary.bundle_name,
        file_count=summary.file_count,
        total_bytes=summary.total_bytes,
    )
