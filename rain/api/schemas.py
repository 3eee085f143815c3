"""
Pydantic schemas for API requests and responses
"""
from pydantic import BaseModel
from typing import Optional, List, Dict, Any

from rain.models import BundleStatus


# ============ File Tree Schemas ============

class FileNodeOut(BaseModel):
    id: str  # Numeric node id, or "root" for the synthetic bundle root
    name: str
    path: str
    is_dir: bool
    size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    status: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None


class FileNodeResponse(BaseModel):
    node: FileNodeOut
    children: List[FileNodeOut]


# ============ Log Search Schemas ============

class LogSearchHit(BaseModel):
    file_id: str
    path: str
    snippet: str
    timeline: Optional[str] = None
    offset: Optional[int] = None


class LogSearchResponse(BaseModel):
    total: int
    hits: List[LogSearchHit]


# ============ Issue & Upload Schemas ============

class UploadStatusWrapper(BaseModel):
    upload_status: BundleStatus


class BundleSummary(BaseModel):
    hash: str
    name: str
    status: UploadStatusWrapper

    @classmethod
    def from_bundle(cls, bundle) -> "BundleSummary":
        try:
            upload_status = BundleStatus(bundle.status)
        except ValueError:
            upload_status = BundleStatus.PENDING
        return cls(
            hash=bundle.hash,
            name=bundle.name,
            status=UploadStatusWrapper(upload_status=upload_status),
        )


class IssueBundlesResponse(BaseModel):
    name: str
    log_bundles: List[BundleSummary]


class UploadResponse(BaseModel):
    issue_code: str
    bundle_hash: str
    bundle_name: str
    file_count: int
    total_bytes: int


# ============ Error Schemas ============

class ErrorResponse(BaseModel):
    error: str
    message: str
