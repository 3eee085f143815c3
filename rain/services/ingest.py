"""Bundle ingestion.

Orchestrates: upload → disk write → node record → text index / archive
expansion → extracted sub-tree.

Files of one upload are processed strictly one after another; nothing here
takes a lock, so uploads into different bundles interleave freely. Every
artifact is written to disk before its node is created, so an interrupted
upload leaves at worst unreferenced files behind.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import aiofiles
from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from rain.core.exceptions import BadRequestError, StorageIOError
from rain.core.logging import get_logger, log_duration
from rain.models import (
    Bundle,
    BundleStatus,
    ExtractedDirMeta,
    FileNode,
    Issue,
    UploadedFileMeta,
    generate_bundle_hash,
)
from rain.services.archive import expand_archive
from rain.services.sanitizer import sanitize_filename
from rain.services.text_indexer import is_text_like, index_text_file
from rain.services.tree_builder import build_tree, create_file_node

logger = logging.getLogger(__name__)
event_logger = get_logger(__name__)

EXTRACTED_SUFFIX = "_extracted"


@dataclass
class BundleContext:
    """Where one bundle lives, in the store and on disk"""
    bundle_id: str
    bundle_hash: str
    data_root: Path

    @property
    def bundle_dir(self) -> Path:
        return self.data_root / self.bundle_hash


@dataclass
class UploadedFile:
    """One file part of an upload request"""
    original_name: str
    data: bytes
    content_type: Optional[str] = None
    sanitized_name: str = ""

    def __post_init__(self):
        if not self.sanitized_name:
            self.sanitized_name = sanitize_filename(self.original_name)


@dataclass
class FileIngestResult:
    """Summary of ingesting one uploaded file"""
    file_id: int
    segments: int = 0
    extracted_files: int = 0
    extracted_dirs: int = 0


@dataclass
class UploadSummary:
    issue_code: str
    bundle_hash: str
    bundle_name: str
    file_count: int
    total_bytes: int
    results: List[FileIngestResult] = field(default_factory=list)


def is_zip_file(name: str) -> bool:
    return Path(name).suffix.lower() == ".zip"


def _io_error(action: str, path: Path, error: OSError) -> StorageIOError:
    logger.error(f"Failed to {action} {path}: {error}")
    return StorageIOError(f"failed to {action}")


# ── Issues and bundles ───────────────────────────────────────────────────

async def ensure_issue(db: AsyncSession, code: str, name: Optional[str] = None) -> None:
    """Create the issue if it does not exist yet; never overwrite it"""
    dialect = db.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

    stmt = insert(Issue).values(code=code, name=name or code).on_conflict_do_nothing(
        index_elements=[Issue.code]
    )
    await db.execute(stmt)


async def create_bundle(
    db: AsyncSession,
    issue_code: str,
    bundle_hash: str,
    name: str,
    total_size: int,
    status: BundleStatus = BundleStatus.PROCESSING,
) -> str:
    """Insert a bundle record and return its internal id"""
    bundle = Bundle(
        issue_code=issue_code,
        hash=bundle_hash,
        name=name,
        size_bytes=total_size,
        status=status.value,
    )
    db.add(bundle)
    await db.flush()
    return bundle.id


async def set_bundle_status(db: AsyncSession, bundle_id: str, status: BundleStatus) -> None:
    await db.execute(
        update(Bundle).where(Bundle.id == bundle_id).values(status=status.value)
    )


# ── Per-file ingestion ───────────────────────────────────────────────────

async def ingest_file(
    db: AsyncSession,
    context: BundleContext,
    sanitized_name: str,
    original_name: str,
    content_type: Optional[str],
    data: bytes,
) -> FileIngestResult:
    """
    Ingest one uploaded file into an existing bundle.

    Steps:
        1. ensure <data-root>/<hash>/ exists
        2. write the bytes to <data-root>/<hash>/<sanitized_name>
        3. create the root-level FileNode
        4. index it when text-like
        5. for .zip files, expand into <sanitized_name>_extracted/, create
           that directory as a child of the zip node and mirror its tree

    Any failure aborts the remaining steps and propagates.

    Raises:
        StorageIOError: Filesystem failure
        BadRequestError: The archive could not be read
    """
    bundle_dir = context.bundle_dir
    try:
        os.makedirs(bundle_dir, exist_ok=True)
    except OSError as e:
        raise _io_error("create bundle directory", bundle_dir, e) from e

    disk_path = bundle_dir / sanitized_name
    try:
        async with aiofiles.open(disk_path, "wb") as f:
            await f.write(data)
    except OSError as e:
        raise _io_error("write uploaded file", disk_path, e) from e

    file_node = await create_file_node(
        db,
        bundle_id=context.bundle_id,
        parent=None,
        name=sanitized_name,
        path=f"/{context.bundle_hash}/{sanitized_name}",
        is_dir=False,
        size_bytes=len(data),
        mime_type=content_type,
        meta=UploadedFileMeta(
            original_name=original_name,
            storage_path=f"{context.bundle_hash}/{sanitized_name}",
        ),
    )
    result = FileIngestResult(file_id=file_node.id)

    if is_text_like(sanitized_name, content_type):
        result.segments += await index_text_file(db, context.bundle_id, file_node.id, disk_path)

    if is_zip_file(sanitized_name):
        await _ingest_archive(db, context, file_node, sanitized_name, disk_path, result)

    return result


async def _ingest_archive(
    db: AsyncSession,
    context: BundleContext,
    zip_node: FileNode,
    sanitized_name: str,
    disk_path: Path,
    result: FileIngestResult,
) -> None:
    """Expand a zip next to itself and hang its contents under the zip node"""
    extracted_name = f"{sanitized_name}{EXTRACTED_SUFFIX}"
    extracted_dir = context.bundle_dir / extracted_name
    try:
        os.makedirs(extracted_dir, exist_ok=True)
    except OSError as e:
        raise _io_error("create extraction directory", extracted_dir, e) from e

    await expand_archive(disk_path, extracted_dir)

    relative_root = f"{context.bundle_hash}/{extracted_name}"
    dir_node = await create_file_node(
        db,
        bundle_id=context.bundle_id,
        parent=zip_node,
        name=extracted_name,
        path=f"/{relative_root}",
        is_dir=True,
        meta=ExtractedDirMeta(storage_path=relative_root, source=sanitized_name),
    )

    tree = await build_tree(
        db,
        context.bundle_id,
        dir_node,
        extracted_dir,
        relative_root,
        context.data_root,
    )
    result.extracted_dirs += tree.directories + 1
    result.extracted_files += tree.files
    result.segments += tree.segments


# ── Whole uploads ────────────────────────────────────────────────────────

async def upload_bundle(
    db: AsyncSession,
    data_root: Path,
    issue_code: Optional[str],
    bundle_name: Optional[str],
    files: List[UploadedFile],
) -> UploadSummary:
    """
    Create a bundle for an issue and ingest the uploaded files into it.

    The bundle is committed before any file is processed and starts out as
    PROCESSING. Files are ingested in submission order, each committed on
    success. The bundle ends READY, or FAILED when any file fails, in which
    case the error propagates and nothing is reported as partially done.

    Raises:
        BadRequestError: Missing issue code, no files, or a bad archive
        StorageIOError: Filesystem failure while ingesting
    """
    issue_code = (issue_code or "").strip()
    if not issue_code:
        raise BadRequestError("issue_code is required")

    files = [f for f in files if f.data]
    if not files:
        raise BadRequestError("no files provided")

    bundle_hash = generate_bundle_hash()
    bundle_name = (bundle_name or "").strip() or files[0].original_name
    total_bytes = sum(len(f.data) for f in files)

    await ensure_issue(db, issue_code)
    bundle_id = await create_bundle(db, issue_code, bundle_hash, bundle_name, total_bytes)
    await db.commit()

    context = BundleContext(bundle_id=bundle_id, bundle_hash=bundle_hash, data_root=Path(data_root))
    summary = UploadSummary(
        issue_code=issue_code,
        bundle_hash=bundle_hash,
        bundle_name=bundle_name,
        file_count=len(files),
        total_bytes=total_bytes,
    )
    upload_logger = event_logger.with_fields(bundle_hash=bundle_hash, issue_code=issue_code)

    try:
        with log_duration("bundle_upload", upload_logger, file_count=len(files), total_bytes=total_bytes) as timing:
            for uploaded in files:
                file_result = await ingest_file(
                    db,
                    context,
                    uploaded.sanitized_name,
                    uploaded.original_name,
                    uploaded.content_type,
                    uploaded.data,
                )
                await db.commit()
                summary.results.append(file_result)
            timing["segments"] = sum(r.segments for r in summary.results)
    except Exception:
        await db.rollback()
        await set_bundle_status(db, bundle_id, BundleStatus.FAILED)
        await db.commit()
        raise

    await set_bundle_status(db, bundle_id, BundleStatus.READY)
    await db.commit()
    return summary
