"""
Tree and log search queries.

Node lookups take a NodeRef: RootRef stands for the bundle itself and is
synthesized here, StoredRef points at a persisted FileNode. The storage
layer only ever sees real node ids.
"""
import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rain.api.schemas import (
    BundleSummary,
    FileNodeOut,
    FileNodeResponse,
    IssueBundlesResponse,
    LogSearchHit,
    LogSearchResponse,
)
from rain.core.config import settings
from rain.core.exceptions import BadRequestError, NotFoundError
from rain.core.logging import log_search_request
from rain.models import Bundle, FileNode, Issue, LogSegment, dump_node_meta, parse_node_meta

logger = logging.getLogger(__name__)

ROOT_SENTINEL = "root"
ELLIPSIS = "..."


@dataclass(frozen=True)
class RootRef:
    """The synthetic root of a bundle's tree"""


@dataclass(frozen=True)
class StoredRef:
    id: int


NodeRef = Union[RootRef, StoredRef]


def parse_node_ref(raw: str) -> NodeRef:
    """
    Parse a node identifier from a request path.

    Raises:
        BadRequestError: If it is neither "root" nor an integer id
    """
    value = raw.strip()
    if value.lower() == ROOT_SENTINEL:
        return RootRef()
    try:
        return StoredRef(int(value))
    except ValueError:
        raise BadRequestError(f"invalid file id: {raw}")


async def load_bundle(db: AsyncSession, bundle_hash: str) -> Bundle:
    """Fetch a bundle by its external hash or raise NotFoundError"""
    result = await db.execute(select(Bundle).where(Bundle.hash == bundle_hash))
    bundle = result.scalar_one_or_none()
    if not bundle:
        raise NotFoundError("bundle", bundle_hash)
    return bundle


def to_node_out(node: FileNode) -> FileNodeOut:
    return FileNodeOut(
        id=str(node.id),
        name=node.name,
        path=node.path,
        is_dir=node.is_dir,
        size_bytes=node.size_bytes,
        mime_type=node.mime_type,
        status=node.status,
        meta=dump_node_meta(parse_node_meta(node.meta)),
    )


def root_node_out(bundle: Bundle) -> FileNodeOut:
    return FileNodeOut(
        id=ROOT_SENTINEL,
        name=f"{bundle.hash}_root",
        path=f"/{bundle.hash}",
        is_dir=True,
        size_bytes=None,
        mime_type=None,
        status=bundle.status,
        meta={"bundle_hash": bundle.hash, "bundle_name": bundle.name},
    )


async def fetch_children(db: AsyncSession, bundle_id: str, parent_id: Optional[int]) -> List[FileNode]:
    """Direct children of a node (or the bundle root), directories first"""
    query = select(FileNode).where(FileNode.bundle_id == bundle_id)
    if parent_id is None:
        query = query.where(FileNode.parent_id.is_(None))
    else:
        query = query.where(FileNode.parent_id == parent_id)
    query = query.order_by(FileNode.is_dir.desc(), FileNode.name.asc())

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_node(db: AsyncSession, bundle_hash: str, ref: NodeRef) -> FileNodeResponse:
    """
    Return a node and its direct children.

    Raises:
        NotFoundError: Unknown bundle, or a stored id outside this bundle
    """
    bundle = await load_bundle(db, bundle_hash)

    if isinstance(ref, RootRef):
        node = root_node_out(bundle)
        parent_id = None
    else:
        result = await db.execute(
            select(FileNode).where(FileNode.bundle_id == bundle.id, FileNode.id == ref.id)
        )
        record = result.scalar_one_or_none()
        if not record:
            raise NotFoundError("file", str(ref.id))
        node = to_node_out(record)
        parent_id = record.id

    children = await fetch_children(db, bundle.id, parent_id)
    return FileNodeResponse(node=node, children=[to_node_out(child) for child in children])


def build_snippet(
    content: str,
    term: str,
    context: int = settings.SNIPPET_CONTEXT_CHARS,
    fallback: int = settings.SNIPPET_FALLBACK_CHARS,
) -> str:
    """
    Cut a window of `context` characters around the first match of `term`.

    Ellipses mark the sides where content was cut off. Falls back to the
    first `fallback` characters when the term does not occur.
    """
    if not term:
        return content

    match = re.search(re.escape(term), content, re.IGNORECASE)
    if not match:
        return content[:fallback]

    start = max(match.start() - context, 0)
    end = min(match.end() + context, len(content))

    snippet = content[start:end]
    if start > 0:
        snippet = ELLIPSIS + snippet
    if end < len(content):
        snippet = snippet + ELLIPSIS
    return snippet


async def search_logs(
    db: AsyncSession,
    bundle_hash: str,
    query: str,
    timeline: Optional[str] = None,
    limit: int = settings.MAX_SEARCH_RESULTS,
) -> LogSearchResponse:
    """
    Case-insensitive substring search over a bundle's log segments.

    Returns the total number of matches and at most `limit` hits ordered
    by offset (segments without one first), then insertion order.

    Raises:
        BadRequestError: Empty query
        NotFoundError: Unknown bundle
    """
    term = (query or "").strip()
    if not term:
        raise BadRequestError("query parameter q is required")

    start = time.perf_counter()
    bundle = await load_bundle(db, bundle_hash)
    timeline = (timeline or "").strip() or None

    conditions = [
        LogSegment.bundle_id == bundle.id,
        LogSegment.search_text.contains(term.lower(), autoescape=True),
    ]
    if timeline:
        conditions.append(LogSegment.timeline == timeline)

    total = await db.scalar(select(func.count(LogSegment.id)).where(*conditions))

    rows = await db.execute(
        select(
            LogSegment.file_id,
            FileNode.path,
            LogSegment.timeline,
            LogSegment.offset,
            LogSegment.content,
        )
        .join(FileNode, FileNode.id == LogSegment.file_id)
        .where(*conditions)
        .order_by(LogSegment.offset.asc().nulls_first(), LogSegment.id.asc())
        .limit(limit)
    )

    hits = [
        LogSearchHit(
            file_id=str(row.file_id),
            path=row.path,
            snippet=build_snippet(row.content, term),
            timeline=row.timeline,
            offset=row.offset,
        )
        for row in rows
    ]

    log_search_request(
        bundle_hash=bundle_hash,
        query=term,
        total=total or 0,
        returned=len(hits),
        duration_ms=(time.perf_counter() - start) * 1000,
        timeline=timeline,
    )
    return LogSearchResponse(total=max(total or 0, 0), hits=hits)


async def get_issue_bundles(db: AsyncSession, issue_code: str) -> IssueBundlesResponse:
    """
    List an issue's bundles, newest first.

    Raises:
        NotFoundError: Unknown issue
    """
    issue = await db.get(Issue, issue_code)
    if not issue:
        raise NotFoundError("issue", issue_code)

    result = await db.execute(
        select(Bundle)
        .where(Bundle.issue_code == issue.code)
        .order_by(Bundle.created_at.desc(), Bundle.hash.asc())
    )
    return IssueBundlesResponse(
        name=issue.name,
        log_bundles=[BundleSummary.from_bundle(bundle) for bundle in result.scalars().all()],
    )
