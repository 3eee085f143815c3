"""
Line-level indexing of text-like files for log search.
"""
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Tuple

import aiofiles
from sqlalchemy.ext.asyncio import AsyncSession

from rain.core.config import settings
from rain.core.exceptions import StorageIOError
from rain.models import LogSegment, DEFAULT_TIMELINE

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".log", ".txt"}

# Universal newlines: \r\n, \r or \n
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def is_text_like(name: str, content_type: Optional[str] = None) -> bool:
    """
    Decide whether a file should be indexed.

    A declared text/* content type always qualifies; otherwise the file
    extension must be .log or .txt (case-insensitive).
    """
    if content_type and content_type.startswith("text/"):
        return True
    return PurePosixPath(name).suffix.lower() in TEXT_EXTENSIONS


def segment_lines(text: str, cap: int = settings.MAX_SEGMENTS_PER_FILE) -> Iterator[Tuple[int, str]]:
    """
    Yield (offset, line) pairs for the non-blank lines of `text`.

    Lines are trimmed; blank lines are skipped but keep their index, so
    each offset is the zero-based position of the line in the source.
    Stops silently after `cap` pairs.
    """
    produced = 0
    for index, line in enumerate(_LINE_BREAK.split(text)):
        if produced >= cap:
            break
        trimmed = line.strip()
        if not trimmed:
            continue
        yield index, trimmed
        produced += 1


async def index_text_file(
    db: AsyncSession,
    bundle_id: str,
    file_id: int,
    disk_path: Path,
    timeline: str = DEFAULT_TIMELINE,
    cap: int = settings.MAX_SEGMENTS_PER_FILE,
) -> int:
    """
    Read a file and store its first `cap` non-blank lines as LogSegments.

    Invalid UTF-8 sequences are replaced, never fatal.

    Returns:
        Number of segments created
    """
    try:
        async with aiofiles.open(disk_path, "rb") as f:
            raw = await f.read()
    except OSError as e:
        logger.error(f"Failed to read {disk_path} for indexing: {e}")
        raise StorageIOError("failed to read file for indexing") from e

    content = raw.decode("utf-8", errors="replace")
    segments = [
        LogSegment(
            bundle_id=bundle_id,
            file_id=file_id,
            timeline=timeline,
            content=line,
            offset=offset,
        )
        for offset, line in segment_lines(content, cap)
    ]

    if segments:
        db.add_all(segments)
        await db.flush()

    logger.debug(f"Indexed {len(segments)} segments for file {file_id}")
    return len(segments)
