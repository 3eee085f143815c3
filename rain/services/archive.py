"""
Zip archive expansion.

Archives are expanded on a dedicated thread pool so a large or hostile
upload never blocks the event loop; callers await the result.
Every entry name goes through the path sanitizer, which preserves the
archive's directory structure while making traversal impossible.
"""

import asyncio
import logging
import os
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rain.core.config import settings
from rain.core.exceptions import BadRequestError, RainError, StorageIOError
from rain.services.sanitizer import sanitize_archive_path

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=settings.ARCHIVE_WORKERS, thread_name_prefix="archive")

# Errors raised by zipfile for corrupt, truncated, encrypted or
# unsupported-compression archives. ValueError covers undecodable entry
# names; OSError covers seeks to offsets a damaged directory points at.
_BAD_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
    ValueError,
    OSError,
)

# The uploaded archive itself is gone or unreadable: a server-side fault
_MISSING_SOURCE_ERRORS = (FileNotFoundError, PermissionError)

# A file entry and a directory entry claim the same path
_PATH_CONFLICT_ERRORS = (FileExistsError, NotADirectoryError, IsADirectoryError)

_COPY_CHUNK = 1024 * 1024


@dataclass
class ExpansionResult:
    """Counts from one archive expansion"""
    directories: int = 0
    files: int = 0
    skipped: int = 0
    bytes_written: int = 0


def validate_archive(
    zf: zipfile.ZipFile,
    max_entries: int = settings.ARCHIVE_MAX_ENTRIES,
    max_total_bytes: int = settings.ARCHIVE_MAX_TOTAL_BYTES,
) -> None:
    """
    Check entry count and declared uncompressed size before writing anything.

    Raises:
        BadRequestError: If the archive exceeds either limit
    """
    info_list = zf.infolist()

    if len(info_list) > max_entries:
        raise BadRequestError(
            f"Too many entries in archive: {len(info_list)} (max: {max_entries})"
        )

    total_size = 0
    for info in info_list:
        total_size += info.file_size
        if total_size > max_total_bytes:
            raise BadRequestError(
                f"Archive uncompressed size exceeds limit of {max_total_bytes} bytes"
            )


def _bad_archive(error: Exception) -> BadRequestError:
    return BadRequestError(f"invalid zip archive: {error}")


def _write_error(path: Path, error: OSError) -> RainError:
    if isinstance(error, _PATH_CONFLICT_ERRORS):
        return BadRequestError("invalid zip archive: a file and a directory share the same path")
    logger.error(f"Failed to write archive entry to {path}: {error}")
    return StorageIOError("failed to extract archive contents")


def _make_dirs(path: Path) -> None:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise _write_error(path, e) from e


def _extract_entry(zf: zipfile.ZipFile, info: zipfile.ZipInfo, out_path: Path) -> None:
    """Stream one file entry to `out_path`, telling archive faults from disk faults"""
    try:
        source = zf.open(info, "r")
    except _BAD_ARCHIVE_ERRORS as e:
        raise _bad_archive(e) from e

    with source:
        try:
            target = open(out_path, "wb")
        except OSError as e:
            raise _write_error(out_path, e) from e

        with target:
            while True:
                try:
                    chunk = source.read(_COPY_CHUNK)
                except _BAD_ARCHIVE_ERRORS as e:
                    raise _bad_archive(e) from e
                if not chunk:
                    break
                try:
                    target.write(chunk)
                except OSError as e:
                    raise _write_error(out_path, e) from e


def expand_archive_sync(
    src: Path,
    dest: Path,
    max_entries: int = settings.ARCHIVE_MAX_ENTRIES,
    max_total_bytes: int = settings.ARCHIVE_MAX_TOTAL_BYTES,
) -> ExpansionResult:
    """
    Extract every entry of the zip at `src` under `dest`.

    Directory entries are created with their missing ancestors; file entries
    get their ancestors created and their decompressed bytes streamed out.
    Entries are processed in archive order, so a failure part way through
    leaves the earlier entries on disk.

    Anything that goes wrong while reading the archive is the upload's
    fault; only failures writing below `dest` are storage errors.

    Raises:
        BadRequestError: The archive is corrupt, encrypted, uses an
            unsupported compression method, has conflicting entry paths,
            or exceeds the limits
        StorageIOError: Reading `src` or writing to `dest` failed
    """
    result = ExpansionResult()

    try:
        zf = zipfile.ZipFile(src, "r")
    except _MISSING_SOURCE_ERRORS as e:
        logger.error(f"Failed to open archive {src}: {e}")
        raise StorageIOError("failed to read uploaded archive") from e
    except _BAD_ARCHIVE_ERRORS as e:
        raise _bad_archive(e) from e

    with zf:
        validate_archive(zf, max_entries, max_total_bytes)

        for info in zf.infolist():
            relative = sanitize_archive_path(info.filename)
            if not relative.parts:
                logger.warning(f"Skipping archive entry with no usable path: {info.filename!r}")
                result.skipped += 1
                continue

            out_path = dest.joinpath(*relative.parts)

            if info.is_dir():
                _make_dirs(out_path)
                result.directories += 1
                continue

            _make_dirs(out_path.parent)
            _extract_entry(zf, info, out_path)
            result.files += 1
            result.bytes_written += info.file_size

    return result


async def expand_archive(
    src: Path,
    dest: Path,
    executor: Optional[ThreadPoolExecutor] = None,
) -> ExpansionResult:
    """Run expand_archive_sync off the event loop and wait for it"""
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(
        executor or _executor,
        expand_archive_sync,
        src,
        dest,
    )
    logger.info(
        f"Expanded {src.name}: {result.files} files, {result.directories} dirs, "
        f"{result.skipped} skipped, {result.bytes_written} bytes"
    )
    return result


def shutdown_executor() -> None:
    """Stop the archive worker threads (application shutdown)"""
    _executor.shutdown(wait=False, cancel_futures=True)
