"""
Path sanitization for untrusted names.

Archive entry names and uploaded filenames come straight from clients.
Traversal is ruled out structurally: the name is split into components and
anything that is not a plain name segment (root, "..", ".", empty) is
dropped before the remaining segments are rewritten to a safe alphabet.
"""
import re
from pathlib import PurePosixPath

DEFAULT_UPLOAD_NAME = "upload.log"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_RESERVED_SEGMENTS = {"", ".", ".."}


def sanitize_segment(segment: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with an underscore"""
    return _UNSAFE_CHARS.sub("_", segment)


def _plain_segments(name: str) -> list[str]:
    # Zip tools on Windows sometimes write backslash separators.
    parts = PurePosixPath(name.replace("\\", "/")).parts
    return [part for part in parts if part != "/" and part not in _RESERVED_SEGMENTS]


def sanitize_archive_path(name: str) -> PurePosixPath:
    """
    Turn an archive entry name into a safe relative path.

    The result never starts with a root and never contains "." or ".."
    components, so joining it onto a destination directory cannot leave
    that directory. It is empty when nothing usable remains.
    """
    return PurePosixPath(*(sanitize_segment(part) for part in _plain_segments(name)))


def sanitize_filename(name: str) -> str:
    """
    Sanitize a standalone upload filename.

    Only the final path component is kept; any directory portion the
    client sent is discarded. Falls back to DEFAULT_UPLOAD_NAME when
    nothing usable remains.
    """
    parts = PurePosixPath((name or "").replace("\\", "/")).parts
    final = parts[-1] if parts else ""
    if final == "/" or final in _RESERVED_SEGMENTS:
        return DEFAULT_UPLOAD_NAME
    return sanitize_segment(final) or DEFAULT_UPLOAD_NAME
