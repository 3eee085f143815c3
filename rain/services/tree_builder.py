"""
File tree construction.

Walks a materialized directory and mirrors it as FileNode records under an
existing parent node. Nodes are inserted in walk order, which visits every
directory before its contents, so parents always have an id by the time a
child references them.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rain.core.exceptions import StorageIOError
from rain.models import FileNode, ExtractedDirMeta, ExtractedFileMeta, NodeMeta, dump_node_meta
from rain.services.text_indexer import is_text_like, index_text_file

logger = logging.getLogger(__name__)


@dataclass
class WalkEntry:
    """One filesystem entry below the walk root"""
    relative: PurePosixPath
    disk_path: Path
    is_dir: bool
    size_bytes: Optional[int]


@dataclass
class TreeBuildResult:
    directories: int = 0
    files: int = 0
    segments: int = 0


async def create_file_node(
    db: AsyncSession,
    *,
    bundle_id: str,
    parent: Optional[FileNode],
    name: str,
    path: str,
    is_dir: bool,
    size_bytes: Optional[int] = None,
    mime_type: Optional[str] = None,
    meta: Optional[NodeMeta] = None,
) -> FileNode:
    """
    Insert one FileNode and flush it so it has an id.

    The parent must already be persisted and belong to the same bundle;
    directories never carry a size.
    """
    if is_dir and size_bytes is not None:
        raise ValueError(f"directory node {path} cannot have a size")

    parent_id = None
    if parent is not None:
        if parent.id is None:
            raise ValueError(f"parent of {path} has not been persisted")
        if parent.bundle_id != bundle_id:
            raise ValueError(f"parent of {path} belongs to another bundle")
        parent_id = parent.id

    node = FileNode(
        bundle_id=bundle_id,
        parent_id=parent_id,
        name=name,
        path=path,
        is_dir=is_dir,
        size_bytes=size_bytes,
        mime_type=mime_type,
        meta=dump_node_meta(meta),
    )
    db.add(node)
    await db.flush()
    return node


def walk_directory(root: Path) -> List[WalkEntry]:
    """
    List every entry under `root` (excluding root itself), top-down.

    Names are sorted for a stable order. Symlinks and other non-regular
    entries are reported as opaque files sized by lstat and never followed.
    """
    entries: List[WalkEntry] = []

    def on_error(error: OSError):
        raise error

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        current = Path(dirpath)
        rel_dir = PurePosixPath(current.relative_to(root).as_posix())

        real_dirs = []
        for name in sorted(dirnames):
            disk_path = current / name
            if disk_path.is_symlink():
                filenames.append(name)
                continue
            real_dirs.append(name)
            entries.append(WalkEntry(rel_dir / name, disk_path, True, None))
        dirnames[:] = real_dirs

        for name in sorted(filenames):
            disk_path = current / name
            entries.append(WalkEntry(rel_dir / name, disk_path, False, disk_path.lstat().st_size))

    return entries


async def build_tree(
    db: AsyncSession,
    bundle_id: str,
    parent: FileNode,
    root_dir: Path,
    relative_root: str,
    data_root: Path,
) -> TreeBuildResult:
    """
    Mirror `root_dir` as FileNodes below `parent`.

    Args:
        db: Database session
        bundle_id: Owning bundle
        parent: Existing node the walk root maps to
        root_dir: Directory on disk to walk
        relative_root: Logical path of root_dir without the leading slash,
            e.g. "<bundle-hash>/<name>_extracted"
        data_root: Upload root, used to record storage paths relatively

    Returns:
        TreeBuildResult with node and segment counts
    """
    loop = asyncio.get_running_loop()
    try:
        entries = await loop.run_in_executor(None, walk_directory, root_dir)
    except OSError as e:
        logger.error(f"Failed to walk {root_dir}: {e}")
        raise StorageIOError("failed to read extracted archive") from e

    result = TreeBuildResult()
    nodes_by_path: Dict[PurePosixPath, FileNode] = {PurePosixPath("."): parent}
    logical_root = "/" + relative_root.strip("/")

    for entry in entries:
        dir_node = nodes_by_path.get(entry.relative.parent)
        if dir_node is None:
            logger.warning(
                f"Parent of {entry.relative} not seen yet, attaching it to the extraction root"
            )
            dir_node = parent

        storage_path = entry.disk_path.relative_to(data_root).as_posix()
        meta = (
            ExtractedDirMeta(storage_path=storage_path)
            if entry.is_dir
            else ExtractedFileMeta(storage_path=storage_path)
        )

        node = await create_file_node(
            db,
            bundle_id=bundle_id,
            parent=dir_node,
            name=entry.relative.name,
            path=f"{logical_root}/{entry.relative.as_posix()}",
            is_dir=entry.is_dir,
            size_bytes=entry.size_bytes,
            meta=meta,
        )

        if entry.is_dir:
            nodes_by_path[entry.relative] = node
            result.directories += 1
            continue

        result.files += 1
        if is_text_like(entry.relative.name):
            result.segments += await index_text_file(db, bundle_id, node.id, entry.disk_path)

    return result
