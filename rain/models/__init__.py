"""
Rain Database Models

This package contains all SQLAlchemy ORM models organized by domain.

Module Structure:
- base.py: Base class, id generators, and all enums
- issue.py: Issue, Bundle
- file_node.py: FileNode, LogSegment
- node_meta.py: Typed FileNode.meta variants (pydantic)

Usage:
    from rain.models import Bundle, FileNode, LogSegment
"""

# Base utilities and enums
from .base import (
    Base,
    generate_uuid,
    generate_bundle_hash,
    BundleStatus,
    NodeKind,
    DEFAULT_TIMELINE,
)

# Issue and bundle models
from .issue import Issue, Bundle

# File tree models
from .file_node import FileNode, LogSegment

# Node metadata
from .node_meta import (
    UploadedFileMeta,
    ExtractedDirMeta,
    ExtractedFileMeta,
    GenericMeta,
    NodeMeta,
    parse_node_meta,
    dump_node_meta,
)

__all__ = [
    # Base
    "Base",
    "generate_uuid",
    "generate_bundle_hash",
    # Enums
    "BundleStatus",
    "NodeKind",
    "DEFAULT_TIMELINE",
    # Issue
    "Issue",
    "Bundle",
    # Files
    "FileNode",
    "LogSegment",
    # Metadata
    "UploadedFileMeta",
    "ExtractedDirMeta",
    "ExtractedFileMeta",
    "GenericMeta",
    "NodeMeta",
    "parse_node_meta",
    "dump_node_meta",
]
