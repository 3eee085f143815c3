"""
File tree models

Contains:
- FileNode: One file or directory in a bundle's tree
- LogSegment: One indexed line of text from a file node
"""
from sqlalchemy import (
    Column, String, Integer, BigInteger, Boolean, DateTime, Text,
    ForeignKey, JSON, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base, BundleStatus, DEFAULT_TIMELINE


def _search_text_default(context) -> str:
    """Derive the searchable text from the segment content at insert time"""
    content = context.get_current_parameters().get("content") or ""
    return content.lower()


class FileNode(Base):
    """
    A node in a per-bundle file tree.

    Nodes form an arena addressed by id with a nullable parent edge:
    parent_id NULL means the node sits at the bundle root. Parents are
    always inserted before their children, so the tree cannot contain
    cycles. Nodes are never updated after ingestion.
    """
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bundle_id = Column(String(36), ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=True)

    name = Column(String(255), nullable=False)
    path = Column(String(2048), nullable=False)  # /<bundle-hash>/<relative path>
    is_dir = Column(Boolean, nullable=False, default=False)
    size_bytes = Column(BigInteger, nullable=True)  # Always NULL for directories
    mime_type = Column(String(255), nullable=True)
    status = Column(String(20), nullable=True, default=BundleStatus.READY.value)

    # Tagged metadata, see rain.models.node_meta
    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=func.now())

    bundle = relationship("Bundle", back_populates="files")
    parent = relationship("FileNode", remote_side=[id], back_populates="children")
    children = relationship("FileNode", back_populates="parent", cascade="all, delete-orphan", passive_deletes=True)
    segments = relationship("LogSegment", back_populates="file", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("bundle_id", "path", name="uq_files_bundle_path"),
        CheckConstraint("NOT is_dir OR size_bytes IS NULL", name="ck_files_dir_no_size"),
        Index("idx_files_parent", "bundle_id", "parent_id"),
    )


class LogSegment(Base):
    """
    One indexed unit of text, conventionally one non-blank line.

    `offset` is the zero-based index of the line in the source file and
    `search_text` is the lower-cased content used for substring search.
    """
    __tablename__ = "log_segments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bundle_id = Column(String(36), ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False)
    file_id = Column(Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False)

    timeline = Column(String(100), nullable=True, default=DEFAULT_TIMELINE)
    content = Column(Text, nullable=False)
    offset = Column(Integer, nullable=True)
    search_text = Column(Text, nullable=False, default=_search_text_default)

    created_at = Column(DateTime, default=func.now())

    bundle = relationship("Bundle", back_populates="segments")
    file = relationship("FileNode", back_populates="segments")

    __table_args__ = (
        Index("idx_segment_bundle", "bundle_id", "timeline"),
        Index("idx_segment_file", "file_id", "offset"),
    )
