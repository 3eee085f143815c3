"""
Issue and bundle models

Contains:
- Issue: A tracked issue, keyed by a caller-supplied code
- Bundle: One upload session of diagnostic files for an issue
"""
from sqlalchemy import Column, String, BigInteger, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base, generate_uuid, generate_bundle_hash, BundleStatus


class Issue(Base):
    """
    A tracked issue.

    Created the first time an upload references its code and never
    overwritten afterwards.
    """
    __tablename__ = "issues"

    code = Column(String(255), primary_key=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=func.now())

    bundles = relationship("Bundle", back_populates="issue", passive_deletes=True)


class Bundle(Base):
    """
    One upload session.

    The internal id is only used for joins; `hash` is the one identifier
    exposed to clients. Deleting a bundle removes all of its file nodes
    and log segments through ON DELETE CASCADE.
    """
    __tablename__ = "bundles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    hash = Column(String(64), nullable=False, unique=True, default=generate_bundle_hash)
    name = Column(String(255), nullable=False)
    issue_code = Column(String(255), ForeignKey("issues.code"), nullable=False)

    size_bytes = Column(BigInteger, nullable=True)
    status = Column(String(20), nullable=False, default=BundleStatus.PENDING.value)

    created_at = Column(DateTime, default=func.now())

    issue = relationship("Issue", back_populates="bundles")
    files = relationship("FileNode", back_populates="bundle", cascade="all, delete-orphan", passive_deletes=True)
    segments = relationship("LogSegment", back_populates="bundle", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("idx_bundle_issue", "issue_code", "created_at"),
    )
