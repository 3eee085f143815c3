"""
Base model utilities and enums for the Rain backend

This module contains:
- SQLAlchemy Base class
- UUID generation utilities
- All enum types used across models
"""
from sqlalchemy.orm import declarative_base
import enum
import uuid

Base = declarative_base()


def generate_uuid() -> str:
    """Generate a new UUID string for model primary keys"""
    return str(uuid.uuid4())


def generate_bundle_hash() -> str:
    """Generate the opaque external identifier of a bundle (32 hex chars)"""
    return uuid.uuid4().hex


# =============================================================================
# Enums
# =============================================================================

class BundleStatus(str, enum.Enum):
    """Processing state of an uploaded bundle"""
    READY = "READY"
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"
    PENDING = "PENDING"


class NodeKind(str, enum.Enum):
    """Origin of a file node, stored as meta["kind"]"""
    UPLOADED_FILE = "uploaded_file"    # Uploaded directly at the bundle root
    EXTRACTED_DIR = "extracted_dir"    # Directory materialized from an archive
    EXTRACTED_FILE = "extracted_file"  # File materialized from an archive


DEFAULT_TIMELINE = "all"
