"""
Typed metadata for file nodes

FileNode.meta is stored as JSON but always written through one of the
models below. Known kinds are validated strictly; anything else is read
back as GenericMeta so older or hand-edited rows still load.
"""
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .base import NodeKind


class UploadedFileMeta(BaseModel):
    kind: Literal["uploaded_file"] = NodeKind.UPLOADED_FILE.value
    original_name: str  # Untrusted client-supplied filename, kept verbatim
    storage_path: str   # Relative to DATA_ROOT


class ExtractedDirMeta(BaseModel):
    kind: Literal["extracted_dir"] = NodeKind.EXTRACTED_DIR.value
    storage_path: str
    source: Optional[str] = None  # Archive name, set on the extraction root only


class ExtractedFileMeta(BaseModel):
    kind: Literal["extracted_file"] = NodeKind.EXTRACTED_FILE.value
    storage_path: str


class GenericMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    kind: Optional[str] = None


KnownNodeMeta = Annotated[
    Union[UploadedFileMeta, ExtractedDirMeta, ExtractedFileMeta],
    Field(discriminator="kind"),
]
NodeMeta = Union[UploadedFileMeta, ExtractedDirMeta, ExtractedFileMeta, GenericMeta]

_known_adapter = TypeAdapter(KnownNodeMeta)
_KNOWN_KINDS = {kind.value for kind in NodeKind}


def parse_node_meta(raw: Optional[Dict[str, Any]]) -> Optional[NodeMeta]:
    """Load a stored meta dict into its typed variant"""
    if raw is None:
        return None
    if raw.get("kind") in _KNOWN_KINDS:
        return _known_adapter.validate_python(raw)
    return GenericMeta.model_validate(raw)


def dump_node_meta(meta: Optional[NodeMeta]) -> Optional[Dict[str, Any]]:
    """Serialize a typed meta value for the JSON column"""
    if meta is None:
        return None
    return meta.model_dump(exclude_none=True)
