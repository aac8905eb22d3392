"""Interfaces of the external collaborators consumed by the workflow.

Transport details live in the implementations (``api_client``,
``local_backend``, ``database``); the orchestrator only depends on the shapes
declared here.
"""

import mimetypes
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .lifecycle import DetectionResult, FinalizeResult


@dataclass(frozen=True)
class Credentials:
    """Identity and bearer token threaded explicitly into every call."""

    owner_id: str
    token: str = ""


@dataclass(frozen=True)
class UploadedFile:
    """A user-selected file held in memory."""

    name: str
    content: bytes = field(repr=False)
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        _, _, ext = self.name.rpartition(".")
        return ext.lower() if ext != self.name else ""

    @property
    def resolved_type(self) -> str:
        """Declared content type, or one guessed from the file name."""
        if self.content_type:
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.name)
        return guessed or ""

    @classmethod
    def from_upload(cls, uploaded) -> "UploadedFile":
        """Build from a Streamlit ``UploadedFile`` (or anything with name/type/getvalue)."""
        return cls(
            name=uploaded.name,
            content=uploaded.getvalue(),
            content_type=getattr(uploaded, "type", "") or "",
        )


@dataclass(frozen=True)
class StoredUrls:
    original_url: str
    processed_urls: List[str]


@dataclass(frozen=True)
class SavedDocument:
    document_id: str
    filename: str
    original_url: str
    processed_urls: List[str]
    status: str
    created_at: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentPage:
    documents: List[SavedDocument]
    has_more: bool
    next_cursor: Optional[str] = None


class Detector(Protocol):
    async def detect(
        self, file: UploadedFile, credentials: Credentials
    ) -> DetectionResult:
        ...


class Finalizer(Protocol):
    async def finalize(
        self,
        file_id: str,
        corners: List[List[int]],
        credentials: Credentials,
        enhance: bool = True,
        auto_trim: bool = True,
    ) -> FinalizeResult:
        ...

    async def download(self, url: str, credentials: Credentials) -> bytes:
        ...


class DurableStore(Protocol):
    def upload(
        self,
        owner_id: str,
        filename: str,
        original: bytes,
        processed: List[bytes],
    ) -> StoredUrls:
        ...

    def save_metadata(
        self,
        owner_id: str,
        filename: str,
        original_url: str,
        processed_urls: List[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        ...


class Lister(Protocol):
    def list_documents(
        self, owner_id: str, limit: int = 20, cursor: Optional[str] = None
    ) -> DocumentPage:
        ...
