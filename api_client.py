"""
HTTP client for the remote detection/crop backend.

Every call takes explicit ``Credentials``; the bearer token is never read
from global state.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Type

import httpx

from docscan.collaborators import Credentials, DocumentPage, SavedDocument, UploadedFile
from docscan.errors import AuthError, DetectionError, DocScanError, FinalizeError, UploadError
from docscan.lifecycle import DetectionResult, FinalizeResult

logger = logging.getLogger(__name__)

UPLOADS_PATH = "/api/v1/uploads/uploads"


def _error_detail(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return body.get("detail") or body.get("error") or default
    return default


class BackendClient:
    """Detector and Finalizer backed by the upload API, plus its upload history."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Backend root URL
            timeout: Request timeout in seconds
            transport: Optional transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip('/')
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    @staticmethod
    def _headers(credentials: Optional[Credentials]) -> Dict[str, str]:
        if credentials is None or not credentials.token:
            raise AuthError("User not authenticated")
        return {"Authorization": f"Bearer {credentials.token}"}

    async def _post(
        self,
        endpoint: str,
        credentials: Credentials,
        error_cls: Type[DocScanError],
        default_error: str,
        data: Optional[Dict[str, str]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = self._headers(credentials)
        try:
            response = await self.client.post(
                f"{UPLOADS_PATH}/{endpoint}", headers=headers, data=data, files=files
            )
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", endpoint, exc)
            raise error_cls(f"{default_error}: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthError(_error_detail(response, "User not authenticated"))
        if response.is_error:
            raise error_cls(_error_detail(response, default_error))

        try:
            body = response.json()
        except ValueError as exc:
            raise error_cls(f"{default_error}: invalid response body") from exc
        if not isinstance(body, dict):
            raise error_cls(f"{default_error}: invalid response body")
        return body

    async def detect(self, file: UploadedFile, credentials: Credentials) -> DetectionResult:
        """Upload a file and return the detected corners."""
        body = await self._post(
            "detect",
            credentials,
            DetectionError,
            "Detection failed",
            files={"file": (file.name, file.content, file.resolved_type or "application/octet-stream")},
        )
        try:
            return DetectionResult.from_response(body)
        except (TypeError, ValueError) as exc:
            raise DetectionError(f"Malformed detection response: {exc}") from exc

    async def finalize(
        self,
        file_id: str,
        corners: List[List[int]],
        credentials: Credentials,
        enhance: bool = True,
        auto_trim: bool = True,
    ) -> FinalizeResult:
        """Crop and perspective-correct a detected file with confirmed corners."""
        body = await self._post(
            "crop",
            credentials,
            FinalizeError,
            "Processing failed",
            data={
                "file_id": file_id,
                "user_crop_data": json.dumps(corners),
                "enhance": str(enhance).lower(),
                "auto_trim": str(auto_trim).lower(),
            },
        )
        result = FinalizeResult.from_response(body)
        if not result.success:
            raise FinalizeError(result.error or "Processing failed")
        return result

    async def download(self, url: str, credentials: Credentials) -> bytes:
        """Fetch the bytes behind a result URL."""
        try:
            response = await self.client.get(url, headers=self._headers(credentials))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UploadError(f"Failed to download {url}: {exc}") from exc
        return response.content

    async def list_uploads(
        self, credentials: Credentials, limit: int = 20, cursor: Optional[str] = None
    ) -> DocumentPage:
        """One page of the user's uploads, newest first."""
        data = {"limit": str(limit)}
        if cursor:
            data["cursor"] = cursor
        body = await self._post("list", credentials, DocScanError, "Failed to fetch uploads", data=data)

        documents = [
            SavedDocument(
                document_id=entry.get("fileId", ""),
                filename=entry.get("filename", ""),
                original_url=entry.get("originalUrl", ""),
                processed_urls=[entry["croppedUrl"]] if entry.get("croppedUrl") else [],
                status=entry.get("status", ""),
                created_at=entry.get("createdAt", ""),
                metadata={"previewUrl": entry.get("previewUrl"), "isProcessed": entry.get("isProcessed")},
            )
            for entry in body.get("uploads", [])
        ]
        return DocumentPage(
            documents=documents,
            has_more=bool(body.get("hasMore")),
            next_cursor=body.get("nextCursor"),
        )

    async def delete_upload(self, file_id: str, credentials: Credentials) -> bool:
        body = await self._post(
            "delete", credentials, DocScanError, "Delete failed", data={"file_id": file_id}
        )
        return bool(body.get("success"))
