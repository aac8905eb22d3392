"""
In-process detection and cropping backend built on the ``scanner`` package.

Implements the same detect/finalize/download contract as the remote API so
the app can run without a server.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional

import cv2
import numpy as np

from docscan.collaborators import Credentials, UploadedFile
from docscan.errors import AuthError, DetectionError, FinalizeError, UploadError
from docscan.geometry import to_quadrilateral
from docscan.lifecycle import DetectionResult, FinalizeResult
from image_processing import (
    auto_trim,
    cv2_to_bytes,
    decode_cv2,
    enhance_document,
    rasterize_upload,
    to_data_url,
)
from scanner import DocumentDetector, PerspectiveTransformer, default_corners

logger = logging.getLogger(__name__)

LOW_CONFIDENCE = 0.5


class LocalBackend:
    """Detector and Finalizer running OpenCV in a worker thread."""

    URL_PREFIX = "local://"

    def __init__(
        self,
        detector: Optional[DocumentDetector] = None,
        transformer: Optional[PerspectiveTransformer] = None,
    ):
        self.detector = detector or DocumentDetector()
        self.transformer = transformer or PerspectiveTransformer()
        self._sources: Dict[str, bytes] = {}
        self._outputs: Dict[str, bytes] = {}

    @staticmethod
    def _check(credentials: Optional[Credentials]):
        if credentials is None or not credentials.owner_id:
            raise AuthError("User not authenticated")

    async def detect(self, file: UploadedFile, credentials: Credentials) -> DetectionResult:
        self._check(credentials)
        return await asyncio.to_thread(self._detect_sync, file, credentials.owner_id)

    def _detect_sync(self, file: UploadedFile, owner_id: str) -> DetectionResult:
        try:
            file = rasterize_upload(file)
            image = decode_cv2(file.content)
        except ValueError as exc:
            raise DetectionError(f"{file.name}: {exc}") from exc

        height, width = image.shape[:2]
        detection = self.detector.detect(image)

        warning = None
        if detection is None:
            corners = default_corners(width, height)
            confidence, method = 0.0, "fallback"
            warning = "No document boundary found; adjust the corners manually"
        else:
            corners, confidence, method = detection
            if confidence < LOW_CONFIDENCE:
                warning = "Low detection confidence; check the corners"

        file_id = f"{owner_id}-{uuid.uuid4().hex}"
        self._sources[file_id] = file.content
        url = f"{self.URL_PREFIX}{file_id}/original"
        self._outputs[url] = file.content

        return DetectionResult(
            success=True,
            file_id=file_id,
            preview_url=url,
            original_url=url,
            corners=to_quadrilateral(corners.tolist()),
            confidence=confidence,
            method=method,
            warning=warning,
            image_width=width,
            image_height=height,
        )

    async def finalize(
        self,
        file_id: str,
        corners: List[List[int]],
        credentials: Credentials,
        enhance: bool = True,
        auto_trim: bool = True,
    ) -> FinalizeResult:
        self._check(credentials)
        return await asyncio.to_thread(self._finalize_sync, file_id, corners, enhance, auto_trim)

    def _finalize_sync(
        self, file_id: str, corners: List[List[int]], enhance: bool, trim: bool
    ) -> FinalizeResult:
        source = self._sources.get(file_id)
        if source is None:
            raise FinalizeError(f"Unknown file id: {file_id}")
        if len(corners) != 4:
            raise FinalizeError(f"Expected 4 corners, got {len(corners)}")

        try:
            image = decode_cv2(source)
            cropped = self.transformer.transform(image, np.array(corners, dtype=np.float32))
            if trim:
                cropped = auto_trim(cropped)
            if enhance:
                cropped = enhance_document(cropped)
            encoded = cv2_to_bytes(cropped)
        except (ValueError, cv2.error) as exc:
            raise FinalizeError(f"Cropping failed: {exc}") from exc

        url = f"{self.URL_PREFIX}{file_id}/cropped/{uuid.uuid4().hex}.jpg"
        self._outputs[url] = encoded
        height, width = cropped.shape[:2]
        logger.debug("Cropped %s to %dx%d", file_id, width, height)
        return FinalizeResult(success=True, cropped_url=url, width=width, height=height)

    async def download(self, url: str, credentials: Credentials) -> bytes:
        self._check(credentials)
        try:
            return self._outputs[url]
        except KeyError:
            raise UploadError(f"Unknown local URL: {url}") from None

    def data_url(self, url: str) -> str:
        """Inline form of a ``local://`` URL for display."""
        return to_data_url(self._outputs[url])
