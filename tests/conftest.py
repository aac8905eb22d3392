"""
Pytest configuration and shared fixtures.
"""
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from docscan import Credentials, DetectionResult, FinalizeResult, UploadedFile, to_quadrilateral


@pytest.fixture
def credentials():
    return Credentials(owner_id="user-1", token="secret-token")


@pytest.fixture
def quad():
    return to_quadrilateral([[10, 10], [90, 10], [90, 70], [10, 70]])


@pytest.fixture
def detection(quad):
    """A successful detection on a 100x80 image."""
    return DetectionResult(
        success=True,
        file_id="file-1",
        preview_url="https://backend/preview/file-1",
        corners=quad,
        confidence=0.9,
        method="canny",
        image_width=100,
        image_height=80,
    )


@pytest.fixture
def png_file():
    """A small PNG upload."""
    buf = cv2.imencode('.png', np.full((20, 20, 3), 255, dtype=np.uint8))[1].tobytes()
    return UploadedFile(name="page.png", content=buf, content_type="image/png")


@pytest.fixture
def document_image_bytes():
    """A white sheet on a dark background, encoded as PNG."""
    image = np.full((400, 600, 3), 40, dtype=np.uint8)
    cv2.rectangle(image, (120, 60), (480, 340), (245, 245, 245), thickness=-1)
    return cv2.imencode('.png', image)[1].tobytes()


@pytest.fixture
def gray_image():
    """Uniform mid-gray RGB image, 200x100."""
    return Image.new('RGB', (200, 100), color=(128, 128, 128))


class FakeBackend:
    """Scriptable Detector/Finalizer for orchestrator tests.

    ``detections`` and ``finalizations`` map file names / file ids to either a
    result or an exception to raise. ``gates`` hold detections open until set.
    """

    def __init__(self, detections=None, finalizations=None):
        self.detections = detections or {}
        self.finalizations = finalizations or {}
        self.gates = {}
        self.detect_calls = []
        self.finalize_calls = []
        self.downloads = {}

    async def detect(self, file, credentials):
        self.detect_calls.append(file.name)
        gate = self.gates.get(file.name)
        if gate is not None:
            await gate.wait()
        outcome = self.detections[file.name]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def finalize(self, file_id, corners, credentials, enhance=True, auto_trim=True):
        self.finalize_calls.append((file_id, corners, enhance, auto_trim))
        outcome = self.finalizations.get(file_id)
        if outcome is None:
            outcome = FinalizeResult(success=True, cropped_url=f"https://backend/cropped/{file_id}.jpg")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def download(self, url, credentials):
        return self.downloads.get(url, b"cropped-bytes")


@pytest.fixture
def fake_backend():
    return FakeBackend()
