"""
Unit tests for the scanner package and image_processing helpers.
"""
import cv2
import numpy as np
import pytest

from image_processing import auto_trim, decode_cv2, enhance_document, from_data_url, load_pil, to_data_url
from scanner import DocumentDetector, PerspectiveTransformer, default_corners, order_points

EXPECTED = np.array([[120, 60], [480, 60], [480, 340], [120, 340]], dtype=np.float32)


class TestOrderPoints:
    """Tests for corner ordering."""

    def test_orders_shuffled_points(self):
        shuffled = EXPECTED[[2, 0, 3, 1]]
        np.testing.assert_array_equal(order_points(shuffled), EXPECTED)

    def test_default_corners_inset(self):
        corners = default_corners(200, 100)
        np.testing.assert_allclose(corners, [[10, 5], [190, 5], [190, 95], [10, 95]])


class TestDocumentDetector:
    """Tests for boundary detection on synthetic pages."""

    def test_finds_sheet_on_dark_background(self, document_image_bytes):
        detection = DocumentDetector().detect(decode_cv2(document_image_bytes))

        assert detection is not None
        assert np.abs(detection.corners - EXPECTED).max() < 12
        assert 0.0 < detection.confidence <= 1.0
        assert detection.method in {"canny", "adaptive", "background", "gradient"}

    def test_large_images_map_back_to_full_resolution(self, document_image_bytes):
        image = cv2.resize(decode_cv2(document_image_bytes), None, fx=2, fy=2)
        detection = DocumentDetector(max_dimension=600).detect(image)

        assert detection is not None
        assert np.abs(detection.corners - EXPECTED * 2).max() < 24

    def test_blank_image_has_no_document(self):
        blank = np.full((200, 300, 3), 128, dtype=np.uint8)
        assert DocumentDetector().detect(blank) is None


class TestPerspectiveTransformer:
    """Tests for flattening a quadrilateral."""

    def test_output_dimensions(self):
        assert PerspectiveTransformer().compute_output_dimensions(EXPECTED) == (360, 280)

    def test_warp_extracts_the_sheet(self, document_image_bytes):
        image = decode_cv2(document_image_bytes)
        warped = PerspectiveTransformer().transform(image, EXPECTED)

        assert warped.shape[:2] == (280, 360)
        assert warped[140, 180].mean() > 200

    def test_explicit_output_size(self, document_image_bytes):
        warped = PerspectiveTransformer().transform(decode_cv2(document_image_bytes), EXPECTED, (100, 50))
        assert warped.shape[:2] == (50, 100)


class TestImageProcessing:
    """Tests for image helpers."""

    def test_data_url_round_trip(self):
        assert from_data_url(to_data_url(b"\x00\x01", "image/png")) == b"\x00\x01"
        with pytest.raises(ValueError):
            from_data_url("https://example.com/a.png")

    def test_load_pil_rejects_garbage(self):
        with pytest.raises(ValueError):
            load_pil(b"definitely not an image")

    def test_auto_trim_removes_uniform_border(self):
        image = np.full((100, 100, 3), 255, dtype=np.uint8)
        image[5:95, 5:95] = np.random.default_rng(0).integers(0, 255, (90, 90, 3), dtype=np.uint8)
        trimmed = auto_trim(image)
        assert trimmed.shape[:2] == (90, 90)

    def test_enhance_keeps_shape(self, document_image_bytes):
        image = decode_cv2(document_image_bytes)
        assert enhance_document(image).shape == image.shape
