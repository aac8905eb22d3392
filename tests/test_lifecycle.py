"""
Unit tests for docscan.lifecycle.
"""
import pytest

from docscan import DetectionResult, FinalizeResult, InvalidTransitionError, Item, ItemStatus, Point, UploadedFile


@pytest.fixture
def item():
    file = UploadedFile(name="scan.jpg", content=b"jpeg", content_type="image/jpeg")
    return Item(id="i1", file=file, local_url="blob:docscan/i1")


class TestTransitions:
    """Tests for the item state machine."""

    def test_happy_path(self, item, detection):
        detecting = item.start_detection()
        assert detecting.status is ItemStatus.DETECTING
        assert detecting.in_flight

        detected = detecting.detection_succeeded(detection)
        assert detected.status is ItemStatus.DETECTED
        assert detected.editable
        assert detected.working == detection.corners
        assert detected.display_url == detection.preview_url

        processing = detected.start_processing(detection.corners)
        assert processing.status is ItemStatus.PROCESSING
        assert not processing.editable

        done = processing.processing_succeeded("https://backend/cropped.jpg")
        assert done.status is ItemStatus.COMPLETED
        assert done.cropped_url == "https://backend/cropped.jpg"
        assert done.detection is detection

    def test_items_are_immutable(self, item):
        item.start_detection()
        assert item.status is ItemStatus.PENDING

    def test_detection_failure(self, item):
        failed = item.start_detection().detection_failed("No document found")
        assert failed.status is ItemStatus.ERROR
        assert failed.error == "No document found"
        assert failed.detection is None

    def test_processing_failure_keeps_detection(self, item, detection):
        failed = (
            item.start_detection()
            .detection_succeeded(detection)
            .start_processing(detection.corners)
            .processing_failed("Processing failed")
        )
        assert failed.status is ItemStatus.ERROR
        assert failed.detection is detection

    @pytest.mark.parametrize("step", ["detection_succeeded", "start_processing", "processing_succeeded"])
    def test_illegal_from_pending(self, item, detection, step):
        argument = {
            "detection_succeeded": detection,
            "start_processing": detection.corners,
            "processing_succeeded": "url",
        }[step]
        with pytest.raises(InvalidTransitionError):
            getattr(item, step)(argument)

    def test_terminal_states(self, item, detection):
        done = (
            item.start_detection()
            .detection_succeeded(detection)
            .start_processing(detection.corners)
            .processing_succeeded("url")
        )
        with pytest.raises(InvalidTransitionError):
            done.start_processing(detection.corners)
        failed = item.start_detection().detection_failed("boom")
        with pytest.raises(InvalidTransitionError):
            failed.start_detection()

    def test_with_working_requires_detected(self, item, detection):
        quad = (Point(0, 0), Point(1, 0), Point(1, 1), Point(0, 1))
        with pytest.raises(InvalidTransitionError):
            item.with_working(quad)
        detected = item.start_detection().detection_succeeded(detection)
        assert detected.with_working(quad).working == quad
        assert detected.reset_corners == detection.corners
        with pytest.raises(ValueError):
            detected.with_working(quad[:3])

    def test_status_labels(self):
        assert ItemStatus.DETECTED.label == "Ready"
        assert ItemStatus.COMPLETED.label == "Done"
        assert ItemStatus.PROCESSING.label == "Processing..."


class TestResponses:
    """Tests for parsing backend payloads."""

    def test_detection_from_response(self):
        result = DetectionResult.from_response({
            "success": True,
            "fileId": "abc",
            "previewUrl": "https://backend/p.jpg",
            "corners": [[1, 2], [30, 2], [30, 40], [1, 40]],
            "confidence": 0.82,
            "method": "adaptive",
            "imageSize": {"width": 31, "height": 41},
        })
        assert result.file_id == "abc"
        assert result.corners[1] == Point(30.0, 2.0)
        assert (result.image_width, result.image_height) == (31, 41)
        assert result.warning is None

    def test_failed_detection_without_corners(self):
        result = DetectionResult.from_response({"success": False, "error": "bad image"})
        assert not result.success
        assert result.corners == ()
        assert result.error == "bad image"

    def test_detection_response_round_trip_fields(self, detection):
        payload = detection.to_response()
        assert payload["fileId"] == "file-1"
        assert payload["imageSize"] == {"width": 100, "height": 80}

    def test_finalize_from_response(self):
        result = FinalizeResult.from_response({
            "success": True,
            "croppedUrl": "https://backend/c.jpg",
            "dimensions": {"width": 300, "height": 400},
        })
        assert result.cropped_url == "https://backend/c.jpg"
        assert result.width == 300
