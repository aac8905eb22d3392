"""
Unit tests for local_backend.LocalBackend.
"""
import cv2
import fitz
import numpy as np
import pytest

from docscan import AuthError, Credentials, DetectionError, FinalizeError, UploadError, UploadedFile
from image_processing import decode_cv2, pdf_first_page_to_jpeg, rasterize_upload
from local_backend import LocalBackend


def make_pdf(width=288, height=192):
    doc = fitz.open()
    page = doc.new_page(width=width, height=height)
    page.draw_rect(fitz.Rect(0, 0, width, height), color=(0.15, 0.15, 0.15), fill=(0.15, 0.15, 0.15))
    page.draw_rect(fitz.Rect(72, 36, 216, 156), color=(1, 1, 1), fill=(1, 1, 1))
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def backend():
    return LocalBackend()


@pytest.fixture
def sheet(document_image_bytes):
    return UploadedFile(name="sheet.png", content=document_image_bytes, content_type="image/png")


class TestDetect:
    """Tests for in-process detection."""

    @pytest.mark.asyncio
    async def test_detects_sheet(self, backend, sheet, credentials):
        result = await backend.detect(sheet, credentials)

        assert result.success
        assert result.file_id.startswith("user-1-")
        assert (result.image_width, result.image_height) == (600, 400)
        assert len(result.corners) == 4
        assert abs(result.corners[0].x - 120) < 12
        assert result.method != "fallback"
        assert result.preview_url.startswith(LocalBackend.URL_PREFIX)

    @pytest.mark.asyncio
    async def test_falls_back_to_inset_frame(self, backend, credentials):
        blank = cv2.imencode('.png', np.full((100, 200, 3), 128, dtype=np.uint8))[1].tobytes()
        result = await backend.detect(UploadedFile("blank.png", blank, "image/png"), credentials)

        assert result.method == "fallback"
        assert result.confidence == 0.0
        assert result.warning
        assert result.corners[0] == (10.0, 5.0)

    @pytest.mark.asyncio
    async def test_undecodable_file(self, backend, credentials):
        with pytest.raises(DetectionError):
            await backend.detect(UploadedFile("broken.png", b"nope", "image/png"), credentials)


    @pytest.mark.asyncio
    async def test_detects_first_page_of_pdf(self, backend, credentials):
        pdf = UploadedFile("scan.pdf", make_pdf(), "application/pdf")
        result = await backend.detect(pdf, credentials)

        # 150 dpi render of a 288x192 pt page
        assert (result.image_width, result.image_height) == (600, 400)
        assert result.method != "fallback"
        assert abs(result.corners[0].x - 150) < 15
        source = await backend.download(result.original_url, credentials)
        assert decode_cv2(source).shape[:2] == (400, 600)

    @pytest.mark.asyncio
    async def test_broken_pdf(self, backend, credentials):
        with pytest.raises(DetectionError, match="PDF"):
            await backend.detect(UploadedFile("broken.pdf", b"%PDF-nope", "application/pdf"), credentials)
    @pytest.mark.asyncio
    async def test_requires_owner(self, backend, sheet):
        with pytest.raises(AuthError):
            await backend.detect(sheet, Credentials(owner_id=""))


class TestFinalize:
    """Tests for in-process cropping."""

    @pytest.mark.asyncio
    async def test_crop_and_download(self, backend, sheet, credentials):
        detected = await backend.detect(sheet, credentials)
        corners = [[120, 60], [480, 60], [480, 340], [120, 340]]

        result = await backend.finalize(detected.file_id, corners, credentials, enhance=False, auto_trim=False)

        assert result.success
        assert (result.width, result.height) == (360, 280)
        cropped = decode_cv2(await backend.download(result.cropped_url, credentials))
        assert cropped.shape[:2] == (280, 360)
        assert backend.data_url(result.cropped_url).startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_unknown_file_id(self, backend, credentials):
        with pytest.raises(FinalizeError):
            await backend.finalize("missing", [[0, 0]] * 4, credentials)

    @pytest.mark.asyncio
    async def test_wrong_corner_count(self, backend, sheet, credentials):
        detected = await backend.detect(sheet, credentials)
        with pytest.raises(FinalizeError):
            await backend.finalize(detected.file_id, [[0, 0]] * 3, credentials)

    @pytest.mark.asyncio
    async def test_unknown_download(self, backend, credentials):
        with pytest.raises(UploadError):
            await backend.download("local://nothing", credentials)


class TestRasterizeUpload:
    """Tests for turning PDF uploads into page images."""

    def test_pdf_becomes_jpeg(self):
        page = rasterize_upload(UploadedFile("report.final.pdf", make_pdf(), "application/pdf"))

        assert page.name == "report.final.jpg"
        assert page.content_type == "image/jpeg"
        assert page.content[:3] == b"\xff\xd8\xff"

    def test_pdf_detected_by_extension(self):
        page = rasterize_upload(UploadedFile("scan.PDF", make_pdf(), ""))
        assert page.content_type == "image/jpeg"

    def test_images_pass_through(self, png_file):
        assert rasterize_upload(png_file) is png_file

    def test_render_resolution(self):
        image = decode_cv2(pdf_first_page_to_jpeg(make_pdf(144, 72), dpi=100))
        assert image.shape[:2] == (100, 200)

    def test_empty_pdf(self):
        with pytest.raises(ValueError):
            pdf_first_page_to_jpeg(b"")
