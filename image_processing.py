"""
Image helpers: decoding, encoding, orientation and cleanup of cropped
documents.
"""

import base64
import io

import cv2
import fitz  # PyMuPDF
import numpy as np
from PIL import Image, ImageOps

from docscan.collaborators import UploadedFile

PDF_RENDER_DPI = 150


def bytes_to_base64(image_bytes: bytes) -> str:
    """Convert image bytes to base64 string."""
    return base64.b64encode(image_bytes).decode('utf-8')


def to_data_url(image_bytes: bytes, content_type: str = 'image/jpeg') -> str:
    """Wrap bytes in a ``data:`` URL."""
    return f"data:{content_type};base64,{bytes_to_base64(image_bytes)}"


def from_data_url(url: str) -> bytes:
    """Decode the payload of a base64 ``data:`` URL."""
    header, _, payload = url.partition(',')
    if not header.startswith('data:') or ';base64' not in header:
        raise ValueError("Not a base64 data URL")
    return base64.b64decode(payload)


def load_pil(image_bytes: bytes) -> Image.Image:
    """
    Decode bytes into an RGB PIL image with EXIF orientation applied.

    Raises:
        ValueError: If the bytes are not a decodable image
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (OSError, Image.DecompressionBombError) as exc:
        raise ValueError(f"Cannot decode image: {exc}") from exc

    image = ImageOps.exif_transpose(image)
    if image.mode != 'RGB':
        image = image.convert('RGB')
    return image


def pdf_first_page_to_jpeg(pdf_bytes: bytes, dpi: int = PDF_RENDER_DPI, quality: int = 92) -> bytes:
    """
    Render the first page of a PDF as JPEG bytes.

    Raises:
        ValueError: If the bytes are not a readable PDF or it has no pages
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise ValueError(f"Cannot open PDF: {exc}") from exc

    try:
        if doc.page_count == 0:
            raise ValueError("PDF has no pages")
        page = doc.load_page(0)
        mat = fitz.Matrix(dpi / 72, dpi / 72)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        image = Image.open(io.BytesIO(pix.tobytes("png")))
        image.load()
    finally:
        doc.close()

    buf = io.BytesIO()
    image.convert('RGB').save(buf, format='JPEG', quality=quality)
    return buf.getvalue()


def rasterize_upload(file: UploadedFile) -> UploadedFile:
    """PDFs become a JPEG of their first page; images pass through unchanged."""
    if file.resolved_type != 'application/pdf' and file.extension != 'pdf':
        return file
    stem = file.name.rsplit('.', 1)[0] if file.extension else file.name
    return UploadedFile(
        name=f"{stem}.jpg",
        content=pdf_first_page_to_jpeg(file.content),
        content_type='image/jpeg',
    )


def pil_to_cv2(image: Image.Image) -> np.ndarray:
    """Convert an RGB PIL image to an OpenCV BGR array."""
    return cv2.cvtColor(np.array(image.convert('RGB')), cv2.COLOR_RGB2BGR)


def decode_cv2(image_bytes: bytes) -> np.ndarray:
    """Decode bytes into an orientation-corrected BGR array."""
    return pil_to_cv2(load_pil(image_bytes))


def cv2_to_bytes(image: np.ndarray, format: str = 'JPEG', quality: int = 95) -> bytes:
    """Encode an OpenCV image."""
    if format.upper() == 'JPEG':
        ext = '.jpg'
        params = [cv2.IMWRITE_JPEG_QUALITY, quality]
    else:
        ext = '.png'
        params = [cv2.IMWRITE_PNG_COMPRESSION, 3]

    ok, buffer = cv2.imencode(ext, image, params)
    if not ok:
        raise ValueError(f"Cannot encode image as {format}")
    return buffer.tobytes()


def enhance_document(image: np.ndarray) -> np.ndarray:
    """
    Improve legibility of a scanned page.

    Equalizes luminance locally with CLAHE and applies a mild unsharp mask.

    Args:
        image: BGR image

    Returns:
        Enhanced BGR image
    """
    lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
    l, a, b = cv2.split(lab)
    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    l = clahe.apply(l)
    equalized = cv2.cvtColor(cv2.merge((l, a, b)), cv2.COLOR_LAB2BGR)

    blurred = cv2.GaussianBlur(equalized, (0, 0), 2.0)
    return cv2.addWeighted(equalized, 1.5, blurred, -0.5, 0)


def auto_trim(image: np.ndarray, tolerance: int = 12, max_trim_ratio: float = 0.1) -> np.ndarray:
    """
    Remove near-uniform borders left around the page after warping.

    Each side is trimmed while its outermost row or column stays within
    ``tolerance`` of that row's median, up to ``max_trim_ratio`` of the size.

    Args:
        image: BGR image
        tolerance: Maximum per-pixel deviation still considered uniform
        max_trim_ratio: Upper bound on how much of each side may be removed

    Returns:
        Trimmed image (a view of the input)
    """
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    h, w = gray.shape
    max_y = int(h * max_trim_ratio)
    max_x = int(w * max_trim_ratio)

    def uniform(line: np.ndarray) -> bool:
        return bool(np.all(np.abs(line.astype(np.int16) - int(np.median(line))) <= tolerance))

    top = 0
    while top < max_y and uniform(gray[top, :]):
        top += 1
    bottom = h
    while h - bottom < max_y and uniform(gray[bottom - 1, :]):
        bottom -= 1
    left = 0
    while left < max_x and uniform(gray[top:bottom, left]):
        left += 1
    right = w
    while w - right < max_x and uniform(gray[top:bottom, right - 1]):
        right -= 1

    if bottom - top < 2 or right - left < 2:
        return image
    return image[top:bottom, left:right]
