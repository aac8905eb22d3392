"""File checks applied before an item is created."""

from typing import Iterable, List, Optional, Tuple

from .collaborators import UploadedFile
from .errors import ValidationError

ALLOWED_TYPES = ("image/png", "image/jpeg", "image/jpg", "application/pdf")
ALLOWED_EXTENSIONS = ("png", "jpg", "jpeg", "pdf")
MAX_FILE_SIZE = 10 * 1024 * 1024


def validate_file(file: UploadedFile, max_size: int = MAX_FILE_SIZE) -> Optional[str]:
    """Return a user-facing message if ``file`` is rejected, else None."""
    if file.resolved_type not in ALLOWED_TYPES:
        return f"{file.name}: Only PNG, JPEG, and PDF files are supported"
    if file.size > max_size:
        limit_mb = max_size / (1024 * 1024)
        return f"{file.name}: File size must be less than {limit_mb:g}MB"
    if file.size == 0:
        return f"{file.name}: File is empty"
    return None


def validate_files(
    files: Iterable[UploadedFile], max_size: int = MAX_FILE_SIZE
) -> Tuple[List[UploadedFile], List[str]]:
    """Split ``files`` into accepted files and rejection messages."""
    accepted, messages = [], []
    for file in files:
        message = validate_file(file, max_size)
        if message is None:
            accepted.append(file)
        else:
            messages.append(message)
    return accepted, messages


def ensure_valid(files: Iterable[UploadedFile], max_size: int = MAX_FILE_SIZE) -> List[UploadedFile]:
    accepted, messages = validate_files(files, max_size)
    if messages:
        raise ValidationError("\n".join(messages))
    return accepted
