"""In-memory object URLs for locally displayable file bytes."""

import logging
import uuid
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class ObjectUrlRegistry:
    """Issues ``blob:`` URLs for bytes and releases them on request.

    Each URL is owned by whoever created it and must be revoked exactly once.
    """

    PREFIX = "blob:docscan/"

    def __init__(self):
        self._objects: Dict[str, Tuple[bytes, str]] = {}

    def create(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        url = f"{self.PREFIX}{uuid.uuid4()}"
        self._objects[url] = (data, content_type)
        return url

    def resolve(self, url: str) -> bytes:
        try:
            return self._objects[url][0]
        except KeyError:
            raise KeyError(f"Object URL is not live: {url}") from None

    def content_type(self, url: str) -> str:
        return self._objects[url][1]

    def revoke(self, url: str) -> bool:
        if self._objects.pop(url, None) is None:
            logger.warning("Attempted to revoke unknown object URL %s", url)
            return False
        return True

    def is_live(self, url: str) -> bool:
        return url in self._objects

    @property
    def live_count(self) -> int:
        return len(self._objects)
