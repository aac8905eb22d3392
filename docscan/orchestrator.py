"""Owns the item collection and drives every item through its lifecycle.

Async flows never touch the collection directly. Each flow ends in a result
message tagged with the item id and its cancel token; ``_dispatch`` applies
messages one at a time through the pure ``reduce`` function and swaps in the
new immutable snapshot, so observers never see a half-applied update.
"""

import asyncio
import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .collaborators import (
    Credentials,
    Detector,
    DocumentPage,
    DurableStore,
    Finalizer,
    Lister,
    UploadedFile,
)
from .errors import (
    AuthError,
    DetectionError,
    DocScanError,
    FinalizeError,
    OperationInProgressError,
    UploadError,
)
from .geometry import Quadrilateral, to_submission
from .lifecycle import CancelToken, DetectionResult, Item, ItemStatus
from .resources import ObjectUrlRegistry

logger = logging.getLogger(__name__)

Collection = Tuple[Item, ...]


# -- messages ---------------------------------------------------------------

@dataclass(frozen=True)
class ItemsAdded:
    items: Tuple[Item, ...]


@dataclass(frozen=True)
class ItemRemoved:
    item_id: str


@dataclass(frozen=True)
class ItemsPruned:
    item_ids: Tuple[str, ...]


@dataclass(frozen=True)
class Cleared:
    pass


@dataclass(frozen=True)
class BoundaryEdited:
    item_id: str
    corners: Quadrilateral


@dataclass(frozen=True)
class DetectionStarted:
    item_id: str
    token: CancelToken


@dataclass(frozen=True)
class DetectionSucceeded:
    item_id: str
    token: CancelToken
    result: DetectionResult


@dataclass(frozen=True)
class DetectionFailed:
    item_id: str
    token: CancelToken
    message: str


@dataclass(frozen=True)
class FinalizeStarted:
    item_id: str
    token: CancelToken
    corners: Quadrilateral


@dataclass(frozen=True)
class FinalizeSucceeded:
    item_id: str
    token: CancelToken
    cropped_url: str


@dataclass(frozen=True)
class FinalizeFailed:
    item_id: str
    token: CancelToken
    message: str


def _replace_item(items: Collection, item_id: str, update: Callable[[Item], Item]) -> Collection:
    return tuple(update(item) if item.id == item_id else item for item in items)


def _find(items: Collection, item_id: str) -> Optional[Item]:
    for item in items:
        if item.id == item_id:
            return item
    return None


def reduce(items: Collection, message) -> Collection:
    """Apply one message to the collection and return the new snapshot.

    Results for items that are gone, or whose cancel token was invalidated,
    leave the collection unchanged.
    """
    if isinstance(message, ItemsAdded):
        existing = {item.id for item in items}
        for item in message.items:
            if item.id in existing:
                raise ValueError(f"Duplicate item id: {item.id}")
            existing.add(item.id)
        return items + tuple(message.items)

    if isinstance(message, ItemRemoved):
        return tuple(item for item in items if item.id != message.item_id)

    if isinstance(message, ItemsPruned):
        pruned = set(message.item_ids)
        return tuple(item for item in items if item.id not in pruned)

    if isinstance(message, Cleared):
        return ()

    if isinstance(message, BoundaryEdited):
        if _find(items, message.item_id) is None:
            return items
        return _replace_item(items, message.item_id, lambda i: i.with_working(message.corners))

    target = _find(items, message.item_id)
    if target is None or message.token.cancelled or target.token is not message.token:
        logger.debug("Dropping %s for stale item %s", type(message).__name__, message.item_id)
        return items

    if isinstance(message, DetectionStarted):
        return _replace_item(items, message.item_id, lambda i: i.start_detection())
    if isinstance(message, DetectionSucceeded):
        return _replace_item(items, message.item_id, lambda i: i.detection_succeeded(message.result))
    if isinstance(message, DetectionFailed):
        return _replace_item(items, message.item_id, lambda i: i.detection_failed(message.message))
    if isinstance(message, FinalizeStarted):
        return _replace_item(items, message.item_id, lambda i: i.start_processing(message.corners))
    if isinstance(message, FinalizeSucceeded):
        return _replace_item(items, message.item_id, lambda i: i.processing_succeeded(message.cropped_url))
    if isinstance(message, FinalizeFailed):
        return _replace_item(items, message.item_id, lambda i: i.processing_failed(message.message))

    raise TypeError(f"Unknown message: {message!r}")


def _require(credentials: Optional[Credentials]) -> Credentials:
    if credentials is None or not credentials.owner_id:
        raise AuthError("User not authenticated")
    return credentials


def _new_id() -> str:
    return uuid.uuid4().hex


class Orchestrator:
    """The item collection and the operations the presentation layer calls."""

    def __init__(
        self,
        detector: Detector,
        finalizer: Finalizer,
        store: Optional[DurableStore] = None,
        lister: Optional[Lister] = None,
        resources: Optional[ObjectUrlRegistry] = None,
        enhance: bool = True,
        auto_trim: bool = True,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.detector = detector
        self.finalizer = finalizer
        self.store = store
        self.lister = lister
        self.resources = resources or ObjectUrlRegistry()
        self.enhance = enhance
        self.auto_trim = auto_trim
        self._id_factory = id_factory
        self._items: Collection = ()
        self._subscribers: List[Callable[[Collection], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._saving = False

    # -- observation ------------------------------------------------------

    @property
    def items(self) -> Collection:
        return self._items

    def get(self, item_id: str) -> Optional[Item]:
        return _find(self._items, item_id)

    def subscribe(self, callback: Callable[[Collection], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def counts(self) -> Dict[ItemStatus, int]:
        counter = Counter(item.status for item in self._items)
        return {status: counter.get(status, 0) for status in ItemStatus}

    @property
    def busy(self) -> bool:
        return self._saving or any(item.in_flight for item in self._items)

    @property
    def saving(self) -> bool:
        return self._saving

    def _dispatch(self, message) -> Collection:
        updated = reduce(self._items, message)
        if updated is not self._items:
            self._items = updated
            for callback in list(self._subscribers):
                callback(updated)
        return updated

    # -- operations -------------------------------------------------------

    def add_files(self, files: Iterable[UploadedFile], credentials: Optional[Credentials]) -> List[str]:
        """Create one pending item per file and start detecting each of them.

        Must be called from a running event loop; detections run concurrently
        and are not awaited here (see ``wait_idle``).
        """
        credentials = _require(credentials)
        loop = asyncio.get_running_loop()

        new_items = []
        for file in files:
            local_url = self.resources.create(file.content, file.resolved_type or "application/octet-stream")
            new_items.append(Item(id=self._id_factory(), file=file, local_url=local_url))
        if not new_items:
            return []

        self._dispatch(ItemsAdded(tuple(new_items)))
        logger.info("Added %d item(s)", len(new_items))

        for item in new_items:
            task = loop.create_task(self._detect(item.id, item.token, item.file, credentials))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return [item.id for item in new_items]

    async def _detect(self, item_id: str, token: CancelToken, file: UploadedFile, credentials: Credentials):
        if token.cancelled:
            return
        self._dispatch(DetectionStarted(item_id, token))
        try:
            result = await self.detector.detect(file, credentials)
            if not result.success:
                raise DetectionError(result.error or "Document detection failed")
            if len(result.corners) != 4:
                raise DetectionError(f"Detector returned {len(result.corners)} corners")
        except DocScanError as exc:
            logger.warning("Detection failed for %s (%s): %s", file.name, item_id, exc)
            self._dispatch(DetectionFailed(item_id, token, str(exc) or "Detection failed"))
            return
        except Exception as exc:
            logger.exception("Unexpected error detecting %s (%s)", file.name, item_id)
            self._dispatch(DetectionFailed(item_id, token, str(exc) or "Detection failed"))
            return

        logger.info(
            "Detected %s (%s) via %s, confidence %.2f",
            file.name, item_id, result.method, result.confidence,
        )
        self._dispatch(DetectionSucceeded(item_id, token, result))

    async def wait_idle(self):
        """Wait for every outstanding detection flow to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def update_boundary(self, item_id: str, corners: Quadrilateral):
        """Record the editor's working quadrilateral on the item."""
        self._dispatch(BoundaryEdited(item_id, tuple(corners)))

    async def confirm_one(
        self,
        item_id: str,
        corners: Optional[Quadrilateral],
        credentials: Optional[Credentials],
    ) -> Optional[Item]:
        """Finalize one item with the confirmed boundary.

        Raises:
            AuthError: No credentials.
            FinalizeError: The item cannot be finalized (missing, not
                detected, no detection file id, or a boundary that is not
                four corners). Failures of the finalize call itself are
                recorded on the item instead.
        """
        credentials = _require(credentials)
        item = self.get(item_id)
        if item is None or item.detection is None or not item.detection.file_id:
            raise FinalizeError("Missing file ID from detection")
        if item.status is not ItemStatus.DETECTED:
            raise FinalizeError(f"{item.filename} is not ready to process ({item.status.value})")

        corners = tuple(corners) if corners else item.working
        try:
            submission = to_submission(corners)
        except (TypeError, ValueError) as exc:
            raise FinalizeError(f"Invalid boundary: {exc}") from exc

        token = item.token
        self._dispatch(FinalizeStarted(item_id, token, corners))

        try:
            result = await self.finalizer.finalize(
                item.detection.file_id,
                submission,
                credentials,
                enhance=self.enhance,
                auto_trim=self.auto_trim,
            )
            if not result.success:
                raise FinalizeError(result.error or "Processing failed")
        except DocScanError as exc:
            logger.warning("Finalize failed for %s (%s): %s", item.filename, item_id, exc)
            self._dispatch(FinalizeFailed(item_id, token, str(exc) or "Processing failed"))
            return self.get(item_id)
        except Exception as exc:
            logger.exception("Unexpected error finalizing %s (%s)", item.filename, item_id)
            self._dispatch(FinalizeFailed(item_id, token, str(exc) or "Processing failed"))
            return self.get(item_id)

        logger.info("Finalized %s (%s)", item.filename, item_id)
        self._dispatch(FinalizeSucceeded(item_id, token, result.cropped_url))
        return self.get(item_id)

    async def confirm_all(self, credentials: Optional[Credentials]) -> List[Item]:
        """Finalize every detected item, strictly one after another."""
        credentials = _require(credentials)
        pending = [item.id for item in self._items if item.status is ItemStatus.DETECTED]
        finished = []
        for item_id in pending:
            item = self.get(item_id)
            if item is None or item.status is not ItemStatus.DETECTED:
                continue
            result = await self.confirm_one(item_id, item.working, credentials)
            if result is not None:
                finished.append(result)
        return finished

    def remove_one(self, item_id: str) -> bool:
        """Drop an item and release its local URL.

        In-flight detection results for the item are discarded when they
        arrive. Items being finalized cannot be removed.
        """
        item = self.get(item_id)
        if item is None:
            return False
        if item.status is ItemStatus.PROCESSING:
            raise OperationInProgressError(f"{item.filename} is still processing")
        item.token.cancel()
        self.resources.revoke(item.local_url)
        self._dispatch(ItemRemoved(item_id))
        logger.info("Removed %s (%s)", item.filename, item_id)
        return True

    async def save_all(self, credentials: Optional[Credentials]) -> int:
        """Upload every completed item, then prune them from the collection.

        A failing upload aborts the pass: nothing is pruned and items saved
        before the failure are left as they are in the store.

        Returns:
            Number of documents saved.
        """
        if self._saving:
            raise OperationInProgressError("A save is already in progress")
        credentials = _require(credentials)
        if self.store is None:
            raise UploadError("No document store configured")

        completed = [item for item in self._items if item.status is ItemStatus.COMPLETED]
        if not completed:
            return 0

        self._saving = True
        saved: List[Item] = []
        try:
            for item in completed:
                if not item.cropped_url:
                    continue
                await self._save_item(item, credentials)
                saved.append(item)
        except DocScanError as exc:
            logger.exception("Save aborted after %d of %d document(s)", len(saved), len(completed))
            if isinstance(exc, UploadError):
                raise
            raise UploadError(str(exc) or "Failed to save documents") from exc
        finally:
            self._saving = False

        for item in saved:
            self.resources.revoke(item.local_url)
        self._dispatch(ItemsPruned(tuple(item.id for item in saved)))
        logger.info("Saved %d document(s)", len(saved))
        return len(saved)

    async def _save_item(self, item: Item, credentials: Credentials):
        cropped = await self.finalizer.download(item.cropped_url, credentials)
        urls = await asyncio.to_thread(
            self.store.upload, credentials.owner_id, item.filename, item.file.content, [cropped]
        )
        metadata = {
            "fileSize": item.file.size,
            "fileType": item.file.extension,
        }
        if item.detection is not None:
            metadata.update({
                "dimensions": {
                    "width": item.detection.image_width,
                    "height": item.detection.image_height,
                },
                "confidence": item.detection.confidence,
                "method": item.detection.method,
                "corners": to_submission(item.working),
            })
        await asyncio.to_thread(
            self.store.save_metadata,
            credentials.owner_id,
            item.filename,
            urls.original_url,
            urls.processed_urls,
            metadata,
        )

    def clear_all(self):
        """Release every local URL and empty the collection."""
        if self.busy:
            raise OperationInProgressError("Cannot clear while documents are being processed")
        for item in self._items:
            item.token.cancel()
            self.resources.revoke(item.local_url)
        self._dispatch(Cleared())

    def list_saved(
        self, credentials: Optional[Credentials], limit: int = 20, cursor: Optional[str] = None
    ) -> DocumentPage:
        credentials = _require(credentials)
        if self.lister is None:
            return DocumentPage(documents=[], has_more=False)
        return self.lister.list_documents(credentials.owner_id, limit=limit, cursor=cursor)
