"""Image lifecycle: reconcile a desired image list with blob storage.

Reconciliation is split in two phases so a failed relational write never
loses data:

1. :meth:`MediaManager.prepare` uploads new images and computes the final
   reference list plus the blobs that would become unreferenced. Nothing
   is deleted.
2. After the row is written, :meth:`MediaManager.commit` deletes the
   unreferenced blobs. If the write failed, :meth:`MediaManager.discard`
   removes the fresh uploads instead.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import secrets
import time
from collections.abc import Iterable, Sequence

from fleetsync._constants import MAX_IMAGE_BYTES, UPLOAD_DELAY_SECONDS
from fleetsync._timeout import Operation, TimeoutGuard
from fleetsync.exceptions import BlobStoreError, ImageDecodeError, MediaError, OperationTimeoutError
from fleetsync.models import DecodedImage, ImageEntry, InlineImage, StoredImage
from fleetsync.stores.base import BlobDeleteStatus, BlobStore

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class MediaPlan:
    """Outcome of :meth:`MediaManager.prepare`.

    Attributes
    ----------
    final_urls : tuple[str, ...]
        Ordered references to persist. The first one is the primary image.
    uploaded : tuple[str, ...]
        References created by this plan.
    removed : tuple[str, ...]
        Previously stored references absent from ``final_urls``.
    failures : tuple[str, ...]
        One message per desired entry that could not be used.
    """

    final_urls: tuple[str, ...] = ()
    uploaded: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    failures: tuple[str, ...] = ()

    @classmethod
    def unchanged(cls, current: Sequence[str]) -> MediaPlan:
        return cls(final_urls=tuple(current))


def blob_path(namespace: str, image: DecodedImage) -> str:
    """Storage path for a new image: ``<namespace>/<ms>-<random>.<ext>``."""
    stamp = int(time.time() * 1000)
    return f"{namespace}/{stamp}-{secrets.token_hex(4)}.{image.extension}"


class MediaManager:
    """Uploads, keeps and deletes vehicle images.

    Parameters
    ----------
    blobs : BlobStore
        Target blob storage.
    guard : TimeoutGuard
        Time budget for each upload and delete.
    upload_delay : float
        Pause between two consecutive uploads of one batch.
    max_image_bytes : int
        Largest accepted decoded image.
    """

    def __init__(
        self,
        blobs: BlobStore,
        guard: TimeoutGuard,
        *,
        upload_delay: float = UPLOAD_DELAY_SECONDS,
        max_image_bytes: int = MAX_IMAGE_BYTES,
    ) -> None:
        self._blobs = blobs
        self._guard = guard
        self._upload_delay = upload_delay
        self._max_image_bytes = max_image_bytes

    async def prepare(
        self,
        current: Sequence[str],
        desired: Sequence[ImageEntry],
        *,
        namespace: str,
        allow_empty: bool = False,
    ) -> MediaPlan:
        """Upload new entries and compute the final reference list.

        Entries are processed in order. A failing entry is recorded and
        skipped, the rest of the batch continues. A stored reference is only
        kept if it is part of *current*.

        Raises
        ------
        MediaError
            No usable image remained and *allow_empty* is false.
        """
        stored = set(current)
        final: list[str] = []
        uploaded: list[str] = []
        failures: list[str] = []
        attempted_upload = False

        for position, entry in enumerate(desired, start=1):
            if isinstance(entry, StoredImage):
                if entry.url not in stored:
                    failures.append(f"Image {position}: reference is not stored for this vehicle")
                elif entry.url in final:
                    _logger.debug("Skipping duplicate image reference at position %d", position)
                else:
                    final.append(entry.url)
                continue

            if attempted_upload and self._upload_delay > 0:
                await asyncio.sleep(self._upload_delay)
            attempted_upload = True
            try:
                url = await self._upload(entry, namespace)
            except (ImageDecodeError, BlobStoreError, OperationTimeoutError) as exc:
                _logger.warning("Image %d could not be uploaded: %s", position, exc)
                failures.append(f"Image {position}: {exc}")
                continue
            uploaded.append(url)
            final.append(url)

        if not final and not allow_empty:
            detail = f" ({'; '.join(failures)})" if failures else ""
            raise MediaError(f"At least one image is required. No image could be saved{detail}.", failures=failures)

        removed = tuple(url for url in current if url not in final)
        plan = MediaPlan(
            final_urls=tuple(final),
            uploaded=tuple(uploaded),
            removed=removed,
            failures=tuple(failures),
        )
        _logger.debug(
            "Media plan for %s: %d kept, %d uploaded, %d to remove, %d failed",
            namespace,
            len(final) - len(uploaded),
            len(uploaded),
            len(removed),
            len(failures),
        )
        return plan

    async def commit(self, plan: MediaPlan) -> list[str]:
        """Delete the references the plan dropped. Returns those that could not be deleted."""
        return await self.purge(plan.removed)

    async def discard(self, plan: MediaPlan) -> list[str]:
        """Delete the references the plan uploaded. Returns those that could not be deleted."""
        return await self.purge(plan.uploaded)

    async def purge(self, urls: Iterable[str]) -> list[str]:
        """Best-effort delete of *urls*.

        Failures are logged and returned, never raised: an orphaned blob
        is tolerated.
        """
        failed: list[str] = []
        for url in urls:
            try:
                status = await self._guard.run(
                    Operation.DELETE,
                    self._blobs.delete(url),
                    "Failed to delete image. The request timed out.",
                )
            except (BlobStoreError, OperationTimeoutError) as exc:
                _logger.warning("Could not delete image %s: %s", url, exc)
                failed.append(url)
                continue
            if status == BlobDeleteStatus.NOT_FOUND:
                _logger.debug("Image %s was already gone", url)
        return failed

    async def _upload(self, entry: InlineImage, namespace: str) -> str:
        image = entry.decode(max_bytes=self._max_image_bytes)
        path = blob_path(namespace, image)
        _logger.debug("Uploading %d bytes (%s) to %s", image.size, image.content_type, path)
        return await self._guard.run(
            Operation.UPLOAD,
            self._blobs.upload(image.data, image.content_type, path),
            "Image upload timed out. Please try again.",
        )
