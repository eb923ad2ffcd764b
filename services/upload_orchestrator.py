"""Upload transaction: resize, store, record, then best-effort analysis.

Files in a batch are processed one at a time. For each file the bytes are
written to the object store under a fresh key and a record referencing that
key is inserted; if the insert fails the object is deleted again before the
error is surfaced, so no object is left without a record. A storage or
record failure stops the batch; files committed before it stay committed.

Once every file is committed the records are analyzed one by one. Analysis
is best-effort: every record ends with `is_analyzed = True`, classification
fields are only written for relevant results, and no analysis problem ever
reaches the caller as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Awaitable, Callable, Dict, List, Optional

from models.analysis import AnalysisResult
from models.image_record import ImageRecord
from models.upload_batch import PendingFile, UploadBatch, UploadState, UserSession
from services.errors import (
    QuotaExceeded,
    RecordInsertFailed,
    StorageWriteFailed,
    Unauthenticated,
    UploadError,
)
from services.image_resizer import ImageResizer
from services.inference.sample_analyzer import SampleAnalyzer
from services.notifications import NotificationChannel

LOGGER = logging.getLogger(__name__)

MAX_IMAGES = 60
ANALYSIS_TIMEOUT = 120.0

ProgressCallback = Callable[[int, int], None]
RefetchCallback = Callable[[], Awaitable[Any]]


def check_quota(current_count: int, adding: int, limit: int = MAX_IMAGES) -> None:
    """Raise QuotaExceeded if `adding` more images would pass `limit`."""
    if current_count >= limit:
        raise QuotaExceeded(f"You have reached the maximum limit of {limit} images")
    if current_count + adding > limit:
        raise QuotaExceeded(f"You can only upload {limit - current_count} more image(s)")


@dataclass
class UploadOutcome:
    """Result of a completed batch."""

    records: List[ImageRecord]
    analyses: Dict[int, AnalysisResult] = field(default_factory=dict)
    notices: List[Dict[str, Any]] = field(default_factory=list)


class UploadOrchestrator:
    """Run the upload transaction for one user's batch.

    Args:
        session: The authenticated user the upload belongs to.
        object_store: Store with async `put`, `delete`, `download` and sync `public_url`.
        record_store: Store with async `insert(record)` and `update(id, user_id, **fields)`.
        analyzer: Optional caption + classification pipeline; None skips analysis.
        resizer: Used for files that were not resized at selection time.
        notifier: Channel receiving user-facing notices.
        on_progress: Called with `(completed, total)` after each committed file.
        on_refetch: Awaited after a batch finishes or stops part-way.
        clock: Returns Unix time in seconds; used for storage keys.
    """

    def __init__(
        self,
        session: UserSession,
        object_store: Any,
        record_store: Any,
        analyzer: Optional[SampleAnalyzer] = None,
        *,
        resizer: Optional[ImageResizer] = None,
        notifier: Optional[NotificationChannel] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_refetch: Optional[RefetchCallback] = None,
        max_images: int = MAX_IMAGES,
        analysis_timeout: float = ANALYSIS_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.object_store = object_store
        self.record_store = record_store
        self.analyzer = analyzer
        self.resizer = resizer or ImageResizer()
        self.notifier = notifier or NotificationChannel()
        self.on_progress = on_progress
        self.on_refetch = on_refetch
        self.max_images = max_images
        self.analysis_timeout = analysis_timeout
        self._clock = clock
        self._last_timestamp = 0

    def validate(self, adding: int, current_count: int) -> None:
        """Check quota and authentication before any side effect."""
        check_quota(current_count, adding, self.max_images)
        if not self.session.is_authenticated:
            raise Unauthenticated("You must be logged in to upload images")

    async def upload(self, batch: UploadBatch, current_count: int) -> UploadOutcome:
        """Upload every pending file in `batch`, then analyze the new records.

        On success the batch is emptied. When a file fails, the failed file and
        those already committed leave the batch; later files stay queued.

        Raises:
            ValueError: If the batch has no files.
            QuotaExceeded, Unauthenticated: Before anything is written.
            StorageWriteFailed, RecordInsertFailed: When a file fails mid-batch;
                `exc.committed` lists the records written before it.
        """
        if not batch.files:
            raise ValueError("No files selected for upload.")

        batch.state = UploadState.VALIDATING
        try:
            self.validate(len(batch.files), current_count)
        except UploadError as exc:
            batch.state = UploadState.ERROR
            self.notifier.error(exc.message)
            raise

        batch.state = UploadState.RESIZING
        await self._resize_pending(batch)

        batch.state = UploadState.UPLOADING
        pending = list(batch.files)
        batch.total, batch.completed = len(pending), 0
        records: List[ImageRecord] = []
        for index, item in enumerate(pending):
            try:
                record = await self._upload_one(item)
            except UploadError as exc:
                batch.state = UploadState.ERROR
                batch.files = pending[index + 1:]
                exc.committed = records
                LOGGER.error("Upload failed after %d of %d file(s): %s", len(records), len(pending), exc.message)
                self.notifier.error(exc.message)
                await self._refetch()
                raise
            records.append(record)
            batch.completed += 1
            if self.on_progress is not None:
                self.on_progress(batch.completed, batch.total)

        self.notifier.success(f"Successfully uploaded {len(records)} image(s)")

        batch.state = UploadState.CLASSIFYING
        analyses = await self.classify_records(records)

        batch.files = []
        batch.state = UploadState.DONE
        await self._refetch()
        return UploadOutcome(records=records, analyses=analyses, notices=self.notifier.as_dicts())

    async def _resize_pending(self, batch: UploadBatch) -> None:
        raw = [f for f in batch.files if not f.resized]
        if not raw:
            return
        results = await self.resizer.resize_many([(f.data, f.name, f.content_type) for f in raw])
        for item, result in zip(raw, results):
            item.data = result.data
            item.content_type = result.content_type
            item.new_size = result.new_size
            item.was_compressed = result.was_compressed
            item.resized = True

    def storage_key(self, filename: str) -> str:
        """Return `{user_id}/{ms_timestamp}_{basename}` with a strictly increasing timestamp."""
        timestamp = int(self._clock() * 1000)
        if timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + 1
        self._last_timestamp = timestamp
        basename = PurePosixPath(filename.replace("\\", "/")).name or "upload"
        return f"{self.session.user_id}/{timestamp}_{basename}"

    async def _upload_one(self, item: PendingFile) -> ImageRecord:
        key = self.storage_key(item.name)
        try:
            await self.object_store.put(key, item.data, item.content_type, overwrite=False)
        except Exception as exc:
            raise StorageWriteFailed(f"Failed to upload {item.name}: {exc}", cause=exc) from exc

        record = ImageRecord(
            id=None,
            user_id=self.session.user_id,
            storage_path=key,
            image_url=self.object_store.public_url(key),
            file_name=item.name,
        )
        try:
            return await self.record_store.insert(record)
        except Exception as exc:
            await self._compensate(key)
            raise RecordInsertFailed(f"Failed to save image record for {item.name}: {exc}", cause=exc) from exc

    async def _compensate(self, key: str) -> None:
        """Delete the object written for a record that could not be inserted."""
        try:
            await self.object_store.delete(key)
        except Exception:
            LOGGER.exception("Compensating delete failed; object %s has no record", key)

    async def classify_records(self, records: List[ImageRecord]) -> Dict[int, AnalysisResult]:
        """Analyze each record in turn; never raises."""
        if self.analyzer is None or not records:
            return {}

        self.notifier.info("Analyzing your sample...", key="analyzing")
        results: Dict[int, AnalysisResult] = {}
        try:
            for record in records:
                results[record.id] = await self._classify_one(record)
        except Exception:
            LOGGER.exception("Analysis error")
            self.notifier.error("Failed to analyze images - you can try again later", key="analyzing")
            return results

        relevant = sum(1 for r in results.values() if r.success and r.is_relevant)
        self.notifier.notify(
            "success" if relevant else "info",
            f"Analysis finished for {len(results)} image(s), {relevant} with results",
            key="analyzing",
        )
        return results

    async def _classify_one(self, record: ImageRecord) -> AnalysisResult:
        content_type = mimetypes.guess_type(record.file_name or record.storage_path)[0] or "application/octet-stream"
        try:
            data = await self.object_store.download(record.storage_path)
            analysis = await asyncio.wait_for(self.analyzer.analyze(data, content_type), self.analysis_timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Analysis of image %s timed out after %ss", record.id, self.analysis_timeout)
            analysis = AnalysisResult.failed("Failed to analyze image", "analysis timed out")
        except Exception as exc:
            LOGGER.warning("Analysis of image %s failed: %s", record.id, exc)
            analysis = AnalysisResult.failed("Failed to analyze image", str(exc))

        if analysis.success and analysis.is_relevant:
            fields: Dict[str, Any] = {
                "bristol_score": analysis.bristol_score,
                "size_score": analysis.size_estimation,
                "health_indicators": analysis.health_indicators,
                "analysis_notes": analysis.notes,
                "warnings": analysis.warnings,
                "is_analyzed": True,
            }
        else:
            fields = {"is_analyzed": True}
            if analysis.success:
                self.notifier.error(f"{record.file_name or 'Image'} does not appear to be a valid sample")
            else:
                self.notifier.error(f"Analysis failed for {record.file_name or 'image'} - please try again")

        await self._apply(record, fields)
        return analysis

    async def _apply(self, record: ImageRecord, fields: Dict[str, Any]) -> None:
        try:
            await self.record_store.update(record.id, record.user_id, **fields)
        except Exception as exc:
            LOGGER.error("Failed to update analysis for image %s: %s", record.id, exc)
            self.notifier.error(f"Analysis saved but failed to update record for image {record.id}")
            return
        for name, value in fields.items():
            setattr(record, name, value)

    async def _refetch(self) -> None:
        if self.on_refetch is None:
            return
        try:
            await self.on_refetch()
        except Exception as exc:
            LOGGER.warning("Refreshing the gallery failed: %s", exc)
