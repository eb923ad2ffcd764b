"""Simple in-memory store for pending upload batches, one per user."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from models.upload_batch import PendingFile, UploadBatch, UploadState
from services.image_resizer import ImageResizer

_BUSY = (UploadState.VALIDATING, UploadState.RESIZING, UploadState.UPLOADING, UploadState.CLASSIFYING)


class BatchStore:
	"""Hold each user's selected-but-not-uploaded files between requests."""

	def __init__(self, resizer: Optional[ImageResizer] = None) -> None:
		self._batches: Dict[str, UploadBatch] = {}
		self.resizer = resizer or ImageResizer()

	def get(self, user_id: str) -> UploadBatch:
		"""Return the user's batch, creating an empty one if needed."""
		batch = self._batches.get(user_id)
		if batch is None:
			batch = UploadBatch(user_id=user_id)
			self._batches[user_id] = batch
		return batch

	async def select(
		self,
		user_id: str,
		files: Iterable[Tuple[bytes, str, Optional[str]]],
		remaining_slots: int,
	) -> Tuple[UploadBatch, List[PendingFile]]:
		"""Resize and queue `(data, filename, content_type)` files.

		Only as many files as fit in `remaining_slots` (minus those already
		queued) are accepted; the rest are ignored.

		Returns:
			The batch and the newly queued files.

		The batch counts as busy while resizing, so a commit cannot snapshot it
		before the new files are appended.

		Raises:
			RuntimeError: If the batch is already busy.
			ValueError: If a file cannot be decoded as an image.
		"""
		batch = self.get(user_id)
		if batch.state in _BUSY:
			raise RuntimeError("Upload already in progress; wait for it to finish before adding files")
		available = max(0, remaining_slots - len(batch.files))
		accepted = list(files)[:available]
		previous = batch.state
		batch.state = UploadState.RESIZING
		try:
			results = await self.resizer.resize_many(accepted)
		finally:
			batch.state = previous
		added = [
			PendingFile(
				name=r.filename,
				content_type=r.content_type,
				data=r.data,
				original_size=r.original_size,
				new_size=r.new_size,
				was_compressed=r.was_compressed,
			)
			for r in results
		]
		batch.files.extend(added)
		return batch, added

	def remove(self, user_id: str, index: int) -> PendingFile:
		"""Drop one pending file before upload starts.

		Raises:
			RuntimeError: If the batch is currently uploading.
			IndexError: If there is no file at `index`.
		"""
		batch = self.get(user_id)
		if batch.state in _BUSY:
			raise RuntimeError("Upload already in progress; files can no longer be removed")
		if index < 0 or index >= len(batch.files):
			raise IndexError(f"No pending file at position {index}")
		return batch.files.pop(index)

	def clear(self, user_id: str) -> None:
		self._batches.pop(user_id, None)

	def is_busy(self, user_id: str) -> bool:
		batch = self._batches.get(user_id)
		return batch is not None and batch.state in _BUSY
