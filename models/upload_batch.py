"""Upload domain models: pending files, batches, and the bound user session."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class UploadState(str, Enum):
	"""Lifecycle of one upload interaction."""

	IDLE = "idle"
	VALIDATING = "validating"
	RESIZING = "resizing"
	UPLOADING = "uploading"
	CLASSIFYING = "classifying"
	DONE = "done"
	ERROR = "error"


@dataclass
class UserSession:
	"""Authenticated user bound to a request; `user_id` is None when anonymous."""

	user_id: Optional[str]

	@property
	def is_authenticated(self) -> bool:
		return bool(self.user_id)


@dataclass
class PendingFile:
	"""A selected file waiting to be uploaded, after resizing."""

	name: str
	content_type: str
	data: bytes
	original_size: int
	new_size: int
	was_compressed: bool
	resized: bool = True


@dataclass
class UploadBatch:
	"""Ordered pending files for one upload interaction."""

	user_id: str
	files: List[PendingFile] = field(default_factory=list)
	state: UploadState = UploadState.IDLE
	completed: int = 0
	total: int = 0
	created_at: float = field(default_factory=lambda: time.time())

	@property
	def progress(self) -> int:
		"""Percentage of files uploaded in the current run."""
		if not self.total:
			return 0
		return round(self.completed * 100 / self.total)

	def saved_bytes(self) -> int:
		"""Bytes saved by compression across the pending files."""
		return sum(f.original_size - f.new_size for f in self.files if f.was_compressed)
