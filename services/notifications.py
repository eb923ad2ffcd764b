"""Transient user-facing notices collected during one request."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

_LOG_LEVELS = {"success": logging.INFO, "info": logging.INFO, "loading": logging.INFO, "error": logging.WARNING}


@dataclass
class Notice:
	"""One transient notification; notices sharing a `key` replace each other."""

	level: str
	message: str
	key: Optional[str] = None


class NotificationChannel:
	"""Collect notices for the caller and mirror them to the log."""

	def __init__(self) -> None:
		self._notices: List[Notice] = []

	def notify(self, level: str, message: str, key: Optional[str] = None) -> Notice:
		notice = Notice(level=level, message=message, key=key)
		if key is not None:
			self._notices = [n for n in self._notices if n.key != key]
		self._notices.append(notice)
		LOGGER.log(_LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, message)
		return notice

	def success(self, message: str, key: Optional[str] = None) -> Notice:
		return self.notify("success", message, key)

	def error(self, message: str, key: Optional[str] = None) -> Notice:
		return self.notify("error", message, key)

	def info(self, message: str, key: Optional[str] = None) -> Notice:
		return self.notify("info", message, key)

	@property
	def notices(self) -> List[Notice]:
		return list(self._notices)

	def as_dicts(self) -> List[Dict[str, Any]]:
		return [asdict(n) for n in self._notices]
