"""
In-memory inventory of available event log files per category.

Salesforce finalizes a day's files around midday, so a capture is only reused while it
was taken on the same calendar day and on the same side of the 12:30-13:30 window as now.
A refresh always reloads every category.
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time
from typing import Callable, Sequence

from sf_eventlog.core.categories import all_categories
from sf_eventlog.services.salesforce_client import LogFileRef, SalesforceClient

logger = logging.getLogger(__name__)

MORNING_CUTOFF = time(12, 30)
AFTERNOON_START = time(13, 30)


def same_half_day_band(captured: datetime, now: datetime) -> bool:
    if captured.date() != now.date():
        return False
    both_morning = captured.time() < MORNING_CUTOFF and now.time() < MORNING_CUTOFF
    both_afternoon = captured.time() > AFTERNOON_START and now.time() > AFTERNOON_START
    return both_morning or both_afternoon


class LogFileInventory:
    def __init__(
        self,
        client: SalesforceClient,
        clock: Callable[[], datetime] = datetime.now,
        enabled: bool = True,
        categories: Sequence[str] | None = None,
    ) -> None:
        self._client = client
        self._clock = clock
        self.enabled = enabled
        self._categories = list(categories) if categories is not None else [c.name for c in all_categories()]
        self._lock = threading.Lock()
        self._captured_at: datetime | None = None
        self._files: dict[str, list[LogFileRef]] = {}

    def _is_fresh(self, now: datetime) -> bool:
        return self.enabled and self._captured_at is not None and same_half_day_band(self._captured_at, now)

    def _ensure_fresh(self) -> dict[str, list[LogFileRef]]:
        with self._lock:
            now = self._clock()
            if self._is_fresh(now):
                logger.debug('Using log file inventory cache')
                return self._files
            logger.info('%sFetching log file inventory', 'Cache invalid : ' if self.enabled else '')
            self._files = {category: self._client.fetch_log_files(category) for category in self._categories}
            self._captured_at = now
            return self._files

    def get(self, category: str) -> list[LogFileRef]:
        return list(self._ensure_fresh().get(category, []))

    def find(self, category: str, log_date: date) -> list[LogFileRef]:
        return [ref for ref in self.get(category) if ref.log_date == log_date]

    def has_file(self, category: str, log_date: date) -> bool:
        return bool(self.find(category, log_date))

    def snapshot(self) -> dict[str, list[LogFileRef]]:
        return {category: list(refs) for category, refs in self._ensure_fresh().items()}

    def clear(self) -> None:
        with self._lock:
            self._files = {}
            self._captured_at = None
