"""
Durable per (date, category) sync status with an in-memory mirror.

The mirror is loaded wholesale when the calendar day changes and patched in place on
every write, so a completed write is always visible to readers without a reload.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from sf_eventlog.repositories import log_sync as log_sync_repo
from sf_eventlog.schemas.log_sync import LogSyncStatus

logger = logging.getLogger(__name__)

StatusMap = dict[str, dict[date, LogSyncStatus]]


@dataclass(frozen=True)
class Checkpoint:
    sync_date: date
    category: str
    row: int
    total: int

    @property
    def done(self) -> bool:
        return self.row >= self.total


class StatusStore:
    def __init__(self, session_factory: Callable[[], Session], today: Callable[[], date] = date.today) -> None:
        self._session_factory = session_factory
        self._today = today
        self._lock = threading.RLock()
        self._cache: StatusMap = {}
        self._cache_date: date | None = None

    def _session(self) -> Session:
        return self._session_factory()

    def _load(self) -> StatusMap:
        db = self._session()
        try:
            rows = log_sync_repo.list_statuses(db)
            result: StatusMap = {}
            for row in rows:
                status = LogSyncStatus.model_validate(row)
                result.setdefault(status.category, {})[status.sync_date] = status
            return result
        finally:
            db.close()

    def status_map(self) -> StatusMap:
        with self._lock:
            today = self._today()
            if self._cache_date != today:
                logger.info('Loading log sync status cache for %s', today)
                self._cache = self._load()
                self._cache_date = today
            return {category: dict(by_date) for category, by_date in self._cache.items()}

    def get(self, sync_date: date, category: str) -> LogSyncStatus | None:
        return self.status_map().get(category, {}).get(sync_date)

    def write(self, status: LogSyncStatus) -> LogSyncStatus:
        with self._lock:
            db = self._session()
            try:
                log_sync_repo.upsert_status(
                    db,
                    status.sync_date,
                    status.category,
                    status.status.value,
                    status.message,
                    status.last_modified,
                )
            finally:
                db.close()
            if self._cache_date is not None:
                self._cache.setdefault(status.category, {})[status.sync_date] = status
        return status

    def delete(self, sync_date: date, category: str) -> int:
        with self._lock:
            db = self._session()
            try:
                deleted = log_sync_repo.delete_status(db, sync_date, category)
            finally:
                db.close()
            self.clear_cache()
        logger.info('Deleted %s log sync status rows for %s %s', deleted, category, sync_date)
        return deleted

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = {}
            self._cache_date = None

    def prune(self, days: int) -> int:
        with self._lock:
            db = self._session()
            try:
                deleted = log_sync_repo.delete_statuses_older_than(db, days, today=self._today())
            finally:
                db.close()
            if deleted:
                self.clear_cache()
        logger.info('Deleted %s log sync status rows older than %s days', deleted, days)
        return deleted

    def save_checkpoint(self, sync_date: date, category: str, row: int, total: int) -> None:
        db = self._session()
        try:
            log_sync_repo.upsert_progress(db, sync_date, category, row, total)
        finally:
            db.close()

    def clear_checkpoint(self, sync_date: date, category: str) -> None:
        db = self._session()
        try:
            log_sync_repo.delete_progress(db, sync_date, category)
        finally:
            db.close()

    def pending_checkpoints(self) -> list[Checkpoint]:
        db = self._session()
        try:
            return [
                Checkpoint(sync_date=row.sync_date, category=row.category, row=int(row.row), total=int(row.total))
                for row in log_sync_repo.list_progress(db)
            ]
        finally:
            db.close()
