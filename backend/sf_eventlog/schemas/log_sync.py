from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SyncState(str, Enum):
    NO_FILE = 'NO_FILE'
    UNPROCESSED = 'UNPROCESSED'
    PROCESSING = 'PROCESSING'
    SUCCESS = 'SUCCESS'
    FAILURE = 'FAILURE'


TERMINAL_STATES = {SyncState.SUCCESS, SyncState.FAILURE}


class LogSyncStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    sync_date: date
    category: str
    status: SyncState
    message: str = ''
    last_modified: datetime = Field(default_factory=datetime.now)

    @property
    def is_success(self) -> bool:
        return self.status == SyncState.SUCCESS


def no_file_status(sync_date: date, category: str, today: date | None = None) -> LogSyncStatus:
    if sync_date == (today or date.today()):
        message = 'No log file for today has been generated yet'
    else:
        message = f'No log file exists for date {sync_date.isoformat()}'
    return LogSyncStatus(sync_date=sync_date, category=category, status=SyncState.NO_FILE, message=message)


def unprocessed_status(sync_date: date, category: str) -> LogSyncStatus:
    return LogSyncStatus(sync_date=sync_date, category=category, status=SyncState.UNPROCESSED, message='Not yet processed')


def processing_status(sync_date: date, category: str) -> LogSyncStatus:
    return LogSyncStatus(sync_date=sync_date, category=category, status=SyncState.PROCESSING, message='Processing')


def success_status(sync_date: date, category: str, message: str) -> LogSyncStatus:
    return LogSyncStatus(sync_date=sync_date, category=category, status=SyncState.SUCCESS, message=message)


def failure_status(sync_date: date, category: str, message: str) -> LogSyncStatus:
    return LogSyncStatus(sync_date=sync_date, category=category, status=SyncState.FAILURE, message=message)
