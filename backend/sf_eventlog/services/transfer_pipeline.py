"""
One transfer run for a single (date, category).

The log file is read twice: the first stream only counts data rows so that progress can
be reported against a known total, the second stream emits and counts every row. There
is no reconciliation if the two reads see different content.
"""
from __future__ import annotations

import csv
import json
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError

from sf_eventlog.core.categories import NOT_AVAILABLE, CategoryDescriptor, get_category
from sf_eventlog.core.config import settings
from sf_eventlog.core.errors import InventoryInconsistencyError, TransferError
from sf_eventlog.core.logging_config import LogSink
from sf_eventlog.core.metrics import MetricsRecorder
from sf_eventlog.schemas.log_sync import LogSyncStatus, failure_status, no_file_status, success_status
from sf_eventlog.services.inventory import LogFileInventory
from sf_eventlog.services.salesforce_client import EventRow, LogFileRef, SalesforceClient
from sf_eventlog.services.status_store import StatusStore

logger = logging.getLogger(__name__)

EXPECTED_FAILURES = (TransferError, httpx.HTTPError, csv.Error, OSError, SQLAlchemyError)


class ProgressListener(Protocol):
    def set_total(self, total: int) -> None: ...

    def set_processed(self, row: int) -> None: ...


class NullProgress:
    def set_total(self, total: int) -> None:
        pass

    def set_processed(self, row: int) -> None:
        pass


@dataclass(frozen=True)
class TransferOutcome:
    status: LogSyncStatus


@dataclass(frozen=True)
class NoFile(TransferOutcome):
    pass


@dataclass(frozen=True)
class Succeeded(TransferOutcome):
    processed: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class Failed(TransferOutcome):
    error: BaseException | None = None


def success_message(total: int, category: str, sync_date: date, resume_from_row: int) -> str:
    message = f'Processed {total} events of type {category} for {sync_date.isoformat()}'
    if resume_from_row > 1:
        message += f' (resumed from row {resume_from_row}, skipped first {resume_from_row - 1} rows in current run)'
    return message


class TransferPipeline:
    def __init__(
        self,
        inventory: LogFileInventory,
        client: SalesforceClient,
        status_store: StatusStore,
        recorder: MetricsRecorder,
        *,
        regular_sink: LogSink | None = None,
        secure_sink: LogSink | None = None,
        inspect_unlabelled: bool | None = None,
        pause_processed_seconds: float | None = None,
        pause_skipped_seconds: float | None = None,
        heartbeat_rows: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._inventory = inventory
        self._client = client
        self._store = status_store
        self._recorder = recorder
        self._regular_sink = regular_sink or LogSink('eventlog')
        self._secure_sink = secure_sink or LogSink('secure')
        self.inspect_unlabelled = settings.inspect_unlabelled_categories if inspect_unlabelled is None else inspect_unlabelled
        self.pause_processed = settings.transfer_pause_processed_seconds if pause_processed_seconds is None else pause_processed_seconds
        self.pause_skipped = settings.transfer_pause_skipped_seconds if pause_skipped_seconds is None else pause_skipped_seconds
        self.heartbeat_rows = max(1, int(heartbeat_rows or settings.transfer_heartbeat_rows))
        self._sleep = sleep
        self._today = today

    def run(
        self,
        sync_date: date,
        category: str,
        resume_from_row: int = 1,
        progress: ProgressListener | None = None,
    ) -> TransferOutcome:
        descriptor = get_category(category)
        progress = progress or NullProgress()
        resume_from_row = max(1, int(resume_from_row))
        logger.info(
            'Will fetch event logs for %s %s%s',
            category,
            sync_date,
            f' but skip to row {resume_from_row}' if resume_from_row > 1 else '',
        )
        try:
            refs = self._inventory.find(category, sync_date)
            if not refs:
                return NoFile(no_file_status(sync_date, category, today=self._today()))
            if len(refs) > 1:
                raise InventoryInconsistencyError(
                    f'Should never be more than one log file per log date, found {len(refs)} for {category} {sync_date}'
                )
            ref = refs[0]
            total = self._client.count_rows(ref)
            progress.set_total(total)
            if resume_from_row == 1:
                self._store.save_checkpoint(sync_date, category, 0, total)
            processed, skipped = self._process(descriptor, ref, total, resume_from_row, progress)
            status = self._store.write(success_status(sync_date, category, success_message(total, category, sync_date, resume_from_row)))
            self._store.clear_checkpoint(sync_date, category)
        except EXPECTED_FAILURES as exc:
            logger.warning('Process interrupted %s: %s', type(exc).__name__, exc)
            status = self._store.write(failure_status(sync_date, category, f'{type(exc).__name__}: {exc}'))
            return Failed(status, error=exc)
        logger.info('%s', status.message)
        return Succeeded(status, processed=processed, skipped=skipped)

    def _process(
        self,
        descriptor: CategoryDescriptor,
        ref: LogFileRef,
        total: int,
        resume_from_row: int,
        progress: ProgressListener,
    ) -> tuple[int, int]:
        emit_text = descriptor.emits_messages or (descriptor.is_inspection_only and self.inspect_unlabelled)
        if resume_from_row > 1:
            logger.info('Will continue process %s events from position %s of type %s for %s', total, resume_from_row, descriptor.name, ref.log_date)
        else:
            logger.info('Will process %s events of type %s for %s', total, descriptor.name, ref.log_date)
        row = 0
        processed = 0
        try:
            with self._client.iter_rows(ref) as rows:
                for event in rows:
                    row += 1
                    if row >= resume_from_row:
                        if emit_text:
                            self._emit(descriptor, event, row, total)
                        if descriptor.has_metrics:
                            self._record_metric(descriptor, event, row)
                        self._store.save_checkpoint(ref.log_date, descriptor.name, row, total)
                        processed += 1
                    progress.set_processed(row)
                    if row % self.heartbeat_rows == 0:
                        self._heartbeat(row, total, resume_from_row, emit_text)
        finally:
            skipped = row - processed
            self._recorder.observe_rows(descriptor.name, 'processed', processed)
            self._recorder.observe_rows(descriptor.name, 'skipped', skipped)
        logger.info(
            'Finally processed %s of %s events%s',
            row,
            total,
            f' of which skipped first {skipped} in current run' if skipped else '',
        )
        return processed, skipped

    def _message(self, descriptor: CategoryDescriptor, event: EventRow) -> str:
        if descriptor.emits_messages:
            return event.get(descriptor.message_field) or NOT_AVAILABLE
        return json.dumps(event, ensure_ascii=False)

    def _emit(self, descriptor: CategoryDescriptor, event: EventRow, row: int, total: int) -> None:
        message = self._message(descriptor, event)
        self._regular_sink.emit(message, descriptor.build_context(event, exclude_sensitive=True, row=row, total=total))
        self._secure_sink.emit(message, descriptor.build_context(event, exclude_sensitive=False, row=row, total=total))

    def _record_metric(self, descriptor: CategoryDescriptor, event: EventRow, row: int) -> None:
        try:
            self._recorder.record_event(descriptor, event)
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning('Failed to populate and increment a metric of %s at row %s: %s', descriptor.name, row, exc)

    def _heartbeat(self, row: int, total: int, resume_from_row: int, emit_text: bool) -> None:
        if row >= resume_from_row:
            logger.info('Processed %s of %s events', row, total)
            pause = self.pause_processed if emit_text else self.pause_skipped
        else:
            logger.info('Skipped %s of %s events', row, total)
            pause = self.pause_skipped
        if pause > 0:
            self._sleep(pause)
