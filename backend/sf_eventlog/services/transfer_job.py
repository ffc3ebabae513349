"""
Single-slot coordinator for transfer runs.

At most one run is active per coordinator. Activation is a check-and-set under the
coordinator's condition variable; the run itself happens on a daemon thread and its
cleanup always clears the slot, stores the terminal status and wakes any waiters.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from sf_eventlog.core.categories import all_categories, get_category
from sf_eventlog.core.config import settings
from sf_eventlog.core.errors import TransferConflictError, TransferTimeoutError, UnknownCategoryError
from sf_eventlog.core.metrics import MetricsRecorder
from sf_eventlog.schemas.log_sync import (
    LogSyncStatus,
    SyncState,
    failure_status,
    no_file_status,
    processing_status,
    unprocessed_status,
)
from sf_eventlog.services.inventory import LogFileInventory
from sf_eventlog.services.status_store import Checkpoint, StatusStore
from sf_eventlog.services.transfer_pipeline import TransferPipeline

logger = logging.getLogger(__name__)

RECENT_RESULTS = 32


@dataclass(frozen=True)
class JobState:
    active: bool = False
    sync_date: date | None = None
    category: str | None = None
    processed: int = 0
    total: int = 0
    last_result: LogSyncStatus | None = None
    run_id: int = 0


@dataclass(frozen=True)
class Mismatch:
    sync_date: date
    category: str

    @property
    def detail(self) -> str:
        return f'Not set to transfer mode for given category {self.category} and date {self.sync_date.isoformat()}'


@dataclass(frozen=True)
class InProgress:
    processed: int
    total: int

    @property
    def detail(self) -> str:
        if self.total == 0:
            return 'Preparing transfer'
        return f'{self.processed} of {self.total}'


@dataclass(frozen=True)
class Complete:
    status: LogSyncStatus


@dataclass(frozen=True)
class Inconsistent:
    detail: str = 'Forbidden state - done without status'


PollResult = Mismatch | InProgress | Complete | Inconsistent


class _JobProgress:
    def __init__(self, coordinator: 'TransferCoordinator', run_id: int) -> None:
        self._coordinator = coordinator
        self._run_id = run_id

    def set_total(self, total: int) -> None:
        self._coordinator._update_counters(self._run_id, total=total)

    def set_processed(self, row: int) -> None:
        self._coordinator._update_counters(self._run_id, processed=row)


class TransferCoordinator:
    def __init__(
        self,
        pipeline: TransferPipeline,
        inventory: LogFileInventory,
        status_store: StatusStore,
        recorder: MetricsRecorder,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._pipeline = pipeline
        self._inventory = inventory
        self._store = status_store
        self._recorder = recorder
        self._today = today
        self._cond = threading.Condition()
        self._state = JobState()
        self._recent_results: dict[int, LogSyncStatus] = {}

    @property
    def state(self) -> JobState:
        with self._cond:
            return self._state

    @property
    def active(self) -> bool:
        return self.state.active

    def _update_counters(self, run_id: int, **counters: int) -> None:
        with self._cond:
            if self._state.run_id == run_id and self._state.active:
                self._state = replace(self._state, **counters)

    def activate(self, sync_date: date, category: str, resume_from_row: int = 1) -> int:
        """Claim the slot and start the run on a daemon thread; returns the run id."""
        get_category(category)
        with self._cond:
            if self._state.active:
                raise TransferConflictError('Cannot activate new job transfer since one is already active')
            run_id = self._state.run_id + 1
            self._state = JobState(active=True, sync_date=sync_date, category=category, run_id=run_id)
        thread = threading.Thread(
            target=self._run,
            args=(run_id, sync_date, category, resume_from_row),
            name=f'transfer-{category}-{sync_date.isoformat()}',
            daemon=True,
        )
        thread.start()
        return run_id

    def _run(self, run_id: int, sync_date: date, category: str, resume_from_row: int) -> None:
        result: LogSyncStatus | None = None
        try:
            outcome = self._pipeline.run(sync_date, category, resume_from_row, progress=_JobProgress(self, run_id))
            result = outcome.status
        except Exception as exc:
            logger.exception('Transfer of %s for %s ended with an unexpected error', category, sync_date)
            result = failure_status(sync_date, category, f'{type(exc).__name__}: {exc}')
            try:
                self._store.write(result)
            except SQLAlchemyError:
                logger.exception('Could not persist failure status of %s for %s', category, sync_date)
        finally:
            with self._cond:
                self._state = replace(self._state, active=False, processed=0, total=0, last_result=result)
                if result is not None:
                    self._recent_results[run_id] = result
                    while len(self._recent_results) > RECENT_RESULTS:
                        self._recent_results.pop(next(iter(self._recent_results)))
                self._cond.notify_all()
            logger.info('Transfer job of %s for %s done with %s', category, sync_date, result.status.value if result else None)

    def poll(self, sync_date: date, category: str) -> PollResult:
        with self._cond:
            state = self._state
        if state.sync_date != sync_date or state.category != category:
            return Mismatch(sync_date, category)
        if state.active:
            return InProgress(state.processed, state.total)
        if state.last_result is not None:
            return Complete(state.last_result)
        return Inconsistent()

    def ensure_synced(self, sync_date: date, category: str, resume_from_row: int = 1) -> LogSyncStatus:
        status, _run_id = self._trigger(sync_date, category, resume_from_row)
        return status

    def _trigger(self, sync_date: date, category: str, resume_from_row: int = 1) -> tuple[LogSyncStatus, int | None]:
        descriptor = get_category(category)
        existing = self._store.get(sync_date, category)
        if existing is not None and existing.status == SyncState.SUCCESS:
            logger.info('Skipping performing fetch and log on %s for %s - Already processed successfully', category, sync_date)
            return existing, None
        if not self._inventory.has_file(category, sync_date):
            logger.info('Skipping performing fetch and log on %s for %s - No log file in Salesforce', category, sync_date)
            return no_file_status(sync_date, category, today=self._today()), None
        with self._cond:
            if self._state.active:
                logger.info('Skipping performing fetch and log on %s for %s - Job in progress', category, sync_date)
                return unprocessed_status(sync_date, category), None
            self._recorder.clear_category(descriptor)
            run_id = self.activate(sync_date, category, resume_from_row)
        return processing_status(sync_date, category), run_id

    def _latest_run(self, sync_date: date, category: str) -> int | None:
        state = self._state
        if state.sync_date == sync_date and state.category == category:
            return state.run_id
        runs = [
            run_id
            for run_id, status in self._recent_results.items()
            if status.sync_date == sync_date and status.category == category
        ]
        return max(runs) if runs else None

    def _result_of(self, run_id: int | None, sync_date: date, category: str) -> LogSyncStatus | None:
        if run_id is None:
            run_id = self._latest_run(sync_date, category)
        if run_id is None:
            return None
        return self._recent_results.get(run_id)

    def wait_for_completion(
        self,
        sync_date: date,
        category: str,
        timeout: float | None = None,
        run_id: int | None = None,
    ) -> LogSyncStatus:
        """
        Block until the run finishes and return its terminal status.
        Without `run_id` the latest run of (sync_date, category) is awaited.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._result_of(run_id, sync_date, category) is not None, timeout=timeout):
                raise TransferTimeoutError(f'Transfer of {category} for {sync_date.isoformat()} did not finish within {timeout} seconds')
            return self._result_of(run_id, sync_date, category)

    def sync_all(self, sync_date: date, timeout: float | None = None) -> list[LogSyncStatus]:
        """
        Run every category for `sync_date` one after the other through the single slot.
        `timeout` bounds the wait for each category's run.
        """
        if timeout is None:
            timeout = float(settings.transfer_batch_timeout_seconds)
        names = [descriptor.name for descriptor in all_categories()]
        logger.info('Will fetch event logs for ALL categories (%s) for %s', ','.join(names), sync_date)
        results: list[LogSyncStatus] = []
        for name in names:
            status, run_id = self._trigger(sync_date, name)
            if run_id is not None:
                status = self.wait_for_completion(sync_date, name, timeout, run_id=run_id)
            logger.info('In %s, returning status %s', name, status.status.value)
            results.append(status)
        return results

    def resume_pending(self) -> Checkpoint | None:
        """Drop finished checkpoints, then pick up the first unfinished one after its last row."""
        checkpoints = self._store.pending_checkpoints()
        for checkpoint in checkpoints:
            if checkpoint.done:
                logger.info(
                    'Removing completed job from progress table %s %s, %s rows',
                    checkpoint.category,
                    checkpoint.sync_date,
                    checkpoint.total,
                )
                self._store.clear_checkpoint(checkpoint.sync_date, checkpoint.category)

        resumed: Checkpoint | None = None
        for checkpoint in (cp for cp in checkpoints if not cp.done):
            if resumed is not None:
                logger.info(
                    'Will put off pickup job of %s for %s, from %s to %s since already busy',
                    checkpoint.category,
                    checkpoint.sync_date,
                    checkpoint.row,
                    checkpoint.total,
                )
                continue
            try:
                self.activate(checkpoint.sync_date, checkpoint.category, checkpoint.row + 1)
            except UnknownCategoryError:
                logger.warning('Dropping checkpoint of unknown category %s', checkpoint.category)
                self._store.clear_checkpoint(checkpoint.sync_date, checkpoint.category)
                continue
            except TransferConflictError:
                logger.info('Will put off pickup job of %s for %s since already busy', checkpoint.category, checkpoint.sync_date)
                continue
            logger.info(
                'Starting job pickup on %s for %s, from %s to %s',
                checkpoint.category,
                checkpoint.sync_date,
                checkpoint.row,
                checkpoint.total,
            )
            resumed = checkpoint
        return resumed
