"""In-process stand-ins for Salesforce, the database and the log sinks."""
import os
import sys
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('APP_ENV', 'test')

from sf_eventlog.core.errors import LogFileTransportError  # noqa: E402
from sf_eventlog.core.logging_config import LogSink  # noqa: E402
from sf_eventlog.db.base import Base  # noqa: E402
from sf_eventlog.db.session import build_engine, build_session_factory  # noqa: E402
from sf_eventlog.services.salesforce_client import ApplicationLogCounts, LogFileRef  # noqa: E402
import sf_eventlog.models  # noqa: E402,F401


def memory_session_factory():
    engine = build_engine('sqlite://')
    Base.metadata.create_all(bind=engine)
    return build_session_factory(engine)


class CapturingSink(LogSink):
    def __init__(self, channel='eventlog'):
        super().__init__(channel=channel)
        self.records = []

    def emit(self, message, context):
        self.records.append((message, dict(context)))


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def today(self) -> date:
        return self.now.date()


def callout_row(index: int, log_date: date) -> dict:
    return {
        'EVENT_TYPE': 'ApexCallout',
        'TIMESTAMP_DERIVED': f'{log_date.isoformat()}T10:00:00.000Z',
        'URL': f'https://api.example.com/orders/{index}?expand=true',
        'METHOD': 'GET',
        'TYPE': 'REST',
        'SUCCESS': '1',
        'TIME': str(index % 700),
        'RESPONSE_SIZE': '2048',
    }


def exception_row(index: int, log_date: date) -> dict:
    return {
        'EVENT_TYPE': 'ApexUnexpectedException',
        'TIMESTAMP': '20250316100000.000',
        'TIMESTAMP_DERIVED': f'{log_date.isoformat()}T10:00:00.000Z',
        'REQUEST_ID': f'req-{index}',
        'ORGANIZATION_ID': '00D000000000001',
        'EXCEPTION_TYPE': 'System.NullPointerException',
        'EXCEPTION_CATEGORY': 'APEX_CODE',
        'EXCEPTION_MESSAGE': f'Attempt to de-reference a null object {index}',
        'STACK_TRACE': 'Class.Foo.bar: line 1',
        'USER_ID': '005000000000001',
        'USER_ID_DERIVED': '005000000000001AAA',
    }


class FakeSalesforceClient:
    """Serves listings and file rows from memory; can fail or block mid-stream."""

    def __init__(self):
        self.files: dict[str, list[LogFileRef]] = {}
        self.rows: dict[str, list[dict]] = {}
        self.fail_at_row: dict[str, int] = {}
        self.count_override: dict[str, int] = {}
        self.listing_calls = 0
        self.count_calls = 0
        self.open_calls = 0
        self.gate: threading.Event | None = None
        self.count_gate: threading.Event | None = None
        self.row_gates: list[threading.Event] | None = None
        self.app_log_levels: dict[date, list[str]] = {}
        self.limits = {'DailyApiRequests': {'Max': 100000, 'Remaining': 99000}}

    def add_file(self, category: str, log_date: date, rows: list[dict], file: str | None = None) -> LogFileRef:
        file = file or f'/services/data/v62.0/sobjects/EventLogFile/{category}-{log_date.isoformat()}/LogFile'
        ref = LogFileRef(category=category, log_date=log_date, file=file)
        self.files.setdefault(category, []).append(ref)
        self.rows[file] = rows
        return ref

    def fetch_log_files(self, category, log_date=None):
        self.listing_calls += 1
        return list(self.files.get(category, []))

    def count_rows(self, ref):
        self.count_calls += 1
        if self.count_gate is not None:
            self.count_gate.wait(timeout=5)
        if ref.file in self.count_override:
            return self.count_override[ref.file]
        return len(self.rows[ref.file])

    @contextmanager
    def iter_rows(self, ref):
        self.open_calls += 1
        yield self._iterate(ref)

    def _iterate(self, ref):
        fail_at = self.fail_at_row.get(ref.file)
        for index, row in enumerate(self.rows[ref.file], start=1):
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if self.row_gates is not None and index <= len(self.row_gates):
                self.row_gates[index - 1].wait(timeout=5)
            if fail_at is not None and index == fail_at:
                raise LogFileTransportError(f'Connection reset while reading {ref.file}')
            yield dict(row)

    def fetch_application_log_counts(self, log_date):
        levels = self.app_log_levels.get(log_date, [])
        return ApplicationLogCounts(log_date=log_date, error=levels.count('Error'), critical=levels.count('Critical'))

    def fetch_limits(self):
        return self.limits

    def close(self):
        pass


def make_runtime(clock: MutableClock, sf: FakeSalesforceClient, **pipeline_kwargs):
    """Wire the real services around the in-memory client, database and sinks."""
    from sf_eventlog.core.categories import CATEGORIES
    from sf_eventlog.core.metrics import MetricsRecorder
    from sf_eventlog.services.inventory import LogFileInventory
    from sf_eventlog.services.runtime import Runtime
    from sf_eventlog.services.status_store import StatusStore
    from sf_eventlog.services.transfer_job import TransferCoordinator
    from sf_eventlog.services.transfer_pipeline import TransferPipeline

    recorder = MetricsRecorder()
    inventory = LogFileInventory(sf, clock=clock, categories=list(CATEGORIES))
    store = StatusStore(memory_session_factory(), today=clock.today)
    store.status_map()
    pipeline_kwargs.setdefault('regular_sink', CapturingSink('eventlog'))
    pipeline_kwargs.setdefault('secure_sink', CapturingSink('secure'))
    pipeline_kwargs.setdefault('sleep', lambda _seconds: None)
    pipeline = TransferPipeline(inventory, sf, store, recorder, today=clock.today, **pipeline_kwargs)
    coordinator = TransferCoordinator(pipeline, inventory, store, recorder, today=clock.today)
    return Runtime(
        recorder=recorder,
        client=sf,
        inventory=inventory,
        status_store=store,
        pipeline=pipeline,
        coordinator=coordinator,
        today=clock.today,
    )
