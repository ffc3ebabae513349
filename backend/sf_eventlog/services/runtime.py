"""
Process-wide wiring of the sync services.

`get_runtime()` builds one set of collaborators on first use; the HTTP layer receives it
through a FastAPI dependency so tests can substitute their own instance.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from sf_eventlog.core.config import settings
from sf_eventlog.core.metrics import MetricsRecorder
from sf_eventlog.core.sf_token import SalesforceTokenProvider
from sf_eventlog.db.session import SessionLocal
from sf_eventlog.services.inventory import LogFileInventory
from sf_eventlog.services.salesforce_client import SalesforceClient
from sf_eventlog.services.status_store import StatusStore
from sf_eventlog.services.transfer_job import TransferCoordinator
from sf_eventlog.services.transfer_pipeline import TransferPipeline

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    recorder: MetricsRecorder
    client: SalesforceClient
    inventory: LogFileInventory
    status_store: StatusStore
    pipeline: TransferPipeline
    coordinator: TransferCoordinator
    today: Callable[[], date] = date.today
    stop_event: threading.Event = field(default_factory=threading.Event)

    def clear_caches(self) -> None:
        self.inventory.clear()
        self.status_store.clear_cache()

    def poll_limits_forever(self, interval_seconds: float) -> None:
        while not self.stop_event.is_set():
            try:
                self.client.fetch_limits()
            except (httpx.HTTPError, ValueError) as exc:
                logger.error('Limit call failed: %s', exc)
            self.stop_event.wait(interval_seconds)

    def start_limits_poller(self) -> threading.Thread:
        interval = max(60.0, float(settings.limits_poll_minutes) * 60.0)
        thread = threading.Thread(target=self.poll_limits_forever, args=(interval,), name='limits-poller', daemon=True)
        thread.start()
        return thread

    def shutdown(self) -> None:
        self.stop_event.set()
        self.client.close()


def build_runtime(
    session_factory: Callable[[], Session] | None = None,
    *,
    http_client: httpx.Client | None = None,
    recorder: MetricsRecorder | None = None,
) -> Runtime:
    session_factory = session_factory or SessionLocal
    recorder = recorder or MetricsRecorder()
    tokens = SalesforceTokenProvider(http_client=http_client)
    client = SalesforceClient(tokens, recorder, http_client=http_client)
    inventory = LogFileInventory(client, enabled=settings.inventory_cache_enabled)
    status_store = StatusStore(session_factory)
    pipeline = TransferPipeline(inventory, client, status_store, recorder)
    coordinator = TransferCoordinator(pipeline, inventory, status_store, recorder)
    return Runtime(
        recorder=recorder,
        client=client,
        inventory=inventory,
        status_store=status_store,
        pipeline=pipeline,
        coordinator=coordinator,
    )


_runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = build_runtime()
        return _runtime
