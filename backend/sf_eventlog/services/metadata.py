from __future__ import annotations

from datetime import date, timedelta

from sf_eventlog.schemas.log_sync import LogSyncStatus, no_file_status, unprocessed_status
from sf_eventlog.services.inventory import LogFileInventory
from sf_eventlog.services.status_store import StatusStore

METADATA_WINDOW_DAYS = 30


def build_metadata(
    inventory: LogFileInventory,
    status_store: StatusStore,
    today: date,
    days: int = METADATA_WINDOW_DAYS,
) -> dict[str, list[LogSyncStatus]]:
    """
    Per category, one status for each of the last `days` days (today included), newest first.

    Days without a persisted status are filled in as UNPROCESSED when a log file exists and
    NO_FILE otherwise. Persisted statuses older than the window are kept as they are.
    """
    files = inventory.snapshot()
    statuses = status_store.status_map()
    window = [today - timedelta(days=offset) for offset in range(days)]
    window_set = set(window)
    result: dict[str, list[LogSyncStatus]] = {}
    for category, refs in files.items():
        persisted = statuses.get(category, {})
        file_dates = {ref.log_date for ref in refs}
        entries: list[LogSyncStatus] = []
        for day in window:
            status = persisted.get(day)
            if status is None:
                if day in file_dates:
                    status = unprocessed_status(day, category)
                else:
                    status = no_file_status(day, category, today=today)
            entries.append(status)
        entries.extend(status for day, status in persisted.items() if day not in window_set)
        result[category] = sorted(entries, key=lambda item: item.sync_date, reverse=True)
    return result
