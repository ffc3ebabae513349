from sf_eventlog.models.log_sync import LogSyncProgressRow, LogSyncStatusRow

__all__ = [
    'LogSyncProgressRow',
    'LogSyncStatusRow',
]
