import argparse
import logging
import signal
import sys
from datetime import date, timedelta

from sf_eventlog.core.categories import CATEGORIES
from sf_eventlog.core.config import settings
from sf_eventlog.db.bootstrap import bootstrap_database
from sf_eventlog.schemas.log_sync import SyncState
from sf_eventlog.services.runtime import get_runtime

logger = logging.getLogger(__name__)

OK_STATES = {SyncState.SUCCESS, SyncState.NO_FILE}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Transfer Salesforce event log files for one day.')
    parser.add_argument('--date', type=date.fromisoformat, default=None, help='YYYY-MM-DD, defaults to yesterday')
    parser.add_argument('--category', default='ALL', choices=['ALL', *CATEGORIES])
    parser.add_argument('--resume-from-row', type=int, default=1)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    def _shutdown_handler(signum, _frame):  # type: ignore[no-untyped-def]
        logger.info('transfer worker received signal %s, stopping without draining', signum)
        sys.exit(128 + signum)

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)

    if settings.db_bootstrap_on_start:
        bootstrap_database()
    runtime = get_runtime()
    sync_date = args.date or (runtime.today() - timedelta(days=1))
    logger.info('transfer worker started for %s %s', args.category, sync_date)
    coordinator = runtime.coordinator
    if args.category == 'ALL':
        statuses = coordinator.sync_all(sync_date)
    else:
        status = coordinator.ensure_synced(sync_date, args.category, args.resume_from_row)
        if status.status == SyncState.PROCESSING:
            status = coordinator.wait_for_completion(sync_date, args.category, settings.transfer_batch_timeout_seconds)
        statuses = [status]
    for status in statuses:
        logger.info('%s %s: %s %s', status.category, status.sync_date, status.status.value, status.message)
    runtime.shutdown()
    return 0 if all(status.status in OK_STATES for status in statuses) else 1


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
