import signal
import sys
import unittest
from datetime import date, datetime
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parent))

from fakes import FakeSalesforceClient, MutableClock, callout_row, make_runtime  # noqa: E402
from sf_eventlog import worker  # noqa: E402
from sf_eventlog.schemas.log_sync import SyncState  # noqa: E402

DAY = date(2025, 3, 16)


class WorkerTests(unittest.TestCase):
    def setUp(self):
        for signum in (signal.SIGTERM, signal.SIGINT):
            self.addCleanup(signal.signal, signum, signal.getsignal(signum))
        self.sf = FakeSalesforceClient()
        self.runtime = make_runtime(MutableClock(datetime(2025, 3, 17, 2, 0)), self.sf)
        for target, value in (('get_runtime', self.runtime), ('bootstrap_database', None)):
            patcher = patch.object(worker, target, return_value=value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def test_defaults_to_all_categories_for_yesterday(self):
        self.sf.add_file('ApexCallout', DAY, [callout_row(i, DAY) for i in range(1, 4)])
        self.assertEqual(worker.main([]), 0)
        status = self.runtime.status_store.get(DAY, 'ApexCallout')
        self.assertEqual(status.status, SyncState.SUCCESS)
        self.assertTrue(self.runtime.stop_event.is_set())

    def test_single_category_failure_exits_non_zero(self):
        ref = self.sf.add_file('ApexCallout', DAY, [callout_row(i, DAY) for i in range(1, 4)])
        self.sf.fail_at_row[ref.file] = 2
        self.assertEqual(worker.main(['--date', '2025-03-16', '--category', 'ApexCallout']), 1)
        status = self.runtime.status_store.get(DAY, 'ApexCallout')
        self.assertEqual(status.status, SyncState.FAILURE)
        self.assertIn('LogFileTransportError', status.message)

    def test_resume_from_row_is_passed_through(self):
        self.sf.add_file('ApexCallout', DAY, [callout_row(i, DAY) for i in range(1, 6)])
        code = worker.main(['--date', '2025-03-16', '--category', 'ApexCallout', '--resume-from-row', '4'])
        self.assertEqual(code, 0)
        status = self.runtime.status_store.get(DAY, 'ApexCallout')
        self.assertIn('resumed from row 4, skipped first 3 rows', status.message)

    def test_rejects_unknown_category(self):
        with self.assertRaises(SystemExit):
            worker.main(['--category', 'Nope'])


if __name__ == '__main__':
    unittest.main()
