import sys
import unittest
from datetime import date
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent))

import fakes  # noqa: E402,F401
from sf_eventlog.core.errors import LogFileTransportError  # noqa: E402
from sf_eventlog.core.metrics import MetricsRecorder  # noqa: E402
from sf_eventlog.core.sf_token import AccessToken  # noqa: E402
from sf_eventlog.services.salesforce_client import LogFileRef, SalesforceClient  # noqa: E402

INSTANCE = 'https://sf.example.com'
QUERY_PATH = '/services/data/v62.0/query'
NEXT_PATH = '/services/data/v62.0/query/01g-2000'
LOG_FILE = '/services/data/v62.0/sobjects/EventLogFile/0AT1/LogFile'
APPLOG_NEXT_PATH = '/services/data/v62.0/query/01g-3000'


class StaticTokens:
    def __init__(self):
        self.invalidations = 0

    def token(self):
        return AccessToken('tok', INSTANCE)

    def invalidate(self):
        self.invalidations += 1


def _record(day: str, file: str = LOG_FILE) -> dict:
    return {'Id': '0AT1', 'EventType': 'ApexCallout', 'LogFile': file, 'LogDate': f'{day}T00:00:00.000+0000'}


def _log(level: str) -> dict:
    return {'CreatedDate': '2025-03-16T10:00:00.000+0000', 'Log_Level__c': level, 'UUID__c': 'u-1'}


class SalesforceClientTests(unittest.TestCase):
    def setUp(self):
        self.requests = []
        self.second_page_status = 200
        self.file_status = 200
        self.second_page_body = None
        self.first_page = {
            'totalSize': 3,
            'done': False,
            'nextRecordsUrl': NEXT_PATH,
            'records': [_record('2025-03-16'), _record('2025-03-15', '/other/LogFile')],
        }
        self.csv_body = (
            '"EVENT_TYPE","URL","TIME"\n'
            '"ApexCallout","https://a.example.com/x/1",""\n'
            '"ApexCallout","callout:Cred/y","12"\n'
        )
        self.recorder = MetricsRecorder()
        http = httpx.Client(transport=httpx.MockTransport(self._handler))
        self.tokens = StaticTokens()
        self.client = SalesforceClient(self.tokens, self.recorder, http_client=http, api_version='v62.0')

    def _handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == QUERY_PATH:
            if 'Application_Log__c' in request.url.params['q']:
                return httpx.Response(
                    200,
                    json={'done': False, 'nextRecordsUrl': APPLOG_NEXT_PATH, 'records': [_log('Error'), _log('Critical'), _log('Error')]},
                )
            return httpx.Response(200, json=self.first_page)
        if path == APPLOG_NEXT_PATH:
            return httpx.Response(200, json={'done': True, 'records': [_log('Critical'), {'CreatedDate': 'x'}]})
        if path == NEXT_PATH:
            if self.second_page_status != 200:
                return httpx.Response(self.second_page_status, text='boom')
            if self.second_page_body is not None:
                return httpx.Response(200, text=self.second_page_body)
            return httpx.Response(200, json={'totalSize': 3, 'done': True, 'records': [_record('2025-03-14', '/third/LogFile')]})
        if path == LOG_FILE:
            return httpx.Response(self.file_status, content=self.csv_body.encode('utf-8'))
        if path == '/services/data/v62.0/limits':
            return httpx.Response(200, json={'DailyApiRequests': {'Max': 100, 'Remaining': 60}, 'Other': 'x'})
        return httpx.Response(404)

    def test_listing_follows_next_records_url(self):
        refs = self.client.fetch_log_files('ApexCallout')
        self.assertEqual([ref.log_date for ref in refs], [date(2025, 3, 16), date(2025, 3, 15), date(2025, 3, 14)])
        self.assertEqual(refs[0].file, LOG_FILE)
        self.assertIn("EventType='ApexCallout'", self.requests[0].url.params['q'])
        self.assertEqual(self.requests[0].headers['Authorization'], 'Bearer tok')
        self.assertEqual(self.recorder.sample('sf_eventlog_fetched_logs_total', {'category': 'ApexCallout'}), 3.0)

    def test_listing_with_date_window(self):
        self.client.fetch_log_files('ApexCallout', date(2025, 3, 16))
        q = self.requests[0].url.params['q']
        self.assertIn('LogDate >= 2025-03-16T00:00:00Z', q)
        self.assertIn('LogDate < 2025-03-17T00:00:00Z', q)

    def test_listing_failure_returns_accumulated(self):
        self.second_page_status = 500
        refs = self.client.fetch_log_files('ApexCallout')
        self.assertEqual(len(refs), 2)

    def test_listing_stops_on_non_json_page(self):
        self.second_page_body = '<html>gateway</html>'
        refs = self.client.fetch_log_files('ApexCallout')
        self.assertEqual([ref.file for ref in refs], [LOG_FILE, '/other/LogFile'])
        self.assertEqual(self.recorder.sample('sf_eventlog_fetched_logs_total', {'category': 'ApexCallout'}), 2.0)

    def test_listing_stops_when_next_page_url_is_missing(self):
        del self.first_page['nextRecordsUrl']
        refs = self.client.fetch_log_files('ApexCallout')
        self.assertEqual(len(refs), 2)
        self.assertEqual(len(self.requests), 1)

    def test_listing_stops_on_unreadable_record(self):
        self.first_page['records'].append({'Id': '0AT9', 'LogDate': '2025-03-13T00:00:00.000+0000'})
        refs = self.client.fetch_log_files('ApexCallout')
        self.assertEqual(refs, [])
        self.assertEqual(len(self.requests), 1)

    def test_application_log_counts_follow_pages(self):
        counts = self.client.fetch_application_log_counts(date(2025, 3, 16))
        self.assertEqual((counts.error, counts.critical), (2, 2))
        q = self.requests[0].url.params['q']
        self.assertIn("Log_Level__c IN ('Critical', 'Error')", q)
        self.assertIn('CreatedDate >= 2025-03-15T23:00:00Z', q)
        self.assertIn('CreatedDate < 2025-03-16T23:00:00Z', q)
        self.assertEqual(self.requests[1].url.path, APPLOG_NEXT_PATH)

    def test_count_rows_excludes_header(self):
        ref = LogFileRef('ApexCallout', date(2025, 3, 16), LOG_FILE)
        self.assertEqual(self.client.count_rows(ref), 2)
        self.assertEqual(self.requests[-1].headers['Accept'], 'text/csv')

    def test_iter_rows_cleans_values(self):
        ref = LogFileRef('ApexCallout', date(2025, 3, 16), LOG_FILE)
        with self.client.iter_rows(ref) as rows:
            events = list(rows)
        self.assertEqual(len(events), 2)
        self.assertEqual(events[0]['URL'], 'https://a.example.com/x/1')
        self.assertIsNone(events[0]['TIME'])
        self.assertEqual(events[1]['TIME'], '12')

    def test_quoted_multiline_field(self):
        self.csv_body = (
            '"EVENT_TYPE","EXCEPTION_MESSAGE"\r\n'
            '"ApexUnexpectedException","line1\nline2"\r\n'
            '"ApexUnexpectedException",""\r\n'
        )
        ref = LogFileRef('ApexUnexpectedException', date(2025, 3, 16), LOG_FILE)
        self.assertEqual(self.client.count_rows(ref), 2)
        with self.client.iter_rows(ref) as rows:
            events = list(rows)
        self.assertEqual(events[0]['EXCEPTION_MESSAGE'], 'line1\nline2')
        self.assertIsNone(events[1]['EXCEPTION_MESSAGE'])

    def test_file_error_raises_transport_error(self):
        self.file_status = 503
        ref = LogFileRef('ApexCallout', date(2025, 3, 16), LOG_FILE)
        with self.assertRaises(LogFileTransportError) as ctx:
            self.client.count_rows(ref)
        self.assertEqual(ctx.exception.status_code, 503)
        with self.assertRaises(LogFileTransportError):
            with self.client.iter_rows(ref):
                pass
        self.assertEqual(self.tokens.invalidations, 0)

    def test_unauthorized_file_drops_cached_token(self):
        self.file_status = 401
        ref = LogFileRef('ApexCallout', date(2025, 3, 16), LOG_FILE)
        with self.assertRaises(LogFileTransportError):
            self.client.count_rows(ref)
        self.assertEqual(self.tokens.invalidations, 1)

    def test_limits_update_gauges(self):
        body = self.client.fetch_limits()
        self.assertIn('DailyApiRequests', body)
        self.assertEqual(self.recorder.sample('sf_eventlog_salesforce_limit_max', {'limit': 'DailyApiRequests'}), 100.0)
        self.assertEqual(self.recorder.sample('sf_eventlog_salesforce_limit_remaining', {'limit': 'DailyApiRequests'}), 60.0)


if __name__ == '__main__':
    unittest.main()
