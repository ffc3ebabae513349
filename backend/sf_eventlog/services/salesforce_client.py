"""
Salesforce REST access for EventLogFile listing, log file content, org limits and
application log counts.

Log file content is only ever read as a forward stream: callers that need both a row
count and the rows open the file twice.
"""
from __future__ import annotations

import csv
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterator
from urllib.parse import quote
from zoneinfo import ZoneInfo

import httpx

from sf_eventlog.core.config import settings
from sf_eventlog.core.errors import LogFileTransportError
from sf_eventlog.core.metrics import MetricsRecorder
from sf_eventlog.core.sf_token import SalesforceTokenProvider

logger = logging.getLogger(__name__)

EventRow = dict[str, str | None]


@dataclass(frozen=True)
class LogFileRef:
    category: str
    log_date: date
    file: str


@dataclass(frozen=True)
class ApplicationLogCounts:
    log_date: date
    error: int
    critical: int


def _date_restriction(log_date: date) -> str:
    next_day = log_date + timedelta(days=1)
    return f' AND LogDate >= {log_date.isoformat()}T00:00:00Z AND LogDate < {next_day.isoformat()}T00:00:00Z'


def _created_date_restriction(log_date: date, zone: ZoneInfo) -> str:
    start = datetime.combine(log_date, datetime.min.time(), tzinfo=zone).astimezone(timezone.utc)
    end = datetime.combine(log_date + timedelta(days=1), datetime.min.time(), tzinfo=zone).astimezone(timezone.utc)
    return f" AND CreatedDate >= {start.strftime('%Y-%m-%dT%H:%M:%SZ')} AND CreatedDate < {end.strftime('%Y-%m-%dT%H:%M:%SZ')}"


def _clean_value(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    if not text.strip():
        return None
    return text.strip('"')


def _iter_csv_lines(response: httpx.Response) -> Iterator[str]:
    """Split the streamed body into lines, keeping line endings so quoted multi-line fields survive."""
    buffer = ''
    for chunk in response.iter_text():
        buffer += chunk
        *lines, buffer = buffer.split('\n')
        for line in lines:
            yield line + '\n'
    if buffer:
        yield buffer


def _clean_rows(reader: csv.DictReader) -> Iterator[EventRow]:
    for raw in reader:
        yield {str(key): _clean_value(value) for key, value in raw.items() if key is not None}


class SalesforceClient:
    def __init__(
        self,
        token_provider: SalesforceTokenProvider,
        recorder: MetricsRecorder | None = None,
        *,
        http_client: httpx.Client | None = None,
        api_version: str | None = None,
    ) -> None:
        self._tokens = token_provider
        self._recorder = recorder
        self._http = http_client or httpx.Client(timeout=float(settings.salesforce_timeout_seconds))
        self.api_version = api_version or settings.salesforce_api_version
        self._stream_timeout = httpx.Timeout(
            float(settings.salesforce_timeout_seconds),
            read=float(settings.salesforce_stream_read_timeout_seconds),
        )

    def _headers(self, access_token: str, accept: str) -> dict[str, str]:
        return {'Authorization': f'Bearer {access_token}', 'Accept': accept}

    def _forget_rejected_token(self, response: httpx.Response) -> None:
        if response.status_code == httpx.codes.UNAUTHORIZED:
            self._tokens.invalidate()

    def _query_pages(self, soql: str, subject: str) -> Iterator[list[dict[str, Any]]]:
        """
        Yield the records of each SOQL result page, following `nextRecordsUrl` until done.
        A failed or malformed page is logged and ends the query.
        """
        next_records_url: str | None = f'/services/data/{self.api_version}/query?q={quote(soql, safe="")}'
        while next_records_url:
            token = self._tokens.token()
            try:
                response = self._http.get(
                    token.instance_url + next_records_url,
                    headers=self._headers(token.access_token, 'application/json'),
                )
            except httpx.HTTPError as exc:
                logger.error('Failed to fetch %s - %s', subject, exc)
                return
            if not response.is_success:
                logger.error('Failed to fetch %s - response %s:%s', subject, response.status_code, response.text)
                self._forget_rejected_token(response)
                return
            try:
                body = response.json()
                records = list(body.get('records') or [])
            except (ValueError, AttributeError, TypeError) as exc:
                logger.error('Failed to fetch %s - malformed page %s: %s', subject, type(exc).__name__, exc)
                return
            logger.debug('Fetched page of %s records of %s for %s', len(records), body.get('totalSize'), subject)
            yield records
            if body.get('done', True):
                return
            next_records_url = body.get('nextRecordsUrl')
            if not next_records_url:
                logger.error('Failed to fetch %s - page not done but without nextRecordsUrl', subject)

    def fetch_log_files(self, category: str, log_date: date | None = None) -> list[LogFileRef]:
        """
        List the EventLogFile records of one category.
        A failed page ends the listing; what was accumulated so far is returned.
        """
        soql = f"SELECT Id, EventType, LogFile, LogDate FROM EventLogFile WHERE EventType='{category}'"
        if log_date is not None:
            soql += _date_restriction(log_date)
        result: list[LogFileRef] = []
        for records in self._query_pages(soql, f'EventLogFiles of type {category}'):
            try:
                refs = [
                    LogFileRef(
                        category=category,
                        log_date=date.fromisoformat(str(record['LogDate'])[:10]),
                        file=str(record['LogFile']),
                    )
                    for record in records
                ]
            except (KeyError, ValueError, TypeError) as exc:
                logger.error('Failed to fetch EventLogFiles of type %s - unreadable record %s: %s', category, type(exc).__name__, exc)
                break
            result.extend(refs)
            logger.info('Completed fetch %s log files for %s', len(result), category)
        if self._recorder is not None:
            self._recorder.observe_fetched(category, len(result))
        return result

    def fetch_application_log_counts(self, log_date: date) -> ApplicationLogCounts:
        """Count Error and Critical `Application_Log__c` entries created on the local calendar day."""
        soql = (
            'SELECT CreatedDate, Log_Level__c, Application_Domain__c, Source_Class__c, Source_Function__c, UUID__c '
            "FROM Application_Log__c WHERE Log_Level__c IN ('Critical', 'Error')"
            + _created_date_restriction(log_date, ZoneInfo(settings.application_log_timezone))
        )
        error = critical = 0
        for records in self._query_pages(soql, 'application logs'):
            for record in records:
                level = record.get('Log_Level__c') if isinstance(record, dict) else None
                if level == 'Critical':
                    critical += 1
                elif level == 'Error':
                    error += 1
        return ApplicationLogCounts(log_date=log_date, error=error, critical=critical)

    @contextmanager
    def _open_log_file(self, ref: LogFileRef) -> Iterator[httpx.Response]:
        token = self._tokens.token()
        with self._http.stream(
            'GET',
            token.instance_url + ref.file,
            headers=self._headers(token.access_token, 'text/csv'),
            timeout=self._stream_timeout,
        ) as response:
            if not response.is_success:
                logger.error('Error fetching log file %s: %s', ref.file, response.status_code)
                self._forget_rejected_token(response)
                raise LogFileTransportError(
                    f'Failed to fetch log file {ref.file}: {response.status_code}',
                    status_code=response.status_code,
                )
            yield response

    def count_rows(self, ref: LogFileRef) -> int:
        with self._open_log_file(ref) as response:
            reader = csv.reader(_iter_csv_lines(response))
            next(reader, None)
            count = sum(1 for row in reader if row)
        logger.info('Counted %s rows in log file for %s %s', count, ref.category, ref.log_date)
        return count

    @contextmanager
    def iter_rows(self, ref: LogFileRef) -> Iterator[Iterator[EventRow]]:
        with self._open_log_file(ref) as response:
            yield _clean_rows(csv.DictReader(_iter_csv_lines(response)))

    def fetch_limits(self) -> dict[str, Any]:
        token = self._tokens.token()
        response = self._http.get(
            f'{token.instance_url}/services/data/{self.api_version}/limits',
            headers=self._headers(token.access_token, 'application/json'),
        )
        self._forget_rejected_token(response)
        response.raise_for_status()
        body = response.json()
        if self._recorder is not None:
            for name, value in body.items():
                if isinstance(value, dict) and 'Max' in value and 'Remaining' in value:
                    self._recorder.set_limit(name, float(value['Max']), float(value['Remaining']))
        return body

    def close(self) -> None:
        self._http.close()
