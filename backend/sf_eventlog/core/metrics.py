"""
Prometheus metrics for the event log sync.

Each category with metric label fields gets its own labelled counter. Label values are
derived from raw CSV values: URLs are normalized so that ids and file names do not explode
cardinality, durations and sizes are bucketed into fixed human readable ranges.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Sequence
from urllib.parse import urlsplit

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from prometheus_client import CONTENT_TYPE_LATEST

from sf_eventlog.core.categories import CategoryDescriptor, all_categories

NOT_APPLICABLE = 'Not applicable'
COLLAPSED_HOSTS = {'hooks.slack.com'}

_MASKS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r'/\d+'), '/{id}'),
    (re.compile(r'/[A-Z]\d{4,}'), '/{ident}'),
    (re.compile(r'/[^/]+\.(xml|pdf)$'), '/{filename}'),
    (re.compile(r'/[A-Z]{3}(?=/|$)'), '/{code}'),
]

_TIME_BUCKETS_MS = [
    (10, '< 10 ms'),
    (50, '< 50 ms'),
    (100, '< 100 ms'),
    (500, '< 500 ms'),
    (1000, '< 1s'),
    (5000, '< 5s'),
    (10000, '< 10s'),
]

_SIZE_BUCKETS_BYTES = [
    (1024, '< 1 KB'),
    (10 * 1024, '< 10 KB'),
    (100 * 1024, '< 100 KB'),
    (1024 * 1024, '< 1 MB'),
    (10 * 1024 * 1024, '< 10 MB'),
]


def mask(path: str) -> str:
    """Mask common path variables to avoid separate counts for paths with varying segments."""
    for pattern, replacement in _MASKS:
        path = pattern.sub(replacement, path)
    return path


def normalize_url(url: str) -> str:
    without_query = str(url or '').split('?', 1)[0].split('#', 1)[0]
    if without_query.startswith('http'):
        parts = urlsplit(without_query)
        host = parts.hostname or ''
        if host in COLLAPSED_HOSTS:
            return host
        return f'{host}{mask(parts.path)}'
    if without_query.startswith('callout:'):
        return 'callout:' + mask(without_query[len('callout:'):])
    return without_query


def to_time_label(millis: int) -> str:
    for limit, label in _TIME_BUCKETS_MS:
        if millis < limit:
            return label
    return '> 10s'


def to_size_label(size: int) -> str:
    for limit, label in _SIZE_BUCKETS_BYTES:
        if size < limit:
            return label
    return '> 10 MB'


def _bucket(value: Any, labeller) -> str:
    try:
        return labeller(int(str(value).strip()))
    except (TypeError, ValueError):
        return NOT_APPLICABLE


class MetricsRecorder:
    def __init__(self, registry: CollectorRegistry | None = None, categories: Sequence[CategoryDescriptor] | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
            GCCollector(registry=registry)
        self.registry = registry
        self._counters: dict[str, Counter] = {}
        self.fetched_logs = Counter(
            'sf_eventlog_fetched_logs',
            'Event log files listed per category',
            ['category'],
            registry=self.registry,
        )
        self.transfer_rows = Counter(
            'sf_eventlog_transfer_rows',
            'Rows handled by transfer runs',
            ['category', 'outcome'],
            registry=self.registry,
        )
        self.limit_max = Gauge(
            'sf_eventlog_salesforce_limit_max',
            'Salesforce org limit maximum',
            ['limit'],
            registry=self.registry,
        )
        self.limit_remaining = Gauge(
            'sf_eventlog_salesforce_limit_remaining',
            'Salesforce org limit remaining',
            ['limit'],
            registry=self.registry,
        )
        self.request_latency = Histogram(
            'sf_eventlog_http_request_duration_seconds',
            'HTTP request latency',
            ['endpoint'],
            registry=self.registry,
            buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
        )
        for descriptor in categories if categories is not None else all_categories():
            if descriptor.has_metrics:
                self._counters[descriptor.metric_name] = Counter(
                    descriptor.metric_name,
                    f'Event log rows of type {descriptor.name}',
                    descriptor.metric_label_names,
                    registry=self.registry,
                )

    def increment(self, counter_name: str, labels: Sequence[str]) -> None:
        counter = self._counters.get(counter_name)
        if counter is None:
            raise KeyError(f'No counter registered as {counter_name}')
        counter.labels(*labels).inc()

    def category_labels(self, descriptor: CategoryDescriptor, event: Mapping[str, Any]) -> list[str]:
        labels: list[str] = []
        for field in descriptor.metric_label_fields:
            value = event.get(field)
            if field in descriptor.time_bucket_fields:
                labels.append(_bucket(value, to_time_label))
                continue
            if field in descriptor.size_bucket_fields:
                labels.append(_bucket(value, to_size_label))
                continue
            if value is None:
                raise KeyError(f'Missing label field {field}')
            if field in descriptor.url_label_fields:
                labels.append(normalize_url(str(value)))
            else:
                labels.append(str(value))
        date_value = event.get(descriptor.metric_date_field)
        if date_value is None:
            raise KeyError(f'Missing date label field {descriptor.metric_date_field}')
        labels.append(str(date_value)[:10])
        return labels

    def record_event(self, descriptor: CategoryDescriptor, event: Mapping[str, Any]) -> None:
        self.increment(descriptor.metric_name, self.category_labels(descriptor, event))

    def clear_category(self, descriptor: CategoryDescriptor) -> None:
        counter = self._counters.get(descriptor.metric_name)
        if counter is not None:
            counter.clear()

    def observe_fetched(self, category: str, count: int) -> None:
        self.fetched_logs.labels(category).inc(count)

    def observe_rows(self, category: str, outcome: str, count: int = 1) -> None:
        self.transfer_rows.labels(category, outcome).inc(count)

    def set_limit(self, name: str, maximum: float, remaining: float) -> None:
        self.limit_max.labels(name).set(maximum)
        self.limit_remaining.labels(name).set(remaining)

    def observe_request(self, endpoint: str, latency_ms: float) -> None:
        key = str(endpoint or 'unknown').strip() or 'unknown'
        self.request_latency.labels(key).observe(max(0.0, latency_ms) / 1000.0)

    def sample(self, name: str, labels: Mapping[str, str]) -> float | None:
        return self.registry.get_sample_value(name, dict(labels))

    def render_latest(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
