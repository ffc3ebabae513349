"""
Event log categories (Salesforce EventLogFile event types) and how each one is logged.

A category either emits its message field to the log sinks, feeds a labelled counter,
or both. A category with neither is only useful for inspecting a new file layout.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from sf_eventlog.core.errors import UnknownCategoryError

NOT_AVAILABLE = 'N/A'


def _snake(name: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', name).lower()


@dataclass(frozen=True)
class CategoryDescriptor:
    name: str
    message_field: str = ''
    insensitive_fields: tuple[str, ...] = ()
    sensitive_fields: tuple[str, ...] = ()
    metric_label_fields: tuple[str, ...] = ()
    metric_date_field: str = 'TIMESTAMP_DERIVED'
    url_label_fields: frozenset[str] = frozenset()
    time_bucket_fields: frozenset[str] = frozenset()
    size_bucket_fields: frozenset[str] = frozenset()

    @property
    def emits_messages(self) -> bool:
        return bool(self.message_field)

    @property
    def has_metrics(self) -> bool:
        return bool(self.metric_label_fields)

    @property
    def is_inspection_only(self) -> bool:
        return not self.emits_messages and not self.has_metrics

    @property
    def metric_name(self) -> str:
        return f'sf_eventlog_{_snake(self.name)}'

    @property
    def metric_label_names(self) -> list[str]:
        return [field.lower() for field in self.metric_label_fields] + ['log_date']

    def build_context(self, event: Mapping[str, Any], *, exclude_sensitive: bool, row: int, total: int) -> dict[str, str]:
        fields = list(self.insensitive_fields)
        if not exclude_sensitive:
            fields.extend(self.sensitive_fields)
        context = {field: str(event.get(field) or NOT_AVAILABLE) for field in fields}
        context['row'] = str(row)
        context['total'] = str(total)
        return context


CATEGORIES: dict[str, CategoryDescriptor] = {
    'ApexUnexpectedException': CategoryDescriptor(
        name='ApexUnexpectedException',
        message_field='EXCEPTION_MESSAGE',
        insensitive_fields=(
            'EVENT_TYPE',
            'TIMESTAMP',
            'TIMESTAMP_DERIVED',
            'REQUEST_ID',
            'ORGANIZATION_ID',
            'EXCEPTION_TYPE',
            'EXCEPTION_CATEGORY',
        ),
        sensitive_fields=(
            'STACK_TRACE',
            'USER_ID',
            'USER_ID_DERIVED',
        ),
    ),
    'ApexCallout': CategoryDescriptor(
        name='ApexCallout',
        metric_label_fields=('URL', 'METHOD', 'TYPE', 'SUCCESS', 'TIME', 'RESPONSE_SIZE'),
        url_label_fields=frozenset({'URL'}),
        time_bucket_fields=frozenset({'TIME'}),
        size_bucket_fields=frozenset({'RESPONSE_SIZE'}),
    ),
    'ApexRestApi': CategoryDescriptor(
        name='ApexRestApi',
        metric_label_fields=('URI', 'METHOD', 'STATUS_CODE', 'RUN_TIME'),
        url_label_fields=frozenset({'URI'}),
        time_bucket_fields=frozenset({'RUN_TIME'}),
    ),
    'FlowExecution': CategoryDescriptor(name='FlowExecution'),
}


def all_categories() -> list[CategoryDescriptor]:
    return list(CATEGORIES.values())


def get_category(name: str) -> CategoryDescriptor:
    key = str(name or '').strip()
    descriptor = CATEGORIES.get(key)
    if descriptor is None:
        raise UnknownCategoryError(f'Unknown event log category: {name}')
    return descriptor
