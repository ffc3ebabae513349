"""
Structured JSON logging.
Emit one JSON object per line with trace_id, level, message, duration_ms, endpoint when available.

Event log rows are written through two sinks: the regular channel goes to stdout like
every other structured line, the secure channel goes to the `sf_eventlog.secure`
logger only so that deployments can route sensitive context to a restricted store.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from sf_eventlog.core.config import settings

SECURE_LOGGER_NAME = 'sf_eventlog.secure'


def _extra(trace_id: str | None = None, duration_ms: float | None = None, endpoint: str | None = None, **kwargs: Any) -> dict[str, Any]:
    out: dict[str, Any] = {k: v for k, v in kwargs.items() if v is not None}
    if trace_id is not None:
        out["trace_id"] = trace_id
    if duration_ms is not None:
        out["duration_ms"] = round(duration_ms, 2)
    if endpoint is not None:
        out["endpoint"] = endpoint
    return out


def structured_log(
    level: str,
    message: str,
    *,
    trace_id: str | None = None,
    duration_ms: float | None = None,
    endpoint: str | None = None,
    **kwargs: Any,
) -> None:
    payload = {"level": level, "message": message, **_extra(trace_id=trace_id, duration_ms=duration_ms, endpoint=endpoint, **kwargs)}
    line = json.dumps(payload, ensure_ascii=False, default=str)
    if settings.app_env == "dev":
        logging.getLogger("sf_eventlog").log(
            getattr(logging, level.upper(), logging.INFO),
            "%s %s", level, message, extra={"payload": payload},
        )
    print(line, flush=True)


def secure_log(level: str, message: str, **kwargs: Any) -> None:
    payload = {"level": level, "message": message, **_extra(**kwargs)}
    logging.getLogger(SECURE_LOGGER_NAME).log(
        getattr(logging, level.upper(), logging.INFO),
        json.dumps(payload, ensure_ascii=False, default=str),
    )


def log_request(request_path: str, method: str, trace_id: str, duration_ms: float, status_code: int) -> None:
    structured_log(
        "info",
        "request",
        trace_id=trace_id,
        duration_ms=duration_ms,
        endpoint=f"{method} {request_path}",
        path=request_path,
        method=method,
        status_code=status_code,
    )


class LogSink:
    """Destination for one event log row: a message plus its context map."""

    def __init__(self, channel: str = 'eventlog', level: str = 'error') -> None:
        self.channel = channel
        self.level = level

    def emit(self, message: str, context: Mapping[str, Any]) -> None:
        if self.channel == 'secure':
            secure_log(self.level, message, **dict(context))
        else:
            structured_log(self.level, message, channel=self.channel, **dict(context))
