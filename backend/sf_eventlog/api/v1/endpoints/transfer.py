from datetime import date, timedelta

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from sf_eventlog.core.deps import Runtime, get_runtime, transfer_key
from sf_eventlog.core.errors import LogFileTransportError, TransferTimeoutError
from sf_eventlog.schemas.common import ErrorBody, MessageOut
from sf_eventlog.schemas.log_sync import LogSyncStatus
from sf_eventlog.schemas.transfer import (
    ALL_CATEGORIES,
    ApplicationLogOut,
    ExamineOut,
    JobStateOut,
    TransferKeyIn,
    TransferProgressOut,
    TransferRunIn,
)
from sf_eventlog.services.metadata import build_metadata
from sf_eventlog.services.transfer_job import Complete, InProgress, Mismatch

router = APIRouter()

ERROR_RESPONSES = {code: {'model': ErrorBody} for code in (400, 404, 409, 422, 502, 504)}


def _sync_all(runtime: Runtime, sync_date: date) -> list[LogSyncStatus]:
    try:
        return runtime.coordinator.sync_all(sync_date)
    except TransferTimeoutError as exc:
        raise HTTPException(status_code=504, detail={'error_code': 'TRANSFER_TIMEOUT', 'message': str(exc)})


@router.post('/run', response_model=LogSyncStatus | list[LogSyncStatus], responses=ERROR_RESPONSES)
def run_transfer(payload: TransferRunIn, runtime: Runtime = Depends(get_runtime)):
    if payload.category == ALL_CATEGORIES:
        return _sync_all(runtime, payload.sync_date)
    return runtime.coordinator.ensure_synced(payload.sync_date, payload.category, payload.resume_from_row)


@router.post('/run-yesterday', response_model=list[LogSyncStatus])
def run_transfer_yesterday(runtime: Runtime = Depends(get_runtime)):
    return _sync_all(runtime, runtime.today() - timedelta(days=1))


@router.get(
    '/status',
    response_model=LogSyncStatus,
    responses={202: {'model': TransferProgressOut}, **ERROR_RESPONSES},
)
def transfer_status(key: tuple[date, str] = Depends(transfer_key), runtime: Runtime = Depends(get_runtime)):
    sync_date, category = key
    result = runtime.coordinator.poll(sync_date, category)
    if isinstance(result, Complete):
        return result.status
    if isinstance(result, InProgress):
        body = TransferProgressOut(
            sync_date=sync_date,
            category=category,
            processed=result.processed,
            total=result.total,
            message=result.detail,
        )
        return JSONResponse(status_code=202, content=body.model_dump(mode='json'))
    if isinstance(result, Mismatch):
        raise HTTPException(status_code=400, detail={'error_code': 'TRANSFER_MISMATCH', 'message': result.detail})
    raise HTTPException(status_code=409, detail={'error_code': 'TRANSFER_INCONSISTENT', 'message': result.detail})


@router.get('/job', response_model=JobStateOut)
def transfer_job(runtime: Runtime = Depends(get_runtime)):
    state = runtime.coordinator.state
    return JobStateOut(
        active=state.active,
        sync_date=state.sync_date,
        category=state.category,
        processed=state.processed,
        total=state.total,
    )


@router.post('/clear-status', response_model=MessageOut)
def clear_status(payload: TransferKeyIn, runtime: Runtime = Depends(get_runtime)):
    deleted = runtime.status_store.delete(payload.sync_date, payload.category)
    return MessageOut(message=f'Deleted {deleted} status rows for {payload.category} {payload.sync_date.isoformat()}')


@router.post('/clear-caches', response_model=MessageOut)
def clear_caches(runtime: Runtime = Depends(get_runtime)):
    runtime.clear_caches()
    return MessageOut(message='Caches cleared')


@router.get('/metadata', response_model=dict[str, list[LogSyncStatus]])
def transfer_metadata(runtime: Runtime = Depends(get_runtime)):
    return build_metadata(runtime.inventory, runtime.status_store, runtime.today())


@router.get('/examine', response_model=ExamineOut, responses=ERROR_RESPONSES)
def examine(key: tuple[date, str] = Depends(transfer_key), runtime: Runtime = Depends(get_runtime)):
    sync_date, category = key
    refs = runtime.inventory.find(category, sync_date)
    if not refs:
        raise HTTPException(
            status_code=404,
            detail={'error_code': 'NO_LOG_FILE', 'message': f'No log file for {category} {sync_date.isoformat()}'},
        )
    ref = refs[0]
    try:
        rows = runtime.client.count_rows(ref)
    except (LogFileTransportError, httpx.HTTPError) as exc:
        raise HTTPException(status_code=502, detail={'error_code': 'SALESFORCE_ERROR', 'message': str(exc)})
    return ExamineOut(
        sync_date=sync_date,
        category=category,
        file=ref.file,
        rows=rows,
        message=f'{rows} log rows found of {category} for {sync_date.isoformat()}',
    )


@router.get('/limits', responses=ERROR_RESPONSES)
def limits(runtime: Runtime = Depends(get_runtime)):
    try:
        return runtime.client.fetch_limits()
    except (httpx.HTTPError, ValueError) as exc:
        raise HTTPException(status_code=502, detail={'error_code': 'SALESFORCE_ERROR', 'message': str(exc)})


@router.get('/applog', response_model=ApplicationLogOut)
def application_log_stats(sync_date: date = Query(alias='date'), runtime: Runtime = Depends(get_runtime)):
    counts = runtime.client.fetch_application_log_counts(sync_date)
    return ApplicationLogOut(
        sync_date=sync_date,
        error=counts.error,
        critical=counts.critical,
        message=f'Application log stats for {sync_date.isoformat()} (error, critical): ({counts.error}, {counts.critical})',
    )
