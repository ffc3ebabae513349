import logging
import time
import uuid

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sf_eventlog.api.v1.router import router as v1_router
from sf_eventlog.core.config import settings
from sf_eventlog.core.errors import TransferConflictError, UnknownCategoryError
from sf_eventlog.core.logging_config import log_request, structured_log
from sf_eventlog.core.prod_check import validate_production_config
from sf_eventlog.db.bootstrap import bootstrap_database
from sf_eventlog.services.runtime import get_runtime

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version='1.0.0')

if settings.cors_origins and settings.cors_origins.strip() != '*':
    origins = [o.strip() for o in settings.cors_origins.split(',') if o.strip()]
else:
    origins = ['http://localhost:8080', 'http://127.0.0.1:8080']

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


def _trace_id(request: Request) -> str:
    return getattr(request.state, 'trace_id', None) or request.headers.get('x-trace-id') or str(uuid.uuid4())


@app.middleware('http')
async def trace_and_logging(request: Request, call_next):
    trace_id = request.headers.get('x-trace-id') or str(uuid.uuid4())
    request.state.trace_id = trace_id
    start = time.time()
    try:
        response = await call_next(request)
        latency = round((time.time() - start) * 1000, 2)
        get_runtime().recorder.observe_request(request.url.path, latency)
        log_request(request.url.path, request.method, trace_id, latency, response.status_code)
        response.headers['x-trace-id'] = trace_id
        response.headers['x-latency-ms'] = str(latency)
        return response
    except Exception as exc:
        latency = round((time.time() - start) * 1000, 2)
        structured_log(
            'error', 'request_failed',
            trace_id=trace_id, duration_ms=latency,
            endpoint=f'{request.method} {request.url.path}',
            error=str(exc),
        )
        body = {'error_code': 'INTERNAL_ERROR', 'message': 'Internal error', 'details': str(exc), 'trace_id': trace_id}
        headers = {'x-trace-id': trace_id, 'x-latency-ms': str(latency)}
        return JSONResponse(status_code=500, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    trace_id = _trace_id(request)
    if isinstance(exc.detail, dict):
        body = {
            'error_code': str(exc.detail.get('error_code') or 'HTTP_ERROR'),
            'message': str(exc.detail.get('message') or 'HTTP Error'),
            'details': exc.detail.get('details'),
            'trace_id': trace_id,
        }
    else:
        body = {'error_code': 'HTTP_ERROR', 'message': str(exc.detail), 'details': None, 'trace_id': trace_id}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    body = {
        'error_code': 'INVALID_PAYLOAD',
        'message': 'Invalid payload',
        'details': {'errors': jsonable_encoder(exc.errors())},
        'trace_id': _trace_id(request),
    }
    return JSONResponse(status_code=422, content=body, headers={'x-trace-id': _trace_id(request)})


@app.exception_handler(UnknownCategoryError)
async def unknown_category_handler(request: Request, exc: UnknownCategoryError):
    body = {'error_code': 'UNKNOWN_CATEGORY', 'message': str(exc), 'details': None, 'trace_id': _trace_id(request)}
    return JSONResponse(status_code=404, content=body)


@app.exception_handler(TransferConflictError)
async def transfer_conflict_handler(request: Request, exc: TransferConflictError):
    body = {'error_code': 'TRANSFER_CONFLICT', 'message': str(exc), 'details': None, 'trace_id': _trace_id(request)}
    return JSONResponse(status_code=409, content=body)


app.include_router(v1_router)


@app.on_event('startup')
def _startup() -> None:
    validate_production_config()
    if settings.db_bootstrap_on_start:
        bootstrap_database()
    runtime = get_runtime()
    runtime.status_store.prune(settings.status_retention_days)
    if settings.resume_on_startup:
        runtime.coordinator.resume_pending()
    if settings.limits_poll_minutes > 0:
        runtime.start_limits_poller()


@app.on_event('shutdown')
def _shutdown() -> None:
    get_runtime().shutdown()


def run() -> None:
    uvicorn.run(app, host='0.0.0.0', port=settings.app_port)


if __name__ == '__main__':
    run()
