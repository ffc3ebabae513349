from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from sf_eventlog.core.config import settings
from sf_eventlog.core.deps import Runtime, get_runtime
from sf_eventlog.db.session import SessionLocal

router = APIRouter()


@router.get('/health')
def health(runtime: Runtime = Depends(get_runtime)):
    """
    Health check. Returns 200 with db_ok true when DB is reachable.
    Returns 503 when DB is unreachable.
    """
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text('SELECT 1'))
        db_ok = True
    except SQLAlchemyError:
        db_ok = False
    finally:
        db.close()
    if not db_ok:
        return JSONResponse(
            status_code=503,
            content={
                'ok': False,
                'service': settings.app_name,
                'db_ok': False,
                'message': 'Database unreachable',
            },
        )
    return {
        'ok': True,
        'service': settings.app_name,
        'db_ok': True,
        'transfer_active': runtime.coordinator.active,
    }


@router.get('/metrics')
def metrics(runtime: Runtime = Depends(get_runtime)):
    payload, content_type = runtime.recorder.render_latest()
    return Response(content=payload, media_type=content_type)
