from fastapi import APIRouter

from sf_eventlog.api.v1.endpoints import health, transfer

router = APIRouter(prefix='/api/v1')
router.include_router(health.router, tags=['health'])
router.include_router(transfer.router, prefix='/transfer', tags=['transfer'])
