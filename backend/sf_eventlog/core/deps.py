from datetime import date as date_type

from fastapi import HTTPException, Query, status

from sf_eventlog.core.categories import get_category
from sf_eventlog.core.errors import UnknownCategoryError
from sf_eventlog.services.runtime import Runtime, get_runtime

__all__ = ['Runtime', 'get_runtime', 'transfer_key']


def transfer_key(
    date: date_type = Query(...),
    category: str = Query(min_length=1, max_length=64),
) -> tuple[date_type, str]:
    try:
        descriptor = get_category(category)
    except UnknownCategoryError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={'error_code': 'UNKNOWN_CATEGORY', 'message': str(exc), 'details': None},
        )
    return date, descriptor.name
