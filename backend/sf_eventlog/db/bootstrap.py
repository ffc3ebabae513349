from __future__ import annotations

import logging

from sqlalchemy import text

from sf_eventlog.db.base import Base
from sf_eventlog.db.session import SessionLocal, engine
import sf_eventlog.models  # noqa: F401

logger = logging.getLogger(__name__)


def bootstrap_database() -> None:
    """
    Ensure schema exists and run a short read check against the connection.
    """
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        db.execute(text('SELECT 1'))
        logger.info('DB bootstrap completed (schema ensured + read check)')
    except Exception:
        db.rollback()
        logger.exception('DB bootstrap failed')
        raise
    finally:
        db.close()
